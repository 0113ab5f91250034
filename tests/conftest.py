from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

import pandas as pd
import pytest

from allocator.params import AllocationRatios, PendingDeductConfig, Thresholds, WeeklyParams
from allocator.records import AllocationResult, RawRecord
from allocator.storage import InMemoryWeekStore

HEADER = ["SKU", "名称", "年份", "总库存", "全平台代发", "小红书待发", "淘宝待发", "有赞待发"]


def make_params(**overrides) -> WeeklyParams:
    base = dict(
        week_id="20250112",
        year="2025",
        week_id_prev=None,
        ratios=AllocationRatios(),
        pending_deduct=PendingDeductConfig(strategy="all"),
        thresholds=Thresholds(),
    )
    base.update(overrides)
    return WeeklyParams(**base)


def make_raw(sku: str = "A25123XY01", **kw) -> RawRecord:
    return RawRecord(sku=sku, **kw)


def make_result(sku: str = "A25123XY01", **kw) -> AllocationResult:
    return AllocationResult(sku=sku, **kw)


def write_sheet(path: Path, rows: Sequence[Sequence[object]], *, junk_row: bool = True) -> Path:
    """Write a weekly sheet: optional loose-numbers row, then HEADER, then data."""
    data: List[List[object]] = []
    if junk_row:
        data.append([1, 2, 3, "", "", "", "", ""])
    data.append(list(HEADER))
    data.extend(list(r) for r in rows)
    pd.DataFrame(data).to_excel(path, header=False, index=False, engine="openpyxl")
    return path


@pytest.fixture
def params() -> WeeklyParams:
    return make_params()


@pytest.fixture
def store() -> InMemoryWeekStore:
    return InMemoryWeekStore()

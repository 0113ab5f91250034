from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from allocator.allocation import (
    allocate_listings,
    compute_allocatable,
    compute_real_stock,
    detect_triggers,
)
from allocator.data import Source, WorkbookError, load_raw_records
from allocator.params import ParamsError, WeeklyParams, resolve_prev_week_id
from allocator.records import AllocationResult, ProcessedOutput, RawRecord
from allocator.storage import StorageError, WeekStore


logger = logging.getLogger(__name__)

CARRY_OVER_REASON = "沿用上一周分配（未超阈值）"
YEAR_GROUP_ORDER = {"current": 0, "previous": 1, "other": 2}


class WeeklyRunError(RuntimeError):
    """A run failed while reading the sheet or touching the store; nothing was saved."""


@dataclass(frozen=True)
class WeeklyRun:
    output: ProcessedOutput
    baseline_missing: bool
    prev_week_used: Optional[str] = None

    @property
    def records(self) -> List[AllocationResult]:
        return self.output.records


def _two_digit_year(year: Optional[int]) -> Optional[int]:
    if year is None:
        return None
    return year - 2000 if year > 2000 else year


def resolve_year_group(year: Optional[int], target_year: str) -> str:
    digits = "".join(ch for ch in (target_year or "") if ch.isdigit())
    if not digits:
        return "other"
    target = int(digits[-2:])
    prev = (target + 99) % 100
    yr = _two_digit_year(year)
    if yr == target:
        return "current"
    if yr == prev:
        return "previous"
    return "other"


def sort_records(records: Iterable[AllocationResult]) -> List[AllocationResult]:
    return sorted(
        records,
        key=lambda r: (
            not r.allocation_changed,
            YEAR_GROUP_ORDER.get(r.year_group, len(YEAR_GROUP_ORDER)),
            -r.real_stock,
            r.sku,
        ),
    )


def build_record(row: RawRecord, params: WeeklyParams, prev: Optional[AllocationResult]) -> AllocationResult:
    real_stock = compute_real_stock(row.total_stock, row.platform_fulfillment)
    allocatable = compute_allocatable(real_stock, row, params.pending_deduct)
    fresh = allocate_listings(allocatable, params.ratios)

    base = AllocationResult(
        **{f.name: getattr(row, f.name) for f in fields(RawRecord)},
        real_stock=real_stock,
        allocatable=allocatable,
        xhs_listing=fresh["xhs"],
        tb_listing=fresh["tb"],
        yz_listing=fresh["yz"],
        year_group=resolve_year_group(row.year, params.year),
        low_stock=real_stock < params.thresholds.low_stock_threshold,
        prev_snapshot=prev.snapshot() if prev is not None else None,
    )

    triggers = detect_triggers(base, prev, params.thresholds)
    reuse = prev is not None and not triggers.needs_recalc and prev.listing_sum <= allocatable
    final = prev.listings if reuse else fresh

    allocation_changed = prev is not None and prev.listings != final
    stock_drop_only = (
        prev is not None
        and row.total_stock < prev.total_stock
        and row.platform_fulfillment == prev.platform_fulfillment
    )
    reasons = list(triggers.reasons)
    if reuse:
        reasons.append(CARRY_OVER_REASON)

    return replace(
        base,
        xhs_listing=final["xhs"],
        tb_listing=final["tb"],
        yz_listing=final["yz"],
        allocation_changed=allocation_changed,
        total_stock_drop_only=stock_drop_only and not allocation_changed,
        needs_recalc=triggers.needs_recalc,
        reasons=reasons,
        missing_prev=triggers.missing_prev,
    )


def build_records(
    rows: Iterable[RawRecord],
    params: WeeklyParams,
    previous: Optional[ProcessedOutput] = None,
) -> List[AllocationResult]:
    prev_map = previous.records_by_sku() if previous is not None else {}
    return sort_records(build_record(row, params, prev_map.get(row.sku)) for row in rows)


def compute_week(
    rows: Iterable[RawRecord],
    params: WeeklyParams,
    previous: Optional[ProcessedOutput] = None,
    *,
    generated_at: Optional[str] = None,
) -> WeeklyRun:
    """Pure computation of one week's output; nothing is read or written."""
    records = build_records(rows, params, previous)
    output = ProcessedOutput(
        week_id=params.week_id,
        generated_at=generated_at or datetime.now(timezone.utc).isoformat(),
        records=records,
        thresholds=params.thresholds,
        ratios=params.ratios,
        pending_deduct=params.pending_deduct,
    )
    return WeeklyRun(
        output=output,
        baseline_missing=previous is None,
        prev_week_used=previous.week_id if previous is not None else None,
    )


def run_week(
    source: Optional[Source],
    params: WeeklyParams,
    store: WeekStore,
    *,
    filename: Optional[str] = None,
) -> WeeklyRun:
    """Parse the sheet, compare with the previous stored week, save and return the run."""
    if source is None:
        raise ParamsError("no spreadsheet selected")
    if not params.week_id or not params.year:
        raise ParamsError("week_id and year are required")

    try:
        rows = load_raw_records(source, filename=filename)
        prev_week_id = resolve_prev_week_id(params)
        previous = store.load(prev_week_id)
        run = compute_week(rows, params, previous)
        store.save(run.output)
    except (WorkbookError, StorageError) as exc:
        logger.exception("run for week %s failed", params.week_id)
        raise WeeklyRunError(str(exc)) from exc

    if run.baseline_missing:
        logger.info("no stored output for previous week %s; every SKU treated as first-time", prev_week_id)
    logger.info("week %s processed: %d SKUs", params.week_id, len(run.records))
    return run

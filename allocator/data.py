from __future__ import annotations

import io
import logging
import math
import re
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, List, Optional, Union

import pandas as pd

from allocator.records import RawRecord


logger = logging.getLogger(__name__)

# Row 0 of the weekly sheet holds loose numbers; headers live on row 1.
DEFAULT_HEADER_ROW = 1

FIELD_ALIASES: Dict[str, List[str]] = {
    "sku": ["sku", "SKU", "Sku", "货号", "sku编号"],
    "name": ["name", "名称", "商品名"],
    "year": ["年份", "year", "Year"],
    "total_stock": ["总库存", "库存", "stock", "Stock", "总量"],
    "platform_fulfillment": ["全平台代发", "全平台待发", "代发", "代发总计"],
    "xhs_pending": ["xhsPending", "小红书待发", "小红书预售", "小红书需求"],
    "tb_pending": ["tbPending", "淘宝待发", "淘宝预售", "淘宝需求"],
    "yz_pending": ["yzPending", "有赞待发", "有赞预售", "有赞需求"],
}

NUMERIC_FIELDS = ["total_stock", "platform_fulfillment", "xhs_pending", "tb_pending", "yz_pending"]

Source = Union[str, Path, bytes, BinaryIO]


class WorkbookError(ValueError):
    """Raised when the uploaded sheet cannot be read at all."""


def find_header_row(df: pd.DataFrame, keywords: Iterable[str], search_rows: int = 10) -> Optional[int]:
    wanted = {k.strip().lower() for k in keywords}
    for idx in range(min(search_rows, len(df))):
        row = {str(v).strip().lower() for v in df.iloc[idx].tolist()}
        if row & wanted:
            return idx
    return None


def drop_duplicate_columns(df: pd.DataFrame) -> pd.DataFrame:
    return df.loc[:, ~df.columns.duplicated()]


def normalize_sku(value: object) -> Optional[str]:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    s = str(value).strip()
    if not s or s.lower() in {"nan", "none", "null", "<na>", "na", "n/a"}:
        return None
    # Excel hands back numeric SKUs as floats.
    if isinstance(value, float) and value.is_integer():
        s = str(int(value))
    return s


def coerce_number(value: object) -> float:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return 0
    try:
        num = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
    if math.isnan(num) or math.isinf(num):
        return 0
    return int(num) if num.is_integer() else num


def parse_year(value: object) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return None if pd.isna(value) else int(value)
    match = re.search(r"\d{2,4}", str(value))
    return int(match.group(0)) if match else None


def resolve_columns(columns: Iterable[str]) -> Dict[str, str]:
    present = list(columns)
    resolved: Dict[str, str] = {}
    for field_name, aliases in FIELD_ALIASES.items():
        col = next((a for a in aliases if a in present), None)
        if col is not None:
            resolved[field_name] = col
    return resolved


def _read_raw(source: Source, filename: Optional[str]) -> pd.DataFrame:
    name = filename or (str(source) if isinstance(source, (str, Path)) else "")
    handle = io.BytesIO(source) if isinstance(source, bytes) else source
    if name.lower().endswith(".csv"):
        return pd.read_csv(handle, header=None, dtype=object)
    return pd.read_excel(handle, sheet_name=0, header=None, dtype=object, engine="openpyxl")


def read_sheet(source: Source, *, filename: Optional[str] = None, header_row: int = DEFAULT_HEADER_ROW) -> pd.DataFrame:
    """Read the first sheet and return it with the alias header applied."""
    try:
        raw = _read_raw(source, filename)
    except Exception as exc:
        raise WorkbookError(f"无法读取表格: {exc}") from exc
    if raw.empty:
        return pd.DataFrame()

    sku_aliases = FIELD_ALIASES["sku"]
    if header_row < len(raw) and find_header_row(raw.iloc[[header_row]], sku_aliases) == 0:
        found = header_row
    else:
        found = find_header_row(raw, sku_aliases)
        if found is None:
            found = min(header_row, len(raw) - 1)
    if found != header_row:
        logger.info("header row resolved to %s instead of %s", found, header_row)

    header = [str(c).strip() if not pd.isna(c) else f"unnamed_{i}" for i, c in enumerate(raw.iloc[found].tolist())]
    df = raw.iloc[found + 1:].copy()
    df.columns = header
    return drop_duplicate_columns(df).reset_index(drop=True)


def normalize_row(row: Dict[str, object], columns: Dict[str, str]) -> Optional[RawRecord]:
    def pick(field_name: str) -> object:
        col = columns.get(field_name)
        return row.get(col) if col is not None else None

    sku = normalize_sku(pick("sku"))
    if not sku:
        return None
    name = pick("name")
    return RawRecord(
        sku=sku,
        name="" if name is None or (not isinstance(name, str) and pd.isna(name)) else str(name).strip(),
        year=parse_year(pick("year")),
        **{f: coerce_number(pick(f)) for f in NUMERIC_FIELDS},
    )


def records_from_frame(df: pd.DataFrame) -> List[RawRecord]:
    if df.empty and len(df.columns) == 0:
        return []
    columns = resolve_columns(df.columns)
    if "sku" not in columns:
        raise WorkbookError("表格缺少 SKU 列")
    missing = [f for f in NUMERIC_FIELDS if f not in columns]
    if missing:
        logger.warning("columns not found, treated as 0: %s", ", ".join(missing))

    records: List[RawRecord] = []
    seen = set()
    dropped = 0
    for row in df.to_dict(orient="records"):
        record = normalize_row(row, columns)
        if record is None:
            dropped += 1
            continue
        if record.sku in seen:
            logger.warning("duplicate SKU %s ignored", record.sku)
            continue
        seen.add(record.sku)
        records.append(record)
    if dropped:
        logger.debug("dropped %d rows without SKU", dropped)
    return records


def load_raw_records(source: Source, *, filename: Optional[str] = None, header_row: int = DEFAULT_HEADER_ROW) -> List[RawRecord]:
    return records_from_frame(read_sheet(source, filename=filename, header_row=header_row))

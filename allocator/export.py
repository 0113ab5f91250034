from __future__ import annotations

import io
import json
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import pandas as pd
from openpyxl.styles import Alignment, Font, PatternFill

from allocator.records import AllocationResult
from allocator.sku import build_style_group_key


@dataclass(frozen=True)
class ExportColumn:
    key: str
    label: str
    get: Callable[[AllocationResult], object]


def _col(key: str, label: Optional[str] = None, get: Optional[Callable[[AllocationResult], object]] = None) -> ExportColumn:
    return ExportColumn(key=key, label=label or key, get=get or (lambda r, k=key: getattr(r, k)))


def _year(r: AllocationResult) -> object:
    return r.year if r.year is not None else ""


def _reasons(r: AllocationResult) -> str:
    return "; ".join(r.reasons)


DEFAULT_COLUMNS: List[ExportColumn] = [
    _col("sku", "SKU"),
    _col("name", "名称"),
    _col("year", "年份", _year),
    _col("total_stock", "总库存"),
    _col("platform_fulfillment", "平台履约"),
    _col("real_stock", "真实库存"),
    _col("xhs_pending", "小红书待发"),
    _col("tb_pending", "淘宝待发"),
    _col("yz_pending", "有赞待发"),
    _col("allocatable", "可分配库存"),
    _col("xhs_listing", "小红书"),
    _col("tb_listing", "淘宝"),
    _col("yz_listing", "有赞"),
    _col("low_stock", "低库存"),
    _col("needs_recalc", "需要重算"),
    _col("reasons", "原因", _reasons),
]

REALLOCATION_BASE_COLUMNS: List[ExportColumn] = [
    _col("sku"),
    _col("name"),
    _col("year", get=_year),
    _col("allocatable"),
    _col("xhs_listing"),
    _col("tb_listing"),
    _col("yz_listing"),
    _col("low_stock"),
    _col("reasons", get=_reasons),
]

REALLOCATION_STOCK_COLUMNS: List[ExportColumn] = REALLOCATION_BASE_COLUMNS + [
    _col("total_stock"),
    _col("platform_fulfillment"),
    _col("real_stock"),
    _col("xhs_pending"),
    _col("tb_pending"),
    _col("yz_pending"),
]

HEADER_FILL = PatternFill(patternType="solid", fgColor="F1F5F9")
ROW_FILLS: Dict[str, PatternFill] = {
    "negative": PatternFill(patternType="solid", fgColor="EDE9FE"),
    "changed": PatternFill(patternType="solid", fgColor="CFFAFE"),
    "drop": PatternFill(patternType="solid", fgColor="FFEDD5"),
    "low": PatternFill(patternType="solid", fgColor="FEE2E2"),
    "recalc": PatternFill(patternType="solid", fgColor="DBEAFE"),
}


def row_highlight(record: AllocationResult) -> Optional[str]:
    if record.oversold:
        return "negative"
    if record.allocation_changed:
        return "changed"
    if record.total_stock_drop_only:
        return "drop"
    if record.low_stock:
        return "low"
    if record.needs_recalc:
        return "recalc"
    return None


# ---------------- Subsets ----------------
def sort_by_sku(records: Sequence[AllocationResult]) -> List[AllocationResult]:
    return sorted(records, key=lambda r: r.sku)


def low_stock_records(records: Sequence[AllocationResult]) -> List[AllocationResult]:
    return [r for r in records if r.low_stock]


def reallocation_records(records: Sequence[AllocationResult]) -> List[AllocationResult]:
    """Every record sharing a style group with at least one changed allocation."""
    keys = {build_style_group_key(r.sku, r.year) for r in records if r.allocation_changed}
    return sort_by_sku([r for r in records if build_style_group_key(r.sku, r.year) in keys])


EXPORT_SUBSETS: Dict[str, tuple] = {
    "all": (lambda rs: list(rs), None, "processed"),
    "low_stock": (low_stock_records, None, "low_stock"),
    "reallocation": (reallocation_records, REALLOCATION_BASE_COLUMNS, "reallocated"),
    "reallocation_with_stock": (reallocation_records, REALLOCATION_STOCK_COLUMNS, "reallocated_with_stock"),
}


# ---------------- Renderers ----------------
def to_frame(records: Sequence[AllocationResult], columns: Optional[Sequence[ExportColumn]] = None) -> pd.DataFrame:
    active = list(columns) if columns else DEFAULT_COLUMNS
    rows = [[c.get(r) for c in active] for r in records]
    return pd.DataFrame(rows, columns=[c.label for c in active])


def to_json(records: Sequence[AllocationResult], columns: Optional[Sequence[ExportColumn]] = None) -> str:
    if columns:
        payload = [{c.key: c.get(r) for c in columns} for r in records]
    else:
        payload = [r.to_dict() for r in records]
    return json.dumps(payload, ensure_ascii=False, indent=2)


def to_csv(records: Sequence[AllocationResult], columns: Optional[Sequence[ExportColumn]] = None) -> bytes:
    # BOM so Excel opens the Chinese headers correctly
    return to_frame(records, columns).to_csv(index=False).encode("utf-8-sig")


def to_xlsx(records: Sequence[AllocationResult], columns: Optional[Sequence[ExportColumn]] = None) -> bytes:
    df = to_frame(records, columns)
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name="Export", index=False)
        ws = writer.sheets["Export"]
        for cell in ws[1]:
            cell.font = Font(bold=True)
            cell.fill = HEADER_FILL
            cell.alignment = Alignment(vertical="center")
        for offset, record in enumerate(records, start=2):
            style = row_highlight(record)
            if style is None:
                continue
            for cell in ws[offset]:
                cell.fill = ROW_FILLS[style]
    return buffer.getvalue()


MEDIA_TYPES = {
    "json": "application/json",
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
RENDERERS = {"json": lambda rs, cols: to_json(rs, cols).encode("utf-8"), "csv": to_csv, "xlsx": to_xlsx}


def export_records(
    records: Sequence[AllocationResult],
    *,
    fmt: str,
    subset: str = "all",
    week_id: str = "",
) -> tuple:
    """Return ``(payload_bytes, filename, media_type)`` for one export button."""
    if fmt not in RENDERERS:
        raise ValueError(f"unsupported export format {fmt!r}")
    if subset not in EXPORT_SUBSETS:
        raise ValueError(f"unknown export subset {subset!r}")
    pick, columns, prefix = EXPORT_SUBSETS[subset]
    chosen = pick(records)
    filename = f"{prefix}_{week_id}.{fmt}" if week_id else f"{prefix}.{fmt}"
    return RENDERERS[fmt](chosen, columns), filename, MEDIA_TYPES[fmt]

import math

import pytest

from allocator.data import (
    WorkbookError,
    coerce_number,
    load_raw_records,
    normalize_sku,
    parse_year,
    resolve_columns,
)
from tests.conftest import write_sheet


@pytest.mark.parametrize(
    "value,expected",
    [(None, 0), ("", 0), ("  ", 0), ("abc", 0), ("12", 12), (" 1,200 ", 1200), (3.0, 3), (2.5, 2.5), (math.nan, 0), (True, 0)],
)
def test_coerce_number(value, expected):
    result = coerce_number(value)
    assert result == expected
    assert not (isinstance(result, float) and math.isnan(result))


@pytest.mark.parametrize(
    "value,expected",
    [("2025年", 2025), ("FW25", 25), (2024.0, 2024), (None, None), ("", None), ("n/a", None), (math.nan, None)],
)
def test_parse_year(value, expected):
    assert parse_year(value) == expected


def test_normalize_sku():
    assert normalize_sku("  A1 ") == "A1"
    assert normalize_sku(12345.0) == "12345"
    assert normalize_sku(math.nan) is None
    assert normalize_sku("none") is None


def test_resolve_columns_prefers_first_alias():
    cols = resolve_columns(["库存", "总库存", "货号", "代发"])
    assert cols["total_stock"] == "总库存"
    assert cols["sku"] == "货号"
    assert cols["platform_fulfillment"] == "代发"
    assert "xhs_pending" not in cols


def test_load_sheet_skips_loose_first_row(tmp_path):
    path = write_sheet(
        tmp_path / "in_stock.xlsx",
        [
            ["A25123XY01", "Tee", "2025年", 100, 20, 1, 2, 3],
            ["", "no sku", 2025, 5, 0, 0, 0, 0],
            ["B24001AA01", "Cap", 2024, "n/a", "", 0, 0, 0],
            ["A25123XY01", "dup", 2025, 1, 1, 1, 1, 1],
        ],
    )
    records = load_raw_records(path)
    assert [r.sku for r in records] == ["A25123XY01", "B24001AA01"]
    first, second = records
    assert first.year == 2025
    assert (first.total_stock, first.platform_fulfillment) == (100, 20)
    assert (first.xhs_pending, first.tb_pending, first.yz_pending) == (1, 2, 3)
    assert second.total_stock == 0
    assert second.platform_fulfillment == 0


def test_header_found_on_first_row(tmp_path):
    path = write_sheet(tmp_path / "plain.xlsx", [["S1", "x", 2025, 4, 1, 0, 0, 0]], junk_row=False)
    [rec] = load_raw_records(path)
    assert rec.sku == "S1"
    assert rec.total_stock == 4


def test_csv_source(tmp_path):
    path = tmp_path / "week.csv"
    path.write_text("junk,,\nsku,stock,代发\nS9,7,2\n", encoding="utf-8")
    [rec] = load_raw_records(path.read_bytes(), filename="week.csv")
    assert (rec.sku, rec.total_stock, rec.platform_fulfillment) == ("S9", 7, 2)


def test_missing_sku_column_is_an_error(tmp_path):
    path = tmp_path / "nosku.csv"
    path.write_text("a,b\nfoo,1\nbar,2\n", encoding="utf-8")
    with pytest.raises(WorkbookError):
        load_raw_records(path)


def test_unreadable_workbook(tmp_path):
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"garbage")
    with pytest.raises(WorkbookError):
        load_raw_records(path)

from allocator.metrics_summary import compute_summary
from tests.conftest import make_result


def test_summary_counts_and_chart():
    records = [
        make_result(sku="A", year_group="current", real_stock=-1, allocatable=0, low_stock=True, missing_prev=True),
        make_result(sku="B", year_group="previous", real_stock=10, allocatable=10, xhs_listing=7, tb_listing=2, yz_listing=1,
                    allocation_changed=True, needs_recalc=True),
        make_result(sku="C", year_group="other", real_stock=3, allocatable=3, xhs_listing=1, tb_listing=1, yz_listing=1),
    ]
    full = compute_summary(records)
    assert full["kpis"]["total"] == 3
    assert full["kpis"]["oversold"] == 1
    assert full["kpis"]["low_stock"] == 1
    assert full["kpis"]["allocation_changed"] == 1
    assert full["kpis"]["missing_prev"] == 1
    assert full["listing_sums"] == {"allocatable": 13, "xhs": 8, "tb": 3, "yz": 2}
    assert full["charts"]["listings_by_platform"]["mark"]["type"] == "bar"

    hidden = compute_summary(records, include_other_years=False)
    assert hidden["kpis"]["total"] == 2
    assert hidden["kpis"]["hidden_other_years"] == 1
    assert compute_summary([])["charts"]["listings_by_platform"] is None

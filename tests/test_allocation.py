import pytest

from allocator.allocation import (
    allocate_listings,
    compute_allocatable,
    compute_real_stock,
    detect_triggers,
    normalize_ratios,
)
from allocator.params import AllocationRatios, PendingDeductConfig, Thresholds
from tests.conftest import make_raw, make_result


RATIO_CASES = [
    AllocationRatios(),
    AllocationRatios(70, 20, 10),
    AllocationRatios(1, 1, 1),
    AllocationRatios(1, 0, 0),
    AllocationRatios(0.05, 0.9, 0.05),
    AllocationRatios(0, 0, 0),
]


def test_real_stock_is_unclamped():
    assert compute_real_stock(100, 20) == 80
    assert compute_real_stock(10, 12) == -2


@pytest.mark.parametrize(
    "strategy,fields,expected",
    [
        ("all", (), 6),
        ("none", (), 10),
        ("custom", ("xhs", "yz"), 7),
        ("custom", (), 10),
        ("custom", ("bogus",), 10),
    ],
)
def test_allocatable_pending_strategies(strategy, fields, expected):
    row = make_raw(xhs_pending=2, tb_pending=1, yz_pending=1)
    cfg = PendingDeductConfig(strategy=strategy, custom_fields=fields)
    assert compute_allocatable(10, row, cfg) == expected


def test_allocatable_never_negative():
    row = make_raw(xhs_pending=5)
    assert compute_allocatable(3, row, PendingDeductConfig()) == 0
    assert compute_allocatable(-4, make_raw(), PendingDeductConfig(strategy="none")) == 0


def test_normalize_ratios_percentages_and_fractions_agree():
    pct = normalize_ratios(AllocationRatios(70, 20, 10))
    frac = normalize_ratios(AllocationRatios(0.7, 0.2, 0.1))
    assert pct.as_tuple() == pytest.approx(frac.as_tuple())
    assert sum(pct.as_tuple()) == pytest.approx(1.0)


def test_normalize_ratios_is_idempotent():
    once = normalize_ratios(AllocationRatios(3, 5, 2))
    twice = normalize_ratios(once)
    assert twice.as_tuple() == pytest.approx(once.as_tuple())
    assert sum(twice.as_tuple()) == pytest.approx(1.0)


def test_normalize_ratios_all_zero_stays_zero():
    assert normalize_ratios(AllocationRatios(0, 0, 0)).as_tuple() == (0, 0, 0)


@pytest.mark.parametrize(
    "units,expected",
    [(0, (0, 0, 0)), (1, (1, 0, 0)), (2, (1, 1, 0)), (-3, (0, 0, 0)), (2.5, (1, 1, 0))],
)
def test_small_quantities_fixed_split(units, expected):
    out = allocate_listings(units, AllocationRatios())
    assert (out["xhs"], out["tb"], out["yz"]) == expected


@pytest.mark.parametrize(
    "units,ratios,expected",
    [
        (80, AllocationRatios(), (56, 16, 8)),
        (10, AllocationRatios(), (7, 2, 1)),
        (9, AllocationRatios(), (6, 2, 1)),
        (3, AllocationRatios(), (1, 1, 1)),
        (4, AllocationRatios(), (2, 1, 1)),
        (4, AllocationRatios(1, 1, 1), (2, 1, 1)),
        (5, AllocationRatios(1, 1, 1), (2, 2, 1)),
        (10, AllocationRatios(1, 0, 0), (8, 1, 1)),
        (10, AllocationRatios(0, 0, 0), (4, 3, 3)),
    ],
)
def test_allocate_listings_examples(units, ratios, expected):
    out = allocate_listings(units, ratios)
    assert (out["xhs"], out["tb"], out["yz"]) == expected


@pytest.mark.parametrize("ratios", RATIO_CASES)
def test_allocate_listings_sums_and_minimum(ratios):
    for units in range(0, 61):
        out = allocate_listings(units, ratios)
        values = list(out.values())
        assert sum(values) == units
        assert all(isinstance(v, int) and v >= 0 for v in values)
        if units >= 3:
            assert min(values) >= 1


def test_no_previous_is_never_flagged():
    current = make_result(real_stock=0, allocatable=0)
    result = detect_triggers(current, None, Thresholds())
    assert result.needs_recalc is False
    assert result.reasons == []
    assert result.missing_prev is True


def test_large_real_stock_drop_cites_percentage():
    prev = make_result(real_stock=50, allocatable=50)
    current = make_result(total_stock=10, platform_fulfillment=8, real_stock=2, allocatable=2)
    result = detect_triggers(current, prev, Thresholds(change_threshold_percent=20))
    assert result.needs_recalc is True
    assert result.reasons[0] == "真实库存下降 96% 需要重新分配"
    assert "allocatable 由 ≥3 降为 <3，约束变化" in result.reasons
    assert not result.missing_prev


def test_drop_below_threshold_is_ignored():
    prev = make_result(real_stock=100, allocatable=100)
    current = make_result(real_stock=90, allocatable=90)
    result = detect_triggers(current, prev, Thresholds(change_threshold_percent=20))
    assert result.needs_recalc is False
    assert result.reasons == []


def test_drop_exactly_at_threshold_triggers():
    prev = make_result(real_stock=10, allocatable=10)
    current = make_result(real_stock=8, allocatable=8)
    result = detect_triggers(current, prev, Thresholds(change_threshold_percent=20))
    assert result.reasons == ["真实库存下降 20% 需要重新分配"]


def test_zero_threshold_flags_any_drop():
    prev = make_result(real_stock=100, allocatable=100)
    current = make_result(real_stock=99, allocatable=99)
    result = detect_triggers(current, prev, Thresholds(change_threshold_percent=0))
    assert result.reasons == ["真实库存下降 1% 需要重新分配"]


def test_drop_from_zero_uses_unit_denominator():
    prev = make_result(real_stock=0)
    current = make_result(real_stock=-2)
    result = detect_triggers(current, prev, Thresholds())
    assert result.reasons == ["真实库存下降 200% 需要重新分配"]


def test_pending_cleared_per_platform():
    prev = make_result(real_stock=10, allocatable=5, xhs_pending=3, yz_pending=2)
    current = make_result(real_stock=10, allocatable=5, xhs_pending=0, yz_pending=1)
    result = detect_triggers(current, prev, Thresholds())
    assert result.reasons == ["小红书 待发从 3 变为 0"]


def test_allocatable_to_zero_supersedes_boundary_reason():
    prev = make_result(real_stock=5, allocatable=5)
    current = make_result(real_stock=5, allocatable=0, xhs_pending=5)
    result = detect_triggers(current, prev, Thresholds())
    assert result.reasons == ["allocatable 从有货变为 0，原分配失效"]

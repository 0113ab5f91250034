"""Allocation engine: real stock, allocatable units, listing split and change triggers."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from allocator.params import PLATFORM_LABELS, PLATFORMS, AllocationRatios, PendingDeductConfig, Thresholds
from allocator.records import AllocationResult, RawRecord


@dataclass(frozen=True)
class TriggerResult:
    needs_recalc: bool
    reasons: List[str] = field(default_factory=list)
    missing_prev: Optional[bool] = None


def round_half_up(value: float, ndigits: int = 0) -> float:
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def compute_real_stock(total_stock: float, platform_fulfillment: float) -> float:
    # Unclamped: a negative value marks an oversold SKU.
    return total_stock - platform_fulfillment


def compute_allocatable(real_stock: float, record: RawRecord, pending_deduct: PendingDeductConfig) -> float:
    deduction = 0.0
    if pending_deduct.strategy == "all":
        deduction = sum(record.pending(p) for p in PLATFORMS)
    elif pending_deduct.strategy == "custom":
        deduction = sum(record.pending(p) for p in pending_deduct.custom_fields if p in PLATFORMS)
    return max(0, real_stock - deduction)


def normalize_ratios(ratios: AllocationRatios) -> AllocationRatios:
    values = ratios.as_tuple()
    if any(v > 1 for v in values):
        values = tuple(v / 100 for v in values)
    total = sum(values) or 1
    xhs, tb, yz = (v / total for v in values)
    return AllocationRatios(xhs=xhs, tb=tb, yz=yz)


def allocate_listings(allocatable: float, ratios: AllocationRatios) -> Dict[str, int]:
    """Split ``allocatable`` units over the three platforms.

    Below three units the split is fixed (xhs first, then tb). From three units on
    the ratio split uses largest-remainder apportionment, ties kept in platform
    order, and every platform is then guaranteed at least one unit.
    """
    units = int(math.floor(allocatable)) if allocatable > 0 else 0
    if units <= 0:
        return {"xhs": 0, "tb": 0, "yz": 0}
    if units == 1:
        return {"xhs": 1, "tb": 0, "yz": 0}
    if units == 2:
        return {"xhs": 1, "tb": 1, "yz": 0}

    normalized = normalize_ratios(ratios)
    targets = {p: units * getattr(normalized, p) for p in PLATFORMS}
    allocations = {p: int(math.floor(targets[p])) for p in PLATFORMS}
    remainder = units - sum(allocations.values())

    # sorted() is stable, so equal fractions keep xhs, tb, yz order
    by_fraction = sorted(PLATFORMS, key=lambda p: targets[p] - allocations[p], reverse=True)
    i = 0
    while remainder > 0:
        allocations[by_fraction[i % len(by_fraction)]] += 1
        remainder -= 1
        i += 1

    for p in PLATFORMS:
        if allocations[p] < 1:
            donor = next((k for k in PLATFORMS if allocations[k] > 1), None)
            if donor is not None:
                allocations[donor] -= 1
                allocations[p] += 1
    return allocations


def detect_triggers(
    current: AllocationResult,
    previous: Optional[AllocationResult],
    thresholds: Thresholds,
) -> TriggerResult:
    if previous is None:
        return TriggerResult(needs_recalc=False, reasons=[], missing_prev=True)

    reasons: List[str] = []
    if current.real_stock < previous.real_stock:
        base = max(1, previous.real_stock)
        drop = (previous.real_stock - current.real_stock) / base
        if (previous.real_stock - current.real_stock) * 100 >= thresholds.change_threshold_percent * base:
            reasons.append(f"真实库存下降 {round_half_up(drop * 100):.0f}% 需要重新分配")

    for p in PLATFORMS:
        prev_pending = previous.pending(p)
        if prev_pending > 0 and current.pending(p) == 0:
            reasons.append(f"{PLATFORM_LABELS[p]} 待发从 {_fmt(prev_pending)} 变为 0")

    if previous.allocatable > 0 and current.allocatable == 0:
        reasons.append("allocatable 从有货变为 0，原分配失效")
    elif previous.allocatable >= 3 and current.allocatable < 3:
        reasons.append("allocatable 由 ≥3 降为 <3，约束变化")

    return TriggerResult(needs_recalc=bool(reasons), reasons=reasons)


def _fmt(value: float) -> str:
    return f"{value:g}"

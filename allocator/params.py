from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Tuple


STORE_FILENAME = "weekly_outputs.json"


def default_store_path(env: Optional[Mapping[str, str]] = None) -> Path:
    """``STOCK_ALLOCATOR_STORE`` if set, else ``weekly_outputs.json`` in the working directory."""
    env = os.environ if env is None else env
    override = (env.get("STOCK_ALLOCATOR_STORE") or "").strip()
    return Path(override) if override else Path.cwd() / STORE_FILENAME


STORE_PATH = default_store_path()

PLATFORMS: Tuple[str, ...] = ("xhs", "tb", "yz")
PLATFORM_LABELS = {"xhs": "小红书", "tb": "淘宝", "yz": "有赞"}
PENDING_STRATEGIES = ("all", "none", "custom")


class ParamsError(ValueError):
    """Raised when run parameters are missing or malformed."""


@dataclass(frozen=True)
class AllocationRatios:
    xhs: float = 0.7
    tb: float = 0.2
    yz: float = 0.1

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.xhs, self.tb, self.yz)


@dataclass(frozen=True)
class PendingDeductConfig:
    # all: deduct every pending figure; none: ignore pending; custom: only custom_fields
    strategy: str = "all"
    custom_fields: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Thresholds:
    low_stock_threshold: int = 2
    change_threshold_percent: float = 20.0


@dataclass(frozen=True)
class WeeklyParams:
    week_id: str
    year: str
    week_id_prev: Optional[str] = None
    ratios: AllocationRatios = field(default_factory=AllocationRatios)
    pending_deduct: PendingDeductConfig = field(default_factory=PendingDeductConfig)
    thresholds: Thresholds = field(default_factory=Thresholds)


def _as_float(value: object, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ParamsError(f"expected a number, got {value!r}") from None


def _as_platform_list(values: Optional[Iterable[object]]) -> Tuple[str, ...]:
    if not values:
        return ()
    out: List[str] = []
    for v in values:
        key = str(v).strip()
        if key in PLATFORMS and key not in out:
            out.append(key)
    return tuple(out)


def normalize_ratios_config(raw: Optional[dict]) -> AllocationRatios:
    r = raw or {}
    ratios = AllocationRatios(
        xhs=_as_float(r.get("xhs"), 0.7),
        tb=_as_float(r.get("tb"), 0.2),
        yz=_as_float(r.get("yz"), 0.1),
    )
    if any(v < 0 for v in ratios.as_tuple()):
        raise ParamsError("platform ratios must be non-negative")
    return ratios


def normalize_pending_config(raw: Optional[dict]) -> PendingDeductConfig:
    p = raw or {}
    strategy = str(p.get("strategy") or "all").strip().lower()
    if strategy not in PENDING_STRATEGIES:
        raise ParamsError(f"unknown pending-deduction strategy {strategy!r}")
    custom_fields: Tuple[str, ...] = ()
    if strategy == "custom":
        custom_fields = _as_platform_list(p.get("custom_fields"))
    return PendingDeductConfig(strategy=strategy, custom_fields=custom_fields)


def normalize_thresholds(raw: Optional[dict]) -> Thresholds:
    t = raw or {}
    low = _as_float(t.get("low_stock_threshold"), 2)
    change = _as_float(t.get("change_threshold_percent"), 20.0)
    if low < 0 or change < 0:
        raise ParamsError("thresholds must be non-negative")
    return Thresholds(low_stock_threshold=int(low), change_threshold_percent=change)


def normalize_params(raw: dict) -> WeeklyParams:
    """Coerce loose form / JSON input into a validated ``WeeklyParams``."""
    week_id = str(raw.get("week_id") or "").strip()
    year = str(raw.get("year") or "").strip()
    if not week_id or not year:
        raise ParamsError("week_id and year are required")
    week_id_prev = str(raw.get("week_id_prev") or "").strip() or None
    return WeeklyParams(
        week_id=week_id,
        year=year,
        week_id_prev=week_id_prev,
        ratios=normalize_ratios_config(raw.get("ratios")),
        pending_deduct=normalize_pending_config(raw.get("pending_deduct")),
        thresholds=normalize_thresholds(raw.get("thresholds")),
    )


def resolve_prev_week_id(params: WeeklyParams) -> Optional[str]:
    if params.week_id_prev:
        return params.week_id_prev
    if params.week_id.isdigit():
        return str(int(params.week_id) - 1)
    return None

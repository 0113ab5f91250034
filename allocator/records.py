from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

from allocator.params import AllocationRatios, PendingDeductConfig, Thresholds


@dataclass(frozen=True)
class RawRecord:
    sku: str
    name: str = ""
    year: Optional[int] = None
    total_stock: float = 0
    platform_fulfillment: float = 0
    xhs_pending: float = 0
    tb_pending: float = 0
    yz_pending: float = 0

    def pending(self, platform: str) -> float:
        return getattr(self, f"{platform}_pending", 0) or 0


@dataclass(frozen=True)
class PrevSnapshot:
    total_stock: float
    platform_fulfillment: float
    real_stock: float
    allocatable: float
    xhs_listing: int
    tb_listing: int
    yz_listing: int


@dataclass(frozen=True)
class AllocationResult(RawRecord):
    real_stock: float = 0
    allocatable: float = 0
    xhs_listing: int = 0
    tb_listing: int = 0
    yz_listing: int = 0
    year_group: str = "other"
    allocation_changed: bool = False
    total_stock_drop_only: bool = False
    low_stock: bool = False
    needs_recalc: bool = False
    reasons: List[str] = field(default_factory=list)
    missing_prev: Optional[bool] = None
    prev_snapshot: Optional[PrevSnapshot] = None

    @property
    def oversold(self) -> bool:
        return self.real_stock < 0

    @property
    def listings(self) -> Dict[str, int]:
        return {"xhs": self.xhs_listing, "tb": self.tb_listing, "yz": self.yz_listing}

    @property
    def listing_sum(self) -> int:
        return self.xhs_listing + self.tb_listing + self.yz_listing

    def snapshot(self) -> PrevSnapshot:
        return PrevSnapshot(
            total_stock=self.total_stock,
            platform_fulfillment=self.platform_fulfillment,
            real_stock=self.real_stock,
            allocatable=self.allocatable,
            xhs_listing=self.xhs_listing,
            tb_listing=self.tb_listing,
            yz_listing=self.yz_listing,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AllocationResult":
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in raw.items() if k in known}
        snap = data.get("prev_snapshot")
        if isinstance(snap, dict):
            data["prev_snapshot"] = PrevSnapshot(**snap)
        data["reasons"] = list(data.get("reasons") or [])
        return cls(**data)


@dataclass(frozen=True)
class ProcessedOutput:
    week_id: str
    generated_at: str
    records: List[AllocationResult]
    thresholds: Thresholds
    ratios: AllocationRatios
    pending_deduct: PendingDeductConfig

    def records_by_sku(self) -> Dict[str, AllocationResult]:
        return {r.sku: r for r in self.records}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "week_id": self.week_id,
            "generated_at": self.generated_at,
            "records": [r.to_dict() for r in self.records],
            "thresholds": asdict(self.thresholds),
            "ratios": asdict(self.ratios),
            "pending_deduct": {
                "strategy": self.pending_deduct.strategy,
                "custom_fields": list(self.pending_deduct.custom_fields),
            },
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ProcessedOutput":
        pending = raw.get("pending_deduct") or {}
        return cls(
            week_id=str(raw["week_id"]),
            generated_at=str(raw.get("generated_at", "")),
            records=[AllocationResult.from_dict(r) for r in raw.get("records", [])],
            thresholds=Thresholds(**(raw.get("thresholds") or {})),
            ratios=AllocationRatios(**(raw.get("ratios") or {})),
            pending_deduct=PendingDeductConfig(
                strategy=pending.get("strategy", "all"),
                custom_fields=tuple(pending.get("custom_fields") or ()),
            ),
        )

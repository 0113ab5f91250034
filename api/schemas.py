from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class ThresholdsModel(BaseModel):
    low_stock_threshold: int = Field(default=2, ge=0)
    change_threshold_percent: float = Field(default=20.0, ge=0)


class RatiosModel(BaseModel):
    xhs: float = Field(default=0.7, ge=0)
    tb: float = Field(default=0.2, ge=0)
    yz: float = Field(default=0.1, ge=0)


class PendingDeductModel(BaseModel):
    strategy: Literal["all", "none", "custom"] = "all"
    custom_fields: Optional[List[Literal["xhs", "tb", "yz"]]] = None


class WeeklyParamsModel(BaseModel):
    year: str
    week_id_prev: Optional[str] = None
    ratios: RatiosModel = Field(default_factory=RatiosModel)
    pending_deduct: PendingDeductModel = Field(default_factory=PendingDeductModel)
    thresholds: ThresholdsModel = Field(default_factory=ThresholdsModel)


class WeeksResponse(BaseModel):
    weeks: List[str]


class RunResponse(BaseModel):
    week_id: str
    baseline_missing: bool
    prev_week_used: Optional[str] = None
    record_count: int
    output: Dict[str, Any]

from __future__ import annotations

from typing import Any, Dict, Sequence

import pandas as pd

from allocator.charts import listings_by_platform_chart, to_vega_spec
from allocator.params import PLATFORM_LABELS, PLATFORMS
from allocator.records import AllocationResult


def compute_summary(records: Sequence[AllocationResult], *, include_other_years: bool = True) -> Dict[str, Any]:
    hidden = [r for r in records if r.year_group == "other"]
    visible = list(records) if include_other_years else [r for r in records if r.year_group != "other"]

    kpis = {
        "total": len(visible),
        "low_stock": sum(1 for r in visible if r.low_stock),
        "needs_recalc": sum(1 for r in visible if r.needs_recalc),
        "allocation_changed": sum(1 for r in visible if r.allocation_changed),
        "oversold": sum(1 for r in visible if r.oversold),
        "missing_prev": sum(1 for r in visible if r.missing_prev),
        "hidden_other_years": 0 if include_other_years else len(hidden),
    }
    listing_sums = {"allocatable": sum(r.allocatable for r in visible)}
    for p in PLATFORMS:
        listing_sums[p] = sum(getattr(r, f"{p}_listing") for r in visible)

    chart = None
    if visible:
        long_df = pd.DataFrame(
            [
                {"year_group": r.year_group, "platform": PLATFORM_LABELS[p], "units": getattr(r, f"{p}_listing")}
                for r in visible
                for p in PLATFORMS
            ]
        )
        by_group = long_df.groupby(["year_group", "platform"], as_index=False)["units"].sum()
        chart = to_vega_spec(listings_by_platform_chart(by_group))

    return {"kpis": kpis, "listing_sums": listing_sums, "charts": {"listings_by_platform": chart}}

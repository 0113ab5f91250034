from __future__ import annotations

from typing import Any, Dict

import altair as alt
import pandas as pd

from allocator.params import PLATFORM_LABELS, PLATFORMS

alt.data_transformers.disable_max_rows()

YEAR_GROUP_COLORS = {"current": "#2563eb", "previous": "#16a34a", "other": "#9ca3af"}


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def listings_by_platform_chart(by_group: pd.DataFrame) -> alt.Chart:
    """Stacked bars of listing units per platform, split by year group."""
    groups = list(YEAR_GROUP_COLORS)
    return (
        alt.Chart(by_group)
        .mark_bar()
        .encode(
            x=alt.X("platform:N", title="Platform", sort=[PLATFORM_LABELS[p] for p in PLATFORMS]),
            y=alt.Y("units:Q", title="Listing Units", axis=alt.Axis(format="~s")),
            color=alt.Color(
                "year_group:N",
                title="Year Group",
                scale=alt.Scale(domain=groups, range=[YEAR_GROUP_COLORS[g] for g in groups]),
            ),
            tooltip=["year_group", "platform", alt.Tooltip("units:Q", format=",")],
        )
    )

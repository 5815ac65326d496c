"""Summary metric components for the dashboard."""
from __future__ import annotations

from typing import Optional

import pandas as pd
import streamlit as st

from analytics.point_stats import PointStatistics

__all__ = ["render_point_summary"]


def _format_extent(low: Optional[float], high: Optional[float]) -> str:
    """Format a coordinate range for display in a Streamlit metric widget."""

    if low is None or high is None:
        return "n/a"
    return f"{low:.4f} to {high:.4f}"


def render_point_summary(stats: PointStatistics) -> None:
    """Render the headline counts and coordinate extent."""

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Rows", f"{stats.total:,}")
    col2.metric(
        "With coordinates",
        f"{stats.with_coordinates:,}",
        help="Rows whose geometry, lat/lng or location fields resolved to a point.",
    )
    col3.metric("Latitude", _format_extent(stats.min_lat, stats.max_lat))
    col4.metric("Longitude", _format_extent(stats.min_lng, stats.max_lng))

    if stats.operation_types or stats.crops:
        left, right = st.columns(2)
        if stats.operation_types:
            left.markdown("**Operation types**")
            left.dataframe(
                pd.DataFrame(
                    sorted(stats.operation_types.items(), key=lambda item: -item[1]),
                    columns=["Operation", "Points"],
                ),
                hide_index=True,
            )
        if stats.crops:
            right.markdown("**Crops**")
            right.dataframe(
                pd.DataFrame(
                    sorted(stats.crops.items(), key=lambda item: -item[1]),
                    columns=["Crop", "Points"],
                ),
                hide_index=True,
            )

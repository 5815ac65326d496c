"""Streamlit page for exploring exported Point Lake results on a map."""
from __future__ import annotations

import streamlit as st

from analytics.point_stats import NUMERIC_HEATMAP_FIELDS
from analytics.points_map import RenderTier
from dashboard.components.maps import release_map_surface, render_heatmap_legend, render_points_map
from dashboard.components.summary import render_point_summary
from dashboard.data import prepare_map_data, rows_to_frame
from pointlake.intensity import DEFAULT_FIELD, compute_intensities, intensity_frame

POINTS_DASHBOARD_TABS = ["Map", "Table", "Heatmap values"]
TABLE_PAGE_SIZE = 50

__all__ = ["POINTS_DASHBOARD_TABS", "render_points_dashboard"]


def _sidebar_inputs():
    with st.sidebar:
        st.header("Results")
        uploaded = st.file_uploader(
            "Results export",
            type=["json", "csv"],
            help="SQL or points results saved from Point Lake (JSON list, API response or CSV).",
        )
        boundary_text = st.text_area(
            "Field boundary (optional)",
            placeholder="POLYGON((lng lat, ...)) or GeoJSON Polygon",
            help="When set, points are coloured by the heatmap field inside the boundary.",
        )
        field_options = ["Auto", *NUMERIC_HEATMAP_FIELDS, DEFAULT_FIELD]
        field_choice = st.selectbox("Heatmap field", field_options, index=0)
    heatmap_field = None if field_choice == "Auto" else field_choice
    return uploaded, boundary_text, heatmap_field


def render_points_dashboard() -> None:
    """Render the results map, table and heatmap value tabs."""

    st.title("Point Lake results map")
    uploaded, boundary_text, heatmap_field = _sidebar_inputs()

    prepared = prepare_map_data(
        uploaded.name if uploaded is not None else None,
        uploaded.getvalue() if uploaded is not None else None,
        boundary_text=boundary_text,
        heatmap_field=heatmap_field,
    )
    if prepared.error:
        st.error(prepared.error)
    if prepared.payload is None:
        release_map_surface()
        st.info("Upload a results export to plot it on the map.")
        return

    render_point_summary(prepared.stats)

    map_tab, table_tab, values_tab = st.tabs(POINTS_DASHBOARD_TABS)
    with map_tab:
        result = render_points_map(prepared.payload)
        if result.tier is RenderTier.HEATMAP:
            render_heatmap_legend(prepared.heatmap_field)

    with table_tab:
        limit = st.number_input(
            "Rows to show",
            min_value=TABLE_PAGE_SIZE,
            max_value=max(TABLE_PAGE_SIZE, len(prepared.rows)),
            value=TABLE_PAGE_SIZE,
            step=TABLE_PAGE_SIZE,
        )
        st.dataframe(rows_to_frame(prepared.rows, int(limit)), hide_index=True)

    with values_tab:
        points = compute_intensities(prepared.rows, prepared.heatmap_field)
        if not points:
            st.info("No rows with coordinates to colour.")
        else:
            st.dataframe(intensity_frame(points), hide_index=True)

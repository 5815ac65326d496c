"""Reusable map components for the dashboard interfaces."""
from __future__ import annotations

from typing import Any, Optional

import streamlit as st

from analytics.map_surface import MapSurface
from analytics.points_map import PointMapRenderer, RenderResult
from pointlake.intensity import HEATMAP_PALETTE

try:
    from streamlit_folium import st_folium
except ModuleNotFoundError:  # pragma: no cover - optional dependency for the map widget
    st_folium = None  # type: ignore[assignment]

__all__ = [
    "get_map_surface",
    "release_map_surface",
    "render_points_map",
    "render_heatmap_legend",
]

_SURFACE_STATE_KEY = "pointlake_map_surfaces"
_CONTAINER_STATE_KEY = "pointlake_map_containers"


def _surfaces() -> dict:
    return st.session_state.setdefault(_SURFACE_STATE_KEY, {})


def _containers() -> set:
    return st.session_state.setdefault(_CONTAINER_STATE_KEY, set())


def get_map_surface(key: str = "points_map") -> MapSurface:
    """Return the session's open :class:`MapSurface` for ``key``, creating it once."""

    surfaces = _surfaces()
    surface: Optional[MapSurface] = surfaces.get(key)
    if surface is None or not surface.is_open:
        # Open containers are tracked per session so they are dropped with it.
        surface = MapSurface(key, containers=_containers())
        surface.open()
        surfaces[key] = surface
    return surface


def release_map_surface(key: str = "points_map") -> None:
    surface: Optional[MapSurface] = _surfaces().pop(key, None)
    if surface is not None:
        surface.close()


def render_heatmap_legend(field_label: str) -> None:
    stops = "".join(
        f"<span style='display:inline-block;width:14px;height:12px;background:{colour}'></span>"
        for colour in HEATMAP_PALETTE
    )
    st.markdown(
        f"<div style='font-size:12px'>Low {stops} High &nbsp; <b>{field_label}</b></div>",
        unsafe_allow_html=True,
    )


def render_points_map(payload: Any, *, key: str = "points_map", height: int = 520) -> RenderResult:
    """Render ``payload`` onto the session map and display it."""

    surface = get_map_surface(key)
    result = PointMapRenderer(surface).render(payload)

    if st_folium is None:
        st.warning("streamlit-folium is not installed. Run: pip install streamlit-folium")
        return result

    st_folium(surface.to_folium(), height=height, key=f"{key}_widget", returned_objects=[])

    if not result.ok:
        st.caption("The map is showing the previous data; the latest results could not be drawn.")
    elif result.tier is None:
        st.info("No rows with coordinates to plot.")
    else:
        caption = f"{result.rendered:,} point(s) rendered as {result.tier.value.replace('_', ' ')}"
        if result.skipped:
            caption += f"; {result.skipped:,} row(s) without coordinates skipped"
        st.caption(caption)
    return result

"""Tests for the session-scoped map helpers in :mod:`dashboard.components.maps`."""

from __future__ import annotations

import folium
import pytest

from analytics.map_surface import _OPEN_CONTAINERS
from analytics.points_map import RenderTier
from dashboard.components import maps


class StubStreamlit:
    """Records the Streamlit calls made by the map component."""

    def __init__(self):
        self.session_state = {}
        self.messages = []

    def warning(self, text):
        self.messages.append(("warning", text))

    def caption(self, text):
        self.messages.append(("caption", text))

    def info(self, text):
        self.messages.append(("info", text))

    def markdown(self, text, unsafe_allow_html=False):
        self.messages.append(("markdown", text))


@pytest.fixture()
def session(monkeypatch):
    stub = StubStreamlit()
    monkeypatch.setattr(maps, "st", stub)
    yield stub
    for key in list(stub.session_state.get("pointlake_map_surfaces", {})):
        maps.release_map_surface(key)


@pytest.fixture()
def widget_calls(monkeypatch):
    calls = []

    def fake_st_folium(fmap, *, height, key, returned_objects):
        calls.append((fmap, height, key, returned_objects))

    monkeypatch.setattr(maps, "st_folium", fake_st_folium)
    return calls


def test_get_map_surface_reuses_the_session_surface(session):
    first = maps.get_map_surface()
    second = maps.get_map_surface()

    assert first is second
    assert first.is_open
    assert session.session_state["pointlake_map_containers"] == {"points_map"}
    assert "points_map" not in _OPEN_CONTAINERS


def test_sessions_do_not_share_containers(session, monkeypatch):
    first = maps.get_map_surface()
    other_session = StubStreamlit()
    monkeypatch.setattr(maps, "st", other_session)

    second = maps.get_map_surface()

    assert second is not first
    assert second.is_open
    maps.release_map_surface()
    monkeypatch.setattr(maps, "st", session)


def test_release_map_surface_closes_and_forgets(session):
    surface = maps.get_map_surface()

    maps.release_map_surface()

    assert not surface.is_open
    assert session.session_state["pointlake_map_surfaces"] == {}
    assert session.session_state["pointlake_map_containers"] == set()
    maps.release_map_surface()
    assert maps.get_map_surface() is not surface


def test_render_points_map_displays_the_surface(session, widget_calls):
    result = maps.render_points_map([{"lat": -23.5, "lng": -46.6}], key="results", height=400)

    assert result.tier is RenderTier.SINGLE
    ((fmap, height, key, returned_objects),) = widget_calls
    assert isinstance(fmap, folium.Map)
    assert (height, key, returned_objects) == (400, "results_widget", [])
    assert ("caption", "1 point(s) rendered as single") in session.messages


def test_render_points_map_reports_empty_results(session, widget_calls):
    result = maps.render_points_map([{"name": "nowhere"}])

    assert result.tier is None
    assert ("info", "No rows with coordinates to plot.") in session.messages


def test_render_points_map_without_widget_warns(session, monkeypatch):
    monkeypatch.setattr(maps, "st_folium", None)

    result = maps.render_points_map([{"lat": 1.0, "lng": 2.0}])

    assert result.ok
    assert session.messages[0][0] == "warning"


def test_render_heatmap_legend_lists_palette(session):
    maps.render_heatmap_legend("appliedRate")

    ((kind, text),) = session.messages
    assert kind == "markdown"
    assert "appliedRate" in text
    assert text.count("<span") == 20

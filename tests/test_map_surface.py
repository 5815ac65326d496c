"""Tests for the map surface lifecycle and viewport helpers."""

from __future__ import annotations

import folium
import pytest
from folium.map import FitBounds

from analytics.map_surface import (
    BOUNDARY_GROUP,
    POINTS_GROUP,
    MapSurface,
    MapSurfaceError,
    bounds_of,
    map_surface_scope,
    pad_bounds,
)
from pointlake.settings import MapSettings


def test_bounds_of_ignores_bad_points():
    bounds = bounds_of([(1.0, 2.0), None, ("x", 1.0), (3.0, -4.0), (2.0,)])

    assert bounds == [[1.0, -4.0], [3.0, 2.0]]
    assert bounds_of([]) is None


def test_pad_bounds_extends_each_side():
    padded = pad_bounds([[0.0, 10.0], [10.0, 30.0]], 0.1)

    assert padded == [[pytest.approx(-1.0), pytest.approx(8.0)], [pytest.approx(11.0), pytest.approx(32.0)]]


def test_open_twice_is_a_no_op():
    surface = MapSurface("surface-open-twice")
    try:
        assert surface.open() is surface
        assert surface.open() is surface
        assert surface.is_open
    finally:
        surface.close()


def test_second_surface_on_same_container_is_rejected():
    with map_surface_scope("surface-shared-container"):
        other = MapSurface("surface-shared-container")
        with pytest.raises(MapSurfaceError):
            other.open()
        assert not other.is_open


def test_close_releases_container_and_artifacts():
    surface = MapSurface("surface-close")
    surface.open()
    surface.add_artifact(folium.Marker([0, 0]))
    surface.fit_bounds([(0.0, 0.0), (1.0, 1.0)])

    surface.close()

    assert not surface.is_open
    assert surface.artifacts() == []
    assert surface.bounds is None
    with MapSurface("surface-close") as reopened:
        assert reopened.is_open


def test_closed_surface_rejects_use():
    surface = MapSurface("surface-closed")

    with pytest.raises(MapSurfaceError):
        surface.add_artifact(folium.Marker([0, 0]))
    with pytest.raises(MapSurfaceError):
        surface.to_folium()


def test_artifact_groups_are_tracked_separately():
    with map_surface_scope("surface-groups") as surface:
        outline = surface.add_artifact(folium.Polygon([[0, 0], [0, 1], [1, 1]]), group=BOUNDARY_GROUP)
        surface.add_artifact(folium.Marker([0, 0]))
        surface.add_artifact(folium.Marker([1, 1]))

        assert surface.remove_all_tracked_artifacts(POINTS_GROUP) == 2
        assert surface.artifacts() == [outline]
        with pytest.raises(ValueError):
            surface.add_artifact(folium.Marker([0, 0]), group="labels")


def test_fit_bounds_pads_and_reset_view_clears():
    with map_surface_scope("surface-fit") as surface:
        bounds = surface.fit_bounds([(0.0, 0.0), (10.0, 10.0)])

        assert bounds == [[-1.0, -1.0], [11.0, 11.0]]
        surface.reset_view()
        assert surface.bounds is None


def test_to_folium_composes_layers():
    settings = MapSettings(center=(1.0, 2.0), zoom=5)
    with map_surface_scope("surface-folium", settings) as surface:
        surface.add_artifact(folium.Marker([1.0, 2.0]))
        surface.fit_bounds([(1.0, 2.0), (1.5, 2.5)])

        fmap = surface.to_folium()

    children = list(fmap._children.values())
    tile_names = [child.layer_name for child in children if isinstance(child, folium.TileLayer)]
    assert tile_names == ["Street", "Satellite"]
    assert any(isinstance(child, folium.Marker) for child in children)
    assert any(isinstance(child, folium.LayerControl) for child in children)
    assert any(isinstance(child, FitBounds) for child in children)
    assert list(fmap.location) == [1.0, 2.0]


def test_save_writes_html(tmp_path):
    out = tmp_path / "map.html"
    with map_surface_scope("surface-save") as surface:
        surface.save(str(out))

    assert "leaflet" in out.read_text(encoding="utf-8").lower()


def test_private_container_set_is_used_and_emptied():
    containers = set()
    surface = MapSurface("surface-private", containers=containers)

    surface.open()
    assert containers == {"surface-private"}
    with pytest.raises(MapSurfaceError):
        MapSurface("surface-private", containers=containers).open()
    with MapSurface("surface-private") as shared:
        assert shared.is_open

    surface.close()
    assert containers == set()

"""Folium map surface shared by the point and boundary renderers."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, MutableSet, Sequence, Set

import folium

from pointlake.settings import (
    SATELLITE_ATTRIBUTION,
    STREET_ATTRIBUTION,
    MapSettings,
    load_settings,
)

logger = logging.getLogger(__name__)

POINTS_GROUP = "points"
BOUNDARY_GROUP = "boundary"
ARTIFACT_GROUPS = (BOUNDARY_GROUP, POINTS_GROUP)

DEFAULT_PADDING = 0.1
FIT_MAX_ZOOM = 18

Bounds = List[List[float]]

_OPEN_CONTAINERS: Set[str] = set()


class MapSurfaceError(RuntimeError):
    """Raised when the map surface is used outside its open/close lifecycle."""


def bounds_of(points: Sequence[Sequence[float]]) -> Optional[Bounds]:
    """Return ``[[south, west], [north, east]]`` for ``(lat, lng)`` pairs."""

    lats: List[float] = []
    lngs: List[float] = []
    for point in points:
        if point is None or len(point) < 2:
            continue
        try:
            lat = float(point[0])
            lng = float(point[1])
        except (TypeError, ValueError):
            continue
        lats.append(lat)
        lngs.append(lng)
    if not lats:
        return None
    return [[min(lats), min(lngs)], [max(lats), max(lngs)]]


def pad_bounds(bounds: Bounds, ratio: float) -> Bounds:
    """Extend ``bounds`` by ``ratio`` of its span on every side."""

    (south, west), (north, east) = bounds
    lat_buffer = abs(north - south) * ratio
    lng_buffer = abs(east - west) * ratio
    return [[south - lat_buffer, west - lng_buffer], [north + lat_buffer, east + lng_buffer]]


class MapSurface:
    """Owns the base layers, the viewport and the overlays currently on the map.

    Overlays ("artifacts") are tracked in two groups: ``"points"`` for the
    current data render and ``"boundary"`` for field outlines, so a new point
    render can replace its predecessor without touching a pinned boundary.
    """

    def __init__(
        self,
        container_id: str = "pointlake-map",
        settings: Optional[MapSettings] = None,
        *,
        containers: Optional[MutableSet[str]] = None,
    ):
        self.container_id = container_id
        self.settings = settings or load_settings()
        # Container ids held open in this scope; process-wide unless a caller passes its own set.
        self._containers = _OPEN_CONTAINERS if containers is None else containers
        self._artifacts: Dict[str, List[Any]] = {group: [] for group in ARTIFACT_GROUPS}
        self._base_layers: List[folium.TileLayer] = []
        self._layer_control: Optional[folium.LayerControl] = None
        self._bounds: Optional[Bounds] = None
        self._map: Optional[folium.Map] = None
        self._open = False

    def __enter__(self) -> "MapSurface":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def bounds(self) -> Optional[Bounds]:
        return self._bounds

    def open(self) -> "MapSurface":
        """Create the base layers. Calling ``open`` again is a no-op."""

        if self._open:
            logger.debug("Map surface %s already initialised", self.container_id)
            return self
        if self.container_id in self._containers:
            raise MapSurfaceError(f"Container {self.container_id!r} already has a map instance")

        self._containers.add(self.container_id)
        try:
            self._base_layers = [
                folium.TileLayer(
                    tiles=self.settings.street_tiles,
                    attr=STREET_ATTRIBUTION,
                    name="Street",
                    overlay=False,
                    control=True,
                    show=True,
                ),
                folium.TileLayer(
                    tiles=self.settings.satellite_tiles,
                    attr=SATELLITE_ATTRIBUTION,
                    name="Satellite",
                    overlay=False,
                    control=True,
                    show=False,
                ),
            ]
            self._layer_control = folium.LayerControl(collapsed=True)
        except Exception:
            self._containers.discard(self.container_id)
            self._base_layers = []
            self._layer_control = None
            raise

        self._open = True
        logger.debug("Map surface %s initialised", self.container_id)
        return self

    def close(self) -> None:
        """Remove every layer and control and release the container."""

        if not self._open:
            return
        self.remove_all_tracked_artifacts()
        self._base_layers = []
        self._layer_control = None
        self._bounds = None
        self._map = None
        self._open = False
        self._containers.discard(self.container_id)
        logger.debug("Map surface %s released", self.container_id)

    def _require_open(self) -> None:
        if not self._open:
            raise MapSurfaceError(f"Map surface {self.container_id!r} is not initialised")

    def add_artifact(self, artifact: Any, *, group: str = POINTS_GROUP) -> Any:
        self._require_open()
        if group not in self._artifacts:
            raise ValueError(f"Unknown artifact group: {group}")
        self._artifacts[group].append(artifact)
        return artifact

    def remove_all_tracked_artifacts(self, group: Optional[str] = None) -> int:
        """Drop tracked artifacts (of ``group`` or of every group); return how many."""

        groups = ARTIFACT_GROUPS if group is None else (group,)
        removed = 0
        for name in groups:
            removed += len(self._artifacts.get(name, []))
            self._artifacts[name] = []
        if removed:
            logger.debug("Removed %d artifact(s) from %s", removed, self.container_id)
        return removed

    def artifacts(self, group: Optional[str] = None) -> List[Any]:
        if group is not None:
            return list(self._artifacts.get(group, []))
        return [artifact for name in ARTIFACT_GROUPS for artifact in self._artifacts[name]]

    def fit_bounds(self, points: Sequence[Sequence[float]], padding: float = DEFAULT_PADDING) -> Optional[Bounds]:
        """Fit the viewport around ``points`` (corner pairs of a bounds work too)."""

        self._require_open()
        bounds = bounds_of(points)
        if bounds is None:
            return None
        self._bounds = pad_bounds(bounds, padding) if padding else bounds
        return self._bounds

    def set_bounds(self, bounds: Optional[Bounds]) -> None:
        """Set the viewport to ``bounds`` as given (``None`` restores the default view)."""

        self._require_open()
        self._bounds = bounds

    def reset_view(self) -> None:
        self.set_bounds(None)

    def to_folium(self) -> folium.Map:
        """Compose the current state into a ``folium.Map``."""

        self._require_open()
        fmap = folium.Map(
            location=list(self.settings.center),
            zoom_start=self.settings.zoom,
            tiles=None,
            prefer_canvas=True,
            control_scale=True,
        )
        for layer in self._base_layers:
            layer.add_to(fmap)
        for artifact in self.artifacts():
            artifact.add_to(fmap)
        if self._layer_control is not None:
            self._layer_control.add_to(fmap)
        if self._bounds is not None:
            fmap.fit_bounds(self._bounds, max_zoom=FIT_MAX_ZOOM)
        self._map = fmap
        return fmap

    def save(self, path: str) -> None:
        self.to_folium().save(path)


@contextmanager
def map_surface_scope(
    container_id: str = "pointlake-map",
    settings: Optional[MapSettings] = None,
) -> Iterator[MapSurface]:
    """Context manager that yields an open :class:`MapSurface` and closes it afterwards."""

    surface = MapSurface(container_id, settings)
    surface.open()
    try:
        yield surface
    finally:
        surface.close()

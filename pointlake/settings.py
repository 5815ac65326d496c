"""Runtime settings for the Point Lake map components."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

# São Paulo, the historical default viewport for Point Lake dashboards.
DEFAULT_CENTER: Tuple[float, float] = (-23.5505, -46.6333)
DEFAULT_ZOOM = 3

STREET_TILES_DEFAULT = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
STREET_ATTRIBUTION = "© OpenStreetMap contributors"
SATELLITE_TILES_DEFAULT = (
    "https://server.arcgisonline.com/ArcGIS/rest/services/"
    "World_Imagery/MapServer/tile/{z}/{y}/{x}"
)
SATELLITE_ATTRIBUTION = (
    "Tiles © Esri. Source: Esri, Maxar, Earthstar Geographics, "
    "and the GIS User Community"
)


@dataclass(frozen=True)
class MapSettings:
    """Defaults used when a map surface is created."""

    center: Tuple[float, float] = DEFAULT_CENTER
    zoom: int = DEFAULT_ZOOM
    street_tiles: str = STREET_TILES_DEFAULT
    satellite_tiles: str = SATELLITE_TILES_DEFAULT


def _parse_center(raw: Optional[str]) -> Tuple[float, float]:
    if not raw:
        return DEFAULT_CENTER
    try:
        lat_text, lng_text = raw.split(",", 1)
        lat = float(lat_text)
        lng = float(lng_text)
    except ValueError:
        logger.warning("Ignoring malformed POINTLAKE_DEFAULT_CENTER=%r", raw)
        return DEFAULT_CENTER
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        logger.warning("Ignoring out of range POINTLAKE_DEFAULT_CENTER=%r", raw)
        return DEFAULT_CENTER
    return lat, lng


def _parse_zoom(raw: Optional[str]) -> int:
    if not raw:
        return DEFAULT_ZOOM
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring malformed POINTLAKE_DEFAULT_ZOOM=%r", raw)
        return DEFAULT_ZOOM


def load_settings(environ: Optional[Mapping[str, str]] = None) -> MapSettings:
    """Return :class:`MapSettings` read from ``environ`` (``os.environ`` by default)."""

    env = os.environ if environ is None else environ
    return MapSettings(
        center=_parse_center(env.get("POINTLAKE_DEFAULT_CENTER")),
        zoom=_parse_zoom(env.get("POINTLAKE_DEFAULT_ZOOM")),
        street_tiles=env.get("POINTLAKE_STREET_TILES") or STREET_TILES_DEFAULT,
        satellite_tiles=env.get("POINTLAKE_SATELLITE_TILES") or SATELLITE_TILES_DEFAULT,
    )

"""Resolve a map coordinate from loosely typed result rows."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from pointlake.geometry import Coordinate, decode_wkb_point

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]
CoordinateExtractor = Callable[[Row], Optional[Coordinate]]

MIN_GEOMETRY_LENGTH = 20


@dataclass
class ExtractedPoint:
    """A row that resolved to a coordinate, plus values derived for rendering."""

    row: Row
    lat: float
    lng: float
    index: int
    heatmap_field: Optional[str] = None
    raw_value: Optional[float] = None
    intensity: Optional[float] = None

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.lat, self.lng)


def _coerce_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _pair(lat: Any, lng: Any) -> Optional[Coordinate]:
    lat_value = _coerce_float(lat)
    lng_value = _coerce_float(lng)
    if lat_value is None or lng_value is None:
        return None
    return Coordinate(lat_value, lng_value)


def _first_present(mapping: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value is not None:
            return value
    return None


def from_wkb_geometry(row: Row) -> Optional[Coordinate]:
    geometry = row.get("geometry")
    if not isinstance(geometry, str) or len(geometry) <= MIN_GEOMETRY_LENGTH:
        return None
    return decode_wkb_point(geometry).coordinate


def from_latitude_longitude(row: Row) -> Optional[Coordinate]:
    return _pair(row.get("latitude"), row.get("longitude"))


def from_lat_lng(row: Row) -> Optional[Coordinate]:
    return _pair(row.get("lat"), row.get("lng"))


def from_location(row: Row) -> Optional[Coordinate]:
    location = row.get("location")
    if not isinstance(location, Mapping):
        return None
    return _pair(
        _first_present(location, ("lat", "latitude")),
        _first_present(location, ("lng", "longitude")),
    )


def from_geojson_coordinates(row: Row) -> Optional[Coordinate]:
    # GeoJSON stores positions as [lng, lat].
    coordinates = row.get("coordinates")
    if not isinstance(coordinates, (list, tuple)) or len(coordinates) < 2:
        return None
    return _pair(coordinates[1], coordinates[0])


COORDINATE_EXTRACTORS: Tuple[CoordinateExtractor, ...] = (
    from_wkb_geometry,
    from_latitude_longitude,
    from_lat_lng,
    from_location,
    from_geojson_coordinates,
)


def extract_coordinates(row: Any) -> Optional[Coordinate]:
    """Return the first coordinate any extractor resolves for ``row``."""

    if not isinstance(row, Mapping):
        return None
    for extractor in COORDINATE_EXTRACTORS:
        coordinate = extractor(row)
        if coordinate is not None:
            return coordinate
    return None


def extract_points(rows: Sequence[Any]) -> Tuple[List[ExtractedPoint], int]:
    """Return ``(points, skipped)`` for ``rows``.

    Rows without a resolvable coordinate are dropped. A failure on one row is
    logged and counted so the remaining rows are still rendered.
    """

    points: List[ExtractedPoint] = []
    skipped = 0
    for index, row in enumerate(rows):
        try:
            coordinate = extract_coordinates(row)
        except Exception:  # pragma: no cover - extractors do not raise
            logger.warning("Coordinate extraction failed for row %d", index, exc_info=True)
            coordinate = None
        if coordinate is None:
            skipped += 1
            continue
        points.append(ExtractedPoint(row=row, lat=coordinate.lat, lng=coordinate.lng, index=index))

    if skipped:
        logger.info("Dropped %d of %d row(s) without coordinates", skipped, len(rows))
    return points, skipped

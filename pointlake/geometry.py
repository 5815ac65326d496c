"""Geometry decoding helpers for Point Lake result rows.

Point Lake returns point geometry as Base64 wrapped Well-Known Binary and field
boundaries as Well-Known Text. Only the subset the dashboards need is handled
here: WKB ``Point`` (optionally with Z/M flags) and single ring ``POLYGON``.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import math
import re
import struct
from dataclasses import dataclass
from typing import Any, List, NamedTuple, Optional

logger = logging.getLogger(__name__)

WKB_HEADER_SIZE = 5
WKB_POINT = 1
WKB_FLAG_Z = 0x80000000
WKB_FLAG_M = 0x40000000
WKB_TYPE_MASK = 0x0FFFFFFF

_WKT_POLYGON_RE = re.compile(r"POLYGON\s*\(\(([^)]+)\)", re.IGNORECASE)


class Coordinate(NamedTuple):
    """A ``(lat, lng)`` pair in the map's axis order."""

    lat: float
    lng: float


@dataclass(frozen=True)
class DecodedGeometry:
    lat: Optional[float]
    lng: Optional[float]
    elevation: Optional[float]
    valid: bool

    @property
    def coordinate(self) -> Optional[Coordinate]:
        if not self.valid:
            return None
        return Coordinate(float(self.lat), float(self.lng))  # type: ignore[arg-type]


INVALID_GEOMETRY = DecodedGeometry(lat=None, lng=None, elevation=None, valid=False)


def _in_range(lat: float, lng: float) -> bool:
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def decode_wkb_point(value: Any) -> DecodedGeometry:
    """Decode a Base64 encoded WKB point.

    Returns :data:`INVALID_GEOMETRY` for anything that is not a well formed
    ``Point`` inside the geographic range. Malformed input never raises, the
    caller is expected to skip the row.
    """

    if isinstance(value, (bytes, bytearray, memoryview)):
        raw_text = bytes(value)
    elif isinstance(value, str):
        raw_text = value.strip().encode("ascii", errors="replace")
    else:
        return INVALID_GEOMETRY

    try:
        buffer = base64.b64decode(raw_text, validate=True)
    except (binascii.Error, ValueError):
        logger.debug("Geometry is not valid Base64")
        return INVALID_GEOMETRY

    if len(buffer) < WKB_HEADER_SIZE:
        logger.debug("Geometry buffer too short (%d bytes)", len(buffer))
        return INVALID_GEOMETRY

    byte_order = "<" if buffer[0] == 1 else ">"
    (type_word,) = struct.unpack_from(f"{byte_order}I", buffer, 1)
    has_z = bool(type_word & WKB_FLAG_Z)
    has_m = bool(type_word & WKB_FLAG_M)
    geometry_type = type_word & WKB_TYPE_MASK

    if geometry_type != WKB_POINT:
        logger.debug("Unsupported WKB geometry type %d", geometry_type)
        return INVALID_GEOMETRY

    required = WKB_HEADER_SIZE + 16 + (8 if has_z else 0) + (8 if has_m else 0)
    if len(buffer) < required:
        logger.debug("WKB point truncated: %d of %d bytes", len(buffer), required)
        return INVALID_GEOMETRY

    lng, lat = struct.unpack_from(f"{byte_order}dd", buffer, WKB_HEADER_SIZE)
    elevation: Optional[float] = None
    if has_z:
        (elevation,) = struct.unpack_from(f"{byte_order}d", buffer, WKB_HEADER_SIZE + 16)

    if not _in_range(lat, lng):
        logger.debug("WKB point out of range: lat=%s lng=%s", lat, lng)
        return INVALID_GEOMETRY

    return DecodedGeometry(lat=lat, lng=lng, elevation=elevation, valid=True)


def encode_wkb_point(
    lng: float,
    lat: float,
    elevation: Optional[float] = None,
    *,
    little_endian: bool = True,
) -> str:
    """Return ``(lng, lat[, elevation])`` as Base64 WKB, the inverse of :func:`decode_wkb_point`."""

    byte_order = "<" if little_endian else ">"
    type_word = WKB_POINT
    values = [lng, lat]
    if elevation is not None:
        type_word |= WKB_FLAG_Z
        values.append(elevation)
    buffer = bytes([1 if little_endian else 0])
    buffer += struct.pack(f"{byte_order}I", type_word)
    buffer += struct.pack(f"{byte_order}{len(values)}d", *values)
    return base64.b64encode(buffer).decode("ascii")


def is_wkt_polygon(value: Any) -> bool:
    return isinstance(value, str) and "POLYGON" in value.upper()


def parse_wkt_polygon(text: Any) -> Optional[List[Coordinate]]:
    """Parse ``POLYGON((lng lat, ...))`` into an ordered ring of :class:`Coordinate`.

    Only the first ring is read. Returns ``None`` for anything that does not
    match or holds non-numeric pairs.
    """

    if not isinstance(text, str):
        return None
    match = _WKT_POLYGON_RE.search(text)
    if not match:
        return None

    ring: List[Coordinate] = []
    for pair in match.group(1).split(","):
        parts = pair.split()
        if len(parts) < 2:
            logger.debug("Skipping WKT polygon with malformed pair %r", pair)
            return None
        try:
            lng = float(parts[0])
            lat = float(parts[1])
        except ValueError:
            logger.debug("Skipping WKT polygon with non-numeric pair %r", pair)
            return None
        if math.isnan(lat) or math.isnan(lng):
            return None
        ring.append(Coordinate(lat, lng))

    return ring or None


def geojson_polygon_to_wkt(geometry: Any) -> Optional[str]:
    """Convert a GeoJSON ``Polygon`` (mapping or JSON text) into WKT.

    Field boundaries arrive from the fields service as GeoJSON while the map
    components consume WKT, so the outer ring is re-serialised.
    """

    if isinstance(geometry, str):
        if is_wkt_polygon(geometry):
            return geometry
        try:
            geometry = json.loads(geometry)
        except json.JSONDecodeError:
            return None

    if not isinstance(geometry, dict):
        return None
    if geometry.get("type") == "Feature":
        geometry = geometry.get("geometry") or {}
    if geometry.get("type") != "Polygon":
        return None

    rings = geometry.get("coordinates") or []
    if not rings or not rings[0]:
        return None
    try:
        pairs = [f"{float(point[0])} {float(point[1])}" for point in rings[0]]
    except (TypeError, ValueError, IndexError):
        return None
    return f"POLYGON(({', '.join(pairs)}))"

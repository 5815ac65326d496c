"""Result-set helpers used before handing SQL/points results to the map."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from pointlake.coordinates import MIN_GEOMETRY_LENGTH, extract_coordinates
from pointlake.intensity import DEFAULT_FIELD

logger = logging.getLogger(__name__)

NUMERIC_HEATMAP_FIELDS = (
    "appliedRate",
    "elevation",
    "speed",
    "area",
    "yieldVolume",
    "harvestMoisture",
    "seedRate",
)


def _has_pair(row: Mapping[str, Any], lat_key: str, lon_key: str) -> bool:
    return row.get(lat_key) not in (None, "") and row.get(lon_key) not in (None, "")


def has_geometry_data(rows: Any) -> bool:
    """Return ``True`` when any row carries something the map can place."""

    if not isinstance(rows, (list, tuple)) or not rows:
        return False
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        geometry = row.get("geometry")
        if isinstance(geometry, str) and len(geometry) > MIN_GEOMETRY_LENGTH:
            return True
        if _has_pair(row, "latitude", "longitude") or _has_pair(row, "lat", "lng"):
            return True
    return False


def detect_heatmap_field(row: Mapping[str, Any]) -> str:
    """Return the first numeric field worth colouring by, else ``"default"``."""

    for name in NUMERIC_HEATMAP_FIELDS:
        value = row.get(name)
        if value is None or isinstance(value, bool):
            continue
        numeric = pd.to_numeric(pd.Series([value]), errors="coerce").iloc[0]
        if not pd.isna(numeric):
            return name
    return DEFAULT_FIELD


def prepare_map_payload(
    rows: Sequence[Mapping[str, Any]],
    heatmap_field: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Build the ``{points, heatmapField}`` payload for SQL query results.

    Each kept row gains ``latitude``/``longitude`` and a stable ``id``. The
    payload is coloured by ``heatmap_field`` when given, otherwise by the field
    detected on the first kept row. Returns ``None`` when nothing resolves to
    a coordinate.
    """

    if not has_geometry_data(rows):
        return None

    points: List[Dict[str, Any]] = []
    for index, row in enumerate(rows):
        coordinate = extract_coordinates(row)
        if coordinate is None:
            continue
        point = dict(row)
        point["latitude"] = coordinate.lat
        point["longitude"] = coordinate.lng
        point["id"] = row.get("id") or f"point_{index}"
        point["heatmapField"] = detect_heatmap_field(row)
        points.append(point)

    if not points:
        logger.info("No valid coordinates found for map display")
        return None
    return {"points": points, "heatmapField": heatmap_field or points[0]["heatmapField"] or DEFAULT_FIELD}


@dataclass
class PointStatistics:
    total: int
    with_coordinates: int
    min_lat: Optional[float] = None
    max_lat: Optional[float] = None
    min_lng: Optional[float] = None
    max_lng: Optional[float] = None
    operation_types: Dict[str, int] = field(default_factory=dict)
    crops: Dict[str, int] = field(default_factory=dict)


def _value_counts(frame: pd.DataFrame, column: str) -> Dict[str, int]:
    if column not in frame.columns:
        return {}
    counts = frame[column].dropna().astype(str).value_counts()
    return {str(key): int(value) for key, value in counts.items()}


def summarise_points(rows: Sequence[Mapping[str, Any]]) -> PointStatistics:
    """Return totals, coordinate extent and category counts for ``rows``."""

    records = [row for row in rows if isinstance(row, Mapping)]
    frame = pd.DataFrame.from_records(records) if records else pd.DataFrame()

    coordinates = [coordinate for coordinate in map(extract_coordinates, records) if coordinate is not None]
    stats = PointStatistics(
        total=len(records),
        with_coordinates=len(coordinates),
        operation_types=_value_counts(frame, "operationType"),
        crops=_value_counts(frame, "crop"),
    )
    if coordinates:
        lats = pd.Series([coordinate.lat for coordinate in coordinates], dtype=float)
        lngs = pd.Series([coordinate.lng for coordinate in coordinates], dtype=float)
        stats.min_lat = float(lats.min())
        stats.max_lat = float(lats.max())
        stats.min_lng = float(lngs.min())
        stats.max_lng = float(lngs.max())
    return stats

"""Data preparation helpers for the Streamlit dashboard."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional

import pandas as pd

from analytics.payloads import attach_boundary, parse_payload, unwrap_points_response
from analytics.point_stats import PointStatistics, detect_heatmap_field, prepare_map_payload, summarise_points
from pointlake.geometry import geojson_polygon_to_wkt
from pointlake.intensity import DEFAULT_FIELD


@dataclass
class PreparedMapData:
    """Snapshot of the upload parsing phase."""

    payload: Any
    rows: List[Any]
    stats: PointStatistics
    heatmap_field: str
    error: Optional[str] = None

    @property
    def has_rows(self) -> bool:
        return bool(self.rows)


def _empty(error: Optional[str] = None) -> PreparedMapData:
    return PreparedMapData(
        payload=None,
        rows=[],
        stats=PointStatistics(total=0, with_coordinates=0),
        heatmap_field=DEFAULT_FIELD,
        error=error,
    )


def prepare_map_data(
    file_name: Optional[str],
    content: Optional[bytes],
    *,
    boundary_text: Optional[str] = None,
    heatmap_field: Optional[str] = None,
) -> PreparedMapData:
    """Parse an uploaded results file and optional boundary into a map payload."""

    if not content:
        return _empty()

    fmt = "csv" if (file_name or "").lower().endswith(".csv") else "json"
    try:
        payload = parse_payload(content, fmt=fmt)
    except ValueError as exc:
        return _empty(str(exc))

    rows = unwrap_points_response(payload)
    field = heatmap_field or (detect_heatmap_field(rows[0]) if rows and isinstance(rows[0], dict) else DEFAULT_FIELD)

    if heatmap_field and isinstance(payload, list):
        payload = prepare_map_payload(rows, heatmap_field) or payload

    if boundary_text and boundary_text.strip():
        boundary = geojson_polygon_to_wkt(boundary_text.strip())
        if boundary is None:
            return PreparedMapData(
                payload=payload,
                rows=rows,
                stats=summarise_points(rows),
                heatmap_field=field,
                error="Boundary must be a WKT POLYGON or a GeoJSON Polygon.",
            )
        payload = attach_boundary(payload, boundary, field)

    return PreparedMapData(
        payload=payload,
        rows=rows,
        stats=summarise_points(rows),
        heatmap_field=field,
    )


def rows_to_frame(rows: List[Any], limit: Optional[int] = None) -> pd.DataFrame:
    """Return ``rows`` as a table, dropping the raw geometry blobs."""

    records = [row for row in rows[:limit] if isinstance(row, dict)]
    if not records:
        return pd.DataFrame()
    frame = pd.DataFrame.from_records(records)
    return frame.drop(columns=["geometry"], errors="ignore")

"""Load and normalise map payloads from exported Point Lake results."""
from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from pointlake.geometry import geojson_polygon_to_wkt

_ENVELOPE_KEYS = ("data", "points")


def unwrap_points_response(payload: Any) -> List[Any]:
    """Return the row list from a bare list or a ``data``/``points`` envelope."""

    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in _ENVELOPE_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return []


def _is_envelope(payload: Dict[str, Any]) -> bool:
    # A combined payload also has ``points`` but carries a boundary or field.
    if "boundary" in payload or "heatmapField" in payload:
        return False
    return any(isinstance(payload.get(key), list) for key in _ENVELOPE_KEYS)


def normalise_payload(payload: Any) -> Any:
    """Unwrap API envelopes so the renderer sees a row list or a shaped object."""

    if isinstance(payload, dict) and _is_envelope(payload):
        return unwrap_points_response(payload)
    return payload


def parse_payload(raw: bytes, *, fmt: str = "json") -> Any:
    """Parse exported results held in memory; ``fmt`` is ``"json"`` or ``"csv"``.

    Raises :class:`ValueError` when the content cannot be parsed.
    """

    if fmt == "csv":
        try:
            frame = pd.read_csv(io.BytesIO(raw))
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
            raise ValueError(f"Could not read CSV results: {exc}") from exc
        return frame.astype(object).where(frame.notna(), None).to_dict(orient="records")

    try:
        payload = json.loads(raw.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValueError(f"Could not read JSON results: {exc}") from exc
    return normalise_payload(payload)


def load_payload(path: str | Path) -> Any:
    """Read a JSON or CSV results export from ``path``."""

    file_path = Path(path)
    if not file_path.exists():
        raise ValueError(f"Results file not found: {file_path}")
    fmt = "csv" if file_path.suffix.lower() == ".csv" else "json"
    return parse_payload(file_path.read_bytes(), fmt=fmt)


def load_boundary(path: str | Path) -> Optional[str]:
    """Read a boundary file holding WKT or GeoJSON and return WKT."""

    text = Path(path).read_text(encoding="utf-8").strip()
    return geojson_polygon_to_wkt(text)


def attach_boundary(payload: Any, boundary: str, heatmap_field: Optional[str] = None) -> Dict[str, Any]:
    """Combine ``payload`` rows with ``boundary`` into a ``{boundary, points, heatmapField}`` payload."""

    if isinstance(payload, dict) and "points" in payload:
        combined = dict(payload)
    else:
        combined = {"points": unwrap_points_response(payload)}
    combined["boundary"] = boundary
    if heatmap_field:
        combined["heatmapField"] = heatmap_field
    return combined

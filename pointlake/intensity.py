"""Heatmap intensity engine for point result sets.

Raw values are mapped onto ``[0, 1]`` using the 2nd and 98th percentile of
the batch rather than its min/max, so a handful of anomalous sensor readings
cannot flatten the colour scale for everything else.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
import plotly.express as px
from plotly.colors import unlabel_rgb

from pointlake.coordinates import ExtractedPoint, extract_points

logger = logging.getLogger(__name__)

FALLBACK_VALUE_FIELDS: Tuple[str, ...] = ("appliedRate", "elevation", "speed", "yieldVolume")
OPERATION_TYPE_VALUES: Dict[str, float] = {
    "CropProtection": 0.3,
    "Planting": 0.5,
    "Harvesting": 0.7,
}
DEFAULT_RAW_VALUE = 0.5
DEFAULT_FIELD = "default"

LOW_PERCENTILE = 0.02
HIGH_PERCENTILE = 0.98
MIN_RANGE = 0.0001

PALETTE_SIZE = 20


def _rgb_to_hex(value: str) -> str:
    """Convert a Plotly ``rgb(r, g, b)`` colour into ``#rrggbb``."""

    components = unlabel_rgb(value)
    return "#" + "".join(f"{max(0, min(255, int(round(component)))):02x}" for component in components[:3])


def _build_palette(size: int) -> List[str]:
    # RdYlBu runs red -> blue; reversed it gives dark blue (low) -> red (high).
    scale = list(reversed(px.colors.diverging.RdYlBu))
    positions = [idx / (size - 1) for idx in range(size)]
    return [_rgb_to_hex(colour) for colour in px.colors.sample_colorscale(scale, positions)]


HEATMAP_PALETTE: Tuple[str, ...] = tuple(_build_palette(PALETTE_SIZE))


@dataclass(frozen=True)
class IntensityBounds:
    p2: float
    p98: float
    range: float

    @property
    def degenerate(self) -> bool:
        return self.range <= MIN_RANGE


def _parse_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _is_real_field(field: Optional[str]) -> bool:
    return bool(field) and field != DEFAULT_FIELD


def extract_raw_value(row: Mapping[str, Any], field: Optional[str]) -> float:
    """Return the scalar used to colour ``row``.

    The requested ``field`` wins when present; an unparseable value becomes
    :data:`DEFAULT_RAW_VALUE`. Otherwise the first present fallback field is
    used, then a coarse constant for the operation type.
    """

    if _is_real_field(field) and row.get(field) is not None:  # type: ignore[arg-type]
        parsed = _parse_float(row.get(field))  # type: ignore[arg-type]
        return DEFAULT_RAW_VALUE if parsed is None else parsed

    for candidate in FALLBACK_VALUE_FIELDS:
        if row.get(candidate) is not None:
            parsed = _parse_float(row.get(candidate))
            return DEFAULT_RAW_VALUE if parsed is None else parsed

    return OPERATION_TYPE_VALUES.get(row.get("operationType"), DEFAULT_RAW_VALUE)  # type: ignore[arg-type]


def compute_bounds(values: Sequence[float]) -> IntensityBounds:
    """Return the 2nd/98th percentile bounds of ``values``."""

    if not values:
        raise ValueError("Cannot compute intensity bounds for an empty batch")
    ordered = sorted(values)
    count = len(ordered)
    p2 = float(ordered[int(math.floor(count * LOW_PERCENTILE))])
    p98 = float(ordered[min(int(math.floor(count * HIGH_PERCENTILE)), count - 1)])
    return IntensityBounds(p2=p2, p98=p98, range=p98 - p2)


def normalise(raw: float, bounds: IntensityBounds, *, index: int, count: int) -> float:
    """Map ``raw`` into ``[0, 1]``; a flat batch falls back to ``index / count``."""

    if bounds.degenerate:
        return index / count if count else 0.0
    return max(0.0, min(1.0, (raw - bounds.p2) / bounds.range))


def compute_intensities(
    rows: Sequence[Mapping[str, Any]],
    field: Optional[str],
) -> List[ExtractedPoint]:
    """Resolve coordinates and intensities for ``rows`` coloured by ``field``.

    Rows without a coordinate are dropped before the percentiles are taken.
    """

    points, _ = extract_points(rows)
    if not points:
        return []

    label = field if _is_real_field(field) else DEFAULT_FIELD
    for point in points:
        point.heatmap_field = label
        point.raw_value = extract_raw_value(point.row, field)

    bounds = compute_bounds([point.raw_value for point in points])  # type: ignore[misc]
    if bounds.degenerate:
        logger.info(
            "No spread in %r (p2=%s, p98=%s); colouring %d point(s) by row order",
            label,
            bounds.p2,
            bounds.p98,
            len(points),
        )

    count = len(points)
    for rank, point in enumerate(points):
        point.intensity = normalise(point.raw_value, bounds, index=rank, count=count)  # type: ignore[arg-type]
    return points


def colour_for_intensity(intensity: float) -> str:
    bucket = min(int(math.floor(max(0.0, intensity) * PALETTE_SIZE)), PALETTE_SIZE - 1)
    return HEATMAP_PALETTE[bucket]


def marker_radius(count: int) -> int:
    """Return the circle radius (px) for a layer of ``count`` points."""

    if count > 5000:
        return 2
    if count > 1000:
        return 3
    if count > 100:
        return 5
    return 7


def intensity_frame(points: Sequence[ExtractedPoint]) -> pd.DataFrame:
    """Return a table of the coloured points, one row per point."""

    columns = ["index", "lat", "lng", "heatmap_field", "raw_value", "intensity", "colour"]
    if not points:
        return pd.DataFrame(columns=columns)
    frame = pd.DataFrame(
        {
            "index": [point.index for point in points],
            "lat": [point.lat for point in points],
            "lng": [point.lng for point in points],
            "heatmap_field": [point.heatmap_field for point in points],
            "raw_value": pd.to_numeric([point.raw_value for point in points], errors="coerce"),
            "intensity": pd.to_numeric([point.intensity for point in points], errors="coerce"),
        }
    )
    frame["colour"] = frame["intensity"].fillna(0.0).apply(colour_for_intensity)
    return frame[columns]

"""Render Point Lake result sets onto a :class:`~analytics.map_surface.MapSurface`.

The representation is chosen from the number of points that resolve to a
coordinate: detailed markers for small sets, lightweight circles with popups
built on click for medium sets and density clusters for large ones. Combined
``{boundary, points}`` payloads are always drawn as percentile coloured
circles inside a dashed field outline.
"""
from __future__ import annotations

import enum
import html
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple

import folium
import pandas as pd
from folium.plugins import FastMarkerCluster

from analytics.map_surface import (
    BOUNDARY_GROUP,
    POINTS_GROUP,
    MapSurface,
    MapSurfaceError,
)
from pointlake.coordinates import ExtractedPoint, extract_points
from pointlake.geometry import Coordinate, geojson_polygon_to_wkt, is_wkt_polygon, parse_wkt_polygon
from pointlake.intensity import (
    DEFAULT_FIELD,
    colour_for_intensity,
    compute_intensities,
    marker_radius,
)

logger = logging.getLogger(__name__)

SINGLE_MARKER_LIMIT = 1000
PLAIN_CIRCLE_LIMIT = 5000

POINT_FILL_COLOUR = "#3b82f6"
POINT_LINE_COLOUR = "#1e40af"
BOUNDARY_COLOUR = "#3388ff"


class RenderTier(enum.Enum):
    SINGLE = "single"
    PLAIN_CIRCLES = "plain_circles"
    HEATMAP = "heatmap"
    CLUSTERED = "clustered"
    BOUNDARY = "boundary"
    FALLBACK = "fallback"


class ClusterBand(NamedTuple):
    max_count: Optional[int]
    size: int
    colour: str
    opacity: float


# Ordered from sparse to dense; ``max_count`` is inclusive.
CLUSTER_BANDS: Tuple[ClusterBand, ...] = (
    ClusterBand(9, 30, "#93c5fd", 0.55),
    ClusterBand(50, 40, "#60a5fa", 0.6),
    ClusterBand(100, 45, "#3b82f6", 0.65),
    ClusterBand(500, 50, "#f59e0b", 0.7),
    ClusterBand(1000, 60, "#f97316", 0.75),
    ClusterBand(None, 70, "#dc2626", 0.8),
)


def cluster_band(count: int) -> ClusterBand:
    for band in CLUSTER_BANDS:
        if band.max_count is None or count <= band.max_count:
            return band
    return CLUSTER_BANDS[-1]


def select_tier(count: int) -> Optional[RenderTier]:
    """Return the tier for ``count`` resolvable points of a plain row list."""

    if count <= 0:
        return None
    if count > PLAIN_CIRCLE_LIMIT:
        return RenderTier.CLUSTERED
    if count > SINGLE_MARKER_LIMIT:
        return RenderTier.PLAIN_CIRCLES
    return RenderTier.SINGLE


@dataclass
class RenderResult:
    tier: Optional[RenderTier]
    rendered: int = 0
    skipped: int = 0
    boundary: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class _RenderPlan:
    result: RenderResult
    # ``None`` leaves the group as it is; a list replaces the group.
    point_artifacts: Optional[List[Any]] = None
    boundary_artifacts: Optional[List[Any]] = None
    fit_points: List[Coordinate] = field(default_factory=list)


def _cluster_icon_function() -> str:
    branches = []
    for band in CLUSTER_BANDS[:-1]:
        branches.append(
            f"if (count <= {band.max_count}) {{ size = {band.size}; colour = '{band.colour}'; "
            f"opacity = {band.opacity}; }}"
        )
    densest = CLUSTER_BANDS[-1]
    branches.append(
        f"{{ size = {densest.size}; colour = '{densest.colour}'; opacity = {densest.opacity}; }}"
    )
    return (
        "function(cluster) {\n"
        "    var count = cluster.getChildCount();\n"
        "    var size, colour, opacity;\n"
        "    " + "\n    else ".join(branches) + "\n"
        "    return L.divIcon({\n"
        "        html: '<div style=\"background-color: ' + colour + '; width: 100%; height: 100%; "
        "border-radius: 50%; opacity: ' + opacity + '; box-shadow: 0 0 10px rgba(0,0,0,0.3);\"></div>',\n"
        "        className: 'marker-cluster',\n"
        "        iconSize: L.point(size, size)\n"
        "    });\n"
        "}"
    )


CLUSTER_ICON_FUNCTION = _cluster_icon_function()

CLUSTER_MARKER_CALLBACK = f"""
function (row) {{
    var marker = L.circleMarker(new L.LatLng(row[0], row[1]), {{
        radius: 4,
        fillColor: '{POINT_FILL_COLOUR}',
        color: '{POINT_LINE_COLOUR}',
        weight: 1,
        opacity: 0.8,
        fillOpacity: 0.6
    }});
    marker.bindPopup(row[2]);
    return marker;
}}
"""


def _display(value: Any) -> str:
    if value is None or value == "":
        return "-"
    try:
        if pd.isna(value):
            return "-"
    except (TypeError, ValueError):
        pass
    return html.escape(str(value))


def _popup_html(title: str, lines: Sequence[Tuple[str, Any]], *, min_width: int = 150) -> str:
    body = "".join(f"<div><strong>{label}:</strong> {_display(value)}</div>" for label, value in lines)
    return (
        f'<div style="font-family: Arial, sans-serif; min-width: {min_width}px;">'
        f'<h4 style="margin: 0 0 8px 0; color: #333;">{html.escape(title)}</h4>'
        f'<div style="font-size: 12px; line-height: 1.4;">{body}</div>'
        "</div>"
    )


def record_popup_html(row: Mapping[str, Any], index: int) -> str:
    tank_mix = row.get("tankMix")
    return _popup_html(
        f"Record {index + 1}",
        [
            ("Timestamp", row.get("timestamp")),
            ("Operation", row.get("operationType")),
            ("Applied rate", row.get("appliedRate")),
            ("Area", row.get("area")),
            ("Width", row.get("equipmentWidth")),
            ("Status", row.get("recordingStatus")),
            ("Tank mix", None if tank_mix is None else ("Yes" if tank_mix else "No")),
        ],
        min_width=200,
    )


def point_popup_html(row: Mapping[str, Any], index: int) -> str:
    return _popup_html(
        f"Point {index + 1}",
        [("Timestamp", row.get("timestamp")), ("Operation", row.get("operationType"))],
    )


def _format_timestamp(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    parsed = pd.to_datetime(value, errors="coerce", utc=True)
    if pd.isna(parsed):
        return str(value)
    return parsed.strftime("%Y-%m-%d %H:%M")


def summary_popup_html(summary: Optional[Mapping[str, Any]]) -> str:
    if not summary:
        return "Boundary loaded"
    start = _format_timestamp(summary.get("start")) or "-"
    end = _format_timestamp(summary.get("end")) or "-"
    avg_area = summary.get("avg_area")
    try:
        avg_area_text = f"{float(avg_area):.6f}" if avg_area is not None else None
    except (TypeError, ValueError):
        avg_area_text = str(avg_area)
    return _popup_html(
        "File summary",
        [
            ("Period", f"{start} to {end}"),
            ("Count", summary.get("count")),
            ("Average area", avg_area_text),
            ("Average width", summary.get("avg_equipmentWidth")),
        ],
        min_width=200,
    )


def build_boundary_artifact(
    ring: Sequence[Coordinate],
    *,
    dashed: bool = False,
    summary: Optional[Mapping[str, Any]] = None,
) -> folium.Polygon:
    """Return the styled outline for a field boundary ring."""

    return folium.Polygon(
        locations=[[point.lat, point.lng] for point in ring],
        color=BOUNDARY_COLOUR,
        weight=2,
        fill=True,
        fill_color=BOUNDARY_COLOUR,
        fill_opacity=0.1 if dashed else 0.2,
        dash_array="5, 5" if dashed else None,
        popup=folium.Popup(summary_popup_html(summary), max_width=320),
    )


def build_marker_layer(points: Sequence[ExtractedPoint]) -> folium.FeatureGroup:
    group = folium.FeatureGroup(name="Points", show=True)
    for point in points:
        folium.Marker(
            location=[point.lat, point.lng],
            popup=folium.Popup(record_popup_html(point.row, point.index), max_width=320),
        ).add_to(group)
    return group


def build_circle_layer(points: Sequence[ExtractedPoint]) -> folium.GeoJson:
    """Return one GeoJSON layer of circles whose popups are built on click."""

    features = []
    for point in points:
        row = point.row
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [point.lng, point.lat]},
                "properties": {
                    "point": f"Point {point.index + 1}",
                    "timestamp": _display(row.get("timestamp")),
                    "operationType": _display(row.get("operationType")),
                    "appliedRate": _display(row.get("appliedRate")),
                },
            }
        )
    style = {
        "radius": 3,
        "fillColor": POINT_FILL_COLOUR,
        "color": POINT_LINE_COLOUR,
        "weight": 1,
        "opacity": 0.8,
        "fillOpacity": 0.6,
    }
    return folium.GeoJson(
        {"type": "FeatureCollection", "features": features},
        name="Points",
        marker=folium.CircleMarker(radius=3, fill=True),
        style_function=lambda _feature: style,
        popup=folium.GeoJsonPopup(
            fields=["point", "timestamp", "operationType", "appliedRate"],
            aliases=["", "Timestamp", "Operation", "Rate"],
            labels=True,
        ),
    )


def build_cluster_layer(points: Sequence[ExtractedPoint]) -> FastMarkerCluster:
    data = [[point.lat, point.lng, point_popup_html(point.row, point.index)] for point in points]
    return FastMarkerCluster(
        data,
        callback=CLUSTER_MARKER_CALLBACK,
        name="Points",
        icon_create_function=CLUSTER_ICON_FUNCTION,
        chunked_loading=True,
        max_cluster_radius=150,
        spiderfy_on_max_zoom=False,
        show_coverage_on_hover=False,
        zoom_to_bounds_on_click=True,
    )


def build_heatmap_layer(points: Sequence[ExtractedPoint], heatmap_field: str) -> folium.FeatureGroup:
    """Return percentile coloured circles, one per point."""

    radius = marker_radius(len(points))
    group = folium.FeatureGroup(name=f"Heatmap: {heatmap_field}", show=True)
    for point in points:
        colour = colour_for_intensity(point.intensity or 0.0)
        folium.CircleMarker(
            location=[point.lat, point.lng],
            radius=radius,
            color=colour,
            weight=1,
            fill=True,
            fill_color=colour,
            fill_opacity=0.8,
            tooltip=f"{html.escape(str(point.heatmap_field))}: {_display(point.raw_value)}",
        ).add_to(group)
    return group


def build_fallback_marker(payload: Any, location: Sequence[float]) -> folium.Marker:
    text = json.dumps(payload, indent=2, default=str, ensure_ascii=False)
    return folium.Marker(
        location=list(location),
        popup=folium.Popup(f"<pre>{html.escape(text)}</pre>", max_width=480),
    )


def _as_rows(data: Any) -> Optional[List[Any]]:
    if isinstance(data, pd.DataFrame):
        return data.to_dict(orient="records")
    if isinstance(data, (list, tuple)):
        return list(data)
    return None


def _is_combined_payload(data: Mapping[str, Any]) -> bool:
    return "boundary" in data or "points" in data


def _parse_boundary(value: Any) -> Optional[List[Coordinate]]:
    return parse_wkt_polygon(geojson_polygon_to_wkt(value))


class PointMapRenderer:
    """Chooses and applies a rendering for each payload handed to :meth:`render`."""

    def __init__(self, surface: MapSurface):
        self.surface = surface

    def render(self, data: Any) -> RenderResult:
        """Replace the current point render with ``data``.

        Never raises: failures are logged and reported on the result while
        the surface keeps the artifacts of the previous render.
        """

        try:
            plan = self._plan(data)
            self._apply(plan)
        except Exception as exc:
            logger.exception("Map render failed; keeping the previous render")
            return RenderResult(tier=None, error=str(exc) or exc.__class__.__name__)

        result = plan.result
        logger.info(
            "Rendered %d point(s) as %s (%d skipped, boundary=%s)",
            result.rendered,
            result.tier.value if result.tier else "nothing",
            result.skipped,
            result.boundary,
        )
        return result

    def render_boundary(self, boundary: Any, summary: Optional[Mapping[str, Any]] = None) -> RenderResult:
        """Replace only the boundary outline, leaving point artifacts in place."""

        try:
            ring = _parse_boundary(boundary)
            if ring is None:
                logger.warning("Boundary is not a recognised polygon")
                return RenderResult(tier=None, error="Boundary is not a recognised polygon")
            plan = _RenderPlan(
                result=RenderResult(tier=RenderTier.BOUNDARY, boundary=True),
                boundary_artifacts=[build_boundary_artifact(ring, summary=summary)],
                fit_points=list(ring),
            )
            self._apply(plan)
        except Exception as exc:
            logger.exception("Boundary render failed; keeping the previous render")
            return RenderResult(tier=None, error=str(exc) or exc.__class__.__name__)
        return plan.result

    def clear(self) -> None:
        """Remove every artifact and reset the viewport."""

        if not self.surface.is_open:
            return
        self.surface.remove_all_tracked_artifacts()
        self.surface.reset_view()

    def _plan(self, data: Any) -> _RenderPlan:
        if data is None:
            return _RenderPlan(result=RenderResult(tier=None), point_artifacts=[])

        rows = _as_rows(data)
        if rows is not None:
            return self._plan_rows(rows)

        if isinstance(data, str) and is_wkt_polygon(data):
            data = {"geometry": data}

        if isinstance(data, Mapping):
            if _is_combined_payload(data):
                return self._plan_combined(data)
            if is_wkt_polygon(data.get("geometry")):
                return self._plan_legacy_boundary(data)

        return _RenderPlan(
            result=RenderResult(tier=RenderTier.FALLBACK, rendered=1),
            point_artifacts=[build_fallback_marker(data, self.surface.settings.center)],
        )

    def _plan_rows(self, rows: Sequence[Any]) -> _RenderPlan:
        points, skipped = extract_points(rows)
        tier = select_tier(len(points))
        result = RenderResult(tier=tier, rendered=len(points), skipped=skipped)
        if tier is None:
            return _RenderPlan(result=result, point_artifacts=[])

        if tier is RenderTier.CLUSTERED:
            layer = build_cluster_layer(points)
        elif tier is RenderTier.PLAIN_CIRCLES:
            layer = build_circle_layer(points)
        else:
            layer = build_marker_layer(points)
        return _RenderPlan(
            result=result,
            point_artifacts=[layer],
            fit_points=[point.coordinate for point in points],
        )

    def _plan_combined(self, data: Mapping[str, Any]) -> _RenderPlan:
        heatmap_field = data.get("heatmapField") or DEFAULT_FIELD
        raw_points = _as_rows(data.get("points")) or []

        boundary_artifacts: Optional[List[Any]] = None
        fit_points: List[Coordinate] = []
        boundary_value = data.get("boundary")
        if boundary_value:
            ring = _parse_boundary(boundary_value)
            if ring is None:
                logger.warning("Ignoring unparseable boundary in combined payload")
            else:
                boundary_artifacts = [build_boundary_artifact(ring, dashed=bool(raw_points))]
                fit_points.extend(ring)

        points = compute_intensities(raw_points, heatmap_field) if raw_points else []
        skipped = len(raw_points) - len(points)
        if skipped:
            logger.info("Dropped %d of %d heatmap row(s) without coordinates", skipped, len(raw_points))

        point_artifacts: List[Any] = []
        if points:
            point_artifacts.append(build_heatmap_layer(points, str(points[0].heatmap_field)))
            fit_points.extend(point.coordinate for point in points)

        if points:
            tier: Optional[RenderTier] = RenderTier.HEATMAP
        elif boundary_artifacts:
            tier = RenderTier.BOUNDARY
        else:
            tier = None

        return _RenderPlan(
            result=RenderResult(
                tier=tier,
                rendered=len(points),
                skipped=skipped,
                boundary=boundary_artifacts is not None,
            ),
            point_artifacts=point_artifacts,
            boundary_artifacts=boundary_artifacts,
            fit_points=fit_points,
        )

    def _plan_legacy_boundary(self, data: Mapping[str, Any]) -> _RenderPlan:
        ring = parse_wkt_polygon(data.get("geometry"))
        if ring is None:
            logger.warning("Geometry looked like a polygon but could not be parsed")
            return _RenderPlan(result=RenderResult(tier=None), point_artifacts=[])
        return _RenderPlan(
            result=RenderResult(tier=RenderTier.BOUNDARY, boundary=True),
            point_artifacts=[],
            boundary_artifacts=[build_boundary_artifact(ring, summary=data.get("summary"))],
            fit_points=list(ring),
        )

    def _apply(self, plan: _RenderPlan) -> None:
        surface = self.surface
        if not surface.is_open:
            raise MapSurfaceError(f"Map surface {surface.container_id!r} is not initialised")

        replacements: Dict[str, List[Any]] = {}
        if plan.point_artifacts is not None:
            replacements[POINTS_GROUP] = plan.point_artifacts
        if plan.boundary_artifacts is not None:
            replacements[BOUNDARY_GROUP] = plan.boundary_artifacts

        previous = {group: surface.artifacts(group) for group in replacements}
        previous_bounds = surface.bounds
        try:
            for group in replacements:
                surface.remove_all_tracked_artifacts(group)
            for group, artifacts in replacements.items():
                for artifact in artifacts:
                    surface.add_artifact(artifact, group=group)
            if plan.fit_points:
                surface.fit_bounds(plan.fit_points)
        except Exception:
            for group, artifacts in previous.items():
                surface.remove_all_tracked_artifacts(group)
                for artifact in artifacts:
                    surface.add_artifact(artifact, group=group)
            surface.set_bounds(previous_bounds)
            raise

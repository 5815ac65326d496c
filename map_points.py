"""Generate a Folium map from exported Point Lake results.

Accepts SQL/points results (JSON or CSV) and optionally a field boundary; the
map uses the same tiered rendering as the dashboard.
"""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from typing import Any

from analytics.map_surface import map_surface_scope
from analytics.payloads import attach_boundary, load_boundary, load_payload
from analytics.point_stats import prepare_map_payload
from analytics.points_map import PointMapRenderer, RenderResult


def build_map(payload: Any, out_path: str) -> RenderResult:
    """Render ``payload`` and write the HTML map to ``out_path``."""

    with map_surface_scope("map-points-cli") as surface:
        result = PointMapRenderer(surface).render(payload)
        if result.ok and result.tier is not None:
            surface.save(out_path)
    return result


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a Folium map of Point Lake results")
    parser.add_argument("results", help="JSON or CSV results export")
    parser.add_argument("--out", default="points_map.html", help="Output HTML map path")
    parser.add_argument(
        "--boundary",
        help="File holding a field boundary as WKT or GeoJSON; points are drawn as a heatmap inside it",
    )
    parser.add_argument(
        "--heatmap-field",
        default=None,
        help="Numeric field used to colour points as a heatmap",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        payload = load_payload(args.results)
        if args.heatmap_field and isinstance(payload, list):
            payload = prepare_map_payload(payload, args.heatmap_field) or payload
        if args.boundary:
            boundary = load_boundary(args.boundary)
            if boundary is None:
                raise ValueError(f"No polygon found in {args.boundary}")
            payload = attach_boundary(payload, boundary, args.heatmap_field)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}")
        return 1

    result = build_map(payload, args.out)
    if not result.ok:
        print(f"Rendering failed: {result.error}")
        return 1
    if result.tier is None:
        print("No mappable rows found in the results.")
        return 1

    print(f"Rendered {result.rendered} point(s) as {result.tier.value}; map saved to {args.out}")
    return 0


if __name__ == "__main__":  # pragma: no cover - manual execution entry point
    raise SystemExit(main())

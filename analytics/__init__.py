"""Map rendering and result analysis for Point Lake exports."""

# Re-export the map surface at the package level. The renderer and payload
# helpers pull in pandas, so import those from their dedicated modules.
from .map_surface import MapSurface, MapSurfaceError, map_surface_scope

__all__ = [
    "MapSurface",
    "MapSurfaceError",
    "map_surface_scope",
]

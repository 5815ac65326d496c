"""Dashboard package exposing app utilities."""

from .data import PreparedMapData, prepare_map_data

__all__ = ["PreparedMapData", "prepare_map_data"]

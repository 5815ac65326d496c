"""Geometry decoding and intensity helpers for Point Lake result rows."""

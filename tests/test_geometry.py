"""Tests for WKB/WKT decoding in :mod:`pointlake.geometry`."""

from __future__ import annotations

import base64
import struct

import pytest

from pointlake.geometry import (
    INVALID_GEOMETRY,
    Coordinate,
    decode_wkb_point,
    encode_wkb_point,
    geojson_polygon_to_wkt,
    is_wkt_polygon,
    parse_wkt_polygon,
)


def _b64(buffer: bytes) -> str:
    return base64.b64encode(buffer).decode("ascii")


@pytest.mark.parametrize("little_endian", [True, False])
def test_decode_wkb_point_reads_both_byte_orders(little_endian):
    encoded = encode_wkb_point(-46.6333, -23.5505, little_endian=little_endian)

    decoded = decode_wkb_point(encoded)

    assert decoded.valid
    assert decoded.lat == pytest.approx(-23.5505, abs=1e-9)
    assert decoded.lng == pytest.approx(-46.6333, abs=1e-9)
    assert decoded.elevation is None
    assert decoded.coordinate == Coordinate(decoded.lat, decoded.lng)


def test_decode_wkb_point_reads_elevation_when_z_flag_set():
    encoded = encode_wkb_point(151.2093, -33.8688, 42.5)

    decoded = decode_wkb_point(encoded)

    assert decoded.valid
    assert decoded.elevation == pytest.approx(42.5)
    assert decoded.lat == pytest.approx(-33.8688)


def test_decode_wkb_point_skips_m_value():
    buffer = b"\x01" + struct.pack("<I", 1 | 0x40000000) + struct.pack("<3d", 10.0, 20.0, 99.0)

    decoded = decode_wkb_point(_b64(buffer))

    assert decoded.valid
    assert (decoded.lat, decoded.lng) == (20.0, 10.0)
    assert decoded.elevation is None


def test_decode_wkb_point_requires_m_bytes():
    buffer = b"\x01" + struct.pack("<I", 1 | 0x40000000) + struct.pack("<2d", 10.0, 20.0)

    assert decode_wkb_point(_b64(buffer)) == INVALID_GEOMETRY


def test_decode_wkb_point_accepts_raw_bytes():
    encoded = encode_wkb_point(1.5, 2.5)

    decoded = decode_wkb_point(encoded.encode("ascii"))

    assert decoded.valid
    assert decoded.lng == pytest.approx(1.5)


@pytest.mark.parametrize(
    "value",
    [
        None,
        12345,
        "",
        "not base64 at all!",
        _b64(b"\x01\x01\x00"),
        _b64(b"\x01" + struct.pack("<I", 1) + struct.pack("<d", 1.0)),
        _b64(b"\x01" + struct.pack("<I", 3) + struct.pack("<2d", 1.0, 2.0)),
        _b64(b"\x01" + struct.pack("<I", 1 | 0x80000000) + struct.pack("<2d", 1.0, 2.0)),
    ],
    ids=["none", "int", "empty", "not-base64", "short-header", "truncated", "polygon-type", "missing-z"],
)
def test_decode_wkb_point_rejects_malformed_input(value):
    assert decode_wkb_point(value) == INVALID_GEOMETRY


@pytest.mark.parametrize("lng,lat", [(0.0, 91.0), (181.0, 0.0), (-180.5, 10.0), (10.0, -90.01)])
def test_decode_wkb_point_rejects_out_of_range(lng, lat):
    assert not decode_wkb_point(encode_wkb_point(lng, lat)).valid


def test_invalid_geometry_has_no_coordinate():
    assert INVALID_GEOMETRY.coordinate is None


def test_parse_wkt_polygon_returns_lat_lng_ring():
    ring = parse_wkt_polygon("POLYGON((-46.6 -23.5, -46.5 -23.5, -46.5 -23.4, -46.6 -23.5))")

    assert ring is not None
    assert len(ring) == 4
    assert ring[0] == Coordinate(-23.5, -46.6)
    assert ring[2] == Coordinate(-23.4, -46.5)


def test_parse_wkt_polygon_is_case_insensitive_and_reads_first_ring():
    ring = parse_wkt_polygon("polygon ((1 2, 3 4, 5 6, 1 2), (0 0, 1 1, 0 1, 0 0))")

    assert ring == [Coordinate(2, 1), Coordinate(4, 3), Coordinate(6, 5), Coordinate(2, 1)]


@pytest.mark.parametrize(
    "text",
    [None, "", "POINT(1 2)", "POLYGON((1 2, three 4, 5 6))", "POLYGON((1, 3 4))", "POLYGON((nan 1, 2 3))"],
)
def test_parse_wkt_polygon_rejects_bad_text(text):
    assert parse_wkt_polygon(text) is None


def test_is_wkt_polygon():
    assert is_wkt_polygon("POLYGON((0 0, 1 1, 0 1, 0 0))")
    assert is_wkt_polygon("multipolygon(((0 0, 1 1, 0 1, 0 0)))")
    assert not is_wkt_polygon({"type": "Polygon"})
    assert not is_wkt_polygon("POINT(1 2)")


def test_geojson_polygon_to_wkt_converts_outer_ring():
    geometry = {
        "type": "Polygon",
        "coordinates": [[[-46.6, -23.5], [-46.5, -23.5], [-46.5, -23.4], [-46.6, -23.5]]],
    }

    wkt = geojson_polygon_to_wkt(geometry)

    assert wkt == "POLYGON((-46.6 -23.5, -46.5 -23.5, -46.5 -23.4, -46.6 -23.5))"
    assert parse_wkt_polygon(wkt)[0] == Coordinate(-23.5, -46.6)


def test_geojson_polygon_to_wkt_accepts_feature_json_text():
    text = (
        '{"type": "Feature", "properties": {}, "geometry": '
        '{"type": "Polygon", "coordinates": [[[1, 2], [3, 4], [5, 6], [1, 2]]]}}'
    )

    assert geojson_polygon_to_wkt(text) == "POLYGON((1.0 2.0, 3.0 4.0, 5.0 6.0, 1.0 2.0))"


def test_geojson_polygon_to_wkt_passes_wkt_through():
    wkt = "POLYGON((0 0, 1 1, 0 1, 0 0))"

    assert geojson_polygon_to_wkt(wkt) is wkt


@pytest.mark.parametrize(
    "geometry",
    [None, "not json", {"type": "Point", "coordinates": [1, 2]}, {"type": "Polygon", "coordinates": []}],
)
def test_geojson_polygon_to_wkt_rejects_other_shapes(geometry):
    assert geojson_polygon_to_wkt(geometry) is None

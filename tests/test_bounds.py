"""Tests for the bounding box reducer."""

import struct
import sys

import pytest
import shapely
from shapely.geometry import (
    GeometryCollection,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
)

from gpkg_spatial.bounds import BoundingBox, is_empty, merge_bounds, reduce_bounds


def test_point():
    assert reduce_bounds(Point(1.5, -2.0)) == BoundingBox(1.5, 1.5, -2.0, -2.0)
    assert not is_empty(Point(1.5, -2.0))


def test_empty_linestring():
    assert reduce_bounds(LineString()) is None
    assert is_empty(LineString())


def test_multipoint():
    assert reduce_bounds(MultiPoint([(1, 5), (-2, 3)])) == BoundingBox(-2, 1, 3, 5)


def test_multilinestring():
    geometry = MultiLineString([[(0, 0), (2, 1)], [(-3, 4), (-1, 2)]])
    assert reduce_bounds(geometry) == BoundingBox(-3, 2, 0, 4)


def test_geometry_collection():
    geometry = GeometryCollection([Point(5, -1), LineString([(-2, 2), (1, 3)])])
    assert reduce_bounds(geometry) == BoundingBox(-2, 5, -1, 3)


def test_polygon_includes_interior_rings():
    # Interior ring lies inside the shell, so the shell decides the bounds
    shell = [(0, 0), (10, 0), (10, 10), (0, 10), (0, 0)]
    hole = [(2, 2), (4, 2), (4, 4), (2, 2)]
    assert reduce_bounds(Polygon(shell, [hole])) == BoundingBox(0, 10, 0, 10)


def test_multipolygon():
    geometry = MultiPolygon([
        Polygon([(0, 0), (1, 0), (1, 1)]),
        Polygon([(-5, -5), (-4, -5), (-4, -3)]),
    ])
    assert reduce_bounds(geometry) == BoundingBox(-5, 1, -5, 1)


def test_empty_members_are_skipped():
    geometry = GeometryCollection([Point(), LineString(), Point(2, 3)])
    assert reduce_bounds(geometry) == BoundingBox(2, 2, 3, 3)


def test_collection_of_empties_is_empty():
    assert reduce_bounds(GeometryCollection([Point(), Polygon()])) is None
    assert reduce_bounds(GeometryCollection()) is None


def test_nan_point_is_empty():
    wkb = b"\x01" + struct.pack("<I", 1) + struct.pack("<dd", float("nan"), float("nan"))
    assert reduce_bounds(shapely.from_wkb(wkb)) is None


def test_point_with_one_nan_ordinate_is_empty():
    for x, y in ((float("nan"), 2.0), (2.0, float("nan"))):
        wkb = b"\x01" + struct.pack("<I", 1) + struct.pack("<dd", x, y)
        assert reduce_bounds(shapely.from_wkb(wkb)) is None


def test_nan_vertex_is_skipped():
    coords = ((0.0, 0.0), (float("nan"), 5.0), (2.0, 3.0))
    wkb = b"\x01" + struct.pack("<II", 2, len(coords))
    wkb += b"".join(struct.pack("<dd", x, y) for x, y in coords)
    assert reduce_bounds(shapely.from_wkb(wkb)) == BoundingBox(0, 2, 0, 3)


def test_z_is_ignored():
    assert reduce_bounds(LineString([(0, 0, 100), (1, 2, -100)])) == BoundingBox(0, 1, 0, 2)


def test_deep_nesting_beyond_recursion_limit():
    depth = sys.getrecursionlimit() + 100
    header = b"\x01" + struct.pack("<I", 7) + struct.pack("<I", 1)
    point = b"\x01" + struct.pack("<I", 1) + struct.pack("<dd", 3.0, 4.0)
    geometry = shapely.from_wkb(header * depth + point)
    assert reduce_bounds(geometry) == BoundingBox(3.0, 3.0, 4.0, 4.0)


def test_merge_rules():
    a = BoundingBox(0, 1, 0, 1)
    b = BoundingBox(-1, 0.5, 2, 3)
    assert a.merge(b) == BoundingBox(-1, 1, 0, 3)
    assert a.merge(None) is a
    assert merge_bounds(None, b) is b
    assert merge_bounds(None, None) is None


def test_as_tuple_order_matches_index_columns():
    assert BoundingBox(1, 2, 3, 4).as_tuple() == (1, 2, 3, 4)


@pytest.mark.parametrize("geometry", [
    Point(0, 0),
    LineString([(0, 0), (3, 4)]),
    Polygon([(0, 0), (2, 0), (2, 5), (0, 0)]),
    MultiPoint([(7, 1), (-3, 2)]),
])
def test_agrees_with_shapely_bounds(geometry):
    minx, miny, maxx, maxy = geometry.bounds
    assert reduce_bounds(geometry) == BoundingBox(minx, maxx, miny, maxy)

# ============================================================================
# MODULE CONTEXT - BOUNDS REDUCER
# ============================================================================
# STATUS: Core - Bounding box computation
# PURPOSE: Minimum enclosing XY rectangle of any shapely geometry, or None for Empty
# EXPORTS: BoundingBox, merge_bounds, reduce_bounds, is_empty
# DEPENDENCIES: shapely
# PATTERNS: Closed dispatch over the seven WKB geometry kinds, explicit work stack
# ============================================================================

"""
Bounding box reduction over shapely geometries.

Only X and Y are considered; Z and M ordinates are ignored. The result is
None when the geometry has no coordinates at all ("Empty"), which is distinct
from a degenerate zero-area box such as the bounds of a single point.

GeometryCollections are walked with an explicit stack rather than recursion,
so nesting depth is bounded only by memory.

A coordinate with a NaN X or Y contributes nothing. A Point whose X and Y
are both NaN is how GeoPackage writers encode POINT EMPTY in WKB, so it
counts as Empty; a Point with only one NaN ordinate counts as Empty too.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from shapely.geometry.base import BaseGeometry

from .errors import UnsupportedGeometryTypeError


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned XY rectangle. Field order matches the rtree index columns."""
    minx: float
    maxx: float
    miny: float
    maxy: float

    def merge(self, other: Optional["BoundingBox"]) -> "BoundingBox":
        """Smallest box covering both. Merging with None (Empty) is the identity."""
        if other is None:
            return self
        return BoundingBox(
            minx=min(self.minx, other.minx),
            maxx=max(self.maxx, other.maxx),
            miny=min(self.miny, other.miny),
            maxy=max(self.maxy, other.maxy),
        )

    def as_tuple(self):
        return (self.minx, self.maxx, self.miny, self.maxy)


def merge_bounds(a: Optional[BoundingBox], b: Optional[BoundingBox]) -> Optional[BoundingBox]:
    """Merge two possibly-Empty results."""
    if a is None:
        return b
    return a.merge(b)


class _Extent:
    """Running min/max accumulator used by reduce_bounds."""

    __slots__ = ("minx", "maxx", "miny", "maxy", "seen")

    def __init__(self):
        self.minx = math.inf
        self.maxx = -math.inf
        self.miny = math.inf
        self.maxy = -math.inf
        self.seen = False

    def add(self, x: float, y: float) -> None:
        if math.isnan(x) or math.isnan(y):
            return
        if x < self.minx:
            self.minx = x
        if x > self.maxx:
            self.maxx = x
        if y < self.miny:
            self.miny = y
        if y > self.maxy:
            self.maxy = y
        self.seen = True

    def add_coords(self, coords: Iterable[Sequence[float]]) -> None:
        for coord in coords:
            self.add(coord[0], coord[1])

    def result(self) -> Optional[BoundingBox]:
        if not self.seen:
            return None
        return BoundingBox(self.minx, self.maxx, self.miny, self.maxy)


_MULTI_KINDS = frozenset((
    "MultiPoint",
    "MultiLineString",
    "MultiPolygon",
    "GeometryCollection",
))


def reduce_bounds(geometry: BaseGeometry) -> Optional[BoundingBox]:
    """
    Compute the XY bounding box of a geometry.

    Args:
        geometry: Any shapely geometry

    Returns:
        BoundingBox, or None if the geometry holds no coordinates

    Raises:
        UnsupportedGeometryTypeError: geometry kind outside the WKB core set
    """
    extent = _Extent()
    stack = [geometry]

    while stack:
        geom = stack.pop()
        kind = geom.geom_type

        if kind == "Point":
            if geom.is_empty:
                continue
            extent.add(geom.x, geom.y)

        elif kind in ("LineString", "LinearRing"):
            extent.add_coords(geom.coords)

        elif kind == "Polygon":
            if geom.is_empty:
                continue
            extent.add_coords(geom.exterior.coords)
            for ring in geom.interiors:
                extent.add_coords(ring.coords)

        elif kind in _MULTI_KINDS:
            stack.extend(geom.geoms)

        else:
            raise UnsupportedGeometryTypeError(kind)

    return extent.result()


def is_empty(geometry: BaseGeometry) -> bool:
    """True when reduce_bounds would return None."""
    return reduce_bounds(geometry) is None

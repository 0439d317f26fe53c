# ============================================================================
# MODULE CONTEXT - SPATIAL SQL FUNCTIONS
# ============================================================================
# STATUS: Core - Scalar functions called by the rtree triggers
# PURPOSE: ST_MinX/ST_MaxX/ST_MinY/ST_MaxY/ST_IsEmpty over GeoPackage geometry blobs
# EXPORTS: SpatialFunction, SPATIAL_FUNCTIONS, FUNCTION_NAMES, register_spatial_functions
# DEPENDENCIES: sqlite3, codec, bounds
# PATTERNS: Explicit per-connection registration, no global state
# ============================================================================

"""
Spatial scalar functions for SQLite.

Every function takes one argument: a GeoPackage geometry blob or NULL.
NULL in gives NULL out. ST_Min*/ST_Max* also return NULL for an Empty
geometry; ST_IsEmpty returns 1 or 0.

Functions are registered per connection with register_spatial_functions().
A connection that mutates a layer with a spatial index must have them
registered, since the index triggers call them.

These run once per row touched by a statement, so nothing here logs.
"""

import sqlite3
from typing import Callable, NamedTuple, Optional

from util_logger import LoggerFactory, ComponentType

from .bounds import BoundingBox, reduce_bounds
from .codec import blob_to_geometry

logger = LoggerFactory.create_logger(ComponentType.FUNCTION, "SpatialFunctions")

_BLOB_TYPES = (bytes, bytearray, memoryview)


class SpatialFunction(NamedTuple):
    """One entry of the function registry."""
    name: str
    arity: int
    deterministic: bool
    func: Callable


def _bounds(blob) -> Optional[BoundingBox]:
    if not isinstance(blob, _BLOB_TYPES):
        raise TypeError(f"expected geometry blob, got {type(blob).__name__}")
    return reduce_bounds(blob_to_geometry(blob))


def st_minx(blob) -> Optional[float]:
    if blob is None:
        return None
    box = _bounds(blob)
    return None if box is None else box.minx


def st_maxx(blob) -> Optional[float]:
    if blob is None:
        return None
    box = _bounds(blob)
    return None if box is None else box.maxx


def st_miny(blob) -> Optional[float]:
    if blob is None:
        return None
    box = _bounds(blob)
    return None if box is None else box.miny


def st_maxy(blob) -> Optional[float]:
    if blob is None:
        return None
    box = _bounds(blob)
    return None if box is None else box.maxy


def st_isempty(blob) -> Optional[int]:
    if blob is None:
        return None
    return 1 if _bounds(blob) is None else 0


SPATIAL_FUNCTIONS = (
    SpatialFunction("ST_MinX", 1, True, st_minx),
    SpatialFunction("ST_MaxX", 1, True, st_maxx),
    SpatialFunction("ST_MinY", 1, True, st_miny),
    SpatialFunction("ST_MaxY", 1, True, st_maxy),
    SpatialFunction("ST_IsEmpty", 1, True, st_isempty),
)

FUNCTION_NAMES = tuple(f.name for f in SPATIAL_FUNCTIONS)


def register_spatial_functions(conn: sqlite3.Connection) -> None:
    """
    Make the spatial functions callable from SQL on this connection.

    Args:
        conn: Open sqlite3 connection

    Raises:
        sqlite3.NotSupportedError: SQLite too old for deterministic functions
    """
    for function in SPATIAL_FUNCTIONS:
        conn.create_function(
            function.name,
            function.arity,
            function.func,
            deterministic=function.deterministic,
        )
    logger.debug(f"Registered spatial functions: {', '.join(FUNCTION_NAMES)}")

# ============================================================================
# MODULE CONTEXT - LAYER METADATA MAPPINGS
# ============================================================================
# STATUS: Core - Enum mappings for gpkg_geometry_columns and table columns
# PURPOSE: Translate z/m flags, geometry type names and declared column types
# EXPORTS: Dimension, to_flags, from_flags, GeometryType, ColumnType, column_type_from_str
# DEPENDENCIES: None (stdlib enum)
# PATTERNS: Closed lookup tables, str-valued enums
# ============================================================================

"""
Layer metadata mappings.

- Dimension <-> (z, m) flags stored in gpkg_geometry_columns
- GeometryType <-> geometry_type_name
- ColumnType <-> SQLite declared column types

The GeoPackage standard allows z/m = 2 ("optional"). That value is
rejected: from_flags only maps the four 0/1 pairs.
"""

from enum import Enum
from typing import Optional, Tuple

from .errors import InvalidDimensionError, UnsupportedGeometryTypeError


# ============================================================================
# COORDINATE DIMENSION
# ============================================================================

class Dimension(str, Enum):
    """Coordinate dimension of a geometry column."""
    XY = "XY"
    XYZ = "XYZ"
    XYM = "XYM"
    XYZM = "XYZM"

    @property
    def has_z(self) -> bool:
        return self in (Dimension.XYZ, Dimension.XYZM)

    @property
    def has_m(self) -> bool:
        return self in (Dimension.XYM, Dimension.XYZM)


_DIMENSION_TO_FLAGS = {
    Dimension.XY: (0, 0),
    Dimension.XYZ: (1, 0),
    Dimension.XYM: (0, 1),
    Dimension.XYZM: (1, 1),
}
_FLAGS_TO_DIMENSION = {flags: dim for dim, flags in _DIMENSION_TO_FLAGS.items()}


def to_flags(dimension: Dimension) -> Tuple[int, int]:
    """Return the (z, m) pair stored for a dimension."""
    return _DIMENSION_TO_FLAGS[Dimension(dimension)]


def from_flags(z: int, m: int) -> Dimension:
    """
    Map a stored (z, m) pair back to a Dimension.

    Raises:
        InvalidDimensionError: anything but (0,0), (1,0), (0,1), (1,1)
    """
    if type(z) is not int or type(m) is not int:
        raise InvalidDimensionError(z, m)
    try:
        return _FLAGS_TO_DIMENSION[(z, m)]
    except KeyError:
        raise InvalidDimensionError(z, m) from None


# ============================================================================
# GEOMETRY TYPE NAMES
# ============================================================================

class GeometryType(str, Enum):
    """geometry_type_name values accepted in gpkg_geometry_columns."""
    GEOMETRY = "GEOMETRY"
    POINT = "POINT"
    LINESTRING = "LINESTRING"
    POLYGON = "POLYGON"
    MULTIPOINT = "MULTIPOINT"
    MULTILINESTRING = "MULTILINESTRING"
    MULTIPOLYGON = "MULTIPOLYGON"
    GEOMETRYCOLLECTION = "GEOMETRYCOLLECTION"


def geometry_type_to_str(geometry_type: GeometryType) -> str:
    return GeometryType(geometry_type).value


def geometry_type_from_str(name: str) -> GeometryType:
    """Case-insensitive lookup of a geometry type name."""
    try:
        return GeometryType(name.strip().upper())
    except (ValueError, AttributeError):
        raise UnsupportedGeometryTypeError(str(name)) from None


# ============================================================================
# COLUMN TYPES
# ============================================================================

class ColumnType(str, Enum):
    """Property column types a layer can declare."""
    INTEGER = "INTEGER"
    DOUBLE = "DOUBLE"
    TEXT = "TEXT"
    BOOLEAN = "BOOLEAN"
    BLOB = "BLOB"


_COLUMN_TYPE_ALIASES = {
    "TINYINT": ColumnType.INTEGER,
    "SMALLINT": ColumnType.INTEGER,
    "MEDIUMINT": ColumnType.INTEGER,
    "INT": ColumnType.INTEGER,
    "INTEGER": ColumnType.INTEGER,
    "DOUBLE": ColumnType.DOUBLE,
    "FLOAT": ColumnType.DOUBLE,
    "REAL": ColumnType.DOUBLE,
    "TEXT": ColumnType.TEXT,
    "BOOLEAN": ColumnType.BOOLEAN,
    "BLOB": ColumnType.BLOB,
}


def column_type_to_str(column_type: ColumnType) -> str:
    return ColumnType(column_type).value


def column_type_from_str(declared_type: str) -> Optional[ColumnType]:
    """
    Map a declared SQLite column type to a ColumnType.

    Length-qualified types such as TEXT(32) map like their base type.
    Geometry type names map to BLOB. Returns None for anything else.
    """
    base = declared_type.split("(", 1)[0].strip().upper()
    if base in _COLUMN_TYPE_ALIASES:
        return _COLUMN_TYPE_ALIASES[base]
    if base in GeometryType.__members__:
        return ColumnType.BLOB
    return None

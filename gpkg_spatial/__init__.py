"""
gpkg_spatial - GeoPackage geometry encoding and R-tree spatial index maintenance.

Exports:
    GeoPackage: repository over one GeoPackage file
    encode/decode: GeoPackage Binary header codec
    reduce_bounds: XY bounding box of a shapely geometry
    register_spatial_functions: ST_MinX/ST_MaxX/ST_MinY/ST_MaxY/ST_IsEmpty for sqlite3
    SpatialIndexGenerator: rtree DDL, bulk load and triggers

Usage:
    from gpkg_spatial import GeoPackage, GeometryType

    with GeoPackage.create("places.gpkg") as gpkg:
        gpkg.create_layer("places", GeometryType.POINT)
        gpkg.insert_feature("places", Point(1.5, -2.0))
"""

from .bounds import BoundingBox, is_empty, merge_bounds, reduce_bounds
from .codec import (
    GeometryHeader,
    blob_to_geometry,
    decode,
    encode,
    envelope_size,
    geometry_to_blob,
    read_header,
)
from .dimensions import (
    ColumnType,
    Dimension,
    GeometryType,
    column_type_from_str,
    column_type_to_str,
    from_flags,
    geometry_type_from_str,
    geometry_type_to_str,
    to_flags,
)
from .errors import (
    CompositePrimaryKeyError,
    GeoPackageError,
    GeometryBlobError,
    InvalidDimensionError,
    InvalidEnvelopeError,
    InvalidFlagsError,
    InvalidGeometryLengthError,
    InvalidPropertyError,
    LayerAlreadyExistsError,
    LayerError,
    LayerNotFoundError,
    MissingPrimaryKeyError,
    MissingSpatialRefSysError,
    ReadOnlyError,
    UnsupportedColumnTypeError,
    UnsupportedGeometryTypeError,
)
from .functions import FUNCTION_NAMES, SPATIAL_FUNCTIONS, register_spatial_functions
from .integrity import CheckResult, HealthStatus, check_spatial_index, check_triggers, get_integrity_report
from .models import ColumnSpec, Feature, LayerInfo
from .repository import GeoPackage
from .rtree import (
    GeometryState,
    IndexAction,
    IndexActionKind,
    RowEvent,
    RowTransition,
    SpatialIndexGenerator,
    TriggerCase,
    fired_cases,
    plan_index_actions,
    quote_identifier,
)

__version__ = "0.1.0"

__all__ = [
    "BoundingBox", "is_empty", "merge_bounds", "reduce_bounds",
    "GeometryHeader", "blob_to_geometry", "decode", "encode", "envelope_size",
    "geometry_to_blob", "read_header",
    "ColumnType", "Dimension", "GeometryType", "column_type_from_str", "column_type_to_str",
    "from_flags", "geometry_type_from_str", "geometry_type_to_str", "to_flags",
    "CompositePrimaryKeyError", "GeoPackageError", "GeometryBlobError", "InvalidDimensionError",
    "InvalidEnvelopeError", "InvalidFlagsError", "InvalidGeometryLengthError",
    "InvalidPropertyError", "LayerAlreadyExistsError", "LayerError", "LayerNotFoundError",
    "MissingPrimaryKeyError", "MissingSpatialRefSysError", "ReadOnlyError",
    "UnsupportedColumnTypeError", "UnsupportedGeometryTypeError",
    "FUNCTION_NAMES", "SPATIAL_FUNCTIONS", "register_spatial_functions",
    "CheckResult", "HealthStatus", "check_spatial_index", "check_triggers", "get_integrity_report",
    "ColumnSpec", "Feature", "LayerInfo",
    "GeoPackage",
    "GeometryState", "IndexAction", "IndexActionKind", "RowEvent", "RowTransition",
    "SpatialIndexGenerator", "TriggerCase", "fired_cases", "plan_index_actions", "quote_identifier",
]

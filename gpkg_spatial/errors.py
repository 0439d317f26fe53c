# ============================================================================
# MODULE CONTEXT - ERROR TYPES
# ============================================================================
# STATUS: Core - Exception hierarchy
# PURPOSE: Typed failures for blob decoding, layer metadata and repository misuse
# EXPORTS: GeoPackageError and subclasses
# DEPENDENCIES: None
# PATTERNS: Single base class, ValueError mixins for data errors
# ============================================================================

"""
GeoPackage error types.

Decode/dimension errors mean the stored data is corrupt or non-conformant.
They are never retried; callers surface them as the failure of the read or
write that hit them. WKB payload errors are not wrapped here: shapely's
GEOSException propagates unchanged.
"""


class GeoPackageError(Exception):
    """Base class for every error raised by gpkg_spatial."""


# ============================================================================
# GEOMETRY BLOB
# ============================================================================

class GeometryBlobError(GeoPackageError, ValueError):
    """A GeoPackage Binary header could not be read."""


class InvalidFlagsError(GeometryBlobError):
    """The envelope indicator in the flags byte is not one of the five legal patterns."""

    def __init__(self, flags: int):
        self.flags = flags
        super().__init__(f"invalid gpkg geometry flags: {flags:#04x}")


class InvalidGeometryLengthError(GeometryBlobError):
    """The blob is shorter than the fixed 8-byte header."""

    def __init__(self, length: int, minimum: int):
        self.length = length
        self.minimum = minimum
        super().__init__(
            f"invalid gpkg geometry length: got {length} bytes, expected at least {minimum}"
        )


class InvalidEnvelopeError(GeometryBlobError):
    """The blob is too short for the envelope its flags declare."""

    def __init__(self, length: int, required: int):
        self.length = length
        self.required = required
        super().__init__(
            f"invalid gpkg geometry envelope length: got {length} bytes, required {required}"
        )


# ============================================================================
# METADATA
# ============================================================================

class InvalidDimensionError(GeoPackageError, ValueError):
    """The (z, m) pair is not one of (0,0), (1,0), (0,1), (1,1)."""

    def __init__(self, z, m):
        self.z = z
        self.m = m
        super().__init__(f"invalid or mixed geometry dimension (z={z}, m={m})")


class UnsupportedGeometryTypeError(GeoPackageError, ValueError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"unsupported geometry type: {name}")


class UnsupportedColumnTypeError(GeoPackageError, ValueError):
    def __init__(self, column: str, declared_type: str):
        self.column = column
        self.declared_type = declared_type
        super().__init__(f"unsupported column type for column '{column}': {declared_type}")


# ============================================================================
# LAYERS
# ============================================================================

class LayerError(GeoPackageError):
    """Base class for layer lookup and schema errors."""

    def __init__(self, layer_name: str, message: str):
        self.layer_name = layer_name
        super().__init__(message)


class LayerAlreadyExistsError(LayerError):
    def __init__(self, layer_name: str):
        super().__init__(layer_name, f"layer already exists: {layer_name}")


class LayerNotFoundError(LayerError):
    def __init__(self, layer_name: str):
        super().__init__(layer_name, f"layer not found: {layer_name}")


class MissingPrimaryKeyError(LayerError):
    def __init__(self, layer_name: str):
        super().__init__(layer_name, f"no primary key column found for layer: {layer_name}")


class CompositePrimaryKeyError(LayerError):
    def __init__(self, layer_name: str):
        super().__init__(layer_name, f"composite primary keys are not supported for layer: {layer_name}")


class InvalidPropertyError(LayerError):
    def __init__(self, layer_name: str, property_name: str):
        self.property_name = property_name
        super().__init__(layer_name, f"layer '{layer_name}' has no property column '{property_name}'")


class MissingSpatialRefSysError(GeoPackageError):
    def __init__(self, srs_id: int):
        self.srs_id = srs_id
        super().__init__(f"srs_id {srs_id} not found in gpkg_spatial_ref_sys")


class ReadOnlyError(GeoPackageError):
    def __init__(self):
        super().__init__("operation not allowed on read-only GeoPackage")

# ============================================================================
# MODULE CONTEXT - GEOMETRY CODEC
# ============================================================================
# STATUS: Core - GeoPackage Binary header encode/decode
# PURPOSE: Wrap/unwrap WKB payloads in the GeoPackage Binary (GPB) header
# EXPORTS: encode, decode, read_header, envelope_size, GeometryHeader, geometry_to_blob, blob_to_geometry
# DEPENDENCIES: struct, shapely
# SOURCE: https://www.geopackage.org/spec140/index.html#gpb_format
# PATTERNS: Pure functions, no shared state (safe to call once per row)
# ============================================================================

"""
GeoPackage Binary geometry codec.

Layout of a geometry blob:

    offset 0-1  magic "GP"
    offset 2    version (0)
    offset 3    flags: bit 0 byte order (1 = little endian),
                       bits 1-3 envelope indicator, other bits unused here
    offset 4-7  srs_id, int32 in the byte order of bit 0
    offset 8..  envelope (0/32/48/48/64 bytes) then the WKB payload

The decoder accepts all five legal envelope indicators and skips the
envelope without reading it. The encoder always writes the 8-byte header
with flags 0x01 (little endian, no envelope).
"""

import struct
from dataclasses import dataclass
from typing import Tuple, Union

import shapely
from shapely.geometry.base import BaseGeometry

from .errors import InvalidEnvelopeError, InvalidFlagsError, InvalidGeometryLengthError

MAGIC = b"GP"
VERSION = 0
HEADER_SIZE = 8

FLAG_LITTLE_ENDIAN = 0b0000_0001
ENVELOPE_MASK = 0b0000_1110

# envelope indicator -> envelope byte size
#   0: none
#   1: [minx, maxx, miny, maxy]
#   2: [minx, maxx, miny, maxy, minz, maxz]
#   3: [minx, maxx, miny, maxy, minm, maxm]
#   4: [minx, maxx, miny, maxy, minz, maxz, minm, maxm]
ENVELOPE_SIZES = {0: 0, 1: 32, 2: 48, 3: 48, 4: 64}

_SRS_ID_LE = struct.Struct("<i")
_SRS_ID_BE = struct.Struct(">i")

BlobLike = Union[bytes, bytearray, memoryview]


@dataclass(frozen=True)
class GeometryHeader:
    """Fixed part of a GeoPackage Binary blob."""
    magic: bytes
    version: int
    flags: int
    srs_id: int
    envelope_indicator: int
    envelope_size: int

    @property
    def little_endian(self) -> bool:
        return bool(self.flags & FLAG_LITTLE_ENDIAN)

    @property
    def payload_offset(self) -> int:
        return HEADER_SIZE + self.envelope_size


def envelope_indicator(flags: int) -> int:
    """Bits 1-3 of the flags byte."""
    return (flags & ENVELOPE_MASK) >> 1


def envelope_size(flags: int) -> int:
    """
    Envelope length in bytes for a flags byte.

    Raises:
        InvalidFlagsError: indicator is 5, 6 or 7
    """
    try:
        return ENVELOPE_SIZES[envelope_indicator(flags)]
    except KeyError:
        raise InvalidFlagsError(flags) from None


def read_header(blob: BlobLike) -> GeometryHeader:
    """
    Parse the fixed header of a geometry blob.

    Raises:
        InvalidGeometryLengthError: fewer than 8 bytes
        InvalidFlagsError: unknown envelope indicator
        InvalidEnvelopeError: blob ends inside the declared envelope
    """
    length = len(blob)
    if length < HEADER_SIZE:
        raise InvalidGeometryLengthError(length, HEADER_SIZE)

    flags = blob[3]
    size = envelope_size(flags)
    if length < HEADER_SIZE + size:
        raise InvalidEnvelopeError(length, HEADER_SIZE + size)

    srs_struct = _SRS_ID_LE if flags & FLAG_LITTLE_ENDIAN else _SRS_ID_BE
    (srs_id,) = srs_struct.unpack_from(blob, 4)

    return GeometryHeader(
        magic=bytes(blob[0:2]),
        version=blob[2],
        flags=flags,
        srs_id=srs_id,
        envelope_indicator=envelope_indicator(flags),
        envelope_size=size,
    )


def decode(blob: BlobLike) -> Tuple[int, bytes]:
    """
    Split a geometry blob into (srs_id, wkb_payload).

    The payload is returned verbatim; it is not parsed here.
    """
    header = read_header(blob)
    return header.srs_id, bytes(blob[header.payload_offset:])


def encode(payload: BlobLike, srs_id: int) -> bytes:
    """
    Wrap a WKB payload in the minimal GeoPackage Binary header.

    Raises:
        ValueError: srs_id does not fit in a signed 32-bit integer
    """
    if not -2**31 <= srs_id <= 2**31 - 1:
        raise ValueError(f"srs_id out of int32 range: {srs_id}")

    return b"".join((
        MAGIC,
        bytes((VERSION, FLAG_LITTLE_ENDIAN)),
        _SRS_ID_LE.pack(srs_id),
        bytes(payload),
    ))


# ============================================================================
# SHAPELY BRIDGE
# ============================================================================

def geometry_to_blob(geometry: BaseGeometry, srs_id: int) -> bytes:
    """Encode a shapely geometry as little-endian ISO WKB inside a GPB header."""
    wkb = shapely.to_wkb(geometry, byte_order=1, flavor="iso")
    return encode(wkb, srs_id)


def blob_to_geometry(blob: BlobLike) -> BaseGeometry:
    """
    Decode a geometry blob into a shapely geometry.

    Raises:
        GeometryBlobError: malformed header
        shapely.errors.GEOSException: malformed WKB payload
    """
    _, payload = decode(blob)
    return shapely.from_wkb(payload)

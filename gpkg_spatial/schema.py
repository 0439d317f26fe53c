# ============================================================================
# MODULE CONTEXT - GEOPACKAGE SCHEMA
# ============================================================================
# STATUS: Core - GeoPackage core metadata tables
# PURPOSE: Bootstrap a new GeoPackage and hold the fixed metadata SQL
# EXPORTS: initialize_gpkg, is_initialized, register_rtree_extension, unregister_rtree_extension,
#          DEFAULT_SPATIAL_REF_SYS, APPLICATION_ID, USER_VERSION
# DEPENDENCIES: sqlite3, util_logger
# SOURCE: https://www.geopackage.org/spec140/index.html#table_definition_sql
# PATTERNS: SQL constants, log-and-raise decorator on bootstrap
# ============================================================================

"""
GeoPackage core schema.

Only the vector-relevant tables are created: gpkg_spatial_ref_sys,
gpkg_contents, gpkg_geometry_columns and gpkg_extensions. Tile matrix tables
belong to raster content and are not created here.
"""

import sqlite3
from typing import List

from util_logger import LoggerFactory, ComponentType, log_exceptions

logger = LoggerFactory.create_logger(ComponentType.SCHEMA, "GeoPackageSchema")

# "GPKG" as a big-endian int32
APPLICATION_ID = 0x47504B47
# GeoPackage 1.4.0
USER_VERSION = 10400

RTREE_EXTENSION_NAME = "gpkg_rtree_index"
RTREE_EXTENSION_DEFINITION = "http://www.geopackage.org/spec120/#extension_rtree"
RTREE_EXTENSION_SCOPE = "write-only"


# ============================================================================
# CORE TABLE DDL
# ============================================================================

SQL_GPKG_SPATIAL_REF_SYS = """
CREATE TABLE gpkg_spatial_ref_sys (
  srs_name TEXT NOT NULL,
  srs_id INTEGER PRIMARY KEY,
  organization TEXT NOT NULL,
  organization_coordsys_id INTEGER NOT NULL,
  definition TEXT NOT NULL,
  description TEXT
)
"""

SQL_GPKG_CONTENTS = """
CREATE TABLE gpkg_contents (
  table_name TEXT NOT NULL PRIMARY KEY,
  data_type TEXT NOT NULL,
  identifier TEXT UNIQUE,
  description TEXT DEFAULT '',
  last_change DATETIME NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ','now')),
  min_x DOUBLE,
  min_y DOUBLE,
  max_x DOUBLE,
  max_y DOUBLE,
  srs_id INTEGER,
  CONSTRAINT fk_gc_r_srs_id FOREIGN KEY (srs_id) REFERENCES gpkg_spatial_ref_sys(srs_id)
)
"""

SQL_GPKG_GEOMETRY_COLUMNS = """
CREATE TABLE gpkg_geometry_columns (
  table_name TEXT NOT NULL,
  column_name TEXT NOT NULL,
  geometry_type_name TEXT NOT NULL,
  srs_id INTEGER NOT NULL,
  z TINYINT NOT NULL,
  m TINYINT NOT NULL,
  CONSTRAINT pk_geom_cols PRIMARY KEY (table_name, column_name),
  CONSTRAINT uk_gc_table_name UNIQUE (table_name),
  CONSTRAINT fk_gc_tn FOREIGN KEY (table_name) REFERENCES gpkg_contents(table_name),
  CONSTRAINT fk_gc_srs FOREIGN KEY (srs_id) REFERENCES gpkg_spatial_ref_sys (srs_id)
)
"""

SQL_GPKG_EXTENSIONS = """
CREATE TABLE gpkg_extensions (
  table_name TEXT,
  column_name TEXT,
  extension_name TEXT NOT NULL,
  definition TEXT NOT NULL,
  scope TEXT NOT NULL,
  CONSTRAINT ge_tce UNIQUE (table_name, column_name, extension_name)
)
"""

CORE_TABLES = (
    ("gpkg_spatial_ref_sys", SQL_GPKG_SPATIAL_REF_SYS),
    ("gpkg_contents", SQL_GPKG_CONTENTS),
    ("gpkg_geometry_columns", SQL_GPKG_GEOMETRY_COLUMNS),
    ("gpkg_extensions", SQL_GPKG_EXTENSIONS),
)


# ============================================================================
# DEFAULT SPATIAL REFERENCE SYSTEMS
# ============================================================================

EPSG4326_WKT = (
    'GEOGCS["WGS 84",DATUM["WGS_1984",SPHEROID["WGS 84",6378137,298.257223563,'
    'AUTHORITY["EPSG","7030"]],AUTHORITY["EPSG","6326"]],PRIMEM["Greenwich",0,'
    'AUTHORITY["EPSG","8901"]],UNIT["degree",0.0174532925199433,AUTHORITY["EPSG","9122"]],'
    'AXIS["Latitude",NORTH],AXIS["Longitude",EAST],AUTHORITY["EPSG","4326"]]'
)

# (srs_name, srs_id, organization, organization_coordsys_id, definition, description)
DEFAULT_SPATIAL_REF_SYS = (
    ("WGS 84", 4326, "EPSG", 4326, EPSG4326_WKT, "WGS 84"),
    ("Undefined Cartesian SRS", -1, "NONE", -1, "undefined",
     "undefined Cartesian coordinate reference system"),
    ("Undefined geographic SRS", 0, "NONE", 0, "undefined",
     "undefined geographic coordinate reference system"),
)

SQL_INSERT_SPATIAL_REF_SYS = """
INSERT INTO gpkg_spatial_ref_sys
  (srs_name, srs_id, organization, organization_coordsys_id, definition, description)
VALUES
  (?, ?, ?, ?, ?, ?)
"""


# ============================================================================
# METADATA STATEMENTS
# ============================================================================

SQL_LIST_LAYERS = "SELECT table_name FROM gpkg_contents WHERE data_type = 'features' ORDER BY table_name"

SQL_INSERT_GPKG_CONTENTS = """
INSERT INTO gpkg_contents
  (table_name, data_type, identifier, description, srs_id)
VALUES
  (?, 'features', ?, '', ?)
"""

SQL_INSERT_GPKG_GEOMETRY_COLUMNS = """
INSERT INTO gpkg_geometry_columns
  (table_name, column_name, geometry_type_name, srs_id, z, m)
VALUES
  (?, ?, ?, ?, ?, ?)
"""

SQL_SELECT_GEOMETRY_COLUMN_META = """
SELECT column_name, geometry_type_name, z, m, srs_id
FROM gpkg_geometry_columns
WHERE table_name = ?
"""

SQL_SRS_EXISTS = "SELECT 1 FROM gpkg_spatial_ref_sys WHERE srs_id = ?"

SQL_TABLE_COLUMNS = "SELECT name, type, pk FROM pragma_table_info(?) ORDER BY cid"

SQL_DELETE_GEOMETRY_COLUMNS = "DELETE FROM gpkg_geometry_columns WHERE table_name = ?"
SQL_DELETE_CONTENTS = "DELETE FROM gpkg_contents WHERE table_name = ?"

SQL_INSERT_EXTENSION = """
INSERT OR IGNORE INTO gpkg_extensions
  (table_name, column_name, extension_name, definition, scope)
VALUES
  (?, ?, ?, ?, ?)
"""

SQL_DELETE_EXTENSION = """
DELETE FROM gpkg_extensions
WHERE table_name = ? AND column_name = ? AND extension_name = ?
"""


# ============================================================================
# BOOTSTRAP
# ============================================================================

def existing_core_tables(conn: sqlite3.Connection) -> List[str]:
    """Names of the core gpkg_* tables already present."""
    names = [name for name, _ in CORE_TABLES]
    placeholders = ", ".join("?" for _ in names)
    rows = conn.execute(
        f"SELECT name FROM sqlite_master WHERE type = 'table' AND name IN ({placeholders})",
        names,
    ).fetchall()
    return sorted(row[0] for row in rows)


def is_initialized(conn: sqlite3.Connection) -> bool:
    """True when all four core tables exist."""
    return len(existing_core_tables(conn)) == len(CORE_TABLES)


@log_exceptions(logger=logger)
def initialize_gpkg(conn: sqlite3.Connection) -> None:
    """
    Create the core tables, default SRS rows and file identification pragmas.

    Runs inside whatever transaction the caller holds. The pragmas are not
    transactional in SQLite and take effect immediately.

    Args:
        conn: Connection to an empty database

    Raises:
        sqlite3.Error: any table already exists, or the database is read-only
    """
    conn.execute(f"PRAGMA application_id = {APPLICATION_ID}")
    conn.execute(f"PRAGMA user_version = {USER_VERSION}")

    conn.execute(SQL_GPKG_SPATIAL_REF_SYS)
    conn.executemany(SQL_INSERT_SPATIAL_REF_SYS, DEFAULT_SPATIAL_REF_SYS)
    conn.execute(SQL_GPKG_CONTENTS)
    conn.execute(SQL_GPKG_GEOMETRY_COLUMNS)
    conn.execute(SQL_GPKG_EXTENSIONS)

    logger.info(
        f"✅ GeoPackage initialized with {len(DEFAULT_SPATIAL_REF_SYS)} spatial reference systems"
    )


# ============================================================================
# EXTENSION REGISTRATION
# ============================================================================

def register_rtree_extension(conn: sqlite3.Connection, table: str, geometry_column: str) -> None:
    """Record gpkg_rtree_index for a geometry column. No-op if already recorded."""
    conn.execute(
        SQL_INSERT_EXTENSION,
        (table, geometry_column, RTREE_EXTENSION_NAME,
         RTREE_EXTENSION_DEFINITION, RTREE_EXTENSION_SCOPE),
    )


def unregister_rtree_extension(conn: sqlite3.Connection, table: str, geometry_column: str) -> None:
    conn.execute(SQL_DELETE_EXTENSION, (table, geometry_column, RTREE_EXTENSION_NAME))

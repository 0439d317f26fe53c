# ============================================================================
# MODULE CONTEXT - GEOPACKAGE REPOSITORY
# ============================================================================
# STATUS: Core - GeoPackage connection and feature layer access
# PURPOSE: Create/open GeoPackage files, manage feature layers and their spatial index
# EXPORTS: GeoPackage
# DEPENDENCIES: sqlite3, shapely, config, util_logger, gpkg_spatial.*
# SOURCE: SQLite file (or :memory:) in GeoPackage 1.4 layout
# PATTERNS: Repository Pattern, explicit transactions via context manager
# ENTRY_POINTS: gpkg = GeoPackage.create(path); gpkg.create_layer(...)
# ============================================================================

"""
GeoPackage Repository

Wraps one sqlite3 connection. The spatial SQL functions are registered on
every connection this class opens, so the rtree triggers work for writes
made through it (and through gpkg.connection).

Transactions:
    The connection runs in autocommit mode (isolation_level=None) and each
    mutating method opens its own BEGIN/COMMIT, so layer creation (table,
    metadata rows, index table, bulk load, triggers) is all-or-nothing.
    Inside an already open transaction (gpkg.transaction() or a caller's
    own BEGIN) methods run under a SAVEPOINT instead, and the outermost
    transaction decides the final commit or rollback.

Usage:
    with GeoPackage.create("roads.gpkg") as gpkg:
        gpkg.create_layer("roads", GeometryType.LINESTRING,
                          columns=[ColumnSpec(name="name", column_type=ColumnType.TEXT)])
        fid = gpkg.insert_feature("roads", LineString([(0, 0), (1, 1)]), {"name": "A1"})
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from shapely.geometry.base import BaseGeometry

from config import get_config
from util_logger import LoggerFactory, ComponentType

from .bounds import BoundingBox
from .codec import geometry_to_blob, read_header
from .dimensions import (
    Dimension,
    GeometryType,
    column_type_from_str,
    from_flags,
    geometry_type_from_str,
    geometry_type_to_str,
    to_flags,
)
from .errors import (
    CompositePrimaryKeyError,
    GeoPackageError,
    InvalidPropertyError,
    LayerAlreadyExistsError,
    LayerNotFoundError,
    MissingPrimaryKeyError,
    MissingSpatialRefSysError,
    ReadOnlyError,
    UnsupportedColumnTypeError,
)
from .functions import register_spatial_functions
from .models import ColumnSpec, Feature, LayerInfo
from .rtree import SpatialIndexGenerator, quote_identifier
from .schema import (
    SQL_DELETE_CONTENTS,
    SQL_DELETE_GEOMETRY_COLUMNS,
    SQL_INSERT_GPKG_CONTENTS,
    SQL_INSERT_GPKG_GEOMETRY_COLUMNS,
    SQL_LIST_LAYERS,
    SQL_SELECT_GEOMETRY_COLUMN_META,
    SQL_SRS_EXISTS,
    SQL_TABLE_COLUMNS,
    initialize_gpkg,
    is_initialized,
    register_rtree_extension,
    unregister_rtree_extension,
)

GeometryInput = Union[BaseGeometry, bytes, bytearray, memoryview, None]
PathLike = Union[str, Path]

# Marks "leave the geometry column out of the UPDATE"
_UNCHANGED = object()

_BLOB_TYPES = (bytes, bytearray, memoryview)


class GeoPackage:
    """
    Repository over one GeoPackage database.

    Prefer the constructors create(), open() and in_memory() over calling
    __init__ directly.
    """

    def __init__(self, conn: sqlite3.Connection, path: Optional[str] = None, read_only: bool = False):
        self._conn = conn
        self.path = path
        self.read_only = read_only
        self._savepoint_depth = 0
        self._logger = LoggerFactory.create_with_context(
            ComponentType.REPOSITORY, "GeoPackage", gpkg_path=path
        )
        register_spatial_functions(conn)

    # ========================================================================
    # Constructors / lifecycle
    # ========================================================================

    @classmethod
    def create(cls, path: PathLike) -> "GeoPackage":
        """
        Create a new GeoPackage file.

        Raises:
            FileExistsError: path already exists
        """
        path = Path(path)
        if path.exists():
            raise FileExistsError(f"GeoPackage already exists: {path}")

        conn = sqlite3.connect(str(path), isolation_level=None)
        gpkg = cls(conn, str(path))
        with gpkg.transaction():
            initialize_gpkg(conn)
        return gpkg

    @classmethod
    def open(cls, path: PathLike, read_only: bool = False) -> "GeoPackage":
        """
        Open an existing GeoPackage file.

        Args:
            path: File location
            read_only: Open with SQLite mode=ro; mutations raise ReadOnlyError

        Raises:
            FileNotFoundError: path does not exist
            GeoPackageError: file lacks the GeoPackage core tables
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"GeoPackage not found: {path}")

        if read_only:
            uri = f"{path.resolve().as_uri()}?mode=ro"
            conn = sqlite3.connect(uri, uri=True, isolation_level=None)
        else:
            conn = sqlite3.connect(str(path), isolation_level=None)

        if not is_initialized(conn):
            conn.close()
            raise GeoPackageError(f"not a GeoPackage (core tables missing): {path}")

        return cls(conn, str(path), read_only=read_only)

    @classmethod
    def in_memory(cls) -> "GeoPackage":
        """Fresh GeoPackage in a private :memory: database."""
        conn = sqlite3.connect(":memory:", isolation_level=None)
        gpkg = cls(conn, ":memory:")
        with gpkg.transaction():
            initialize_gpkg(conn)
        return gpkg

    @property
    def connection(self) -> sqlite3.Connection:
        """Underlying connection, with the spatial functions registered."""
        return self._conn

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "GeoPackage":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ========================================================================
    # Transactions
    # ========================================================================

    def _require_writable(self) -> None:
        if self.read_only:
            raise ReadOnlyError()

    @contextmanager
    def transaction(self):
        """
        Run a block in one transaction.

        Commits on success. On any exception rolls back, logs and re-raises.
        When a transaction is already open the block runs under a SAVEPOINT:
        an exception undoes only the block, and commit is left to the owner
        of the outer transaction.
        """
        self._require_writable()
        if self._conn.in_transaction:
            with self._savepoint():
                yield self._conn
            return

        self._conn.execute("BEGIN")
        try:
            yield self._conn
        except Exception as e:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
            self._logger.error(f"❌ Transaction rolled back: {type(e).__name__}: {e}")
            raise
        else:
            self._conn.execute("COMMIT")

    @contextmanager
    def _savepoint(self):
        self._savepoint_depth += 1
        name = f"gpkg_spatial_{self._savepoint_depth}"
        self._conn.execute(f"SAVEPOINT {name}")
        try:
            yield
        except Exception:
            if self._conn.in_transaction:
                self._conn.execute(f"ROLLBACK TO {name}")
                self._conn.execute(f"RELEASE {name}")
            raise
        else:
            self._conn.execute(f"RELEASE {name}")
        finally:
            self._savepoint_depth -= 1

    # ========================================================================
    # Layers
    # ========================================================================

    def list_layers(self) -> List[str]:
        """Names of all feature layers registered in gpkg_contents."""
        return [row[0] for row in self._conn.execute(SQL_LIST_LAYERS)]

    def _table_exists(self, name: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
        ).fetchone()
        return row is not None

    def create_layer(
        self,
        name: str,
        geometry_type: Union[GeometryType, str],
        dimension: Dimension = Dimension.XY,
        srs_id: Optional[int] = None,
        columns: Sequence[ColumnSpec] = (),
        geometry_column: Optional[str] = None,
    ) -> LayerInfo:
        """
        Create a feature layer with its spatial index.

        The table gets an INTEGER PRIMARY KEY AUTOINCREMENT id column, a BLOB
        geometry column and the given property columns. Metadata rows, the
        rtree index table, its bulk load and its seven triggers are written in
        the same transaction.

        Args:
            name: Table name
            geometry_type: Declared geometry type
            dimension: Coordinate dimension recorded as z/m flags
            srs_id: Spatial reference system (default: config.default_srs_id)
            columns: Property columns
            geometry_column: Geometry column name (default: config.default_geometry_column)

        Returns:
            LayerInfo of the new layer

        Raises:
            ReadOnlyError: GeoPackage opened read-only
            LayerAlreadyExistsError: table of that name already exists
            MissingSpatialRefSysError: srs_id not in gpkg_spatial_ref_sys
        """
        self._require_writable()
        config = get_config()

        if not isinstance(geometry_type, GeometryType):
            geometry_type = geometry_type_from_str(geometry_type)
        dimension = Dimension(dimension)
        srs_id = config.default_srs_id if srs_id is None else srs_id
        geometry_column = geometry_column or config.default_geometry_column
        id_column = config.default_id_column

        if self._table_exists(name):
            raise LayerAlreadyExistsError(name)
        if self._conn.execute(SQL_SRS_EXISTS, (srs_id,)).fetchone() is None:
            raise MissingSpatialRefSysError(srs_id)

        column_defs = [
            f"{quote_identifier(id_column)} INTEGER PRIMARY KEY AUTOINCREMENT",
            f"{quote_identifier(geometry_column)} BLOB",
        ] + [column.definition_sql() for column in columns]

        create_table = f"CREATE TABLE {quote_identifier(name)} ({', '.join(column_defs)})"
        z, m = to_flags(dimension)
        generator = SpatialIndexGenerator(name, geometry_column, id_column)

        with self.transaction() as conn:
            self._logger.debug(create_table)
            conn.execute(create_table)
            conn.execute(SQL_INSERT_GPKG_CONTENTS, (name, name, srs_id))
            conn.execute(
                SQL_INSERT_GPKG_GEOMETRY_COLUMNS,
                (name, geometry_column, geometry_type_to_str(geometry_type), srs_id, z, m),
            )
            generator.install(conn)
            if config.register_rtree_extension:
                register_rtree_extension(conn, name, geometry_column)

        self._logger.info(
            f"✅ Layer created: {name} ({geometry_type.value} {dimension.value}, srs_id={srs_id})"
        )
        return self.get_layer(name)

    def get_layer(self, name: str) -> LayerInfo:
        """
        Read a layer's metadata.

        Raises:
            LayerNotFoundError: no gpkg_geometry_columns row for the table
            InvalidDimensionError: stored z/m flags are not 0/1
            MissingPrimaryKeyError / CompositePrimaryKeyError: unusable primary key
            UnsupportedColumnTypeError: property column with an unknown declared type
        """
        meta = self._conn.execute(SQL_SELECT_GEOMETRY_COLUMN_META, (name,)).fetchone()
        if meta is None:
            raise LayerNotFoundError(name)
        geometry_column, type_name, z, m, srs_id = meta

        table_columns = self._conn.execute(SQL_TABLE_COLUMNS, (name,)).fetchall()
        pk_columns = [col_name for col_name, _, pk in table_columns if pk > 0]
        if not pk_columns:
            raise MissingPrimaryKeyError(name)
        if len(pk_columns) > 1:
            raise CompositePrimaryKeyError(name)
        primary_key = pk_columns[0]

        columns = []
        for col_name, declared_type, _ in table_columns:
            if col_name in (primary_key, geometry_column):
                continue
            column_type = column_type_from_str(declared_type)
            if column_type is None:
                raise UnsupportedColumnTypeError(col_name, declared_type)
            columns.append(ColumnSpec(name=col_name, column_type=column_type))

        return LayerInfo(
            name=name,
            geometry_column=geometry_column,
            geometry_type=geometry_type_from_str(type_name),
            dimension=from_flags(z, m),
            srs_id=srs_id,
            primary_key=primary_key,
            columns=columns,
        )

    def delete_layer(self, name: str) -> None:
        """
        Drop a layer, its spatial index and all its metadata rows.

        Raises:
            ReadOnlyError: GeoPackage opened read-only
            LayerNotFoundError: layer does not exist
        """
        self._require_writable()
        info = self.get_layer(name)
        generator = SpatialIndexGenerator(name, info.geometry_column, info.primary_key)

        with self.transaction() as conn:
            generator.uninstall(conn)
            unregister_rtree_extension(conn, name, info.geometry_column)
            conn.execute(SQL_DELETE_GEOMETRY_COLUMNS, (name,))
            conn.execute(SQL_DELETE_CONTENTS, (name,))
            conn.execute(f"DROP TABLE {quote_identifier(name)}")

        self._logger.info(f"Layer deleted: {name}")

    def spatial_index(self, name: str) -> SpatialIndexGenerator:
        """SQL generator for a layer's spatial index."""
        info = self.get_layer(name)
        return SpatialIndexGenerator(name, info.geometry_column, info.primary_key)

    def rebuild_spatial_index(self, name: str) -> None:
        """Re-run the (idempotent) bulk load of a layer's index."""
        self._require_writable()
        generator = self.spatial_index(name)
        with self.transaction() as conn:
            conn.execute(generator.load_sql())
        self._logger.info(f"Spatial index rebuilt: {generator.index_table}")

    def index_entries(self, name: str) -> Dict[int, BoundingBox]:
        """Current rows of a layer's rtree table, keyed by id."""
        generator = self.spatial_index(name)
        rows = self._conn.execute(
            f"SELECT id, minx, maxx, miny, maxy FROM {quote_identifier(generator.index_table)}"
        )
        return {row[0]: BoundingBox(*row[1:]) for row in rows}

    # ========================================================================
    # Features
    # ========================================================================

    def _geometry_value(self, info: LayerInfo, geometry: GeometryInput) -> Optional[bytes]:
        if geometry is None:
            return None
        if isinstance(geometry, BaseGeometry):
            return geometry_to_blob(geometry, info.srs_id)
        if isinstance(geometry, _BLOB_TYPES):
            blob = bytes(geometry)
            read_header(blob)
            return blob
        raise TypeError(f"geometry must be a shapely geometry, bytes or None, got {type(geometry).__name__}")

    def _check_properties(self, info: LayerInfo, properties: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        properties = dict(properties or {})
        known = set(info.column_names)
        for key in properties:
            if key not in known:
                raise InvalidPropertyError(info.name, key)
        return properties

    def insert_feature(
        self,
        layer: str,
        geometry: GeometryInput = None,
        properties: Optional[Mapping[str, Any]] = None,
        fid: Optional[int] = None,
    ) -> int:
        """
        Insert one feature.

        Args:
            layer: Layer name
            geometry: shapely geometry (encoded with the layer's srs_id),
                pre-encoded GeoPackage blob, or None
            properties: Column name -> SQLite value
            fid: Explicit id; autoincrement when None

        Returns:
            Id of the new row
        """
        self._require_writable()
        info = self.get_layer(layer)
        properties = self._check_properties(info, properties)

        values: Dict[str, Any] = {}
        if fid is not None:
            values[info.primary_key] = fid
        values[info.geometry_column] = self._geometry_value(info, geometry)
        values.update(properties)

        names = ", ".join(quote_identifier(key) for key in values)
        placeholders = ", ".join("?" for _ in values)
        sql = f"INSERT INTO {quote_identifier(layer)} ({names}) VALUES ({placeholders})"

        with self.transaction() as conn:
            cursor = conn.execute(sql, list(values.values()))
        return cursor.lastrowid

    def update_feature(
        self,
        layer: str,
        fid: int,
        geometry: Any = _UNCHANGED,
        properties: Optional[Mapping[str, Any]] = None,
        new_fid: Optional[int] = None,
    ) -> bool:
        """
        Update one feature.

        The geometry column is only written when geometry is passed; pass
        None to set it NULL. new_fid reassigns the primary key.

        Returns:
            True if a row with fid existed
        """
        self._require_writable()
        info = self.get_layer(layer)
        properties = self._check_properties(info, properties)

        assignments: Dict[str, Any] = {}
        if new_fid is not None:
            assignments[info.primary_key] = new_fid
        if geometry is not _UNCHANGED:
            assignments[info.geometry_column] = self._geometry_value(info, geometry)
        assignments.update(properties)

        if not assignments:
            return self._conn.execute(
                f"SELECT 1 FROM {quote_identifier(layer)} WHERE {quote_identifier(info.primary_key)} = ?",
                (fid,),
            ).fetchone() is not None

        set_clause = ", ".join(f"{quote_identifier(key)} = ?" for key in assignments)
        sql = (
            f"UPDATE {quote_identifier(layer)} SET {set_clause} "
            f"WHERE {quote_identifier(info.primary_key)} = ?"
        )

        with self.transaction() as conn:
            cursor = conn.execute(sql, [*assignments.values(), fid])
        return cursor.rowcount > 0

    def delete_feature(self, layer: str, fid: int) -> bool:
        """Delete one feature. Returns True if it existed."""
        self._require_writable()
        info = self.get_layer(layer)
        sql = f"DELETE FROM {quote_identifier(layer)} WHERE {quote_identifier(info.primary_key)} = ?"
        with self.transaction() as conn:
            cursor = conn.execute(sql, (fid,))
        return cursor.rowcount > 0

    def truncate(self, layer: str) -> int:
        """
        Delete every feature of a layer.

        Returns:
            Number of rows removed
        """
        self._require_writable()
        self.get_layer(layer)
        with self.transaction() as conn:
            cursor = conn.execute(f"DELETE FROM {quote_identifier(layer)}")
        self._logger.info(f"Layer truncated: {layer} ({cursor.rowcount} rows)")
        return cursor.rowcount

    def count_features(self, layer: str) -> int:
        self.get_layer(layer)
        return self._conn.execute(f"SELECT COUNT(*) FROM {quote_identifier(layer)}").fetchone()[0]

    def features(self, layer: str) -> Iterator[Feature]:
        """
        Iterate the features of a layer in id order.

        Yields:
            Feature with the raw geometry blob and property values
        """
        info = self.get_layer(layer)
        selected = [info.primary_key, info.geometry_column] + info.column_names
        sql = (
            f"SELECT {', '.join(quote_identifier(col) for col in selected)} "
            f"FROM {quote_identifier(layer)} ORDER BY {quote_identifier(info.primary_key)}"
        )
        names = info.column_names
        for row in self._conn.execute(sql):
            yield Feature(
                id=row[0],
                geometry=row[1],
                properties=dict(zip(names, row[2:])),
            )

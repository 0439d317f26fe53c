"""Shared fixtures for the gpkg_spatial test suite."""

import sqlite3

import pytest

from config import reset_config
from gpkg_spatial import GeoPackage, register_spatial_functions


def _sqlite_has_rtree() -> bool:
    conn = sqlite3.connect(":memory:")
    try:
        conn.execute("CREATE VIRTUAL TABLE rtree_check USING rtree(id, minx, maxx, miny, maxy)")
        return True
    except sqlite3.OperationalError:
        return False
    finally:
        conn.close()


HAS_RTREE = _sqlite_has_rtree()


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Drop cached settings and GPKG_* overrides around every test."""
    for name in (
        "GPKG_DEFAULT_SRS_ID",
        "GPKG_DEFAULT_GEOMETRY_COLUMN",
        "GPKG_DEFAULT_ID_COLUMN",
        "GPKG_LOG_LEVEL",
        "GPKG_DEBUG_LOGGING",
        "GPKG_REGISTER_RTREE_EXTENSION",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def requires_rtree():
    """Skip when the interpreter's SQLite lacks the R*Tree module."""
    if not HAS_RTREE:
        pytest.skip("SQLite compiled without R*Tree support.")


@pytest.fixture
def conn():
    """Raw in-memory connection with the spatial functions registered."""
    connection = sqlite3.connect(":memory:", isolation_level=None)
    register_spatial_functions(connection)
    yield connection
    connection.close()


@pytest.fixture
def gpkg(requires_rtree):
    """Fresh in-memory GeoPackage."""
    package = GeoPackage.in_memory()
    yield package
    package.close()

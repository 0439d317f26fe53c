"""Tests for environment-driven configuration."""

import pytest
from pydantic import ValidationError

from config import GeoPackageSettings, get_config, reset_config, validate_configuration
from gpkg_spatial import GeometryType


def test_defaults():
    config = get_config()
    assert config.default_srs_id == 4326
    assert config.default_geometry_column == "geom"
    assert config.default_id_column == "fid"
    assert config.log_level == "INFO"
    assert config.effective_log_level == "INFO"
    assert config.register_rtree_extension is True


def test_get_config_is_cached():
    assert get_config() is get_config()


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("GPKG_DEFAULT_SRS_ID", "0")
    monkeypatch.setenv("GPKG_LOG_LEVEL", "warning")
    reset_config()
    config = get_config()
    assert config.default_srs_id == 0
    assert config.log_level == "WARNING"


def test_debug_logging_forces_debug(monkeypatch):
    monkeypatch.setenv("GPKG_DEBUG_LOGGING", "true")
    reset_config()
    assert get_config().effective_log_level == "DEBUG"


def test_invalid_log_level():
    with pytest.raises(ValidationError):
        GeoPackageSettings(log_level="LOUD")


def test_srs_id_must_fit_int32():
    with pytest.raises(ValidationError):
        GeoPackageSettings(default_srs_id=2**31)


def test_validate_configuration():
    assert validate_configuration() is True


def test_layer_defaults_follow_config(monkeypatch, requires_rtree):
    monkeypatch.setenv("GPKG_DEFAULT_GEOMETRY_COLUMN", "shape")
    monkeypatch.setenv("GPKG_DEFAULT_ID_COLUMN", "oid")
    monkeypatch.setenv("GPKG_REGISTER_RTREE_EXTENSION", "false")
    reset_config()

    from gpkg_spatial import GeoPackage

    with GeoPackage.in_memory() as gpkg:
        info = gpkg.create_layer("places", GeometryType.POINT)
        assert info.geometry_column == "shape"
        assert info.primary_key == "oid"
        assert gpkg.connection.execute("SELECT COUNT(*) FROM gpkg_extensions").fetchone()[0] == 0
        assert "rtree_places_shape" == info.index_table

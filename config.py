# ============================================================================
# MODULE CONTEXT - APPLICATION CONFIGURATION
# ============================================================================
# STATUS: Core Infrastructure - Configuration Management
# PURPOSE: Centralized settings for GeoPackage layer creation and logging
# EXPORTS: GeoPackageSettings, get_config, reset_config, validate_configuration
# DEPENDENCIES: pydantic-settings, pydantic
# SOURCE: Environment variables (GPKG_ prefix), optional .env file
# PATTERNS: Singleton pattern for config via lru_cache
# ============================================================================

"""
Application Configuration Module

Provides centralized configuration for gpkg_spatial including:
- Defaults used when creating new feature layers (SRS id, column names)
- Logging level for the component loggers
- Whether spatial index installs are recorded in gpkg_extensions

Environment Variables (all optional):
    - GPKG_DEFAULT_SRS_ID: SRS id for new layers (default: 4326)
    - GPKG_DEFAULT_GEOMETRY_COLUMN: Geometry column name (default: "geom")
    - GPKG_DEFAULT_ID_COLUMN: Integer primary key column (default: "fid")
    - GPKG_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL (default: INFO)
    - GPKG_DEBUG_LOGGING: Force DEBUG level (default: false)
    - GPKG_REGISTER_RTREE_EXTENSION: Write gpkg_extensions rows (default: true)

Usage:
    from config import get_config

    config = get_config()
    layer = gpkg.create_layer("roads", GeometryType.LINESTRING, srs_id=config.default_srs_id)
"""

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# ============================================================================
# Application Configuration
# ============================================================================

class GeoPackageSettings(BaseSettings):
    """
    Settings loaded from GPKG_* environment variables.

    Attributes:
        default_srs_id: SRS id written into the header of new geometries
        default_geometry_column: Geometry column name for new layers
        default_id_column: Integer primary key column for new layers
        log_level: Default level for component loggers
        debug_logging: Force DEBUG level on every component logger
        register_rtree_extension: Record gpkg_rtree_index in gpkg_extensions
    """

    model_config = SettingsConfigDict(
        env_prefix="GPKG_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    default_srs_id: int = Field(
        default=4326,
        ge=-2**31,
        le=2**31 - 1,
        description="SRS id used when create_layer is not given one"
    )
    default_geometry_column: str = Field(
        default="geom",
        min_length=1,
        description="Geometry column name for new layers"
    )
    default_id_column: str = Field(
        default="fid",
        min_length=1,
        description="Integer primary key column for new layers"
    )
    log_level: str = Field(
        default="INFO",
        description="Default component logger level"
    )
    debug_logging: bool = Field(
        default=False,
        description="Force DEBUG level regardless of log_level"
    )
    register_rtree_extension: bool = Field(
        default=True,
        description="Register gpkg_rtree_index in gpkg_extensions on index install"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the level name."""
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}, got '{v}'")
        return level

    @property
    def effective_log_level(self) -> str:
        """Level actually applied to component loggers."""
        return "DEBUG" if self.debug_logging else self.log_level


@lru_cache(maxsize=1)
def get_config() -> GeoPackageSettings:
    """
    Get singleton configuration instance.

    Returns:
        GeoPackageSettings: Validated configuration object

    Raises:
        ValidationError: If an environment variable holds an invalid value
    """
    return GeoPackageSettings()


def reset_config() -> None:
    """Drop the cached settings so the next get_config() re-reads the environment."""
    get_config.cache_clear()


# ============================================================================
# Configuration Validation
# ============================================================================

def validate_configuration() -> bool:
    """
    Validate configuration on startup and log the resolved values.

    Returns:
        bool: True if configuration is valid

    Raises:
        ValidationError: If configuration validation fails
    """
    try:
        config = get_config()
        logger.info("Configuration validation:")
        logger.info(f"  Default SRS id: {config.default_srs_id}")
        logger.info(f"  Geometry column: {config.default_geometry_column}")
        logger.info(f"  Id column: {config.default_id_column}")
        logger.info(f"  Log level: {config.effective_log_level}")
        logger.info(f"  Register rtree extension: {config.register_rtree_extension}")
        return True

    except Exception as e:
        logger.error(f"❌ Configuration validation failed: {e}")
        raise


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    validate_configuration()

# ============================================================================
# MODULE CONTEXT - LAYER MODELS
# ============================================================================
# STATUS: Core - Pydantic models for layer metadata and features
# PURPOSE: Typed views of gpkg_geometry_columns rows, table columns and feature rows
# EXPORTS: ColumnSpec, LayerInfo, Feature
# DEPENDENCIES: pydantic, shapely (via codec)
# PATTERNS: Data Transfer Objects (DTOs)
# ============================================================================

"""
Pydantic models returned by the GeoPackage repository.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from shapely.geometry.base import BaseGeometry

from .codec import blob_to_geometry
from .dimensions import ColumnType, Dimension, GeometryType
from .rtree import spatial_index_table_name


class ColumnSpec(BaseModel):
    """
    A property (non-geometry, non-key) column of a feature layer.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, description="Column name")
    column_type: ColumnType = Field(description="Declared column type")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if '"' in v:
            raise ValueError(f"column name may not contain double quotes: {v}")
        return v

    def definition_sql(self) -> str:
        return f'"{self.name}" {self.column_type.value}'


class LayerInfo(BaseModel):
    """
    Metadata of one feature layer, assembled from gpkg_geometry_columns and
    the table's own column list.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Table name")
    geometry_column: str = Field(description="Geometry column name")
    geometry_type: GeometryType = Field(description="Declared geometry type")
    dimension: Dimension = Field(description="Coordinate dimension from z/m flags")
    srs_id: int = Field(description="Spatial reference system id")
    primary_key: str = Field(description="Integer primary key column")
    columns: List[ColumnSpec] = Field(default_factory=list, description="Property columns")

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    @property
    def index_table(self) -> str:
        return spatial_index_table_name(self.name, self.geometry_column)


class Feature(BaseModel):
    """
    One row of a feature layer.

    geometry holds the GeoPackage geometry blob exactly as stored.
    """
    id: int = Field(description="Primary key value")
    geometry: Optional[bytes] = Field(default=None, description="GeoPackage geometry blob")
    properties: Dict[str, Any] = Field(default_factory=dict, description="Property column values")

    def shape(self) -> Optional[BaseGeometry]:
        """Decode the stored blob into a shapely geometry."""
        if self.geometry is None:
            return None
        return blob_to_geometry(self.geometry)

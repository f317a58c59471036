"""Adapters from parsed tables to features."""

from geojoin.data.adapters import (
    points_from_dataframe,
    points_from_geodataframe,
    polygons_from_geodataframe,
)

__all__ = [
    "points_from_dataframe",
    "points_from_geodataframe",
    "polygons_from_geodataframe",
]

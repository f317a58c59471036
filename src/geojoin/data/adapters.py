"""Convert parsed DataFrames and GeoDataFrames into features."""

from typing import Any, Dict, List, Optional

import geopandas as gpd
import pandas as pd
from shapely.geometry import MultiPolygon, Point, Polygon

from geojoin.core.features import PointFeature, PolygonFeature


def _clean(value: Any) -> Any:
    """NaN/NA to None; numpy scalars to Python values."""
    if value is None:
        return None
    if not isinstance(value, (list, tuple, dict)) and bool(pd.isna(value)):
        return None
    if hasattr(value, "item"):
        return value.item()
    return value


def _attributes(row: pd.Series, exclude: List[str]) -> Dict[str, Any]:
    return {str(k): _clean(v) for k, v in row.items() if k not in exclude}


def _resolve_ids(df: pd.DataFrame, id_column: Optional[str]) -> List[Any]:
    if id_column is None:
        return [_clean(i) for i in df.index]
    if id_column not in df.columns:
        raise ValueError(f"Column '{id_column}' not found")
    return [_clean(v) for v in df[id_column]]


def points_from_dataframe(
    df: pd.DataFrame,
    id_column: Optional[str] = None,
    x_column: str = "x",
    y_column: str = "y",
) -> List[PointFeature]:
    """
    Build point features from a DataFrame with coordinate columns.

    Coordinates must already be in the same projected CRS as the polygons.

    Args:
        df: DataFrame with one row per point
        id_column: Column holding point ids. Defaults to the index.
        x_column: Column with x (easting/longitude)
        y_column: Column with y (northing/latitude)

    Returns:
        List of PointFeature; the remaining columns become attributes
    """
    for column in (x_column, y_column):
        if column not in df.columns:
            raise ValueError(f"Column '{column}' not found")

    ids = _resolve_ids(df, id_column)
    exclude = [c for c in (id_column, x_column, y_column) if c is not None]
    points = []
    for point_id, (_, row) in zip(ids, df.iterrows()):
        x = _clean(row[x_column])
        y = _clean(row[y_column])
        points.append(
            PointFeature(
                id=point_id,
                x=float("nan") if x is None else float(x),
                y=float("nan") if y is None else float(y),
                attributes=_attributes(row, exclude),
            )
        )
    return points


def points_from_geodataframe(
    gdf: gpd.GeoDataFrame,
    id_column: Optional[str] = None,
) -> List[PointFeature]:
    """Build point features from a GeoDataFrame of Point geometries."""
    ids = _resolve_ids(gdf, id_column)
    geometry_column = gdf.geometry.name
    exclude = [c for c in (id_column, geometry_column) if c is not None]

    points = []
    for point_id, (_, row) in zip(ids, gdf.iterrows()):
        geom = row[geometry_column]
        if geom is None or geom.is_empty:
            x = y = float("nan")
        elif isinstance(geom, Point):
            x, y = geom.x, geom.y
        else:
            raise ValueError(f"Expected Point geometry for {point_id!r}, got {geom.geom_type}")
        points.append(PointFeature(point_id, x, y, _attributes(row, exclude)))
    return points


def polygons_from_geodataframe(
    gdf: gpd.GeoDataFrame,
    id_column: Optional[str] = None,
) -> List[PolygonFeature]:
    """
    Build polygon features from a GeoDataFrame of Polygon/MultiPolygon geometries.

    Raises:
        ValueError: For any other geometry type
    """
    ids = _resolve_ids(gdf, id_column)
    geometry_column = gdf.geometry.name
    exclude = [c for c in (id_column, geometry_column) if c is not None]

    polygons = []
    for polygon_id, (_, row) in zip(ids, gdf.iterrows()):
        geom = row[geometry_column]
        if not isinstance(geom, (Polygon, MultiPolygon)):
            kind = geom.geom_type if geom is not None else "None"
            raise ValueError(f"Expected Polygon geometry for {polygon_id!r}, got {kind}")
        polygons.append(PolygonFeature.from_shape(polygon_id, geom, _attributes(row, exclude)))
    return polygons

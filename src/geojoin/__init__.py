"""
geojoin: Point-in-polygon spatial joins with aggregation for Python.

Assign points to the polygons containing them using an R-tree index
instead of comparing every point with every polygon, then summarize the
result per polygon.

Supports:
- Polygons and multi-polygons with holes, boundary-inclusive containment
- Configurable tie-breaks for points inside overlapping polygons
- Per-polygon counts, sums, max/min-by, collected values, area and centroid
"""

# core first: its engine module imports geojoin.aggregation
from geojoin.core import (
    DegenerateGeometryError,
    EmptyIndexError,
    GeoJoinError,
    GeometryKind,
    InvalidRingError,
    JoinResult,
    JoinResultRow,
    PointFeature,
    PolygonFeature,
    PolygonPart,
    SkippedRecord,
    SpatialIndex,
    SpatialJoin,
    TieBreak,
    UnmatchedPointError,
    area,
    bounding_box,
    brute_force_join,
    centroid,
    contains,
    join,
)
from geojoin.aggregation import (
    AggregateRecord,
    AggregateReport,
    Reducer,
    ReducerKind,
    aggregate,
    filter_records,
    sort_records,
)
from geojoin.data import (
    points_from_dataframe,
    points_from_geodataframe,
    polygons_from_geodataframe,
)

__version__ = "0.1.0"
__all__ = [
    # Main API
    "SpatialJoin",
    "SpatialIndex",
    "join",
    "brute_force_join",
    "aggregate",
    "filter_records",
    "sort_records",
    # Features
    "PointFeature",
    "PolygonFeature",
    "PolygonPart",
    "GeometryKind",
    # Geometry operations
    "bounding_box",
    "contains",
    "area",
    "centroid",
    # Results
    "JoinResult",
    "JoinResultRow",
    "TieBreak",
    "AggregateRecord",
    "AggregateReport",
    "Reducer",
    "ReducerKind",
    "SkippedRecord",
    # Adapters
    "points_from_dataframe",
    "points_from_geodataframe",
    "polygons_from_geodataframe",
    # Exceptions
    "GeoJoinError",
    "InvalidRingError",
    "DegenerateGeometryError",
    "EmptyIndexError",
    "UnmatchedPointError",
]

"""Core functionality for geojoin."""

from geojoin.core.features import (
    GeoJoinError,
    GeometryKind,
    InvalidRingError,
    PointFeature,
    PolygonFeature,
    PolygonPart,
    SkippedRecord,
)
from geojoin.core.geometry import DegenerateGeometryError, area, bounding_box, centroid, contains
from geojoin.core.spatial import EmptyIndexError, SpatialIndex
from geojoin.core.spatial_join import (
    JoinResult,
    JoinResultRow,
    TieBreak,
    UnmatchedPointError,
    brute_force_join,
    join,
)

# engine pulls in geojoin.aggregation, which needs the modules above loaded first
from geojoin.core.engine import SpatialJoin

__all__ = [
    "SpatialJoin",
    "SpatialIndex",
    "PointFeature",
    "PolygonFeature",
    "PolygonPart",
    "GeometryKind",
    "SkippedRecord",
    "JoinResult",
    "JoinResultRow",
    "TieBreak",
    "join",
    "brute_force_join",
    "bounding_box",
    "contains",
    "area",
    "centroid",
    "GeoJoinError",
    "InvalidRingError",
    "DegenerateGeometryError",
    "EmptyIndexError",
    "UnmatchedPointError",
]

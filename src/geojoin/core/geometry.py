"""Geometry operations on polygon features.

Containment is boundary-inclusive: a point on a shell or hole boundary is
contained. This is shapely's ``covers`` predicate.
"""

from typing import Hashable, Sequence, Union

from shapely.geometry import Point

from geojoin.core.features import (
    Bounds,
    Coordinate,
    GeoJoinError,
    GeometryKind,
    PointFeature,
    PolygonFeature,
)

PointLike = Union[PointFeature, Point, Sequence[float]]


class DegenerateGeometryError(GeoJoinError, ValueError):
    """A polygon has zero area where a positive area is required."""

    def __init__(self, feature_id: Hashable):
        self.feature_id = feature_id
        super().__init__(f"Polygon {feature_id!r} has zero area")


def to_point(point: PointLike) -> Point:
    """Coerce a point feature, shapely Point, or (x, y) pair to a shapely Point."""
    if isinstance(point, PointFeature):
        return point.shape
    if isinstance(point, Point):
        return point
    x, y = point
    return Point(x, y)


def bounding_box(polygon: PolygonFeature) -> Bounds:
    """Return (min_x, min_y, max_x, max_y) over all rings of a polygon."""
    return polygon.bounds


def area(polygon: PolygonFeature) -> float:
    """Return the unsigned area of a polygon, holes subtracted."""
    return polygon.area


def contains(polygon: PolygonFeature, point: PointLike) -> bool:
    """
    Test whether a polygon contains a point.

    True if the point lies in a shell and in no hole's interior, boundaries
    included. A zero-area polygon contains nothing.
    """
    if polygon.area == 0.0:
        return False
    return polygon.shape.covers(to_point(point))


def centroid(polygon: PolygonFeature) -> Coordinate:
    """
    Return the area-weighted centroid of a polygon.

    Raises:
        DegenerateGeometryError: If the polygon has zero area
    """
    total = polygon.area
    if total == 0.0:
        raise DegenerateGeometryError(polygon.id)

    geom = polygon.shape
    if polygon.kind is GeometryKind.POLYGON:
        c = geom.centroid
        return (c.x, c.y)

    # Weight each part's centroid by its area; zero-area parts drop out
    sum_x = 0.0
    sum_y = 0.0
    for part in geom.geoms:
        part_area = abs(part.area)
        if part_area == 0.0:
            continue
        c = part.centroid
        sum_x += c.x * part_area
        sum_y += c.y * part_area
    return (sum_x / total, sum_y / total)

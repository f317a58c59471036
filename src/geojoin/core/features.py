"""Point and polygon features: identifiers, geometry and attributes."""

from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any, Dict, Hashable, Iterable, Optional, Sequence, Tuple, Union

import shapely
from shapely.geometry import MultiPolygon, Point, Polygon

Coordinate = Tuple[float, float]
Ring = Tuple[Coordinate, ...]
Bounds = Tuple[float, float, float, float]


class GeoJoinError(Exception):
    """Base class for geojoin errors."""


class InvalidRingError(GeoJoinError, ValueError):
    """A polygon ring is too short, not closed, or has malformed coordinates."""

    def __init__(self, feature_id: Hashable, reason: str):
        self.feature_id = feature_id
        self.reason = reason
        super().__init__(f"Invalid ring in polygon {feature_id!r}: {reason}")


@dataclass(frozen=True)
class SkippedRecord:
    """A record left out of a run, and why."""

    record_id: Hashable
    kind: str  # "point" or "polygon"
    stage: str  # "index", "join" or "aggregate"
    reason: str


class GeometryKind(Enum):
    """Geometry variants a polygon feature can hold."""

    POLYGON = "polygon"
    MULTIPOLYGON = "multipolygon"


@dataclass(frozen=True)
class PointFeature:
    """A point with an identifier and attributes."""

    id: Hashable
    x: float
    y: float
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def coordinate(self) -> Coordinate:
        return (self.x, self.y)

    @cached_property
    def shape(self) -> Point:
        """Shapely point for this feature."""
        return Point(self.x, self.y)


@dataclass(frozen=True)
class PolygonPart:
    """One shell ring plus zero or more hole rings."""

    shell: Ring
    holes: Tuple[Ring, ...] = ()


def _as_ring(coords: Iterable[Sequence[float]]) -> Ring:
    return tuple(tuple(c) for c in coords)  # type: ignore[misc]


def _validate_ring(feature_id: Hashable, ring: Ring, label: str) -> None:
    """Check a ring has enough coordinates, each an (x, y) pair, and is closed."""
    if len(ring) < 4:
        raise InvalidRingError(
            feature_id, f"{label} has {len(ring)} coordinates, at least 4 are required"
        )
    for coord in ring:
        if len(coord) != 2:
            raise InvalidRingError(feature_id, f"{label} has a non-2D coordinate {coord!r}")
    if ring[0] != ring[-1]:
        raise InvalidRingError(feature_id, f"{label} is not closed")


@dataclass(frozen=True)
class PolygonFeature:
    """
    A polygon or multi-polygon with an identifier and attributes.

    Rings are stored as given and only validated when the geometry is first
    touched (``shape``, ``bounds`` or any geometry operation). A feature with
    one part is a POLYGON; several parts sharing the identifier and
    attributes make a MULTIPOLYGON.
    """

    id: Hashable
    parts: Tuple[PolygonPart, ...]
    attributes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_rings(
        cls,
        id: Hashable,
        shell: Iterable[Sequence[float]],
        holes: Iterable[Iterable[Sequence[float]]] = (),
        attributes: Optional[Dict[str, Any]] = None,
    ) -> "PolygonFeature":
        """Build a single-part polygon from a shell and optional holes."""
        part = PolygonPart(_as_ring(shell), tuple(_as_ring(h) for h in holes))
        return cls(id, (part,), dict(attributes or {}))

    @classmethod
    def from_parts(
        cls,
        id: Hashable,
        parts: Iterable[Tuple[Iterable[Sequence[float]], Iterable[Iterable[Sequence[float]]]]],
        attributes: Optional[Dict[str, Any]] = None,
    ) -> "PolygonFeature":
        """Build a polygon from ``(shell, holes)`` pairs, one per part."""
        built = tuple(
            PolygonPart(_as_ring(shell), tuple(_as_ring(h) for h in holes))
            for shell, holes in parts
        )
        return cls(id, built, dict(attributes or {}))

    @classmethod
    def from_shape(
        cls,
        id: Hashable,
        geom: Union[Polygon, MultiPolygon],
        attributes: Optional[Dict[str, Any]] = None,
    ) -> "PolygonFeature":
        """Build a polygon feature from a shapely Polygon or MultiPolygon."""
        if isinstance(geom, Polygon):
            polygons = [geom]
        elif isinstance(geom, MultiPolygon):
            polygons = list(geom.geoms)
        else:
            raise ValueError(
                f"Unsupported geometry type for polygon {id!r}: {geom.geom_type}"
            )

        parts = []
        for polygon in polygons:
            # Drop any z values, the core is 2D only
            shell = tuple((c[0], c[1]) for c in polygon.exterior.coords)
            holes = tuple(
                tuple((c[0], c[1]) for c in interior.coords) for interior in polygon.interiors
            )
            parts.append(PolygonPart(shell, holes))
        return cls(id, tuple(parts), dict(attributes or {}))

    @property
    def kind(self) -> GeometryKind:
        if len(self.parts) == 1:
            return GeometryKind.POLYGON
        return GeometryKind.MULTIPOLYGON

    @cached_property
    def shape(self) -> Union[Polygon, MultiPolygon]:
        """
        Validated shapely geometry for this feature.

        Raises:
            InvalidRingError: If any ring is malformed or there are no parts
        """
        if not self.parts:
            raise InvalidRingError(self.id, "polygon has no rings")

        polygons = []
        for i, part in enumerate(self.parts):
            _validate_ring(self.id, part.shell, f"part {i} shell")
            for j, hole in enumerate(part.holes):
                _validate_ring(self.id, hole, f"part {i} hole {j}")
            polygons.append(Polygon(part.shell, part.holes))

        if self.kind is GeometryKind.POLYGON:
            return polygons[0]
        return MultiPolygon(polygons)

    @cached_property
    def bounds(self) -> Bounds:
        """Bounding box over every ring's vertices, holes included."""
        coords = shapely.get_coordinates(self.shape)
        min_x, min_y = coords.min(axis=0)
        max_x, max_y = coords.max(axis=0)
        return (float(min_x), float(min_y), float(max_x), float(max_y))

    @cached_property
    def area(self) -> float:
        """Unsigned area: shells minus holes, summed over parts."""
        geom = self.shape
        if self.kind is GeometryKind.POLYGON:
            return abs(geom.area)
        return sum(abs(part.area) for part in geom.geoms)

"""Spatial index and point-in-polygon lookups."""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
import shapely
from shapely.strtree import STRtree

from geojoin.core.features import (
    Bounds,
    GeoJoinError,
    InvalidRingError,
    PolygonFeature,
    SkippedRecord,
)
from geojoin.core.geometry import PointLike, contains, to_point

logger = logging.getLogger(__name__)


class EmptyIndexError(GeoJoinError, ValueError):
    """No polygons were available to build an index from."""

    def __init__(self, skipped: int = 0):
        self.skipped = skipped
        message = "Cannot build a spatial index from an empty polygon collection"
        if skipped:
            message += f" ({skipped} polygons skipped as invalid)"
        super().__init__(message)


class SpatialIndex:
    """
    Bounding-box index over a polygon collection for point-in-polygon lookups.

    Backed by a shapely STRtree (a packed R-tree) built once over each
    polygon's bounding box. The index keeps its own array of bounding boxes
    and references to the polygon features; it never copies or mutates their
    geometry, so the features must stay alive as long as the index does.

    Candidates come back in the polygon collection's input order.
    """

    def __init__(
        self,
        polygons: Iterable[PolygonFeature],
        allow_empty: bool = False,
    ):
        """
        Build the index.

        Polygons whose rings are invalid are left out and recorded in
        ``skipped``.

        Args:
            polygons: Polygon features to index
            allow_empty: Allow an index with no polygons, which returns no
                candidates. When False an empty collection is an error.

        Raises:
            EmptyIndexError: If no valid polygons remain and allow_empty is False
        """
        self._polygons: List[PolygonFeature] = []
        self._skipped: List[SkippedRecord] = []
        boxes: List[Bounds] = []

        for polygon in polygons:
            try:
                bounds = polygon.bounds
            except InvalidRingError as exc:
                logger.warning("Skipping polygon %r: %s", polygon.id, exc.reason)
                self._skipped.append(SkippedRecord(polygon.id, "polygon", "index", exc.reason))
                continue
            # Speeds up repeated covers() tests against the same geometry
            shapely.prepare(polygon.shape)
            self._polygons.append(polygon)
            boxes.append(bounds)

        if not self._polygons and not allow_empty:
            raise EmptyIndexError(skipped=len(self._skipped))

        self._boxes = np.asarray(boxes, dtype=float).reshape(-1, 4)
        self._tree = STRtree(
            shapely.box(self._boxes[:, 0], self._boxes[:, 1], self._boxes[:, 2], self._boxes[:, 3])
        )
        logger.debug(
            "Built spatial index over %d polygons (%d skipped)",
            len(self._polygons),
            len(self._skipped),
        )

    @classmethod
    def build(
        cls,
        polygons: Iterable[PolygonFeature],
        allow_empty: bool = False,
    ) -> "SpatialIndex":
        """Build an index over a polygon collection."""
        return cls(polygons, allow_empty=allow_empty)

    def __len__(self) -> int:
        return len(self._polygons)

    @property
    def polygons(self) -> List[PolygonFeature]:
        """Indexed polygons, in input order."""
        return self._polygons

    @property
    def skipped(self) -> List[SkippedRecord]:
        """Polygons left out of the index, and why."""
        return list(self._skipped)

    @property
    def bounds(self) -> Optional[Bounds]:
        """Extent of all indexed bounding boxes, or None for an empty index."""
        if len(self._polygons) == 0:
            return None
        return (
            float(self._boxes[:, 0].min()),
            float(self._boxes[:, 1].min()),
            float(self._boxes[:, 2].max()),
            float(self._boxes[:, 3].max()),
        )

    def candidate_positions(self, point: PointLike) -> np.ndarray:
        """Positions into ``polygons`` whose bounding box covers the point."""
        positions = self._tree.query(to_point(point))
        return np.sort(positions)

    def candidates(self, point: PointLike) -> List[PolygonFeature]:
        """
        Polygons whose bounding box covers the point, boundaries included.

        Every polygon that contains the point is in the result; some that
        don't may be too, since only bounding boxes are compared.
        """
        return [self._polygons[i] for i in self.candidate_positions(point)]

    def query_bulk(self, coords: Sequence[Tuple[float, float]]) -> Tuple[np.ndarray, np.ndarray]:
        """
        Bounding-box query for many coordinates at once.

        Args:
            coords: Sequence of (x, y) pairs

        Returns:
            Two equal-length arrays (point positions, polygon positions),
            sorted by point position then polygon position
        """
        if len(coords) == 0:
            empty = np.empty(0, dtype=np.intp)
            return empty, empty.copy()

        points = shapely.points(np.asarray(coords, dtype=float).reshape(-1, 2))
        point_pos, polygon_pos = self._tree.query(points)
        order = np.lexsort((polygon_pos, point_pos))
        return point_pos[order], polygon_pos[order]

    def lookup(self, point: PointLike) -> Optional[PolygonFeature]:
        """
        Find the first polygon containing a point.

        Uses two-phase approach:
        1. Query the index for candidate polygons (bbox test)
        2. Exact point-in-polygon test on candidates, in input order

        Returns:
            The containing polygon if found, None otherwise
        """
        shape = to_point(point)
        for polygon in self.candidates(shape):
            if contains(polygon, shape):
                return polygon
        return None

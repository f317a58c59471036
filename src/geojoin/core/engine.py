"""SpatialJoin class - the primary user interface."""

from typing import Iterable, List, Optional, Sequence, Tuple, Union

import geopandas as gpd
import pandas as pd

from geojoin.aggregation import AggregateReport, Reducer, aggregate, validate_reducers
from geojoin.core.features import PointFeature, PolygonFeature
from geojoin.core.spatial import SpatialIndex
from geojoin.core.spatial_join import (
    JoinResult,
    TieBreak,
    TieBreakPolicy,
    check_attribute_names,
    join,
    resolve_tie_break,
)
from geojoin.data.adapters import (
    points_from_dataframe,
    points_from_geodataframe,
    polygons_from_geodataframe,
)

PointInput = Union[Sequence[PointFeature], pd.DataFrame]
PolygonInput = Union[Iterable[PolygonFeature], gpd.GeoDataFrame, SpatialIndex]


class SpatialJoin:
    """
    Main interface for geojoin.

    Holds join and aggregation settings; each call builds fresh results
    from its inputs.

    Example usage:
        >>> engine = SpatialJoin(reducers=[Reducer.max_by("largest", "area")])
        >>> result, report = engine.run(points, parks)
        >>> report["Joe's Park"].count
        2
    """

    def __init__(
        self,
        tie_break: TieBreakPolicy = TieBreak.FIRST_MATCH,
        allow_unmatched: bool = True,
        allow_empty_index: bool = False,
        reducers: Sequence[Reducer] = (),
        point_attributes: Optional[Sequence[str]] = None,
        polygon_attributes: Optional[Sequence[str]] = None,
        point_id_column: Optional[str] = None,
        polygon_id_column: Optional[str] = None,
        x_column: str = "x",
        y_column: str = "y",
        workers: int = 1,
        progress: bool = False,
    ):
        """
        Initialize SpatialJoin.

        Args:
            tie_break: Policy when several polygons contain a point. A
                TieBreak, its string value, or a ranking function over
                polygons where the lowest rank wins.
            allow_unmatched: Treat points outside every polygon as a valid
                outcome. When False the join raises UnmatchedPointError.
            allow_empty_index: Accept an empty polygon collection instead
                of raising EmptyIndexError
            reducers: Reducers run per polygon by aggregate()
            point_attributes: Point attributes copied onto join rows.
                Attributes read by point-side reducers are always included.
            polygon_attributes: Polygon attributes copied onto join rows.
                Attributes read by polygon-side reducers are always included.
            point_id_column: Id column when points come as a DataFrame.
                Defaults to the index.
            polygon_id_column: Id column when polygons come as a GeoDataFrame.
                Defaults to the index.
            x_column: X column for DataFrame points without geometry
            y_column: Y column for DataFrame points without geometry
            workers: Threads used to resolve points
            progress: Show progress bar during joins
        """
        # Fail on a bad policy now rather than mid-join
        resolve_tie_break(tie_break)
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")

        self.tie_break = tie_break
        self.allow_unmatched = allow_unmatched
        self.allow_empty_index = allow_empty_index
        self.reducers = tuple(reducers)
        self.point_id_column = point_id_column
        self.polygon_id_column = polygon_id_column
        self.x_column = x_column
        self.y_column = y_column
        self.workers = workers
        self.progress = progress

        self._point_attributes = self._resolve_attributes(point_attributes, "point")
        self._polygon_attributes = self._resolve_attributes(polygon_attributes, "polygon")
        validate_reducers(self.reducers)
        check_attribute_names(self._point_attributes, self._polygon_attributes)

    def _resolve_attributes(self, names: Optional[Sequence[str]], side: str) -> List[str]:
        """Selected attributes plus any a reducer on this side reads."""
        result = list(names or [])
        for reducer in self.reducers:
            if reducer.side == side and reducer.attribute and reducer.attribute not in result:
                result.append(reducer.attribute)
        return result

    @property
    def point_attributes(self) -> List[str]:
        return list(self._point_attributes)

    @property
    def polygon_attributes(self) -> List[str]:
        return list(self._polygon_attributes)

    def points(self, points: PointInput) -> List[PointFeature]:
        """Convert point input to point features."""
        if isinstance(points, gpd.GeoDataFrame):
            return points_from_geodataframe(points, self.point_id_column)
        if isinstance(points, pd.DataFrame):
            return points_from_dataframe(
                points, self.point_id_column, self.x_column, self.y_column
            )
        return list(points)

    def polygons(self, polygons: PolygonInput) -> List[PolygonFeature]:
        """Convert polygon input to polygon features."""
        if isinstance(polygons, SpatialIndex):
            return polygons.polygons
        if isinstance(polygons, gpd.GeoDataFrame):
            return polygons_from_geodataframe(polygons, self.polygon_id_column)
        return list(polygons)

    def index(self, polygons: PolygonInput) -> SpatialIndex:
        """Build a spatial index, or pass an existing one through."""
        if isinstance(polygons, SpatialIndex):
            return polygons
        return SpatialIndex(self.polygons(polygons), allow_empty=self.allow_empty_index)

    def join(self, points: PointInput, polygons: PolygonInput) -> JoinResult:
        """
        Join points to the polygons containing them.

        Args:
            points: Point features, or a (Geo)DataFrame of points
            polygons: Polygon features, a GeoDataFrame, or a built index

        Returns:
            JoinResult with one row per point, in input order
        """
        return join(
            self.points(points),
            self.index(polygons),
            tie_break=self.tie_break,
            point_attributes=self._point_attributes,
            polygon_attributes=self._polygon_attributes,
            allow_unmatched=self.allow_unmatched,
            workers=self.workers,
            progress=self.progress,
        )

    def aggregate(
        self,
        result: JoinResult,
        polygons: Optional[PolygonInput] = None,
        include_empty: bool = False,
    ) -> AggregateReport:
        """Aggregate join rows per polygon with the configured reducers."""
        features = self.polygons(polygons) if polygons is not None else None
        return aggregate(result, self.reducers, polygons=features, include_empty=include_empty)

    def run(
        self,
        points: PointInput,
        polygons: PolygonInput,
        include_empty: bool = False,
    ) -> Tuple[JoinResult, AggregateReport]:
        """Build the index once, join, and aggregate with polygon metrics."""
        index = self.index(polygons)
        result = self.join(points, index)
        report = self.aggregate(result, index, include_empty=include_empty)
        return result, report

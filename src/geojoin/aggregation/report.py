"""Per-polygon aggregation of spatial join results."""

import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    Hashable,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import pandas as pd

from geojoin.aggregation.reducers import Reducer, ReducerKind
from geojoin.core.features import Coordinate, GeoJoinError, PolygonFeature, SkippedRecord
from geojoin.core.geometry import area, centroid
from geojoin.core.spatial_join import JoinResult, JoinResultRow
from geojoin.core.spatial import SpatialIndex

logger = logging.getLogger(__name__)

# Record fields and output columns a reducer name may not shadow
RESERVED_NAMES = frozenset(
    {
        "polygon_id",
        "count",
        "area",
        "density",
        "centroid",
        "centroid_x",
        "centroid_y",
        "mean_point",
        "mean_x",
        "mean_y",
    }
)


def validate_reducers(reducers: Sequence[Reducer]) -> None:
    """
    Check reducer names can sit beside the record fields in one row.

    Raises:
        ValueError: On duplicate names or a name taken by a record field
    """
    names = [reducer.name for reducer in reducers]
    if len(set(names)) != len(names):
        raise ValueError(f"Reducer names must be unique: {names}")
    # MAX_BY/MIN_BY also write a "<name>_point_id" column
    columns = set(RESERVED_NAMES)
    for reducer in reducers:
        if reducer.kind in (ReducerKind.MAX_BY, ReducerKind.MIN_BY):
            columns.add(f"{reducer.name}_point_id")
    clashes = sorted(name for name in names if name in columns)
    if clashes:
        raise ValueError(f"Reducer names clash with record fields: {clashes}")


@dataclass
class AggregateRecord:
    """Summary of the points assigned to one polygon."""

    polygon_id: Hashable
    count: int = 0
    values: Dict[str, Any] = field(default_factory=dict)  # reducer name -> state

    # Running sums of matched point coordinates, for the mean point
    sum_x: float = 0.0
    sum_y: float = 0.0

    # Polygon metrics, set when polygons are supplied to aggregate()
    area: Optional[float] = None
    centroid: Optional[Coordinate] = None

    @property
    def mean_point(self) -> Optional[Coordinate]:
        """Mean coordinate of the matched points."""
        if self.count == 0:
            return None
        return (self.sum_x / self.count, self.sum_y / self.count)

    @property
    def density(self) -> Optional[float]:
        """Points per unit area."""
        if not self.area:
            return None
        return self.count / self.area

    def get(self, key: str) -> Any:
        """Look up a field or reducer value by name."""
        if key in ("polygon_id", "count", "area", "centroid", "density", "mean_point"):
            return getattr(self, key)
        if key in self.values:
            return self.values[key]
        raise KeyError(key)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a flat dictionary; MAX_BY/MIN_BY values split into value and point id."""
        result: Dict[str, Any] = {
            "polygon_id": self.polygon_id,
            "count": self.count,
            "area": self.area,
            "density": self.density,
            "centroid_x": self.centroid[0] if self.centroid else None,
            "centroid_y": self.centroid[1] if self.centroid else None,
        }
        mean = self.mean_point
        result["mean_x"] = mean[0] if mean else None
        result["mean_y"] = mean[1] if mean else None
        for name, value in self.values.items():
            if isinstance(value, tuple):
                result[name] = value[0]
                result[f"{name}_point_id"] = value[1]
            else:
                result[name] = value
        return result


@dataclass
class AggregateReport:
    """
    Aggregates keyed by polygon id, plus unmatched accounting.

    ``unmatched`` counts every row without a polygon; ``failed`` is the part
    of those the join skipped. ``matched + unmatched`` equals the number of
    joined points.
    """

    records: Dict[Hashable, AggregateRecord] = field(default_factory=dict)
    unmatched: int = 0
    failed: int = 0
    reducers: Tuple[Reducer, ...] = ()
    skipped: List[SkippedRecord] = field(default_factory=list)

    @property
    def matched(self) -> int:
        return sum(record.count for record in self.records.values())

    @property
    def total(self) -> int:
        return self.matched + self.unmatched

    def __getitem__(self, polygon_id: Hashable) -> AggregateRecord:
        return self.records[polygon_id]

    def __contains__(self, polygon_id: Hashable) -> bool:
        return polygon_id in self.records

    def __iter__(self):
        return iter(self.records.values())

    def __len__(self) -> int:
        return len(self.records)

    def merge(self, other: "AggregateReport") -> "AggregateReport":
        """
        Combine two partial reports built with the same reducers.

        Counts, sums and coordinate sums add, MAX_BY/MIN_BY keep the better
        pair, COLLECT concatenates in merge order.
        """
        if self.reducers != other.reducers:
            raise ValueError("Cannot merge reports built with different reducers")

        merged = AggregateReport(
            unmatched=self.unmatched + other.unmatched,
            failed=self.failed + other.failed,
            reducers=self.reducers,
            skipped=self.skipped + other.skipped,
        )
        for report in (self, other):
            for polygon_id, record in report.records.items():
                existing = merged.records.get(polygon_id)
                if existing is None:
                    merged.records[polygon_id] = AggregateRecord(
                        polygon_id=polygon_id,
                        count=record.count,
                        values=dict(record.values),
                        sum_x=record.sum_x,
                        sum_y=record.sum_y,
                        area=record.area,
                        centroid=record.centroid,
                    )
                    continue
                existing.count += record.count
                existing.sum_x += record.sum_x
                existing.sum_y += record.sum_y
                for reducer in self.reducers:
                    existing.values[reducer.name] = reducer.combine(
                        existing.values[reducer.name], record.values[reducer.name]
                    )
                if existing.area is None:
                    existing.area = record.area
                if existing.centroid is None:
                    existing.centroid = record.centroid
        return merged

    def to_dataframe(self) -> pd.DataFrame:
        """Convert records to a DataFrame, one row per polygon."""
        return pd.DataFrame([record.to_dict() for record in self.records.values()])


def _new_record(polygon_id: Hashable, reducers: Sequence[Reducer]) -> AggregateRecord:
    return AggregateRecord(
        polygon_id=polygon_id,
        values={reducer.name: reducer.initial() for reducer in reducers},
    )


def _attach_polygon_metrics(
    report: AggregateReport,
    polygons: Iterable[PolygonFeature],
    include_empty: bool,
) -> None:
    """Fill in area and centroid for records, optionally adding empty records."""
    for polygon in polygons:
        record = report.records.get(polygon.id)
        if record is None:
            if not include_empty:
                continue
            record = _new_record(polygon.id, report.reducers)
            report.records[polygon.id] = record
        try:
            record.area = area(polygon)
            record.centroid = centroid(polygon)
        except GeoJoinError as exc:
            logger.warning("No centroid for polygon %r: %s", polygon.id, exc)
            report.skipped.append(SkippedRecord(polygon.id, "polygon", "aggregate", str(exc)))


def aggregate(
    rows: Union[JoinResult, Iterable[JoinResultRow]],
    reducers: Sequence[Reducer] = (),
    polygons: Optional[Union[SpatialIndex, Iterable[PolygonFeature]]] = None,
    include_empty: bool = False,
) -> AggregateReport:
    """
    Fold join rows into per-polygon aggregates.

    Each matched row increments its polygon's count and runs every reducer.
    Rows without a polygon are counted as unmatched, never dropped. A
    reducer that fails on a row is recorded in ``skipped`` and leaves its
    state unchanged; the row still counts.

    Args:
        rows: A JoinResult or its rows
        reducers: Reducers to run per polygon
        polygons: Polygons (or the index over them) to take area and
            centroid from
        include_empty: With polygons, also add zero-count records for
            polygons no point landed in

    Returns:
        AggregateReport keyed by polygon id

    Raises:
        ValueError: If reducer names repeat or shadow a record field
    """
    reducers = tuple(reducers)
    validate_reducers(reducers)

    report = AggregateReport(reducers=reducers)
    if isinstance(rows, JoinResult):
        # Carry forward what the join already left out
        report.skipped.extend(rows.skipped)

    for row in rows:
        if not row.is_matched:
            report.unmatched += 1
            if row.match_type == "skipped":
                report.failed += 1
            continue

        record = report.records.get(row.polygon_id)
        if record is None:
            record = _new_record(row.polygon_id, reducers)
            report.records[row.polygon_id] = record

        record.count += 1
        record.sum_x += row.x
        record.sum_y += row.y
        for reducer in reducers:
            try:
                record.values[reducer.name] = reducer.step(record.values[reducer.name], row)
            except (TypeError, ValueError) as exc:
                reason = f"reducer {reducer.name!r} failed: {exc}"
                logger.warning("Skipping point %r in aggregate: %s", row.point_id, reason)
                report.skipped.append(SkippedRecord(row.point_id, "point", "aggregate", reason))

    if polygons is not None:
        if isinstance(polygons, SpatialIndex):
            polygons = polygons.polygons
        _attach_polygon_metrics(report, polygons, include_empty)

    return report


Records = Union[AggregateReport, Dict[Hashable, AggregateRecord], Iterable[AggregateRecord]]


def _as_records(records: Records) -> List[AggregateRecord]:
    if isinstance(records, AggregateReport):
        return list(records.records.values())
    if isinstance(records, dict):
        return list(records.values())
    return list(records)


def filter_records(
    records: Records,
    predicate: Callable[[AggregateRecord], bool],
) -> List[AggregateRecord]:
    """Keep records matching a predicate, e.g. ``lambda r: r.count > 0``."""
    return [record for record in _as_records(records) if predicate(record)]


def sort_records(
    records: Records,
    key: Union[str, Callable[[AggregateRecord], Any]],
    descending: bool = False,
) -> List[AggregateRecord]:
    """
    Stable sort of records by a field, reducer name, or key function.

    Ties are ordered by ascending polygon id whatever the direction.
    Records whose key is None come last.

    MAX_BY and MIN_BY reducers sort on their value.
    """
    if callable(key):
        getter = key
    else:

        def getter(record: AggregateRecord) -> Any:
            value = record.get(key)
            reducer_value = isinstance(value, tuple) and key in record.values
            return value[0] if reducer_value else value

    ordered = sorted(_as_records(records), key=lambda record: record.polygon_id)
    present = [record for record in ordered if getter(record) is not None]
    missing = [record for record in ordered if getter(record) is None]
    present.sort(key=getter, reverse=descending)
    return present + missing

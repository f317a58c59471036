"""Point-to-polygon spatial join."""

import logging
import math
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from geojoin.core.features import GeoJoinError, PointFeature, PolygonFeature, SkippedRecord
from geojoin.core.geometry import area, contains
from geojoin.core.spatial import SpatialIndex

logger = logging.getLogger(__name__)

# Points resolved per index query; also the progress bar granularity
CHUNK_SIZE = 1024

RankFunction = Callable[[PolygonFeature], Any]

# Columns every flattened row starts with; attributes may not overwrite them
ROW_COLUMNS = ("point_id", "polygon_id", "x", "y", "match_type")


def check_attribute_names(
    point_attributes: Optional[Iterable[str]],
    polygon_attributes: Optional[Iterable[str]],
) -> None:
    """
    Check selected attributes flatten into distinct row columns.

    Point attributes keep their names and polygon attributes get a
    ``polygon_`` prefix; neither may land on a row column or on each other.

    Raises:
        ValueError: Naming the clashing columns
    """
    point_columns = set(point_attributes or ())
    polygon_columns = {f"polygon_{name}" for name in polygon_attributes or ()}
    clashes = (point_columns | polygon_columns) & set(ROW_COLUMNS)
    clashes |= point_columns & polygon_columns
    if clashes:
        raise ValueError(
            f"Attributes clash with join output columns: {sorted(clashes)}. "
            "Rename them before joining."
        )


class TieBreak(Enum):
    """How to pick one polygon when several contain a point."""

    FIRST_MATCH = "first_match"  # first covering polygon in input order
    SMALLEST_AREA = "smallest_area"
    LARGEST_AREA = "largest_area"


TieBreakPolicy = Union[TieBreak, str, RankFunction]


@dataclass(frozen=True)
class JoinResultRow:
    """One point's outcome from a spatial join."""

    point_id: Hashable
    polygon_id: Optional[Hashable] = None
    x: float = 0.0
    y: float = 0.0
    match_type: str = "no_match"  # "contained", "no_match", "skipped"
    point_attributes: Dict[str, Any] = field(default_factory=dict)
    polygon_attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_matched(self) -> bool:
        """Check if the point landed in a polygon."""
        return self.polygon_id is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a flat dictionary; polygon attributes get a ``polygon_`` prefix."""
        check_attribute_names(self.point_attributes, self.polygon_attributes)
        return {
            "point_id": self.point_id,
            "polygon_id": self.polygon_id,
            "x": self.x,
            "y": self.y,
            "match_type": self.match_type,
            **self.point_attributes,
            **{f"polygon_{k}": v for k, v in self.polygon_attributes.items()},
        }


@dataclass
class JoinResult:
    """Rows from a spatial join, one per input point, plus skipped records."""

    rows: List[JoinResultRow]
    skipped: List[SkippedRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    @property
    def matched(self) -> List[JoinResultRow]:
        return [row for row in self.rows if row.is_matched]

    @property
    def unmatched(self) -> List[JoinResultRow]:
        """Rows with no polygon, including points that were skipped."""
        return [row for row in self.rows if not row.is_matched]

    @property
    def unmatched_count(self) -> int:
        return len(self.rows) - len(self.matched)

    @property
    def failed(self) -> List[JoinResultRow]:
        """Rows for points that could not be resolved."""
        return [row for row in self.rows if row.match_type == "skipped"]

    def to_dataframe(self) -> pd.DataFrame:
        """Convert rows to a DataFrame, one row per input point."""
        records = [row.to_dict() for row in self.rows]
        columns = ["point_id", "polygon_id", "x", "y", "match_type"]
        for record in records:
            for key in record:
                if key not in columns:
                    columns.append(key)
        return pd.DataFrame(records, columns=columns)


class UnmatchedPointError(GeoJoinError):
    """Points fell outside every polygon while unmatched points were disallowed."""

    def __init__(self, point_ids: List[Hashable], result: JoinResult):
        self.point_ids = point_ids
        self.result = result
        preview = ", ".join(repr(p) for p in point_ids[:5])
        if len(point_ids) > 5:
            preview += ", ..."
        super().__init__(f"{len(point_ids)} points matched no polygon: {preview}")


def resolve_tie_break(tie_break: TieBreakPolicy) -> Optional[RankFunction]:
    """
    Turn a tie-break policy into a ranking function.

    Returns None for first-match. Otherwise the lowest rank wins and equal
    ranks keep input order.
    """
    if isinstance(tie_break, str):
        tie_break = TieBreak(tie_break)
    if tie_break is TieBreak.FIRST_MATCH:
        return None
    if tie_break is TieBreak.SMALLEST_AREA:
        return area
    if tie_break is TieBreak.LARGEST_AREA:
        return lambda polygon: -area(polygon)
    if callable(tie_break):
        return tie_break
    raise ValueError(f"Unknown tie-break policy: {tie_break!r}")


def _select(attributes: Dict[str, Any], names: Optional[Sequence[str]]) -> Dict[str, Any]:
    if not names:
        return {}
    return {name: attributes.get(name) for name in names}


def _matches(
    point: PointFeature,
    candidates: Sequence[PolygonFeature],
    first_only: bool,
) -> List[PolygonFeature]:
    """Candidates that contain the point, in candidate order."""
    shape = point.shape
    matches = []
    for polygon in candidates:
        if contains(polygon, shape):
            matches.append(polygon)
            if first_only:
                break
    return matches


def _pick(
    point: PointFeature,
    candidates: Sequence[PolygonFeature],
    rank: Optional[RankFunction],
) -> Optional[PolygonFeature]:
    """Exact containment test over candidates, then the tie-break."""
    matches = _matches(point, candidates, first_only=rank is None)
    if not matches:
        return None
    if rank is None or len(matches) == 1:
        return matches[0]
    # min() keeps the first of equally ranked polygons
    return min(matches, key=rank)


def _build_row(
    point: PointFeature,
    polygon: Optional[PolygonFeature],
    point_attributes: Optional[Sequence[str]],
    polygon_attributes: Optional[Sequence[str]],
    match_type: Optional[str] = None,
) -> JoinResultRow:
    if match_type is None:
        match_type = "contained" if polygon is not None else "no_match"
    return JoinResultRow(
        point_id=point.id,
        polygon_id=polygon.id if polygon is not None else None,
        x=point.x,
        y=point.y,
        match_type=match_type,
        point_attributes=_select(point.attributes, point_attributes),
        polygon_attributes=_select(polygon.attributes, polygon_attributes) if polygon else {},
    )


def _resolve_chunk(
    points: Sequence[PointFeature],
    start: int,
    stop: int,
    index: SpatialIndex,
    rank: Optional[RankFunction],
    point_attributes: Optional[Sequence[str]],
    polygon_attributes: Optional[Sequence[str]],
    out: List[Optional[JoinResultRow]],
) -> List[SkippedRecord]:
    """Resolve points[start:stop] into out[start:stop]."""
    skipped: List[SkippedRecord] = []

    positions = []
    for i in range(start, stop):
        point = points[i]
        if math.isfinite(point.x) and math.isfinite(point.y):
            positions.append(i)
        else:
            reason = f"non-finite coordinate ({point.x}, {point.y})"
            logger.warning("Skipping point %r: %s", point.id, reason)
            skipped.append(SkippedRecord(point.id, "point", "join", reason))
            out[i] = _build_row(point, None, point_attributes, None, match_type="skipped")

    point_pos, polygon_pos = index.query_bulk([points[i].coordinate for i in positions])
    candidates: Dict[int, List[PolygonFeature]] = defaultdict(list)
    for p, q in zip(point_pos.tolist(), polygon_pos.tolist()):
        candidates[positions[p]].append(index.polygons[q])

    for i in positions:
        point = points[i]
        try:
            polygon = _pick(point, candidates.get(i, []), rank)
        except Exception as exc:
            # Only a caller-supplied ranking function can raise here
            reason = f"tie-break ranking failed: {type(exc).__name__}: {exc}"
            logger.warning("Skipping point %r: %s", point.id, reason)
            skipped.append(SkippedRecord(point.id, "point", "join", reason))
            out[i] = _build_row(point, None, point_attributes, None, match_type="skipped")
            continue
        out[i] = _build_row(point, polygon, point_attributes, polygon_attributes)

    return skipped


def join(
    points: Sequence[PointFeature],
    index: SpatialIndex,
    tie_break: TieBreakPolicy = TieBreak.FIRST_MATCH,
    point_attributes: Optional[Sequence[str]] = None,
    polygon_attributes: Optional[Sequence[str]] = None,
    allow_unmatched: bool = True,
    workers: int = 1,
    progress: bool = False,
) -> JoinResult:
    """
    Assign each point to the polygon containing it.

    Produces exactly one row per point, in input order. A point outside
    every polygon gets a row with no polygon id. When several polygons
    contain a point the tie-break picks one.

    Args:
        points: Point features to join
        index: Spatial index over the polygons
        tie_break: TieBreak policy, its string value, or a ranking function
            over polygons (lowest rank wins)
        point_attributes: Point attribute names to copy onto rows
        polygon_attributes: Polygon attribute names to copy onto rows
        allow_unmatched: When False, raise if any point matched no polygon
        workers: Threads resolving points; each owns disjoint output rows
        progress: Show progress bar

    Returns:
        JoinResult with rows and any skipped points or polygons

    Raises:
        ValueError: If selected attributes clash with the row columns
        UnmatchedPointError: If allow_unmatched is False and a point
            matched no polygon
    """
    check_attribute_names(point_attributes, polygon_attributes)
    points = list(points)
    rank = resolve_tie_break(tie_break)
    rows: List[Optional[JoinResultRow]] = [None] * len(points)
    chunks = [(start, min(start + CHUNK_SIZE, len(points))) for start in range(0, len(points), CHUNK_SIZE)]
    chunk_skipped: Dict[int, List[SkippedRecord]] = {}

    pbar = None
    if progress:
        from tqdm import tqdm

        pbar = tqdm(total=len(points), desc="Joining")

    def run(start: int, stop: int) -> List[SkippedRecord]:
        return _resolve_chunk(
            points, start, stop, index, rank, point_attributes, polygon_attributes, rows
        )

    try:
        if workers <= 1 or len(chunks) <= 1:
            for start, stop in chunks:
                chunk_skipped[start] = run(start, stop)
                if pbar is not None:
                    pbar.update(stop - start)
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {executor.submit(run, start, stop): (start, stop) for start, stop in chunks}
                for future in as_completed(futures):
                    start, stop = futures[future]
                    chunk_skipped[start] = future.result()
                    if pbar is not None:
                        pbar.update(stop - start)
    finally:
        if pbar is not None:
            pbar.close()

    skipped = list(index.skipped)
    for start, _ in chunks:
        skipped.extend(chunk_skipped[start])

    result = JoinResult(rows=[row for row in rows if row is not None], skipped=skipped)
    logger.debug(
        "Joined %d points: %d matched, %d unmatched",
        len(result),
        len(result.matched),
        result.unmatched_count,
    )

    if not allow_unmatched:
        missing = [row.point_id for row in result.rows if row.match_type == "no_match"]
        if missing:
            raise UnmatchedPointError(missing, result)

    return result


def brute_force_join(
    points: Sequence[PointFeature],
    polygons: Sequence[PolygonFeature],
    tie_break: TieBreakPolicy = TieBreak.FIRST_MATCH,
) -> List[Tuple[Hashable, Optional[Hashable]]]:
    """
    Exhaustive O(points x polygons) join without an index.

    Every point is tested against every polygon. Returns (point id, polygon
    id or None) pairs in input order; useful as a reference for the indexed
    join.
    """
    rank = resolve_tie_break(tie_break)
    pairs = []
    for point in points:
        polygon = _pick(point, polygons, rank)
        pairs.append((point.id, polygon.id if polygon is not None else None))
    return pairs

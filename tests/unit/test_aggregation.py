"""Tests for per-polygon aggregation, filtering and sorting."""

import math

import pytest

from geojoin import (
    AggregateRecord,
    AggregateReport,
    PointFeature,
    PolygonFeature,
    Reducer,
    ReducerKind,
    SpatialIndex,
    aggregate,
    filter_records,
    join,
    sort_records,
)


def square(x0, y0, x1, y1):
    return [(x0, y0), (x1, y0), (x1, y1), (x0, y1), (x0, y0)]


@pytest.fixture
def park_result(parks, park_points):
    return join(
        park_points,
        SpatialIndex(parks),
        point_attributes=["visitors", "name"],
        polygon_attributes=["acres"],
    )


class TestParkAggregate:
    """Counts and unmatched accounting for the park scenario."""

    def test_counts(self, park_result):
        report = aggregate(park_result)

        assert report["Joe's Park"].count == 2
        assert report["Memorial Park"].count == 1
        assert report.unmatched == 1

    def test_totals(self, park_result):
        report = aggregate(park_result)

        assert report.matched == 3
        assert report.total == 4
        assert report.failed == 0

    def test_only_polygons_with_points_have_records(self, parks):
        result = join([PointFeature("P1", 1, 2)], SpatialIndex(parks))
        report = aggregate(result)

        assert "Joe's Park" in report
        assert "Memorial Park" not in report
        assert len(report) == 1

    def test_accepts_plain_rows(self, park_result):
        report = aggregate(park_result.rows)

        assert report["Joe's Park"].count == 2

    def test_mean_point(self, park_result):
        report = aggregate(park_result)

        assert report["Joe's Park"].mean_point == pytest.approx((1.5, 2.5))
        assert report["Memorial Park"].mean_point == pytest.approx((4.0, 4.0))


class TestReducers:
    """Tests for each reducer kind."""

    def test_sum(self, park_result):
        report = aggregate(park_result, [Reducer.sum("total_visitors", "visitors")])

        assert report["Joe's Park"].values["total_visitors"] == 115
        assert report["Memorial Park"].values["total_visitors"] == 20

    def test_max_by_keeps_point_id(self, park_result):
        report = aggregate(park_result, [Reducer.max_by("busiest", "visitors")])

        assert report["Joe's Park"].values["busiest"] == (75, "P2")

    def test_min_by(self, park_result):
        report = aggregate(park_result, [Reducer.min_by("quietest", "visitors")])

        assert report["Joe's Park"].values["quietest"] == (40, "P1")

    def test_max_by_tie_goes_to_smaller_point_id(self, parks):
        points = [
            PointFeature("b", 1, 1, {"v": 5}),
            PointFeature("a", 2, 2, {"v": 5}),
        ]
        result = join(points, SpatialIndex(parks), point_attributes=["v"])

        report = aggregate(result, [Reducer.max_by("top", "v")])

        assert report["Joe's Park"].values["top"] == (5, "a")

    def test_collect_point_ids(self, park_result):
        report = aggregate(park_result, [Reducer.collect("ids")])

        assert report["Joe's Park"].values["ids"] == ["P1", "P2"]

    def test_collect_attribute(self, park_result):
        report = aggregate(park_result, [Reducer.collect("names", "name")])

        assert report["Joe's Park"].values["names"] == ["fountain", "playground"]

    def test_count_non_null_attribute(self, parks):
        points = [
            PointFeature("a", 1, 1, {"rating": 4}),
            PointFeature("b", 2, 2, {"rating": None}),
        ]
        result = join(points, SpatialIndex(parks), point_attributes=["rating"])

        report = aggregate(result, [Reducer.count("rated", "rating")])

        assert report["Joe's Park"].values["rated"] == 1
        assert report["Joe's Park"].count == 2

    def test_polygon_side_attribute(self, park_result):
        report = aggregate(park_result, [Reducer.sum("acre_visits", "acres", side="polygon")])

        assert report["Joe's Park"].values["acre_visits"] == pytest.approx(24.0)

    def test_none_values_ignored(self, parks):
        points = [PointFeature("a", 1, 1, {"v": None})]
        result = join(points, SpatialIndex(parks), point_attributes=["v"])

        report = aggregate(result, [Reducer.max_by("top", "v"), Reducer.sum("total", "v")])

        assert report["Joe's Park"].values == {"top": None, "total": 0}

    def test_reducer_kinds(self):
        assert Reducer.count().kind == ReducerKind.COUNT
        assert Reducer.collect("ids").kind == ReducerKind.COLLECT

    def test_numeric_reducer_needs_attribute(self):
        with pytest.raises(ValueError, match="needs an attribute"):
            Reducer("total", ReducerKind.SUM)

    def test_bad_side(self):
        with pytest.raises(ValueError, match="side"):
            Reducer.sum("total", "v", side="both")

    def test_duplicate_names_rejected(self, park_result):
        with pytest.raises(ValueError, match="unique"):
            aggregate(park_result, [Reducer.count("n"), Reducer.count("n")])


class TestReducerNames:
    """Reducer values never overwrite the record's own fields."""

    @pytest.fixture
    def rated(self, parks):
        points = [
            PointFeature("a", 1, 1, {"rating": 4}),
            PointFeature("b", 2, 2, {"rating": None}),
            PointFeature("c", 1, 3, {"rating": None}),
        ]
        return join(points, SpatialIndex(parks), point_attributes=["rating"])

    def test_count_default_name(self):
        assert Reducer.count().name == "n"

    def test_non_null_count_keeps_point_count(self, rated):
        report = aggregate(rated, [Reducer.count(attribute="rating")])

        data = report["Joe's Park"].to_dict()
        assert data["count"] == 3
        assert data["n"] == 1
        assert report.to_dataframe()["count"].tolist() == [3]

    @pytest.mark.parametrize(
        "name", ["count", "area", "density", "polygon_id", "centroid_x", "mean_y"]
    )
    def test_record_field_names_rejected(self, rated, name):
        with pytest.raises(ValueError, match="clash with record fields"):
            aggregate(rated, [Reducer.count(name, "rating")])

    def test_point_id_column_of_max_by_rejected(self, rated):
        reducers = [Reducer.max_by("top", "rating"), Reducer.count("top_point_id")]

        with pytest.raises(ValueError, match="top_point_id"):
            aggregate(rated, reducers)

    def test_polygon_side_count(self, parks, park_points):
        result = join(park_points, SpatialIndex(parks), polygon_attributes=["acres"])

        report = aggregate(result, [Reducer.count("with_acres", "acres", side="polygon")])

        assert report["Joe's Park"].values["with_acres"] == 2


class TestReducerFailures:
    """A reducer failing on one row does not stop the aggregation."""

    @pytest.fixture
    def result(self, parks):
        points = [
            PointFeature("a", 1, 1, {"v": 10}),
            PointFeature("b", 2, 2, {"v": "lots"}),
            PointFeature("c", 1, 3, {"v": 5}),
        ]
        return join(points, SpatialIndex(parks), point_attributes=["v"])

    def test_other_rows_still_reduced(self, result):
        report = aggregate(result, [Reducer.sum("total", "v")])

        assert report["Joe's Park"].values["total"] == 15
        assert report["Joe's Park"].count == 3

    def test_failure_recorded(self, result):
        report = aggregate(result, [Reducer.sum("total", "v")])

        assert len(report.skipped) == 1
        skipped = report.skipped[0]
        assert skipped.record_id == "b"
        assert skipped.stage == "aggregate"
        assert "total" in skipped.reason

    def test_booleans_are_not_numbers(self, parks):
        points = [PointFeature("a", 1, 1, {"v": True})]
        result = join(points, SpatialIndex(parks), point_attributes=["v"])

        report = aggregate(result, [Reducer.sum("total", "v")])

        assert report["Joe's Park"].values["total"] == 0
        assert len(report.skipped) == 1


class TestPolygonMetrics:
    """Area, centroid and density come from the polygons when supplied."""

    def test_area_and_centroid(self, parks, park_result):
        report = aggregate(park_result, polygons=parks)
        joes = report["Joe's Park"]

        assert joes.area == pytest.approx(10.5)
        assert joes.centroid == pytest.approx((1.5, 1.75))
        assert joes.density == pytest.approx(2 / 10.5)

    def test_accepts_index(self, parks, park_result):
        report = aggregate(park_result, polygons=SpatialIndex(parks))

        assert report["Memorial Park"].area == pytest.approx(6.25)

    def test_no_metrics_without_polygons(self, park_result):
        record = aggregate(park_result)["Joe's Park"]

        assert record.area is None
        assert record.centroid is None
        assert record.density is None

    def test_include_empty(self, parks):
        result = join([PointFeature("P1", 1, 2)], SpatialIndex(parks))

        report = aggregate(result, polygons=parks, include_empty=True)

        assert report["Memorial Park"].count == 0
        assert report["Memorial Park"].area == pytest.approx(6.25)

    def test_degenerate_polygon_keeps_going(self, parks):
        flat = PolygonFeature.from_rings("flat", [(0, 0), (1, 1), (2, 2), (0, 0)])
        result = join([PointFeature("P1", 1, 2)], SpatialIndex(parks + [flat]))

        report = aggregate(result, polygons=parks + [flat], include_empty=True)

        assert report["flat"].area == 0.0
        assert report["flat"].centroid is None
        assert report["Joe's Park"].centroid is not None
        assert [s.record_id for s in report.skipped] == ["flat"]

    def test_skipped_join_records_carried(self, parks):
        points = [PointFeature("P1", 1, 2), PointFeature("bad", math.nan, 0)]
        result = join(points, SpatialIndex(parks))

        report = aggregate(result)

        assert report.unmatched == 1
        assert report.failed == 1
        assert [s.record_id for s in report.skipped] == ["bad"]


class TestFilterAndSort:
    """Tests for filter_records and sort_records."""

    @pytest.fixture
    def report(self, parks):
        points = [
            PointFeature("a", 1, 1, {"v": 1}),
            PointFeature("b", 4, 4, {"v": 9}),
            PointFeature("c", 2, 2, {"v": 3}),
            PointFeature("d", 5, 5, {"v": 2}),
        ]
        third = PolygonFeature.from_rings("Zed Park", square(20, 20, 30, 30))
        result = join(points, SpatialIndex(parks + [third]), point_attributes=["v"])
        return aggregate(
            result,
            [Reducer.max_by("top", "v")],
            polygons=parks + [third],
            include_empty=True,
        )

    def test_filter_count(self, report):
        records = filter_records(report, lambda r: r.count > 0)

        assert [r.polygon_id for r in records] == ["Joe's Park", "Memorial Park"]

    def test_filter_accepts_dict(self, report):
        records = filter_records(report.records, lambda r: r.count == 0)

        assert [r.polygon_id for r in records] == ["Zed Park"]

    def test_sort_ties_by_polygon_id(self, report):
        # Both parks hold two points
        records = sort_records(report, "count", descending=True)

        assert [r.polygon_id for r in records] == ["Joe's Park", "Memorial Park", "Zed Park"]

    def test_sort_ascending(self, report):
        records = sort_records(report, "count")

        assert [r.polygon_id for r in records] == ["Zed Park", "Joe's Park", "Memorial Park"]

    def test_sort_by_reducer_value(self, report):
        records = sort_records(report, "top", descending=True)

        # Zed Park has no points, so no top value, and goes last
        assert [r.polygon_id for r in records] == ["Memorial Park", "Joe's Park", "Zed Park"]

    def test_sort_by_callable(self, report):
        records = sort_records(report, lambda r: -r.area)

        assert records[0].polygon_id == "Zed Park"

    def test_sort_is_stable_input_independent(self, report):
        forward = sort_records(list(report), "count")
        backward = sort_records(list(reversed(list(report))), "count")

        assert [r.polygon_id for r in forward] == [r.polygon_id for r in backward]

    def test_unknown_key(self, report):
        with pytest.raises(KeyError):
            sort_records(report, "nope")


class TestMerge:
    """Partial reports combine into the whole."""

    def test_merge_partitions(self, parks, park_points):
        index = SpatialIndex(parks)
        reducers = [Reducer.sum("total", "visitors"), Reducer.max_by("top", "visitors")]

        def run(points):
            return aggregate(join(points, index, point_attributes=["visitors"]), reducers)

        whole = run(park_points)
        merged = run(park_points[:1]).merge(run(park_points[1:]))

        assert merged == whole

    def test_merge_order_independent_for_counts(self, parks, park_points):
        index = SpatialIndex(parks)
        reducers = [Reducer.max_by("top", "visitors")]

        def run(points):
            return aggregate(join(points, index, point_attributes=["visitors"]), reducers)

        left, right = run(park_points[:2]), run(park_points[2:])

        assert left.merge(right).records == right.merge(left).records

    def test_merge_requires_same_reducers(self, park_result):
        with pytest.raises(ValueError, match="different reducers"):
            aggregate(park_result).merge(aggregate(park_result, [Reducer.count("n")]))

    def test_merge_does_not_mutate_inputs(self, park_result):
        left = aggregate(park_result)
        right = aggregate(park_result)

        left.merge(right)

        assert left["Joe's Park"].count == 2


class TestOutput:
    """Tests for record and report conversion."""

    def test_record_to_dict_splits_max_by(self):
        record = AggregateRecord("Joe's Park", count=2, values={"top": (75, "P2")})

        data = record.to_dict()

        assert data["top"] == 75
        assert data["top_point_id"] == "P2"
        assert data["count"] == 2

    def test_record_get(self):
        record = AggregateRecord("x", count=3, values={"total": 7})

        assert record.get("count") == 3
        assert record.get("total") == 7

    def test_report_to_dataframe(self, parks, park_result):
        report = aggregate(park_result, [Reducer.sum("total", "visitors")], polygons=parks)

        df = report.to_dataframe()

        assert df["polygon_id"].tolist() == ["Joe's Park", "Memorial Park"]
        assert df["count"].tolist() == [2, 1]
        assert df["total"].tolist() == [115, 20]

    def test_empty_report(self):
        report = AggregateReport()

        assert report.total == 0
        assert len(report.to_dataframe()) == 0

"""Aggregation of spatial join results."""

from geojoin.aggregation.reducers import Reducer, ReducerKind
from geojoin.aggregation.report import (
    AggregateRecord,
    AggregateReport,
    aggregate,
    filter_records,
    sort_records,
    validate_reducers,
)

__all__ = [
    "Reducer",
    "ReducerKind",
    "AggregateRecord",
    "AggregateReport",
    "aggregate",
    "filter_records",
    "sort_records",
    "validate_reducers",
]

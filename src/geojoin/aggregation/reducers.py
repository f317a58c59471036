"""Attribute reducers folded over join rows."""

import numbers
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from geojoin.core.spatial_join import JoinResultRow


class ReducerKind(Enum):
    """Available reducer operations."""

    COUNT = "count"  # rows with a non-null attribute (all rows if no attribute)
    SUM = "sum"
    MAX_BY = "max_by"  # (largest value, point id)
    MIN_BY = "min_by"  # (smallest value, point id)
    COLLECT = "collect"  # list of values, or point ids if no attribute


@dataclass(frozen=True)
class Reducer:
    """
    A named fold over one attribute of the rows assigned to a polygon.

    Reducers read from the attributes materialized on each join row, so the
    attribute must be selected when joining. Missing (None) values are
    ignored.

    Every reducer supports ``combine`` so partial results can be merged.
    COUNT, SUM, MAX_BY and MIN_BY merge in any order with the same result;
    COLLECT concatenates in merge order.
    """

    name: str
    kind: ReducerKind
    attribute: Optional[str] = None
    side: str = "point"  # "point" or "polygon"

    def __post_init__(self):
        if self.side not in ("point", "polygon"):
            raise ValueError(f"Reducer side must be 'point' or 'polygon', got {self.side!r}")
        if self.kind in (ReducerKind.SUM, ReducerKind.MAX_BY, ReducerKind.MIN_BY) and not self.attribute:
            raise ValueError(f"Reducer {self.name!r} ({self.kind.value}) needs an attribute")

    @classmethod
    def count(
        cls, name: str = "n", attribute: Optional[str] = None, side: str = "point"
    ) -> "Reducer":
        return cls(name, ReducerKind.COUNT, attribute, side)

    @classmethod
    def sum(cls, name: str, attribute: str, side: str = "point") -> "Reducer":
        return cls(name, ReducerKind.SUM, attribute, side)

    @classmethod
    def max_by(cls, name: str, attribute: str, side: str = "point") -> "Reducer":
        return cls(name, ReducerKind.MAX_BY, attribute, side)

    @classmethod
    def min_by(cls, name: str, attribute: str, side: str = "point") -> "Reducer":
        return cls(name, ReducerKind.MIN_BY, attribute, side)

    @classmethod
    def collect(cls, name: str, attribute: Optional[str] = None, side: str = "point") -> "Reducer":
        return cls(name, ReducerKind.COLLECT, attribute, side)

    def initial(self) -> Any:
        if self.kind is ReducerKind.COUNT:
            return 0
        if self.kind is ReducerKind.SUM:
            return 0
        if self.kind is ReducerKind.COLLECT:
            return []
        return None

    def value_of(self, row: JoinResultRow) -> Any:
        """Attribute value this reducer reads from a row."""
        if self.attribute is None:
            return row.point_id
        if self.side == "polygon":
            return row.polygon_attributes.get(self.attribute)
        return row.point_attributes.get(self.attribute)

    def step(self, state: Any, row: JoinResultRow) -> Any:
        """
        Fold one row into the state.

        Raises:
            TypeError: If SUM, MAX_BY or MIN_BY meet a non-numeric value
        """
        value = self.value_of(row)
        if value is None:
            return state

        if self.kind is ReducerKind.COUNT:
            return state + 1
        if self.kind is ReducerKind.COLLECT:
            return state + [value]

        _check_numeric(self.name, value)
        if self.kind is ReducerKind.SUM:
            return state + value
        return self.combine(state, (value, row.point_id))

    def combine(self, left: Any, right: Any) -> Any:
        """Merge two partial states."""
        if self.kind in (ReducerKind.COUNT, ReducerKind.SUM, ReducerKind.COLLECT):
            return left + right
        if left is None:
            return right
        if right is None:
            return left
        if self.kind is ReducerKind.MAX_BY:
            return left if _ranks_before(left, right, largest=True) else right
        return left if _ranks_before(left, right, largest=False) else right


def _check_numeric(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise TypeError(f"reducer {name!r} needs a number, got {value!r}")


def _ranks_before(left: Any, right: Any, largest: bool) -> bool:
    """Compare (value, point_id) pairs; equal values go to the smaller point id."""
    left_value, left_id = left
    right_value, right_id = right
    if left_value != right_value:
        return left_value > right_value if largest else left_value < right_value
    return str(left_id) <= str(right_id)

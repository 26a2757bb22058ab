from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Optional, Tuple, Union

from backend.app.scopes import Scope
from shared.enums import Dimension

DateBound = Union[date, datetime]


@dataclass(frozen=True)
class ActionFilters:
    """
    Time window and dimensional constraints shared by every analytics query.

    ``from_`` and ``to`` are inclusive. A plain date as ``to`` covers the
    whole day. Dimension values that are None or blank add no constraint.
    """

    from_: Optional[DateBound] = None
    to: Optional[DateBound] = None
    device_type: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    age_group: Optional[str] = None
    gender: Optional[str] = None

    def dimension_value(self, dimension: Dimension) -> Optional[str]:
        value = getattr(self, dimension.value)
        if value is None or not str(value).strip():
            return None
        return str(value).strip()


@dataclass(frozen=True)
class FilterSet:
    clauses: Tuple[Any, ...] = ()


def _lower_bound(value: DateBound) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def build_filter(filters: Optional[ActionFilters], scope: Scope) -> FilterSet:
    if filters is None:
        return FilterSet()

    actions = scope.actions
    clauses = []

    if filters.from_ is not None:
        clauses.append(actions.occurred_at >= _lower_bound(filters.from_))

    if filters.to is not None:
        if isinstance(filters.to, datetime):
            clauses.append(actions.occurred_at <= filters.to)
        else:
            next_day = datetime.combine(filters.to + timedelta(days=1), time.min)
            clauses.append(actions.occurred_at < next_day)

    for dimension in Dimension:
        value = filters.dimension_value(dimension)
        if value is not None:
            clauses.append(scope.dimension(dimension) == value)

    return FilterSet(clauses=tuple(clauses))

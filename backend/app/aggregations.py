"""
Aggregate queries over discount actions.

Every function receives a reader (see ``backend.app.store.StoreReader``),
the ``Scope`` to read from and the ``FilterSet`` built for that scope, and
returns plain dicts and lists. Nothing here depends on which scope it runs in.
"""

from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import case, func, literal_column, select

from backend.app.buckets import day_of_week, hour_of_day, time_bucket
from backend.app.errors import ValidationError
from backend.app.filters import FilterSet
from backend.app.scopes import Scope
from shared.enums import Action, Dimension, Granularity

UNKNOWN = "unknown"

TOTALS_FIELDS = {
    "total_views": Action.VIEW,
    "total_clicks": Action.CLICKED,
    "total_redirects": Action.REDIRECT,
    "total_map_open": Action.MAP_OPEN,
    "total_shares": Action.SHARE,
    "total_favorites": Action.FAVORITE,
}


def _ratio(numerator: int, denominator: int) -> Optional[float]:
    if not denominator:
        return None
    return round(numerator / denominator, 4)


def parse_dimension(value) -> Dimension:
    try:
        return Dimension(value)
    except ValueError:
        pass
    for dimension in Dimension:
        if dimension.report_key == value:
            return dimension
    raise ValidationError(f"Unsupported dimension: {value}")


def count_by_action(reader, scope: Scope, filter_set: FilterSet) -> List[Dict[str, Any]]:
    actions = scope.actions
    total = func.count().label("total")
    statement = (
        scope.select(actions.action, total)
        .where(*filter_set.clauses)
        .group_by(actions.action)
        .order_by(total.desc(), actions.action)
    )
    return [{"action": row.action, "total": int(row.total)} for row in reader.fetch(statement)]


def derive_ctr(counts: Mapping[str, int]) -> Optional[float]:
    """Clicks per view, or None when nothing was viewed."""
    views = counts.get(Action.VIEW.value) or 0
    clicks = counts.get(Action.CLICKED.value) or 0
    return _ratio(clicks, views)


def group_by_dimension(
    reader, scope: Scope, filter_set: FilterSet, dimension: Dimension
) -> List[Dict[str, Any]]:
    dimension = parse_dimension(dimension)
    key = func.coalesce(scope.dimension(dimension), literal_column(f"'{UNKNOWN}'")).label("k")
    total = func.count().label("total")
    statement = (
        scope.select(key, total)
        .where(*filter_set.clauses)
        .group_by(key)
        .order_by(total.desc(), key)
    )
    return [{"k": row.k, "total": int(row.total)} for row in reader.fetch(statement)]


def time_series(
    reader, scope: Scope, filter_set: FilterSet, granularity: Granularity
) -> List[Dict[str, Any]]:
    bucket = time_bucket(granularity, scope.actions.occurred_at).label("bucket")
    statement = (
        scope.select(bucket, func.count().label("total"))
        .where(*filter_set.clauses)
        .group_by(bucket)
        .order_by(bucket)
    )
    return [{"bucket": row.bucket, "total": int(row.total)} for row in reader.fetch(statement)]


def time_series_by_action(
    reader, scope: Scope, filter_set: FilterSet, granularity: Granularity
) -> List[Dict[str, Any]]:
    actions = scope.actions
    bucket = time_bucket(granularity, actions.occurred_at).label("bucket")
    statement = (
        scope.select(bucket, actions.action, func.count().label("total"))
        .where(*filter_set.clauses)
        .group_by(bucket, actions.action)
        .order_by(bucket, actions.action)
    )
    return [
        {"bucket": row.bucket, "action": row.action, "total": int(row.total)}
        for row in reader.fetch(statement)
    ]


def active_time_distribution(reader, scope: Scope, filter_set: FilterSet) -> Dict[str, List[Dict[str, int]]]:
    occurred_at = scope.actions.occurred_at

    hour = hour_of_day(occurred_at).label("h")
    by_hour = (
        scope.select(hour, func.count().label("total"))
        .where(*filter_set.clauses)
        .group_by(hour)
        .order_by(hour)
    )

    dow = day_of_week(occurred_at).label("dow")
    by_dow = (
        scope.select(dow, func.count().label("total"))
        .where(*filter_set.clauses)
        .group_by(dow)
        .order_by(dow)
    )

    return {
        "by_hour": [{"h": int(row.h), "total": int(row.total or 0)} for row in reader.fetch(by_hour)],
        "by_dow": [{"dow": int(row.dow), "total": int(row.total or 0)} for row in reader.fetch(by_dow)],
    }


def retention(reader, scope: Scope, filter_set: FilterSet) -> Dict[str, Any]:
    actions = scope.actions
    per_user = (
        scope.select(actions.user_id, func.count().label("actions_count"))
        .where(*filter_set.clauses, actions.user_id.is_not(None))
        .group_by(actions.user_id)
        .subquery("per_user")
    )
    returning = case((per_user.c.actions_count > 1, 1), else_=0)
    statement = select(
        func.count().label("unique_users"),
        func.coalesce(func.sum(returning), 0).label("returning_users"),
    ).select_from(per_user)
    row = reader.fetch_one(statement)

    unique_users = int(row.unique_users or 0)
    returning_users = int(row.returning_users or 0)
    return {
        "unique_users": unique_users,
        "returning_users": returning_users,
        "retention_rate": _ratio(returning_users, unique_users),
    }


def totals(reader, scope: Scope, filter_set: FilterSet) -> Dict[str, Any]:
    counts = {row["action"]: row["total"] for row in count_by_action(reader, scope, filter_set)}
    result: Dict[str, Any] = {
        field: counts.get(action.value, 0) for field, action in TOTALS_FIELDS.items()
    }
    result["ctr"] = derive_ctr(counts)
    return result


def top_discounts(
    reader, scope: Scope, filter_set: FilterSet, action: str, limit: int
) -> List[Dict[str, int]]:
    actions = scope.actions
    total = func.count().label("total")
    statement = (
        scope.select(actions.discount_id, total)
        .where(*filter_set.clauses, actions.action == action)
        .group_by(actions.discount_id)
        .order_by(total.desc(), actions.discount_id)
        .limit(limit)
    )
    return [
        {"discount_id": int(row.discount_id), "total": int(row.total)}
        for row in reader.fetch(statement)
    ]

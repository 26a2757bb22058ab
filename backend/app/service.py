import logging
from typing import Any, Dict, List, Optional

from backend.app import aggregations
from backend.app.aggregations import parse_dimension
from backend.app.buckets import parse_granularity
from backend.app.errors import ValidationError
from backend.app.filters import ActionFilters, build_filter
from backend.app.scopes import everything, for_company, resolve_scope
from backend.app.store import EventStore
from shared.enums import Action, Dimension, Granularity, ScopeKind

logger = logging.getLogger(__name__)


class AnalyticsService:
    """
    Report operations for a single discount or for every discount of a company.

    Each operation resolves the scope, builds the filter for it and runs its
    aggregations inside one read session, so a report is never assembled from
    a partial result.
    """

    def __init__(self, store: EventStore, top_limit_max: int = 100):
        self.store = store
        self.top_limit_max = top_limit_max

    def _prepare(self, kind: ScopeKind, target_id: int, filters: Optional[ActionFilters]):
        scope = resolve_scope(kind, target_id)
        logger.debug(f"Analytics query on {scope.name} with {filters}")
        return scope, build_filter(filters, scope)

    def summary(self, kind: ScopeKind, target_id: int, filters: Optional[ActionFilters] = None) -> Dict[str, Any]:
        scope, filter_set = self._prepare(kind, target_id, filters)
        with self.store.reading() as reader:
            by_action = aggregations.count_by_action(reader, scope, filter_set)
        counts = {row["action"]: row["total"] for row in by_action}
        return {"by_action": by_action, "ctr": aggregations.derive_ctr(counts)}

    def demographics(self, kind: ScopeKind, target_id: int, filters: Optional[ActionFilters] = None) -> Dict[str, Any]:
        scope, filter_set = self._prepare(kind, target_id, filters)
        with self.store.reading() as reader:
            return {
                dimension.report_key: aggregations.group_by_dimension(reader, scope, filter_set, dimension)
                for dimension in Dimension
            }

    def dimension_breakdown(
        self, kind: ScopeKind, target_id: int, dimension, filters: Optional[ActionFilters] = None
    ) -> List[Dict[str, Any]]:
        dimension = parse_dimension(dimension)
        scope, filter_set = self._prepare(kind, target_id, filters)
        with self.store.reading() as reader:
            return aggregations.group_by_dimension(reader, scope, filter_set, dimension)

    def time_series(
        self,
        kind: ScopeKind,
        target_id: int,
        filters: Optional[ActionFilters] = None,
        granularity: Granularity = Granularity.DAY,
    ) -> List[Dict[str, Any]]:
        granularity = parse_granularity(granularity)
        scope, filter_set = self._prepare(kind, target_id, filters)
        with self.store.reading() as reader:
            return aggregations.time_series(reader, scope, filter_set, granularity)

    def time_series_by_action(
        self,
        kind: ScopeKind,
        target_id: int,
        filters: Optional[ActionFilters] = None,
        granularity: Granularity = Granularity.DAY,
    ) -> List[Dict[str, Any]]:
        granularity = parse_granularity(granularity)
        scope, filter_set = self._prepare(kind, target_id, filters)
        with self.store.reading() as reader:
            return aggregations.time_series_by_action(reader, scope, filter_set, granularity)

    def active_time(self, kind: ScopeKind, target_id: int, filters: Optional[ActionFilters] = None) -> Dict[str, Any]:
        scope, filter_set = self._prepare(kind, target_id, filters)
        with self.store.reading() as reader:
            return aggregations.active_time_distribution(reader, scope, filter_set)

    def retention(self, kind: ScopeKind, target_id: int, filters: Optional[ActionFilters] = None) -> Dict[str, Any]:
        scope, filter_set = self._prepare(kind, target_id, filters)
        with self.store.reading() as reader:
            return aggregations.retention(reader, scope, filter_set)

    def totals(self, kind: ScopeKind, target_id: int, filters: Optional[ActionFilters] = None) -> Dict[str, Any]:
        scope, filter_set = self._prepare(kind, target_id, filters)
        with self.store.reading() as reader:
            return aggregations.totals(reader, scope, filter_set)

    def report(
        self,
        kind: ScopeKind,
        target_id: int,
        filters: Optional[ActionFilters] = None,
        granularity: Granularity = Granularity.DAY,
    ) -> Dict[str, Any]:
        """Dashboard bundle: every per-scope report computed in one session."""
        granularity = parse_granularity(granularity)
        scope, filter_set = self._prepare(kind, target_id, filters)

        with self.store.reading() as reader:
            by_action = aggregations.count_by_action(reader, scope, filter_set)
            demographics = {
                dimension.report_key: aggregations.group_by_dimension(reader, scope, filter_set, dimension)
                for dimension in Dimension
            }
            timeseries = aggregations.time_series(reader, scope, filter_set, granularity)
            timeseries_by_action = aggregations.time_series_by_action(reader, scope, filter_set, granularity)
            active_time = aggregations.active_time_distribution(reader, scope, filter_set)
            retention = aggregations.retention(reader, scope, filter_set)

        counts = {row["action"]: row["total"] for row in by_action}
        return {
            "summary": {"by_action": by_action, "ctr": aggregations.derive_ctr(counts)},
            "demographics": demographics,
            "timeseries": timeseries,
            "timeseries_by_action": timeseries_by_action,
            "active_time": active_time,
            "retention": retention,
        }

    def top_by_action(
        self,
        action,
        limit: int = 10,
        filters: Optional[ActionFilters] = None,
        company_id: Optional[int] = None,
    ) -> List[Dict[str, int]]:
        try:
            action = Action(action)
        except ValueError:
            raise ValidationError(f"Unsupported action: {action}")
        if limit < 1 or limit > self.top_limit_max:
            raise ValidationError(f"limit must be between 1 and {self.top_limit_max}")

        scope = for_company(company_id) if company_id is not None else everything()
        filter_set = build_filter(filters, scope)
        with self.store.reading() as reader:
            return aggregations.top_discounts(reader, scope, filter_set, action.value, limit)

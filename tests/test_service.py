from datetime import date, datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.errors import StorageError, ValidationError
from backend.app.filters import ActionFilters
from backend.app.service import AnalyticsService
from backend.app.store import EventStore
from shared.enums import Granularity, ScopeKind


class TestAnalyticsService:

    def test_summary(self, service, record):
        record(1, "view", times=10)
        record(1, "clicked", times=3)

        result = service.summary(ScopeKind.DISCOUNT, 1)

        assert result == {
            "by_action": [{"action": "view", "total": 10}, {"action": "clicked", "total": 3}],
            "ctr": 0.3,
        }

    def test_summary_without_views_has_null_ctr(self, service, record):
        record(1, "clicked", times=2)

        assert service.summary(ScopeKind.DISCOUNT, 1)["ctr"] is None

    def test_demographics_bundles_every_dimension(self, service, record, catalog):
        record(1, "view", age_group="18-24", gender="female", city="Tashkent", region="Tashkent", device_type="ios")
        record(2, "view")

        result = service.demographics(ScopeKind.COMPANY, 1)

        assert set(result) == {"age", "gender", "city", "region", "device"}
        assert result["age"] == [{"k": "18-24", "total": 1}, {"k": "unknown", "total": 1}]
        assert result["device"] == [{"k": "ios", "total": 1}, {"k": "unknown", "total": 1}]

    def test_time_series_accepts_granularity_strings(self, service, record):
        record(1, "view", datetime(2025, 1, 15))
        record(1, "view", datetime(2025, 2, 1))

        result = service.time_series(ScopeKind.DISCOUNT, 1, granularity="month")

        assert result == [{"bucket": "2025-01", "total": 1}, {"bucket": "2025-02", "total": 1}]

    def test_company_totals(self, service, record, catalog):
        record(1, "view", times=6)
        record(2, "view", times=2)
        record(2, "clicked", times=2)
        record(2, "map_open")
        record(3, "favorite", times=9)

        result = service.totals(ScopeKind.COMPANY, 1)

        assert result == {
            "total_views": 8,
            "total_clicks": 2,
            "total_redirects": 0,
            "total_map_open": 1,
            "total_shares": 0,
            "total_favorites": 0,
            "ctr": 0.25,
        }

    def test_unknown_company_totals_are_zeroed(self, service, catalog):
        result = service.totals(ScopeKind.COMPANY, 404)

        assert result["total_views"] == 0
        assert result["ctr"] is None

    def test_report(self, service, record, catalog):
        record(1, "view", datetime(2025, 3, 3, 10, 0), user_id=1, times=2, city="Tashkent")
        record(2, "clicked", datetime(2025, 3, 4, 18, 0), user_id=2)
        record(3, "view", datetime(2025, 3, 4, 18, 0), user_id=3)

        report = service.report(
            ScopeKind.COMPANY, 1, ActionFilters(from_=date(2025, 3, 1), to=date(2025, 3, 31)), Granularity.WEEK
        )

        assert report["summary"] == {
            "by_action": [{"action": "view", "total": 2}, {"action": "clicked", "total": 1}],
            "ctr": 0.5,
        }
        assert report["demographics"]["city"] == [{"k": "Tashkent", "total": 2}, {"k": "unknown", "total": 1}]
        assert report["timeseries"] == [{"bucket": "2025-W10", "total": 3}]
        assert report["timeseries_by_action"] == [
            {"bucket": "2025-W10", "action": "clicked", "total": 1},
            {"bucket": "2025-W10", "action": "view", "total": 2},
        ]
        assert report["active_time"] == {
            "by_hour": [{"h": 10, "total": 2}, {"h": 18, "total": 1}],
            "by_dow": [{"dow": 1, "total": 2}, {"dow": 2, "total": 1}],
        }
        assert report["retention"] == {"unique_users": 2, "returning_users": 1, "retention_rate": 0.5}

    def test_report_on_empty_scope(self, service):
        report = service.report(ScopeKind.DISCOUNT, 1)

        assert report["summary"] == {"by_action": [], "ctr": None}
        assert report["timeseries"] == []
        assert report["retention"]["retention_rate"] is None

    def test_top_by_action(self, service, record, catalog):
        record(1, "redirect", times=2)
        record(3, "redirect", times=5)

        assert service.top_by_action("redirect", 5) == [
            {"discount_id": 3, "total": 5},
            {"discount_id": 1, "total": 2},
        ]
        assert service.top_by_action("redirect", 5, company_id=1) == [{"discount_id": 1, "total": 2}]


class TestValidation:

    @pytest.fixture
    def untouched_store(self):
        return MagicMock(spec=EventStore)

    def test_unknown_dimension_rejected_before_querying(self, untouched_store):
        service = AnalyticsService(untouched_store)

        with pytest.raises(ValidationError):
            service.dimension_breakdown(ScopeKind.DISCOUNT, 1, "email")

        untouched_store.reading.assert_not_called()

    def test_unknown_granularity_rejected_before_querying(self, untouched_store):
        service = AnalyticsService(untouched_store)

        with pytest.raises(ValidationError):
            service.report(ScopeKind.DISCOUNT, 1, granularity="quarter")

        untouched_store.reading.assert_not_called()

    def test_unknown_scope_rejected(self, untouched_store):
        service = AnalyticsService(untouched_store)

        with pytest.raises(ValidationError):
            service.summary("branches", 1)

    def test_top_rejects_bad_action_and_limit(self, untouched_store):
        service = AnalyticsService(untouched_store, top_limit_max=50)

        with pytest.raises(ValidationError):
            service.top_by_action("teleport", 10)
        with pytest.raises(ValidationError):
            service.top_by_action("view", 0)
        with pytest.raises(ValidationError):
            service.top_by_action("view", 51)

        untouched_store.reading.assert_not_called()


class TestStorageFailures:

    def test_missing_tables_surface_as_storage_error(self):
        engine = create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        service = AnalyticsService(EventStore(sessionmaker(bind=engine)))

        with pytest.raises(StorageError) as exc_info:
            service.report(ScopeKind.COMPANY, 1)

        assert exc_info.value.retryable is True

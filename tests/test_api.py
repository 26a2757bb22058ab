import logging
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from backend.app import main, metrics
from backend.app.main import app
from backend.app.metrics import RequestWindow
from backend.app.store import get_store
from shared.config import settings

API_KEY = "dashboard-key"
HEADERS = {"X-API-Key": API_KEY}


@pytest.fixture
def client(store, monkeypatch):
    monkeypatch.setattr(settings, "API_KEYS", {API_KEY})
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestAnalyticsEndpoints:

    def test_requires_api_key(self, client):
        response = client.get("/analytics/discounts/1/summary")

        assert response.status_code == 401

    def test_summary(self, client, record):
        record(1, "view", times=10)
        record(1, "clicked", times=3)

        response = client.get("/analytics/discounts/1/summary", headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {
            "by_action": [{"action": "view", "total": 10}, {"action": "clicked", "total": 3}],
            "ctr": 0.3,
        }
        assert "X-Process-Time" in response.headers

    def test_filters_from_query_string(self, client, record):
        record(1, "view", datetime(2025, 3, 9, 22, 0), city="Tashkent")
        record(1, "view", datetime(2025, 3, 9, 22, 0), city="Bukhara")
        record(1, "view", datetime(2025, 3, 10, 1, 0), city="Tashkent")

        response = client.get(
            "/analytics/discounts/1/summary",
            params={"from": "2025-03-01", "to": "2025-03-09", "city": "Tashkent"},
            headers=HEADERS,
        )

        assert response.json()["by_action"] == [{"action": "view", "total": 1}]

    def test_company_totals(self, client, record, catalog):
        record(1, "view", times=2)
        record(2, "clicked")

        response = client.get("/analytics/companies/1/totals", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["total_views"] == 2
        assert body["total_clicks"] == 1
        assert body["total_shares"] == 0
        assert body["ctr"] == 0.5

    def test_time_series_week(self, client, record):
        record(1, "view", datetime(2024, 12, 31, 8, 0))
        record(1, "view", datetime(2025, 1, 1, 8, 0))

        response = client.get(
            "/analytics/discounts/1/timeseries", params={"granularity": "week"}, headers=HEADERS
        )

        assert response.json() == {"data": [{"bucket": "2025-W01", "total": 2}], "granularity": "week"}

    def test_dimension_endpoint(self, client, record):
        record(1, "view", gender="female")
        record(1, "view")

        response = client.get("/analytics/discounts/1/dimensions/gender", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["data"] == [{"k": "female", "total": 1}, {"k": "unknown", "total": 1}]

    def test_unknown_dimension_is_bad_request(self, client):
        response = client.get("/analytics/discounts/1/dimensions/password", headers=HEADERS)

        assert response.status_code == 400
        assert "Unsupported dimension" in response.json()["detail"]

    def test_unknown_scope_is_rejected(self, client):
        response = client.get("/analytics/branches/1/summary", headers=HEADERS)

        assert response.status_code == 422

    def test_report(self, client, record, catalog):
        record(2, "view", user_id=5, times=2)

        response = client.get("/analytics/companies/1/report", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {
            "summary", "demographics", "timeseries", "timeseries_by_action", "active_time", "retention",
        }
        assert body["retention"] == {"unique_users": 1, "returning_users": 1, "retention_rate": 1.0}

    def test_active_time_and_retention_on_empty_discount(self, client):
        active = client.get("/analytics/discounts/7/active-time", headers=HEADERS)
        retention = client.get("/analytics/discounts/7/retention", headers=HEADERS)

        assert active.json() == {"by_hour": [], "by_dow": []}
        assert retention.json() == {"unique_users": 0, "returning_users": 0, "retention_rate": None}

    def test_top(self, client, record, catalog):
        record(1, "share", times=2)
        record(3, "share", times=4)

        response = client.get(
            "/analytics/top", params={"action": "share", "limit": 1}, headers=HEADERS
        )

        assert response.json() == {"data": [{"discount_id": 3, "total": 4}], "action": "share"}

    def test_storage_failure_is_service_unavailable(self, client, monkeypatch):
        from backend.app.errors import StorageError
        from backend.app.service import AnalyticsService

        def fail(*args, **kwargs):
            raise StorageError("statement timeout", retryable=True)

        monkeypatch.setattr(AnalyticsService, "summary", fail)

        response = client.get("/analytics/discounts/1/summary", headers=HEADERS)

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"

    def test_midnight_datetime_upper_bound_is_not_widened_to_whole_day(self, client, record):
        record(1, "view", datetime(2025, 3, 9, 0, 0))
        record(1, "view", datetime(2025, 3, 9, 15, 0))

        response = client.get(
            "/analytics/discounts/1/summary", params={"to": "2025-03-09T00:00:00"}, headers=HEADERS
        )

        assert response.json()["by_action"] == [{"action": "view", "total": 1}]

    def test_top_limit_follows_configured_maximum(self, client, record, monkeypatch):
        monkeypatch.setattr(settings, "TOP_LIMIT_MAX", 500)
        record(1, "view")

        allowed = client.get("/analytics/top", params={"limit": 200}, headers=HEADERS)
        too_many = client.get("/analytics/top", params={"limit": 501}, headers=HEADERS)

        assert allowed.status_code == 200
        assert allowed.json()["data"] == [{"discount_id": 1, "total": 1}]
        assert too_many.status_code == 400

    def test_dimension_endpoint_echoes_canonical_name(self, client, record):
        record(1, "view", age_group="25-34")

        by_report_key = client.get("/analytics/discounts/1/dimensions/age", headers=HEADERS)
        by_column = client.get("/analytics/discounts/1/dimensions/age_group", headers=HEADERS)

        assert by_report_key.json() == by_column.json() == {
            "data": [{"k": "25-34", "total": 1}],
            "dimension": "age_group",
        }

    def test_request_log_reports_per_path_count(self, client, monkeypatch, caplog):
        monkeypatch.setattr(metrics, "request_window", RequestWindow())

        with caplog.at_level(logging.INFO, logger="api_metrics"):
            client.get("/health")
            client.get("/health")
            client.get("/")

        assert "GET /health" in caplog.text
        assert "(this path: 2)" in caplog.text


class TestIngestEndpoint:

    def test_nats_unavailable(self, client, monkeypatch):
        monkeypatch.setattr(main, "nats_client", None)

        response = client.post(
            "/actions",
            json={"actions": [{"discount_id": 1, "action": "view"}]},
            headers=HEADERS,
        )

        assert response.status_code == 503

    def test_rejects_unknown_action(self, client):
        response = client.post(
            "/actions",
            json={"actions": [{"discount_id": 1, "action": "teleport"}]},
            headers=HEADERS,
        )

        assert response.status_code == 422

"""
Unit Tests - Analytics API
"""
import pytest
from httpx import ASGITransport, AsyncClient

from funnel_analytics.database.connection import get_db_dependency
from funnel_analytics.serving.api import create_api_app
from funnel_analytics.serving.api.routes.analytics import clamp_page
from conftest import funnel_session


@pytest.fixture
async def client(test_db, add_events):
    """API client bound to the test database"""
    await add_events(
        funnel_session("n1", [(1, "State"), (2, "Age")], domain="blueskylife.net", device_type="mobile")
        + funnel_session("n2", [(1, "State")], start=5, domain="blueskylife.net", device_type="desktop")
        + funnel_session("i1", [], start=10, domain="blueskylife.io", utm_source=None)
    )

    app = create_api_app()

    async def override_db():
        yield test_db

    app.dependency_overrides[get_db_dependency] = override_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


class TestClampPage:
    """Tests for clamp_page"""

    def test_defaults(self):
        assert clamp_page(None, None) == (1, 25)

    def test_limit_is_capped(self):
        assert clamp_page(2, 500) == (2, 200)

    def test_page_floor(self):
        assert clamp_page(-3, 10) == (1, 10)


class TestDrilldownEndpoint:
    """Tests for GET /api/v1/analytics/drilldown"""

    async def test_grouped_rows(self, client):
        response = await client.get("/api/v1/analytics/drilldown", params={"groupBy": "domain"})

        assert response.status_code == 200
        body = response.json()
        assert body["groupBy"] == "domain"
        assert [row["groupValue"] for row in body["rows"]] == ["blueskylife.net", "blueskylife.io"]
        assert body["totals"]["groupValue"] == "Totals"
        assert body["totals"]["uniqueViews"] == 3
        assert body["rows"][0]["steps"][0]["stepKey"] == "1:State"

    async def test_default_group_by(self, client):
        response = await client.get("/api/v1/analytics/drilldown")

        assert response.status_code == 200
        assert response.json()["groupBy"] == "domain"

    async def test_expand_row_with_parent(self, client):
        response = await client.get(
            "/api/v1/analytics/drilldown",
            params={"groupBy": "deviceType", "parent": "domain:blueskylife.net"},
        )

        assert response.status_code == 200
        values = {row["groupValue"]: row["uniqueViews"] for row in response.json()["rows"]}
        assert values == {"mobile": 1, "desktop": 1}

    async def test_invalid_group_by(self, client):
        response = await client.get("/api/v1/analytics/drilldown", params={"groupBy": "browser"})

        assert response.status_code == 400
        assert response.json()["field"] == "groupBy"

    async def test_reused_parent_dimension(self, client):
        response = await client.get(
            "/api/v1/analytics/drilldown",
            params={"groupBy": "domain", "parent": "domain:blueskylife.net"},
        )

        assert response.status_code == 400

    async def test_time_without_date(self, client):
        response = await client.get("/api/v1/analytics/drilldown", params={"endTime": "17:00"})

        assert response.status_code == 400
        assert response.json()["field"] == "endTime"

    async def test_invalid_date(self, client):
        response = await client.get("/api/v1/analytics/drilldown", params={"startDate": "tomorrow"})

        assert response.status_code == 400
        assert response.json()["field"] == "startDate"


class TestSessionsEndpoint:
    """Tests for GET /api/v1/analytics/sessions"""

    async def test_limit_is_clamped(self, client):
        response = await client.get("/api/v1/analytics/sessions", params={"limit": 1000})

        assert response.status_code == 200
        body = response.json()
        assert body["limit"] == 200
        assert body["total"] == 3
        assert body["totalPages"] == 1

    async def test_session_fields(self, client):
        response = await client.get("/api/v1/analytics/sessions", params={"domain": "blueskylife.net", "limit": 1})

        body = response.json()
        assert body["total"] == 2
        assert body["totalPages"] == 2
        session = body["sessions"][0]
        assert session["sessionId"] == "n2"
        assert session["maxStep"] == 1
        assert session["eventCount"] == 2
        assert session["terminalEventType"] == "step_complete"


class TestOverviewEndpoints:
    """Tests for the overview endpoints"""

    async def test_funnel(self, client):
        response = await client.get("/api/v1/analytics/funnel")

        assert response.status_code == 200
        assert response.json()["landBase"] == 3

    async def test_stats(self, client):
        response = await client.get("/api/v1/analytics/stats")

        body = response.json()
        assert body["totalSessions"] == 3
        assert body["bouncedSessions"] == 1

    async def test_breakdown(self, client):
        response = await client.get("/api/v1/analytics/breakdown")

        assert response.status_code == 200
        assert response.json() == []

    async def test_referrers(self, client):
        response = await client.get("/api/v1/analytics/referrers")

        assert response.status_code == 200
        assert response.json() == [
            {"referrer": "(direct)", "sessions": 3, "completions": 0, "conversionRate": 0.0},
        ]

    async def test_campaigns(self, client):
        response = await client.get("/api/v1/analytics/campaigns")

        body = response.json()
        assert [(row["source"], row["sessions"]) for row in body] == [("facebook", 2), ("(none)", 1)]
        assert body[0]["campaign"] == "spring_final_expense"

    async def test_heatmap(self, client):
        response = await client.get("/api/v1/analytics/heatmap", params={"domain": "blueskylife.net"})

        assert response.json() == [
            {"dayOfWeek": 1, "hour": 9, "sessions": 2, "conversions": 0, "conversionRate": 0.0},
        ]

    async def test_contact_funnel(self, client):
        response = await client.get("/api/v1/analytics/contact-funnel")

        assert response.status_code == 200
        assert response.json() == {"steps": []}

    async def test_filter_options(self, client):
        response = await client.get("/api/v1/analytics/filter-options")

        body = response.json()
        assert body["domains"] == ["blueskylife.io", "blueskylife.net"]
        assert body["utmSources"] == ["facebook"]


class TestHealth:
    """Tests for the health endpoints"""

    async def test_liveness(self, client):
        response = await client.get("/api/v1/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}
        assert "X-Request-ID" in response.headers
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    async def test_metrics(self, client):
        await client.get("/api/v1/health/live")
        response = await client.get("/api/v1/metrics")

        assert response.status_code == 200
        assert "funnel_api_requests_total" in response.text

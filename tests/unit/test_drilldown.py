"""
Unit Tests - Drilldown Engine
"""
import pytest

from funnel_analytics.analytics import (
    DrilldownDepthError,
    FilterSpec,
    InvalidDimensionError,
    drilldown,
    validate_drill_path,
)
from funnel_analytics.analytics.dimensions import NONE_SENTINEL, UNKNOWN_SENTINEL
from conftest import funnel_session

STATE = (1, "State")
AGE = (2, "Age")


@pytest.fixture
async def seeded(add_events):
    """Five sessions across two domains, devices and sources"""
    events = []
    events += funnel_session("n1", [STATE, AGE], domain="blueskylife.net", device_type="mobile", utm_source="facebook")
    events += funnel_session("n2", [STATE], start=5, domain="blueskylife.net", device_type="mobile", utm_source="google")
    events += funnel_session("n3", [], start=10, domain="blueskylife.net", device_type="desktop", utm_source="facebook")
    events += funnel_session("i1", [STATE], start=300, domain="blueskylife.io", device_type="mobile", utm_source=None)
    events += funnel_session("x1", [STATE, AGE], start=840, domain=None, device_type="tablet", utm_source=None, is_bot=True)
    await add_events(events)


class TestDrilldown:
    """Tests for drilldown over the event store"""

    async def test_groups_by_domain_with_sentinel(self, store, seeded):
        result = await drilldown(store, FilterSpec(), "domain")

        assert result.group_by == "domain"
        assert [row.group_value for row in result.rows] == [
            "blueskylife.net",
            UNKNOWN_SENTINEL,
            "blueskylife.io",
        ]
        assert [row.unique_views for row in result.rows] == [3, 1, 1]

    async def test_row_funnel(self, store, seeded):
        result = await drilldown(store, FilterSpec(), "domain")
        net = result.rows[0]

        assert net.page_lands == 3
        assert net.gross_views == 6
        assert [(s.step_key, s.completions) for s in net.steps] == [("1:State", 2), ("2:Age", 1)]
        assert net.steps[0].conversion_from_initial == 66.7

    async def test_totals_sum_rows(self, store, seeded):
        result = await drilldown(store, FilterSpec(), "domain")

        assert result.totals.unique_views == sum(row.unique_views for row in result.rows)
        assert result.totals.gross_views == sum(row.gross_views for row in result.rows)
        assert result.totals.steps[0].completions == 4

    async def test_totals_step_completions_sum_rows_for_every_key(self, store, seeded):
        for dimension in ("domain", "deviceType", "utmSource", "hourOfDay"):
            result = await drilldown(store, FilterSpec(), dimension)
            for step in result.totals.steps:
                row_sum = sum(
                    s.completions for row in result.rows for s in row.steps if s.step_key == step.step_key
                )
                assert step.completions == row_sum, (dimension, step.step_key)

    async def test_missing_utm_source_uses_none_sentinel(self, store, seeded):
        result = await drilldown(store, FilterSpec(), "utmSource")
        values = {row.group_value: row.unique_views for row in result.rows}

        assert values == {"facebook": 2, NONE_SENTINEL: 2, "google": 1}

    async def test_hour_of_day_is_ordered_numerically(self, store, seeded):
        result = await drilldown(store, FilterSpec(), "hourOfDay")

        assert [row.group_value for row in result.rows] == ["9", "14", "23"]

    async def test_drill_path_leaf_sums_within_parent(self, store, seeded):
        filters = FilterSpec()
        domains = await drilldown(store, filters, "domain")
        parent = domains.rows[0]

        devices = await drilldown(store, filters, "deviceType", {"domain": parent.group_value})
        assert sum(row.unique_views for row in devices.rows) <= parent.unique_views

        mobile = next(row for row in devices.rows if row.group_value == "mobile")
        sources = await drilldown(
            store,
            filters,
            "utmSource",
            {"domain": parent.group_value, "deviceType": "mobile"},
        )
        assert sum(row.unique_views for row in sources.rows) <= mobile.unique_views
        assert {row.group_value for row in sources.rows} == {"facebook", "google"}

    async def test_sentinel_parent_filter_selects_missing_values(self, store, seeded):
        result = await drilldown(store, FilterSpec(), "domain", {"utmSource": NONE_SENTINEL})

        assert {row.group_value for row in result.rows} == {"blueskylife.io", UNKNOWN_SENTINEL}

    async def test_hour_parent_filter(self, store, seeded):
        result = await drilldown(store, FilterSpec(), "domain", {"hourOfDay": "14"})

        assert [row.group_value for row in result.rows] == ["blueskylife.io"]

    async def test_global_filters_apply(self, store, seeded):
        result = await drilldown(store, FilterSpec(exclude_bots=True, device_type="mobile"), "domain")

        assert [row.group_value for row in result.rows] == ["blueskylife.net", "blueskylife.io"]
        assert result.totals.unique_views == 3

    async def test_empty_population(self, store, seeded):
        result = await drilldown(store, FilterSpec(domain="nowhere.example"), "domain")

        assert result.rows == []
        assert result.totals.unique_views == 0
        assert result.totals.steps == []

    async def test_invalid_group_by_fails_before_querying(self):
        # the store is never touched
        with pytest.raises(InvalidDimensionError) as exc_info:
            await drilldown(object(), FilterSpec(), "browser")
        assert exc_info.value.field == "groupBy"


class TestValidateDrillPath:
    """Tests for drill path validation"""

    def test_allows_new_dimension(self):
        validate_drill_path(["domain", "deviceType"], "utmSource", max_depth=3)

    def test_rejects_reused_dimension(self):
        with pytest.raises(DrilldownDepthError):
            validate_drill_path(["domain"], "domain", max_depth=3)

    def test_rejects_path_beyond_depth(self):
        with pytest.raises(DrilldownDepthError):
            validate_drill_path(["domain", "deviceType", "utmSource"], "page", max_depth=3)

    def test_rejects_unknown_parent_dimension(self):
        with pytest.raises(InvalidDimensionError) as exc_info:
            validate_drill_path(["color"], "domain", max_depth=3)
        assert exc_info.value.field == "parentFilters"

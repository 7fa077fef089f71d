"""
Unit Tests - Filters and Dimensions
"""
from datetime import datetime

import pytest
from sqlalchemy.dialects import sqlite
from starlette.datastructures import QueryParams

from funnel_analytics.analytics import (
    FilterSpec,
    InvalidDimensionError,
    InvalidFilterError,
    build_event_predicate,
    parse_dimension,
    parse_parent_filters,
)
from funnel_analytics.analytics.dimensions import NONE_SENTINEL, UNKNOWN_SENTINEL, Dimension
from funnel_analytics.analytics.filters import parent_filter_clause


def compiled(clause) -> str:
    return str(clause.compile(dialect=sqlite.dialect(), compile_kwargs={"literal_binds": True}))


class TestFilterSpecFromQuery:
    """Tests for FilterSpec.from_query"""

    def test_single_value_is_a_string(self):
        filters = FilterSpec.from_query(QueryParams("domain=blueskylife.net"))
        assert filters.domain == "blueskylife.net"

    def test_repeated_and_comma_separated_values(self):
        filters = FilterSpec.from_query(QueryParams("utmSource=facebook,google&utmSource=bing"))
        assert filters.utm_source == ["facebook", "google", "bing"]

    def test_audience_maps_to_page(self):
        filters = FilterSpec.from_query(QueryParams("audience=seniors"))
        assert filters.page == "seniors"

    @pytest.mark.parametrize("raw,expected", [("true", True), ("1", True), ("false", False), ("", False)])
    def test_exclude_bots(self, raw, expected):
        filters = FilterSpec.from_query(QueryParams(f"excludeBots={raw}"))
        assert filters.exclude_bots is expected

    def test_plain_mapping(self):
        filters = FilterSpec.from_query({"deviceType": "mobile", "startDate": "2025-03-01"})
        assert filters.device_type == "mobile"
        assert filters.start_date == "2025-03-01"

    def test_absent_means_unconstrained(self):
        filters = FilterSpec.from_query(QueryParams(""))
        assert filters == FilterSpec()


class TestTimeBounds:
    """Tests for FilterSpec.time_bounds"""

    def test_full_days(self):
        start, end = FilterSpec(start_date="2025-03-01", end_date="2025-03-02").time_bounds()

        assert start == datetime(2025, 3, 1, 0, 0)
        assert end == datetime(2025, 3, 2, 23, 59, 59, 999999)

    def test_times_narrow_the_days(self):
        start, end = FilterSpec(
            start_date="2025-03-01", end_date="2025-03-01", start_time="09:30", end_time="17:00"
        ).time_bounds()

        assert start == datetime(2025, 3, 1, 9, 30)
        assert end == datetime(2025, 3, 1, 17, 0, 59, 999999)

    def test_no_dates(self):
        assert FilterSpec().time_bounds() == (None, None)

    def test_malformed_date(self):
        with pytest.raises(InvalidFilterError) as exc_info:
            FilterSpec(start_date="03/01/2025").time_bounds()
        assert exc_info.value.field == "startDate"

    def test_malformed_time(self):
        with pytest.raises(InvalidFilterError) as exc_info:
            FilterSpec(end_date="2025-03-01", end_time="25:00").time_bounds()
        assert exc_info.value.field == "endTime"

    @pytest.mark.parametrize("fields, field", [
        ({"start_time": "08:00"}, "startTime"),
        ({"end_time": "17:00"}, "endTime"),
        ({"start_time": "08:00", "end_date": "2025-03-01"}, "startTime"),
    ])
    def test_time_without_its_date(self, fields, field):
        with pytest.raises(InvalidFilterError) as exc_info:
            FilterSpec(**fields).time_bounds()
        assert exc_info.value.field == field

    def test_inverted_range(self):
        with pytest.raises(InvalidFilterError):
            FilterSpec(start_date="2025-03-02", end_date="2025-03-01").time_bounds()


class TestBuildEventPredicate:
    """Tests for build_event_predicate"""

    def test_empty_filters_match_everything(self):
        assert "tracking_events" not in compiled(build_event_predicate(FilterSpec()))

    def test_single_and_multi_values(self):
        sql = compiled(build_event_predicate(FilterSpec(domain="a.net", device_type=["mobile", "tablet"])))

        assert "tracking_events.domain = 'a.net'" in sql
        assert "tracking_events.device_type IN ('mobile', 'tablet')" in sql

    def test_exclude_bots_keeps_unflagged_events(self):
        sql = compiled(build_event_predicate(FilterSpec(exclude_bots=True)))
        assert "tracking_events.is_bot IS NULL" in sql

    def test_parent_filters_are_anded(self):
        sql = compiled(build_event_predicate(FilterSpec(), {"domain": "a.net", "utmSource": NONE_SENTINEL}))

        assert "tracking_events.domain = 'a.net'" in sql
        assert "tracking_events.utm_source IS NULL" in sql

    def test_malformed_dates_are_rejected(self):
        with pytest.raises(InvalidFilterError):
            build_event_predicate(FilterSpec(end_date="yesterday"))


class TestParentFilters:
    """Tests for parent filter parsing"""

    def test_parse_pairs_in_order(self):
        path = parse_parent_filters(["domain:a.net", "deviceType:mobile"])
        assert list(path.items()) == [("domain", "a.net"), ("deviceType", "mobile")]

    def test_value_may_contain_colon(self):
        assert parse_parent_filters(["page:lp:v2"]) == {"page": "lp:v2"}

    @pytest.mark.parametrize("raw", ["domain", ":a.net"])
    def test_malformed_pair(self, raw):
        with pytest.raises(InvalidFilterError):
            parse_parent_filters([raw])

    def test_duplicate_dimension(self):
        with pytest.raises(InvalidFilterError):
            parse_parent_filters(["domain:a.net", "domain:b.net"])

    def test_unknown_dimension(self):
        with pytest.raises(InvalidDimensionError):
            parse_parent_filters(["color:blue"])

    def test_unknown_sentinel_selects_null(self):
        assert compiled(parent_filter_clause("domain", UNKNOWN_SENTINEL)) == "tracking_events.domain IS NULL"

    def test_non_numeric_hour(self):
        with pytest.raises(InvalidFilterError):
            parent_filter_clause("hourOfDay", "noon")


class TestDimensions:
    """Tests for parse_dimension"""

    @pytest.mark.parametrize("name", [d.value for d in Dimension])
    def test_every_dimension_resolves(self, name):
        assert parse_dimension(name).dimension.value == name

    def test_utm_dimensions_use_none_sentinel(self):
        assert parse_dimension("utmSource").sentinel == NONE_SENTINEL
        assert parse_dimension("deviceType").sentinel == UNKNOWN_SENTINEL

    def test_only_hour_is_ordinal(self):
        assert [d.value for d in Dimension if parse_dimension(d.value).ordinal] == ["hourOfDay"]

    @pytest.mark.parametrize("name", ["browser", "DOMAIN", "", None])
    def test_invalid_dimension(self, name):
        with pytest.raises(InvalidDimensionError) as exc_info:
            parse_dimension(name)
        assert exc_info.value.field == "groupBy"

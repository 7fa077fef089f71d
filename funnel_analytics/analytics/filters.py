"""
Filter Predicate Builder

Translates one FilterSpec (plus an optional drilldown parent-filter map)
into a single SQLAlchemy boolean clause over the tracking event table.
Every analytics query path consumes the same FilterSpec, so "same filters,
different view" always means the same event population.
"""

import re
from datetime import date, datetime, time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field
from sqlalchemy import and_, or_, true
from sqlalchemy.sql.elements import ColumnElement

from funnel_analytics.analytics.dimensions import SENTINELS, Dimension, parse_dimension
from funnel_analytics.analytics.errors import InvalidFilterError
from funnel_analytics.database.models import TrackingEvent

FilterValue = Optional[Union[str, List[str]]]

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

# attribute -> (query parameter names, column)
DIMENSION_FILTERS: Dict[str, Tuple[Tuple[str, ...], Any]] = {
    "domain": (("domain",), TrackingEvent.domain),
    "page": (("audience", "page"), TrackingEvent.page),
    "page_type": (("pageType",), TrackingEvent.page_type),
    "funnel_id": (("funnelId",), TrackingEvent.funnel_id),
    "device_type": (("deviceType",), TrackingEvent.device_type),
    "os": (("os",), TrackingEvent.os),
    "browser": (("browser",), TrackingEvent.browser),
    "geo_state": (("geoState",), TrackingEvent.geo_state),
    "selected_state": (("selectedState",), TrackingEvent.selected_state),
    "utm_source": (("utmSource",), TrackingEvent.utm_source),
    "utm_campaign": (("utmCampaign",), TrackingEvent.utm_campaign),
    "utm_medium": (("utmMedium",), TrackingEvent.utm_medium),
    "utm_content": (("utmContent",), TrackingEvent.utm_content),
}

_TRUTHY = {"1", "true", "yes", "on"}


class FilterSpec(BaseModel):
    """Global analytics filters. Absent means unconstrained."""

    domain: FilterValue = None
    page: FilterValue = None
    page_type: FilterValue = None
    funnel_id: FilterValue = None
    device_type: FilterValue = None
    os: FilterValue = None
    browser: FilterValue = None
    geo_state: FilterValue = None
    selected_state: FilterValue = None
    utm_source: FilterValue = None
    utm_campaign: FilterValue = None
    utm_medium: FilterValue = None
    utm_content: FilterValue = None

    exclude_bots: bool = False

    start_date: Optional[str] = Field(default=None, description="ISO date, inclusive")
    end_date: Optional[str] = Field(default=None, description="ISO date, inclusive")
    start_time: Optional[str] = Field(default=None, description="HH:MM narrowing start_date")
    end_time: Optional[str] = Field(default=None, description="HH:MM narrowing end_date")

    @classmethod
    def from_query(cls, params: Mapping[str, Any]) -> "FilterSpec":
        """
        Build filters from HTTP query parameters.

        Accepts repeated parameters (starlette QueryParams) and
        comma-separated values; one value becomes a string, several a list.
        """
        values: Dict[str, Any] = {}
        for attr, (names, _column) in DIMENSION_FILTERS.items():
            collected: List[str] = []
            for name in names:
                collected.extend(_split_multi(_getlist(params, name)))
            if len(collected) == 1:
                values[attr] = collected[0]
            elif collected:
                values[attr] = collected

        for attr, name in (
            ("start_date", "startDate"),
            ("end_date", "endDate"),
            ("start_time", "startTime"),
            ("end_time", "endTime"),
        ):
            raw = params.get(name)
            if raw:
                values[attr] = str(raw).strip()

        exclude = params.get("excludeBots")
        values["exclude_bots"] = bool(exclude) and str(exclude).lower() in _TRUTHY
        return cls(**values)

    def time_bounds(self) -> Tuple[Optional[datetime], Optional[datetime]]:
        """
        Resolve the inclusive UTC timestamp range.

        Raises:
            InvalidFilterError: On a malformed date or time, or a time
                without the date it narrows
        """
        if self.start_time and not self.start_date:
            raise InvalidFilterError("startTime requires startDate", field="startTime")
        if self.end_time and not self.end_date:
            raise InvalidFilterError("endTime requires endDate", field="endTime")

        start = end = None
        if self.start_date:
            day = _parse_date(self.start_date, "startDate")
            start_at = _parse_time(self.start_time, "startTime") if self.start_time else time.min
            start = datetime.combine(day, start_at)
        if self.end_date:
            day = _parse_date(self.end_date, "endDate")
            if self.end_time:
                end_at = _parse_time(self.end_time, "endTime").replace(second=59, microsecond=999999)
            else:
                end_at = time.max
            end = datetime.combine(day, end_at)
        if start and end and start > end:
            raise InvalidFilterError("startDate must not be after endDate", field="startDate")
        return start, end


def _getlist(params: Mapping[str, Any], name: str) -> List[str]:
    if hasattr(params, "getlist"):
        return list(params.getlist(name))
    raw = params.get(name)
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(v) for v in raw]
    return [str(raw)]


def _split_multi(raw_values: List[str]) -> List[str]:
    parts: List[str] = []
    for raw in raw_values:
        parts.extend(p.strip() for p in raw.split(",") if p.strip())
    return parts


def _parse_date(value: str, field: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise InvalidFilterError(f"{field} must be an ISO date (YYYY-MM-DD), got {value!r}", field=field) from None


def _parse_time(value: str, field: str) -> time:
    match = _TIME_PATTERN.match(value)
    if not match:
        raise InvalidFilterError(f"{field} must be HH:MM, got {value!r}", field=field)
    return time(int(match.group(1)), int(match.group(2)))


def _value_clause(column: Any, value: FilterValue) -> Optional[ColumnElement]:
    if value is None:
        return None
    if isinstance(value, list):
        return column.in_(value) if value else None
    return column == value


def parent_filter_clause(dimension: str, value: str) -> ColumnElement:
    """
    Constrain events to one drilldown group.

    Sentinel group values select the rows whose attribute is missing.
    """
    spec = parse_dimension(dimension, field="parentFilters")
    if spec.dimension is Dimension.HOUR_OF_DAY:
        try:
            hour = int(value)
        except (TypeError, ValueError):
            raise InvalidFilterError(f"hourOfDay parent filter must be an hour, got {value!r}", field="parentFilters") from None
        return spec.expression() == hour
    if value in SENTINELS:
        return spec.expression().is_(None)
    return spec.expression() == value


def parse_parent_filters(raw_values: Sequence[str]) -> Dict[str, str]:
    """
    Parse `dimension:value` pairs into an ordered drill path.

    Raises:
        InvalidFilterError: On a malformed pair or a repeated dimension
    """
    path: Dict[str, str] = {}
    for raw in raw_values:
        dimension, sep, value = raw.partition(":")
        dimension = dimension.strip()
        if not sep or not dimension:
            raise InvalidFilterError(f"parentFilters entries must be dimension:value, got {raw!r}", field="parentFilters")
        if dimension in path:
            raise InvalidFilterError(f"{dimension} appears twice in parentFilters", field="parentFilters")
        parse_dimension(dimension, field="parentFilters")
        path[dimension] = value
    return path


def build_event_predicate(
    filters: FilterSpec,
    parent_filters: Optional[Mapping[str, str]] = None,
) -> ColumnElement:
    """
    Build the composable event predicate for a filter set.

    Args:
        filters: Global filters
        parent_filters: Drilldown path, dimension name -> group value

    Returns:
        A boolean clause; `true()` when nothing constrains the population
    """
    conditions: List[ColumnElement] = []

    for attr, (_names, column) in DIMENSION_FILTERS.items():
        clause = _value_clause(column, getattr(filters, attr))
        if clause is not None:
            conditions.append(clause)

    if filters.exclude_bots:
        conditions.append(or_(TrackingEvent.is_bot.is_(None), TrackingEvent.is_bot.is_(False)))

    start, end = filters.time_bounds()
    if start is not None:
        conditions.append(TrackingEvent.event_timestamp >= start)
    if end is not None:
        conditions.append(TrackingEvent.event_timestamp <= end)

    for dimension, value in (parent_filters or {}).items():
        conditions.append(parent_filter_clause(dimension, value))

    return and_(true(), *conditions)

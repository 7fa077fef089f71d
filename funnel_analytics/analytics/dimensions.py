"""
Grouping Dimensions

The enumerated set of dimensions a drilldown can group by, with the column
each one reads, the sentinel used when the value is missing, and the
ordering rule for its rows.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from sqlalchemy import Integer, cast, extract
from sqlalchemy.sql.elements import ColumnElement

from funnel_analytics.analytics.errors import InvalidDimensionError
from funnel_analytics.database.models import TrackingEvent

NONE_SENTINEL = "(none)"
UNKNOWN_SENTINEL = "(unknown)"
SENTINELS = frozenset({NONE_SENTINEL, UNKNOWN_SENTINEL})


class Dimension(str, Enum):
    """Groupable dimensions, named as they appear on the wire"""
    DOMAIN = "domain"
    DEVICE_TYPE = "deviceType"
    UTM_SOURCE = "utmSource"
    UTM_CAMPAIGN = "utmCampaign"
    UTM_MEDIUM = "utmMedium"
    PAGE = "page"
    GEO_STATE = "geoState"
    SELECTED_STATE = "selectedState"
    HOUR_OF_DAY = "hourOfDay"
    FUNNEL_ID = "funnelId"


@dataclass(frozen=True)
class DimensionSpec:
    """How one dimension maps onto the event store"""
    dimension: Dimension
    column: Optional[str]  # None for derived dimensions
    sentinel: str
    ordinal: bool = False

    def expression(self) -> ColumnElement:
        """SQL expression yielding the raw (un-coalesced) group value."""
        if self.dimension is Dimension.HOUR_OF_DAY:
            return cast(extract("hour", TrackingEvent.event_timestamp), Integer)
        return getattr(TrackingEvent, self.column)


DIMENSIONS: Dict[Dimension, DimensionSpec] = {
    Dimension.DOMAIN: DimensionSpec(Dimension.DOMAIN, "domain", UNKNOWN_SENTINEL),
    Dimension.DEVICE_TYPE: DimensionSpec(Dimension.DEVICE_TYPE, "device_type", UNKNOWN_SENTINEL),
    Dimension.UTM_SOURCE: DimensionSpec(Dimension.UTM_SOURCE, "utm_source", NONE_SENTINEL),
    Dimension.UTM_CAMPAIGN: DimensionSpec(Dimension.UTM_CAMPAIGN, "utm_campaign", NONE_SENTINEL),
    Dimension.UTM_MEDIUM: DimensionSpec(Dimension.UTM_MEDIUM, "utm_medium", NONE_SENTINEL),
    Dimension.PAGE: DimensionSpec(Dimension.PAGE, "page", UNKNOWN_SENTINEL),
    Dimension.GEO_STATE: DimensionSpec(Dimension.GEO_STATE, "geo_state", UNKNOWN_SENTINEL),
    Dimension.SELECTED_STATE: DimensionSpec(Dimension.SELECTED_STATE, "selected_state", UNKNOWN_SENTINEL),
    Dimension.HOUR_OF_DAY: DimensionSpec(Dimension.HOUR_OF_DAY, None, UNKNOWN_SENTINEL, ordinal=True),
    Dimension.FUNNEL_ID: DimensionSpec(Dimension.FUNNEL_ID, "funnel_id", UNKNOWN_SENTINEL),
}


def parse_dimension(value: Optional[str], field: str = "groupBy") -> DimensionSpec:
    """
    Resolve a wire dimension name.

    Raises:
        InvalidDimensionError: If the name is not one of the enumerated dimensions
    """
    try:
        return DIMENSIONS[Dimension(value)]
    except ValueError:
        raise InvalidDimensionError(str(value), field=field) from None

"""
Analytics Module

Session reconstruction and multi-dimension funnel drilldown.
"""
from .dimensions import Dimension, parse_dimension
from .drilldown import drilldown, validate_drill_path
from .errors import (
    AnalyticsError,
    DrilldownDepthError,
    InvalidDimensionError,
    InvalidFilterError,
    ValidationError,
)
from .filters import FilterSpec, build_event_predicate, parse_parent_filters
from .funnel import StepKey, aggregate_steps
from .overview import (
    campaign_comparison,
    contact_funnel,
    filter_options,
    funnel_overview,
    overview_stats,
    referrer_breakdown,
    step_breakdown,
    time_heatmap,
)
from .sessions import session_log, summarize_session
from .store import EventStore
from .totals import reconcile_totals

__all__ = [
    "AnalyticsError",
    "Dimension",
    "DrilldownDepthError",
    "EventStore",
    "FilterSpec",
    "InvalidDimensionError",
    "InvalidFilterError",
    "StepKey",
    "ValidationError",
    "aggregate_steps",
    "build_event_predicate",
    "campaign_comparison",
    "contact_funnel",
    "drilldown",
    "filter_options",
    "funnel_overview",
    "overview_stats",
    "parse_dimension",
    "parse_parent_filters",
    "reconcile_totals",
    "referrer_breakdown",
    "session_log",
    "step_breakdown",
    "summarize_session",
    "time_heatmap",
    "validate_drill_path",
]

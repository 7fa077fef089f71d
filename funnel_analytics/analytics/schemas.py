"""
Analytics Response Models

Serialized with camelCase aliases, the shape the dashboard consumes.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class AnalyticsModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# FUNNEL / DRILLDOWN
# =============================================================================

class StepData(AnalyticsModel):
    """One step within one cohort's funnel"""
    step_number: int
    step_name: str
    step_key: str  # "{number}:{name}"
    completions: int
    sessions_with_prev: int
    conversion_from_prev: float
    conversion_from_initial: float


class DrilldownRow(AnalyticsModel):
    """One dimension group's funnel"""
    group_value: str
    unique_views: int
    gross_views: int
    page_lands: int
    form_completions: int
    steps: List[StepData]

    @property
    def land_base(self) -> int:
        """Page lands when the group emitted any, else unique views"""
        return self.page_lands if self.page_lands > 0 else self.unique_views


class DrilldownResult(AnalyticsModel):
    """Grouped funnel rows plus the reconciled totals row"""
    rows: List[DrilldownRow]
    totals: DrilldownRow
    group_by: str


class FunnelResult(AnalyticsModel):
    """Whole-population funnel"""
    unique_views: int
    gross_views: int
    page_lands: int
    form_completions: int
    land_base: int
    steps: List[StepData]


# =============================================================================
# SESSIONS
# =============================================================================

class SessionEvent(AnalyticsModel):
    """A raw event as listed inside a reconstructed session"""
    id: int
    event_type: str
    step_number: int
    step_name: str
    selected_value: Optional[str] = None
    event_timestamp: datetime
    page: Optional[str] = None
    domain: Optional[str] = None
    referrer: Optional[str] = None


class SessionSummary(AnalyticsModel):
    """A session reconstructed from its event stream"""
    session_id: str
    events: List[SessionEvent]
    event_count: int
    first_seen: datetime
    last_seen: datetime
    max_step: int
    max_step_name: Optional[str] = None
    terminal_event_type: str

    # Session dimensions (first event)
    domain: Optional[str] = None
    page: Optional[str] = None
    page_type: Optional[str] = None
    funnel_id: Optional[str] = None
    device_type: Optional[str] = None
    os: Optional[str] = None
    browser: Optional[str] = None
    geo_state: Optional[str] = None
    selected_state: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_content: Optional[str] = None
    utm_term: Optional[str] = None
    referrer: Optional[str] = None
    is_bot: Optional[bool] = None

    # Ad attribution (form_complete event when present)
    fbclid: Optional[str] = None
    ad_id: Optional[str] = None
    campaign_id: Optional[str] = None

    # Lead PII (form_complete event only)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class SessionPage(AnalyticsModel):
    """Paginated session log"""
    sessions: List[SessionSummary]
    total: int
    page: int
    limit: int
    total_pages: int


# =============================================================================
# OVERVIEW
# =============================================================================

class OverviewStats(AnalyticsModel):
    """Headline numbers for a filtered population"""
    total_sessions: int
    total_events: int
    form_completions: int
    overall_conversion: float
    avg_steps_completed: float
    bounced_sessions: int
    bounce_rate: float


class StepOption(AnalyticsModel):
    """One answer given at a step"""
    value: str
    count: int
    percentage: float


class StepBreakdown(AnalyticsModel):
    """Answer distribution at one step"""
    step_number: int
    step_name: str
    step_key: str
    total_responses: int
    options: List[StepOption]


class FilterOptions(AnalyticsModel):
    """Distinct values available to the dimension filters"""
    utm_sources: List[str]
    utm_campaigns: List[str]
    utm_mediums: List[str]
    domains: List[str]
    audiences: List[str]


# =============================================================================
# ATTRIBUTION / TIMING
# =============================================================================

class ReferrerRow(AnalyticsModel):
    """Sessions and completions per referrer"""
    referrer: str
    sessions: int
    completions: int
    conversion_rate: float


class CampaignRow(AnalyticsModel):
    """Sessions and completions per campaign, source and medium"""
    campaign: str
    source: str
    medium: str
    sessions: int
    completions: int
    conversion_rate: float


class HeatmapCell(AnalyticsModel):
    """Activity in one weekday/hour cell; day_of_week 0 is Sunday"""
    day_of_week: int
    hour: int
    sessions: int
    conversions: int
    conversion_rate: float


class ContactFunnelStep(AnalyticsModel):
    """One contact-form step of the lead funnel"""
    step_name: str
    unique_visitors: int
    conversion_rate: float
    drop_off_rate: float


class ContactFunnel(AnalyticsModel):
    """Name, Email and Phone steps; empty when none were reached"""
    steps: List[ContactFunnelStep]

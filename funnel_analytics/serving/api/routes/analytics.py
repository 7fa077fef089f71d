"""
Analytics API Endpoints

Read-only funnel drilldown and session log endpoints. Every endpoint
parses the same global filters from the query string.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from funnel_analytics.analytics import (
    EventStore,
    FilterSpec,
    campaign_comparison,
    contact_funnel,
    drilldown,
    filter_options,
    funnel_overview,
    overview_stats,
    parse_parent_filters,
    referrer_breakdown,
    session_log,
    step_breakdown,
    time_heatmap,
    validate_drill_path,
)
from funnel_analytics.analytics.schemas import (
    CampaignRow,
    ContactFunnel,
    DrilldownResult,
    FilterOptions,
    FunnelResult,
    HeatmapCell,
    OverviewStats,
    ReferrerRow,
    SessionPage,
    StepBreakdown,
)
from funnel_analytics.config import get_settings
from funnel_analytics.database.connection import get_db_dependency

router = APIRouter()
logger = structlog.get_logger(__name__)


def get_filters(request: Request) -> FilterSpec:
    """Dependency: global filters from the query string."""
    return FilterSpec.from_query(request.query_params)


def get_event_store(db: AsyncSession = Depends(get_db_dependency)) -> EventStore:
    """Dependency: request-scoped event store."""
    return EventStore(db)


def clamp_page(page: Optional[int], limit: Optional[int]) -> tuple:
    """Normalize 1-indexed pagination against the configured maximum page size."""
    analytics = get_settings().analytics
    page = max(1, page or 1)
    limit = limit or analytics.default_session_page_size
    limit = min(analytics.max_session_page_size, max(1, limit))
    return page, limit


@router.get("/drilldown", response_model=DrilldownResult)
async def get_drilldown(
    group_by: Optional[str] = Query(None, alias="groupBy"),
    parent: List[str] = Query(default=[], description="Drill path entries as dimension:value"),
    filters: FilterSpec = Depends(get_filters),
    store: EventStore = Depends(get_event_store),
) -> DrilldownResult:
    """
    Funnel grouped by one dimension, with a reconciled totals row.

    Expanding a row repeats the request with `parent=<dimension>:<value>`
    appended and a dimension not yet on the path as `groupBy`.
    """
    settings = get_settings()
    group_by = group_by or settings.analytics.default_group_by
    parent_filters = parse_parent_filters(parent)
    if parent_filters:
        validate_drill_path(list(parent_filters), group_by, settings.analytics.max_drilldown_depth)

    logger.info("get_drilldown called", group_by=group_by, parent_filters=parent_filters)
    return await drilldown(store, filters, group_by, parent_filters)


@router.get("/sessions", response_model=SessionPage)
async def get_sessions(
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    filters: FilterSpec = Depends(get_filters),
    store: EventStore = Depends(get_event_store),
) -> SessionPage:
    """Paginated reconstructed sessions, most recently active first."""
    page, limit = clamp_page(page, limit)
    logger.info("get_sessions called", page=page, limit=limit)
    return await session_log(store, filters, page=page, limit=limit, search=search)


@router.get("/funnel", response_model=FunnelResult)
async def get_funnel(
    filters: FilterSpec = Depends(get_filters),
    store: EventStore = Depends(get_event_store),
) -> FunnelResult:
    """Funnel of the whole filtered population."""
    return await funnel_overview(store, filters)


@router.get("/stats", response_model=OverviewStats)
async def get_stats(
    filters: FilterSpec = Depends(get_filters),
    store: EventStore = Depends(get_event_store),
) -> OverviewStats:
    """Headline session, completion and bounce numbers."""
    return await overview_stats(store, filters)


@router.get("/breakdown", response_model=List[StepBreakdown])
async def get_breakdown(
    filters: FilterSpec = Depends(get_filters),
    store: EventStore = Depends(get_event_store),
) -> List[StepBreakdown]:
    """Answer distribution at every step."""
    return await step_breakdown(store, filters)


@router.get("/referrers", response_model=List[ReferrerRow])
async def get_referrers(
    filters: FilterSpec = Depends(get_filters),
    store: EventStore = Depends(get_event_store),
) -> List[ReferrerRow]:
    """Top referrers with completion rates."""
    return await referrer_breakdown(store, filters)


@router.get("/campaigns", response_model=List[CampaignRow])
async def get_campaigns(
    filters: FilterSpec = Depends(get_filters),
    store: EventStore = Depends(get_event_store),
) -> List[CampaignRow]:
    """Campaign, source and medium comparison."""
    return await campaign_comparison(store, filters)


@router.get("/heatmap", response_model=List[HeatmapCell])
async def get_heatmap(
    filters: FilterSpec = Depends(get_filters),
    store: EventStore = Depends(get_event_store),
) -> List[HeatmapCell]:
    """Sessions and conversions by weekday and hour."""
    return await time_heatmap(store, filters)


@router.get("/contact-funnel", response_model=ContactFunnel)
async def get_contact_funnel(
    filters: FilterSpec = Depends(get_filters),
    store: EventStore = Depends(get_event_store),
) -> ContactFunnel:
    """Name, Email and Phone step funnel of lead sessions."""
    return await contact_funnel(store, filters)


@router.get("/filter-options", response_model=FilterOptions)
async def get_filter_options(
    store: EventStore = Depends(get_event_store),
) -> FilterOptions:
    """Distinct values for the dimension filter pickers."""
    return await filter_options(store, limit=get_settings().analytics.filter_option_limit)

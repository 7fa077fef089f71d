"""
Session Reconstructor

Rebuilds visitor sessions from the raw event stream for the session log.
Sessions are derived on every request; nothing is cached or written.
"""

import math
from typing import List, Optional, Sequence

import structlog
from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement

from funnel_analytics.analytics.filters import FilterSpec, build_event_predicate
from funnel_analytics.analytics.schemas import SessionEvent, SessionPage, SessionSummary
from funnel_analytics.analytics.store import EventStore
from funnel_analytics.database.models import EventType, TrackingEvent

logger = structlog.get_logger(__name__)

SEARCH_COLUMNS = (
    TrackingEvent.session_id,
    TrackingEvent.step_name,
    TrackingEvent.selected_value,
    TrackingEvent.utm_campaign,
    TrackingEvent.utm_source,
    TrackingEvent.domain,
    TrackingEvent.event_type,
    TrackingEvent.referrer,
)

SESSION_DIMENSIONS = (
    "domain", "page", "page_type", "funnel_id", "device_type", "os", "browser",
    "geo_state", "selected_state", "utm_source", "utm_medium", "utm_campaign",
    "utm_content", "utm_term", "referrer", "is_bot",
)
AD_ATTRIBUTION_FIELDS = ("fbclid", "ad_id", "campaign_id")
PII_FIELDS = ("first_name", "last_name", "email", "phone")


def event_type_of(event: TrackingEvent) -> str:
    """Stored event type, with legacy NULL read as step_complete."""
    return event.event_type or EventType.STEP_COMPLETE.value


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_search_clause(search: Optional[str]) -> Optional[ColumnElement]:
    """Case-insensitive substring match across the searchable columns."""
    term = (search or "").strip()
    if not term:
        return None
    pattern = f"%{_escape_like(term)}%"
    return or_(*(column.ilike(pattern, escape="\\") for column in SEARCH_COLUMNS))


def summarize_session(session_id: str, events: Sequence[TrackingEvent]) -> SessionSummary:
    """
    Derive a session summary from all of its events.

    The furthest step is a max over step numbers since visitors can revisit
    steps. The terminal type is form_complete if the session ever completed
    the form, otherwise the type of the furthest event.
    """
    ordered = sorted(events, key=lambda e: (e.event_timestamp, e.id))
    first = ordered[0]

    furthest = first
    for event in ordered:
        if event.step_number >= furthest.step_number:
            furthest = event

    form_event = next(
        (e for e in reversed(ordered) if e.event_type == EventType.FORM_COMPLETE.value),
        None,
    )
    terminal = EventType.FORM_COMPLETE.value if form_event is not None else event_type_of(furthest)

    summary = SessionSummary(
        session_id=session_id,
        events=[
            SessionEvent(
                id=e.id,
                event_type=event_type_of(e),
                step_number=e.step_number,
                step_name=e.step_name,
                selected_value=e.selected_value,
                event_timestamp=e.event_timestamp,
                page=e.page,
                domain=e.domain,
                referrer=e.referrer,
            )
            for e in ordered
        ],
        event_count=len(ordered),
        first_seen=first.event_timestamp,
        last_seen=ordered[-1].event_timestamp,
        max_step=furthest.step_number,
        max_step_name=furthest.step_name,
        terminal_event_type=terminal,
        **{name: getattr(first, name) for name in SESSION_DIMENSIONS},
    )

    for name in AD_ATTRIBUTION_FIELDS:
        value = getattr(form_event, name) if form_event is not None else None
        if not value:
            value = next((getattr(e, name) for e in ordered if getattr(e, name)), None)
        setattr(summary, name, value)

    if form_event is not None:
        for name in PII_FIELDS:
            setattr(summary, name, getattr(form_event, name))

    return summary


def group_sessions(session_ids: Sequence[str], events: Sequence[TrackingEvent]) -> List[SessionSummary]:
    """Summaries for `session_ids` in the given order; ids without events are skipped."""
    by_session = {}
    for event in events:
        by_session.setdefault(event.session_id, []).append(event)
    return [
        summarize_session(session_id, by_session[session_id])
        for session_id in session_ids
        if session_id in by_session
    ]


async def session_log(
    store: EventStore,
    filters: FilterSpec,
    page: int = 1,
    limit: int = 25,
    search: Optional[str] = None,
) -> SessionPage:
    """
    One page of reconstructed sessions, most recently active first.

    Args:
        store: Event store of the current request
        filters: Global filters selecting which sessions appear
        page: 1-indexed page number
        limit: Sessions per page (already clamped by the caller)
        search: Optional free-text search

    Returns:
        SessionPage; an empty page is a valid result
    """
    predicate = build_event_predicate(filters)
    search_clause = build_search_clause(search)
    if search_clause is not None:
        predicate = and_(predicate, search_clause)

    total = await store.count_sessions(predicate)
    total_pages = math.ceil(total / limit) if limit > 0 else 0

    session_ids: List[str] = []
    if total > 0:
        session_ids = await store.page_session_ids(predicate, offset=(page - 1) * limit, limit=limit)

    # Full sessions, not just the events that matched the filters
    events = await store.fetch_session_events(session_ids)
    sessions = group_sessions(session_ids, events)

    logger.info(
        "Session log computed",
        page=page,
        limit=limit,
        total=total,
        returned=len(sessions),
        events=len(events),
        search=search_clause is not None,
    )
    return SessionPage(
        sessions=sessions,
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages,
    )

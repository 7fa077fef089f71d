"""
Database Models - Tracking Event Store

The event store is a single append-only fact table of funnel interaction
events. Sessions, funnels and drilldown rows are derived from it at query
time and never persisted.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENUMERATIONS
# =============================================================================

class EventType(str, Enum):
    """Tracking event type. NULL in storage is a legacy step_complete."""
    PAGE_LAND = "page_land"
    STEP_COMPLETE = "step_complete"
    FORM_COMPLETE = "form_complete"


# Event types that carry funnel progress (NULL is included separately)
STEP_BEARING_TYPES = (EventType.STEP_COMPLETE.value, EventType.FORM_COMPLETE.value)

# step_number of page_land events
LANDING_STEP = 0

# Final step_number of each page_type funnel
COMPLETION_STEPS = {"lead": 9, "call": 6}


# =============================================================================
# FACT TABLES
# =============================================================================

class TrackingEvent(Base):
    """
    Tracking Event Fact Table

    One row per funnel interaction (page land, step completion, form
    completion). Grain is the individual event; session_id groups events
    but is not unique.
    """
    __tablename__ = "tracking_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Session and event
    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    event_type: Mapped[Optional[str]] = mapped_column(String(20))
    step_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 0 = page_land
    step_name: Mapped[str] = mapped_column(String(100), nullable=False)
    selected_value: Mapped[Optional[str]] = mapped_column(Text)
    event_timestamp: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    received_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    # Funnel
    domain: Mapped[Optional[str]] = mapped_column(String(100))
    page: Mapped[Optional[str]] = mapped_column(String(50))  # audience
    page_type: Mapped[Optional[str]] = mapped_column(String(20))  # lead, call
    funnel_id: Mapped[Optional[str]] = mapped_column(String(50))

    # Device and browser
    device_type: Mapped[Optional[str]] = mapped_column(String(20))  # desktop, mobile, tablet
    os: Mapped[Optional[str]] = mapped_column(String(50))
    browser: Mapped[Optional[str]] = mapped_column(String(50))
    user_agent: Mapped[Optional[str]] = mapped_column(Text)

    # Geography
    geo_state: Mapped[Optional[str]] = mapped_column(String(50))
    selected_state: Mapped[Optional[str]] = mapped_column(String(50))

    # UTM parameters
    utm_source: Mapped[Optional[str]] = mapped_column(String(255))
    utm_medium: Mapped[Optional[str]] = mapped_column(String(255))
    utm_campaign: Mapped[Optional[str]] = mapped_column(String(255))
    utm_content: Mapped[Optional[str]] = mapped_column(String(255))
    utm_term: Mapped[Optional[str]] = mapped_column(String(255))
    referrer: Mapped[Optional[str]] = mapped_column(Text)

    # Ad attribution
    fbclid: Mapped[Optional[str]] = mapped_column(String(255))
    ad_id: Mapped[Optional[str]] = mapped_column(String(100))
    campaign_id: Mapped[Optional[str]] = mapped_column(String(100))

    # Upstream bot classification
    is_bot: Mapped[Optional[bool]] = mapped_column(Boolean)

    # Lead PII (form_complete only)
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))

    __table_args__ = (
        Index("ix_tracking_events_session", "session_id"),
        Index("ix_tracking_events_timestamp", "event_timestamp"),
        Index("ix_tracking_events_domain", "domain"),
        Index("ix_tracking_events_page", "page", "page_type"),
        Index("ix_tracking_events_step", "page", "page_type", "step_number"),
    )

    def __repr__(self) -> str:
        return (
            f"<TrackingEvent(id={self.id}, session_id={self.session_id!r}, "
            f"event_type={self.event_type!r}, step={self.step_number}:{self.step_name})>"
        )

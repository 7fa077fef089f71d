"""
Population Overview

Whole-population views sharing the filter semantics of the drilldown:
the overall funnel, headline stats, per-step answer breakdown, the
values available to the dimension filters, and completion rates by
referrer, campaign, weekday/hour and contact-form step.

A session completes when it emits an event at the final step number of
its page_type funnel (9 for lead, 6 for call).
"""

from typing import List, Sequence

import polars as pl
import structlog

from funnel_analytics.analytics.dimensions import NONE_SENTINEL
from funnel_analytics.analytics.filters import FilterSpec, build_event_predicate
from funnel_analytics.analytics.funnel import STEP_BEARING, StepKey, aggregate_steps, cohort_totals, rate
from funnel_analytics.analytics.schemas import (
    CampaignRow,
    ContactFunnel,
    ContactFunnelStep,
    FilterOptions,
    FunnelResult,
    HeatmapCell,
    OverviewStats,
    ReferrerRow,
    StepBreakdown,
    StepOption,
)
from funnel_analytics.analytics.store import EventStore
from funnel_analytics.database.models import COMPLETION_STEPS, TrackingEvent

logger = structlog.get_logger(__name__)

DIRECT_REFERRER = "(direct)"
REFERRER_LIMIT = 20
CAMPAIGN_LIMIT = 50
CONTACT_STEPS = ("Name", "Email", "Phone")


async def funnel_overview(store: EventStore, filters: FilterSpec) -> FunnelResult:
    """Funnel of the whole filtered population."""
    frame = await store.fetch_frame(build_event_predicate(filters))
    funnel = aggregate_steps(frame)

    logger.info("Funnel computed", steps=len(funnel.steps), sessions=funnel.unique_views)
    return FunnelResult(
        unique_views=funnel.unique_views,
        gross_views=funnel.gross_views,
        page_lands=funnel.page_lands,
        form_completions=funnel.form_completions,
        land_base=funnel.land_base,
        steps=funnel.steps,
    )


def compute_stats(frame: pl.DataFrame) -> OverviewStats:
    """
    Headline stats of one event frame.

    A bounced session never emitted a step-bearing event. The average is
    the mean furthest step over sessions that did.
    """
    total_sessions, total_events, _page_lands, form_completions = cohort_totals(frame)

    furthest = (
        frame.filter(STEP_BEARING)
        .group_by("session_id")
        .agg(pl.col("step_number").max().alias("max_step"))
    )
    progressed = furthest.height
    avg_steps = float(furthest.get_column("max_step").mean()) if progressed else 0.0
    bounced = total_sessions - progressed

    return OverviewStats(
        total_sessions=total_sessions,
        total_events=total_events,
        form_completions=form_completions,
        overall_conversion=rate(form_completions, total_sessions),
        avg_steps_completed=round(avg_steps, 2),
        bounced_sessions=bounced,
        bounce_rate=rate(bounced, total_sessions),
    )


async def overview_stats(store: EventStore, filters: FilterSpec) -> OverviewStats:
    """Headline stats of the filtered population."""
    frame = await store.fetch_frame(build_event_predicate(filters))
    return compute_stats(frame)


def compute_breakdown(frame: pl.DataFrame) -> List[StepBreakdown]:
    """Distinct sessions per selected value at each step key."""
    answers = (
        frame.filter(STEP_BEARING & pl.col("selected_value").is_not_null() & (pl.col("selected_value") != ""))
        .select("session_id", "step_number", "step_name", "selected_value")
        .unique()
    )
    if answers.is_empty():
        return []

    counts = (
        answers.group_by("step_number", "step_name", "selected_value")
        .agg(pl.len().cast(pl.Int64).alias("count"))
        .sort(
            ["step_number", "step_name", "count", "selected_value"],
            descending=[False, False, True, False],
        )
    )

    breakdown: List[StepBreakdown] = []
    for (number, name), step_rows in counts.group_by(["step_number", "step_name"], maintain_order=True):
        total = int(step_rows.get_column("count").sum())
        key = StepKey(int(number), name)
        breakdown.append(
            StepBreakdown(
                step_number=key.number,
                step_name=key.name,
                step_key=str(key),
                total_responses=total,
                options=[
                    StepOption(
                        value=row["selected_value"],
                        count=row["count"],
                        percentage=rate(row["count"], total),
                    )
                    for row in step_rows.iter_rows(named=True)
                ],
            )
        )
    return sorted(breakdown, key=lambda step: StepKey(step.step_number, step.step_name))


async def step_breakdown(store: EventStore, filters: FilterSpec) -> List[StepBreakdown]:
    """Answer distribution at every step of the filtered population."""
    frame = await store.fetch_frame(build_event_predicate(filters), extra_columns=["selected_value"])
    return compute_breakdown(frame)


async def filter_options(store: EventStore, limit: int = 100) -> FilterOptions:
    """Distinct values for the dimension filter pickers."""
    return FilterOptions(
        utm_sources=await store.distinct_values(TrackingEvent.utm_source, limit),
        utm_campaigns=await store.distinct_values(TrackingEvent.utm_campaign, limit),
        utm_mediums=await store.distinct_values(TrackingEvent.utm_medium, limit),
        domains=await store.distinct_values(TrackingEvent.domain, limit),
        audiences=await store.distinct_values(TrackingEvent.page, limit),
    )


def completion_flag() -> pl.Expr:
    """True on events at the final step of their page_type funnel."""
    final_step = pl.col("page_type").replace_strict(COMPLETION_STEPS, default=None, return_dtype=pl.Int64)
    return (pl.col("step_number") == final_step).fill_null(False).alias("completed")


def conversion_table(frame: pl.DataFrame, keys: Sequence[str]) -> pl.DataFrame:
    """Distinct sessions and completing sessions per key combination."""
    return (
        frame.with_columns(completion_flag())
        .group_by(list(keys))
        .agg(
            pl.col("session_id").n_unique().cast(pl.Int64).alias("sessions"),
            pl.col("session_id").filter(pl.col("completed")).n_unique().cast(pl.Int64).alias("completions"),
        )
    )


def compute_referrers(frame: pl.DataFrame, limit: int = REFERRER_LIMIT) -> List[ReferrerRow]:
    """Top referrers by sessions; a missing referrer is direct traffic."""
    if frame.is_empty():
        return []

    table = (
        conversion_table(frame.with_columns(pl.col("referrer").fill_null(DIRECT_REFERRER)), ["referrer"])
        .sort(["sessions", "referrer"], descending=[True, False])
        .head(limit)
    )
    return [
        ReferrerRow(
            referrer=row["referrer"],
            sessions=row["sessions"],
            completions=row["completions"],
            conversion_rate=rate(row["completions"], row["sessions"]),
        )
        for row in table.iter_rows(named=True)
    ]


def compute_campaigns(frame: pl.DataFrame, limit: int = CAMPAIGN_LIMIT) -> List[CampaignRow]:
    """Top campaign/source/medium combinations by sessions."""
    if frame.is_empty():
        return []

    keys = ["utm_campaign", "utm_source", "utm_medium"]
    table = (
        conversion_table(frame.with_columns(pl.col(keys).fill_null(NONE_SENTINEL)), keys)
        .sort(["sessions", *keys], descending=[True, False, False, False])
        .head(limit)
    )
    return [
        CampaignRow(
            campaign=row["utm_campaign"],
            source=row["utm_source"],
            medium=row["utm_medium"],
            sessions=row["sessions"],
            completions=row["completions"],
            conversion_rate=rate(row["completions"], row["sessions"]),
        )
        for row in table.iter_rows(named=True)
    ]


def compute_heatmap(frame: pl.DataFrame) -> List[HeatmapCell]:
    """
    Sessions and conversions per weekday and hour of the event timestamps.

    A session active across several hours counts in each of them; its
    conversion counts in the cell of the completing event.
    """
    if frame.is_empty():
        return []

    cells = frame.with_columns(
        # polars weekday is 1=Monday..7=Sunday
        (pl.col("event_timestamp").dt.weekday() % 7).cast(pl.Int64).alias("day_of_week"),
        pl.col("event_timestamp").dt.hour().cast(pl.Int64).alias("hour"),
    )
    table = conversion_table(cells, ["day_of_week", "hour"]).sort("day_of_week", "hour")
    return [
        HeatmapCell(
            day_of_week=row["day_of_week"],
            hour=row["hour"],
            sessions=row["sessions"],
            conversions=row["completions"],
            conversion_rate=rate(row["completions"], row["sessions"]),
        )
        for row in table.iter_rows(named=True)
    ]


def compute_contact_funnel(frame: pl.DataFrame) -> ContactFunnel:
    """
    Distinct lead sessions at each contact-form step.

    Conversion is relative to the Name step, drop-off relative to the
    step before.
    """
    reached = (
        frame.filter(STEP_BEARING & (pl.col("page_type") == "lead") & pl.col("step_name").is_in(list(CONTACT_STEPS)))
        .group_by("step_name")
        .agg(pl.col("session_id").n_unique().alias("visitors"))
    )
    by_name = {name: int(visitors) for name, visitors in reached.iter_rows()}
    visitors = [by_name.get(name, 0) for name in CONTACT_STEPS]
    if not any(visitors):
        return ContactFunnel(steps=[])

    first = visitors[0] or 1
    steps: List[ContactFunnelStep] = []
    for idx, name in enumerate(CONTACT_STEPS):
        previous = visitors[idx - 1] if idx > 0 else 0
        steps.append(
            ContactFunnelStep(
                step_name=name,
                unique_visitors=visitors[idx],
                conversion_rate=rate(visitors[idx], first),
                drop_off_rate=rate(previous - visitors[idx], previous),
            )
        )
    return ContactFunnel(steps=steps)


async def referrer_breakdown(store: EventStore, filters: FilterSpec) -> List[ReferrerRow]:
    """Referrer breakdown of the filtered population."""
    frame = await store.fetch_frame(build_event_predicate(filters), extra_columns=["page_type", "referrer"])
    return compute_referrers(frame)


async def campaign_comparison(store: EventStore, filters: FilterSpec) -> List[CampaignRow]:
    """Campaign comparison of the filtered population."""
    frame = await store.fetch_frame(
        build_event_predicate(filters),
        extra_columns=["page_type", "utm_campaign", "utm_source", "utm_medium"],
    )
    return compute_campaigns(frame)


async def time_heatmap(store: EventStore, filters: FilterSpec) -> List[HeatmapCell]:
    """Weekday/hour activity of the filtered population."""
    frame = await store.fetch_frame(build_event_predicate(filters), extra_columns=["page_type", "event_timestamp"])
    cells = compute_heatmap(frame)

    logger.info("Heatmap computed", cells=len(cells))
    return cells


async def contact_funnel(store: EventStore, filters: FilterSpec) -> ContactFunnel:
    """Contact-form funnel of the filtered population."""
    frame = await store.fetch_frame(build_event_predicate(filters), extra_columns=["page_type"])
    return compute_contact_funnel(frame)

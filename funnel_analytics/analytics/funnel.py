"""
Funnel Step Aggregator

Computes per-step unique-session counts and conversion rates for a single
cohort of events (the whole filtered population, or one drilldown group).

Rates:
- conversion from previous = sessions that reached this step and step
  n-1 (step 0 being the landing), over the running previous count. The running
  count starts at the land base and only advances past steps with
  nonzero completions.
- conversion from initial = completions over the cohort's land base
  (distinct page_land sessions, else distinct sessions).
"""

from dataclasses import dataclass
from typing import List, Sequence

import polars as pl

from funnel_analytics.analytics.schemas import StepData
from funnel_analytics.database.models import LANDING_STEP, STEP_BEARING_TYPES, EventType

# NULL event_type is a legacy step_complete
STEP_BEARING = pl.col("event_type").is_null() | pl.col("event_type").is_in(list(STEP_BEARING_TYPES))


@dataclass(frozen=True, order=True)
class StepKey:
    """
    Step identity.

    The same number can carry different names across funnel versions, so
    number and name together identify a step. Orders by number, then name.
    """
    number: int
    name: str

    def __str__(self) -> str:
        return f"{self.number}:{self.name}"


@dataclass
class StepCount:
    """Raw per-step session counts before rates are applied"""
    key: StepKey
    completions: int
    sessions_with_prev: int


@dataclass
class CohortFunnel:
    """Aggregated funnel of one cohort"""
    unique_views: int
    gross_views: int
    page_lands: int
    form_completions: int
    steps: List[StepData]

    @property
    def land_base(self) -> int:
        return self.page_lands if self.page_lands > 0 else self.unique_views


def rate(numerator: int, denominator: int) -> float:
    """Percentage with one decimal, bounded to [0, 100]; 0 for an empty base."""
    if denominator <= 0 or numerator <= 0:
        return 0.0
    return round(min(100.0, numerator / denominator * 100), 1)


def compute_rates(counts: Sequence[StepCount], land_bases: Sequence[int]) -> List[StepData]:
    """
    Apply the conversion formulas to ordered step counts.

    Args:
        counts: Step counts ordered by StepKey
        land_bases: Land base for each step, aligned with `counts`

    Returns:
        StepData entries in the same order
    """
    steps: List[StepData] = []
    previous = land_bases[0] if land_bases else 0

    for count, land_base in zip(counts, land_bases):
        steps.append(
            StepData(
                step_number=count.key.number,
                step_name=count.key.name,
                step_key=str(count.key),
                completions=count.completions,
                sessions_with_prev=count.sessions_with_prev,
                conversion_from_prev=rate(count.sessions_with_prev, previous),
                conversion_from_initial=rate(count.completions, land_base),
            )
        )
        # Empty steps keep the previous denominator
        if count.completions > 0:
            previous = count.completions

    return steps


def _distinct_sessions(frame: pl.DataFrame) -> int:
    if frame.is_empty():
        return 0
    return frame.get_column("session_id").n_unique()


def cohort_totals(frame: pl.DataFrame) -> tuple:
    """(unique views, gross views, page lands, form completions) of a cohort."""
    page_lands = _distinct_sessions(frame.filter(pl.col("event_type") == EventType.PAGE_LAND.value))
    form_completions = _distinct_sessions(frame.filter(pl.col("event_type") == EventType.FORM_COMPLETE.value))
    return _distinct_sessions(frame), frame.height, page_lands, form_completions


def count_steps(frame: pl.DataFrame) -> List[StepCount]:
    """
    Distinct sessions per step key, with the session-level join against
    the immediately preceding step number.

    Step n is preceded by step n-1 whatever its name; step 0 is the
    landing, so step 1 joins against the page_land sessions. A preceding
    step nobody reached yields zero sessions_with_prev.
    """
    step_sessions = (
        frame.filter(STEP_BEARING)
        .select("session_id", "step_number", "step_name")
        .unique()
    )
    if step_sessions.is_empty():
        return []

    completions = (
        step_sessions.group_by("step_number", "step_name")
        .agg(pl.len().cast(pl.Int64).alias("completions"))
    )

    reached = pl.concat([
        step_sessions.select("session_id", "step_number"),
        frame.filter(pl.col("event_type") == EventType.PAGE_LAND.value).select(
            "session_id", pl.lit(LANDING_STEP, dtype=pl.Int64).alias("step_number")
        ),
    ]).unique().rename({"step_number": "prev_number"})

    with_prev = (
        step_sessions.with_columns((pl.col("step_number") - 1).alias("prev_number"))
        .join(reached, on=["session_id", "prev_number"], how="inner")
        .group_by("step_number", "step_name")
        .agg(pl.len().cast(pl.Int64).alias("sessions_with_prev"))
    )

    merged = (
        completions.join(with_prev, on=["step_number", "step_name"], how="left")
        .with_columns(pl.col("sessions_with_prev").fill_null(0))
        .sort("step_number", "step_name")
    )

    return [
        StepCount(
            key=StepKey(int(row["step_number"]), row["step_name"]),
            completions=int(row["completions"]),
            sessions_with_prev=int(row["sessions_with_prev"]),
        )
        for row in merged.iter_rows(named=True)
    ]


def aggregate_steps(frame: pl.DataFrame) -> CohortFunnel:
    """
    Aggregate one cohort's events into its funnel.

    Args:
        frame: Events of exactly one cohort (see EventStore.fetch_frame)

    Returns:
        CohortFunnel; a cohort without step-bearing events has no steps
    """
    unique_views, gross_views, page_lands, form_completions = cohort_totals(frame)
    funnel = CohortFunnel(
        unique_views=unique_views,
        gross_views=gross_views,
        page_lands=page_lands,
        form_completions=form_completions,
        steps=[],
    )

    counts = count_steps(frame)
    funnel.steps = compute_rates(counts, [funnel.land_base] * len(counts))
    return funnel

"""
Drilldown Engine

Groups the filtered population by one dimension and runs the funnel
aggregator once per group. Expanding a row is a fresh call with the row's
value appended to the parent filters and a new dimension; the engine keeps
no tree state and does not know its depth.
"""

from typing import List, Mapping, Optional, Sequence

import polars as pl
import structlog

from funnel_analytics.analytics.dimensions import SENTINELS, DimensionSpec, parse_dimension
from funnel_analytics.analytics.errors import DrilldownDepthError
from funnel_analytics.analytics.filters import FilterSpec, build_event_predicate
from funnel_analytics.analytics.funnel import aggregate_steps
from funnel_analytics.analytics.schemas import DrilldownResult, DrilldownRow
from funnel_analytics.analytics.store import EventStore
from funnel_analytics.analytics.totals import reconcile_totals

logger = structlog.get_logger(__name__)


def validate_drill_path(
    used_dimensions: Sequence[str],
    group_by: str,
    max_depth: int,
) -> None:
    """
    Check that expanding into `group_by` is allowed.

    Args:
        used_dimensions: Dimensions already on the path, outermost first
        group_by: Dimension the caller wants to expand into
        max_depth: Maximum number of dimensions on one path

    Raises:
        InvalidDimensionError: On an unknown dimension
        DrilldownDepthError: On a reused dimension or a path deeper than max_depth
    """
    for dimension in used_dimensions:
        parse_dimension(dimension, field="parentFilters")
    parse_dimension(group_by)

    if group_by in used_dimensions:
        raise DrilldownDepthError(f"{group_by} is already used on this drilldown path", field="groupBy")
    if len(used_dimensions) + 1 > max_depth:
        raise DrilldownDepthError(
            f"Drilldown paths are limited to {max_depth} dimensions",
            field="parentFilters",
        )


def _ordinal_key(row: DrilldownRow) -> tuple:
    if row.group_value in SENTINELS:
        return (1, 0)
    return (0, int(row.group_value))


def _sort_rows(rows: List[DrilldownRow], spec: DimensionSpec) -> List[DrilldownRow]:
    if spec.ordinal:
        return sorted(rows, key=_ordinal_key)
    # ties ordered by group value
    return sorted(rows, key=lambda row: (-row.unique_views, row.group_value))


def build_rows(frame: pl.DataFrame, spec: DimensionSpec) -> List[DrilldownRow]:
    """
    Partition a frame with a raw `group_key` column into sorted rows.

    Missing group values are coalesced to the dimension's sentinel.
    """
    if frame.is_empty():
        return []

    frame = frame.with_columns(
        pl.col("group_key").cast(pl.Utf8).fill_null(spec.sentinel)
    )

    rows: List[DrilldownRow] = []
    for key, cohort in frame.partition_by("group_key", as_dict=True).items():
        funnel = aggregate_steps(cohort)
        rows.append(
            DrilldownRow(
                group_value=key[0],
                unique_views=funnel.unique_views,
                gross_views=funnel.gross_views,
                page_lands=funnel.page_lands,
                form_completions=funnel.form_completions,
                steps=funnel.steps,
            )
        )
    return _sort_rows(rows, spec)


async def drilldown(
    store: EventStore,
    filters: FilterSpec,
    group_by: str,
    parent_filters: Optional[Mapping[str, str]] = None,
) -> DrilldownResult:
    """
    Compute the grouped funnel for one drilldown level.

    Args:
        store: Event store of the current request
        filters: Global filters
        group_by: Wire name of the grouping dimension
        parent_filters: Group values chosen on the levels above

    Returns:
        DrilldownResult with sorted rows and the reconciled totals row

    Raises:
        InvalidDimensionError: Unknown group_by, raised before any query
        InvalidFilterError: Malformed filters or parent filters
    """
    spec = parse_dimension(group_by)
    predicate = build_event_predicate(filters, parent_filters)

    frame = await store.fetch_frame(
        predicate,
        group_expression=spec.expression(),
        group_dtype=pl.Int64 if spec.ordinal else pl.Utf8,
    )
    rows = build_rows(frame, spec)
    totals = reconcile_totals(rows)

    logger.info(
        "Drilldown computed",
        group_by=spec.dimension.value,
        depth=len(parent_filters or {}) + 1,
        groups=len(rows),
        events=frame.height,
    )
    return DrilldownResult(rows=rows, totals=totals, group_by=spec.dimension.value)

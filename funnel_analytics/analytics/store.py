"""
Event Store Access

Read-only queries against the tracking event table. These are the only
await points of the analytics core; nothing here writes or holds a
transaction between calls.
"""

from typing import Any, Dict, List, Optional, Sequence

import polars as pl
import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from funnel_analytics.database.models import TrackingEvent

logger = structlog.get_logger(__name__)

FRAME_CHUNK_SIZE = 10_000

# Columns every cohort frame carries
BASE_FRAME_SCHEMA: Dict[str, Any] = {
    "session_id": pl.Utf8,
    "event_type": pl.Utf8,
    "step_number": pl.Int64,
    "step_name": pl.Utf8,
}

OPTIONAL_FRAME_SCHEMA: Dict[str, Any] = {
    "selected_value": pl.Utf8,
    "event_timestamp": pl.Datetime,
    "page_type": pl.Utf8,
    "referrer": pl.Utf8,
    "utm_source": pl.Utf8,
    "utm_medium": pl.Utf8,
    "utm_campaign": pl.Utf8,
}


class EventStore:
    """
    Query capability over the tracking event table.

    Wraps one AsyncSession for the duration of a request.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def count_sessions(self, predicate: ColumnElement) -> int:
        """Distinct sessions with at least one event matching the predicate."""
        result = await self.db.execute(
            select(func.count(func.distinct(TrackingEvent.session_id))).where(predicate)
        )
        return int(result.scalar_one() or 0)

    async def page_session_ids(
        self,
        predicate: ColumnElement,
        offset: int,
        limit: int,
    ) -> List[str]:
        """
        One page of session ids, most recently active first.

        Ties on the latest timestamp fall back to session id so repeated
        calls page identically.
        """
        last_seen = func.max(TrackingEvent.event_timestamp)
        result = await self.db.execute(
            select(TrackingEvent.session_id)
            .where(predicate)
            .group_by(TrackingEvent.session_id)
            .order_by(last_seen.desc(), TrackingEvent.session_id.asc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def fetch_session_events(self, session_ids: Sequence[str]) -> List[TrackingEvent]:
        """Every event of the given sessions, in time order."""
        if not session_ids:
            return []
        result = await self.db.execute(
            select(TrackingEvent)
            .where(TrackingEvent.session_id.in_(list(session_ids)))
            .order_by(
                TrackingEvent.session_id,
                TrackingEvent.event_timestamp,
                TrackingEvent.id,
            )
        )
        return list(result.scalars().all())

    async def fetch_frame(
        self,
        predicate: ColumnElement,
        group_expression: Optional[ColumnElement] = None,
        group_dtype: Any = pl.Utf8,
        extra_columns: Sequence[str] = (),
    ) -> pl.DataFrame:
        """
        Load the cohort columns of every matching event into a DataFrame.

        Args:
            predicate: Event predicate scoping the cohort
            group_expression: Optional SQL expression exposed as `group_key`
            group_dtype: Polars dtype of `group_key`
            extra_columns: Additional event columns (see OPTIONAL_FRAME_SCHEMA)

        Returns:
            DataFrame with one row per event
        """
        schema: Dict[str, Any] = dict(BASE_FRAME_SCHEMA)
        columns = [getattr(TrackingEvent, name) for name in BASE_FRAME_SCHEMA]
        for name in extra_columns:
            schema[name] = OPTIONAL_FRAME_SCHEMA[name]
            columns.append(getattr(TrackingEvent, name))
        if group_expression is not None:
            schema["group_key"] = group_dtype
            columns.append(group_expression.label("group_key"))

        stmt = select(*columns).where(predicate).execution_options(yield_per=FRAME_CHUNK_SIZE)

        chunks: List[pl.DataFrame] = []
        result = await self.db.stream(stmt)
        async for partition in result.partitions(FRAME_CHUNK_SIZE):
            chunks.append(
                pl.DataFrame([tuple(row) for row in partition], schema=schema, orient="row")
            )

        frame = pl.concat(chunks) if chunks else pl.DataFrame(schema=schema)
        logger.debug("Cohort frame loaded", rows=frame.height, chunks=len(chunks))
        return frame

    async def distinct_values(self, column: Any, limit: int) -> List[str]:
        """Distinct non-empty values of one column, alphabetically."""
        result = await self.db.execute(
            select(column)
            .where(column.is_not(None), column != "")
            .distinct()
            .order_by(column)
            .limit(limit)
        )
        return [value for value in result.scalars().all() if value]

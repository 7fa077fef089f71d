"""
Test Suite Configuration
"""
import pytest
from datetime import datetime, timedelta
from typing import AsyncGenerator, Iterable, List, Optional, Sequence, Tuple

import polars as pl
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from funnel_analytics.analytics.store import BASE_FRAME_SCHEMA, EventStore
from funnel_analytics.database.models import Base, TrackingEvent

BASE_TIME = datetime(2025, 3, 10, 9, 0, 0)

SESSION_DEFAULTS = {
    "domain": "blueskylife.net",
    "page": "seniors",
    "page_type": "lead",
    "funnel_id": "lead-v3",
    "device_type": "mobile",
    "utm_source": "facebook",
    "utm_medium": "paid_social",
    "utm_campaign": "spring_final_expense",
    "is_bot": False,
}


def make_event(
    session_id: str,
    step_number: int = 0,
    step_name: str = "Landing",
    event_type: Optional[str] = "page_land",
    minutes: float = 0,
    **fields,
) -> TrackingEvent:
    """Build one tracking event; `minutes` is the offset from BASE_TIME."""
    values = dict(SESSION_DEFAULTS)
    values.update(fields)
    return TrackingEvent(
        session_id=session_id,
        event_type=event_type,
        step_number=step_number,
        step_name=step_name,
        event_timestamp=BASE_TIME + timedelta(minutes=minutes),
        **values,
    )


def funnel_session(
    session_id: str,
    steps: Sequence[Tuple[int, str]],
    start: float = 0,
    land: bool = True,
    **fields,
) -> List[TrackingEvent]:
    """A landing followed by one step_complete per (number, name), a minute apart."""
    events = [make_event(session_id, minutes=start, **fields)] if land else []
    for offset, (number, name) in enumerate(steps, start=1):
        events.append(
            make_event(session_id, number, name, "step_complete", minutes=start + offset, **fields)
        )
    return events


def frame_of(rows: Iterable[tuple], group_key: bool = False) -> pl.DataFrame:
    """
    Cohort frame from (session_id, event_type, step_number, step_name) tuples,
    with a trailing group value when `group_key` is set.
    """
    schema = dict(BASE_FRAME_SCHEMA)
    if group_key:
        schema["group_key"] = pl.Utf8
    rows = list(rows)
    if not rows:
        return pl.DataFrame(schema=schema)
    return pl.DataFrame(rows, schema=schema, orient="row")


@pytest.fixture
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def test_db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def store(test_db) -> EventStore:
    """Event store over the test session"""
    return EventStore(test_db)


@pytest.fixture
def add_events(test_db):
    """Persist tracking events into the test database"""
    async def _add(events: Iterable[TrackingEvent]) -> None:
        test_db.add_all(list(events))
        await test_db.commit()
    return _add

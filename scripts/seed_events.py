#!/usr/bin/env python
"""
Seed the event store with synthetic funnel sessions.

Usage:
    python scripts/seed_events.py --sessions 2000 --days 30
"""

import argparse
import asyncio
from typing import Any, Dict, List

import structlog
from sqlalchemy import insert

from funnel_analytics.config.logging import configure_logging
from funnel_analytics.data import FunnelSessionGenerator, GeneratorConfig
from funnel_analytics.database import Base, TrackingEvent, close_database, get_db, get_engine, init_database

logger = structlog.get_logger(__name__)

CHUNK_SIZE = 1000

# id and received_at are filled by the database
EVENT_COLUMNS = [
    column.name
    for column in TrackingEvent.__table__.columns
    if column.name not in ("id", "received_at")
]


def to_records(events: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Give every event the full column set so chunks insert as one statement."""
    return [{name: event.get(name) for name in EVENT_COLUMNS} for event in events]


async def execute_batch_insert(records: List[Dict[str, Any]]) -> None:
    """Insert records in chunks using Core insert"""
    if not records:
        return

    async with get_db() as db:
        for i in range(0, len(records), CHUNK_SIZE):
            await db.execute(insert(TrackingEvent), records[i:i + CHUNK_SIZE])
        await db.commit()
    logger.info("Inserted events", count=len(records), table=TrackingEvent.__tablename__)


async def main(args: argparse.Namespace) -> None:
    configure_logging()
    await init_database(args.database_url)

    try:
        if args.create_tables:
            async with get_engine().begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        generator = FunnelSessionGenerator(
            GeneratorConfig(sessions=args.sessions, days=args.days, seed=args.seed)
        )
        events = generator.generate()
        logger.info("Generated events", sessions=args.sessions, events=len(events))

        await execute_batch_insert(to_records(events))
    finally:
        await close_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed synthetic funnel events")
    parser.add_argument("--sessions", type=int, default=500, help="Sessions to generate (default: 500)")
    parser.add_argument("--days", type=int, default=14, help="Spread sessions over this many days")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    parser.add_argument("--create-tables", action="store_true", help="Create tables before seeding")

    asyncio.run(main(parser.parse_args()))

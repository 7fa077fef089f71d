"""
Database Module
"""
from .connection import init_database, close_database, get_db, get_db_dependency, get_engine
from .models import Base, EventType, TrackingEvent

__all__ = [
    "init_database",
    "close_database",
    "get_db",
    "get_db_dependency",
    "get_engine",
    "Base",
    "EventType",
    "TrackingEvent",
]

"""
CastEngine Database Module

SQLAlchemy models and connection management for scheduled broadcasts.
"""

from castengine.database.connection import (
    close_db,
    create_db_engine,
    create_session_factory,
    create_tables,
    init_db,
)
from castengine.database.models import (
    Base,
    ScheduledBroadcastRecord,
    TimestampMixin,
)

__all__ = [
    "close_db",
    "create_db_engine",
    "create_session_factory",
    "create_tables",
    "init_db",
    "Base",
    "ScheduledBroadcastRecord",
    "TimestampMixin",
]

"""
CastEngine Database Models
"""

from castengine.database.models.base import Base, TimestampMixin
from castengine.database.models.schedule import ScheduledBroadcastRecord

__all__ = [
    "Base",
    "TimestampMixin",
    "ScheduledBroadcastRecord",
]

"""
Scheduling

Persisted scheduled broadcasts and the dispatcher that activates them.
"""

from castengine.scheduling.dispatcher import ScheduleDispatcher
from castengine.scheduling.store import (
    ScheduledBroadcast,
    ScheduleRequest,
    ScheduleStore,
    parse_timestamp,
)

__all__ = [
    "ScheduleDispatcher",
    "ScheduledBroadcast",
    "ScheduleRequest",
    "ScheduleStore",
    "parse_timestamp",
]

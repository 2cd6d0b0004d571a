"""
Test Fixtures

Controllable fakes for the engine's collaborators and data factories.
"""

from .factories import ScheduleRequestFactory, StreamConfigFactory, VideoFactory
from .fakes import FakeClock, FakePlayer, StubFFmpeg, process_alive

__all__ = [
    "FakeClock",
    "FakePlayer",
    "StubFFmpeg",
    "process_alive",
    "ScheduleRequestFactory",
    "StreamConfigFactory",
    "VideoFactory",
]

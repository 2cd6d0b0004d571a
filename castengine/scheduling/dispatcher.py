"""
Schedule dispatcher.

A periodic loop that activates due schedules and enforces scheduled end
times. It only talks to the session controller through its serialized
entry points (start via the engine's activation callback, stop directly).
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from castengine.errors import EngineError, SessionBusyError
from castengine.playback.session import SessionController, SessionState
from castengine.scheduling.store import ScheduledBroadcast, ScheduleStore

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


ActivateCallback = Callable[[ScheduledBroadcast], Awaitable[Any]]


class ScheduleDispatcher:
    """
    Activates due schedules on a fixed tick.

    Each tick:
    - stops a schedule-originated session whose end time has passed
    - walks pending schedules in ascending start order and activates every
      due one while the session slot is free

    A due schedule that finds the slot taken stays pending and is reported
    as missed until the slot frees up or it is cancelled. A schedule whose
    end time has already passed is never started.

    Ticks do not overlap: a tick that finds another one still running
    returns immediately.

    Usage:
        dispatcher = ScheduleDispatcher(store, controller, engine.activate_schedule)
        await dispatcher.start()
        ...
        await dispatcher.stop()
    """

    DEFAULT_INTERVAL = 1.0

    def __init__(
        self,
        store: ScheduleStore,
        controller: SessionController,
        activate: ActivateCallback,
        interval: float = DEFAULT_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._controller = controller
        self._activate = activate
        self._interval = interval
        self._clock = clock

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._tick_lock = asyncio.Lock()

        # Metrics
        self._tick_count = 0
        self._activations = 0
        self._end_at_stops = 0
        self._last_tick: Optional[datetime] = None
        self._missed: set[str] = set()

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the dispatch loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Schedule dispatcher started (every {self._interval}s)")

    async def stop(self) -> None:
        """Stop the dispatch loop."""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Schedule dispatcher stopped")

    async def tick(self) -> list[str]:
        """
        Run one evaluation pass.

        Returns:
            Ids of the schedules activated by this pass
        """
        if self._tick_lock.locked():
            logger.debug("Dispatcher tick already in progress, skipping")
            return []

        async with self._tick_lock:
            now = self._clock()
            self._tick_count += 1
            self._last_tick = now

            await self._enforce_end_at(now)
            return await self._activate_due(now)

    async def _enforce_end_at(self, now: datetime) -> None:
        snapshot = self._controller.snapshot()
        if (
            snapshot.session_id is None
            or snapshot.end_at is None
            or snapshot.state not in (SessionState.STARTING, SessionState.LIVE)
            or now < snapshot.end_at
        ):
            return

        logger.info(
            f"Schedule {snapshot.schedule_id} reached its end time, "
            f"stopping session {snapshot.session_id[:8]}..."
        )
        self._end_at_stops += 1
        try:
            await self._controller.stop(snapshot.session_id, reason="end_at")
        except EngineError as e:
            logger.error(f"Failed to stop session at end time: {e}")

    async def _activate_due(self, now: datetime) -> list[str]:
        activated: list[str] = []
        pending = await self._store.list_pending()
        self._missed &= {s.schedule_id for s in pending}

        for schedule in pending:
            if schedule.start_at > now:
                break

            if schedule.end_at is not None and schedule.end_at <= now:
                self._report_missed(schedule, "its window has already closed")
                continue

            if not self._controller.is_slot_free:
                self._report_missed(schedule, "another session is on air")
                continue

            try:
                session = await self._activate(schedule)
            except SessionBusyError:
                self._report_missed(schedule, "another session is on air")
                continue
            except EngineError as e:
                # The attempt consumed the schedule; retry is operator-initiated
                logger.error(f"Schedule {schedule.schedule_id} failed to start: {e}")
                self._missed.discard(schedule.schedule_id)
                continue

            self._missed.discard(schedule.schedule_id)
            if session is None:
                continue
            self._activations += 1
            activated.append(schedule.schedule_id)

        return activated

    def _report_missed(self, schedule: ScheduledBroadcast, why: str) -> None:
        if schedule.schedule_id not in self._missed:
            self._missed.add(schedule.schedule_id)
            logger.warning(
                f"Schedule {schedule.schedule_id} due at "
                f"{schedule.start_at.isoformat()} is missed: {why}"
            )

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.tick()
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Dispatcher tick error: {e}", exc_info=True)
                await asyncio.sleep(self._interval)

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "interval_seconds": self._interval,
            "tick_count": self._tick_count,
            "activations": self._activations,
            "end_at_stops": self._end_at_stops,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "missed": sorted(self._missed),
        }

"""
Broadcast engine facade.

Wires the session controller, schedule store and dispatcher together and
exposes the operations the API layer calls.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from castengine.config import CastEngineConfig
from castengine.errors import EngineError, SessionBusyError
from castengine.playback.cursor import LoopMode
from castengine.playback.library import InMemoryVideoLibrary, Video, VideoLibrary
from castengine.playback.player import Player, create_player
from castengine.playback.session import (
    BroadcastSession,
    SessionController,
    StatusSnapshot,
    StreamConfig,
    utcnow,
)
from castengine.scheduling.dispatcher import ScheduleDispatcher
from castengine.scheduling.store import ScheduledBroadcast, ScheduleRequest, ScheduleStore

logger = logging.getLogger(__name__)


class BroadcastEngine:
    """
    Single-broadcaster control plane.

    Usage:
        engine = BroadcastEngine.from_config(config, session_factory)
        await engine.start()

        session = await engine.start_stream(StreamConfig(...))
        status = engine.get_status()
        await engine.stop_stream(session.session_id)

        await engine.shutdown()
    """

    def __init__(
        self,
        controller: SessionController,
        store: ScheduleStore,
        library: VideoLibrary,
        tick_interval: float = ScheduleDispatcher.DEFAULT_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.controller = controller
        self.store = store
        self.library = library
        self.clock = clock
        self.dispatcher = ScheduleDispatcher(
            store,
            controller,
            self.activate_schedule,
            interval=tick_interval,
            clock=clock,
        )
        controller.on_session_ended(self._on_session_ended)

    @classmethod
    def from_config(
        cls,
        config: CastEngineConfig,
        session_factory: async_sessionmaker,
        player: Optional[Player] = None,
        library: Optional[VideoLibrary] = None,
    ) -> "BroadcastEngine":
        """Build an engine from the loaded configuration."""
        library = library or InMemoryVideoLibrary.from_config(config.library.videos)
        player = player or create_player(config.player)
        controller = SessionController(
            player,
            library,
            start_timeout=config.engine.player_start_timeout,
            switch_timeout=config.engine.player_switch_timeout,
            stop_timeout=config.engine.player_stop_timeout,
        )
        store = ScheduleStore(session_factory)
        return cls(
            controller,
            store,
            library,
            tick_interval=config.engine.tick_interval_seconds,
        )

    async def start(self) -> None:
        """Start the schedule dispatcher."""
        await self.dispatcher.start()
        logger.info("Broadcast engine started")

    async def shutdown(self) -> None:
        """Stop dispatching and end any running session."""
        await self.dispatcher.stop()
        await self.controller.close()
        logger.info("Broadcast engine stopped")

    # Stream operations

    def get_status(self) -> StatusSnapshot:
        return self.controller.snapshot()

    async def start_stream(self, config: StreamConfig) -> BroadcastSession:
        return await self.controller.start(config)

    async def stop_stream(self, session_id: str) -> bool:
        return await self.controller.stop(session_id)

    async def update_stream_metadata(self, session_id: str, title: str) -> BroadcastSession:
        return await self.controller.update_title(session_id, title)

    async def restart_stream(
        self,
        session_id: str,
        playlist: list[str],
        loop_mode: Optional[LoopMode] = None,
    ) -> BroadcastSession:
        return await self.controller.restart(session_id, playlist, loop_mode)

    # Schedule operations

    async def list_schedules(self) -> list[ScheduledBroadcast]:
        return await self.store.list()

    async def get_schedule(self, schedule_id: str) -> ScheduledBroadcast:
        return await self.store.get(schedule_id)

    async def create_schedule(self, request: ScheduleRequest) -> ScheduledBroadcast:
        return await self.store.create(request)

    async def cancel_schedule(self, schedule_id: str) -> None:
        await self.store.cancel(schedule_id)

    async def activate_schedule(self, schedule: ScheduledBroadcast) -> Optional[BroadcastSession]:
        """
        Hand a due schedule to the session controller.

        Returns None if the schedule was already activated.

        Raises:
            SessionBusyError: If the slot is taken (schedule stays pending)
            EngineError: If the session failed to start (schedule is completed)
        """
        if not await self.store.mark_activated(schedule.schedule_id):
            logger.debug(f"Schedule {schedule.schedule_id} already activated")
            return None

        logger.info(f"Activating schedule {schedule.schedule_id} ({schedule.title!r})")
        config = StreamConfig(
            playlist=list(schedule.playlist),
            loop_mode=schedule.loop_mode,
            credential_token=schedule.credential_token,
            title=schedule.title,
            schedule_id=schedule.schedule_id,
            end_at=schedule.end_at,
        )
        try:
            return await self.controller.start(config)
        except SessionBusyError:
            await self.store.release_activation(schedule.schedule_id)
            raise
        except EngineError:
            # Usually already recorded by the session-ended hook
            await self.store.mark_completed(schedule.schedule_id)
            raise

    async def _on_session_ended(self, session: BroadcastSession, reason: str) -> None:
        if session.schedule_id is not None:
            await self.store.mark_completed(session.schedule_id)

    # Library

    def list_videos(self) -> list[Video]:
        return self.library.list_videos()

    def get_stats(self) -> dict[str, Any]:
        return {
            "session": self.controller.get_stats(),
            "dispatcher": self.dispatcher.get_stats(),
        }

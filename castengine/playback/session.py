"""
Broadcast session controller.

Owns the single broadcast session slot and its state machine:

    idle -> starting -> live -> stopping -> stopped
               |          |
               +-> failed <-+

All state transitions happen under one asyncio lock so concurrent
start/stop/title updates serialize. Status reads never take the lock:
every transition publishes a fresh immutable StatusSnapshot that
``snapshot()`` hands out as-is.

Player start is awaited outside the lock so that ``stop()`` can abort a
session that is still starting. Switch and stop calls are awaited under
the lock with a bounded timeout.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional
from uuid import uuid4

from castengine.errors import (
    EngineError,
    InvalidConfigError,
    InvalidPlaylistError,
    NoActiveSessionError,
    NoPlayableContentError,
    NotFoundError,
    NotLiveError,
    PlayerTimeoutError,
    SessionBusyError,
    StartFailedError,
)
from castengine.playback.cursor import LoopMode, PlaylistCursor
from castengine.playback.library import Video, VideoLibrary
from castengine.playback.player import Player, PlayerError, PlayerListener

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    """Broadcast session states."""

    IDLE = "idle"
    STARTING = "starting"
    LIVE = "live"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.STOPPED, SessionState.FAILED)


@dataclass
class StreamConfig:
    """What to broadcast: the engine-side form of a start request."""

    playlist: list[str]
    loop_mode: LoopMode
    credential_token: str
    title: str = ""
    schedule_id: Optional[str] = None
    end_at: Optional[datetime] = None

    def validate(self) -> None:
        """
        Reject incomplete configurations before anything is allocated.

        Raises:
            InvalidConfigError: If the stream key or playlist is empty
        """
        if not self.credential_token or not self.credential_token.strip():
            raise InvalidConfigError("Stream key is required")
        if not self.playlist:
            raise InvalidConfigError("Playlist must contain at least one video")


@dataclass
class BroadcastSession:
    """
    Runtime state of one broadcast attempt.

    Created by the controller on start, reclaimed once it reaches a
    terminal state.
    """

    session_id: str
    playlist: list[str]
    loop_mode: LoopMode
    credential_token: str
    title: str
    cursor: PlaylistCursor
    state: SessionState = SessionState.IDLE
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    current_video: Optional[Video] = None
    schedule_id: Optional[str] = None
    end_at: Optional[datetime] = None
    failure: Optional[EngineError] = None
    end_reason: Optional[str] = None

    # Skip-on-failure bookkeeping
    consecutive_failures: int = 0
    skipped_items: int = 0

    start_task: Optional[asyncio.Future] = field(default=None, repr=False)

    @property
    def short_id(self) -> str:
        return f"{self.session_id[:8]}..."

    @property
    def repeat_count(self) -> int:
        return self.loop_mode.repeats

    @property
    def iterations_completed(self) -> int:
        return self.cursor.iterations_completed

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for diagnostics."""
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "title": self.title,
            "playlist": list(self.playlist),
            "loop_mode": self.loop_mode.kind.value,
            "repeat_count": self.repeat_count,
            "iterations_completed": self.iterations_completed,
            "current_video": self.current_video.id if self.current_video else None,
            "schedule_id": self.schedule_id,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "end_at": self.end_at.isoformat() if self.end_at else None,
            "skipped_items": self.skipped_items,
            "end_reason": self.end_reason,
            "error": self.failure.to_dict() if self.failure else None,
        }


@dataclass(frozen=True)
class StatusSnapshot:
    """Read-only status projection published on every transition."""

    state: SessionState = SessionState.IDLE
    session_id: Optional[str] = None
    title: Optional[str] = None
    current_video: Optional[str] = None
    current_video_id: Optional[str] = None
    started_at: Optional[datetime] = None
    schedule_id: Optional[str] = None
    end_at: Optional[datetime] = None
    error: Optional[str] = None
    version: int = 0

    @property
    def streaming(self) -> bool:
        return self.state == SessionState.LIVE

    @property
    def occupied(self) -> bool:
        """True while a session holds the slot."""
        return self.session_id is not None

    def uptime_seconds(self, now: Optional[datetime] = None) -> Optional[float]:
        if self.started_at is None or not self.streaming:
            return None
        now = now or utcnow()
        return max(0.0, (now - self.started_at).total_seconds())


SessionEndedCallback = Callable[[BroadcastSession, str], Any]


class SessionController(PlayerListener):
    """
    Drives the single broadcast session.

    Usage:
        controller = SessionController(player, library)
        session = await controller.start(StreamConfig(
            playlist=["v1", "v2"],
            loop_mode=LoopMode.playlist(),
            credential_token="live_123",
        ))
        await controller.update_title(session.session_id, "Evening show")
        await controller.stop(session.session_id)

    Session-ended callbacks run under the session lock and must not call
    back into the controller.
    """

    DEFAULT_START_TIMEOUT = 30.0
    DEFAULT_SWITCH_TIMEOUT = 10.0
    DEFAULT_STOP_TIMEOUT = 10.0

    def __init__(
        self,
        player: Player,
        library: VideoLibrary,
        start_timeout: float = DEFAULT_START_TIMEOUT,
        switch_timeout: float = DEFAULT_SWITCH_TIMEOUT,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._player = player
        self._library = library
        self._start_timeout = start_timeout
        self._switch_timeout = switch_timeout
        self._stop_timeout = stop_timeout
        self._clock = clock

        # The one session slot
        self._session: Optional[BroadcastSession] = None
        self._last_session: Optional[BroadcastSession] = None
        self._lock = asyncio.Lock()

        self._snapshot = StatusSnapshot()
        self._version = 0
        self._on_session_ended: list[SessionEndedCallback] = []

        # Metrics
        self._sessions_started = 0
        self._sessions_failed = 0
        self._items_skipped = 0

        player.set_listener(self)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> StatusSnapshot:
        """Current status. Never blocks and never mutates state."""
        return self._snapshot

    @property
    def active_session(self) -> Optional[BroadcastSession]:
        return self._session

    @property
    def last_session(self) -> Optional[BroadcastSession]:
        return self._last_session

    @property
    def is_slot_free(self) -> bool:
        return not self._snapshot.occupied

    @property
    def player(self) -> Player:
        return self._player

    def on_session_ended(self, callback: SessionEndedCallback) -> None:
        """Register callback for sessions reaching a terminal state."""
        self._on_session_ended.append(callback)

    def get_stats(self) -> dict[str, Any]:
        return {
            "state": self._snapshot.state.value,
            "session_id": self._snapshot.session_id,
            "sessions_started": self._sessions_started,
            "sessions_failed": self._sessions_failed,
            "items_skipped": self._items_skipped,
            "snapshot_version": self._snapshot.version,
        }

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(self, config: StreamConfig) -> BroadcastSession:
        """
        Start a new broadcast session.

        Returns:
            The session, in LIVE state

        Raises:
            InvalidConfigError: If the stream key or playlist is empty
            SessionBusyError: If another session holds the slot
            NoPlayableContentError: If no playlist item resolves
            StartFailedError: If the player refused to start, or stop()
                aborted the start
            PlayerTimeoutError: If the player did not confirm in time
        """
        config.validate()
        try:
            cursor = PlaylistCursor(config.playlist, config.loop_mode)
        except InvalidPlaylistError as e:
            raise InvalidConfigError(e.message, cause=e) from e

        async with self._lock:
            if self._session is not None:
                raise SessionBusyError(
                    f"Session {self._session.short_id} is "
                    f"{self._session.state.value}; stop it before starting another"
                )

            session = BroadcastSession(
                session_id=str(uuid4()),
                playlist=list(config.playlist),
                loop_mode=config.loop_mode,
                credential_token=config.credential_token,
                title=config.title,
                cursor=cursor,
                state=SessionState.STARTING,
                created_at=self._clock(),
                schedule_id=config.schedule_id,
                end_at=config.end_at,
            )
            self._session = session
            self._sessions_started += 1
            self._publish()
            logger.info(
                f"Session {session.short_id} starting: {len(session.playlist)} items, "
                f"loop={session.loop_mode}"
                + (f", schedule={session.schedule_id}" if session.schedule_id else "")
            )

            try:
                video = self._next_playable(session)
                if video is None:
                    raise NoPlayableContentError("Playlist has nothing to play")
            except NoPlayableContentError as e:
                await self._finish(session, SessionState.FAILED, e.kind.value, e)
                raise

            session.current_video = video
            session.start_task = asyncio.ensure_future(
                asyncio.wait_for(
                    self._player.start(video.source_locator, session.credential_token),
                    timeout=self._start_timeout,
                )
            )

        try:
            await session.start_task
        except asyncio.CancelledError:
            if session.state != SessionState.STARTING:
                raise StartFailedError(
                    f"Start of session {session.short_id} aborted by stop"
                )
            # The caller itself was cancelled; do not leave the slot occupied
            await self._fail_start(
                session, StartFailedError(f"Start of session {session.short_id} cancelled")
            )
            raise
        except asyncio.TimeoutError as e:
            error = PlayerTimeoutError(
                f"Player did not start within {self._start_timeout}s", cause=e
            )
            await self._fail_start(session, error)
            raise error from e
        except PlayerError as e:
            error = StartFailedError(f"Player failed to start: {e}", cause=e)
            await self._fail_start(session, error)
            raise error from e

        async with self._lock:
            if self._session is not session or session.state != SessionState.STARTING:
                raise StartFailedError(
                    f"Start of session {session.short_id} aborted by stop"
                )
            session.state = SessionState.LIVE
            session.started_at = self._clock()
            session.consecutive_failures = 0
            self._publish()
            logger.info(
                f"Session {session.short_id} live: playing {session.current_video.id}"
            )
            return session

    async def stop(self, session_id: str, reason: str = "manual") -> bool:
        """
        Stop a session from any non-terminal state.

        Stopping an unknown or already ended session is a no-op.

        Returns:
            True if a session was stopped, False for a no-op

        Raises:
            PlayerTimeoutError: If the player did not confirm the stop in
                time (the session still ends, as FAILED)
        """
        async with self._lock:
            session = self._session
            if session is None or session.session_id != session_id:
                logger.debug(f"Stop for inactive session {session_id[:8]}... ignored")
                return False

            previous = session.state
            session.state = SessionState.STOPPING
            self._publish()
            logger.info(f"Session {session.short_id} stopping ({reason}), was {previous.value}")

            if session.start_task is not None and not session.start_task.done():
                session.start_task.cancel()
                # Let the player unwind the aborted start before it is stopped
                await asyncio.wait([session.start_task], timeout=self._stop_timeout)

            await self._shutdown(session, reason)
            return True

    async def update_title(self, session_id: str, title: str) -> BroadcastSession:
        """
        Change the title of a live session. Idempotent.

        Raises:
            NoActiveSessionError: If no session is running
            NotFoundError: If ``session_id`` is not the running session
            NotLiveError: If the session is not live
        """
        async with self._lock:
            session = self._require(session_id)
            if session.state != SessionState.LIVE:
                raise NotLiveError(
                    f"Session {session.short_id} is {session.state.value}, not live"
                )
            if session.title != title:
                session.title = title
                self._publish()
                logger.info(f"Session {session.short_id} title set to {title!r}")
            return session

    async def restart(
        self,
        session_id: str,
        playlist: list[str],
        loop_mode: Optional[LoopMode] = None,
    ) -> BroadcastSession:
        """
        Swap a live session onto a new playlist from its first item.

        Raises:
            InvalidConfigError: If the playlist is empty
            NoActiveSessionError, NotFoundError, NotLiveError: As update_title
            NoPlayableContentError, PlayerTimeoutError: If the new playlist
                cannot be played (the session ends as FAILED)
        """
        if not playlist:
            raise InvalidConfigError("Playlist must contain at least one video")

        async with self._lock:
            session = self._require(session_id)
            if session.state != SessionState.LIVE:
                raise NotLiveError(
                    f"Session {session.short_id} is {session.state.value}, not live"
                )

            session.cursor.reset(playlist, loop_mode)
            session.playlist = list(playlist)
            if loop_mode is not None:
                session.loop_mode = loop_mode
            session.consecutive_failures = 0
            logger.info(
                f"Session {session.short_id} restarting with {len(playlist)} items"
            )

            await self._play_next(session)
            if session.failure is not None:
                raise session.failure
            return session

    async def close(self) -> None:
        """Stop whatever is running, for shutdown."""
        session = self._session
        if session is not None:
            try:
                await self.stop(session.session_id, reason="shutdown")
            except EngineError as e:
                logger.error(f"Error stopping session on shutdown: {e}")

    # ------------------------------------------------------------------
    # Player notifications
    # ------------------------------------------------------------------

    async def on_item_ended(self) -> None:
        async with self._lock:
            session = self._session
            if session is None or session.state != SessionState.LIVE:
                logger.debug("Item end notification outside a live session ignored")
                return
            session.consecutive_failures = 0
            await self._play_next(session)

    async def on_player_error(self, message: str) -> None:
        async with self._lock:
            session = self._session
            if session is None or session.state != SessionState.LIVE:
                logger.debug(f"Player error outside a live session ignored: {message}")
                return

            failed_id = session.current_video.id if session.current_video else "?"
            logger.warning(
                f"Session {session.short_id}: player could not play {failed_id}: {message}"
            )
            try:
                self._record_failure(session)
            except NoPlayableContentError as e:
                await self._fail_live(session, e)
                return
            await self._play_next(session)

    # ------------------------------------------------------------------
    # Internals (callers hold the lock)
    # ------------------------------------------------------------------

    def _require(self, session_id: str) -> BroadcastSession:
        session = self._session
        if session is None:
            raise NoActiveSessionError("No broadcast session is running")
        if session.session_id != session_id:
            raise NotFoundError(f"Session {session_id!r} not found")
        return session

    def _record_failure(self, session: BroadcastSession) -> None:
        session.consecutive_failures += 1
        session.skipped_items += 1
        self._items_skipped += 1
        if session.consecutive_failures >= session.cursor.pass_length:
            raise NoPlayableContentError(
                f"No playable video in a full pass of {session.cursor.pass_length} item(s)"
            )

    def _next_playable(self, session: BroadcastSession) -> Optional[Video]:
        """
        Advance the cursor to the next id that resolves.

        Returns None when the cursor is exhausted.
        """
        while True:
            video_id = session.cursor.advance()
            if video_id is None:
                return None
            try:
                return self._library.resolve(video_id)
            except NotFoundError:
                logger.warning(
                    f"Session {session.short_id}: video {video_id} not found, skipping"
                )
                self._record_failure(session)

    async def _play_next(self, session: BroadcastSession) -> None:
        while True:
            try:
                video = self._next_playable(session)
            except NoPlayableContentError as e:
                await self._fail_live(session, e)
                return

            if video is None:
                logger.info(
                    f"Session {session.short_id} finished its playlist after "
                    f"{session.iterations_completed} pass(es)"
                )
                session.state = SessionState.STOPPING
                self._publish()
                try:
                    await self._shutdown(session, "completed")
                except PlayerTimeoutError as e:
                    logger.error(f"Session {session.short_id}: {e.message}")
                return

            try:
                await asyncio.wait_for(
                    self._player.switch(video.source_locator),
                    timeout=self._switch_timeout,
                )
            except asyncio.TimeoutError as e:
                await self._fail_live(
                    session,
                    PlayerTimeoutError(
                        f"Player did not switch within {self._switch_timeout}s", cause=e
                    ),
                )
                return
            except PlayerError as e:
                logger.warning(
                    f"Session {session.short_id}: player refused {video.id}: {e}"
                )
                try:
                    self._record_failure(session)
                except NoPlayableContentError as exhausted:
                    await self._fail_live(session, exhausted)
                    return
                continue

            session.current_video = video
            self._publish()
            logger.debug(f"Session {session.short_id} now playing {video.id}")
            return

    async def _fail_start(self, session: BroadcastSession, error: EngineError) -> None:
        async with self._lock:
            if self._session is not session:
                return
            await self._stop_player_quietly()
            await self._finish(session, SessionState.FAILED, error.kind.value, error)

    async def _fail_live(self, session: BroadcastSession, error: EngineError) -> None:
        await self._stop_player_quietly()
        await self._finish(session, SessionState.FAILED, error.kind.value, error)

    async def _stop_player_quietly(self) -> None:
        try:
            await asyncio.wait_for(self._player.stop(), timeout=self._stop_timeout)
        except (PlayerError, asyncio.TimeoutError) as e:
            logger.error(f"Player stop after failure did not complete cleanly: {e!r}")

    async def _shutdown(self, session: BroadcastSession, reason: str) -> None:
        try:
            await asyncio.wait_for(self._player.stop(), timeout=self._stop_timeout)
        except asyncio.TimeoutError as e:
            error = PlayerTimeoutError(
                f"Player did not stop within {self._stop_timeout}s", cause=e
            )
            await self._finish(session, SessionState.FAILED, error.kind.value, error)
            raise error from e
        except PlayerError as e:
            logger.error(f"Session {session.short_id}: player stop reported: {e}")

        await self._finish(session, SessionState.STOPPED, reason)

    async def _finish(
        self,
        session: BroadcastSession,
        state: SessionState,
        reason: str,
        error: Optional[EngineError] = None,
    ) -> None:
        session.state = state
        session.ended_at = self._clock()
        session.end_reason = reason
        session.failure = error
        if self._session is session:
            self._session = None
        self._last_session = session
        self._publish()

        if state == SessionState.FAILED:
            self._sessions_failed += 1
            logger.error(f"Session {session.short_id} failed ({reason}): {error}")
        else:
            logger.info(f"Session {session.short_id} stopped ({reason})")

        for callback in self._on_session_ended:
            try:
                if inspect.iscoroutinefunction(callback):
                    await callback(session, reason)
                else:
                    callback(session, reason)
            except Exception as e:
                logger.error(f"Session ended callback error: {e}")

    def _publish(self) -> None:
        self._version += 1
        session = self._session
        if session is None:
            last = self._last_session
            self._snapshot = StatusSnapshot(
                state=last.state if last else SessionState.IDLE,
                error=last.failure.message if last and last.failure else None,
                version=self._version,
            )
            return

        video = session.current_video
        self._snapshot = StatusSnapshot(
            state=session.state,
            session_id=session.session_id,
            title=session.title,
            current_video=video.display_name if video else None,
            current_video_id=video.id if video else None,
            started_at=session.started_at,
            schedule_id=session.schedule_id,
            end_at=session.end_at,
            version=self._version,
        )

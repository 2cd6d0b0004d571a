"""
Player collaborator.

The player is the opaque encoder/muxer that actually pushes video to the
streaming endpoint. The engine drives it with start/switch/stop commands
and listens for end-of-item and error notifications.

Implementations:
- NullPlayer: accepts every command, items end only when told to
- FFmpegPlayer: one ffmpeg process per item, pushed to an RTMP endpoint
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

logger = logging.getLogger(__name__)


class PlayerError(Exception):
    """Raised by a player that cannot carry out a command."""


class PlayerListener(ABC):
    """Receives asynchronous notifications from a player."""

    @abstractmethod
    async def on_item_ended(self) -> None:
        """The current item finished playing."""

    @abstractmethod
    async def on_player_error(self, message: str) -> None:
        """The current item could not be played."""


class Player(ABC):
    """Interface the session controller drives."""

    def __init__(self):
        self._listener: Optional[PlayerListener] = None

    def set_listener(self, listener: PlayerListener) -> None:
        self._listener = listener

    @abstractmethod
    async def start(self, source_locator: str, credential_token: str) -> None:
        """Begin broadcasting ``source_locator`` with the given stream key."""

    @abstractmethod
    async def switch(self, source_locator: str) -> None:
        """Replace the current item with ``source_locator``."""

    @abstractmethod
    async def stop(self) -> None:
        """Terminate the broadcast."""

    async def _notify_item_ended(self) -> None:
        if self._listener is not None:
            await self._listener.on_item_ended()

    async def _notify_error(self, message: str) -> None:
        if self._listener is not None:
            await self._listener.on_player_error(message)


class NullPlayer(Player):
    """
    Player that broadcasts nothing.

    Useful for dry runs and tests: every command succeeds immediately and
    the host decides when items end via ``finish_item()``.
    """

    def __init__(self):
        super().__init__()
        self.running = False
        self.current_source: Optional[str] = None
        self.credential_token: Optional[str] = None
        self.history: list[tuple[str, Optional[str]]] = []

    async def start(self, source_locator: str, credential_token: str) -> None:
        self.running = True
        self.current_source = source_locator
        self.credential_token = credential_token
        self.history.append(("start", source_locator))

    async def switch(self, source_locator: str) -> None:
        self.current_source = source_locator
        self.history.append(("switch", source_locator))

    async def stop(self) -> None:
        self.running = False
        self.current_source = None
        self.history.append(("stop", None))

    async def finish_item(self) -> None:
        """Pretend the current item reached its end."""
        await self._notify_item_ended()

    async def fail_item(self, message: str = "playback error") -> None:
        """Pretend the current item failed mid-play."""
        await self._notify_error(message)

    def played_sources(self) -> list[str]:
        """Sources passed to start/switch, in order."""
        return [src for op, src in self.history if op in ("start", "switch")]


class FFmpegPlayer(Player):
    """
    Pushes each item to ``{rtmp_url}/{stream_key}`` with its own ffmpeg process.

    A process exiting with code 0 is an item end; any other exit code is
    reported as a player error for that item. Processes replaced by a
    switch or stop are terminated without notifying the listener.
    """

    TERMINATE_TIMEOUT = 5.0

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        rtmp_url: str = "rtmp://a.rtmp.youtube.com/live2",
        realtime: bool = True,
        extra_args: Optional[list[str]] = None,
        startup_grace: float = 2.0,
    ):
        super().__init__()
        self._ffmpeg_path = ffmpeg_path
        self._rtmp_url = rtmp_url.rstrip("/")
        self._realtime = realtime
        self._extra_args = list(extra_args or [])
        self._startup_grace = startup_grace
        self._target: Optional[str] = None
        self._process: Optional[asyncio.subprocess.Process] = None
        self._watch_task: Optional[asyncio.Task] = None

    def build_command(self, source_locator: str, target: str) -> list[str]:
        """Build the ffmpeg command line for one item."""
        cmd = [self._ffmpeg_path, "-hide_banner", "-loglevel", "error"]
        if self._realtime:
            cmd.append("-re")
        cmd += ["-i", source_locator, "-c", "copy"]
        cmd += self._extra_args
        cmd += ["-f", "flv", target]
        return cmd

    async def start(self, source_locator: str, credential_token: str) -> None:
        if self._process is not None:
            await self._terminate_current()
        self._target = f"{self._rtmp_url}/{credential_token}"
        await self._spawn(source_locator)

    async def switch(self, source_locator: str) -> None:
        if self._target is None:
            raise PlayerError("Player is not started")
        await self._terminate_current()
        await self._spawn(source_locator)

    async def stop(self) -> None:
        self._target = None
        await self._terminate_current()

    async def _spawn(self, source_locator: str) -> None:
        cmd = self.build_command(source_locator, self._target)
        logger.debug(f"Starting ffmpeg: {' '.join(cmd[:8])}...")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise PlayerError(f"Failed to launch ffmpeg: {e}") from e

        # Catch bad sources and rejected stream keys before reporting success
        try:
            await asyncio.wait_for(process.wait(), timeout=self._startup_grace)
        except asyncio.TimeoutError:
            pass
        except BaseException:
            # Start aborted (stop or timeout): the new process must not outlive it
            await self._kill(process)
            raise
        else:
            if process.returncode != 0:
                stderr = await process.stderr.read()
                raise PlayerError(
                    f"ffmpeg exited with code {process.returncode}: "
                    f"{stderr.decode('utf-8', errors='replace')[-500:]}"
                )

        self._process = process
        self._watch_task = asyncio.create_task(self._watch(process))

    async def _watch(self, process: asyncio.subprocess.Process) -> None:
        stderr = await process.stderr.read()
        returncode = await process.wait()

        if process is not self._process:
            return
        self._process = None
        self._watch_task = None

        try:
            if returncode == 0:
                await self._notify_item_ended()
            else:
                message = stderr.decode("utf-8", errors="replace")[-500:]
                logger.warning(f"ffmpeg exited with code {returncode}: {message}")
                await self._notify_error(f"ffmpeg exited with code {returncode}")
        except Exception as e:
            logger.exception(f"Player listener failed: {e}")

    async def _terminate_current(self) -> None:
        process = self._process
        watch_task = self._watch_task
        self._process = None
        self._watch_task = None

        if watch_task is not None and watch_task is not asyncio.current_task():
            watch_task.cancel()
            await asyncio.wait([watch_task])

        if process is None or process.returncode is not None:
            return

        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=self.TERMINATE_TIMEOUT)
        except asyncio.TimeoutError:
            await self._kill(process)
            logger.warning("Force killed ffmpeg")

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self._process is not None,
            "pid": self._process.pid if self._process else None,
            "target_set": self._target is not None,
        }


def create_player(player_config: Any) -> Player:
    """Build the player named by the ``player`` config section."""
    if player_config.backend == "null":
        return NullPlayer()
    return FFmpegPlayer(
        ffmpeg_path=player_config.ffmpeg_path,
        rtmp_url=player_config.rtmp_url,
        realtime=player_config.realtime,
        extra_args=player_config.extra_args,
    )

"""
Playlist cursor with loop-mode semantics.

The cursor decides which playlist item plays next. It never looks ids up:
a deleted video is returned like any other id and the session controller
skips it at playback time.

Loop modes:
- single: repeat the current item forever
- playlist: repeat the whole sequence forever
- n: repeat the whole sequence exactly ``repeats`` times
- none: play the sequence once
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from castengine.errors import InvalidConfigError, InvalidPlaylistError


class LoopKind(str, Enum):
    """Loop mode names as they appear on the wire."""

    SINGLE = "single"
    PLAYLIST = "playlist"
    COUNT = "n"
    NONE = "none"


@dataclass(frozen=True)
class LoopMode:
    """
    Loop policy for a playlist.

    ``repeats`` only matters for LoopKind.COUNT, where it must be >= 1.
    It is normalized to 1 for every other kind.
    """

    kind: LoopKind
    repeats: int = 1

    def __post_init__(self):
        if self.kind == LoopKind.COUNT:
            if self.repeats is None or self.repeats < 1:
                raise InvalidConfigError(
                    f"Loop mode 'n' requires repeats >= 1, got {self.repeats}"
                )
        elif self.repeats != 1:
            object.__setattr__(self, "repeats", 1)

    @classmethod
    def single(cls) -> "LoopMode":
        return cls(LoopKind.SINGLE)

    @classmethod
    def playlist(cls) -> "LoopMode":
        return cls(LoopKind.PLAYLIST)

    @classmethod
    def count(cls, repeats: int) -> "LoopMode":
        return cls(LoopKind.COUNT, repeats)

    @classmethod
    def once(cls) -> "LoopMode":
        return cls(LoopKind.NONE)

    @classmethod
    def parse(cls, loop_mode: str, repeats: Optional[int] = None) -> "LoopMode":
        """Build a LoopMode from its wire representation."""
        try:
            kind = LoopKind(loop_mode)
        except ValueError:
            raise InvalidConfigError(
                f"Unknown loop mode {loop_mode!r}. "
                f"Must be one of: {[k.value for k in LoopKind]}"
            )

        if kind == LoopKind.COUNT:
            if repeats is None:
                raise InvalidConfigError("Loop mode 'n' requires a repeat count")
            return cls(kind, repeats)
        return cls(kind)

    @property
    def is_infinite(self) -> bool:
        return self.kind in (LoopKind.SINGLE, LoopKind.PLAYLIST)

    def __str__(self) -> str:
        if self.kind == LoopKind.COUNT:
            return f"n({self.repeats})"
        return self.kind.value


class PlaylistCursor:
    """
    Tracks the position within a playlist and picks the next item.

    ``advance()`` returns the next video id, or None once the loop mode is
    exhausted. Passes are counted eagerly: ``iterations_completed`` is bumped
    as soon as the last item of a pass is handed out.

    Usage:
        cursor = PlaylistCursor(["v1", "v2"], LoopMode.count(2))
        while (video_id := cursor.advance()) is not None:
            play(video_id)
    """

    def __init__(self, playlist: Sequence[str], loop_mode: LoopMode):
        self._items: List[str] = []
        self._loop_mode = loop_mode
        self._position = 0
        self._iterations_completed = 0
        self._exhausted = False
        self._set_items(playlist)

    def _set_items(self, playlist: Sequence[str]) -> None:
        items = list(playlist or [])
        if not items:
            raise InvalidPlaylistError("Playlist must contain at least one video")
        self._items = items

    @property
    def items(self) -> List[str]:
        return list(self._items)

    @property
    def loop_mode(self) -> LoopMode:
        return self._loop_mode

    @property
    def position(self) -> int:
        return self._position

    @property
    def iterations_completed(self) -> int:
        return self._iterations_completed

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def pass_length(self) -> int:
        """Number of advances that make up one full pass."""
        if self._loop_mode.kind == LoopKind.SINGLE:
            return 1
        return len(self._items)

    def advance(self) -> Optional[str]:
        """Get the next video id to play, or None when done."""
        if self._exhausted:
            return None

        kind = self._loop_mode.kind
        video_id = self._items[self._position]

        if kind == LoopKind.SINGLE:
            # Position never moves; every play is a full pass.
            self._iterations_completed += 1
            return video_id

        self._position += 1
        if self._position >= len(self._items):
            self._iterations_completed += 1
            if kind == LoopKind.PLAYLIST:
                self._position = 0
            elif kind == LoopKind.COUNT:
                if self._iterations_completed >= self._loop_mode.repeats:
                    self._exhausted = True
                else:
                    self._position = 0
            else:
                self._exhausted = True

        return video_id

    def peek(self) -> Optional[str]:
        """Peek at the next id without advancing."""
        if self._exhausted:
            return None
        return self._items[self._position]

    def reset(
        self,
        playlist: Optional[Sequence[str]] = None,
        loop_mode: Optional[LoopMode] = None,
    ) -> None:
        """Return to the first item, optionally with a new playlist or mode."""
        if playlist is not None:
            self._set_items(playlist)
        if loop_mode is not None:
            self._loop_mode = loop_mode
        self._position = 0
        self._iterations_completed = 0
        self._exhausted = False

    def get_state(self) -> Dict[str, Any]:
        """Get the current cursor state."""
        return {
            "position": self._position,
            "iterations_completed": self._iterations_completed,
            "exhausted": self._exhausted,
            "loop_mode": str(self._loop_mode),
            "length": len(self._items),
        }

    def __repr__(self) -> str:
        return (
            f"<PlaylistCursor {self._loop_mode} pos={self._position}/"
            f"{len(self._items)} iter={self._iterations_completed}>"
        )

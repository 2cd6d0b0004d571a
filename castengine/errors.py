"""
Error taxonomy for the broadcast engine.

Every rejection raised by the engine is an EngineError carrying a
distinguishable ErrorKind and a human-readable message. Kinds are grouped
into categories so transport layers can map them without knowing every
subclass:

- input: caller input malformed, rejected before anything is applied
- state: operation invalid for the current session/schedule state
- external: player or content failure, the session is discarded
- lookup: unknown video, schedule or session id
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Coarse grouping of error kinds."""

    INPUT = "input"
    STATE = "state"
    EXTERNAL = "external"
    LOOKUP = "lookup"


class ErrorKind(str, Enum):
    """Classification of engine errors."""

    INVALID_CONFIG = "invalid_config"
    INVALID_PLAYLIST = "invalid_playlist"
    INVALID_SCHEDULE = "invalid_schedule"
    NOT_LIVE = "not_live"
    ALREADY_ACTIVATED = "already_activated"
    NO_ACTIVE_SESSION = "no_active_session"
    SESSION_BUSY = "session_busy"
    START_FAILED = "start_failed"
    PLAYER_TIMEOUT = "player_timeout"
    NO_PLAYABLE_CONTENT = "no_playable_content"
    NOT_FOUND = "not_found"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES[self]


_CATEGORIES = {
    ErrorKind.INVALID_CONFIG: ErrorCategory.INPUT,
    ErrorKind.INVALID_PLAYLIST: ErrorCategory.INPUT,
    ErrorKind.INVALID_SCHEDULE: ErrorCategory.INPUT,
    ErrorKind.NOT_LIVE: ErrorCategory.STATE,
    ErrorKind.ALREADY_ACTIVATED: ErrorCategory.STATE,
    ErrorKind.NO_ACTIVE_SESSION: ErrorCategory.STATE,
    ErrorKind.SESSION_BUSY: ErrorCategory.STATE,
    ErrorKind.START_FAILED: ErrorCategory.EXTERNAL,
    ErrorKind.PLAYER_TIMEOUT: ErrorCategory.EXTERNAL,
    ErrorKind.NO_PLAYABLE_CONTENT: ErrorCategory.EXTERNAL,
    ErrorKind.NOT_FOUND: ErrorCategory.LOOKUP,
}


class EngineError(Exception):
    """Base class for all engine rejections."""

    kind: ErrorKind = ErrorKind.INVALID_CONFIG

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    @property
    def category(self) -> ErrorCategory:
        return self.kind.category

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {"error": self.kind.value, "message": self.message}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.kind.value}: {self.message}>"


class InvalidConfigError(EngineError):
    kind = ErrorKind.INVALID_CONFIG


class InvalidPlaylistError(EngineError):
    kind = ErrorKind.INVALID_PLAYLIST


class InvalidScheduleError(EngineError):
    kind = ErrorKind.INVALID_SCHEDULE


class NotLiveError(EngineError):
    kind = ErrorKind.NOT_LIVE


class AlreadyActivatedError(EngineError):
    kind = ErrorKind.ALREADY_ACTIVATED


class NoActiveSessionError(EngineError):
    kind = ErrorKind.NO_ACTIVE_SESSION


class SessionBusyError(EngineError):
    """Raised when a start finds the single session slot occupied."""

    kind = ErrorKind.SESSION_BUSY


class StartFailedError(EngineError):
    kind = ErrorKind.START_FAILED


class PlayerTimeoutError(EngineError):
    kind = ErrorKind.PLAYER_TIMEOUT


class NoPlayableContentError(EngineError):
    kind = ErrorKind.NO_PLAYABLE_CONTENT


class NotFoundError(EngineError):
    kind = ErrorKind.NOT_FOUND

"""
Playback

Playlist cursor, video library and player collaborators, and the session
controller that drives them.
"""

from castengine.playback.cursor import LoopKind, LoopMode, PlaylistCursor
from castengine.playback.library import InMemoryVideoLibrary, Video, VideoLibrary
from castengine.playback.player import (
    FFmpegPlayer,
    NullPlayer,
    Player,
    PlayerError,
    PlayerListener,
    create_player,
)
from castengine.playback.session import (
    BroadcastSession,
    SessionController,
    SessionState,
    StatusSnapshot,
    StreamConfig,
)

__all__ = [
    "LoopKind",
    "LoopMode",
    "PlaylistCursor",
    "InMemoryVideoLibrary",
    "Video",
    "VideoLibrary",
    "FFmpegPlayer",
    "NullPlayer",
    "Player",
    "PlayerError",
    "PlayerListener",
    "create_player",
    "BroadcastSession",
    "SessionController",
    "SessionState",
    "StatusSnapshot",
    "StreamConfig",
]

"""
CastEngine - Broadcast scheduling and playback session engine

Owns the lifecycle of a single live broadcast:
- Playlist playback with loop modes and repeat counts
- A serialized session state machine around an external player
- Persisted scheduled broadcasts activated on a fixed tick
"""

__version__ = "0.1.0"
__license__ = "MIT"

from castengine.config import get_config, load_config

__all__ = [
    "__version__",
    "get_config",
    "load_config",
]

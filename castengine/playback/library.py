"""
Video library collaborator.

The engine only holds video ids. Ids are resolved to a display name and a
source locator at playback time, so a video removed from the library
degrades into a skipped item instead of invalidating a playlist.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from castengine.errors import NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Video:
    """A playable video reference."""

    id: str
    display_name: str
    source_locator: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire shape used by the control panel."""
        return {
            "id": self.id,
            "name": self.display_name,
            "url": self.source_locator,
        }


class VideoLibrary(ABC):
    """Resolves video ids at playback time."""

    @abstractmethod
    def resolve(self, video_id: str) -> Video:
        """
        Resolve a video id.

        Raises:
            NotFoundError: If the id is unknown
        """

    @abstractmethod
    def list_videos(self) -> list[Video]:
        """List all known videos."""


class InMemoryVideoLibrary(VideoLibrary):
    """Dictionary-backed video library, seeded from configuration."""

    def __init__(self, videos: Optional[Iterable[Video]] = None):
        self._videos: dict[str, Video] = {}
        for video in videos or []:
            self.register(video)

    @classmethod
    def from_config(cls, entries: Iterable[Any]) -> "InMemoryVideoLibrary":
        """Build a library from ``library.videos`` config entries."""
        return cls(
            Video(id=e.id, display_name=e.name, source_locator=e.url)
            for e in entries
        )

    def register(self, video: Video) -> None:
        self._videos[video.id] = video
        logger.debug(f"Video registered: {video.id} ({video.display_name})")

    def remove(self, video_id: str) -> bool:
        """Remove a video. Returns False if it was not registered."""
        removed = self._videos.pop(video_id, None)
        if removed:
            logger.info(f"Video removed from library: {video_id}")
        return removed is not None

    def resolve(self, video_id: str) -> Video:
        video = self._videos.get(video_id)
        if video is None:
            raise NotFoundError(f"Video {video_id!r} not found in library")
        return video

    def list_videos(self) -> list[Video]:
        return list(self._videos.values())

    def __contains__(self, video_id: object) -> bool:
        return video_id in self._videos

    def __len__(self) -> int:
        return len(self._videos)

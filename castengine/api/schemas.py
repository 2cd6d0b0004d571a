"""Pydantic schemas for API requests and responses

Field names follow the control panel's JSON types (camelCase). Request
fields are lenient on purpose: missing or empty values reach the engine,
which rejects them with a typed error instead of a generic 422.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from castengine.errors import InvalidConfigError, InvalidScheduleError
from castengine.playback.cursor import LoopMode
from castengine.playback.library import Video
from castengine.playback.session import StatusSnapshot, StreamConfig
from castengine.scheduling.store import ScheduledBroadcast, ScheduleRequest


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Stream Schemas


class StreamStartRequest(CamelModel):
    playlist: list[str] = []
    loop_mode: str = "none"
    repeats: Optional[int] = None
    stream_key: str = ""
    title: str = ""


class StreamStartResponse(CamelModel):
    ok: bool = True
    stream_id: str


class StreamStopRequest(CamelModel):
    stream_id: str


class StreamUpdateRequest(CamelModel):
    title: str


class StreamRestartRequest(CamelModel):
    playlist: list[str] = []
    loop_mode: Optional[str] = None
    repeats: Optional[int] = None


class OkResponse(CamelModel):
    ok: bool = True


class StreamStatusResponse(CamelModel):
    streaming: bool
    stream_id: Optional[str] = None
    current_video: Optional[str] = None
    uptime: Optional[str] = None
    title: Optional[str] = None


# Schedule Schemas


class ScheduleCreateRequest(CamelModel):
    start_at: str = ""
    end_at: Optional[str] = None
    playlist: list[str] = []
    loop_mode: str = "none"
    repeats: Optional[int] = None
    stream_key: str = ""
    title: str = ""


class ScheduleResponse(CamelModel):
    id: str
    start_at: str
    end_at: Optional[str] = None
    playlist: list[str]
    loop_mode: str
    repeats: int
    title: str
    stream_key: str
    started: bool
    stopped: bool
    created_at: int


# Video Schemas


class VideoResponse(BaseModel):
    id: str
    name: str
    url: str


def format_uptime(seconds: Optional[float]) -> Optional[str]:
    """Render an uptime as ``"{h}h {m}m {s}s"``."""
    if seconds is None:
        return None
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}h {minutes}m {secs}s"


def to_stream_config(request: StreamStartRequest) -> StreamConfig:
    """
    Raises:
        InvalidConfigError: If the loop mode or repeat count is invalid
    """
    return StreamConfig(
        playlist=list(request.playlist),
        loop_mode=LoopMode.parse(request.loop_mode, request.repeats),
        credential_token=request.stream_key,
        title=request.title,
    )


def to_schedule_request(request: ScheduleCreateRequest) -> ScheduleRequest:
    """
    Raises:
        InvalidScheduleError: If the loop mode or repeat count is invalid
    """
    try:
        loop_mode = LoopMode.parse(request.loop_mode, request.repeats)
    except InvalidConfigError as e:
        raise InvalidScheduleError(e.message, cause=e) from e

    return ScheduleRequest(
        start_at=request.start_at,
        end_at=request.end_at or None,
        playlist=list(request.playlist),
        loop_mode=loop_mode,
        credential_token=request.stream_key,
        title=request.title,
    )


def status_to_response(
    snapshot: StatusSnapshot, now: Optional[datetime] = None
) -> StreamStatusResponse:
    return StreamStatusResponse(
        streaming=snapshot.streaming,
        stream_id=snapshot.session_id,
        current_video=snapshot.current_video,
        uptime=format_uptime(snapshot.uptime_seconds(now)),
        title=snapshot.title,
    )


def schedule_to_response(schedule: ScheduledBroadcast) -> ScheduleResponse:
    return ScheduleResponse(
        id=schedule.schedule_id,
        start_at=schedule.start_at.isoformat(),
        end_at=schedule.end_at.isoformat() if schedule.end_at else None,
        playlist=list(schedule.playlist),
        loop_mode=schedule.loop_mode.kind.value,
        repeats=schedule.repeat_count,
        title=schedule.title,
        stream_key=schedule.credential_token,
        started=schedule.activated,
        stopped=schedule.completed,
        created_at=int(schedule.created_at.timestamp() * 1000),
    )


def video_to_response(video: Video) -> VideoResponse:
    return VideoResponse(**video.to_dict())

"""Stream API endpoints - start, stop, retitle, restart and status"""

import logging

from fastapi import APIRouter, Depends

from castengine.api.dependencies import get_engine
from castengine.api.schemas import (
    OkResponse,
    StreamRestartRequest,
    StreamStartRequest,
    StreamStartResponse,
    StreamStatusResponse,
    StreamStopRequest,
    StreamUpdateRequest,
    status_to_response,
    to_stream_config,
)
from castengine.engine import BroadcastEngine
from castengine.playback.cursor import LoopMode

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Stream"])


@router.get("/status", response_model=StreamStatusResponse, response_model_exclude_none=True)
async def get_status(engine: BroadcastEngine = Depends(get_engine)) -> StreamStatusResponse:
    """Current broadcast status. Never waits on a running transition."""
    return status_to_response(engine.get_status(), now=engine.clock())


@router.post("/stream/start", response_model=StreamStartResponse)
async def start_stream(
    request: StreamStartRequest,
    engine: BroadcastEngine = Depends(get_engine),
) -> StreamStartResponse:
    """Start a broadcast session.

    Returns once the player confirmed the first item is on air.
    """
    session = await engine.start_stream(to_stream_config(request))
    return StreamStartResponse(stream_id=session.session_id)


@router.post("/stream/stop", response_model=OkResponse)
async def stop_stream(
    request: StreamStopRequest,
    engine: BroadcastEngine = Depends(get_engine),
) -> OkResponse:
    """Stop a session. Stopping an ended or unknown session succeeds."""
    await engine.stop_stream(request.stream_id)
    return OkResponse()


@router.patch("/stream/{stream_id}", response_model=OkResponse)
async def update_stream(
    stream_id: str,
    request: StreamUpdateRequest,
    engine: BroadcastEngine = Depends(get_engine),
) -> OkResponse:
    await engine.update_stream_metadata(stream_id, request.title)
    return OkResponse()


@router.post("/stream/{stream_id}/restart", response_model=OkResponse)
async def restart_stream(
    stream_id: str,
    request: StreamRestartRequest,
    engine: BroadcastEngine = Depends(get_engine),
) -> OkResponse:
    """Swap a live session onto a new playlist, keeping the loop mode unless given."""
    loop_mode = None
    if request.loop_mode is not None:
        loop_mode = LoopMode.parse(request.loop_mode, request.repeats)
    await engine.restart_stream(stream_id, list(request.playlist), loop_mode)
    return OkResponse()

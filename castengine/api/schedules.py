"""Schedule API endpoints"""

import logging

from fastapi import APIRouter, Depends, status

from castengine.api.dependencies import get_engine
from castengine.api.schemas import (
    OkResponse,
    ScheduleCreateRequest,
    ScheduleResponse,
    schedule_to_response,
    to_schedule_request,
)
from castengine.engine import BroadcastEngine

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Schedules"])


@router.get("/schedules", response_model=list[ScheduleResponse])
@router.get("/schedule", response_model=list[ScheduleResponse], include_in_schema=False)
async def list_schedules(
    engine: BroadcastEngine = Depends(get_engine),
) -> list[ScheduleResponse]:
    """All schedules, ascending by start time."""
    return [schedule_to_response(s) for s in await engine.list_schedules()]


@router.get("/schedule/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule(
    schedule_id: str,
    engine: BroadcastEngine = Depends(get_engine),
) -> ScheduleResponse:
    return schedule_to_response(await engine.get_schedule(schedule_id))


@router.post("/schedule", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
async def create_schedule(
    request: ScheduleCreateRequest,
    engine: BroadcastEngine = Depends(get_engine),
) -> ScheduleResponse:
    """Create a scheduled broadcast.

    Raises:
        InvalidScheduleError: If times, playlist, loop mode or stream key are invalid
    """
    schedule = await engine.create_schedule(to_schedule_request(request))
    return schedule_to_response(schedule)


@router.post("/schedule/{schedule_id}/cancel", response_model=OkResponse)
async def cancel_schedule(
    schedule_id: str,
    engine: BroadcastEngine = Depends(get_engine),
) -> OkResponse:
    """Cancel a schedule that has not gone on air yet."""
    await engine.cancel_schedule(schedule_id)
    return OkResponse()

"""Video library API endpoints"""

from fastapi import APIRouter, Depends

from castengine.api.dependencies import get_engine
from castengine.api.schemas import VideoResponse, video_to_response
from castengine.engine import BroadcastEngine

router = APIRouter(tags=["Videos"])


@router.get("/videos", response_model=list[VideoResponse])
async def list_videos(engine: BroadcastEngine = Depends(get_engine)) -> list[VideoResponse]:
    return [video_to_response(v) for v in engine.list_videos()]

"""API routes for CastEngine"""

from fastapi import APIRouter

from .dependencies import engine_error_handler, get_engine
from .schedules import router as schedules_router
from .stream import router as stream_router
from .videos import router as videos_router


def build_api_router(prefix: str = "/api") -> APIRouter:
    """Create the API router mounted under ``prefix``."""
    api_router = APIRouter(prefix=prefix)
    api_router.include_router(stream_router)
    api_router.include_router(schedules_router)
    api_router.include_router(videos_router)
    return api_router


__all__ = [
    "build_api_router",
    "engine_error_handler",
    "get_engine",
]

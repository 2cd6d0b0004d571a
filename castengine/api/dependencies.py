"""Shared API plumbing: engine lookup and error mapping"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from castengine.engine import BroadcastEngine
from castengine.errors import EngineError, ErrorCategory, ErrorKind

logger = logging.getLogger(__name__)

STATUS_BY_CATEGORY = {
    ErrorCategory.INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.STATE: status.HTTP_409_CONFLICT,
    ErrorCategory.EXTERNAL: status.HTTP_502_BAD_GATEWAY,
    ErrorCategory.LOOKUP: status.HTTP_404_NOT_FOUND,
}


def get_engine(request: Request) -> BroadcastEngine:
    """FastAPI dependency returning the engine wired by the lifespan."""
    return request.app.state.engine


def status_for_error(error: EngineError) -> int:
    if error.kind == ErrorKind.PLAYER_TIMEOUT:
        return status.HTTP_504_GATEWAY_TIMEOUT
    return STATUS_BY_CATEGORY[error.category]


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    """Render an EngineError as ``{"error": kind, "message": text}``."""
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.kind.value}): {exc}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())

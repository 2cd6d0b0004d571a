"""
CastEngine Main Application

FastAPI application exposing the broadcast engine to the control panel.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from castengine import __version__
from castengine.api import build_api_router, engine_error_handler
from castengine.config import CastEngineConfig, get_config, load_config
from castengine.database import close_db, init_db
from castengine.engine import BroadcastEngine
from castengine.errors import EngineError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Startup builds the engine from config (unless one was injected) and
    starts the schedule dispatcher. Shutdown stops dispatching, ends any
    running session and closes the database.
    """
    config: CastEngineConfig = app.state.config
    logger.info(f"Starting CastEngine v{__version__}")

    owns_database = False
    if getattr(app.state, "engine", None) is None:
        session_factory = await init_db(config.database.url, config.database.echo)
        owns_database = True
        app.state.engine = BroadcastEngine.from_config(config, session_factory)

    engine: BroadcastEngine = app.state.engine
    await engine.start()
    logger.info("CastEngine started successfully")

    yield

    logger.info("Shutting down CastEngine")
    try:
        await engine.shutdown()
    except Exception as e:
        logger.warning(f"Error stopping broadcast engine: {e}")

    if owns_database:
        await close_db()

    logger.info("CastEngine shutdown complete")


def create_app(
    config: Optional[CastEngineConfig] = None,
    engine: Optional[BroadcastEngine] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Configuration, defaults to the loaded config.yaml
        engine: Pre-built engine, used instead of building one from config

    Returns:
        Configured FastAPI application instance.
    """
    config = config or get_config()

    app = FastAPI(
        title="CastEngine",
        description="Broadcast scheduling and playback session engine",
        version=__version__,
        lifespan=lifespan,
        docs_url=f"{config.server.api_prefix}/docs",
        redoc_url=f"{config.server.api_prefix}/redoc",
    )
    app.state.config = config
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(EngineError, engine_error_handler)
    app.include_router(build_api_router(config.server.api_prefix))

    return app


def main() -> None:
    """Run the server with uvicorn."""
    import uvicorn

    from castengine.utils.logging_setup import setup_logging_from_config

    config = load_config()
    setup_logging_from_config(config.logging)

    logger.info(f"Starting CastEngine v{__version__}")

    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    main()

"""
CastEngine Test Configuration

Shared fixtures and configuration for all tests.
"""

import os
from typing import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

import castengine.config as config_module
from castengine.config import CastEngineConfig, PlayerConfig
from castengine.database import Base, create_db_engine, create_session_factory, create_tables
from castengine.engine import BroadcastEngine
from castengine.main import create_app
from castengine.playback.library import InMemoryVideoLibrary
from castengine.playback.session import SessionController
from castengine.scheduling.store import ScheduleStore
from tests.fixtures import FakeClock, FakePlayer, VideoFactory


# ============ Database Fixtures ============


@pytest.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with all tables created."""
    engine = create_db_engine("sqlite:///:memory:")
    await create_tables(engine)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker:
    return create_session_factory(db_engine)


# ============ Collaborator Fixtures ============


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def library() -> InMemoryVideoLibrary:
    """Library holding v1, v2 and v3 (media/v1.mp4, ...)."""
    return InMemoryVideoLibrary(VideoFactory.create_batch("v1", "v2", "v3"))


@pytest.fixture
def player() -> FakePlayer:
    return FakePlayer()


# ============ Engine Fixtures ============


@pytest.fixture
def controller(player: FakePlayer, library: InMemoryVideoLibrary, clock: FakeClock) -> SessionController:
    return SessionController(
        player,
        library,
        start_timeout=1.0,
        switch_timeout=1.0,
        stop_timeout=1.0,
        clock=clock,
    )


@pytest.fixture
def store(session_factory: async_sessionmaker, clock: FakeClock) -> ScheduleStore:
    return ScheduleStore(session_factory, clock=clock)


@pytest.fixture
def engine(
    controller: SessionController,
    store: ScheduleStore,
    library: InMemoryVideoLibrary,
    clock: FakeClock,
) -> BroadcastEngine:
    """Fully wired engine; the dispatcher is not started.

    Tests drive ticks by hand. A started loop ticks once, then sleeps.
    """
    return BroadcastEngine(controller, store, library, tick_interval=3600.0, clock=clock)


# ============ FastAPI Test Client Fixtures ============


@pytest.fixture
def app_config() -> CastEngineConfig:
    return CastEngineConfig(
        player=PlayerConfig(backend="null"),
    )


@pytest.fixture
def app(app_config: CastEngineConfig, engine: BroadcastEngine) -> FastAPI:
    """Test application wired to the fixture engine."""
    return create_app(app_config, engine=engine)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async test client calling the app in-process (lifespan not run)."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


# ============ Environment Fixtures ============


@pytest.fixture(autouse=True)
def clean_environment():
    """Clean CastEngine environment variables and cached config for each test."""
    original_env = os.environ.copy()

    for key in list(os.environ.keys()):
        if key.startswith("CASTENGINE_"):
            del os.environ[key]
    config_module._config = None

    yield

    os.environ.clear()
    os.environ.update(original_env)
    config_module._config = None


# ============ Markers ============


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")

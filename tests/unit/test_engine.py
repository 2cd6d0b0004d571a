"""
Unit tests for the broadcast engine facade, including end-to-end scenarios.
"""

import pytest

from castengine.config import CastEngineConfig, LibraryConfig, LibraryVideoConfig, PlayerConfig
from castengine.engine import BroadcastEngine
from castengine.errors import AlreadyActivatedError, NoPlayableContentError
from castengine.playback.cursor import LoopMode
from castengine.playback.player import NullPlayer
from castengine.playback.session import SessionState
from tests.fixtures import ScheduleRequestFactory, StreamConfigFactory
from tests.fixtures.factories import source_for


@pytest.mark.unit
class TestScenarios:
    """Broadcast scenarios driven through the facade."""

    @pytest.mark.asyncio
    async def test_scheduled_window_with_forever_loop(self, engine: BroadcastEngine, clock):
        schedule = await engine.create_schedule(
            ScheduleRequestFactory.create(
                clock.at(5),
                end_at=clock.at(10),
                playlist=["v1"],
                loop_mode=LoopMode.playlist(),
                credential_token="k",
            )
        )

        clock.advance(5)
        await engine.dispatcher.tick()
        assert engine.get_status().state == SessionState.LIVE

        clock.advance(5)
        await engine.dispatcher.tick()

        assert engine.get_status().streaming is False
        assert (await engine.get_schedule(schedule.schedule_id)).completed is True

    @pytest.mark.asyncio
    async def test_cancel_activated_schedule_rejected(self, engine: BroadcastEngine, clock):
        schedule = await engine.create_schedule(ScheduleRequestFactory.create(clock.at(1)))
        clock.advance(1)
        await engine.dispatcher.tick()
        before = await engine.get_schedule(schedule.schedule_id)

        with pytest.raises(AlreadyActivatedError):
            await engine.cancel_schedule(schedule.schedule_id)

        assert await engine.get_schedule(schedule.schedule_id) == before
        assert engine.get_status().streaming is True

    @pytest.mark.asyncio
    async def test_deleted_video_is_skipped_mid_broadcast(self, engine: BroadcastEngine, player, library):
        session = await engine.start_stream(
            StreamConfigFactory.create(playlist=["v1", "v2"], loop_mode=LoopMode.playlist())
        )
        library.remove("v1")

        await player.finish_item()
        assert session.current_video.id == "v2"

        await player.finish_item()
        assert session.current_video.id == "v2"
        assert session.state == SessionState.LIVE
        assert session.skipped_items == 1

        library.remove("v2")
        await player.finish_item()

        assert session.state == SessionState.FAILED
        assert isinstance(session.failure, NoPlayableContentError)

    @pytest.mark.asyncio
    async def test_stop_twice_is_ok(self, engine: BroadcastEngine):
        session = await engine.start_stream(StreamConfigFactory.create())

        assert await engine.stop_stream(session.session_id) is True
        snapshot = engine.get_status()
        assert await engine.stop_stream(session.session_id) is False

        assert engine.get_status() == snapshot

    @pytest.mark.asyncio
    async def test_natural_completion_completes_schedule(self, engine: BroadcastEngine, player, clock):
        schedule = await engine.create_schedule(
            ScheduleRequestFactory.create(clock.at(1), playlist=["v1"], loop_mode=LoopMode.once())
        )
        clock.advance(1)
        await engine.dispatcher.tick()
        assert (await engine.get_schedule(schedule.schedule_id)).completed is False

        await player.finish_item()

        assert (await engine.get_schedule(schedule.schedule_id)).completed is True
        assert engine.controller.last_session.end_reason == "completed"

    @pytest.mark.asyncio
    async def test_manual_stop_completes_schedule(self, engine: BroadcastEngine, clock):
        schedule = await engine.create_schedule(ScheduleRequestFactory.create(clock.at(1)))
        clock.advance(1)
        await engine.dispatcher.tick()

        await engine.stop_stream(engine.get_status().session_id)

        assert (await engine.get_schedule(schedule.schedule_id)).completed is True


@pytest.mark.unit
class TestFacade:
    """Tests for facade wiring and passthroughs."""

    @pytest.mark.asyncio
    async def test_update_and_restart(self, engine: BroadcastEngine, player):
        session = await engine.start_stream(StreamConfigFactory.create(playlist=["v1"]))

        await engine.update_stream_metadata(session.session_id, "Renamed")
        await engine.restart_stream(session.session_id, ["v3"])

        assert engine.get_status().title == "Renamed"
        assert player.current_source == source_for("v3")

    def test_list_videos(self, engine: BroadcastEngine):
        assert [v.id for v in engine.list_videos()] == ["v1", "v2", "v3"]

    @pytest.mark.asyncio
    async def test_list_and_cancel_schedules(self, engine: BroadcastEngine, clock):
        later = await engine.create_schedule(ScheduleRequestFactory.create(clock.at(120)))
        sooner = await engine.create_schedule(ScheduleRequestFactory.create(clock.at(60)))

        assert [s.schedule_id for s in await engine.list_schedules()] == [
            sooner.schedule_id,
            later.schedule_id,
        ]

        await engine.cancel_schedule(sooner.schedule_id)
        assert [s.schedule_id for s in await engine.list_schedules()] == [later.schedule_id]

    def test_get_stats(self, engine: BroadcastEngine):
        stats = engine.get_stats()

        assert stats["session"]["state"] == "idle"
        assert stats["dispatcher"]["running"] is False

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self, engine: BroadcastEngine):
        session = await engine.start_stream(StreamConfigFactory.create())
        await engine.start()
        assert engine.dispatcher.running is True

        await engine.shutdown()

        assert engine.dispatcher.running is False
        assert session.state == SessionState.STOPPED

    def test_from_config(self, session_factory):
        config = CastEngineConfig(
            player=PlayerConfig(backend="null"),
            library=LibraryConfig(
                videos=[LibraryVideoConfig(id="intro", name="Intro", url="media/intro.mp4")]
            ),
        )

        engine = BroadcastEngine.from_config(config, session_factory)

        assert isinstance(engine.controller.player, NullPlayer)
        assert [v.display_name for v in engine.list_videos()] == ["Intro"]
        assert engine.dispatcher.get_stats()["interval_seconds"] == 1.0

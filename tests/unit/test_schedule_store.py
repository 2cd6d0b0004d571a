"""
Unit tests for the schedule store.
"""

from datetime import datetime, timedelta, timezone

import pytest

from castengine.errors import AlreadyActivatedError, InvalidScheduleError, NotFoundError
from castengine.playback.cursor import LoopKind, LoopMode
from castengine.scheduling.store import ScheduleRequest, ScheduleStore, parse_timestamp
from tests.fixtures import ScheduleRequestFactory


@pytest.mark.unit
class TestParseTimestamp:
    """Tests for parse_timestamp()."""

    def test_zulu_suffix(self):
        parsed = parse_timestamp("2025-03-01T10:00:00Z", "startAt")

        assert parsed == datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self):
        parsed = parse_timestamp("2025-03-01T12:00:00+02:00", "startAt")

        assert parsed == datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_naive_taken_as_utc(self):
        parsed = parse_timestamp(datetime(2025, 3, 1, 10, 0), "startAt")

        assert parsed.tzinfo is not None
        assert parsed.hour == 10

    @pytest.mark.parametrize("value", ["", "tomorrow", "2025-13-45T99:00:00"])
    def test_invalid(self, value):
        with pytest.raises(InvalidScheduleError):
            parse_timestamp(value, "startAt")


@pytest.mark.unit
class TestCreate:
    """Tests for ScheduleStore.create()."""

    @pytest.mark.asyncio
    async def test_create(self, store: ScheduleStore, clock):
        request = ScheduleRequestFactory.create(
            start_at=clock.at(60),
            end_at=clock.at(120),
            playlist=["v1", "v2"],
            loop_mode=LoopMode.count(2),
            title="Evening",
        )

        schedule = await store.create(request)

        assert schedule.schedule_id
        assert schedule.start_at == clock.at(60)
        assert schedule.end_at == clock.at(120)
        assert schedule.playlist == ("v1", "v2")
        assert schedule.loop_mode == LoopMode.count(2)
        assert schedule.repeat_count == 2
        assert schedule.credential_token == "sched-key"
        assert schedule.title == "Evening"
        assert schedule.activated is False
        assert schedule.completed is False
        assert schedule.created_at == clock.now
        assert schedule.updated_at == clock.now

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, store: ScheduleStore, clock):
        ids = set()
        for _ in range(5):
            ids.add((await store.create(ScheduleRequestFactory.create(clock.at(60)))).schedule_id)

        assert len(ids) == 5

    @pytest.mark.asyncio
    async def test_end_must_follow_start(self, store: ScheduleStore, clock):
        with pytest.raises(InvalidScheduleError):
            await store.create(ScheduleRequestFactory.create(clock.at(60), end_at=clock.at(60)))
        with pytest.raises(InvalidScheduleError):
            await store.create(ScheduleRequestFactory.create(clock.at(60), end_at=clock.at(30)))

        assert await store.list() == []

    @pytest.mark.asyncio
    async def test_unparseable_start(self, store: ScheduleStore):
        request = ScheduleRequest(
            start_at="not a time",
            playlist=["v1"],
            loop_mode=LoopMode.once(),
            credential_token="k",
        )

        with pytest.raises(InvalidScheduleError):
            await store.create(request)

    @pytest.mark.asyncio
    async def test_empty_playlist(self, store: ScheduleStore, clock):
        with pytest.raises(InvalidScheduleError):
            await store.create(ScheduleRequestFactory.create(clock.at(60), playlist=[]))

    @pytest.mark.asyncio
    async def test_empty_stream_key(self, store: ScheduleStore, clock):
        with pytest.raises(InvalidScheduleError):
            await store.create(ScheduleRequestFactory.create(clock.at(60), credential_token=" "))

    @pytest.mark.asyncio
    async def test_start_in_past_is_accepted_and_missed(self, store: ScheduleStore, clock):
        schedule = await store.create(ScheduleRequestFactory.create(clock.at(-60)))

        assert schedule.is_missed(clock.now)
        assert schedule.is_due(clock.now)


@pytest.mark.unit
class TestQueries:
    """Tests for list/get."""

    @pytest.mark.asyncio
    async def test_list_ascending_by_start(self, store: ScheduleStore, clock):
        for offset in (300, 60, 180):
            await store.create(ScheduleRequestFactory.create(clock.at(offset), title=f"t{offset}"))

        titles = [s.title for s in await store.list()]

        assert titles == ["t60", "t180", "t300"]

    @pytest.mark.asyncio
    async def test_list_pending_skips_activated(self, store: ScheduleStore, clock):
        first = await store.create(ScheduleRequestFactory.create(clock.at(60)))
        second = await store.create(ScheduleRequestFactory.create(clock.at(120)))
        await store.mark_activated(first.schedule_id)

        pending = await store.list_pending()

        assert [s.schedule_id for s in pending] == [second.schedule_id]

    @pytest.mark.asyncio
    async def test_get(self, store: ScheduleStore, clock):
        created = await store.create(ScheduleRequestFactory.create(clock.at(60)))

        assert await store.get(created.schedule_id) == created

    @pytest.mark.asyncio
    async def test_get_unknown(self, store: ScheduleStore):
        with pytest.raises(NotFoundError):
            await store.get("missing")

    @pytest.mark.asyncio
    async def test_records_survive_new_store(self, store: ScheduleStore, session_factory, clock):
        created = await store.create(ScheduleRequestFactory.create(clock.at(60)))

        other = ScheduleStore(session_factory, clock=clock)

        assert (await other.get(created.schedule_id)).loop_mode.kind == LoopKind.PLAYLIST


@pytest.mark.unit
class TestLifecycle:
    """Tests for cancel and the internal activation transitions."""

    @pytest.mark.asyncio
    async def test_cancel_pending_removes(self, store: ScheduleStore, clock):
        created = await store.create(ScheduleRequestFactory.create(clock.at(60)))

        await store.cancel(created.schedule_id)

        assert await store.list() == []

    @pytest.mark.asyncio
    async def test_cancel_activated_rejected(self, store: ScheduleStore, clock):
        created = await store.create(ScheduleRequestFactory.create(clock.at(60)))
        await store.mark_activated(created.schedule_id)
        before = await store.get(created.schedule_id)

        with pytest.raises(AlreadyActivatedError):
            await store.cancel(created.schedule_id)

        assert await store.get(created.schedule_id) == before

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, store: ScheduleStore):
        with pytest.raises(NotFoundError):
            await store.cancel("missing")

    @pytest.mark.asyncio
    async def test_mark_activated_once(self, store: ScheduleStore, clock):
        created = await store.create(ScheduleRequestFactory.create(clock.at(60)))

        assert await store.mark_activated(created.schedule_id) is True
        assert await store.mark_activated(created.schedule_id) is False
        assert (await store.get(created.schedule_id)).activated is True

    @pytest.mark.asyncio
    async def test_transitions_unknown(self, store: ScheduleStore):
        with pytest.raises(NotFoundError):
            await store.mark_activated("missing")
        with pytest.raises(NotFoundError):
            await store.mark_completed("missing")

    @pytest.mark.asyncio
    async def test_release_activation(self, store: ScheduleStore, clock):
        created = await store.create(ScheduleRequestFactory.create(clock.at(60)))
        await store.mark_activated(created.schedule_id)

        await store.release_activation(created.schedule_id)

        assert (await store.get(created.schedule_id)).is_pending

    @pytest.mark.asyncio
    async def test_release_ignored_after_completion(self, store: ScheduleStore, clock):
        created = await store.create(ScheduleRequestFactory.create(clock.at(60)))
        await store.mark_completed(created.schedule_id)

        await store.release_activation(created.schedule_id)

        assert (await store.get(created.schedule_id)).activated is True

    @pytest.mark.asyncio
    async def test_mark_completed(self, store: ScheduleStore, clock):
        created = await store.create(ScheduleRequestFactory.create(clock.at(60)))
        await store.mark_activated(created.schedule_id)

        assert await store.mark_completed(created.schedule_id) is True
        assert await store.mark_completed(created.schedule_id) is False

        schedule = await store.get(created.schedule_id)
        assert schedule.activated is True
        assert schedule.completed is True

    @pytest.mark.asyncio
    async def test_transitions_touch_updated_at(self, store: ScheduleStore, clock):
        created = await store.create(ScheduleRequestFactory.create(clock.at(60)))
        activated_at = clock.advance(30)
        await store.mark_activated(created.schedule_id)

        assert (await store.get(created.schedule_id)).updated_at == activated_at

        clock.advance(30)
        await store.mark_activated(created.schedule_id)

        schedule = await store.get(created.schedule_id)
        assert schedule.updated_at == activated_at
        assert schedule.created_at == created.created_at

    @pytest.mark.asyncio
    async def test_is_missed_is_derived(self, store: ScheduleStore, clock):
        created = await store.create(ScheduleRequestFactory.create(clock.at(60)))

        assert not created.is_missed(clock.now)
        assert created.is_missed(clock.at(61))

        await store.mark_activated(created.schedule_id)
        assert not (await store.get(created.schedule_id)).is_missed(clock.at(61))

    @pytest.mark.asyncio
    async def test_to_dict(self, store: ScheduleStore, clock):
        created = await store.create(
            ScheduleRequestFactory.create(clock.at(60), loop_mode=LoopMode.once())
        )

        data = created.to_dict()

        assert data["loop_mode"] == "none"
        assert data["repeat_count"] == 1
        assert data["end_at"] is None
        assert data["start_at"] == (clock.now + timedelta(seconds=60)).isoformat()
        assert data["updated_at"] == clock.now.isoformat()

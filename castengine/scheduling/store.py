"""
Schedule store.

Owns the ScheduledBroadcast records. Validity and time-ordering rules are
enforced when a record is written, never when it is read. Records are
handed out as frozen dataclasses; the ORM rows never leave this module.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence, Union
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from castengine.database.models import ScheduledBroadcastRecord
from castengine.errors import (
    AlreadyActivatedError,
    InvalidScheduleError,
    NotFoundError,
)
from castengine.playback.cursor import LoopKind, LoopMode

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Union[str, datetime], field_name: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are taken as UTC. A trailing ``Z`` is accepted.

    Raises:
        InvalidScheduleError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        return _as_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise InvalidScheduleError(f"{field_name} is required")

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return _as_utc(datetime.fromisoformat(text))
    except ValueError as e:
        raise InvalidScheduleError(
            f"{field_name} is not a valid timestamp: {value!r}", cause=e
        ) from e


@dataclass(frozen=True)
class ScheduleRequest:
    """Input for ScheduleStore.create()."""

    start_at: Union[str, datetime]
    playlist: Sequence[str]
    loop_mode: LoopMode
    credential_token: str
    title: str = ""
    end_at: Optional[Union[str, datetime]] = None


@dataclass(frozen=True)
class ScheduledBroadcast:
    """A future (or past) broadcast intent."""

    schedule_id: str
    start_at: datetime
    end_at: Optional[datetime]
    playlist: tuple[str, ...]
    loop_mode: LoopMode
    credential_token: str
    title: str
    activated: bool
    completed: bool
    created_at: datetime
    updated_at: datetime

    @property
    def repeat_count(self) -> int:
        return self.loop_mode.repeats

    @property
    def is_pending(self) -> bool:
        return not self.activated

    def is_missed(self, now: Optional[datetime] = None) -> bool:
        """Pending with a start time already in the past."""
        return not self.activated and self.start_at < (now or utcnow())

    def is_due(self, now: datetime) -> bool:
        return not self.activated and self.start_at <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "schedule_id": self.schedule_id,
            "start_at": self.start_at.isoformat(),
            "end_at": self.end_at.isoformat() if self.end_at else None,
            "playlist": list(self.playlist),
            "loop_mode": self.loop_mode.kind.value,
            "repeat_count": self.repeat_count,
            "title": self.title,
            "activated": self.activated,
            "completed": self.completed,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


def _to_domain(row: ScheduledBroadcastRecord) -> ScheduledBroadcast:
    return ScheduledBroadcast(
        schedule_id=row.id,
        start_at=_as_utc(row.start_at),
        end_at=_as_utc(row.end_at) if row.end_at else None,
        playlist=tuple(row.playlist or ()),
        loop_mode=LoopMode(LoopKind(row.loop_mode), row.repeat_count),
        credential_token=row.credential_token,
        title=row.title,
        activated=row.activated,
        completed=row.completed,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


class ScheduleStore:
    """
    CRUD over scheduled broadcasts.

    ``list()`` and ``list_pending()`` return records in ascending start
    order; the dispatcher relies on that to stop scanning at the first
    record that is not yet due.

    ``mark_activated``/``mark_completed``/``release_activation`` are
    internal transitions for the dispatcher and engine only. Each one is a
    single conditional UPDATE, so concurrent callers cannot both win.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    async def create(self, request: ScheduleRequest) -> ScheduledBroadcast:
        """
        Validate and persist a new schedule.

        Raises:
            InvalidScheduleError: If times, playlist or stream key are invalid
        """
        start_at = parse_timestamp(request.start_at, "startAt")
        end_at = None
        if request.end_at not in (None, ""):
            end_at = parse_timestamp(request.end_at, "endAt")
            if end_at <= start_at:
                raise InvalidScheduleError("endAt must be after startAt")

        playlist = list(request.playlist or [])
        if not playlist:
            raise InvalidScheduleError("Playlist must contain at least one video")
        if not request.credential_token or not request.credential_token.strip():
            raise InvalidScheduleError("Stream key is required")

        now = self._clock()
        record = ScheduledBroadcastRecord(
            id=str(uuid4()),
            start_at=start_at,
            end_at=end_at,
            playlist=playlist,
            loop_mode=request.loop_mode.kind.value,
            repeat_count=request.loop_mode.repeats,
            credential_token=request.credential_token,
            title=request.title or "",
            activated=False,
            completed=False,
            created_at=now,
            updated_at=now,
        )

        async with self._session_factory() as db:
            db.add(record)
            await db.commit()
            await db.refresh(record)
            schedule = _to_domain(record)

        logger.info(
            f"Created schedule {schedule.schedule_id} for {schedule.start_at.isoformat()}"
            + (f" until {schedule.end_at.isoformat()}" if schedule.end_at else "")
        )
        return schedule

    async def get(self, schedule_id: str) -> ScheduledBroadcast:
        """
        Raises:
            NotFoundError: If no such schedule exists
        """
        async with self._session_factory() as db:
            return _to_domain(await self._get_row(db, schedule_id))

    async def list(self) -> List[ScheduledBroadcast]:
        """All schedules, ascending by start time."""
        stmt = select(ScheduledBroadcastRecord).order_by(
            ScheduledBroadcastRecord.start_at,
            ScheduledBroadcastRecord.created_at,
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return [_to_domain(row) for row in result.scalars().all()]

    async def list_pending(self) -> List[ScheduledBroadcast]:
        """Schedules not yet activated, ascending by start time."""
        stmt = (
            select(ScheduledBroadcastRecord)
            .where(ScheduledBroadcastRecord.activated.is_(False))
            .order_by(
                ScheduledBroadcastRecord.start_at,
                ScheduledBroadcastRecord.created_at,
            )
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return [_to_domain(row) for row in result.scalars().all()]

    async def cancel(self, schedule_id: str) -> None:
        """
        Remove a schedule that has not been activated.

        Raises:
            NotFoundError: If no such schedule exists
            AlreadyActivatedError: If the schedule already went on air
        """
        async with self._session_factory() as db:
            result = await db.execute(
                delete(ScheduledBroadcastRecord).where(
                    ScheduledBroadcastRecord.id == schedule_id,
                    ScheduledBroadcastRecord.activated.is_(False),
                )
            )
            if result.rowcount == 0:
                await self._get_row(db, schedule_id)
                raise AlreadyActivatedError(
                    f"Schedule {schedule_id} is already activated; stop the session instead"
                )
            await db.commit()
        logger.info(f"Cancelled schedule {schedule_id}")

    async def mark_activated(self, schedule_id: str) -> bool:
        """Returns False if the schedule was already activated."""
        changed = await self._transition(
            schedule_id,
            ScheduledBroadcastRecord.activated.is_(False),
            activated=True,
        )
        if changed:
            logger.debug(f"Schedule {schedule_id} activated")
        return changed

    async def release_activation(self, schedule_id: str) -> None:
        """Return an activated-but-never-started schedule to pending."""
        await self._transition(
            schedule_id,
            ScheduledBroadcastRecord.completed.is_(False),
            activated=False,
        )

    async def mark_completed(self, schedule_id: str) -> bool:
        """Returns False if the schedule was already completed."""
        changed = await self._transition(
            schedule_id,
            ScheduledBroadcastRecord.completed.is_(False),
            activated=True,
            completed=True,
        )
        if changed:
            logger.info(f"Schedule {schedule_id} completed")
        return changed

    async def _transition(self, schedule_id: str, condition: Any, **values: Any) -> bool:
        """
        Apply ``values`` if ``condition`` holds.

        Raises:
            NotFoundError: If no such schedule exists
        """
        stmt = (
            update(ScheduledBroadcastRecord)
            .where(ScheduledBroadcastRecord.id == schedule_id, condition)
            .values(updated_at=self._clock(), **values)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            if result.rowcount == 0:
                await self._get_row(db, schedule_id)
                return False
            await db.commit()
        return True

    @staticmethod
    async def _get_row(db: AsyncSession, schedule_id: str) -> ScheduledBroadcastRecord:
        row = await db.get(ScheduledBroadcastRecord, schedule_id)
        if row is None:
            raise NotFoundError(f"Schedule {schedule_id!r} not found")
        return row

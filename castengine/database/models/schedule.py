"""
Scheduled broadcast model.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from castengine.database.models.base import Base, TimestampMixin


class ScheduledBroadcastRecord(Base, TimestampMixin):
    """
    A persisted broadcast intent.

    Lifecycle: pending (activated=False) -> activated -> completed.
    """

    __tablename__ = "scheduled_broadcasts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    start_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    end_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Ordered video ids, duplicates allowed
    playlist: Mapped[list] = mapped_column(JSON, nullable=False)
    loop_mode: Mapped[str] = mapped_column(String(16), nullable=False)
    repeat_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    credential_token: Mapped[str] = mapped_column(String(512), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    activated: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        index=True,
    )
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<ScheduledBroadcastRecord {self.id} at {self.start_at}>"

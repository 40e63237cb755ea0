"""SQLAlchemy ORM models."""

from datetime import UTC, datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Index,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """Stores naive UTC, returns aware UTC.

    SQLite drops tzinfo, so values are normalized on the way in and the zone
    is re-attached on the way out. Naive inputs are taken to be UTC already.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """Base class for all models."""


class Nudge(Base):
    """A scheduled nudge for one (user, task) pair.

    Pending while triggered_at is NULL. The trigger write sets triggered_at
    and message together; the check constraint keeps them in lockstep.
    Canceling deletes the row.
    """

    __tablename__ = "nudges"
    __table_args__ = (
        UniqueConstraint("user_id", "task_id", name="uq_nudges_user_task"),
        CheckConstraint(
            "(triggered_at IS NULL) = (message IS NULL)",
            name="ck_nudges_triggered_message",
        ),
        Index("ix_nudges_user_delivery", "user_id", "delivery_time"),
        # Unique per user so the triggered feed cursor never sees ties
        Index("ix_nudges_user_triggered", "user_id", "triggered_at", unique=True),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    task_id: Mapped[str] = mapped_column(String, nullable=False)
    delivery_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    triggered_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )

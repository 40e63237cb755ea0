"""Nudge store backed by SQLAlchemy.

Each method opens its own short-lived session, so nothing is held between
calls. Cross-call invariants live in the database:

- uq_nudges_user_task makes insert-if-absent a plain INSERT.
- Triggering is an UPDATE guarded by ``triggered_at IS NULL``.
- Ordinary cancellation is a DELETE guarded the same way.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.exc import IntegrityError

from nudgr.db.engine import Database
from nudgr.db.models import Nudge
from nudgr.nudges.errors import DuplicateNudgeError
from nudgr.nudges.types import (
    NudgeRecord,
    NudgeStatus,
    PendingNudge,
    TriggeredNudge,
    record_from_row,
)

logger = logging.getLogger(__name__)

# Smallest step the stored timestamps can represent
TIMESTAMP_RESOLUTION = timedelta(microseconds=1)

# Attempts at stamping a trigger when other tasks of the same user
# keep claiming the same instant first
MAX_STAMP_ATTEMPTS = 5


class NudgeStore:
    """Persistence adapter for nudges."""

    def __init__(self, db: Database) -> None:
        self._db = db

    @property
    def db(self) -> Database:
        return self._db

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(
        self, *, user_id: str, task_id: str, delivery_time: datetime, now: datetime
    ) -> PendingNudge:
        """Insert a pending nudge.

        Raises:
            DuplicateNudgeError: If any nudge exists for (user_id, task_id).
        """
        row = Nudge(
            id=uuid.uuid4().hex,
            user_id=user_id,
            task_id=task_id,
            delivery_time=delivery_time,
            created_at=now,
        )
        try:
            async with self._db.session() as session:
                session.add(row)
                await session.flush()
        except IntegrityError as e:
            raise DuplicateNudgeError(user_id=user_id, task_id=task_id) from e

        record = record_from_row(row)
        assert isinstance(record, PendingNudge)
        return record

    async def mark_triggered(
        self, *, user_id: str, task_id: str, message: str, now: datetime
    ) -> TriggeredNudge | None:
        """Set message and triggered_at if the nudge is still pending.

        The stamp is ``max(now, latest trigger for this user + 1µs)`` so a
        user's trigger times are strictly increasing. A writer that commits
        an equal stamp between the read and the update makes the update fail
        on ix_nudges_user_triggered; the attempt is then repeated.

        Returns:
            The triggered nudge, or None if no pending nudge matched.
        """
        for attempt in range(1, MAX_STAMP_ATTEMPTS + 1):
            latest = await self.last_triggered_at(user_id)
            stamp = now
            if latest is not None and latest >= now:
                stamp = latest + TIMESTAMP_RESOLUTION
            try:
                return await self._conditional_trigger(
                    user_id=user_id, task_id=task_id, message=message, stamp=stamp
                )
            except IntegrityError:
                if attempt == MAX_STAMP_ATTEMPTS:
                    raise
                logger.debug(
                    "trigger_stamp_collision",
                    extra={
                        "nudge.user_id": user_id,
                        "nudge.task_id": task_id,
                        "attempt": attempt,
                    },
                )
        return None

    async def _conditional_trigger(
        self, *, user_id: str, task_id: str, message: str, stamp: datetime
    ) -> TriggeredNudge | None:
        async with self._db.session() as session:
            # The guarded write comes first so the writer lock is held while
            # the user's latest stamp is re-read below.
            result = await session.execute(
                update(Nudge)
                .where(
                    Nudge.user_id == user_id,
                    Nudge.task_id == task_id,
                    Nudge.triggered_at.is_(None),
                )
                .values(triggered_at=stamp, message=message)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None

            latest = await session.scalar(
                select(func.max(Nudge.triggered_at)).where(
                    Nudge.user_id == user_id, Nudge.task_id != task_id
                )
            )
            if latest is not None and latest >= stamp:
                await session.execute(
                    update(Nudge)
                    .where(Nudge.user_id == user_id, Nudge.task_id == task_id)
                    .values(triggered_at=latest + TIMESTAMP_RESOLUTION)
                    .execution_options(synchronize_session=False)
                )

            row = await session.scalar(_by_key(user_id, task_id))
            assert row is not None
            record = record_from_row(row)
            assert isinstance(record, TriggeredNudge)
            return record

    async def delete_pending(self, user_id: str, task_id: str) -> bool:
        """Delete the nudge only if it has not been triggered."""
        async with self._db.session() as session:
            result = await session.execute(
                delete(Nudge).where(
                    Nudge.user_id == user_id,
                    Nudge.task_id == task_id,
                    Nudge.triggered_at.is_(None),
                )
            )
            return result.rowcount == 1

    async def delete(self, user_id: str, task_id: str) -> bool:
        """Delete the nudge in any state."""
        async with self._db.session() as session:
            result = await session.execute(
                delete(Nudge).where(Nudge.user_id == user_id, Nudge.task_id == task_id)
            )
            return result.rowcount == 1

    async def delete_for_user(self, user_id: str) -> int:
        async with self._db.session() as session:
            result = await session.execute(
                delete(Nudge).where(Nudge.user_id == user_id)
            )
            return result.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, user_id: str, task_id: str) -> NudgeRecord | None:
        async with self._db.session() as session:
            row = await session.scalar(_by_key(user_id, task_id))
            return record_from_row(row) if row is not None else None

    async def list_for_user(
        self, user_id: str, status: NudgeStatus, limit: int
    ) -> list[NudgeRecord]:
        stmt = select(Nudge).where(Nudge.user_id == user_id)
        if status == NudgeStatus.PENDING:
            stmt = stmt.where(Nudge.triggered_at.is_(None)).order_by(
                Nudge.delivery_time, Nudge.task_id
            )
        elif status == NudgeStatus.TRIGGERED:
            stmt = stmt.where(Nudge.triggered_at.is_not(None)).order_by(
                Nudge.triggered_at, Nudge.task_id
            )
        else:
            stmt = stmt.order_by(Nudge.delivery_time, Nudge.task_id)
        return await self._fetch(stmt.limit(limit))

    async def ready_for_user(
        self, user_id: str, now: datetime, since: datetime | None = None
    ) -> list[PendingNudge]:
        """Pending nudges with ``since < delivery_time <= now``, oldest first."""
        conditions = [
            Nudge.user_id == user_id,
            Nudge.triggered_at.is_(None),
            Nudge.delivery_time <= now,
        ]
        if since is not None:
            conditions.append(Nudge.delivery_time > since)
        stmt = (
            select(Nudge)
            .where(and_(*conditions))
            .order_by(Nudge.delivery_time, Nudge.task_id)
        )
        return [r for r in await self._fetch(stmt) if isinstance(r, PendingNudge)]

    async def triggered_since(
        self, user_id: str, after: datetime | None, limit: int
    ) -> list[TriggeredNudge]:
        """Triggered nudges with ``triggered_at > after``, ascending."""
        stmt = select(Nudge).where(
            Nudge.user_id == user_id, Nudge.triggered_at.is_not(None)
        )
        if after is not None:
            stmt = stmt.where(Nudge.triggered_at > after)
        stmt = stmt.order_by(Nudge.triggered_at).limit(limit)
        return [r for r in await self._fetch(stmt) if isinstance(r, TriggeredNudge)]

    async def last_triggered_at(self, user_id: str) -> datetime | None:
        async with self._db.session() as session:
            return await session.scalar(
                select(func.max(Nudge.triggered_at)).where(Nudge.user_id == user_id)
            )

    async def users_with_ready(self, now: datetime, limit: int) -> list[str]:
        """Distinct users owning at least one ready pending nudge."""
        stmt = (
            select(Nudge.user_id)
            .where(Nudge.triggered_at.is_(None), Nudge.delivery_time <= now)
            .group_by(Nudge.user_id)
            .order_by(func.min(Nudge.delivery_time))
            .limit(limit)
        )
        async with self._db.session() as session:
            return list((await session.scalars(stmt)).all())

    async def counts(self, now: datetime) -> dict[str, Any]:
        count = select(func.count()).select_from(Nudge)
        async with self._db.session() as session:
            pending = await session.scalar(count.where(Nudge.triggered_at.is_(None)))
            ready = await session.scalar(
                count.where(Nudge.triggered_at.is_(None), Nudge.delivery_time <= now)
            )
            triggered = await session.scalar(
                count.where(Nudge.triggered_at.is_not(None))
            )
        return {
            "pending": pending or 0,
            "ready": ready or 0,
            "triggered": triggered or 0,
        }

    async def _fetch(self, stmt) -> list[NudgeRecord]:
        async with self._db.session() as session:
            rows = (await session.scalars(stmt)).all()
            return [record_from_row(row) for row in rows]


def _by_key(user_id: str, task_id: str):
    return select(Nudge).where(Nudge.user_id == user_id, Nudge.task_id == task_id)

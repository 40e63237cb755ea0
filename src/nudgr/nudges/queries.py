"""Read-side views over persisted nudges. Reads never change state."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from nudgr.nudges.errors import NudgeNotFoundError
from nudgr.nudges.store import NudgeStore
from nudgr.nudges.types import (
    Clock,
    NudgeRecord,
    NudgeStatus,
    PendingNudge,
    TriggeredNudge,
    as_utc,
    utc_now,
)

DEFAULT_LIST_LIMIT = 50
DEFAULT_TRIGGERED_LIMIT = 10


class NudgeQueries:
    """Query layer used by the CLI, the watcher and the feed."""

    def __init__(
        self,
        store: NudgeStore,
        *,
        clock: Clock = utc_now,
        default_list_limit: int = DEFAULT_LIST_LIMIT,
        default_triggered_limit: int = DEFAULT_TRIGGERED_LIMIT,
    ) -> None:
        self._store = store
        self._clock = clock
        self._default_list_limit = default_list_limit
        self._default_triggered_limit = default_triggered_limit

    def now(self) -> datetime:
        return as_utc(self._clock())

    async def get(self, user_id: str, task_id: str) -> NudgeRecord:
        """Return the nudge for (user_id, task_id).

        Raises:
            NudgeNotFoundError: If none exists.
        """
        nudge = await self._store.get(user_id, task_id)
        if nudge is None:
            raise NudgeNotFoundError(user_id=user_id, task_id=task_id)
        return nudge

    async def list_for_user(
        self,
        user_id: str,
        status: NudgeStatus = NudgeStatus.ANY,
        limit: int | None = None,
    ) -> list[NudgeRecord]:
        """List a user's nudges.

        Pending and unfiltered listings are ordered by delivery_time,
        triggered listings by triggered_at. Ties break on task_id.
        """
        return await self._store.list_for_user(
            user_id, NudgeStatus(status), self._limit(limit, self._default_list_limit)
        )

    async def ready_for_user(self, user_id: str) -> list[PendingNudge]:
        """Pending nudges whose delivery time has arrived, oldest first."""
        return await self._store.ready_for_user(user_id, self.now())

    async def ready_since(self, user_id: str, since: datetime) -> list[PendingNudge]:
        """Pending nudges that became ready after ``since``, oldest first."""
        return await self._store.ready_for_user(
            user_id, self.now(), since=as_utc(since)
        )

    async def newly_triggered_since(
        self, user_id: str, after: datetime | None, limit: int | None = None
    ) -> list[TriggeredNudge]:
        """Triggered nudges with triggered_at strictly after ``after``.

        Ascending by triggered_at. Passing the largest triggered_at of one
        batch as ``after`` for the next walks every triggered nudge exactly
        once. With ``after=None`` the walk starts from the beginning.
        """
        return await self._store.triggered_since(
            user_id,
            as_utc(after) if after is not None else None,
            self._limit(limit, self._default_triggered_limit),
        )

    async def last_triggered_at(self, user_id: str) -> datetime | None:
        return await self._store.last_triggered_at(user_id)

    async def delete_all_for_user(self, user_id: str) -> int:
        """Remove every nudge for a user, any state. Returns the count."""
        return await self._store.delete_for_user(user_id)

    async def users_with_ready_nudges(self, limit: int = 100) -> list[str]:
        return await self._store.users_with_ready(self.now(), limit)

    async def stats(self) -> dict[str, Any]:
        return await self._store.counts(self.now())

    @staticmethod
    def _limit(limit: int | None, default: int) -> int:
        if limit is None:
            return default
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        return limit

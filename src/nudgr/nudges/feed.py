"""Per-user feed of triggered nudges.

A consumer holds a cursor (the largest triggered_at it has seen) and
repeatedly asks for nudges triggered after it. Trigger stamps are unique
and increasing per user, so the walk delivers each nudge exactly once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from datetime import datetime, timedelta

from nudgr.nudges.queries import NudgeQueries
from nudgr.nudges.types import TriggeredNudge, as_utc

logger = logging.getLogger(__name__)


class NudgeFeed:
    """Cursor over one user's triggered nudges."""

    def __init__(
        self,
        queries: NudgeQueries,
        user_id: str,
        *,
        cursor: datetime | None = None,
        poll_interval: float = 5.0,
        poll_limit: int = 10,
        backlog_limit: int = 50,
        backlog: timedelta = timedelta(hours=1),
    ):
        self._queries = queries
        self._user_id = user_id
        self._cursor = as_utc(cursor) if cursor is not None else None
        self._poll_interval = poll_interval
        self._poll_limit = poll_limit
        self._backlog_limit = backlog_limit
        self._backlog = backlog

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def cursor(self) -> datetime | None:
        return self._cursor

    async def bootstrap(self, include_backlog: bool = True) -> list[TriggeredNudge]:
        """Position the cursor and return any backlog to deliver first.

        With a cursor from a previous session, returns what was triggered
        since. Without one, returns the last ``backlog`` worth of nudges, or
        nothing when include_backlog is False (the cursor jumps to the latest
        trigger instead).
        """
        if self._cursor is None:
            if not include_backlog:
                self._cursor = await self._queries.last_triggered_at(self._user_id)
                return []
            self._cursor = self._queries.now() - self._backlog

        batch = await self._fetch(self._backlog_limit)
        logger.debug(
            "nudge_feed_bootstrapped",
            extra={"nudge.user_id": self._user_id, "feed.backlog": len(batch)},
        )
        return batch

    async def poll(self) -> list[TriggeredNudge]:
        """Return the next batch after the cursor and advance past it."""
        return await self._fetch(self._poll_limit)

    async def stream(self) -> AsyncIterator[TriggeredNudge]:
        """Yield nudges as they are triggered, polling on an interval."""
        while True:
            batch = await self.poll()
            for nudge in batch:
                yield nudge
            # A full batch means more may be waiting
            if len(batch) < self._poll_limit:
                await asyncio.sleep(self._poll_interval)

    async def _fetch(self, limit: int) -> list[TriggeredNudge]:
        batch = await self._queries.newly_triggered_since(
            self._user_id, self._cursor, limit=limit
        )
        if batch:
            self._cursor = batch[-1].triggered_at
        return batch

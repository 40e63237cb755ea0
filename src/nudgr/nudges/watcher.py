"""Nudge watcher: polls for ready nudges and triggers them.

Keeps delivery going when no client is connected. Several watchers may run
against the same database; the engine's guarded update makes the races
between them harmless.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from nudgr.nudges.engine import NudgeEngine
from nudgr.nudges.errors import AlreadyTriggeredError, NudgeError, NudgeNotFoundError
from nudgr.nudges.queries import NudgeQueries
from nudgr.nudges.types import NudgeContext

logger = logging.getLogger(__name__)

# Looks up the task details and recent emotions for a nudge.
# Returning None skips the nudge for this poll.
ContextResolver = Callable[[str, str], Awaitable[NudgeContext | None]]


@dataclass
class PollResult:
    triggered: int = 0
    skipped: int = 0
    errors: int = 0


class NudgeWatcher:
    """Triggers ready nudges on an interval.

    Example:
        watcher = NudgeWatcher(engine, queries, resolve_context)
        await watcher.start()
        ...
        await watcher.stop()
    """

    def __init__(
        self,
        engine: NudgeEngine,
        queries: NudgeQueries,
        resolve_context: ContextResolver,
        poll_interval: float = 60.0,
        max_users_per_poll: int = 100,
    ):
        self._engine = engine
        self._queries = queries
        self._resolve_context = resolve_context
        self._poll_interval = poll_interval
        self._max_users_per_poll = max_users_per_poll
        self._running = False
        self._task: asyncio.Task | None = None
        self._poll_count = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        logger.info(
            "nudge_watcher_started",
            extra={"poll.interval_s": self._poll_interval},
        )
        self._task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("nudge_watcher_stopped", extra={"poll.count": self._poll_count})

    async def _poll_loop(self) -> None:
        # Heartbeat every 10 polls (~10 min at the default interval)
        heartbeat_interval = 10
        while self._running:
            try:
                self._poll_count += 1
                if self._poll_count % heartbeat_interval == 0:
                    logger.info(
                        "nudge_watcher_heartbeat",
                        extra={"poll.count": self._poll_count},
                    )
                await self.poll_once()
            except Exception as e:
                logger.error("nudge_poll_error", extra={"error.message": str(e)})
            await asyncio.sleep(self._poll_interval)

    async def poll_once(self) -> PollResult:
        """Trigger every ready nudge of up to max_users_per_poll users."""
        result = PollResult()
        users = await self._queries.users_with_ready_nudges(self._max_users_per_poll)
        for user_id in users:
            try:
                ready = await self._queries.ready_for_user(user_id)
            except Exception as e:
                logger.error(
                    "nudge_user_check_error",
                    extra={"nudge.user_id": user_id, "error.message": str(e)},
                )
                result.errors += 1
                continue
            for nudge in ready:
                await self._trigger_one(nudge.user_id, nudge.task_id, result)

        if result.triggered or result.errors:
            logger.info(
                "nudge_poll_complete",
                extra={
                    "poll.triggered": result.triggered,
                    "poll.skipped": result.skipped,
                    "poll.errors": result.errors,
                },
            )
        return result

    async def _trigger_one(
        self, user_id: str, task_id: str, result: PollResult
    ) -> None:
        extra = {"nudge.user_id": user_id, "nudge.task_id": task_id}
        try:
            context = await self._resolve_context(user_id, task_id)
        except Exception as e:
            logger.error(
                "nudge_context_error", extra={**extra, "error.message": str(e)}
            )
            result.errors += 1
            return
        if context is None:
            logger.debug("nudge_context_missing", extra=extra)
            result.skipped += 1
            return

        try:
            await self._engine.trigger(user_id, task_id, context)
        except (AlreadyTriggeredError, NudgeNotFoundError) as e:
            # Another watcher or a cancel got there first
            logger.debug(
                "nudge_trigger_raced", extra={**extra, "error.type": type(e).__name__}
            )
            result.skipped += 1
        except NudgeError as e:
            logger.warning(
                "nudge_trigger_failed",
                extra={
                    **extra,
                    "error.type": type(e).__name__,
                    "error.message": str(e),
                },
            )
            result.errors += 1
        else:
            result.triggered += 1

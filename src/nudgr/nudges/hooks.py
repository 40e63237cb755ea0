"""Reactions to task and user lifecycle events."""

from __future__ import annotations

import logging
from datetime import datetime

from nudgr.nudges.engine import NudgeEngine
from nudgr.nudges.errors import AlreadyTriggeredError, NudgeNotFoundError
from nudgr.nudges.types import PendingNudge

logger = logging.getLogger(__name__)


async def on_task_created(
    engine: NudgeEngine, user_id: str, task_id: str, delivery_time: datetime
) -> PendingNudge:
    return await engine.schedule(user_id, task_id, delivery_time)


async def on_task_deleted(engine: NudgeEngine, user_id: str, task_id: str) -> bool:
    """Remove the task's nudge in any state. Returns False if there was none."""
    try:
        await engine.cancel(user_id, task_id, override=True)
    except NudgeNotFoundError:
        return False
    return True


async def on_task_completed(engine: NudgeEngine, user_id: str, task_id: str) -> bool:
    """Cancel the task's nudge if it has not fired yet."""
    try:
        await engine.cancel(user_id, task_id)
    except (NudgeNotFoundError, AlreadyTriggeredError) as e:
        logger.debug(
            "task_completed_nudge_kept",
            extra={
                "nudge.user_id": user_id,
                "nudge.task_id": task_id,
                "error.type": type(e).__name__,
            },
        )
        return False
    return True


async def on_user_deleted(engine: NudgeEngine, user_id: str) -> int:
    return await engine.delete_all_for_user(user_id)

"""Nudge engine: scheduling, cancellation and delivery.

Every operation performs at most one guarded write and re-checks persisted
state instead of trusting anything read earlier, so concurrent callers in
separate processes agree on the outcome:

- two triggers race on the ``triggered_at IS NULL`` update; one wins, the
  other gets AlreadyTriggeredError.
- a cancel racing a trigger either deletes the pending row first (trigger
  gets NudgeNotFoundError) or finds it triggered (AlreadyTriggeredError).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from nudgr.nudges.errors import (
    AlreadyTriggeredError,
    GenerationFailureError,
    InvalidPayloadError,
    NudgeNotFoundError,
    PastDeliveryTimeError,
    TooEarlyError,
)
from nudgr.nudges.generator import MessageGenerator
from nudgr.nudges.store import NudgeStore
from nudgr.nudges.types import (
    Clock,
    NudgeContext,
    PendingNudge,
    TriggeredNudge,
    as_utc,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGE_LENGTH = 200
DEFAULT_GENERATION_TIMEOUT = 30.0


class NudgeEngine:
    """Owns every state transition of a nudge.

    Example:
        engine = NudgeEngine(NudgeStore(db), LLMMessageGenerator(llm))
        await engine.schedule("u1", "t1", deliver_at)
        ...
        nudge = await engine.trigger("u1", "t1", NudgeContext(title="Essay"))
    """

    def __init__(
        self,
        store: NudgeStore,
        generator: MessageGenerator,
        *,
        clock: Clock = utc_now,
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
        generation_timeout: float = DEFAULT_GENERATION_TIMEOUT,
    ) -> None:
        self._store = store
        self._generator = generator
        self._clock = clock
        self._max_message_length = max_message_length
        self._generation_timeout = generation_timeout

    @property
    def store(self) -> NudgeStore:
        return self._store

    def now(self) -> datetime:
        return as_utc(self._clock())

    async def schedule(
        self, user_id: str, task_id: str, delivery_time: datetime
    ) -> PendingNudge:
        """Create a pending nudge for (user_id, task_id).

        Raises:
            PastDeliveryTimeError: If delivery_time is not strictly in the future.
            DuplicateNudgeError: If a nudge already exists for the pair.
        """
        delivery_time = as_utc(delivery_time)
        now = self.now()
        if delivery_time <= now:
            raise PastDeliveryTimeError(
                user_id=user_id, task_id=task_id, delivery_time=delivery_time
            )

        nudge = await self._store.insert(
            user_id=user_id, task_id=task_id, delivery_time=delivery_time, now=now
        )
        logger.info(
            "nudge_scheduled",
            extra={
                "nudge.id": nudge.id,
                "nudge.user_id": user_id,
                "nudge.task_id": task_id,
                "nudge.delivery_time": delivery_time.isoformat(),
            },
        )
        return nudge

    async def cancel(
        self, user_id: str, task_id: str, *, override: bool = False
    ) -> None:
        """Delete a nudge.

        Without override only a pending nudge may be canceled. With override
        the nudge is removed in any state; used when the owning task itself
        is deleted.

        Raises:
            NudgeNotFoundError: If no nudge exists for the pair.
            AlreadyTriggeredError: If override is False and the nudge fired.
        """
        if override:
            if not await self._store.delete(user_id, task_id):
                raise NudgeNotFoundError(user_id=user_id, task_id=task_id)
        elif not await self._store.delete_pending(user_id, task_id):
            if await self._store.get(user_id, task_id) is None:
                raise NudgeNotFoundError(user_id=user_id, task_id=task_id)
            raise AlreadyTriggeredError(user_id=user_id, task_id=task_id)

        logger.info(
            "nudge_canceled",
            extra={
                "nudge.user_id": user_id,
                "nudge.task_id": task_id,
                "override": override,
            },
        )

    async def trigger(
        self, user_id: str, task_id: str, context: NudgeContext
    ) -> TriggeredNudge:
        """Generate the nudge's message and mark it triggered, exactly once.

        The generator runs with no session open. A failure before the final
        write leaves the nudge pending, so callers may simply retry.

        Raises:
            NudgeNotFoundError: No nudge for the pair (or canceled meanwhile).
            TooEarlyError: The delivery time has not arrived.
            AlreadyTriggeredError: The nudge fired already, possibly just now
                through a concurrent caller.
            GenerationFailureError: The generator raised or timed out.
            InvalidPayloadError: The generated message was empty or too long.
        """
        nudge = await self._store.get(user_id, task_id)
        if nudge is None:
            raise NudgeNotFoundError(user_id=user_id, task_id=task_id)
        if isinstance(nudge, TriggeredNudge):
            raise AlreadyTriggeredError(user_id=user_id, task_id=task_id)
        if not nudge.is_ready(self.now()):
            raise TooEarlyError(
                user_id=user_id, task_id=task_id, delivery_time=nudge.delivery_time
            )

        message = await self._generate(user_id, task_id, context)

        triggered = await self._store.mark_triggered(
            user_id=user_id, task_id=task_id, message=message, now=self.now()
        )
        if triggered is None:
            if await self._store.get(user_id, task_id) is None:
                logger.debug(
                    "nudge_canceled_during_trigger",
                    extra={"nudge.user_id": user_id, "nudge.task_id": task_id},
                )
                raise NudgeNotFoundError(user_id=user_id, task_id=task_id)
            logger.debug(
                "nudge_trigger_lost_race",
                extra={"nudge.user_id": user_id, "nudge.task_id": task_id},
            )
            raise AlreadyTriggeredError(user_id=user_id, task_id=task_id)

        logger.info(
            "nudge_triggered",
            extra={
                "nudge.id": triggered.id,
                "nudge.user_id": user_id,
                "nudge.task_id": task_id,
                "nudge.triggered_at": triggered.triggered_at.isoformat(),
            },
        )
        return triggered

    async def delete_all_for_user(self, user_id: str) -> int:
        """Remove every nudge for a user regardless of state.

        Only for whole-user teardown; ordinary cancellation goes through cancel().
        """
        removed = await self._store.delete_for_user(user_id)
        logger.info(
            "user_nudges_deleted",
            extra={"nudge.user_id": user_id, "nudge.count": removed},
        )
        return removed

    async def _generate(self, user_id: str, task_id: str, context: NudgeContext) -> str:
        try:
            async with asyncio.timeout(self._generation_timeout):
                raw = await self._generator(context)
        except TimeoutError as e:
            logger.warning(
                "nudge_generation_timeout",
                extra={
                    "nudge.user_id": user_id,
                    "nudge.task_id": task_id,
                    "timeout_s": self._generation_timeout,
                },
            )
            raise GenerationFailureError(
                user_id=user_id,
                task_id=task_id,
                reason=f"timed out after {self._generation_timeout}s",
            ) from e
        except Exception as e:
            logger.warning(
                "nudge_generation_failed",
                extra={
                    "nudge.user_id": user_id,
                    "nudge.task_id": task_id,
                    "error.type": type(e).__name__,
                    "error.message": str(e),
                },
            )
            raise GenerationFailureError(
                user_id=user_id, task_id=task_id, reason=str(e) or type(e).__name__
            ) from e

        return self._validate(user_id, task_id, raw)

    def _validate(self, user_id: str, task_id: str, raw: object) -> str:
        if not isinstance(raw, str):
            reason = f"expected text, got {type(raw).__name__}"
        else:
            message = raw.strip()
            if not message:
                reason = "message is empty"
            elif len(message) > self._max_message_length:
                reason = (
                    f"message is {len(message)} characters, "
                    f"limit is {self._max_message_length}"
                )
            else:
                return message

        logger.warning(
            "nudge_message_rejected",
            extra={
                "nudge.user_id": user_id,
                "nudge.task_id": task_id,
                "reason": reason,
            },
        )
        raise InvalidPayloadError(user_id=user_id, task_id=task_id, reason=reason)

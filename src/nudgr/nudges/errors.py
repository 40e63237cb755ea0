"""Nudge engine errors.

Every failure leaves the stored nudge exactly as it was before the call.
"""

from __future__ import annotations

from datetime import datetime


class NudgeError(Exception):
    """Base class for nudge engine failures."""

    def __init__(self, message: str, *, user_id: str, task_id: str | None = None):
        super().__init__(message)
        self.user_id = user_id
        self.task_id = task_id


class PastDeliveryTimeError(NudgeError):
    """The requested delivery time is not in the future."""

    def __init__(self, *, user_id: str, task_id: str, delivery_time: datetime):
        super().__init__(
            f"delivery time {delivery_time.isoformat()} is not in the future",
            user_id=user_id,
            task_id=task_id,
        )
        self.delivery_time = delivery_time


class DuplicateNudgeError(NudgeError):
    """A nudge already exists for this (user, task)."""

    def __init__(self, *, user_id: str, task_id: str):
        super().__init__(
            f"nudge already exists for task {task_id}",
            user_id=user_id,
            task_id=task_id,
        )


class NudgeNotFoundError(NudgeError):
    """No nudge exists for this (user, task)."""

    def __init__(self, *, user_id: str, task_id: str):
        super().__init__(
            f"no nudge for task {task_id}",
            user_id=user_id,
            task_id=task_id,
        )


class TooEarlyError(NudgeError):
    """The nudge's delivery time has not arrived yet."""

    def __init__(self, *, user_id: str, task_id: str, delivery_time: datetime):
        super().__init__(
            f"nudge for task {task_id} is not due until {delivery_time.isoformat()}",
            user_id=user_id,
            task_id=task_id,
        )
        self.delivery_time = delivery_time


class AlreadyTriggeredError(NudgeError):
    """The nudge has already been triggered."""

    def __init__(self, *, user_id: str, task_id: str):
        super().__init__(
            f"nudge for task {task_id} has already been triggered",
            user_id=user_id,
            task_id=task_id,
        )


class GenerationFailureError(NudgeError):
    """The message generator failed or timed out. Safe to retry."""

    def __init__(self, *, user_id: str, task_id: str, reason: str):
        super().__init__(
            f"message generation failed for task {task_id}: {reason}",
            user_id=user_id,
            task_id=task_id,
        )
        self.reason = reason


class InvalidPayloadError(NudgeError):
    """The generated message was empty or too long. Safe to retry."""

    def __init__(self, *, user_id: str, task_id: str, reason: str):
        super().__init__(
            f"generated message rejected for task {task_id}: {reason}",
            user_id=user_id,
            task_id=task_id,
        )
        self.reason = reason

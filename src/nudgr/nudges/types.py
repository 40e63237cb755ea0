"""Nudge types.

Public types:
- PendingNudge / TriggeredNudge: the two reachable lifecycle states
- NudgeRecord: either of the above
- NudgeStatus: filter for list queries
- NudgeContext: inputs forwarded to the message generator
- Clock: source of the current instant
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from nudgr.db.models import Nudge, utc_now

Clock = Callable[[], datetime]


class NudgeStatus(StrEnum):
    """Status filter for listing nudges."""

    PENDING = "pending"
    TRIGGERED = "triggered"
    ANY = "any"


@dataclass(frozen=True)
class PendingNudge:
    """A nudge waiting for its delivery time."""

    id: str
    user_id: str
    task_id: str
    delivery_time: datetime
    created_at: datetime

    @property
    def status(self) -> NudgeStatus:
        return NudgeStatus.PENDING

    def is_ready(self, now: datetime) -> bool:
        return now >= self.delivery_time

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "task_id": self.task_id,
            "status": self.status.value,
            "delivery_time": self.delivery_time.isoformat(),
            "created_at": self.created_at.isoformat(),
            "triggered_at": None,
            "message": None,
        }


@dataclass(frozen=True)
class TriggeredNudge:
    """A nudge whose message has been generated. Terminal."""

    id: str
    user_id: str
    task_id: str
    delivery_time: datetime
    created_at: datetime
    triggered_at: datetime
    message: str

    @property
    def status(self) -> NudgeStatus:
        return NudgeStatus.TRIGGERED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "task_id": self.task_id,
            "status": self.status.value,
            "delivery_time": self.delivery_time.isoformat(),
            "created_at": self.created_at.isoformat(),
            "triggered_at": self.triggered_at.isoformat(),
            "message": self.message,
        }


NudgeRecord = PendingNudge | TriggeredNudge


@dataclass(frozen=True)
class NudgeContext:
    """Task details and recent mood passed through to message generation."""

    title: str
    description: str = ""
    recent_emotions: tuple[str, ...] = field(default_factory=tuple)


def as_utc(value: datetime) -> datetime:
    """Normalize an instant to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def record_from_row(row: Nudge) -> NudgeRecord:
    """Map a persisted row onto the lifecycle variant it represents.

    Raises:
        ValueError: If exactly one of triggered_at / message is set.
    """
    if row.triggered_at is None and row.message is None:
        return PendingNudge(
            id=row.id,
            user_id=row.user_id,
            task_id=row.task_id,
            delivery_time=row.delivery_time,
            created_at=row.created_at,
        )
    if row.triggered_at is None or row.message is None:
        raise ValueError(
            f"nudge {row.id} has triggered_at without message (or vice versa)"
        )
    return TriggeredNudge(
        id=row.id,
        user_id=row.user_id,
        task_id=row.task_id,
        delivery_time=row.delivery_time,
        created_at=row.created_at,
        triggered_at=row.triggered_at,
        message=row.message,
    )


__all__ = [
    "Clock",
    "NudgeContext",
    "NudgeRecord",
    "NudgeStatus",
    "PendingNudge",
    "TriggeredNudge",
    "as_utc",
    "record_from_row",
    "utc_now",
]

"""Deferred nudge scheduling and delivery.

Public API:
- NudgeEngine: schedule, cancel and trigger nudges
- NudgeQueries: read-side views
- NudgeStore: SQLAlchemy persistence
- NudgeWatcher: background triggering of ready nudges
- NudgeFeed: per-user cursor over triggered nudges
- LLMMessageGenerator: message generation through an LLM provider
"""

from nudgr.nudges.engine import NudgeEngine
from nudgr.nudges.errors import (
    AlreadyTriggeredError,
    DuplicateNudgeError,
    GenerationFailureError,
    InvalidPayloadError,
    NudgeError,
    NudgeNotFoundError,
    PastDeliveryTimeError,
    TooEarlyError,
)
from nudgr.nudges.feed import NudgeFeed
from nudgr.nudges.generator import LLMMessageGenerator, MessageGenerator
from nudgr.nudges.queries import NudgeQueries
from nudgr.nudges.store import NudgeStore
from nudgr.nudges.types import (
    Clock,
    NudgeContext,
    NudgeRecord,
    NudgeStatus,
    PendingNudge,
    TriggeredNudge,
)
from nudgr.nudges.watcher import ContextResolver, NudgeWatcher, PollResult

__all__ = [
    "AlreadyTriggeredError",
    "Clock",
    "ContextResolver",
    "DuplicateNudgeError",
    "GenerationFailureError",
    "InvalidPayloadError",
    "LLMMessageGenerator",
    "MessageGenerator",
    "NudgeContext",
    "NudgeEngine",
    "NudgeError",
    "NudgeFeed",
    "NudgeNotFoundError",
    "NudgeQueries",
    "NudgeRecord",
    "NudgeStatus",
    "NudgeStore",
    "NudgeWatcher",
    "PastDeliveryTimeError",
    "PendingNudge",
    "PollResult",
    "TooEarlyError",
    "TriggeredNudge",
]

"""Message generation for triggered nudges."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from nudgr.nudges.types import NudgeContext

if TYPE_CHECKING:
    from nudgr.llm.base import LLMProvider

logger = logging.getLogger(__name__)

NUDGE_PROMPT = """\
You are Nudgr, a friendly coach helping someone start a task they have been putting off.

Write ONE short, kind message (1-2 sentences, under {max_length} characters) that helps them take the first step.
Mention the task or how they have been feeling if it helps. Use an action verb (start, try, focus, tackle).
No guilt, no pressure, no empty hype.

<task>
Title: {title}
Description: {description}
</task>

<recent-emotions>
{emotions}
</recent-emotions>

Reply with the message only."""


class MessageGenerator(Protocol):
    """Produces the text delivered with a nudge. May raise on failure."""

    async def __call__(self, context: NudgeContext) -> str: ...


class LLMMessageGenerator:
    """Generates nudge messages with an LLM provider."""

    def __init__(
        self,
        llm: LLMProvider,
        *,
        model: str | None = None,
        max_length: int = 200,
        max_tokens: int = 1000,
        temperature: float | None = None,
    ) -> None:
        self._llm = llm
        self._model = model
        self._max_length = max_length
        self._max_tokens = max_tokens
        self._temperature = temperature

    def build_prompt(self, context: NudgeContext) -> str:
        return NUDGE_PROMPT.format(
            max_length=self._max_length,
            title=context.title,
            description=context.description or "(none)",
            emotions=", ".join(context.recent_emotions) or "(none logged)",
        )

    async def __call__(self, context: NudgeContext) -> str:
        text = await self._llm.complete_text(
            self.build_prompt(context),
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        logger.debug(
            "nudge_message_generated",
            extra={"llm.provider": self._llm.name, "message.length": len(text)},
        )
        return text

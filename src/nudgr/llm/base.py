"""Provider interface used for nudge message generation."""

from abc import ABC, abstractmethod

from nudgr.llm.types import CompletionResponse, Message, Role


class LLMProvider(ABC):
    """A chat-completion backend (Anthropic, OpenAI).

    Nudgr only needs single-turn text completions; providers implement
    ``complete`` and inherit ``complete_text``.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def default_model(self) -> str: ...

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        system: str | None = None,
        max_tokens: int = 1000,
        temperature: float | None = None,
    ) -> CompletionResponse:
        """Run one completion.

        ``model=None`` uses ``default_model``; ``temperature=None`` leaves the
        provider's default in place. Transient API errors are retried inside
        the provider, anything else propagates.
        """
        ...

    async def complete_text(
        self,
        prompt: str,
        *,
        model: str | None = None,
        max_tokens: int = 1000,
        temperature: float | None = None,
    ) -> str:
        """Send a single user prompt and return the reply text, stripped."""
        response = await self.complete(
            [Message(role=Role.USER, content=prompt)],
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        return response.message.get_text().strip()

"""Anthropic Claude LLM provider."""

import asyncio
import logging
from typing import Any

import anthropic

from nudgr.llm.base import LLMProvider
from nudgr.llm.retry import RetryConfig, with_retry
from nudgr.llm.types import (
    CompletionResponse,
    Message,
    Role,
    TextContent,
    Usage,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-haiku-4-5"


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider."""

    _semaphore: asyncio.Semaphore | None = None
    _max_concurrent: int = 2

    def __init__(self, api_key: str | None = None, max_concurrent: int | None = None):
        self._client = anthropic.AsyncAnthropic(api_key=api_key)
        if max_concurrent is not None:
            AnthropicProvider._max_concurrent = max_concurrent
        if AnthropicProvider._semaphore is None:
            AnthropicProvider._semaphore = asyncio.Semaphore(
                AnthropicProvider._max_concurrent
            )

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def default_model(self) -> str:
        return DEFAULT_MODEL

    def _build_request_kwargs(
        self,
        messages: list[Message],
        model: str | None,
        system: str | None,
        max_tokens: int,
        temperature: float | None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": [
                {"role": msg.role.value, "content": msg.get_text()}
                for msg in messages
                if msg.role != Role.SYSTEM
            ],
            "max_tokens": max_tokens,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if system:
            kwargs["system"] = system
        return kwargs

    def _parse_response(self, response: anthropic.types.Message) -> CompletionResponse:
        content = [
            TextContent(text=block.text)
            for block in response.content
            if block.type == "text"
        ]
        return CompletionResponse(
            message=Message(role=Role.ASSISTANT, content=content),
            usage=Usage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            ),
            stop_reason=response.stop_reason,
            model=response.model,
            raw=response.model_dump(),
        )

    async def complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        system: str | None = None,
        max_tokens: int = 1000,
        temperature: float | None = None,
    ) -> CompletionResponse:
        kwargs = self._build_request_kwargs(
            messages, model, system, max_tokens, temperature
        )
        model_name = kwargs["model"]

        assert self._semaphore is not None
        semaphore = self._semaphore

        async def _make_request() -> anthropic.types.Message:
            async with semaphore:
                response = await self._client.messages.create(**kwargs)
                logger.debug(
                    "llm_complete",
                    extra={
                        "provider": self.name,
                        "model": model_name,
                        "tokens_in": response.usage.input_tokens,
                        "tokens_out": response.usage.output_tokens,
                    },
                )
                return response

        response = await with_retry(
            _make_request,
            config=RetryConfig(enabled=True, max_retries=3),
            operation_name=f"Anthropic {model_name}",
        )
        return self._parse_response(response)

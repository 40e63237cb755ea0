"""OpenAI LLM provider (Responses API)."""

import logging
import time
from typing import Any

import openai

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

DEFAULT_MODEL = "gpt-5-mini"


class OpenAIProvider(LLMProvider):
    """OpenAI provider using the Responses API."""

    def __init__(self, api_key: str | None = None):
        self._client = openai.AsyncOpenAI(api_key=api_key)

    @property
    def name(self) -> str:
        return "openai"

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
        instructions = system
        input_items: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == Role.SYSTEM:
                # Explicit system param wins over a system message
                instructions = instructions or msg.get_text()
                continue
            input_items.append({"role": msg.role.value, "content": msg.get_text()})

        kwargs: dict[str, Any] = {
            "model": model or self.default_model,
            "input": input_items,
            "max_output_tokens": max_tokens,
        }
        if instructions:
            kwargs["instructions"] = instructions
        if temperature is not None:
            kwargs["temperature"] = temperature
        return kwargs

    def _parse_response(self, response: Any) -> CompletionResponse:
        content: list[TextContent] = []
        for item in response.output:
            if item.type == "message":
                for part in item.content:
                    if part.type == "output_text":
                        content.append(TextContent(text=part.text))

        usage = None
        if response.usage:
            usage = Usage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            )

        return CompletionResponse(
            message=Message(role=Role.ASSISTANT, content=content if content else ""),
            usage=usage,
            stop_reason="end_turn",
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

        start_time = time.monotonic()
        response = await with_retry(
            lambda: self._client.responses.create(**kwargs),
            config=RetryConfig(enabled=True, max_retries=3),
            operation_name=f"OpenAI {model_name}",
        )
        duration_ms = int((time.monotonic() - start_time) * 1000)

        extra: dict[str, object] = {
            "provider": self.name,
            "model": model_name,
            "duration_ms": duration_ms,
        }
        if response.usage:
            extra["tokens_in"] = response.usage.input_tokens
            extra["tokens_out"] = response.usage.output_tokens
        logger.info("llm_complete", extra=extra)

        return self._parse_response(response)

"""LLM providers for nudge message generation."""

from nudgr.llm.anthropic import AnthropicProvider
from nudgr.llm.base import LLMProvider
from nudgr.llm.openai import OpenAIProvider
from nudgr.llm.registry import create_llm_provider
from nudgr.llm.types import CompletionResponse, Message, Role, TextContent

__all__ = [
    "AnthropicProvider",
    "CompletionResponse",
    "LLMProvider",
    "Message",
    "OpenAIProvider",
    "Role",
    "TextContent",
    "create_llm_provider",
]

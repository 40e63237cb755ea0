"""Configuration models using Pydantic."""

import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, model_validator

from nudgr.config.paths import get_database_path

logger = logging.getLogger(__name__)


class ModelConfig(BaseModel):
    """Configuration for a named model.

    Temperature is optional - if None, the provider's default is used.
    """

    provider: Literal["anthropic", "openai"]
    model: str
    temperature: float | None = None
    max_tokens: int = 1000


class ProviderConfig(BaseModel):
    """Provider-level configuration."""

    api_key: SecretStr | None = None


class DatabaseConfig(BaseModel):
    """Configuration for the nudge database.

    `url` takes precedence over `path` when both are set.
    """

    url: str | None = None
    path: Path = Field(default_factory=get_database_path)


class EngineConfig(BaseModel):
    """Limits applied by the delivery trigger."""

    max_message_length: int = Field(default=200, gt=0)
    # Seconds allowed for a single message generation call
    generation_timeout: float = Field(default=30.0, gt=0)
    default_list_limit: int = Field(default=50, gt=0)


class WatcherConfig(BaseModel):
    """Configuration for the background nudge watcher."""

    enabled: bool = True
    poll_interval: float = Field(default=60.0, gt=0)
    # Users processed per poll; the rest are picked up next time
    max_users_per_poll: int = Field(default=100, gt=0)


class FeedConfig(BaseModel):
    """Configuration for triggered-nudge feed consumers."""

    poll_interval: float = Field(default=5.0, gt=0)
    poll_limit: int = Field(default=10, gt=0)
    backlog_limit: int = Field(default=50, gt=0)
    backlog_hours: float = Field(default=1.0, ge=0)


class ConfigError(Exception):
    """Configuration error."""

    pass


class NudgrConfig(BaseModel):
    """Root configuration model."""

    models: dict[str, ModelConfig] = Field(default_factory=dict)
    anthropic: ProviderConfig | None = None
    openai: ProviderConfig | None = None
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)

    @model_validator(mode="after")
    def _validate_feed_limits(self) -> "NudgrConfig":
        if self.feed.poll_limit > self.feed.backlog_limit:
            logger.warning(
                "feed_poll_limit_exceeds_backlog",
                extra={
                    "feed.poll_limit": self.feed.poll_limit,
                    "feed.backlog_limit": self.feed.backlog_limit,
                },
            )
        return self

    def get_model(self, alias: str) -> ModelConfig:
        """Get model config by alias.

        Raises:
            ConfigError: If the alias is not found.
        """
        if alias not in self.models:
            available = ", ".join(sorted(self.models.keys())) or "none"
            raise ConfigError(
                f"Unknown model alias '{alias}'. Available: {available}"
            )
        return self.models[alias]

    def list_models(self) -> list[str]:
        return sorted(self.models.keys())

    def resolve_api_key(self, alias: str) -> SecretStr | None:
        """Resolve the API key for a model alias from its provider section."""
        model = self.get_model(alias)
        provider_config = (
            self.anthropic if model.provider == "anthropic" else self.openai
        )
        if provider_config is None:
            return None
        return provider_config.api_key

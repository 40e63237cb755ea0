"""Shared runtime bootstrap helpers for CLI entrypoints."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from nudgr.config import NudgrConfig, get_default_config, load_config
from nudgr.db import Database
from nudgr.nudges import (
    LLMMessageGenerator,
    MessageGenerator,
    NudgeContext,
    NudgeEngine,
    NudgeFeed,
    NudgeQueries,
    NudgeStore,
)


@dataclass(slots=True)
class Runtime:
    """Composed dependencies for CLI command handlers."""

    config: NudgrConfig
    db: Database
    store: NudgeStore
    queries: NudgeQueries

    def engine(self, generator: MessageGenerator | None = None) -> NudgeEngine:
        return NudgeEngine(
            self.store,
            generator or ConfiguredGenerator(self.config),
            max_message_length=self.config.engine.max_message_length,
            generation_timeout=self.config.engine.generation_timeout,
        )

    def feed(self, user_id: str, cursor: datetime | None = None) -> NudgeFeed:
        settings = self.config.feed
        return NudgeFeed(
            self.queries,
            user_id,
            cursor=cursor,
            poll_interval=settings.poll_interval,
            poll_limit=settings.poll_limit,
            backlog_limit=settings.backlog_limit,
            backlog=timedelta(hours=settings.backlog_hours),
        )


class ConfiguredGenerator:
    """Message generator built from config on first use.

    Commands that never trigger a nudge need no provider credentials.
    """

    def __init__(self, config: NudgrConfig, model_alias: str = "default"):
        self._config = config
        self._model_alias = model_alias
        self._generator: LLMMessageGenerator | None = None

    async def __call__(self, context: NudgeContext) -> str:
        if self._generator is None:
            self._generator = create_generator(self._config, self._model_alias)
        return await self._generator(context)


def resolve_config(config_path: Path | None = None) -> NudgrConfig:
    """Load config from an explicit path, the default locations, or defaults."""
    if config_path is not None:
        return load_config(config_path)
    try:
        return load_config()
    except FileNotFoundError:
        return get_default_config()


def create_database(config: NudgrConfig) -> Database:
    if config.database.url:
        return Database(database_url=config.database.url)
    return Database(database_path=config.database.path.expanduser())


def create_generator(
    config: NudgrConfig, model_alias: str = "default"
) -> LLMMessageGenerator:
    """Create the LLM-backed message generator for a model alias."""
    from nudgr.llm import create_llm_provider

    model = config.get_model(model_alias)
    llm = create_llm_provider(
        model.provider, api_key=config.resolve_api_key(model_alias)
    )
    return LLMMessageGenerator(
        llm,
        model=model.model,
        max_length=config.engine.max_message_length,
        max_tokens=model.max_tokens,
        temperature=model.temperature,
    )


async def default_context(user_id: str, task_id: str) -> NudgeContext:
    """Context used when no task source is wired in: the task id as its title."""
    return NudgeContext(title=task_id)


@asynccontextmanager
async def open_runtime(config: NudgrConfig) -> AsyncGenerator[Runtime, None]:
    db = create_database(config)
    await db.connect()
    try:
        store = NudgeStore(db)
        yield Runtime(
            config=config,
            db=db,
            store=store,
            queries=NudgeQueries(
                store, default_list_limit=config.engine.default_list_limit
            ),
        )
    finally:
        await db.disconnect()

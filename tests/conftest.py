"""Shared test fixtures and factories."""

import asyncio
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from nudgr.db.engine import Database
from nudgr.db.models import Base
from nudgr.nudges import (
    NudgeContext,
    NudgeEngine,
    NudgeQueries,
    NudgeStore,
)

START = datetime(2026, 1, 10, 9, 0, tzinfo=UTC)

# =============================================================================
# Clock and Generator Fakes
# =============================================================================


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class StubGenerator:
    """Message generator returning canned text and recording its inputs."""

    def __init__(self, message: str = "Open the doc and write one sentence."):
        self.message = message
        self.calls: list[NudgeContext] = []

    async def __call__(self, context: NudgeContext) -> str:
        self.calls.append(context)
        return self.message


class FailingGenerator:
    """Message generator that always raises."""

    def __init__(self, error: Exception | None = None):
        self.error = error or RuntimeError("model unavailable")
        self.calls = 0

    async def __call__(self, context: NudgeContext) -> str:
        self.calls += 1
        raise self.error


class GatedGenerator:
    """Message generator that waits for a gate before answering.

    Lets tests hold several triggers inside generation at once.
    """

    def __init__(self, message: str = "Start with the first step."):
        self.message = message
        self.gate = asyncio.Event()
        self.entered = 0

    async def __call__(self, context: NudgeContext) -> str:
        self.entered += 1
        await self.gate.wait()
        return self.message


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    """Create a temporary test database."""
    db_path = tmp_path / "test.db"
    db = Database(database_path=db_path)
    await db.connect()

    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield db

    await db.disconnect()


@pytest.fixture
def store(database: Database) -> NudgeStore:
    return NudgeStore(database)


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def generator() -> StubGenerator:
    return StubGenerator()


@pytest.fixture
def engine(
    store: NudgeStore, generator: StubGenerator, clock: FakeClock
) -> NudgeEngine:
    return NudgeEngine(store, generator, clock=clock)


@pytest.fixture
def queries(store: NudgeStore, clock: FakeClock) -> NudgeQueries:
    return NudgeQueries(store, clock=clock)


@pytest.fixture
def context() -> NudgeContext:
    return NudgeContext(
        title="Write essay",
        description="History essay, 1500 words",
        recent_emotions=("anxious", "tired"),
    )


# =============================================================================
# CLI Fixtures
# =============================================================================


@pytest.fixture
def config_toml_content(tmp_path: Path) -> str:
    """Valid TOML config content pointing at a temporary database."""
    return f"""
[models.default]
provider = "anthropic"
model = "claude-haiku-4-5"

[database]
path = "{tmp_path / "nudgr.db"}"
"""


@pytest.fixture
def config_file(tmp_path: Path, config_toml_content: str) -> Path:
    """Create a temporary config file."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(config_toml_content)
    return config_path


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1"})

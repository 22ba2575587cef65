"""Shared fixtures for task-graph tests."""

from collections.abc import Iterator
from datetime import datetime, timedelta, timezone

import pytest
import structlog

from task_graph.cli import configure_logging
from task_graph.engine import TaskEngine
from task_graph.persistence import MemoryPersistence

BASE_TIME = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


class StepClock:
    """Clock source that moves one minute forward on every reading."""

    def __init__(self, start: datetime = BASE_TIME) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(minutes=1)
        return value


@pytest.fixture
def persistence() -> MemoryPersistence:
    return MemoryPersistence()


@pytest.fixture
def engine(persistence: MemoryPersistence) -> Iterator[TaskEngine]:
    """Open engine over an in-memory store with a stepping clock."""
    with TaskEngine(persistence, clock=StepClock()) as opened:
        yield opened


@pytest.fixture
def step_clock() -> StepClock:
    return StepClock()


@pytest.fixture(autouse=True)
def quiet_logging() -> Iterator[None]:
    """Apply the CLI's default log level, as the `main` entry point does."""
    configure_logging("critical")
    yield
    structlog.reset_defaults()

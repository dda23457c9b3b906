"""
Shared fixtures for the cochain test suite.

Every test gets its own arena so slot counts and chain layouts never leak
between tests.
"""

from collections.abc import Iterator

import pytest

from cochain import RuntimeConfig, Scheduler, TaskArena, use_arena


class FakeClock:
    """Manually advanced microsecond clock."""

    def __init__(self, start: int = 0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, micros: int) -> None:
        self.now += micros


@pytest.fixture(autouse=True)
def arena() -> Iterator[TaskArena]:
    fresh = TaskArena()
    with use_arena(fresh):
        yield fresh


@pytest.fixture()
def scheduler(arena: TaskArena) -> Scheduler:
    return Scheduler(arena=arena, config=RuntimeConfig())


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()

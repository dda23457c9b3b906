"""Runtime error types.

Everything here except ``SchedulerStalledError`` signals a broken caller
contract. None of them is meant to be caught and recovered from.
"""

from __future__ import annotations

from typing import Any


class ContractViolationError(RuntimeError):
    """Base class for misuse of the task runtime."""


class TaskAlreadyCompletedError(ContractViolationError):
    """Raised when completing a task that is already completed."""

    def __init__(self, label: str) -> None:
        self.label = label
        super().__init__(f"Task {label!r} is already completed")


class StaleHandleError(ContractViolationError):
    """Raised when a task handle is used after it was moved or released."""

    def __init__(self, index: int, generation: int) -> None:
        self.index = index
        self.generation = generation
        super().__init__(
            f"Task handle (slot={index}, generation={generation}) no longer owns its slot. "
            "Hint: the task was moved (awaited, transformed, spawned) or already released."
        )


class ForeignArenaError(ContractViolationError):
    """Raised when tasks from two different arenas are linked together."""


class ReentrantRunError(ContractViolationError):
    """Raised when ``Scheduler.run`` is called while it is already running."""


class SpawnRejectedError(ContractViolationError):
    """Raised when a task cannot be registered as a root task."""


class TaskCopyError(TypeError):
    """Raised on any attempt to copy a task handle."""

    def __init__(self) -> None:
        super().__init__("Tasks cannot be copied; use Task.move() to transfer ownership")


class InvalidYieldError(ContractViolationError):
    """Raised inside the driver when a coroutine yields something it cannot await."""

    def __init__(self, yielded: Any) -> None:
        self.yielded = yielded
        super().__init__(
            f"Coroutine yielded {type(yielded).__name__}; expected None, SUSPEND or a Task"
        )


class SchedulerStalledError(RuntimeError):
    """Raised when a scheduler exceeds its configured ``max_ticks``."""

    def __init__(self, max_ticks: int, pending: int) -> None:
        self.max_ticks = max_ticks
        self.pending = pending
        super().__init__(f"Scheduler still has {pending} root task(s) after {max_ticks} ticks")


__all__ = [
    "ContractViolationError",
    "ForeignArenaError",
    "InvalidYieldError",
    "ReentrantRunError",
    "SchedulerStalledError",
    "SpawnRejectedError",
    "StaleHandleError",
    "TaskAlreadyCompletedError",
    "TaskCopyError",
]

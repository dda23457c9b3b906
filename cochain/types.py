"""
Basic enums shared by the arena, the task handles and the scheduler.

- TaskState: lifecycle of a single task node
- DriveResult: outcome of walking one chain
"""

from __future__ import annotations

from enum import Enum, auto


class TaskState(Enum):
    """Lifecycle state of a task node."""

    COMPLETED = auto()
    """Result slot is final; the node is a self-looped singleton."""

    SUSPENDED = auto()
    """Node holds a continuation waiting to be resumed."""

    PENDING_TRANSFORM = auto()
    """Node holds a callback that converts its source's result."""

    FAULTED = auto()
    """Continuation or callback raised; the node will never complete."""


class DriveResult(Enum):
    """Outcome of one ``drive_chain`` call."""

    EXHAUSTED = auto()
    SUSPENDED = auto()
    FAULTED = auto()


__all__ = ["DriveResult", "TaskState"]

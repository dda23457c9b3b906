"""
Chain introspection for debugging stuck or leaked tasks.

Each node records the call site that created it. ``chain_trace`` walks a
root task's chain and reports those call sites either outermost-first (the
order a reader follows the awaits) or innermost-first (the order the drive
loop will resume them).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from loguru import logger

from cochain.types import TaskState

if TYPE_CHECKING:
    from cochain.scheduler import Scheduler
    from cochain.task import Task

trace_logger = logger.bind(component="cochain.trace")


class TraceOrder(Enum):
    OUTERMOST_FIRST = "outermost_first"
    INNERMOST_FIRST = "innermost_first"


@dataclass(frozen=True)
class TraceEntry:
    label: str
    filename: str | None
    line: int
    state: TaskState
    suspended_at: int | None = None

    def format(self) -> str:
        where = f"{self.label}:{self.line}"
        if self.suspended_at is not None:
            where += f" (paused at line {self.suspended_at})"
        return f"{where} [{self.state.name}]"


@dataclass(frozen=True)
class RootTrace:
    position: int
    entries: tuple[TraceEntry, ...]


def chain_trace(
    task: Task[Any], order: TraceOrder = TraceOrder.OUTERMOST_FIRST
) -> tuple[TraceEntry, ...]:
    arena = task.arena
    innermost_first = order is TraceOrder.INNERMOST_FIRST
    entries: list[TraceEntry] = []
    for index in arena.walk(task.index, innermost_first=innermost_first):
        node = arena[index]
        suspended_at = node.continuation.suspended_at if node.continuation is not None else None
        entries.append(
            TraceEntry(
                label=node.label,
                filename=node.filename,
                line=node.line,
                state=node.state,
                suspended_at=suspended_at,
            )
        )
    return tuple(entries)


def format_trace(traces: Iterable[RootTrace]) -> list[str]:
    lines: list[str] = []
    for trace in traces:
        lines.append(f"coroutine-{trace.position}:")
        lines.extend(f"    {entry.format()}" for entry in trace.entries)
    return lines


def dump_trace(
    scheduler: Scheduler, order: TraceOrder = TraceOrder.OUTERMOST_FIRST
) -> list[str]:
    """Log every pending root chain through loguru and return the lines."""
    lines = format_trace(scheduler.trace(order))
    for line in lines:
        trace_logger.debug(line)
    return lines


__all__ = [
    "RootTrace",
    "TraceEntry",
    "TraceOrder",
    "chain_trace",
    "dump_trace",
    "format_trace",
]

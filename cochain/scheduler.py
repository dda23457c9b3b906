"""
Task pool that drives independent root tasks to completion.

Each tick drives every registered root chain once, in spawn order. A root
whose chain is exhausted is released; a root whose chain faulted is
abandoned and recorded in ``Scheduler.faults``. ``run()`` repeats ticks
until the pool is empty. There is no blocking between ticks: the loop
busy-polls, so external conditions (clock, flags) must eventually let
every task finish.

Example::

    scheduler = Scheduler()
    scheduler.spawn(blink(led, times=3))
    scheduler.run()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from cochain._vendor import FrozenDict
from cochain.arena import TaskArena, current_arena
from cochain.config import RuntimeConfig
from cochain.errors import (
    ForeignArenaError,
    ReentrantRunError,
    SchedulerStalledError,
    SpawnRejectedError,
)
from cochain.task import Task, drive_chain
from cochain.trace import RootTrace, TraceEntry, TraceOrder, chain_trace
from cochain.types import DriveResult, TaskState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FaultReport:
    """A root task abandoned because a node in its chain faulted."""

    label: str
    error: BaseException | None
    trace: tuple[TraceEntry, ...]


class Scheduler:
    """Round-robin pool of root tasks sharing one arena.

    The pool owns every spawned root until its chain is exhausted or
    abandoned after a fault. A contract violation raised while a root is
    driven propagates out of ``tick()``; every root that has not finished
    stays in the pool.
    """

    def __init__(
        self,
        arena: TaskArena | None = None,
        config: RuntimeConfig | None = None,
    ) -> None:
        self.config = config if config is not None else RuntimeConfig.from_env()
        self.arena = arena if arena is not None else current_arena()
        self.faults: list[FaultReport] = []
        self.ticks = 0
        self._roots: list[Task[Any]] = []
        self._spawned = 0
        self._completed = 0
        self._busy = False

    def __repr__(self) -> str:
        return f"Scheduler(pending={self.pending}, ticks={self.ticks})"

    @property
    def pending(self) -> int:
        return sum(1 for root in self._roots if root.is_valid())

    def spawn(self, task: Task[Any]) -> None:
        """Register ``task`` as a root task; ownership moves to the pool.

        Tasks that are already completed are released instead of queued.
        """
        if task.arena is not self.arena:
            raise ForeignArenaError(f"{task!r} belongs to a different arena than this scheduler")
        if self.arena[task.index].nested:
            raise SpawnRejectedError(f"{task!r} is linked inside another task's chain")

        root = task.move()
        if root.is_done():
            if self.config.debug:
                logger.debug("spawn: %s already completed, dropping", root.label)
            root.release()
            return

        self._roots.append(root)
        self._spawned += 1
        if self.config.debug:
            logger.debug("spawn: %s (pending=%d)", root.label, len(self._roots))

    def tick(self) -> int:
        """Drive every root once; return the number still pending."""
        if self._busy:
            raise ReentrantRunError("Scheduler.tick() called from inside a running tick")
        self._busy = True
        # roots spawned during this tick are appended to _roots and run from the next one
        finished: set[int] = set()
        try:
            for root in list(self._roots):
                outcome = drive_chain(root)
                if outcome is DriveResult.EXHAUSTED:
                    root.release()
                    self._completed += 1
                    finished.add(id(root))
                elif outcome is DriveResult.FAULTED:
                    self._abandon(root)
                    finished.add(id(root))
            self.ticks += 1
        finally:
            if finished:
                self._roots = [root for root in self._roots if id(root) not in finished]
            self._busy = False
        return len(self._roots)

    def run(self) -> None:
        """Tick until no root task is left."""
        if self._busy:
            raise ReentrantRunError("Scheduler.run() is not re-entrant")
        max_ticks = self.config.max_ticks
        ticks = 0
        while self._roots:
            if max_ticks is not None and ticks >= max_ticks:
                raise SchedulerStalledError(max_ticks, len(self._roots))
            self.tick()
            ticks += 1
        logger.debug("run finished after %d tick(s)", ticks)

    def _abandon(self, root: Task[Any]) -> None:
        entries = chain_trace(root, TraceOrder.INNERMOST_FIRST)
        error = next(
            (
                self.arena[index].error
                for index in self.arena.walk(root.index, innermost_first=True)
                if self.arena[index].state is TaskState.FAULTED
            ),
            None,
        )
        logger.warning(
            "Abandoning root task %r after fault: %r; chain (innermost first): %s",
            root.label,
            error,
            " <- ".join(f"{entry.label}:{entry.line}" for entry in entries),
        )
        self.faults.append(FaultReport(label=root.label, error=error, trace=entries))
        for node in self.arena.discard_chain(root.index):
            if node.continuation is not None:
                node.continuation.close()
        root._disown()

    def trace(self, order: TraceOrder = TraceOrder.OUTERMOST_FIRST) -> list[RootTrace]:
        return [
            RootTrace(position=position, entries=chain_trace(root, order))
            for position, root in enumerate(root for root in self._roots if root.is_valid())
        ]

    def stats(self) -> FrozenDict:
        return FrozenDict(
            ticks=self.ticks,
            spawned=self._spawned,
            completed=self._completed,
            faulted=len(self.faults),
            pending=self.pending,
            live_slots=self.arena.live_count,
        )


__all__ = ["FaultReport", "Scheduler"]

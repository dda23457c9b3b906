"""
Slot storage for task nodes and the intrusive chain operations.

Nodes are addressed by integer indices. Chain links (``prev``/``next``) are
indices into the same arena, so a node can be handed from one owner to
another without touching its neighbours. Each slot carries a generation
counter that is bumped on release; handles compare it to detect reuse.

Chain layout:
    Walking ``prev`` from a chain head visits the innermost pending node
    first and the head last. Walking ``next`` goes outermost to innermost.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from cochain.config import RuntimeConfig
from cochain.errors import ContractViolationError, StaleHandleError
from cochain.types import TaskState

if TYPE_CHECKING:
    from cochain.continuation import Continuation
    from cochain.transform import PendingCallback

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TaskNode:
    """Storage record behind a ``Task`` handle."""

    state: TaskState
    prev: int
    next: int
    continuation: Continuation | None = None
    callback: PendingCallback | None = None
    value: Any = None
    error: BaseException | None = None
    label: str = "<task>"
    filename: str | None = None
    line: int = 0
    nested: bool = False
    """Spliced inside another task's chain rather than heading its own."""


class TaskArena:
    """Owns every task node reachable from one scheduler."""

    def __init__(self, *, debug: bool = False) -> None:
        self.debug = debug
        self._nodes: list[TaskNode | None] = []
        self._generations: list[int] = []
        self._free: list[int] = []
        # number of drive_node calls currently on the stack
        self.active_drives = 0

    def __repr__(self) -> str:
        return f"TaskArena(live={self.live_count}, capacity={len(self._nodes)})"

    @property
    def live_count(self) -> int:
        return len(self._nodes) - len(self._free)

    def allocate(
        self,
        state: TaskState,
        *,
        continuation: Continuation | None = None,
        callback: PendingCallback | None = None,
        value: Any = None,
        label: str = "<task>",
        filename: str | None = None,
        line: int = 0,
    ) -> tuple[int, int]:
        """Store a fresh singleton node and return ``(index, generation)``."""
        if self._free:
            index = self._free.pop()
        else:
            index = len(self._nodes)
            self._nodes.append(None)
            self._generations.append(0)
        self._nodes[index] = TaskNode(
            state=state,
            prev=index,
            next=index,
            continuation=continuation,
            callback=callback,
            value=value,
            label=label,
            filename=filename,
            line=line,
        )
        return index, self._generations[index]

    def __getitem__(self, index: int) -> TaskNode:
        node = self._nodes[index]
        if node is None:
            raise StaleHandleError(index, self._generations[index])
        return node

    def generation(self, index: int) -> int:
        return self._generations[index]

    def is_live(self, index: int, generation: int) -> bool:
        return (
            0 <= index < len(self._nodes)
            and self._nodes[index] is not None
            and self._generations[index] == generation
        )

    def release(self, index: int, generation: int) -> None:
        """Free a singleton slot. A slot can be released once per generation."""
        if not self.is_live(index, generation):
            raise StaleHandleError(index, generation)
        node = self[index]
        if node.prev != index or node.next != index:
            raise ContractViolationError(
                f"Task {node.label!r} is still linked into a chain and cannot be released"
            )
        self._discard(index)

    def _discard(self, index: int) -> None:
        if self.debug:
            logger.debug("release slot=%d label=%s", index, self[index].label)
        self._nodes[index] = None
        self._generations[index] += 1
        self._free.append(index)

    # ------------------------------------------------------------------
    # Chain operations
    # ------------------------------------------------------------------

    def splice(self, awaiting: int, dependency: int) -> None:
        """Insert ``dependency``'s whole chain just inside ``awaiting``.

        ``dependency`` must be the head of its own chain. Afterwards the
        dependency's innermost node is the innermost node of ``awaiting``'s
        chain.
        """
        if awaiting == dependency:
            raise ContractViolationError("A task cannot await itself")
        this = self[awaiting]
        head = self[dependency]
        tail_index = head.prev
        tail = self[tail_index]
        tail.next = this.next
        self[this.next].prev = tail_index
        this.next = dependency
        head.prev = awaiting
        head.nested = True
        if self.debug:
            logger.debug("splice %s <- %s", this.label, head.label)

    def pop(self, index: int) -> None:
        """Detach ``index`` from its chain and make it a singleton."""
        node = self[index]
        self[node.prev].next = node.next
        self[node.next].prev = node.prev
        node.prev = node.next = index
        node.nested = False
        if self.debug:
            logger.debug("pop %s", node.label)

    def walk(self, head: int, *, innermost_first: bool = False) -> Iterator[int]:
        """Yield every index in ``head``'s chain, once each."""
        if innermost_first:
            current = self[head].prev
            while current != head:
                yield current
                current = self[current].prev
            yield head
        else:
            current = head
            while True:
                yield current
                current = self[current].next
                if current == head:
                    return

    def discard_chain(self, head: int) -> list[TaskNode]:
        """Unlink and free every node of ``head``'s chain.

        Returns the discarded records so the caller can close their
        continuations.
        """
        indices = list(self.walk(head))
        discarded = [self[index] for index in indices]
        for index in indices:
            node = self[index]
            node.prev = node.next = index
            self._discard(index)
        return discarded


_DEFAULT_ARENA = TaskArena(debug=RuntimeConfig.from_env().debug)

_current_arena: ContextVar[TaskArena] = ContextVar("cochain_arena", default=_DEFAULT_ARENA)


def current_arena() -> TaskArena:
    """Arena that newly created tasks are allocated in."""
    return _current_arena.get()


@contextmanager
def use_arena(arena: TaskArena) -> Iterator[TaskArena]:
    """Allocate tasks created inside the block in ``arena``."""
    token = _current_arena.set(arena)
    try:
        yield arena
    finally:
        _current_arena.reset(token)


__all__ = [
    "TaskArena",
    "TaskNode",
    "current_arena",
    "use_arena",
]

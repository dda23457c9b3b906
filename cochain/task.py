"""
Task handles and the chain drive loop.

A ``Task`` is a single-owner handle to a node in a ``TaskArena``. Ownership
moves with ``Task.move()``: the new handle owns the slot and the old one
raises ``StaleHandleError`` on any further use. Awaiting, transforming and
spawning a task all move it.

``drive_chain`` is the only place that resumes continuations or invokes
pending transform callbacks. It walks the chain innermost-first in an
explicit loop, so arbitrarily deep await nesting never recurses.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from cochain._vendor import Err, Ok, Result
from cochain.arena import TaskArena, TaskNode, current_arena, use_arena
from cochain.errors import (
    ContractViolationError,
    ForeignArenaError,
    StaleHandleError,
    TaskAlreadyCompletedError,
    TaskCopyError,
)
from cochain.types import DriveResult, TaskState

if TYPE_CHECKING:
    from cochain.continuation import Continuation
    from cochain.transform import PendingCallback

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")


def capture_call_site(skip_frames: int = 2) -> tuple[str | None, int]:
    """Return ``(filename, line)`` of the frame ``skip_frames`` above the caller."""
    try:
        frame = sys._getframe(skip_frames)
    except ValueError:
        return None, 0
    return frame.f_code.co_filename, frame.f_lineno


class Task(Generic[T]):
    """Handle to a suspendable unit of work."""

    __slots__ = ("_arena", "_index", "_generation", "_owned")

    def __init__(self, arena: TaskArena, index: int, generation: int) -> None:
        self._arena = arena
        self._index = index
        self._generation = generation
        self._owned = True

    @classmethod
    def _allocate(
        cls,
        state: TaskState,
        *,
        arena: TaskArena | None = None,
        continuation: Continuation | None = None,
        callback: PendingCallback | None = None,
        value: Any = None,
        label: str = "<task>",
        filename: str | None = None,
        line: int = 0,
    ) -> Task[Any]:
        arena = arena if arena is not None else current_arena()
        index, generation = arena.allocate(
            state,
            continuation=continuation,
            callback=callback,
            value=value,
            label=label,
            filename=filename,
            line=line,
        )
        return cls(arena, index, generation)

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    @property
    def arena(self) -> TaskArena:
        return self._arena

    @property
    def index(self) -> int:
        self._check()
        return self._index

    @property
    def _node(self) -> TaskNode:
        self._check()
        return self._arena[self._index]

    def _check(self) -> None:
        if not self._owned or not self._arena.is_live(self._index, self._generation):
            raise StaleHandleError(self._index, self._generation)

    def is_valid(self) -> bool:
        """``True`` while this handle still owns a live slot."""
        return self._owned and self._arena.is_live(self._index, self._generation)

    def move(self) -> Task[T]:
        """Transfer ownership to a new handle; this handle becomes stale."""
        self._check()
        self._owned = False
        return Task(self._arena, self._index, self._generation)

    def release(self) -> None:
        """Free the slot. Only a self-looped node can be released."""
        self._check()
        self._arena.release(self._index, self._generation)
        self._owned = False

    def _disown(self) -> None:
        self._owned = False

    def __copy__(self) -> Task[T]:
        raise TaskCopyError()

    def __deepcopy__(self, memo: dict[int, Any]) -> Task[T]:
        raise TaskCopyError()

    def __repr__(self) -> str:
        if not self.is_valid():
            return f"Task(<moved or released> slot={self._index})"
        node = self._arena[self._index]
        return f"Task({node.label!r}, state={node.state.name}, slot={self._index})"

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> TaskState:
        return self._node.state

    def is_done(self) -> bool:
        return self._node.state is TaskState.COMPLETED

    def is_resumable(self) -> bool:
        return self._node.state is TaskState.SUSPENDED

    def is_pending_transform(self) -> bool:
        return self._node.state is TaskState.PENDING_TRANSFORM

    def is_faulted(self) -> bool:
        return self._node.state is TaskState.FAULTED

    @property
    def value(self) -> T:
        node = self._node
        if node.state is not TaskState.COMPLETED:
            raise ContractViolationError(
                f"Task {node.label!r} has no value yet (state={node.state.name})"
            )
        return node.value

    @property
    def error(self) -> BaseException | None:
        return self._node.error

    def result(self) -> Result[T]:
        """``Ok(value)`` once completed, ``Err(error)`` once faulted."""
        node = self._node
        if node.state is TaskState.COMPLETED:
            return Ok(node.value)
        if node.state is TaskState.FAULTED and isinstance(node.error, Exception):
            return Err(node.error)
        raise ContractViolationError(
            f"Task {node.label!r} has no result yet (state={node.state.name})"
        )

    @property
    def label(self) -> str:
        return self._node.label

    @property
    def filename(self) -> str | None:
        return self._node.filename

    @property
    def line(self) -> int:
        return self._node.line

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def complete_with(self, value: T) -> None:
        complete_node(self._arena, self.index, value)

    def complete(self) -> None:
        complete_node(self._arena, self.index, None)

    def append(self, dependency: Task[Any]) -> None:
        """Splice ``dependency``'s chain just inside this task."""
        if dependency.arena is not self._arena:
            raise ForeignArenaError(
                f"Cannot link {dependency!r} into a chain owned by a different arena"
            )
        self._arena.splice(self.index, dependency.index)

    def drive_chain(self) -> DriveResult:
        return drive_chain(self)

    def trans(self, convert: Callable[[T], U] | None = None) -> Task[U]:
        """Shorthand for ``transform(self, convert)``."""
        from cochain.transform import transform

        return transform(self, convert)


def ready(value: T = None) -> Task[T]:  # type: ignore[assignment]
    """A task that is already completed with ``value``."""
    filename, line = capture_call_site()
    return Task._allocate(
        TaskState.COMPLETED, value=value, label="ready", filename=filename, line=line
    )


def complete_node(arena: TaskArena, index: int, value: Any) -> None:
    node = arena[index]
    if node.state is TaskState.COMPLETED:
        raise TaskAlreadyCompletedError(node.label)
    node.state = TaskState.COMPLETED
    node.value = value
    node.continuation = None
    node.callback = None
    arena.pop(index)


def drive_node(arena: TaskArena, index: int) -> None:
    """Resume a suspended node or invoke its pending callback.

    Failures raised by user code are recorded on the node, which becomes
    ``FAULTED``; they are never rethrown to the awaiting task.
    Contract violations propagate.

    Coroutines created while a node is being driven are not started at
    creation; the drive loop starts them when it reaches them.
    """
    node = arena[index]
    if node.state is TaskState.SUSPENDED:
        step = node.continuation
    elif node.state is TaskState.PENDING_TRANSFORM:
        step = node.callback
    else:
        raise ContractViolationError(
            f"Cannot drive task {node.label!r} in state {node.state.name}"
        )
    if step is None:
        raise ContractViolationError(
            f"Task {node.label!r} is {node.state.name} but has nothing to run"
        )

    arena.active_drives += 1
    try:
        if node.state is TaskState.SUSPENDED:
            node.continuation.resume(arena, index)  # type: ignore[union-attr]
        else:
            node.callback(arena, index)  # type: ignore[misc]
    except ContractViolationError:
        raise
    except Exception as exc:
        logger.exception("Task %r faulted", node.label)
        node.state = TaskState.FAULTED
        node.error = exc
        node.continuation = None
        node.callback = None
    finally:
        arena.active_drives -= 1


def drive_chain(head: Task[Any]) -> DriveResult:
    """Drive ``head``'s chain innermost-first until it suspends or is exhausted."""
    arena = head.arena
    root = head.index
    with use_arena(arena):
        last = arena[root].prev
        while arena[last].state is not TaskState.COMPLETED:
            if arena[last].state is TaskState.FAULTED:
                return DriveResult.FAULTED
            drive_node(arena, last)
            state = arena[last].state
            if state is TaskState.FAULTED:
                return DriveResult.FAULTED
            if state is not TaskState.COMPLETED and last == arena[root].prev:
                return DriveResult.SUSPENDED
            last = arena[root].prev
    return DriveResult.EXHAUSTED


__all__ = [
    "Task",
    "capture_call_site",
    "complete_node",
    "drive_chain",
    "drive_node",
    "ready",
]

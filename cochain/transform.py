"""
Result-mapping combinators.

``transform(source, convert)`` returns a task whose value is
``convert(source.value)``. If ``source`` is still pending, the conversion
is deferred: the source is spliced in front of the new task and a pending
callback runs the conversion once the drive loop reaches it.

This lets synchronous post-processing be attached to a suspending
primitive without writing another coroutine::

    reading = sensor.read().trans(lambda raw: raw * 0.1)
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from cochain.errors import ContractViolationError
from cochain.task import Task, capture_call_site, complete_node
from cochain.types import TaskState

if TYPE_CHECKING:
    from cochain.arena import TaskArena

T = TypeVar("T")
U = TypeVar("U")


class PendingCallback(Protocol):
    def __call__(self, arena: TaskArena, index: int) -> None: ...


class TransformCallback:
    """Owns the relocated source until the conversion runs."""

    __slots__ = ("source", "convert")

    def __init__(self, source: Task[Any], convert: Callable[[Any], Any] | None) -> None:
        self.source: Task[Any] | None = source
        self.convert = convert

    def __call__(self, arena: TaskArena, index: int) -> None:
        source = self.source
        if source is None:
            raise ContractViolationError("transform callback invoked twice")
        if not source.is_done():
            # driven ahead of its source; stay pending
            return
        self.source = None
        try:
            value = _apply(self.convert, source)
        finally:
            source.release()
        complete_node(arena, index, value)


def _apply(convert: Callable[[Any], Any] | None, source: Task[Any]) -> Any:
    if convert is None:
        return None
    return convert(source.value)


def _describe(convert: Callable[..., Any] | None) -> str:
    if convert is None:
        return "transform"
    name = getattr(convert, "__qualname__", None) or type(convert).__name__
    return f"transform({name})"


def transform(source: Task[T], convert: Callable[[T], U] | None = None) -> Task[U]:
    """Map ``source``'s result through ``convert``.

    Ownership of ``source`` moves into the returned task. With
    ``convert=None`` the result is discarded and the new task completes
    with ``None``.
    """
    src = source.move()
    filename, line = capture_call_site()
    label = _describe(convert)

    if src.is_done():
        try:
            value = _apply(convert, src)
        finally:
            src.release()
        return Task._allocate(
            TaskState.COMPLETED,
            arena=src.arena,
            value=value,
            label=label,
            filename=filename,
            line=line,
        )

    task: Task[U] = Task._allocate(
        TaskState.PENDING_TRANSFORM,
        arena=src.arena,
        callback=TransformCallback(src, convert),
        label=label,
        filename=filename,
        line=line,
    )
    task.append(src)
    return task


def then(source: Task[Any], action: Callable[[], Any] | None = None) -> Task[None]:
    """Run ``action()`` once ``source`` completes; the result is ``None``."""
    if action is None:
        return transform(source)

    def run_action(_: Any) -> None:
        action()

    run_action.__qualname__ = getattr(action, "__qualname__", "action")
    return transform(source, run_action)


__all__ = [
    "PendingCallback",
    "TransformCallback",
    "then",
    "transform",
]

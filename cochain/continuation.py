"""
Generator-backed continuations and the ``@coroutine`` decorator.

A coroutine body is a plain generator function. Inside it:

    yield                 suspend until the next scheduler tick
    yield SUSPEND         same, spelled explicitly
    value = yield task    await ``task``; ownership of ``task`` moves here

Awaiting a task that is already completed resumes the body immediately
with its value. Awaiting a pending task splices it into the awaiting
task's chain and suspends; the drive loop resumes the body once the
awaited task has completed.

Example::

    @coroutine
    def fetch_twice(sensor):
        first = yield sensor.read()
        second = yield sensor.read()
        return first + second
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Generator
from functools import wraps
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar, overload

from cochain.errors import ForeignArenaError, InvalidYieldError
from cochain.task import Task, capture_call_site, complete_node, drive_chain, ready
from cochain.types import TaskState

if TYPE_CHECKING:
    from cochain.arena import TaskArena

P = ParamSpec("P")
T = TypeVar("T")

CoroutineBody = Generator[Any, Any, T]


class _Suspend:
    __slots__ = ()

    def __repr__(self) -> str:
        return "SUSPEND"


SUSPEND = _Suspend()


class Continuation:
    """Resumable state of one coroutine task.

    Either awaits nothing (fresh, or suspended by a bare ``yield``) or
    awaits a task handle whose value is sent in on the next resume.
    """

    __slots__ = ("_generator", "_awaiting")

    def __init__(self, generator: Generator[Any, Any, Any]) -> None:
        self._generator = generator
        self._awaiting: Task[Any] | None = None

    @property
    def awaiting(self) -> Task[Any] | None:
        return self._awaiting

    @property
    def suspended_at(self) -> int | None:
        """Line the generator is currently paused on, if it has started."""
        if inspect.getgeneratorstate(self._generator) != inspect.GEN_SUSPENDED:
            return None
        return self._generator.gi_frame.f_lineno

    def resume(self, arena: TaskArena, index: int) -> None:
        send_value: Any = None
        if self._awaiting is not None:
            awaited, self._awaiting = self._awaiting, None
            send_value = awaited.value
            awaited.release()

        while True:
            try:
                yielded = self._generator.send(send_value)
            except StopIteration as stop:
                complete_node(arena, index, stop.value)
                return

            if yielded is None or yielded is SUSPEND:
                return
            if not isinstance(yielded, Task):
                self._generator.close()
                raise InvalidYieldError(yielded)

            if yielded.arena is not arena:
                self._generator.close()
                raise ForeignArenaError(f"Cannot await {yielded!r} from a different arena")
            dependency = yielded.move()
            if dependency.is_done():
                send_value = dependency.value
                dependency.release()
                continue

            self._awaiting = dependency
            arena.splice(index, dependency.index)
            return

    def close(self) -> None:
        self._awaiting = None
        self._generator.close()


@overload
def coroutine(func: Callable[P, CoroutineBody[T]], /) -> Callable[P, Task[T]]: ...


@overload
def coroutine(
    *, lazy: bool = False
) -> Callable[[Callable[P, CoroutineBody[T]]], Callable[P, Task[T]]]: ...


def coroutine(func: Any = None, /, *, lazy: bool = False) -> Any:
    """Turn a generator function into a function returning ``Task``.

    By default a task created outside any running drive has its chain
    driven immediately up to the first suspension point, so a body that
    never suspends returns an already completed task. A task created while
    another task is being driven (inside a coroutine body or a transform)
    starts when the drive loop first reaches it; for an awaited task that
    is the same drive call, and the await nesting depth never grows the
    Python stack. With ``lazy=True`` the body does not start until the
    task is first driven.

    A decorated function that returns a ``Task`` instead of a generator
    hands that task back unchanged; any other plain return value is wrapped
    with ``ready``.
    """

    def decorate(fn: Callable[P, CoroutineBody[T]]) -> Callable[P, Task[T]]:
        label = fn.__qualname__

        @wraps(fn)
        def create(*args: P.args, **kwargs: P.kwargs) -> Task[T]:
            body = fn(*args, **kwargs)
            if isinstance(body, Task):
                return body
            if not inspect.isgenerator(body):
                return ready(body)

            filename, line = capture_call_site()
            task: Task[T] = Task._allocate(
                TaskState.SUSPENDED,
                continuation=Continuation(body),
                label=label,
                filename=filename,
                line=line,
            )
            # inside a running drive the loop starts the task when it reaches it
            if not lazy and not task.arena.active_drives:
                drive_chain(task)
            return task

        return create

    if func is None:
        return decorate
    return decorate(func)


__all__ = [
    "SUSPEND",
    "Continuation",
    "CoroutineBody",
    "coroutine",
]

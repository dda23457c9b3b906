"""
Deadline and predicate based suspension.

Every helper here is built from a single primitive, "suspend each tick
until a predicate holds", on top of an external clock that returns the
current monotonic time in microseconds. Durations accept ``Micros``,
``Millis`` or ``Seconds``; a plain ``int`` means milliseconds.

Example::

    timer = Timer(board.micros)

    @coroutine
    def blink(led, times):
        for _ in range(times):
            led.toggle()
            yield timer.sleep(Millis(500))
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar, Union

from cochain.continuation import CoroutineBody, coroutine
from cochain.task import Task
from cochain.transform import then, transform

T = TypeVar("T")

Clock = Callable[[], int]
Condition = Callable[[], bool]


def _div(value: int, divisor: int) -> int:
    # truncate toward zero
    quotient = abs(value) // divisor
    return quotient if value >= 0 else -quotient


@dataclass(frozen=True)
class Micros:
    tick: int

    def micros(self) -> int:
        return self.tick

    def millis(self) -> int:
        return _div(self.tick, 1_000)

    def seconds(self) -> int:
        return _div(self.tick, 1_000_000)


@dataclass(frozen=True)
class Millis:
    tick: int

    def micros(self) -> int:
        return self.tick * 1_000

    def millis(self) -> int:
        return self.tick

    def seconds(self) -> int:
        return _div(self.tick, 1_000)


@dataclass(frozen=True)
class Seconds:
    tick: int

    def micros(self) -> int:
        return self.tick * 1_000_000

    def millis(self) -> int:
        return self.tick * 1_000

    def seconds(self) -> int:
        return self.tick


TimeUnit = Union[Micros, Millis, Seconds]
TimeLike = Union[TimeUnit, int]


def to_micros(value: TimeLike) -> int:
    if isinstance(value, (Micros, Millis, Seconds)):
        return value.micros()
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Expected Micros, Millis, Seconds or int, got {type(value).__name__}")
    return Millis(value).micros()


def monotonic_micros() -> int:
    """Host clock used when no board clock is supplied."""
    return time.monotonic_ns() // 1_000


@coroutine
def wait(condition: Condition) -> CoroutineBody[None]:
    """Suspend every tick until ``condition()`` is true."""
    while not condition():
        yield


def wait_and_return(value: T, condition: Condition) -> Task[T]:
    return transform(wait(condition), lambda _: value)


class Timer:
    """Timing helpers bound to one clock source."""

    def __init__(self, clock: Clock = monotonic_micros) -> None:
        self._clock = clock

    def now(self) -> Micros:
        return Micros(self._clock())

    def deadline(self, duration: TimeLike) -> Micros:
        return Micros(self._clock() + to_micros(duration))

    @coroutine
    def sleep_until(self, endtime: TimeLike) -> CoroutineBody[None]:
        end = to_micros(endtime)
        while self._clock() < end:
            yield

    def sleep_until_and_return(self, value: T, endtime: TimeLike) -> Task[T]:
        return transform(self.sleep_until(endtime), lambda _: value)

    def sleep(self, duration: TimeLike) -> Task[None]:
        return self.sleep_until(self.deadline(duration))

    def sleep_and_return(self, value: T, duration: TimeLike) -> Task[T]:
        return self.sleep_until_and_return(value, self.deadline(duration))

    @coroutine
    def sleep_until_and_wait(self, endtime: TimeLike, condition: Condition) -> CoroutineBody[None]:
        """Suspend until the deadline has passed and ``condition()`` holds."""
        end = to_micros(endtime)
        while self._clock() < end or not condition():
            yield

    def sleep_and_wait(self, duration: TimeLike, condition: Condition) -> Task[None]:
        return self.sleep_until_and_wait(self.deadline(duration), condition)

    def sleep_until_then(self, endtime: TimeLike, action: Callable[[], Any]) -> Task[None]:
        return then(self.sleep_until(endtime), action)

    def sleep_then(self, duration: TimeLike, action: Callable[[], Any]) -> Task[None]:
        return self.sleep_until_then(self.deadline(duration), action)

    @coroutine
    def wait_with_timeout(self, condition: Condition, timeout: TimeLike) -> CoroutineBody[bool]:
        """Suspend until ``condition()`` holds or ``timeout`` elapses.

        Returns ``True`` if the condition held. A timeout does not stop
        whatever work the condition is observing.
        """
        end = self._clock() + to_micros(timeout)
        while True:
            if condition():
                return True
            if self._clock() >= end:
                return False
            yield


__all__ = [
    "Clock",
    "Micros",
    "Millis",
    "Seconds",
    "TimeLike",
    "TimeUnit",
    "Timer",
    "monotonic_micros",
    "to_micros",
    "wait",
    "wait_and_return",
]

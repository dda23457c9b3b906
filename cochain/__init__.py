"""
cochain - a single-threaded cooperative task runtime.

Suspendable computations are ``Task`` values built from generator functions
with ``@coroutine``. Awaiting a task splices it into the awaiting task's
chain; ``drive_chain`` walks that chain innermost-first in a flat loop, so
deep await nesting never grows the Python stack. ``transform`` maps a
task's result through a plain function, and ``Scheduler`` busy-polls a
pool of root tasks until all of them have completed.
"""

from cochain._vendor import Err, FrozenDict, Ok, Result
from cochain.arena import TaskArena, current_arena, use_arena
from cochain.config import RuntimeConfig
from cochain.continuation import SUSPEND, Continuation, CoroutineBody, coroutine
from cochain.errors import (
    ContractViolationError,
    ForeignArenaError,
    InvalidYieldError,
    ReentrantRunError,
    SchedulerStalledError,
    SpawnRejectedError,
    StaleHandleError,
    TaskAlreadyCompletedError,
    TaskCopyError,
)
from cochain.scheduler import FaultReport, Scheduler
from cochain.task import Task, drive_chain, ready
from cochain.timing import (
    Micros,
    Millis,
    Seconds,
    Timer,
    monotonic_micros,
    to_micros,
    wait,
    wait_and_return,
)
from cochain.trace import RootTrace, TraceEntry, TraceOrder, chain_trace, dump_trace, format_trace
from cochain.transform import then, transform
from cochain.types import DriveResult, TaskState

__version__ = "0.1.0"

__all__ = [
    "SUSPEND",
    "ContractViolationError",
    "Continuation",
    "CoroutineBody",
    "DriveResult",
    "Err",
    "FaultReport",
    "ForeignArenaError",
    "FrozenDict",
    "InvalidYieldError",
    "Micros",
    "Millis",
    "Ok",
    "ReentrantRunError",
    "Result",
    "RootTrace",
    "RuntimeConfig",
    "Scheduler",
    "SchedulerStalledError",
    "Seconds",
    "SpawnRejectedError",
    "StaleHandleError",
    "Task",
    "TaskAlreadyCompletedError",
    "TaskArena",
    "TaskCopyError",
    "TaskState",
    "Timer",
    "TraceEntry",
    "TraceOrder",
    "chain_trace",
    "coroutine",
    "current_arena",
    "drive_chain",
    "dump_trace",
    "format_trace",
    "monotonic_micros",
    "ready",
    "then",
    "to_micros",
    "transform",
    "use_arena",
    "wait",
    "wait_and_return",
]

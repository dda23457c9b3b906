"""
Runtime configuration read from the environment.

Environment variables:
    COCHAIN_DEBUG: ``1``/``true``/``yes`` enables per-node debug logging of
        splice, pop and release operations.
    COCHAIN_MAX_TICKS: upper bound on scheduler ticks per ``run()``. Unset
        means the scheduler busy-polls until every root task is exhausted.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

_TRUTHY = ("1", "true", "yes")


def _parse_max_ticks(raw: str | None) -> int | None:
    if raw is None or raw.strip() == "":
        return None
    value = int(raw)
    if value <= 0:
        raise ValueError(f"COCHAIN_MAX_TICKS must be positive, got {value}")
    return value


@dataclass(frozen=True)
class RuntimeConfig:
    debug: bool = False
    max_ticks: int | None = None

    def __post_init__(self) -> None:
        if self.max_ticks is not None and self.max_ticks <= 0:
            raise ValueError(f"max_ticks must be positive, got {self.max_ticks}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RuntimeConfig:
        env = os.environ if environ is None else environ
        return cls(
            debug=env.get("COCHAIN_DEBUG", "").lower() in _TRUTHY,
            max_ticks=_parse_max_ticks(env.get("COCHAIN_MAX_TICKS")),
        )


__all__ = ["RuntimeConfig"]

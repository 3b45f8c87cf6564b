from __future__ import annotations

import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from specman.analysis.timeout_context import (
    Deadline,
    cancel_scope,
    deadline_clock_scope,
    deadline_scope,
)
from specman.deadline_clock import CancelToken, GasMeter
from specman.exceptions import ConfigurationError
from specman.invariants import never

_DEFAULT_TIMEOUT_TICKS = 120_000
_DEFAULT_TIMEOUT_TICK_NS = 1_000_000
DEFAULT_GAS_LIMIT = 50_000_000
GAS_LIMIT_ENV = "SPECMAN_STATUS_GAS_LIMIT"


@dataclass(frozen=True)
class DeadlineBudget:
    ticks: int
    tick_ns: int

    def __post_init__(self) -> None:
        ticks_value = int(self.ticks)
        tick_ns_value = int(self.tick_ns)
        if ticks_value <= 0:
            never("invalid deadline budget ticks", ticks=self.ticks)
        if tick_ns_value <= 0:
            never("invalid deadline budget tick_ns", tick_ns=self.tick_ns)
        object.__setattr__(self, "ticks", ticks_value)
        object.__setattr__(self, "tick_ns", tick_ns_value)

    @classmethod
    def from_timeout_ms(cls, milliseconds: int) -> "DeadlineBudget":
        return cls(ticks=milliseconds, tick_ns=1_000_000)


DEFAULT_TIMEOUT_BUDGET = DeadlineBudget(
    ticks=_DEFAULT_TIMEOUT_TICKS,
    tick_ns=_DEFAULT_TIMEOUT_TICK_NS,
)


def gas_limit_from_env(default: int = DEFAULT_GAS_LIMIT) -> int:
    raw = os.getenv(GAS_LIMIT_ENV, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{GAS_LIMIT_ENV} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigurationError(f"{GAS_LIMIT_ENV} must be positive, got {value}")
    return value


@contextmanager
def deadline_scope_from_ticks(
    budget: DeadlineBudget,
    *,
    gas_limit: int | None = None,
    cancel: CancelToken | None = None,
) -> Iterator[None]:
    limit = gas_limit_from_env() if gas_limit is None else int(gas_limit)
    if limit <= 0:
        never("invalid deadline gas limit", gas_limit=gas_limit)
    with deadline_scope(Deadline.from_timeout_ticks(budget.ticks, budget.tick_ns)):
        with deadline_clock_scope(GasMeter(limit=limit)):
            with cancel_scope(cancel):
                yield

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol
import threading
import time

from specman.invariants import never


class DeadlineClock(Protocol):
    def consume(self, ticks: int = 1) -> None:
        """Consume logical progress units."""

    def get_mark(self) -> int:
        """Return the current monotonic mark."""


class DeadlineClockExhausted(RuntimeError):
    """Raised by logical clocks when available ticks are exhausted."""


@dataclass(frozen=True)
class MonotonicClock:
    """Default wall-clock implementation used when no logical clock is injected."""

    def consume(self, ticks: int = 1) -> None:
        # Wall-clock mode does not consume logical gas.
        return

    def get_mark(self) -> int:
        return time.monotonic_ns()


@dataclass
class GasMeter:
    """Deterministic logical clock driven by consumed ticks.

    Loader workers share one meter, so consumption is serialized.
    """

    limit: int
    current: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self) -> None:
        if int(self.limit) <= 0:
            never("invalid gas meter limit", limit=self.limit)
        self.limit = int(self.limit)
        self.current = int(self.current)
        if self.current < 0:
            never("invalid gas meter current", current=self.current)

    def consume(self, ticks: int = 1) -> None:
        ticks_value = int(ticks)
        if ticks_value <= 0:
            never("invalid gas meter ticks", ticks=ticks)
        with self._lock:
            self.current += ticks_value
            current = self.current
        if current >= self.limit:
            raise DeadlineClockExhausted(f"Gas exhausted: {current}/{self.limit}")

    def get_mark(self) -> int:
        return self.current


class CancelToken:
    """Caller-owned cancellation signal for a status pass."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

# specman:boundary_normalization_module
from __future__ import annotations

import inspect
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TypeVar

from specman.deadline_clock import (
    CancelToken,
    DeadlineClock,
    DeadlineClockExhausted,
    MonotonicClock,
)
from specman.invariants import never
from specman.json_types import JSONValue

_LoopItem = TypeVar("_LoopItem")

TIMEOUT_REASON_DEADLINE = "deadline"
TIMEOUT_REASON_GAS = "gas"
TIMEOUT_REASON_CANCELLED = "cancelled"


@dataclass(frozen=True)
class TimeoutContext:
    reason: str
    site: str
    detail: str = ""

    def as_payload(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {"reason": self.reason, "site": self.site}
        if self.detail:
            payload["detail"] = self.detail
        return payload


class TimeoutExceeded(TimeoutError):
    def __init__(self, context: TimeoutContext) -> None:
        super().__init__(f"Analysis stopped ({context.reason}) at {context.site}.")
        self.context = context


_SYSTEM_CLOCK = MonotonicClock()


@dataclass(frozen=True)
class Deadline:
    deadline_ns: int

    @classmethod
    def from_timeout_ticks(cls, ticks: int, tick_ns: int) -> "Deadline":
        ticks_value = int(ticks)
        tick_ns_value = int(tick_ns)
        if ticks_value < 0:
            never("invalid timeout ticks", ticks=ticks)
        if tick_ns_value <= 0:
            never("invalid timeout tick_ns", tick_ns=tick_ns)
        return cls(deadline_ns=_SYSTEM_CLOCK.get_mark() + ticks_value * tick_ns_value)

    @classmethod
    def from_timeout_ms(cls, milliseconds: int) -> "Deadline":
        return cls.from_timeout_ticks(milliseconds, 1_000_000)

    @classmethod
    def from_timeout(cls, seconds: float) -> "Deadline":
        try:
            value = Decimal(str(seconds))
        except (InvalidOperation, ValueError):
            never("invalid timeout seconds", seconds=seconds)
        if value < 0:
            never("invalid timeout seconds", seconds=seconds)
        return cls.from_timeout_ms(int(value * Decimal(1000)))

    def expired(self) -> bool:
        return _SYSTEM_CLOCK.get_mark() >= self.deadline_ns


_deadline_var: ContextVar[Deadline | None] = ContextVar("specman_deadline", default=None)
_deadline_clock_var: ContextVar[DeadlineClock | None] = ContextVar(
    "specman_deadline_clock", default=None
)
_cancel_var: ContextVar[CancelToken | None] = ContextVar("specman_cancel", default=None)


def get_deadline() -> Deadline:
    deadline = _deadline_var.get()
    if deadline is None:
        never("deadline carrier missing")
    return deadline


def get_deadline_clock() -> DeadlineClock:
    clock = _deadline_clock_var.get()
    if clock is None:
        never("deadline clock missing")
    return clock


def get_cancel_token() -> CancelToken | None:
    return _cancel_var.get()


@contextmanager
def deadline_scope(deadline: Deadline):
    if deadline is None:
        never("deadline carrier missing")
    token = _deadline_var.set(deadline)
    try:
        yield
    finally:
        _deadline_var.reset(token)


@contextmanager
def deadline_clock_scope(clock: DeadlineClock):
    if clock is None:
        never("deadline clock missing")
    token = _deadline_clock_var.set(clock)
    try:
        yield
    finally:
        _deadline_clock_var.reset(token)


@contextmanager
def cancel_scope(cancel: CancelToken | None):
    token = _cancel_var.set(cancel)
    try:
        yield
    finally:
        _cancel_var.reset(token)


def _caller_site() -> str:
    frame = inspect.currentframe()
    try:
        caller = frame.f_back.f_back if frame is not None and frame.f_back is not None else None
        if caller is None:
            return "<unknown>"
        code = caller.f_code
        return f"{caller.f_globals.get('__name__', '?')}.{code.co_qualname}"
    finally:
        del frame


def check_deadline() -> None:
    """Charge one tick and stop the pass if gas, time or the caller ran out."""
    deadline = get_deadline()
    clock = get_deadline_clock()
    try:
        clock.consume(1)
    except DeadlineClockExhausted as exc:
        raise TimeoutExceeded(
            TimeoutContext(reason=TIMEOUT_REASON_GAS, site=_caller_site(), detail=str(exc))
        ) from exc
    if deadline.expired():
        raise TimeoutExceeded(TimeoutContext(reason=TIMEOUT_REASON_DEADLINE, site=_caller_site()))
    cancel = _cancel_var.get()
    if cancel is not None and cancel.cancelled:
        raise TimeoutExceeded(TimeoutContext(reason=TIMEOUT_REASON_CANCELLED, site=_caller_site()))


def deadline_loop_iter(values: Iterable[_LoopItem]) -> Iterator[_LoopItem]:
    for value in values:
        check_deadline()
        yield value

"""Invariant markers for SpecMan analysis."""

from __future__ import annotations

from typing import Callable, NoReturn, TypeVar

from specman.exceptions import NeverThrown

T = TypeVar("T")
FuncT = TypeVar("FuncT", bound=Callable[..., object])


def never(reason: str = "", **env: object) -> NoReturn:
    """Mark a code path as intentionally unreachable.

    The optional env payload is attached to the raised exception for
    diagnostics; it is not evaluated.
    """
    raise NeverThrown(reason or "never() marker reached", env=env)


def require_not_none(value: T | None, *, reason: str = "", **env: object) -> T:
    if value is None:
        never(reason or "required value is None", **env)
    return value


def boundary_normalization(func: FuncT) -> FuncT:
    """Marker decorator for functions that normalize untrusted input."""
    return func

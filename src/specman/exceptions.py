"""Exception protocol for SpecMan audits."""

from __future__ import annotations

from typing import Mapping


class NeverRaise(RuntimeError):
    """Sentinel exception for code paths that must be unreachable.

    Raising this exception signals a broken internal invariant, never a
    problem in the audited corpus. Corpus problems are collected into the
    status report instead.
    """

    def __init__(self, message: str, *, env: Mapping[str, object] | None = None):
        super().__init__(message)
        self.reason = message
        self.env = dict(env or {})

    @property
    def payload(self) -> dict[str, object]:
        return {
            "reason": self.reason,
            "env": {key: repr(value) for key, value in sorted(self.env.items())},
        }


class NeverThrown(NeverRaise):
    """Alias for NeverRaise used by the explicit never() marker."""


class SpecmanError(Exception):
    """Base class for errors that abort an audit before analysis starts."""


class CorpusUnavailable(SpecmanError):
    """The corpus root cannot be read at all."""

    def __init__(self, root: str, reason: str):
        super().__init__(f"corpus root {root!r} is unavailable: {reason}")
        self.root = root
        self.reason = reason


class DataModelError(SpecmanError, ValueError):
    """An injected data model definition is not usable."""


class ConfigurationError(SpecmanError, ValueError):
    """A setting from the environment or specman.toml is not usable."""

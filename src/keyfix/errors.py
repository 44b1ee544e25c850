"""Exception hierarchy shared by the keyfix engine and command line."""

from __future__ import annotations

from typing import Any, Iterable, Mapping


class KeyfixError(RuntimeError):
    """Base class for fatal errors raised while fixing an input."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class ParseError(KeyfixError):
    """Raised when one or more files of a compilation unit fail to parse."""

    def __init__(self, errors: Iterable[str], *, details: Mapping[str, Any] | None = None) -> None:
        self.errors: tuple[str, ...] = tuple(errors)
        super().__init__("\n".join(self.errors) or "syntax error", details=details)


class UnitError(KeyfixError):
    """Raised when an input cannot be placed inside a Python package."""


class PatchError(KeyfixError):
    """Raised when an edit script cannot be applied or yields invalid source."""


class UsageError(KeyfixError):
    """Raised for option combinations rejected before any processing."""


__all__ = [
    "KeyfixError",
    "ParseError",
    "PatchError",
    "UnitError",
    "UsageError",
]

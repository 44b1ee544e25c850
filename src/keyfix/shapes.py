"""Resolved types attached to constructor calls by the type resolver."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union

_MAX_UNWRAP_DEPTH = 32


@dataclass(frozen=True)
class Field:
    """Single positional field of a record type."""

    name: str
    annotation: Optional[str] = None


@dataclass(frozen=True)
class RecordType:
    """Ordered field layout of a dataclass or named tuple."""

    qualified_name: str
    kind: str  # "dataclass" or "namedtuple"
    fields: Tuple[Field, ...] = ()

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(field.name for field in self.fields)


@dataclass(frozen=True)
class OpaqueType:
    """Anything callable that is not a record: plain classes, functions, builtins."""

    qualified_name: str


@dataclass(frozen=True)
class AliasType:
    """Module-level rebinding of another name, e.g. ``Alias = Point``."""

    name: str
    target: "ResolvedType"


@dataclass(frozen=True)
class ReferenceType:
    """Definition reached through an import of another module."""

    module: str
    target: "ResolvedType"


ResolvedType = Union[RecordType, OpaqueType, AliasType, ReferenceType]


def record_shape(resolved: ResolvedType | None) -> RecordType | None:
    """Unwrap references and aliases and return the record layout, if any.

    Chains of any mix of the two wrappers are followed, so a record
    re-exported through several modules or aliased more than once still
    resolves. Unwrapping stops after ``_MAX_UNWRAP_DEPTH`` layers.
    """
    current = resolved
    for _ in range(_MAX_UNWRAP_DEPTH):
        if isinstance(current, (ReferenceType, AliasType)):
            current = current.target
            continue
        break
    if isinstance(current, RecordType):
        return current
    return None


__all__ = [
    "AliasType",
    "Field",
    "OpaqueType",
    "RecordType",
    "ReferenceType",
    "ResolvedType",
    "record_shape",
]

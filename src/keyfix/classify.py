"""Decide whether a constructor call can be rewritten with keyword arguments."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import libcst as cst

from .shapes import ResolvedType, record_shape


@dataclass(frozen=True, slots=True)
class Eligibility:
    """Outcome of classifying one call.

    ``fields`` holds one field name per argument, in argument order, and is
    empty whenever ``eligible`` is false.
    """

    eligible: bool
    reason: str
    fields: Tuple[str, ...] = ()


def _skip(reason: str) -> Eligibility:
    return Eligibility(eligible=False, reason=reason)


def classify(call: cst.Call, resolved: Optional[ResolvedType]) -> Eligibility:
    """Apply the keying rules to ``call`` whose callee resolved to ``resolved``."""
    record = record_shape(resolved)
    if record is None:
        return _skip("not a record type")
    if not record.fields:
        return _skip("record has no positional fields")
    if len(call.args) != len(record.fields):
        return _skip(f"{len(call.args)} argument(s) for {len(record.fields)} field(s)")
    # Mixed positional and keyword calls are valid Python; any keyword disqualifies.
    for arg in call.args:
        if arg.keyword is not None:
            return _skip("already keyed")
        if arg.star:
            return _skip("argument unpacking")
        if isinstance(arg.value, (cst.GeneratorExp, cst.NamedExpr)) and not arg.value.lpar:
            return _skip("argument cannot take a keyword")
    return Eligibility(eligible=True, reason="positional record call", fields=record.field_names)


__all__ = ["Eligibility", "classify"]

"""Rewrite positional record constructor calls into keyed calls."""

from .classify import Eligibility, classify
from .driver import FixResult, KeyingVisitor, fix_path, fix_source, fix_unit
from .edits import Edit, EditScript
from .errors import KeyfixError, ParseError, PatchError, UnitError, UsageError
from .options import RunOptions
from .resolver import TypeInfo, TypeResolver, resolve_types
from .shapes import AliasType, Field, OpaqueType, RecordType, ReferenceType, ResolvedType, record_shape
from .unit import CompilationUnit, SourceModule, load_file_unit, load_stream_unit

__all__ = [
    "AliasType",
    "CompilationUnit",
    "Edit",
    "EditScript",
    "Eligibility",
    "Field",
    "FixResult",
    "KeyfixError",
    "KeyingVisitor",
    "OpaqueType",
    "ParseError",
    "PatchError",
    "RecordType",
    "ReferenceType",
    "ResolvedType",
    "RunOptions",
    "SourceModule",
    "TypeInfo",
    "TypeResolver",
    "UnitError",
    "UsageError",
    "classify",
    "fix_path",
    "fix_source",
    "fix_unit",
    "load_file_unit",
    "load_stream_unit",
    "record_shape",
    "resolve_types",
]

"""Single-pass traversal that keys positional record constructor calls."""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import libcst as cst
from libcst import metadata

from .classify import classify
from .edits import EditScript
from .errors import PatchError
from .resolver import TypeInfo, resolve_types
from .unit import CompilationUnit, SourceModule, load_file_unit, load_stream_unit

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class FixResult:
    """Outcome of fixing one input."""

    source: SourceModule
    changed: bool
    edits: EditScript
    keyed_calls: int = 0
    output: Optional[bytes] = None

    @property
    def display_name(self) -> str:
        return self.source.display_name

    def diff(self, label: Optional[str] = None) -> str:
        """Unified diff between the original and patched text."""
        if self.output is None or not self.changed:
            return ""
        name = Path(label or self.display_name).as_posix()
        original_lines = self.source.text.splitlines()
        updated_lines = self.output.decode(self.source.encoding).splitlines()
        diff_lines = list(
            difflib.unified_diff(
                original_lines,
                updated_lines,
                fromfile=f"a/{name}",
                tofile=f"b/{name}",
                lineterm="",
            )
        )
        if not diff_lines:
            return ""
        return "\n".join(diff_lines) + "\n"


class KeyingVisitor(cst.CSTVisitor):
    """Classify every call and record keyword insertions for eligible ones.

    Nested calls are classified independently; the tree is never modified.
    With ``record_edits`` false only the ``changed`` flag is computed.
    """

    METADATA_DEPENDENCIES = (metadata.PositionProvider,)

    def __init__(self, source: SourceModule, types: TypeInfo, *, record_edits: bool = True) -> None:
        super().__init__()
        self.source = source
        self.types = types
        self.edits = EditScript()
        self.changed = False
        self.keyed_calls = 0
        self._offsets = source.byte_offsets() if record_edits else None

    def visit_Call(self, node: cst.Call) -> None:
        resolved = self.types.get(node)
        outcome = classify(node, resolved)
        if not outcome.eligible:
            if resolved is not None:
                LOGGER.debug("Leaving call at %s: %s", self._location(node), outcome.reason)
            return
        self.changed = True
        self.keyed_calls += 1
        if self._offsets is None:
            return
        offsets = [self._start(arg) for arg in node.args]
        self.edits.insert_keywords(offsets, outcome.fields, encoding=self.source.codec)

    def _start(self, node: cst.CSTNode) -> int:
        assert self._offsets is not None
        position = self.get_metadata(metadata.PositionProvider, node).start
        return self._offsets.offset(position.line, position.column)

    def _location(self, node: cst.CSTNode) -> str:
        position = self.get_metadata(metadata.PositionProvider, node).start
        return f"{self.source.display_name}:{position.line}:{position.column + 1}"


def _check_output(output: bytes, source: SourceModule) -> None:
    try:
        cst.parse_module(output.decode(source.encoding))
    except (cst.ParserSyntaxError, UnicodeDecodeError) as error:
        raise PatchError(
            f"{source.display_name}: patched source does not parse: {error}",
            details={"path": source.display_name},
        ) from error


def fix_unit(unit: CompilationUnit, *, emit: bool = True) -> FixResult:
    """Resolve, classify and (when ``emit``) patch the unit's target module."""
    types = resolve_types(unit)
    visitor = KeyingVisitor(unit.target, types, record_edits=emit)
    unit.target.wrapper.visit(visitor)

    output: Optional[bytes] = None
    if emit:
        output = visitor.edits.apply(unit.target.data)
        if visitor.edits:
            _check_output(output, unit.target)
    LOGGER.debug(
        "%s: %d call(s) keyed, %d edit(s)",
        unit.target.display_name,
        visitor.keyed_calls,
        len(visitor.edits),
    )
    return FixResult(
        source=unit.target,
        changed=visitor.changed,
        edits=visitor.edits,
        keyed_calls=visitor.keyed_calls,
        output=output,
    )


def fix_path(path: Path, *, emit: bool = True, cwd: Optional[Path] = None) -> FixResult:
    """Fix the Python file at ``path`` within its package."""
    return fix_unit(load_file_unit(path, cwd=cwd), emit=emit)


def fix_source(data: bytes, *, emit: bool = True, cwd: Optional[Path] = None) -> FixResult:
    """Fix unnamed source placed in the package of ``cwd``."""
    return fix_unit(load_stream_unit(data, cwd=cwd), emit=emit)


__all__ = ["FixResult", "KeyingVisitor", "fix_path", "fix_source", "fix_unit"]

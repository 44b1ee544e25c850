"""Compilation units: the module being fixed plus its package siblings."""

from __future__ import annotations

import io
import logging
import tokenize
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import libcst as cst
from libcst import metadata

from .errors import ParseError, UnitError
from .offsets import ByteOffsetCalculator

LOGGER = logging.getLogger(__name__)

STDIN_MODULE = "__stdin__"
STDIN_DISPLAY_NAME = "<standard input>"
_BOM = b"\xef\xbb\xbf"


@dataclass(frozen=True)
class SourceModule:
    """Parsed Python module together with its original bytes."""

    name: str
    path: Optional[Path]
    data: bytes
    encoding: str
    text: str
    wrapper: metadata.MetadataWrapper

    @property
    def module(self) -> cst.Module:
        return self.wrapper.module

    @property
    def display_name(self) -> str:
        return str(self.path) if self.path is not None else STDIN_DISPLAY_NAME

    @property
    def codec(self) -> str:
        """Codec for encoding inserted text; never re-emits a byte-order mark."""
        return "utf-8" if self.encoding == "utf-8-sig" else self.encoding

    @property
    def is_package(self) -> bool:
        return self.path is not None and self.path.name == "__init__.py"

    @property
    def package(self) -> str:
        """Package used to resolve relative imports inside this module."""
        if self.is_package:
            return self.name
        return self.name.rpartition(".")[0]

    def byte_offsets(self) -> ByteOffsetCalculator:
        base = len(_BOM) if self.data.startswith(_BOM) else 0
        return ByteOffsetCalculator(self.text, self.encoding, base=base)


def _decode(data: bytes, display_name: str) -> Tuple[str, str]:
    try:
        encoding, _ = tokenize.detect_encoding(io.BytesIO(data).readline)
        return data.decode(encoding), encoding
    except (SyntaxError, LookupError, UnicodeDecodeError) as error:
        raise ParseError([f"{display_name}: {error}"]) from error


def parse_source(data: bytes, name: str, path: Optional[Path] = None) -> SourceModule:
    """Decode and parse ``data``; raise :class:`ParseError` on invalid source."""
    display_name = str(path) if path is not None else STDIN_DISPLAY_NAME
    text, encoding = _decode(data, display_name)
    try:
        module = cst.parse_module(text)
    except cst.ParserSyntaxError as error:
        message = f"{display_name}:{error.editor_line}:{error.editor_column}: {error.message}"
        raise ParseError([message], details={"path": display_name}) from error
    return SourceModule(
        name=name,
        path=path,
        data=data,
        encoding=encoding,
        text=text,
        wrapper=metadata.MetadataWrapper(module),
    )


def package_root(directory: Path) -> Path:
    """Return the first ancestor of ``directory`` that is not a package."""
    current = directory
    while (current / "__init__.py").is_file() and current.parent != current:
        current = current.parent
    return current


def module_name_for(path: Path) -> str:
    """Dotted module name of ``path`` relative to its package root."""
    root = package_root(path.parent)
    parts = list(path.with_suffix("").relative_to(root).parts)
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts)


class ModuleFinder:
    """Locate module sources under a fixed list of search roots."""

    def __init__(self, roots: Iterable[Path]) -> None:
        self.roots: Tuple[Path, ...] = tuple(dict.fromkeys(root.resolve() for root in roots))

    def find(self, name: str) -> Optional[Path]:
        if not name or name.startswith("."):
            return None
        parts = name.split(".")
        for root in self.roots:
            base = root.joinpath(*parts)
            for candidate in (base.with_name(base.name + ".py"), base / "__init__.py"):
                if candidate.is_file():
                    return candidate
        return None


@dataclass
class CompilationUnit:
    """Target module plus every module its types may be resolved through.

    Sibling files in the target's directory are parsed eagerly; any other
    module is parsed lazily on first import and, unlike siblings, is
    skipped silently when it cannot be read or parsed.
    """

    target: SourceModule
    siblings: Dict[str, SourceModule]
    directory: Path
    finder: ModuleFinder
    _loaded: Dict[str, Optional[SourceModule]] = field(default_factory=dict, repr=False)

    def module(self, name: str) -> Optional[SourceModule]:
        if name == self.target.name:
            return self.target
        if name in self.siblings:
            return self.siblings[name]
        if name in self._loaded:
            return self._loaded[name]
        source = self._load(name)
        self._loaded[name] = source
        return source

    def _load(self, name: str) -> Optional[SourceModule]:
        path = self.finder.find(name)
        if path is None:
            LOGGER.debug("Module %s not found under %s", name, [str(root) for root in self.finder.roots])
            return None
        try:
            source = parse_source(path.read_bytes(), name, path)
        except (OSError, ParseError) as error:
            LOGGER.debug("Skipping module %s (%s): %s", name, path, error)
            return None
        LOGGER.debug("Loaded module %s from %s", name, path)
        return source


def _parse_siblings(directory: Path, exclude: Optional[Path]) -> Tuple[Dict[str, SourceModule], List[str]]:
    siblings: Dict[str, SourceModule] = {}
    errors: List[str] = []
    for path in sorted(directory.glob("*.py")):
        if not path.is_file() or (exclude is not None and path == exclude):
            continue
        try:
            source = parse_source(path.read_bytes(), module_name_for(path), path)
        except ParseError as error:
            errors.extend(error.errors)
            continue
        siblings[source.name] = source
    return siblings, errors


def load_file_unit(path: Path, *, cwd: Optional[Path] = None) -> CompilationUnit:
    """Build the compilation unit for the file at ``path``."""
    absolute = path.resolve()
    if absolute.is_dir():
        raise UnitError(f"{path}: is a directory, not a Python file")
    if absolute.suffix != ".py":
        raise UnitError(f"{path}: not a Python file within a package")
    data = absolute.read_bytes()

    errors: List[str] = []
    target: Optional[SourceModule] = None
    try:
        target = parse_source(data, module_name_for(absolute), absolute)
    except ParseError as error:
        errors.extend(error.errors)
    siblings, sibling_errors = _parse_siblings(absolute.parent, exclude=absolute)
    errors.extend(sibling_errors)
    if errors or target is None:
        raise ParseError(errors, details={"path": str(path)})

    roots = [package_root(absolute.parent), (cwd or Path.cwd())]
    LOGGER.debug("Unit for %s: module %s with %d sibling(s)", path, target.name, len(siblings))
    return CompilationUnit(
        target=target,
        siblings=siblings,
        directory=absolute.parent,
        finder=ModuleFinder(roots),
    )


def load_stream_unit(data: bytes, *, cwd: Optional[Path] = None) -> CompilationUnit:
    """Build a unit for unnamed source placed in the working directory's package."""
    directory = (cwd or Path.cwd()).resolve()
    package = module_name_for(directory / "__init__.py") if (directory / "__init__.py").is_file() else ""
    name = f"{package}.{STDIN_MODULE}" if package else STDIN_MODULE

    errors: List[str] = []
    target: Optional[SourceModule] = None
    try:
        target = parse_source(data, name)
    except ParseError as error:
        errors.extend(error.errors)
    siblings, sibling_errors = _parse_siblings(directory, exclude=None)
    errors.extend(sibling_errors)
    if errors or target is None:
        raise ParseError(errors, details={"path": STDIN_DISPLAY_NAME})

    LOGGER.debug("Unit for %s: module %s with %d sibling(s)", STDIN_DISPLAY_NAME, name, len(siblings))
    return CompilationUnit(
        target=target,
        siblings=siblings,
        directory=directory,
        finder=ModuleFinder([package_root(directory), directory]),
    )


__all__ = [
    "CompilationUnit",
    "ModuleFinder",
    "STDIN_DISPLAY_NAME",
    "STDIN_MODULE",
    "SourceModule",
    "load_file_unit",
    "load_stream_unit",
    "module_name_for",
    "package_root",
    "parse_source",
]

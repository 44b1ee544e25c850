"""Static resolution of constructor calls to record layouts.

The resolver never imports user code. It reads libcst scope metadata to
map every call's callee to qualified names and follows those names
through the symbol tables of the modules in a :class:`CompilationUnit`,
loading further modules on demand when an import leaves the unit.

Anything the resolver cannot follow, such as dynamic attributes, unknown
bases, unparsable modules or ambiguous rebinding, leaves the call without
an entry in :class:`TypeInfo`. Callers treat a missing entry as "no type
information".
"""

from __future__ import annotations

import keyword
import logging
from dataclasses import dataclass, field
from importlib.util import resolve_name
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import libcst as cst
from libcst import metadata
from libcst.helpers import get_full_name_for_node

from .shapes import AliasType, Field, OpaqueType, RecordType, ReferenceType, ResolvedType, record_shape
from .unit import CompilationUnit, SourceModule

LOGGER = logging.getLogger(__name__)

_DATACLASS_DECORATORS = frozenset({"dataclasses.dataclass", "pydantic.dataclasses.dataclass"})
_NAMEDTUPLE_BASES = frozenset({"typing.NamedTuple", "typing_extensions.NamedTuple"})
_NAMEDTUPLE_FACTORIES = _NAMEDTUPLE_BASES | {"collections.namedtuple"}
_FIELD_FACTORIES = frozenset({"dataclasses.field", "pydantic.Field", "pydantic.fields.Field"})
_CLASSVAR_NAMES = frozenset({"typing.ClassVar", "typing_extensions.ClassVar"})
_KW_ONLY_NAMES = frozenset({"dataclasses.KW_ONLY"})
_NEUTRAL_BASES = frozenset(
    {
        "builtins.object",
        "typing.Generic",
        "typing.Protocol",
        "typing_extensions.Generic",
        "typing_extensions.Protocol",
        "abc.ABC",
    }
)
_CONSTRUCTOR_OVERRIDES = frozenset({"__init__", "__new__"})
_NAMEDTUPLE_OPTIONS = frozenset({"rename", "defaults", "module", "field_names", "fields"})

_QualifiedNames = FrozenSet[metadata.QualifiedName]


@dataclass(frozen=True)
class TypeInfo:
    """Read-only side table from call node to the callee's resolved type."""

    types: Mapping[cst.Call, ResolvedType]

    def get(self, node: cst.Call) -> Optional[ResolvedType]:
        return self.types.get(node)

    def __len__(self) -> int:
        return len(self.types)


@dataclass(frozen=True)
class _Symbol:
    """Binding of a qualified name inside one module."""

    kind: str  # "class", "function", "assign", "import" or "opaque"
    qualname: str
    node: Optional[cst.CSTNode] = None
    target: Optional[str] = None


@dataclass
class _ModuleScan:
    """Everything the resolver needs to know about one parsed module."""

    symbols: Dict[str, List[_Symbol]] = field(default_factory=dict)
    star_imports: List[str] = field(default_factory=list)
    names: Dict[cst.CSTNode, _QualifiedNames] = field(default_factory=dict)
    calls: List[cst.Call] = field(default_factory=list)

    def bind(self, symbol: _Symbol) -> None:
        self.symbols.setdefault(symbol.qualname, []).append(symbol)


def _import_module_name(node: cst.ImportFrom) -> str:
    module = get_full_name_for_node(node.module) if node.module is not None else ""
    return "." * len(node.relative) + (module or "")


class _ModuleScanner(cst.CSTVisitor):
    """Collect bindings, qualified names, and calls for a module."""

    METADATA_DEPENDENCIES = (metadata.QualifiedNameProvider,)

    def __init__(self) -> None:
        super().__init__()
        self.scan = _ModuleScan()
        self._scope: List[str] = []
        self._class_depth: List[bool] = []
        # Per scope frame: names redirected by ``global``/``nonlocal`` to their owner.
        self._declared: List[Dict[str, str]] = []

    def _qualname(self, name: str) -> str:
        if self._declared and name in self._declared[-1]:
            return self._declared[-1][name]
        return ".".join([*self._scope, name])

    def _in_class_body(self) -> bool:
        return bool(self._class_depth) and self._class_depth[-1]

    def _bind_opaque(self, target: cst.BaseExpression) -> None:
        if isinstance(target, cst.Name):
            self.scan.bind(_Symbol("opaque", self._qualname(target.value)))
        elif isinstance(target, (cst.Tuple, cst.List)):
            for element in target.elements:
                self._bind_opaque(element.value)
        elif isinstance(target, cst.StarredElement):
            self._bind_opaque(target.value)

    def on_visit(self, node: cst.CSTNode) -> bool:
        if isinstance(node, (cst.Name, cst.Attribute)):
            names = self.get_metadata(metadata.QualifiedNameProvider, node, ())
            if names:
                self.scan.names[node] = frozenset(names)
        return super().on_visit(node)

    def visit_Call(self, node: cst.Call) -> None:
        self.scan.calls.append(node)

    def visit_ClassDef(self, node: cst.ClassDef) -> None:
        self.scan.bind(_Symbol("class", self._qualname(node.name.value), node))
        self._scope.append(node.name.value)
        self._class_depth.append(True)
        self._declared.append({})

    def leave_ClassDef(self, original_node: cst.ClassDef) -> None:
        self._scope.pop()
        self._class_depth.pop()
        self._declared.pop()

    def visit_FunctionDef(self, node: cst.FunctionDef) -> None:
        self.scan.bind(_Symbol("function", self._qualname(node.name.value), node))
        self._scope.extend([node.name.value, "<locals>"])
        self._class_depth.append(False)
        self._declared.append({})

    def leave_FunctionDef(self, original_node: cst.FunctionDef) -> None:
        del self._scope[-2:]
        self._class_depth.pop()
        self._declared.pop()

    def visit_Global(self, node: cst.Global) -> None:
        if self._declared:
            for item in node.names:
                self._declared[-1][item.name.value] = item.name.value

    def visit_Nonlocal(self, node: cst.Nonlocal) -> None:
        if len(self._declared) < 2:
            return
        for item in node.names:
            name = item.name.value
            owner = self._declared[-2].get(name, ".".join([*self._scope[:-2], name]))
            self._declared[-1][name] = owner

    def visit_Assign(self, node: cst.Assign) -> None:
        for target in node.targets:
            if isinstance(target.target, cst.Name):
                qualname = self._qualname(target.target.value)
                self.scan.bind(_Symbol("assign", qualname, node.value))
            else:
                self._bind_opaque(target.target)

    def visit_AnnAssign(self, node: cst.AnnAssign) -> None:
        if not isinstance(node.target, cst.Name):
            return
        qualname = self._qualname(node.target.value)
        if node.value is None or self._in_class_body():
            self.scan.bind(_Symbol("opaque", qualname))
        else:
            self.scan.bind(_Symbol("assign", qualname, node.value))

    def visit_AugAssign(self, node: cst.AugAssign) -> None:
        self._bind_opaque(node.target)

    def visit_For(self, node: cst.For) -> None:
        self._bind_opaque(node.target)

    def visit_WithItem(self, node: cst.WithItem) -> None:
        if node.asname is not None:
            self._bind_opaque(node.asname.name)

    def visit_Import(self, node: cst.Import) -> None:
        for alias in node.names:
            full_name = get_full_name_for_node(alias.name)
            if not full_name:
                continue
            if alias.asname is not None:
                bound = alias.evaluated_alias or full_name
                target = full_name
            else:
                bound = full_name.split(".", 1)[0]
                target = bound
            self.scan.bind(_Symbol("import", self._qualname(bound), alias, target))

    def visit_ImportFrom(self, node: cst.ImportFrom) -> None:
        module = _import_module_name(node)
        if isinstance(node.names, cst.ImportStar):
            if not self._scope:
                self.scan.star_imports.append(module)
            return
        for alias in node.names:
            name = get_full_name_for_node(alias.name)
            if not name:
                continue
            bound = alias.evaluated_alias if alias.asname is not None else name
            target = f"{module}{name}" if module.endswith(".") else f"{module}.{name}"
            self.scan.bind(_Symbol("import", self._qualname(bound or name), alias, target))


def _string_value(node: cst.BaseExpression) -> Optional[str]:
    if isinstance(node, (cst.SimpleString, cst.ConcatenatedString)):
        value = node.evaluated_value
        if isinstance(value, str):
            return value
    return None


def _valid_field_names(names: Sequence[str]) -> bool:
    return all(name.isidentifier() and not keyword.iskeyword(name) for name in names) and len(set(names)) == len(names)


def _keyword(call: cst.Call, name: str) -> Optional[cst.BaseExpression]:
    for arg in call.args:
        if arg.keyword is not None and arg.keyword.value == name:
            return arg.value
    return None


def _is_name(expression: Optional[cst.BaseExpression], value: str) -> bool:
    return isinstance(expression, cst.Name) and expression.value == value


def _is_string_classvar(annotation: cst.BaseExpression) -> bool:
    text = _string_value(annotation)
    return text is not None and text.startswith(("ClassVar", "typing.ClassVar"))


def _annotated_names(
    node: cst.ClassDef,
) -> Iterable[Tuple[str, cst.BaseExpression, Optional[cst.BaseExpression]]]:
    """Yield ``(name, annotation, default)`` for each annotated class attribute."""
    for statement in node.body.body:
        if not isinstance(statement, cst.SimpleStatementLine):
            continue
        for small in statement.body:
            if isinstance(small, cst.AnnAssign) and isinstance(small.target, cst.Name):
                yield small.target.value, small.annotation.annotation, small.value


@dataclass(frozen=True)
class _DataclassOptions:
    init: bool = True
    kw_only: bool = False


class TypeResolver:
    """Resolve the callee of every call in a unit's target module."""

    def __init__(self, unit: CompilationUnit) -> None:
        self.unit = unit
        self._scans: Dict[str, _ModuleScan] = {}
        self._memo: Dict[Tuple[str, str], Optional[ResolvedType]] = {}
        self._active: Set[Tuple[str, str]] = set()

    def resolve(self) -> TypeInfo:
        target = self.unit.target
        scan = self._scan(target)
        types: Dict[cst.Call, ResolvedType] = {}
        for call in scan.calls:
            resolved = self.resolve_expression(target, call.func)
            if resolved is not None:
                types[call] = resolved
        LOGGER.debug(
            "Resolved %d of %d call(s) in %s",
            len(types),
            len(scan.calls),
            target.display_name,
        )
        return TypeInfo(MappingProxyType(types))

    # Expressions and qualified names

    def resolve_expression(self, source: SourceModule, expression: cst.BaseExpression) -> Optional[ResolvedType]:
        """Resolve a callee expression as written in ``source``."""
        if isinstance(expression, cst.Subscript):
            expression = expression.value
        names = self._names(source, expression)
        if not names:
            return self._resolve_unbound(source, expression)
        outcomes = {self._resolve_qualified(source, name) for name in names}
        if len(outcomes) != 1:
            LOGGER.debug("Ambiguous callee %s in %s", sorted(n.name for n in names), source.display_name)
            return None
        return outcomes.pop()

    def _resolve_unbound(self, source: SourceModule, expression: cst.BaseExpression) -> Optional[ResolvedType]:
        # Scope analysis leaves names supplied by ``from m import *`` unbound.
        if not self._scan(source).star_imports:
            return None
        dotted = get_full_name_for_node(expression)
        if not dotted:
            return None
        return self._lookup(source, dotted)

    def _names(self, source: SourceModule, expression: cst.CSTNode) -> _QualifiedNames:
        return self._scan(source).names.get(expression, frozenset())

    def _name_strings(self, source: SourceModule, expression: cst.BaseExpression) -> FrozenSet[str]:
        if isinstance(expression, cst.Subscript):
            expression = expression.value
        return frozenset(name.name for name in self._names(source, expression))

    def _resolve_qualified(self, source: SourceModule, name: metadata.QualifiedName) -> Optional[ResolvedType]:
        if name.source is metadata.QualifiedNameSource.BUILTIN:
            return OpaqueType(name.name)
        if name.source is metadata.QualifiedNameSource.IMPORT:
            return self._resolve_import(source, name.name)
        return self._lookup(source, name.name)

    def _resolve_import(self, source: SourceModule, dotted: str) -> Optional[ResolvedType]:
        absolute = dotted
        if dotted.startswith("."):
            try:
                absolute = resolve_name(dotted, source.package)
            except (ImportError, ValueError):
                LOGGER.debug("Cannot resolve relative import %s from %s", dotted, source.name)
                return None
        parts = absolute.split(".")
        for split in range(len(parts) - 1, 0, -1):
            module_name = ".".join(parts[:split])
            module = self.unit.module(module_name)
            if module is None:
                continue
            resolved = self._lookup(module, ".".join(parts[split:]))
            if resolved is None:
                return None
            return ReferenceType(module=module_name, target=resolved)
        return None

    # Symbol tables

    def _scan(self, source: SourceModule) -> _ModuleScan:
        scan = self._scans.get(source.name)
        if scan is None:
            scanner = _ModuleScanner()
            source.wrapper.visit(scanner)
            scan = scanner.scan
            self._scans[source.name] = scan
        return scan

    def _lookup(self, source: SourceModule, dotted: str) -> Optional[ResolvedType]:
        key = (source.name, dotted)
        if key in self._memo:
            return self._memo[key]
        if key in self._active:
            LOGGER.debug("Cyclic binding %s in %s", dotted, source.name)
            return None
        self._active.add(key)
        try:
            resolved = self._lookup_uncached(source, dotted)
        finally:
            self._active.discard(key)
        self._memo[key] = resolved
        return resolved

    def _lookup_uncached(self, source: SourceModule, dotted: str) -> Optional[ResolvedType]:
        scan = self._scan(source)
        symbols = scan.symbols.get(dotted)
        if symbols is not None:
            if len(symbols) != 1:
                return None
            return self._resolve_symbol(source, symbols[0])

        parts = dotted.split(".")
        for split in range(len(parts) - 1, 0, -1):
            prefix = scan.symbols.get(".".join(parts[:split]))
            if prefix is None:
                continue
            if len(prefix) == 1 and prefix[0].kind == "import" and prefix[0].target:
                return self._resolve_import(source, ".".join([prefix[0].target, *parts[split:]]))
            return None

        for module in scan.star_imports:
            star = f"{module}{dotted}" if module.endswith(".") else f"{module}.{dotted}"
            resolved = self._resolve_import(source, star)
            if resolved is not None:
                return resolved
        return None

    def _resolve_symbol(self, source: SourceModule, symbol: _Symbol) -> Optional[ResolvedType]:
        if symbol.kind == "class" and isinstance(symbol.node, cst.ClassDef):
            return self._class_type(source, symbol.qualname, symbol.node)
        if symbol.kind == "function":
            return OpaqueType(self._full_name(source, symbol.qualname))
        if symbol.kind == "import" and symbol.target:
            return self._resolve_import(source, symbol.target)
        if symbol.kind == "assign" and isinstance(symbol.node, cst.BaseExpression):
            return self._assigned_type(source, symbol.qualname, symbol.node)
        return None

    def _assigned_type(self, source: SourceModule, qualname: str, value: cst.BaseExpression) -> Optional[ResolvedType]:
        if isinstance(value, cst.Call):
            if self._name_strings(source, value.func) & _NAMEDTUPLE_FACTORIES:
                return self._namedtuple_factory(source, qualname, value)
            return None
        if isinstance(value, (cst.Name, cst.Attribute, cst.Subscript)):
            target = self.resolve_expression(source, value)
            if target is None:
                return None
            return AliasType(name=self._full_name(source, qualname), target=target)
        return None

    @staticmethod
    def _full_name(source: SourceModule, qualname: str) -> str:
        return f"{source.name}.{qualname}" if source.name else qualname

    # Record detection

    def _namedtuple_factory(self, source: SourceModule, qualname: str, call: cst.Call) -> Optional[ResolvedType]:
        rename = _keyword(call, "rename")
        if rename is not None and not _is_name(rename, "False"):
            return None
        positional = [arg.value for arg in call.args if arg.keyword is None and not arg.star]
        if any(arg.star for arg in call.args):
            return None
        declared = positional[1] if len(positional) >= 2 else None
        if declared is None:
            declared = _keyword(call, "field_names")
        if declared is None:
            declared = _keyword(call, "fields")
        names: List[str] = []
        if declared is not None:
            text = _string_value(declared)
            if text is not None:
                names = text.replace(",", " ").split()
            elif isinstance(declared, (cst.List, cst.Tuple)):
                for element in declared.elements:
                    item = element.value
                    if isinstance(item, cst.Tuple) and item.elements:
                        item = item.elements[0].value
                    name = _string_value(item)
                    if name is None:
                        return None
                    names.append(name)
            else:
                return None
        elif len(positional) == 1:
            names = [
                arg.keyword.value
                for arg in call.args
                if arg.keyword is not None and arg.keyword.value not in _NAMEDTUPLE_OPTIONS
            ]
        else:
            return None
        if not _valid_field_names(names):
            return None
        return RecordType(
            qualified_name=self._full_name(source, qualname),
            kind="namedtuple",
            fields=tuple(Field(name) for name in names),
        )

    def _class_type(self, source: SourceModule, qualname: str, node: cst.ClassDef) -> Optional[ResolvedType]:
        full_name = self._full_name(source, qualname)
        if any(arg.star for arg in node.bases):
            return None
        bases = [arg.value for arg in node.bases if arg.keyword is None]

        if any(self._name_strings(source, base) & _NAMEDTUPLE_BASES for base in bases):
            fields = tuple(
                Field(name, source.module.code_for_node(annotation))
                for name, annotation, _ in _annotated_names(node)
            )
            return RecordType(qualified_name=full_name, kind="namedtuple", fields=fields)

        options = self._dataclass_options(source, node)
        defines_constructor = any(
            isinstance(statement, cst.FunctionDef) and statement.name.value in _CONSTRUCTOR_OVERRIDES
            for statement in node.body.body
        )
        if defines_constructor or (options is not None and not options.init):
            return OpaqueType(full_name)

        inherited: List[Optional[RecordType]] = []
        for base in bases:
            if self._name_strings(source, base) & _NEUTRAL_BASES:
                continue
            resolved = self.resolve_expression(source, base)
            if resolved is None:
                LOGGER.debug("Unknown base of %s; layout unresolved", full_name)
                return None
            inherited.append(record_shape(resolved))

        if options is None:
            if len(inherited) == 1 and inherited[0] is not None:
                return RecordType(qualified_name=full_name, kind=inherited[0].kind, fields=inherited[0].fields)
            return OpaqueType(full_name)

        # Bases contribute in reverse MRO order; a redeclared field keeps its slot.
        fields: Dict[str, Optional[Field]] = {}
        for record in reversed(inherited):
            if record is not None and record.kind == "dataclass":
                for inherited_field in record.fields:
                    fields[inherited_field.name] = inherited_field

        kw_only = options.kw_only
        for name, annotation, value in _annotated_names(node):
            annotation_names = self._name_strings(source, annotation)
            if annotation_names & _KW_ONLY_NAMES:
                kw_only = True
                continue
            if annotation_names & _CLASSVAR_NAMES or _is_string_classvar(annotation):
                continue
            positional = not kw_only
            if isinstance(value, cst.Call) and self._name_strings(source, value.func) & _FIELD_FACTORIES:
                if _is_name(_keyword(value, "init"), "False"):
                    fields[name] = None
                    continue
                field_kw_only = _keyword(value, "kw_only")
                if field_kw_only is not None:
                    positional = _is_name(field_kw_only, "False")
            fields[name] = Field(name, source.module.code_for_node(annotation)) if positional else None

        return RecordType(
            qualified_name=full_name,
            kind="dataclass",
            fields=tuple(entry for entry in fields.values() if entry is not None),
        )

    def _dataclass_options(self, source: SourceModule, node: cst.ClassDef) -> Optional[_DataclassOptions]:
        for decorator in node.decorators:
            expression = decorator.decorator
            call = expression if isinstance(expression, cst.Call) else None
            callee = call.func if call is not None else expression
            if not self._name_strings(source, callee) & _DATACLASS_DECORATORS:
                continue
            if call is None:
                return _DataclassOptions()
            init = _keyword(call, "init")
            return _DataclassOptions(
                init=init is None or _is_name(init, "True"),
                kw_only=_is_name(_keyword(call, "kw_only"), "True"),
            )
        return None


def resolve_types(unit: CompilationUnit) -> TypeInfo:
    """Run a fresh :class:`TypeResolver` over ``unit``."""
    return TypeResolver(unit).resolve()


__all__ = ["TypeInfo", "TypeResolver", "resolve_types"]

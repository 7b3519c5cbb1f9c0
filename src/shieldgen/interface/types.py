"""Import scopes and annotation resolution.

An :class:`ImportScope` records, for one module, every name bound at module
level and the dotted target it refers to. A :class:`TypeResolver` turns a
libcst annotation expression into a structural :class:`TypeReference`
against such a scope.
"""

from __future__ import annotations

import builtins
import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Tuple

import libcst as cst

from shieldgen.interface.model import (
    ConstraintKind,
    DefaultValue,
    GenericConstraint,
    GenericKind,
    GenericParameter,
    NONE_TYPE,
    TypeKind,
    TypeReference,
)

logger = logging.getLogger(__name__)

_BUILTIN_NAMES = frozenset(dir(builtins))
_EMPTY_MODULE = cst.Module(body=[])

TYPEVAR_FACTORIES: Mapping[str, GenericKind] = {
    "typing.TypeVar": GenericKind.TYPE_VAR,
    "typing_extensions.TypeVar": GenericKind.TYPE_VAR,
    "typing.TypeVarTuple": GenericKind.TYPE_VAR_TUPLE,
    "typing_extensions.TypeVarTuple": GenericKind.TYPE_VAR_TUPLE,
    "typing.ParamSpec": GenericKind.PARAM_SPEC,
    "typing_extensions.ParamSpec": GenericKind.PARAM_SPEC,
}


def code_for(node: cst.CSTNode) -> str:
    return _EMPTY_MODULE.code_for_node(node)


def dotted_name(expr: cst.BaseExpression | None) -> str | None:
    if expr is None:
        return None
    if isinstance(expr, cst.Name):
        return expr.value
    if isinstance(expr, cst.Attribute):
        parts = []
        current: cst.BaseExpression = expr
        while isinstance(current, cst.Attribute):
            parts.append(current.attr.value)
            current = current.value
        if isinstance(current, cst.Name):
            parts.append(current.value)
            return ".".join(reversed(parts))
    return None


def resolve_relative(module: str, is_package: bool, level: int, target: str | None) -> str:
    parts = module.split(".") if module else []
    if not is_package:
        parts = parts[:-1]
    if level > 1:
        parts = parts[: len(parts) - (level - 1)] if level - 1 <= len(parts) else []
    if target:
        parts.append(target)
    return ".".join(parts)


@dataclass(frozen=True)
class ImportScope:
    """Names bound at module level and what they refer to.

    ``bindings`` maps a local name to every dotted target it has been bound
    to (more than one target means the name is ambiguous). ``imported_modules``
    lists modules made available through plain ``import`` statements.
    """

    module: str
    bindings: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    imported_modules: frozenset[str] = frozenset()
    star_imports: Tuple[str, ...] = ()

    def targets(self, name: str) -> Tuple[str, ...]:
        return self.bindings.get(name, ())

    def resolve_dotted(self, dotted: str) -> str:
        head, _, rest = dotted.partition(".")
        targets = self.targets(head)
        if targets:
            base = targets[0]
        elif head in _BUILTIN_NAMES and not rest:
            base = f"builtins.{head}"
        elif rest:
            # Unbound dotted heads are taken as absolute module paths.
            return dotted
        else:
            base = f"{self.module}.{head}" if self.module else head
        return f"{base}.{rest}" if rest else base

    def has_module_import(self, module: str) -> bool:
        """True when ``module.X`` can be spelled as-is in this scope."""
        head = module.split(".")[0]
        return module in self.imported_modules and self.targets(head) == (head,)

    @classmethod
    def from_module(
        cls, module: cst.Module, module_name: str, is_package: bool = False
    ) -> "ImportScope":
        collector = _BindingCollector(module_name, is_package)
        collector.collect(module.body)
        return cls(
            module=module_name,
            bindings={
                name: tuple(targets) for name, targets in collector.bindings.items()
            },
            imported_modules=frozenset(collector.imported_modules),
            star_imports=tuple(collector.star_imports),
        )


class _BindingCollector:
    def __init__(self, module_name: str, is_package: bool) -> None:
        self.module_name = module_name
        self.is_package = is_package
        self.bindings: dict[str, list[str]] = {}
        self.imported_modules: set[str] = set()
        self.star_imports: list[str] = []

    def bind(self, name: str, target: str) -> None:
        targets = self.bindings.setdefault(name, [])
        if target not in targets:
            targets.append(target)

    def local(self, name: str) -> str:
        return f"{self.module_name}.{name}" if self.module_name else name

    def collect(self, body: Iterable[cst.CSTNode]) -> None:
        for stmt in body:
            if isinstance(stmt, cst.SimpleStatementLine):
                for item in stmt.body:
                    self._small(item)
            elif isinstance(stmt, (cst.ClassDef, cst.FunctionDef)):
                self.bind(stmt.name.value, self.local(stmt.name.value))
            elif isinstance(stmt, cst.If):
                self.collect(stmt.body.body)
                orelse = stmt.orelse
                while orelse is not None:
                    self.collect(orelse.body.body)
                    orelse = orelse.orelse if isinstance(orelse, cst.If) else None
            elif isinstance(stmt, cst.Try):
                self.collect(stmt.body.body)
                for handler in stmt.handlers:
                    self.collect(handler.body.body)
                if stmt.orelse is not None:
                    self.collect(stmt.orelse.body.body)

    def _small(self, item: cst.BaseSmallStatement) -> None:
        if isinstance(item, cst.Import):
            for alias in item.names:
                dotted = dotted_name(alias.name)
                if dotted is None:
                    continue
                if alias.asname is not None and isinstance(alias.asname.name, cst.Name):
                    self.bind(alias.asname.name.value, dotted)
                else:
                    self.imported_modules.add(dotted)
                    head = dotted.split(".")[0]
                    self.bind(head, head)
        elif isinstance(item, cst.ImportFrom):
            source = dotted_name(item.module) if item.module is not None else None
            level = len(item.relative)
            if level:
                source = resolve_relative(
                    self.module_name, self.is_package, level, source
                )
            if source is None:
                return
            if isinstance(item.names, cst.ImportStar):
                self.star_imports.append(source)
                return
            for alias in item.names:
                imported = dotted_name(alias.name)
                if imported is None:
                    continue
                local = imported
                if alias.asname is not None and isinstance(alias.asname.name, cst.Name):
                    local = alias.asname.name.value
                self.bind(local, f"{source}.{imported}" if source else imported)
        elif isinstance(item, cst.Assign):
            for target in item.targets:
                if isinstance(target.target, cst.Name):
                    self.bind(target.target.value, self.local(target.target.value))
        elif isinstance(item, cst.AnnAssign):
            if isinstance(item.target, cst.Name):
                self.bind(item.target.value, self.local(item.target.value))
        elif isinstance(item, cst.TypeAlias):
            self.bind(item.name.value, self.local(item.name.value))


def typevar_calls(module: cst.Module) -> dict[str, cst.Call]:
    """Module-level ``T = TypeVar(...)`` style assignments, keyed by name."""
    found: dict[str, cst.Call] = {}
    for stmt in module.body:
        if not isinstance(stmt, cst.SimpleStatementLine):
            continue
        for item in stmt.body:
            if not isinstance(item, cst.Assign) or len(item.targets) != 1:
                continue
            target = item.targets[0].target
            if isinstance(target, cst.Name) and isinstance(item.value, cst.Call):
                found[target.value] = item.value
    return found


_CONSTANT_NAMES = frozenset({"True", "False", "None"})


class _FreeNames(cst.CSTVisitor):
    """Heads of the names an expression reads; attribute tails are skipped."""

    def __init__(self) -> None:
        super().__init__()
        self.heads: list[str] = []
        self.portable = True

    def visit_Name(self, node: cst.Name) -> None:
        if node.value not in _CONSTANT_NAMES and node.value not in self.heads:
            self.heads.append(node.value)

    def visit_Attribute(self, node: cst.Attribute) -> bool:
        node.value.visit(self)
        return False

    def visit_Arg(self, node: cst.Arg) -> bool:
        node.value.visit(self)
        return False

    def visit_Ellipsis(self, node: cst.Ellipsis) -> None:
        self.portable = False

    def _local_scope(self, node: cst.CSTNode) -> bool:
        self.portable = False
        return False

    visit_Lambda = _local_scope
    visit_NamedExpr = _local_scope
    visit_ListComp = _local_scope
    visit_SetComp = _local_scope
    visit_DictComp = _local_scope
    visit_GeneratorExp = _local_scope


def default_value(expr: cst.BaseExpression, scope: ImportScope) -> DefaultValue:
    """Capture a parameter default and what each of its names refers to."""
    names = _FreeNames()
    expr.visit(names)
    portable = names.portable
    references = []
    for head in names.heads:
        targets = scope.targets(head)
        if targets:
            references.append((head, targets[0]))
        elif head in _BUILTIN_NAMES:
            references.append((head, f"builtins.{head}"))
        else:
            logger.debug("default %s reads unbound name %s", code_for(expr), head)
            portable = False
    return DefaultValue(code_for(expr), tuple(references), portable)


class TypeResolver:
    """Resolves annotation expressions against one module's scope.

    ``type_params`` are names that resolve to type parameters (class or
    method scoped, PEP 695 or legacy). ``typevars`` are the module's legacy
    TypeVar declarations; any of them referenced in an annotation also
    resolves to a type parameter.
    """

    def __init__(
        self,
        scope: ImportScope,
        type_params: Iterable[str] = (),
        typevars: Mapping[str, cst.Call] | None = None,
    ) -> None:
        self.scope = scope
        self.type_params = frozenset(type_params)
        self.typevars: Mapping[str, cst.Call] = typevars or {}

    def with_params(self, names: Iterable[str]) -> "TypeResolver":
        return TypeResolver(self.scope, self.type_params | set(names), self.typevars)

    def is_typevar(self, name: str) -> bool:
        if name not in self.typevars:
            return False
        return self.factory_kind(self.typevars[name]) is not None

    def factory_kind(self, call: cst.Call) -> GenericKind | None:
        dotted = dotted_name(call.func)
        if dotted is None:
            return None
        return TYPEVAR_FACTORIES.get(self.scope.resolve_dotted(dotted))

    def resolve(self, expr: cst.BaseExpression | None) -> TypeReference | None:
        if expr is None:
            return None
        ref = self._resolve(expr)
        if ref.shortened is None:
            ref = TypeReference(ref.kind, ref.qualified, ref.args, code_for(expr))
        return ref

    def _resolve(self, expr: cst.BaseExpression) -> TypeReference:
        if isinstance(expr, cst.Name):
            return self._resolve_name(expr.value)
        if isinstance(expr, cst.Attribute):
            dotted = dotted_name(expr)
            if dotted is None:
                return TypeReference.literal(code_for(expr))
            head = dotted.split(".")[0]
            if head in self.type_params or self.is_typevar(head):
                # ParamSpec components such as P.args / P.kwargs.
                return TypeReference.param(dotted)
            return TypeReference.named(self.scope.resolve_dotted(dotted))
        if isinstance(expr, cst.Subscript):
            base = self._resolve(expr.value)
            args = []
            for element in expr.slice:
                if isinstance(element.slice, cst.Index):
                    args.append(self.resolve(element.slice.value))
                else:
                    args.append(TypeReference.literal(code_for(element.slice)))
            return TypeReference(base.kind, base.qualified, tuple(args))
        if isinstance(expr, cst.BinaryOperation) and isinstance(
            expr.operator, cst.BitOr
        ):
            members: list[TypeReference] = []
            for side in (expr.left, expr.right):
                resolved = self.resolve(side)
                if resolved.kind is TypeKind.UNION:
                    members.extend(resolved.args)
                else:
                    members.append(resolved)
            return TypeReference(TypeKind.UNION, "|", tuple(members))
        if isinstance(expr, cst.List):
            return TypeReference(
                TypeKind.LIST,
                "[]",
                tuple(self.resolve(element.value) for element in expr.elements),
            )
        if isinstance(expr, cst.SimpleString):
            try:
                inner = cst.parse_expression(expr.evaluated_value)
            except cst.ParserSyntaxError:
                logger.debug("unparseable forward reference %s", expr.value)
                return TypeReference.literal(expr.value)
            return self.resolve(inner)
        return TypeReference.literal(code_for(expr))

    def _resolve_name(self, name: str) -> TypeReference:
        if name in self.type_params or self.is_typevar(name):
            return TypeReference.param(name)
        if name == "None":
            return NONE_TYPE
        targets = self.scope.targets(name)
        if targets:
            return TypeReference.named(targets[0])
        if name in _BUILTIN_NAMES:
            return TypeReference.named(f"builtins.{name}")
        return TypeReference.named(self.scope.resolve_dotted(name))

    def legacy_generic(self, name: str) -> GenericParameter:
        call = self.typevars[name]
        kind = self.factory_kind(call) or GenericKind.TYPE_VAR
        constraints: list[GenericConstraint] = []
        positional = [arg for arg in call.args if arg.keyword is None and arg.star == ""]
        values = tuple(self.resolve(arg.value) for arg in positional[1:])
        if values:
            constraints.append(GenericConstraint(ConstraintKind.VALUE_SET, values))
        for arg in call.args:
            if arg.keyword is not None and arg.keyword.value == "bound":
                constraints.append(
                    GenericConstraint(ConstraintKind.BOUND, (self.resolve(arg.value),))
                )
        return GenericParameter(name, kind, tuple(constraints))

    def pep695_generic(self, node: cst.TypeParam) -> GenericParameter:
        param = node.param
        if isinstance(param, cst.TypeVarTuple):
            return GenericParameter(param.name.value, GenericKind.TYPE_VAR_TUPLE)
        if isinstance(param, cst.ParamSpec):
            return GenericParameter(param.name.value, GenericKind.PARAM_SPEC)
        constraints: Tuple[GenericConstraint, ...] = ()
        if param.bound is not None:
            if isinstance(param.bound, cst.Tuple):
                constraints = (
                    GenericConstraint(
                        ConstraintKind.VALUE_SET,
                        tuple(self.resolve(el.value) for el in param.bound.elements),
                    ),
                )
            else:
                constraints = (
                    GenericConstraint(ConstraintKind.BOUND, (self.resolve(param.bound),)),
                )
        return GenericParameter(param.name.value, GenericKind.TYPE_VAR, constraints)


def type_param_names(params: cst.TypeParameters | None) -> list[str]:
    if params is None:
        return []
    return [node.param.name.value for node in params.params]


GENERIC_BASES = frozenset(
    {
        "typing.Protocol",
        "typing_extensions.Protocol",
        "typing.Generic",
        "typing_extensions.Generic",
    }
)


def class_type_params(
    node: cst.ClassDef, scope: ImportScope, typevars: Mapping[str, cst.Call]
) -> list[str]:
    """Type parameters of a class, in declaration order.

    PEP 695 parameters win; otherwise ``Protocol[...]`` / ``Generic[...]``
    arguments; otherwise every legacy TypeVar found in the bases.
    """
    declared = type_param_names(node.type_parameters)
    if declared:
        return declared
    resolver = TypeResolver(scope, (), typevars)
    explicit: list[str] = []
    implicit: list[str] = []
    for arg in node.bases:
        if not isinstance(arg.value, cst.Subscript):
            continue
        base = resolver.resolve(arg.value)
        target = explicit if base.qualified in GENERIC_BASES else implicit
        for name in base.params():
            if name not in target:
                target.append(name)
    return explicit or implicit

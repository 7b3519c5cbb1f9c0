"""Interface model extraction.

Turns an interface class (a ``Protocol`` or ``ABC`` declared somewhere in a
:class:`Workspace`) into an :class:`InterfaceDescriptor`: every member an
implementing class has to expose, including members inherited from base
interfaces, with the interface's own type parameters substituted by the
arguments of the instantiating reference.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

import libcst as cst

from shieldgen.exceptions import UnresolvedInterface, UnsupportedMemberKind
from shieldgen.interface.model import (
    ANY_TYPE,
    NONE_TYPE,
    EventMember,
    GenericParameter,
    IndexerMember,
    InterfaceDescriptor,
    MemberDescriptor,
    MethodMember,
    Parameter,
    ParameterKind,
    PropertyMember,
    ReturnShape,
    TypeKind,
    TypeReference,
)
from shieldgen.interface.types import (
    ImportScope,
    TypeResolver,
    class_type_params,
    default_value,
    dotted_name,
    type_param_names,
)
from shieldgen.interface.workspace import ModuleInfo, Workspace

logger = logging.getLogger(__name__)

PROTOCOL_ROOTS = frozenset({"typing.Protocol", "typing_extensions.Protocol"})
ABC_ROOTS = frozenset({"abc.ABC"})
ABC_METACLASSES = frozenset({"abc.ABCMeta"})
GENERIC_ROOTS = frozenset({"typing.Generic", "typing_extensions.Generic"})
ROOT_BASES = PROTOCOL_ROOTS | ABC_ROOTS | GENERIC_ROOTS | {"builtins.object"}

ASYNC_WRAPPERS = frozenset(
    {
        "typing.Awaitable",
        "collections.abc.Awaitable",
        "typing.Coroutine",
        "collections.abc.Coroutine",
        "asyncio.Future",
        "asyncio.Task",
        "asyncio.futures.Future",
        "asyncio.tasks.Task",
    }
)
PROPERTY_DECORATORS = frozenset(
    {"builtins.property", "functools.cached_property", "abc.abstractproperty"}
)
UNSUPPORTED_DECORATORS = frozenset(
    {"builtins.staticmethod", "builtins.classmethod", "abc.abstractclassmethod", "abc.abstractstaticmethod"}
)
OVERLOAD_DECORATORS = frozenset({"typing.overload", "typing_extensions.overload"})
CLASSVAR_TYPES = frozenset({"typing.ClassVar", "typing_extensions.ClassVar"})
FINAL_TYPES = frozenset({"typing.Final", "typing_extensions.Final"})
INDEXER_METHODS = frozenset({"__getitem__", "__setitem__"})
IGNORED_DUNDERS = frozenset(
    {
        "__init__",
        "__init_subclass__",
        "__class_getitem__",
        "__subclasshook__",
        "__slots__",
        "__match_args__",
        "__doc__",
        "__module__",
        "__annotations__",
    }
)


def is_dunder(name: str) -> bool:
    return len(name) > 4 and name.startswith("__") and name.endswith("__")


@dataclass(frozen=True)
class _Frame:
    info: ModuleInfo
    node: cst.ClassDef
    mapping: Mapping[str, TypeReference]

    @property
    def qualified(self) -> str:
        return f"{self.info.name}.{self.node.name.value}"


@dataclass
class _FrameMembers:
    order: List[str] = field(default_factory=list)
    members: Dict[str, MemberDescriptor] = field(default_factory=dict)
    excluded: List[UnsupportedMemberKind] = field(default_factory=list)
    setters: Dict[str, PropertyMember] = field(default_factory=dict)


class InterfaceExtractor:
    def __init__(self, workspace: Workspace, event_types: Iterable[str] = ("Event",)) -> None:
        self.workspace = workspace
        self.event_types = frozenset(event_types)

    def describe(self, ref: TypeReference) -> InterfaceDescriptor:
        found = self.workspace.lookup_class(ref.qualified)
        if found is None:
            raise UnresolvedInterface(ref.qualified, "class not found in workspace")
        info, node = found
        if not self.is_interface(info, node):
            raise UnresolvedInterface(ref.qualified, "not a Protocol or ABC")
        warnings: List[str] = []
        root = _Frame(info, node, self._bind(info, node, ref.args))
        frames = self._linearize(root, warnings, ())

        members: List[MemberDescriptor] = []
        excluded: List[UnsupportedMemberKind] = []
        seen: set[str] = set()
        pending: Dict[str, PropertyMember] = {}
        for frame in frames:
            collected = self._collect(frame)
            for name, setter in collected.setters.items():
                if name not in seen:
                    pending.setdefault(name, setter)
            for item in collected.excluded:
                if item.member in seen:
                    continue
                seen.add(item.member)
                logger.debug("excluding %s", item)
                excluded.append(item)
            for name in collected.order:
                if name in seen:
                    continue
                seen.add(name)
                member = collected.members[name]
                if isinstance(member, PropertyMember) and name in pending:
                    setter = pending.pop(name)
                    member = PropertyMember(
                        name,
                        member.annotation or setter.annotation,
                        member.readable,
                        writable=True,
                    )
                members.append(member)
        for name in pending:
            warnings.append(
                f"{ref.qualified}.{name}: setter has no property getter to pair with;"
                " not synthesized."
            )
        return InterfaceDescriptor(
            interface=ref,
            members=tuple(members),
            excluded=tuple(excluded),
            warnings=tuple(warnings),
        )

    def is_interface(
        self, info: ModuleInfo, node: cst.ClassDef, _seen: frozenset[str] = frozenset()
    ) -> bool:
        qualified = f"{info.name}.{node.name.value}"
        if qualified in _seen:
            return False
        resolver = self._class_resolver(info, node)
        for arg in node.bases:
            base = resolver.resolve(arg.value)
            if base is None or base.kind is not TypeKind.NAMED:
                continue
            if base.qualified in PROTOCOL_ROOTS | ABC_ROOTS:
                return True
            found = self.workspace.lookup_class(base.qualified)
            if found is not None and self.is_interface(*found, _seen | {qualified}):
                return True
        for arg in node.keywords:
            if arg.keyword.value == "metaclass":
                meta = resolver.resolve(arg.value)
                if meta is not None and meta.qualified in ABC_METACLASSES:
                    return True
        return False

    # --- class hierarchy -------------------------------------------------

    def _class_resolver(self, info: ModuleInfo, node: cst.ClassDef) -> TypeResolver:
        return TypeResolver(info.scope, self._class_params(info, node), info.typevars)

    def _class_params(self, info: ModuleInfo, node: cst.ClassDef) -> List[str]:
        return class_type_params(node, info.scope, info.typevars)

    def _bind(
        self, info: ModuleInfo, node: cst.ClassDef, args: Sequence[TypeReference]
    ) -> Dict[str, TypeReference]:
        params = self._class_params(info, node)
        return {
            name: (args[index] if index < len(args) else ANY_TYPE)
            for index, name in enumerate(params)
        }

    def _bases(self, frame: _Frame, warnings: List[str]) -> List[_Frame]:
        resolver = self._class_resolver(frame.info, frame.node)
        bases: List[_Frame] = []
        for arg in frame.node.bases:
            ref = resolver.resolve(arg.value)
            if ref is None or ref.kind is not TypeKind.NAMED:
                continue
            ref = ref.substitute(dict(frame.mapping))
            if ref.qualified in ROOT_BASES:
                continue
            found = self.workspace.lookup_class(ref.qualified)
            if found is None:
                warnings.append(
                    f"{frame.qualified}: base {ref.qualified} is outside the workspace;"
                    " its members are not synthesized."
                )
                continue
            info, node = found
            bases.append(_Frame(info, node, self._bind(info, node, ref.args)))
        return bases

    def _linearize(
        self, frame: _Frame, warnings: List[str], stack: Tuple[str, ...]
    ) -> List[_Frame]:
        if frame.qualified in stack:
            warnings.append(f"{frame.qualified}: cyclic base classes ignored.")
            return []
        bases = self._bases(frame, warnings)
        sequences = [
            self._linearize(base, warnings, stack + (frame.qualified,)) for base in bases
        ]
        sequences = [seq for seq in sequences if seq]
        sequences.append(list(bases))
        merged = _c3_merge(sequences)
        if merged is None:
            warnings.append(
                f"{frame.qualified}: inconsistent method resolution order;"
                " falling back to depth-first base order."
            )
            merged = []
            names: set[str] = set()
            for seq in sequences:
                for item in seq:
                    if item.qualified not in names:
                        names.add(item.qualified)
                        merged.append(item)
        return [frame, *merged]

    # --- members ---------------------------------------------------------

    def _collect(self, frame: _Frame) -> _FrameMembers:
        collected = _FrameMembers()
        body = frame.node.body
        if not isinstance(body, cst.IndentedBlock):
            return collected
        resolver = self._class_resolver(frame.info, frame.node)
        owner = frame.node.name.value
        mapping = dict(frame.mapping)
        overloads: List[str] = []
        indexer: Dict[str, cst.FunctionDef] = {}

        def exclude(name: str, reason: str) -> None:
            if name in collected.members or any(e.member == name for e in collected.excluded):
                return
            collected.excluded.append(UnsupportedMemberKind(owner, name, reason))

        def add(name: str, member: MemberDescriptor) -> None:
            if name not in collected.members:
                collected.order.append(name)
            collected.members[name] = member

        for stmt in body.body:
            if isinstance(stmt, cst.FunctionDef):
                name = stmt.name.value
                decorators = decorator_names(stmt, resolver.scope)
                if decorators & OVERLOAD_DECORATORS:
                    overloads.append(name)
                    continue
                if name in IGNORED_DUNDERS:
                    continue
                if decorators & UNSUPPORTED_DECORATORS:
                    exclude(name, "static and class methods cannot be forwarded to an instance")
                    continue
                if decorators & PROPERTY_DECORATORS:
                    add(name, self._property(stmt, resolver, mapping))
                    continue
                if _accessor_of(decorators, name, "setter"):
                    existing = collected.members.get(name)
                    if isinstance(existing, PropertyMember):
                        add(name, _with_setter(existing, stmt, resolver, mapping))
                    else:
                        # Getter declared by a base interface.
                        collected.setters[name] = _with_setter(
                            PropertyMember(name, readable=False), stmt, resolver, mapping
                        )
                    continue
                if _accessor_of(decorators, name, "deleter"):
                    exclude(name, "property deleters are not supported")
                    continue
                if name in INDEXER_METHODS:
                    indexer[name] = stmt
                    continue
                if is_dunder(name):
                    exclude(name, "operator-style members are not supported")
                    continue
                add(name, self._method(stmt, resolver, mapping))
            elif isinstance(stmt, cst.SimpleStatementLine):
                for item in stmt.body:
                    self._attribute(item, resolver, mapping, add, exclude)
            elif isinstance(stmt, cst.ClassDef):
                exclude(stmt.name.value, "nested classes are not supported")

        if indexer:
            add("__getitem__" if "__getitem__" in indexer else "__setitem__",
                self._indexer(indexer, resolver, mapping))
        for name in overloads:
            if name not in collected.members:
                exclude(name, "overload stubs without an implementation signature")
        return collected

    def _attribute(self, item, resolver, mapping, add, exclude) -> None:
        if isinstance(item, cst.AnnAssign) and isinstance(item.target, cst.Name):
            name = item.target.value
            if is_dunder(name):
                return
            annotation = resolver.resolve(item.annotation.annotation)
            if annotation.qualified in CLASSVAR_TYPES:
                exclude(name, "class variables are not instance members")
                return
            if annotation.name in self.event_types:
                add(name, EventMember(name, annotation.substitute(mapping)))
                return
            if annotation.qualified in FINAL_TYPES:
                inner = annotation.args[0] if annotation.args else None
                add(
                    name,
                    PropertyMember(
                        name,
                        inner.substitute(mapping) if inner is not None else None,
                        readable=True,
                        writable=False,
                    ),
                )
                return
            add(name, PropertyMember(name, annotation.substitute(mapping), True, True))
        elif isinstance(item, cst.Assign):
            for target in item.targets:
                if isinstance(target.target, cst.Name) and not is_dunder(target.target.value):
                    exclude(target.target.value, "unannotated class attributes are not supported")

    def _property(
        self, fn: cst.FunctionDef, resolver: TypeResolver, mapping: Dict[str, TypeReference]
    ) -> PropertyMember:
        annotation = resolver.resolve(fn.returns.annotation) if fn.returns else None
        if annotation is not None:
            annotation = annotation.substitute(mapping)
        return PropertyMember(fn.name.value, annotation, readable=True, writable=False)

    def _method(
        self, fn: cst.FunctionDef, resolver: TypeResolver, mapping: Dict[str, TypeReference]
    ) -> MethodMember:
        parameters, returns, generics = method_parts(fn, resolver)
        parameters = tuple(p.substitute(mapping) for p in parameters)
        generics = [g.substitute(mapping) for g in generics]
        if returns is not None:
            returns = returns.substitute(mapping)

        shape, awaited = ReturnShape.VALUE, None
        if isinstance(fn.asynchronous, cst.Asynchronous):
            shape, awaited = ReturnShape.AWAITABLE, returns
        elif returns is not None and returns.kind is TypeKind.NAMED and returns.qualified in ASYNC_WRAPPERS:
            shape = ReturnShape.AWAITABLE
            awaited = returns.args[-1] if returns.args else ANY_TYPE
        elif returns == NONE_TYPE:
            shape = ReturnShape.VOID
        return MethodMember(
            name=fn.name.value,
            parameters=parameters,
            returns=returns,
            generics=tuple(generics),
            shape=shape,
            awaited=awaited,
        )

    def _indexer(
        self,
        parts: Mapping[str, cst.FunctionDef],
        resolver: TypeResolver,
        mapping: Dict[str, TypeReference],
    ) -> IndexerMember:
        keys: Tuple[Parameter, ...] = ()
        value: TypeReference | None = None
        value_name = "value"
        getter = parts.get("__getitem__")
        setter = parts.get("__setitem__")
        if setter is not None:
            params = method_parameters(setter.params, resolver)
            if params:
                keys, value_name = params[:-1], params[-1].name
                value = params[-1].annotation
        if getter is not None:
            keys = method_parameters(getter.params, resolver)
            if getter.returns is not None:
                value = resolver.resolve(getter.returns.annotation)
        return IndexerMember(
            keys=tuple(p.substitute(mapping) for p in keys),
            value=value.substitute(mapping) if value is not None else None,
            readable=getter is not None,
            writable=setter is not None,
            value_name=value_name,
        )


def decorator_names(fn: cst.FunctionDef, scope: ImportScope) -> frozenset[str]:
    """Qualified decorator names; property accessors keep their ``x.setter`` form."""
    names: set[str] = set()
    for decorator in fn.decorators:
        expr = decorator.decorator
        if isinstance(expr, cst.Call):
            expr = expr.func
        dotted = dotted_name(expr)
        if dotted is None:
            continue
        if dotted.endswith((".setter", ".deleter", ".getter")):
            names.add(dotted)
            continue
        names.add(scope.resolve_dotted(dotted))
    return frozenset(names)


def method_parameters(params: cst.Parameters, resolver: TypeResolver) -> Tuple[Parameter, ...]:
    """Parameters of a method, without its leading ``self``."""
    positional = [(p, ParameterKind.POSITIONAL_ONLY) for p in params.posonly_params]
    positional += [(p, ParameterKind.POSITIONAL_OR_KEYWORD) for p in params.params]
    entries = positional[1:]
    if isinstance(params.star_arg, cst.Param):
        entries.append((params.star_arg, ParameterKind.VAR_POSITIONAL))
    entries += [(p, ParameterKind.KEYWORD_ONLY) for p in params.kwonly_params]
    if params.star_kwarg is not None:
        entries.append((params.star_kwarg, ParameterKind.VAR_KEYWORD))
    return tuple(
        Parameter(
            name=param.name.value,
            annotation=resolver.resolve(param.annotation.annotation) if param.annotation else None,
            kind=kind,
            default=(
                default_value(param.default, resolver.scope)
                if param.default is not None
                else None
            ),
        )
        for param, kind in entries
    )


def _accessor_of(decorators: Iterable[str], name: str, accessor: str) -> bool:
    """True for ``@name.setter`` style decorators, also when spelled ``@Base.name.setter``."""
    suffix = f"{name}.{accessor}"
    return any(d == suffix or d.endswith(f".{suffix}") for d in decorators)


def _with_setter(
    existing: PropertyMember,
    fn: cst.FunctionDef,
    resolver: TypeResolver,
    mapping: Dict[str, TypeReference],
) -> PropertyMember:
    annotation = existing.annotation
    if annotation is None:
        params = method_parameters(fn.params, resolver)
        if params and params[-1].annotation is not None:
            annotation = params[-1].annotation.substitute(mapping)
    return PropertyMember(existing.name, annotation, existing.readable, True)


def _ordered_params(refs: Iterable[TypeReference]) -> List[str]:
    ordered: List[str] = []
    for ref in refs:
        ordered.extend(name for name in ref.params() if name not in ordered)
    return ordered


def _c3_merge(sequences: List[List[_Frame]]) -> List[_Frame] | None:
    sequences = [list(seq) for seq in sequences if seq]
    result: List[_Frame] = []
    while sequences:
        for seq in sequences:
            head = seq[0]
            if not any(head.qualified in [f.qualified for f in other[1:]] for other in sequences):
                break
        else:
            return None
        result.append(head)
        sequences = [
            [f for f in seq if f.qualified != head.qualified] for seq in sequences
        ]
        sequences = [seq for seq in sequences if seq]
    return result


def describe_interface(
    ref: TypeReference, workspace: Workspace, event_types: Iterable[str] = ("Event",)
) -> InterfaceDescriptor:
    return InterfaceExtractor(workspace, event_types).describe(ref)


def method_parts(
    fn: cst.FunctionDef, resolver: TypeResolver
) -> Tuple[Tuple[Parameter, ...], TypeReference | None, List[GenericParameter]]:
    """Parameters, return type and method-scoped generics of ``fn``.

    Generics are the PEP 695 parameters followed by legacy TypeVars in order
    of first appearance in the parameters and return type. Class-scoped
    parameters known to ``resolver`` are not method generics.
    """
    declared = type_param_names(fn.type_parameters)
    method_resolver = resolver.with_params(declared)
    parameters = method_parameters(fn.params, method_resolver)
    returns = method_resolver.resolve(fn.returns.annotation) if fn.returns else None
    generics: List[GenericParameter] = []
    if fn.type_parameters is not None:
        generics.extend(
            method_resolver.pep695_generic(node) for node in fn.type_parameters.params
        )
    referenced = [p.annotation for p in parameters if p.annotation is not None]
    if returns is not None:
        referenced.append(returns)
    for name in _ordered_params(referenced):
        head = name.split(".")[0]
        if head in resolver.type_params or head in [g.name for g in generics]:
            continue
        if method_resolver.is_typevar(head):
            generics.append(method_resolver.legacy_generic(head))
    return parameters, returns, generics

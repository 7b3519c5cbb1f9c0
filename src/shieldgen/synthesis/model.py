from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping, Sequence, Tuple

import libcst as cst

from shieldgen.interface.model import (
    NONE_TYPE,
    GenericParameter,
    MemberDescriptor,
    Parameter,
    ParameterKind,
    TypeKind,
    TypeReference,
)


class SynthesisMode(str, Enum):
    """How awaited members are emitted.

    ``ELIDED`` hands back the helper's awaitable from plain ``def`` members;
    ``EXPLICIT`` emits ``async def`` members that await the helper.
    """

    ELIDED = "elided"
    EXPLICIT = "explicit"


class Strategy(str, Enum):
    DIRECT_VOID_CALL = "direct_void_call"
    DIRECT_VALUE_CALL = "direct_value_call"
    AWAITED_CALL = "awaited_call"
    DIRECT_EVENT_ACCESS = "direct_event_access"


class Accessor(str, Enum):
    METHOD = "method"
    GET = "get"
    SET = "set"


class MemberCategory(str, Enum):
    FIELD = "field"
    CONSTRUCTOR = "constructor"
    HELPER = "helper"
    FORWARDING = "forwarding"


@dataclass(frozen=True)
class SynthesisPlan:
    """How one accessor of one interface member is forwarded.

    ``arguments`` is the call argument list forwarded to the wrapped member
    and ``generic_arguments`` the type parameter names it is instantiated
    with; :meth:`target` fills in the wrapped-instance field access.
    """

    member: MemberDescriptor
    strategy: Strategy
    accessor: Accessor
    mode: SynthesisMode
    name: str
    parameters: Tuple[Parameter, ...] = ()
    returns: TypeReference | None = None
    generics: Tuple[GenericParameter, ...] = ()
    is_async: bool = False
    arguments: str = ""
    generic_arguments: Tuple[str, ...] = ()

    def target(self, field_access: str) -> str:
        if self.name == "__getitem__":
            keys = self.parameters
            if (
                len(keys) == 1
                and keys[0].kind in _POSITIONAL
                and not has_unportable_default(keys[0])
            ):
                return f"{field_access}[{self.arguments}]"
            return f"{field_access}.__getitem__({self.arguments})"
        if self.name == "__setitem__":
            return f"{field_access}.__setitem__({self.arguments})"
        if self.accessor is Accessor.GET:
            return f"{field_access}.{self.name}"
        if self.accessor is Accessor.SET:
            if self.strategy is Strategy.DIRECT_EVENT_ACCESS:
                return f"{field_access}.{self.name} = {self.arguments}"
            return f'setattr({field_access}, "{self.name}", {self.arguments})'
        return f"{field_access}.{self.name}({self.arguments})"


_POSITIONAL = (ParameterKind.POSITIONAL_ONLY, ParameterKind.POSITIONAL_OR_KEYWORD)


def call_arguments(parameters: Iterable[Parameter], given: str | None = None) -> str:
    """Argument list forwarding ``parameters`` to the wrapped member.

    With ``given`` (the spelling of :func:`shieldgen.policy.given`), parameters
    whose default is not portable are passed through that filter, so the
    wrapped member's own default applies when the caller left them out.
    Positional parameters from the first such one on go by keyword.
    """
    parts = []
    filtered = []
    by_keyword = False
    for param in parameters:
        omittable = given is not None and has_unportable_default(param)
        if param.kind in _POSITIONAL:
            by_keyword = by_keyword or omittable
            if omittable:
                filtered.append(param.name)
            elif by_keyword:
                parts.append(f"{param.name}={param.name}")
            else:
                parts.append(param.name)
        elif param.kind is ParameterKind.VAR_POSITIONAL:
            parts.append(f"*{param.name}")
        elif param.kind is ParameterKind.KEYWORD_ONLY:
            if omittable:
                filtered.append(param.name)
            else:
                parts.append(f"{param.name}={param.name}")
        else:
            parts.append(f"**{param.name}")
    if filtered:
        pairs = ", ".join(f"{name}={name}" for name in filtered)
        parts.append(f"**{given}({pairs})")
    return ", ".join(parts)


def has_unportable_default(param: Parameter) -> bool:
    return param.default is not None and not param.default.portable


def keyword_forwarding_problem(parameters: Iterable[Parameter]) -> str | None:
    """Why ``parameters`` cannot leave out their unportable defaults, or None."""
    switched = False
    for param in parameters:
        unportable = has_unportable_default(param)
        if unportable and param.kind is ParameterKind.POSITIONAL_ONLY:
            return f"positional-only parameter {param.name} has a default that cannot be restated"
        switched = switched or (unportable and param.kind in _POSITIONAL)
        if switched and param.kind is ParameterKind.VAR_POSITIONAL:
            return f"*{param.name} follows a parameter whose default cannot be restated"
    return None


# typing aliases compared as their runtime counterparts.
_CANONICAL_NAMES: Mapping[str, str] = {
    "typing.Callable": "collections.abc.Callable",
    "typing.Awaitable": "collections.abc.Awaitable",
    "typing.Coroutine": "collections.abc.Coroutine",
    "typing.Iterable": "collections.abc.Iterable",
    "typing.Iterator": "collections.abc.Iterator",
    "typing.AsyncIterable": "collections.abc.AsyncIterable",
    "typing.AsyncIterator": "collections.abc.AsyncIterator",
    "typing.Sequence": "collections.abc.Sequence",
    "typing.Mapping": "collections.abc.Mapping",
    "typing.MutableMapping": "collections.abc.MutableMapping",
    "typing.List": "builtins.list",
    "typing.Dict": "builtins.dict",
    "typing.Set": "builtins.set",
    "typing.FrozenSet": "builtins.frozenset",
    "typing.Tuple": "builtins.tuple",
    "typing.Type": "builtins.type",
}


def canonical_type(
    ref: TypeReference | None, positions: Mapping[str, int] | None = None
) -> TypeReference | None:
    """Normalizes a type for signature comparison.

    Drops display spellings, folds typing aliases and ``Optional`` / ``Union``
    into their canonical forms and replaces method type parameters with
    their position.
    """
    if ref is None:
        return None
    positions = positions or {}
    args = tuple(canonical_type(arg, positions) for arg in ref.args)
    if ref.kind is TypeKind.PARAM:
        head, dot, rest = ref.qualified.partition(".")
        if head in positions:
            return TypeReference.param(f"#{positions[head]}{dot}{rest}")
        return TypeReference.param(ref.qualified)
    if ref.kind is TypeKind.NAMED:
        if ref.qualified in ("typing.Optional", "typing_extensions.Optional") and args:
            return _union((*args, NONE_TYPE))
        if ref.qualified in ("typing.Union", "typing_extensions.Union"):
            return _union(args)
        return TypeReference(
            TypeKind.NAMED, _CANONICAL_NAMES.get(ref.qualified, ref.qualified), args
        )
    if ref.kind is TypeKind.UNION:
        return _union(args)
    return TypeReference(ref.kind, ref.qualified, args)


def _union(members: Sequence[TypeReference]) -> TypeReference:
    flat: list[TypeReference] = []
    for member in members:
        for item in member.args if member.kind is TypeKind.UNION else (member,):
            if item not in flat:
                flat.append(item)
    if len(flat) == 1:
        return flat[0]
    return TypeReference(TypeKind.UNION, "|", tuple(sorted(flat, key=str)))


@dataclass(frozen=True)
class MemberSignature:
    """Structural identity of a class member for merge purposes.

    Name, accessor, parameter kinds and types and generic arity. Bodies,
    parameter names, defaults and return types never take part.
    """

    name: str
    accessor: Accessor = Accessor.METHOD
    parameters: Tuple[Tuple[ParameterKind, TypeReference | None], ...] = ()
    generic_arity: int = 0

    @classmethod
    def build(
        cls,
        name: str,
        accessor: Accessor,
        parameters: Iterable[Parameter],
        generics: Sequence[str] = (),
    ) -> "MemberSignature":
        positions = {generic: index for index, generic in enumerate(generics)}
        return cls(
            name=name,
            accessor=accessor,
            parameters=tuple(
                (param.kind, canonical_type(param.annotation, positions))
                for param in parameters
            ),
            generic_arity=len(generics),
        )


@dataclass(frozen=True)
class CandidateMember:
    category: MemberCategory
    name: str
    source: str
    node: cst.BaseStatement = field(compare=False, repr=False)
    signature: MemberSignature | None = None
    field_type: TypeReference | None = None
    accessor: Accessor = Accessor.METHOD
    imports: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CandidateSet:
    members: Tuple[CandidateMember, ...] = ()
    warnings: Tuple[str, ...] = ()

    def by_category(self, category: MemberCategory) -> list[CandidateMember]:
        return [member for member in self.members if member.category is category]


@dataclass(frozen=True)
class SynthesisConfig:
    mode: SynthesisMode = SynthesisMode.ELIDED
    inner_field: str = "_inner"
    policy_field: str = "_policy"
    inner_parameter: str = "inner"
    policy_parameter: str = "policy"
    void_helper: str = "_execute"
    value_helper: str = "_execute_value"
    async_helper: str = "_execute_async"
    policy_type: str = "shieldgen.policy.ResiliencePolicy"
    event_types: Tuple[str, ...] = ("Event",)

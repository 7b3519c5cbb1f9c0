from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple, Union

from shieldgen.exceptions import UnsupportedMemberKind


class TypeKind(str, Enum):
    NAMED = "named"
    PARAM = "param"
    UNION = "union"
    LIST = "list"
    LITERAL = "literal"


@dataclass(frozen=True)
class TypeReference:
    """A resolved type expression.

    ``qualified`` holds the dotted target for named types, the parameter name
    for type parameters, and the source text for literals. Equality is
    structural; ``shortened`` (the spelling found in source) is carried for
    display only.
    """

    kind: TypeKind
    qualified: str
    args: Tuple["TypeReference", ...] = ()
    shortened: str | None = field(default=None, compare=False)

    @property
    def module(self) -> str:
        if self.kind is not TypeKind.NAMED or "." not in self.qualified:
            return ""
        return self.qualified.rsplit(".", 1)[0]

    @property
    def name(self) -> str:
        return self.qualified.rsplit(".", 1)[-1]

    @classmethod
    def named(cls, qualified: str, *args: "TypeReference") -> "TypeReference":
        return cls(TypeKind.NAMED, qualified, tuple(args))

    @classmethod
    def param(cls, name: str) -> "TypeReference":
        return cls(TypeKind.PARAM, name)

    @classmethod
    def literal(cls, text: str) -> "TypeReference":
        return cls(TypeKind.LITERAL, text)

    def substitute(self, mapping: dict[str, "TypeReference"]) -> "TypeReference":
        if self.kind is TypeKind.PARAM and self.qualified in mapping:
            return mapping[self.qualified]
        if not self.args:
            return self
        return TypeReference(
            self.kind,
            self.qualified,
            tuple(arg.substitute(mapping) for arg in self.args),
            self.shortened,
        )

    def params(self) -> list[str]:
        """Type parameter names referenced, in order of first appearance."""
        found: list[str] = []
        if self.kind is TypeKind.PARAM:
            found.append(self.qualified)
        for arg in self.args:
            found.extend(name for name in arg.params() if name not in found)
        return found

    def __str__(self) -> str:
        if self.kind is TypeKind.UNION:
            return " | ".join(str(arg) for arg in self.args)
        if self.kind is TypeKind.LIST:
            return "[" + ", ".join(str(arg) for arg in self.args) + "]"
        if self.args:
            return f"{self.qualified}[{', '.join(str(arg) for arg in self.args)}]"
        return self.qualified


NONE_TYPE = TypeReference.literal("None")
ANY_TYPE = TypeReference.named("typing.Any")
OBJECT_TYPE = TypeReference.named("builtins.object")


class ParameterKind(str, Enum):
    POSITIONAL_ONLY = "positional_only"
    POSITIONAL_OR_KEYWORD = "positional_or_keyword"
    VAR_POSITIONAL = "var_positional"
    KEYWORD_ONLY = "keyword_only"
    VAR_KEYWORD = "var_keyword"


@dataclass(frozen=True)
class DefaultValue:
    """A parameter default as written in the interface.

    ``references`` pairs each free name in ``text`` with its qualified target
    in the interface module. A default that cannot be restated in another
    module (``...``, unbound names, lambdas) is not ``portable``.
    """

    text: str
    references: Tuple[Tuple[str, str], ...] = ()
    portable: bool = True

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class Parameter:
    name: str
    annotation: TypeReference | None = None
    kind: ParameterKind = ParameterKind.POSITIONAL_OR_KEYWORD
    default: DefaultValue | None = None

    def substitute(self, mapping: dict[str, TypeReference]) -> "Parameter":
        if self.annotation is None:
            return self
        return Parameter(
            self.name, self.annotation.substitute(mapping), self.kind, self.default
        )


class ConstraintKind(str, Enum):
    BOUND = "bound"
    VALUE_SET = "value_set"


@dataclass(frozen=True)
class GenericConstraint:
    kind: ConstraintKind
    types: Tuple[TypeReference, ...]


class GenericKind(str, Enum):
    TYPE_VAR = "type_var"
    TYPE_VAR_TUPLE = "type_var_tuple"
    PARAM_SPEC = "param_spec"


@dataclass(frozen=True)
class GenericParameter:
    name: str
    kind: GenericKind = GenericKind.TYPE_VAR
    constraints: Tuple[GenericConstraint, ...] = ()

    def substitute(self, mapping: dict[str, TypeReference]) -> "GenericParameter":
        if not self.constraints:
            return self
        return GenericParameter(
            self.name,
            self.kind,
            tuple(
                GenericConstraint(
                    c.kind, tuple(t.substitute(mapping) for t in c.types)
                )
                for c in self.constraints
            ),
        )


class ReturnShape(str, Enum):
    VOID = "void"
    VALUE = "value"
    AWAITABLE = "awaitable"


@dataclass(frozen=True)
class MethodMember:
    name: str
    parameters: Tuple[Parameter, ...] = ()
    returns: TypeReference | None = None
    generics: Tuple[GenericParameter, ...] = ()
    shape: ReturnShape = ReturnShape.VALUE
    # Value the awaitable resolves to; only meaningful for AWAITABLE.
    awaited: TypeReference | None = None


@dataclass(frozen=True)
class PropertyMember:
    name: str
    annotation: TypeReference | None = None
    readable: bool = True
    writable: bool = False


@dataclass(frozen=True)
class EventMember:
    name: str
    annotation: TypeReference | None = None


@dataclass(frozen=True)
class IndexerMember:
    keys: Tuple[Parameter, ...] = ()
    value: TypeReference | None = None
    readable: bool = False
    writable: bool = False
    # Name of the value parameter of __setitem__ in the interface.
    value_name: str = "value"

    @property
    def name(self) -> str:
        return "__getitem__" if self.readable else "__setitem__"


MemberDescriptor = Union[MethodMember, PropertyMember, EventMember, IndexerMember]


@dataclass(frozen=True)
class InterfaceDescriptor:
    interface: TypeReference
    members: Tuple[MemberDescriptor, ...] = ()
    excluded: Tuple[UnsupportedMemberKind, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.interface.name

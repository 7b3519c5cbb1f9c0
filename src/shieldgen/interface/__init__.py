"""Interface model extraction."""

from shieldgen.interface.extract import InterfaceExtractor, describe_interface
from shieldgen.interface.model import (
    ConstraintKind,
    EventMember,
    GenericConstraint,
    GenericKind,
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
from shieldgen.interface.types import ImportScope, TypeResolver
from shieldgen.interface.workspace import ModuleInfo, Workspace

__all__ = [
    "ConstraintKind",
    "EventMember",
    "GenericConstraint",
    "GenericKind",
    "GenericParameter",
    "ImportScope",
    "IndexerMember",
    "InterfaceDescriptor",
    "InterfaceExtractor",
    "MemberDescriptor",
    "MethodMember",
    "ModuleInfo",
    "Parameter",
    "ParameterKind",
    "PropertyMember",
    "ReturnShape",
    "TypeKind",
    "TypeReference",
    "TypeResolver",
    "Workspace",
    "describe_interface",
]

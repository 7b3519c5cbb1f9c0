from __future__ import annotations

from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel

from shieldgen.interface.model import (
    EventMember,
    IndexerMember,
    InterfaceDescriptor,
    MemberDescriptor,
    MethodMember,
    PropertyMember,
)
from shieldgen.invariants import never
from shieldgen.refactor.model import RefactorPlan


class ImplementRequestDTO(BaseModel):
    target_path: str
    class_name: str
    interface: Optional[str] = None
    mode: Optional[Literal["elided", "explicit"]] = None
    source: Optional[str] = None


class TextEditDTO(BaseModel):
    path: str
    start: Tuple[int, int]
    end: Tuple[int, int]
    replacement: str


class DeltaMemberDTO(BaseModel):
    category: str
    name: str
    source: str


class ConflictDTO(BaseModel):
    name: str
    reason: str


class ImplementResponse(BaseModel):
    edits: List[TextEditDTO] = []
    members: List[DeltaMemberDTO] = []
    imports: List[str] = []
    excluded: List[str] = []
    conflicts: List[ConflictDTO] = []
    warnings: List[str] = []
    errors: List[str] = []

    @classmethod
    def from_plan(cls, plan: RefactorPlan) -> "ImplementResponse":
        delta = plan.delta
        return cls(
            edits=[
                TextEditDTO(
                    path=edit.path,
                    start=edit.start,
                    end=edit.end,
                    replacement=edit.replacement,
                )
                for edit in plan.edits
            ],
            members=[
                DeltaMemberDTO(category=m.category.value, name=m.name, source=m.source)
                for m in (delta.members if delta else ())
            ],
            imports=list(delta.imports) if delta else [],
            excluded=[str(item) for item in delta.excluded] if delta else [],
            conflicts=[
                ConflictDTO(name=c.name, reason=c.reason)
                for c in (delta.conflicts if delta else ())
            ],
            warnings=list(plan.warnings),
            errors=list(plan.errors),
        )


class InterfaceMemberDTO(BaseModel):
    kind: Literal["method", "property", "event", "indexer"]
    name: str
    detail: str


class InterfaceResponse(BaseModel):
    interface: str
    members: List[InterfaceMemberDTO] = []
    excluded: List[str] = []
    warnings: List[str] = []
    errors: List[str] = []

    @classmethod
    def from_descriptor(cls, descriptor: InterfaceDescriptor) -> "InterfaceResponse":
        return cls(
            interface=str(descriptor.interface),
            members=[member_dto(member) for member in descriptor.members],
            excluded=[str(item) for item in descriptor.excluded],
            warnings=list(descriptor.warnings),
        )


def _params(parameters) -> str:
    return ", ".join(
        f"{p.name}: {p.annotation}" if p.annotation is not None else p.name
        for p in parameters
    )


def member_dto(member: MemberDescriptor) -> InterfaceMemberDTO:
    if isinstance(member, MethodMember):
        generics = ", ".join(g.name for g in member.generics)
        generics = f"[{generics}]" if generics else ""
        return InterfaceMemberDTO(
            kind="method",
            name=member.name,
            detail=(
                f"{member.name}{generics}({_params(member.parameters)})"
                f" -> {member.returns} [{member.shape.value}]"
            ),
        )
    if isinstance(member, PropertyMember):
        if member.readable and member.writable:
            access = "read-write"
        else:
            access = "read-only" if member.readable else "write-only"
        return InterfaceMemberDTO(
            kind="property", name=member.name, detail=f"{member.annotation} ({access})"
        )
    if isinstance(member, EventMember):
        return InterfaceMemberDTO(kind="event", name=member.name, detail=str(member.annotation))
    if isinstance(member, IndexerMember):
        return InterfaceMemberDTO(
            kind="indexer",
            name=member.name,
            detail=f"[{_params(member.keys)}] -> {member.value}",
        )
    never("unknown member descriptor", kind=type(member).__name__)

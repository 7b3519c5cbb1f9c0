from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, List, Tuple

import libcst as cst

from shieldgen.exceptions import UnsupportedMemberKind
from shieldgen.interface.model import TypeReference
from shieldgen.interface.types import ImportScope
from shieldgen.synthesis.model import (
    Accessor,
    MemberCategory,
    MemberSignature,
    SynthesisMode,
    canonical_type,
)

Position = Tuple[int, int]


@dataclass(frozen=True)
class TextEdit:
    path: str
    start: Position
    end: Position
    replacement: str


@dataclass(frozen=True)
class SnapshotField:
    name: str
    annotation: TypeReference | None = None


@dataclass(frozen=True)
class ClassSnapshot:
    """The members a class already declares, by structural signature."""

    name: str
    scope: ImportScope
    signatures: Tuple[MemberSignature, ...] = ()
    fields: Tuple[SnapshotField, ...] = ()
    has_constructor: bool = False
    is_empty: bool = True
    bound_names: FrozenSet[str] = frozenset()
    type_params: Tuple[str, ...] = ()

    def has_signature(self, signature: MemberSignature) -> bool:
        return signature in self.signatures

    def has_accessor(self, name: str, accessor: Accessor) -> bool:
        return any(s.name == name and s.accessor is accessor for s in self.signatures)

    def field_of_type(self, ref: TypeReference) -> SnapshotField | None:
        wanted = canonical_type(ref)
        for item in self.fields:
            if item.annotation is not None and canonical_type(item.annotation) == wanted:
                return item
        return None


@dataclass(frozen=True)
class MemberConflict:
    name: str
    reason: str

    def __str__(self) -> str:
        return f"{self.name}: {self.reason}"


@dataclass(frozen=True)
class DeltaMember:
    category: MemberCategory
    name: str
    source: str
    node: cst.BaseStatement = field(compare=False, repr=False)
    signature: MemberSignature | None = None


@dataclass(frozen=True)
class MergeDelta:
    """Declarations to add to a class; never anything else."""

    members: Tuple[DeltaMember, ...] = ()
    imports: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    excluded: Tuple[UnsupportedMemberKind, ...] = ()
    conflicts: Tuple[MemberConflict, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.members and not self.imports

    def of(self, category: MemberCategory) -> List[DeltaMember]:
        return [member for member in self.members if member.category is category]

    def messages(self) -> List[str]:
        return [
            *self.warnings,
            *(f"excluded {item}" for item in self.excluded),
            *(f"conflict {item}" for item in self.conflicts),
        ]


@dataclass(frozen=True)
class ImplementRequest:
    target_path: str
    class_name: str
    interface: str | None = None
    mode: SynthesisMode | None = None
    # Unsaved editor contents take precedence over the file on disk.
    source: str | None = None


@dataclass
class RefactorPlan:
    edits: List[TextEdit] = field(default_factory=list)
    delta: MergeDelta | None = None
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

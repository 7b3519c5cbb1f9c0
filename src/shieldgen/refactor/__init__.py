"""Merging synthesized members into existing classes."""

from shieldgen.refactor.engine import ImplementationEngine
from shieldgen.refactor.merge import apply_delta, merge, synthesize
from shieldgen.refactor.model import (
    ClassSnapshot,
    DeltaMember,
    ImplementRequest,
    MemberConflict,
    MergeDelta,
    RefactorPlan,
    SnapshotField,
    TextEdit,
)
from shieldgen.refactor.snapshot import snapshot_class, snapshot_from_source, snapshot_node

__all__ = [
    "ClassSnapshot",
    "DeltaMember",
    "ImplementRequest",
    "ImplementationEngine",
    "MemberConflict",
    "MergeDelta",
    "RefactorPlan",
    "SnapshotField",
    "TextEdit",
    "apply_delta",
    "merge",
    "snapshot_class",
    "snapshot_from_source",
    "snapshot_node",
    "synthesize",
]

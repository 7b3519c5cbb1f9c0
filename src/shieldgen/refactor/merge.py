"""Diffing synthesized candidates against a class and applying the result.

The merge only ever adds: existing members are never removed, renamed,
rewritten or reordered.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

import libcst as cst

from shieldgen.interface.model import InterfaceDescriptor
from shieldgen.interface.types import ImportScope
from shieldgen.refactor.model import ClassSnapshot, DeltaMember, MemberConflict, MergeDelta
from shieldgen.refactor.snapshot import is_placeholder
from shieldgen.synthesis.decorator import DecoratorSynthesizer
from shieldgen.synthesis.model import (
    Accessor,
    CandidateMember,
    CandidateSet,
    MemberCategory,
    SynthesisConfig,
    SynthesisMode,
)

logger = logging.getLogger(__name__)


def merge(candidates: CandidateSet, snapshot: ClassSnapshot) -> MergeDelta:
    added: List[CandidateMember] = []
    added_names: set[str] = set()
    warnings: List[str] = list(candidates.warnings)
    conflicts: List[MemberConflict] = []

    def conflict(member: CandidateMember, reason: str) -> None:
        logger.debug("conflict on %s.%s: %s", snapshot.name, member.name, reason)
        conflicts.append(MemberConflict(member.name, reason))

    for member in candidates.members:
        if member.category is MemberCategory.FIELD:
            if member.field_type is not None and snapshot.field_of_type(member.field_type):
                continue
            if member.name in snapshot.bound_names or member.name in added_names:
                conflict(member, "name already bound to a field of another type")
                continue
        elif member.category is MemberCategory.CONSTRUCTOR:
            if snapshot.has_constructor:
                wired = [m.name for m in added if m.category is MemberCategory.FIELD]
                if wired:
                    warnings.append(
                        f"{snapshot.name}.__init__ already exists; assign"
                        f" {', '.join(wired)} in it manually."
                    )
                continue
        else:
            if member.signature is not None and snapshot.has_signature(member.signature):
                continue
            if member.accessor is Accessor.SET:
                has_getter = snapshot.has_accessor(member.name, Accessor.GET) or any(
                    m.name == member.name and m.accessor is Accessor.GET for m in added
                )
                if not has_getter:
                    conflict(member, "setter without a property getter to attach to")
                    continue
                if snapshot.has_accessor(member.name, Accessor.SET):
                    conflict(member, "existing setter has a different signature")
                    continue
            elif member.name in snapshot.bound_names:
                conflict(
                    member,
                    "an existing member of the same name has a different signature;"
                    " adding another definition would replace it",
                )
                continue
            elif member.name in added_names:
                conflict(member, "name is already taken by another synthesized member")
                continue
        added.append(member)
        added_names.add(member.name)

    imports: List[str] = []
    for member in added:
        for module in member.imports:
            if module not in imports and not snapshot.scope.has_module_import(module):
                imports.append(module)
    return MergeDelta(
        members=tuple(
            DeltaMember(m.category, m.name, m.source, m.node, m.signature) for m in added
        ),
        imports=tuple(imports),
        warnings=tuple(warnings),
        conflicts=tuple(conflicts),
    )


def synthesize(
    interface: InterfaceDescriptor,
    snapshot: ClassSnapshot,
    mode: SynthesisMode | None = None,
    config: SynthesisConfig | None = None,
) -> MergeDelta:
    """Candidate members for ``interface`` that ``snapshot`` does not have yet."""
    candidates = DecoratorSynthesizer(config or SynthesisConfig()).candidates(
        interface, snapshot, mode
    )
    delta = merge(candidates, snapshot)
    return MergeDelta(
        members=delta.members,
        imports=delta.imports,
        warnings=(*interface.warnings, *delta.warnings),
        excluded=interface.excluded,
        conflicts=delta.conflicts,
    )


def _is_docstring(stmt: cst.CSTNode) -> bool:
    if not isinstance(stmt, cst.SimpleStatementLine) or not stmt.body:
        return False
    expr = stmt.body[0]
    return isinstance(expr, cst.Expr) and isinstance(
        expr.value, (cst.SimpleString, cst.ConcatenatedString)
    )


def _is_import(stmt: cst.CSTNode) -> bool:
    if not isinstance(stmt, cst.SimpleStatementLine):
        return False
    return any(isinstance(item, (cst.Import, cst.ImportFrom)) for item in stmt.body)


def _find_import_insert_index(body: Sequence[cst.CSTNode]) -> int:
    insert_idx = 0
    if body and _is_docstring(body[0]):
        insert_idx = 1
    while insert_idx < len(body) and _is_import(body[insert_idx]):
        insert_idx += 1
    return insert_idx


def _spaced(node: cst.BaseStatement, previous: cst.CSTNode | None) -> cst.BaseStatement:
    if previous is None:
        return node
    if (
        isinstance(node, cst.FunctionDef)
        or isinstance(previous, cst.FunctionDef)
        or _is_docstring(previous)
    ):
        return node.with_changes(leading_lines=[cst.EmptyLine(indent=False)])
    return node


def _extend_class(node: cst.ClassDef, delta: MergeDelta) -> cst.ClassDef:
    if isinstance(node.body, cst.IndentedBlock):
        body: List[cst.BaseStatement] = list(node.body.body)
    else:
        body = [cst.SimpleStatementLine(body=[item]) for item in node.body.body]
    if all(is_placeholder(stmt) for stmt in body):
        body = [stmt for stmt in body if _is_docstring(stmt)]
    for member in delta.members:
        body.append(_spaced(member.node, body[-1] if body else None))
    if isinstance(node.body, cst.IndentedBlock):
        return node.with_changes(body=node.body.with_changes(body=body))
    return node.with_changes(body=cst.IndentedBlock(body=body))


def _with_imports(module: cst.Module, imports: Sequence[str]) -> cst.Module:
    scope = ImportScope.from_module(module, "")
    missing = [name for name in imports if not scope.has_module_import(name)]
    if not missing:
        return module
    body = list(module.body)
    insert_idx = _find_import_insert_index(body)
    statements = [cst.parse_statement(f"import {name}\n") for name in missing]
    if insert_idx == 0 and body:
        body[0] = body[0].with_changes(
            leading_lines=[cst.EmptyLine(), *body[0].leading_lines]
        )
    body[insert_idx:insert_idx] = statements
    return module.with_changes(body=body)


def apply_delta(module: cst.Module, class_name: str, delta: MergeDelta) -> cst.Module:
    """Appends the delta to the top-level class ``class_name`` of ``module``."""
    if delta.is_empty:
        return module
    found = False
    body = []
    for stmt in module.body:
        if isinstance(stmt, cst.ClassDef) and stmt.name.value == class_name and not found:
            found = True
            stmt = _extend_class(stmt, delta)
        body.append(stmt)
    if not found:
        raise KeyError(f"class {class_name} not found")
    return _with_imports(module.with_changes(body=body), delta.imports)

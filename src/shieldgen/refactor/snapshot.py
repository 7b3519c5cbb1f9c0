from __future__ import annotations

from typing import Dict, List, Sequence

import libcst as cst

from shieldgen.interface.extract import (
    CLASSVAR_TYPES,
    PROPERTY_DECORATORS,
    decorator_names,
    method_parameters,
    method_parts,
)
from shieldgen.interface.model import Parameter, TypeReference
from shieldgen.interface.types import TypeResolver, class_type_params
from shieldgen.interface.workspace import ModuleInfo
from shieldgen.refactor.model import ClassSnapshot, SnapshotField
from shieldgen.synthesis.model import Accessor, MemberSignature


def is_placeholder(stmt: cst.CSTNode) -> bool:
    """Docstrings, ``pass`` and ``...``: statements that declare nothing."""
    if not isinstance(stmt, cst.SimpleStatementLine):
        return False
    for item in stmt.body:
        if isinstance(item, cst.Pass):
            continue
        if isinstance(item, cst.Expr) and isinstance(
            item.value, (cst.SimpleString, cst.ConcatenatedString, cst.Ellipsis)
        ):
            continue
        return False
    return True


def block_statements(node: cst.ClassDef | cst.FunctionDef) -> Sequence[cst.CSTNode]:
    if isinstance(node.body, cst.IndentedBlock):
        return node.body.body
    return ()


class _SelfAnnotations(cst.CSTVisitor):
    """``self.x: T`` declarations anywhere in one method body."""

    def __init__(self, self_name: str, resolver: TypeResolver) -> None:
        self.self_name = self_name
        self.resolver = resolver
        self.fields: List[SnapshotField] = []

    def visit_ClassDef(self, node: cst.ClassDef) -> bool:
        return False

    def visit_FunctionDef(self, node: cst.FunctionDef) -> bool:
        return False

    def visit_AnnAssign(self, node: cst.AnnAssign) -> None:
        target = node.target
        if (
            isinstance(target, cst.Attribute)
            and isinstance(target.value, cst.Name)
            and target.value.value == self.self_name
        ):
            self.fields.append(
                SnapshotField(
                    target.attr.value, self.resolver.resolve(node.annotation.annotation)
                )
            )


def _self_name(fn: cst.FunctionDef) -> str | None:
    positional = [*fn.params.posonly_params, *fn.params.params]
    return positional[0].name.value if positional else None


def _constructor_fields(
    fn: cst.FunctionDef, self_name: str, parameters: Sequence[Parameter]
) -> List[SnapshotField]:
    """``self.x = param`` assignments, typed by the parameter's annotation."""
    annotations: Dict[str, TypeReference | None] = {p.name: p.annotation for p in parameters}
    found: List[SnapshotField] = []
    for stmt in block_statements(fn):
        if not isinstance(stmt, cst.SimpleStatementLine):
            continue
        for item in stmt.body:
            if not isinstance(item, cst.Assign) or not isinstance(item.value, cst.Name):
                continue
            source = item.value.value
            for target in item.targets:
                attr = target.target
                if (
                    isinstance(attr, cst.Attribute)
                    and isinstance(attr.value, cst.Name)
                    and attr.value.value == self_name
                    and source in annotations
                ):
                    found.append(SnapshotField(attr.attr.value, annotations[source]))
    return found


def _method_fields(fn: cst.FunctionDef, resolver: TypeResolver) -> List[SnapshotField]:
    self_name = _self_name(fn)
    if self_name is None:
        return []
    visitor = _SelfAnnotations(self_name, resolver)
    for stmt in block_statements(fn):
        stmt.visit(visitor)
    fields = visitor.fields
    if fn.name.value == "__init__":
        parameters = method_parameters(fn.params, resolver)
        fields = [*fields, *_constructor_fields(fn, self_name, parameters)]
    return fields


def _signature(fn: cst.FunctionDef, decorators: frozenset[str], resolver: TypeResolver):
    name = fn.name.value
    if decorators & PROPERTY_DECORATORS:
        return MemberSignature.build(name, Accessor.GET, ())
    if f"{name}.setter" in decorators:
        return MemberSignature.build(
            name, Accessor.SET, method_parameters(fn.params, resolver)
        )
    if f"{name}.deleter" in decorators:
        return None
    parameters, _, generics = method_parts(fn, resolver)
    return MemberSignature.build(
        name, Accessor.METHOD, parameters, [g.name for g in generics]
    )


def snapshot_node(info: ModuleInfo, node: cst.ClassDef) -> ClassSnapshot:
    """Structural view of the members ``node`` already declares."""
    class_params = class_type_params(node, info.scope, info.typevars)
    resolver = TypeResolver(info.scope, class_params, info.typevars)
    signatures: List[MemberSignature] = []
    fields: List[SnapshotField] = []
    bound: set[str] = set()
    has_constructor = False
    statements = block_statements(node)

    for stmt in statements:
        if isinstance(stmt, cst.FunctionDef):
            bound.add(stmt.name.value)
            signature = _signature(stmt, decorator_names(stmt, info.scope), resolver)
            if signature is not None:
                signatures.append(signature)
            if stmt.name.value == "__init__":
                has_constructor = True
            fields.extend(_method_fields(stmt, resolver))
        elif isinstance(stmt, cst.SimpleStatementLine):
            for item in stmt.body:
                if isinstance(item, cst.AnnAssign) and isinstance(item.target, cst.Name):
                    bound.add(item.target.value)
                    annotation = resolver.resolve(item.annotation.annotation)
                    if annotation is not None and annotation.qualified in CLASSVAR_TYPES:
                        continue
                    fields.append(SnapshotField(item.target.value, annotation))
                elif isinstance(item, cst.Assign):
                    for target in item.targets:
                        if isinstance(target.target, cst.Name):
                            bound.add(target.target.value)
        elif isinstance(stmt, cst.ClassDef):
            bound.add(stmt.name.value)

    bound.update(item.name for item in fields)
    return ClassSnapshot(
        name=node.name.value,
        scope=info.scope,
        signatures=tuple(signatures),
        fields=tuple(fields),
        has_constructor=has_constructor,
        is_empty=all(is_placeholder(stmt) for stmt in statements),
        bound_names=frozenset(bound),
        type_params=tuple(class_params),
    )


def snapshot_class(
    module: cst.Module, class_name: str, module_name: str = "__main__"
) -> ClassSnapshot:
    info = ModuleInfo.build(module_name, module)
    node = info.classes.get(class_name)
    if node is None:
        raise KeyError(f"class {class_name} not found in {module_name}")
    return snapshot_node(info, node)


def snapshot_from_source(
    source: str, class_name: str, module_name: str = "__main__"
) -> ClassSnapshot:
    return snapshot_class(cst.parse_module(source), class_name, module_name)

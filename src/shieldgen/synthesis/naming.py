from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Tuple

import libcst as cst

from shieldgen.exceptions import AmbiguousTypeShortening
from shieldgen.interface.model import (
    ConstraintKind,
    DefaultValue,
    GenericKind,
    GenericParameter,
    TypeKind,
    TypeReference,
)
from shieldgen.interface.types import ImportScope, code_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedType:
    text: str
    imports: Tuple[str, ...] = ()


class TypeNamePolicy:
    """Chooses how a type is spelled at a class's declaration point.

    A short name is used only when it is bound to exactly one target in the
    scope and that target is the type; otherwise the fully-qualified name is
    used, together with the ``import`` it needs.
    """

    def __init__(self, scope: ImportScope) -> None:
        self.scope = scope

    def render(self, ref: TypeReference) -> RenderedType:
        imports: list[str] = []
        text = self._render(ref, imports)
        return RenderedType(text, tuple(dict.fromkeys(imports)))

    def render_generic(self, generic: GenericParameter) -> RenderedType:
        if generic.kind is GenericKind.TYPE_VAR_TUPLE:
            return RenderedType(f"*{generic.name}")
        if generic.kind is GenericKind.PARAM_SPEC:
            return RenderedType(f"**{generic.name}")
        imports: list[str] = []
        text = generic.name
        for constraint in generic.constraints:
            rendered = [self._render(t, imports) for t in constraint.types]
            if constraint.kind is ConstraintKind.BOUND:
                text = f"{text}: {rendered[0]}"
            else:
                text = f"{text}: ({', '.join(rendered)})"
        return RenderedType(text, tuple(dict.fromkeys(imports)))

    def render_default(self, default: DefaultValue) -> RenderedType:
        """Spell a portable parameter default with names valid in this scope."""
        if not default.references:
            return RenderedType(default.text)
        imports: list[str] = []
        spellings: dict[str, str] = {}
        for head, qualified in default.references:
            spelled = self._name(qualified, imports)
            if "." not in qualified and self.scope.targets(qualified) != (qualified,):
                # A bare module target.
                imports.append(qualified)
            spellings[head] = spelled
        expr = cst.parse_expression(default.text).visit(_RenameHeads(spellings))
        return RenderedType(code_for(expr), tuple(dict.fromkeys(imports)))

    def _render(self, ref: TypeReference, imports: list[str]) -> str:
        if ref.kind is TypeKind.PARAM or ref.kind is TypeKind.LITERAL:
            return ref.qualified
        if ref.kind is TypeKind.UNION:
            return " | ".join(self._render(arg, imports) for arg in ref.args)
        if ref.kind is TypeKind.LIST:
            return "[" + ", ".join(self._render(arg, imports) for arg in ref.args) + "]"
        head = self._name(ref.qualified, imports)
        if not ref.args:
            return head
        return f"{head}[{', '.join(self._render(arg, imports) for arg in ref.args)}]"

    def _name(self, qualified: str, imports: list[str]) -> str:
        module, _, name = qualified.rpartition(".")
        if module == "builtins" and not self.scope.targets(name):
            return name
        try:
            short = self.shorten(qualified)
        except AmbiguousTypeShortening as exc:
            logger.debug("falling back to %s: %s", qualified, exc)
            short = None
        if short is not None:
            return short
        if module and not self.scope.has_module_import(module):
            imports.append(module)
        return qualified

    def shorten(self, qualified: str) -> str | None:
        """Shortest in-scope spelling of ``qualified``, or None.

        Raises AmbiguousTypeShortening when the only candidate names are
        bound to more than one target.
        """
        ambiguous: AmbiguousTypeShortening | None = None
        names = sorted(
            (name for name, targets in self.scope.bindings.items() if qualified in targets),
            key=lambda name: (name != qualified.rsplit(".", 1)[-1], len(name), name),
        )
        for name in names:
            targets = self.scope.targets(name)
            if targets == (qualified,):
                return name
            ambiguous = ambiguous or AmbiguousTypeShortening(name, targets)
        module, _, short = qualified.rpartition(".")
        if module:
            for name, targets in sorted(self.scope.bindings.items()):
                if module not in targets:
                    continue
                if targets != (module,):
                    ambiguous = ambiguous or AmbiguousTypeShortening(name, targets)
                    continue
                return f"{name}.{short}"
        if ambiguous is not None:
            raise ambiguous
        return None


class _RenameHeads(cst.CSTTransformer):
    def __init__(self, spellings: dict[str, str]) -> None:
        super().__init__()
        self.spellings = spellings

    def leave_Name(
        self, original_node: cst.Name, updated_node: cst.Name
    ) -> cst.BaseExpression:
        spelled = self.spellings.get(original_node.value, original_node.value)
        if spelled == original_node.value:
            return updated_node
        return cst.parse_expression(spelled)

    def visit_Attribute(self, node: cst.Attribute) -> bool:
        return False

    def leave_Attribute(
        self, original_node: cst.Attribute, updated_node: cst.Attribute
    ) -> cst.Attribute:
        return updated_node.with_changes(value=updated_node.value.visit(self))

    def visit_Arg(self, node: cst.Arg) -> bool:
        return False

    def leave_Arg(self, original_node: cst.Arg, updated_node: cst.Arg) -> cst.Arg:
        return updated_node.with_changes(value=updated_node.value.visit(self))


def unique_name(base: str, existing: Iterable[str]) -> str:
    taken = set(existing)
    name = base
    counter = 2
    while name in taken:
        name = f"{base}{counter}"
        counter += 1
    return name

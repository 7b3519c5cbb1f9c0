from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

import libcst as cst

from shieldgen.exceptions import UnresolvedInterface
from shieldgen.interface.extract import InterfaceExtractor
from shieldgen.interface.model import InterfaceDescriptor, TypeKind, TypeReference
from shieldgen.interface.types import TypeResolver, class_type_params
from shieldgen.interface.workspace import ModuleInfo, Workspace, module_name
from shieldgen.refactor.merge import apply_delta, synthesize
from shieldgen.refactor.model import ImplementRequest, RefactorPlan, TextEdit
from shieldgen.refactor.snapshot import snapshot_node
from shieldgen.synthesis.model import SynthesisConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Loaded:
    path: Path
    source: str
    info: ModuleInfo
    workspace: Workspace


class ImplementationEngine:
    """Runs one implement-interface request end to end.

    The planning entry points never raise for user-facing failures; they are
    reported through :attr:`RefactorPlan.errors` with no edits.
    """

    def __init__(
        self,
        project_root: Path | None = None,
        config: SynthesisConfig | None = None,
        workspace: Workspace | None = None,
    ) -> None:
        self.project_root = project_root
        self.config = config or SynthesisConfig()
        self.workspace = workspace

    def missing_members(self, request: ImplementRequest) -> RefactorPlan:
        """The delta the class still needs, without producing any edit."""
        plan, _ = self._plan(request)
        return plan

    def plan_implementation(self, request: ImplementRequest) -> RefactorPlan:
        plan, loaded = self._plan(request)
        if loaded is None or plan.delta is None:
            return plan
        if plan.delta.is_empty:
            plan.warnings.append(f"{request.class_name} has no missing members.")
            return plan
        module = apply_delta(loaded.info.module, request.class_name, plan.delta)
        end_line = len(loaded.source.splitlines())
        plan.edits.append(
            TextEdit(
                path=str(loaded.path),
                start=(0, 0),
                end=(end_line, 0),
                replacement=module.code,
            )
        )
        return plan

    def describe(
        self, target_path: str | Path, interface: str, source: str | None = None
    ) -> InterfaceDescriptor:
        """Descriptor of ``interface`` as spelled in the module at ``target_path``.

        Raises UnresolvedInterface when the module or the interface cannot be
        loaded.
        """
        errors: List[str] = []
        loaded = self._load(target_path, source, errors)
        if loaded is None:
            raise UnresolvedInterface(interface, "; ".join(errors))
        ref = self._interface_ref(loaded.info, interface, None)
        return self._extractor(loaded.workspace).describe(ref)

    def _plan(self, request: ImplementRequest) -> tuple[RefactorPlan, _Loaded | None]:
        plan = RefactorPlan()
        loaded = self._load(request.target_path, request.source, plan.errors)
        if loaded is None:
            return plan, None
        node = loaded.info.classes.get(request.class_name)
        if node is None:
            plan.errors.append(
                f"Class {request.class_name} not found in {loaded.path}."
            )
            return plan, None
        extractor = self._extractor(loaded.workspace)
        try:
            if request.interface:
                ref = self._interface_ref(loaded.info, request.interface, node)
            else:
                ref = self._declared_interface(extractor, loaded.info, node, plan.warnings)
            interface = extractor.describe(ref)
        except UnresolvedInterface as exc:
            plan.errors.append(str(exc))
            return plan, None
        snapshot = snapshot_node(loaded.info, node)
        delta = synthesize(
            interface, snapshot, request.mode or self.config.mode, self.config
        )
        plan.delta = delta
        for message in delta.messages():
            logger.debug("%s: %s", request.class_name, message)
            plan.warnings.append(message)
        return plan, loaded

    def _extractor(self, workspace: Workspace) -> InterfaceExtractor:
        return InterfaceExtractor(workspace, self.config.event_types)

    def _load(
        self, target_path: str | Path, source: str | None, errors: List[str]
    ) -> _Loaded | None:
        path = Path(target_path)
        if self.project_root and not path.is_absolute():
            path = self.project_root / path
        if source is None:
            try:
                source = path.read_text(encoding="utf-8")
            except OSError as exc:
                errors.append(f"Failed to read {path}: {exc}")
                return None
        try:
            module = cst.parse_module(source)
        except cst.ParserSyntaxError as exc:
            errors.append(f"LibCST parse failed for {path}: {exc}")
            return None
        root = self.project_root or path.parent
        if self.workspace is not None:
            # The caller's workspace is shared between requests; add to a copy.
            workspace = self.workspace.copy()
        else:
            workspace = Workspace.from_root(root)
        is_package = path.name == "__init__.py"
        name = module_name(path.resolve(), root.resolve())
        # Unsaved editor contents replace the copy read from disk.
        workspace.add(name, source, is_package=is_package)
        return _Loaded(path, source, ModuleInfo.build(name, module, is_package), workspace)

    def _interface_ref(
        self, info: ModuleInfo, spelled: str, node: cst.ClassDef | None
    ) -> TypeReference:
        try:
            expr = cst.parse_expression(spelled)
        except cst.ParserSyntaxError as exc:
            raise UnresolvedInterface(spelled, "not a type expression") from exc
        params = class_type_params(node, info.scope, info.typevars) if node is not None else ()
        ref = TypeResolver(info.scope, params, info.typevars).resolve(expr)
        if ref is None or ref.kind is not TypeKind.NAMED:
            raise UnresolvedInterface(spelled, "not a class reference")
        return ref

    def _declared_interface(
        self,
        extractor: InterfaceExtractor,
        info: ModuleInfo,
        node: cst.ClassDef,
        warnings: List[str],
    ) -> TypeReference:
        """The first base of ``node`` that is an interface in the workspace."""
        resolver = TypeResolver(
            info.scope, class_type_params(node, info.scope, info.typevars), info.typevars
        )
        found: List[TypeReference] = []
        for arg in node.bases:
            ref = resolver.resolve(arg.value)
            if ref is None or ref.kind is not TypeKind.NAMED:
                continue
            located = extractor.workspace.lookup_class(ref.qualified)
            if located is not None and extractor.is_interface(*located):
                found.append(ref)
        if not found:
            raise UnresolvedInterface(
                f"{info.name}.{node.name.value}",
                "the class declares no Protocol or ABC base in the workspace",
            )
        if len(found) > 1:
            warnings.append(
                f"{node.name.value} declares several interfaces; implementing"
                f" {found[0].name} only. Pass the interface explicitly for the others."
            )
        return found[0]

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Mapping

import libcst as cst

from shieldgen.interface.types import ImportScope, typevar_calls

logger = logging.getLogger(__name__)

_SKIP_DIRS = frozenset({".git", ".hg", ".tox", ".venv", "venv", "__pycache__", "build", "dist"})


def module_name(path: Path, project_root: Path | None) -> str:
    rel = path.with_suffix("")
    if project_root is not None:
        try:
            rel = rel.relative_to(project_root)
        except ValueError:
            pass
    parts = list(rel.parts)
    if parts and parts[0] == "src":
        parts = parts[1:]
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts)


@dataclass(frozen=True)
class ModuleInfo:
    name: str
    module: cst.Module
    scope: ImportScope
    classes: Mapping[str, cst.ClassDef]
    typevars: Mapping[str, cst.Call]
    is_package: bool = False

    @classmethod
    def build(cls, name: str, module: cst.Module, is_package: bool = False) -> "ModuleInfo":
        classes = {
            stmt.name.value: stmt for stmt in module.body if isinstance(stmt, cst.ClassDef)
        }
        return cls(
            name=name,
            module=module,
            scope=ImportScope.from_module(module, name, is_package),
            classes=classes,
            typevars=typevar_calls(module),
            is_package=is_package,
        )


@dataclass
class Workspace:
    """Python sources addressable by dotted module name.

    Modules are parsed on first lookup and cached for the lifetime of the
    workspace object, which is meant to live for one synthesis request.
    """

    sources: Dict[str, str] = field(default_factory=dict)
    packages: set[str] = field(default_factory=set)
    _parsed: Dict[str, ModuleInfo | None] = field(default_factory=dict, repr=False)

    @classmethod
    def from_root(cls, root: Path, extra: Iterable[Path] = ()) -> "Workspace":
        workspace = cls()
        paths = [
            path
            for path in sorted(root.rglob("*.py"))
            if not any(part in _SKIP_DIRS for part in path.relative_to(root).parts)
        ]
        for path in [*paths, *extra]:
            try:
                source = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                logger.debug("skipping unreadable module %s: %s", path, exc)
                continue
            name = module_name(path, root)
            workspace.add(name, source, is_package=path.name == "__init__.py")
        return workspace

    def copy(self) -> "Workspace":
        """An independent workspace that keeps the parses made so far."""
        return Workspace(
            sources=dict(self.sources),
            packages=set(self.packages),
            _parsed=dict(self._parsed),
        )

    def add(self, name: str, source: str, *, is_package: bool = False) -> None:
        self.sources[name] = source
        self._parsed.pop(name, None)
        if is_package:
            self.packages.add(name)

    def get(self, name: str) -> ModuleInfo | None:
        if name in self._parsed:
            return self._parsed[name]
        source = self.sources.get(name)
        info: ModuleInfo | None = None
        if source is not None:
            try:
                module = cst.parse_module(source)
            except cst.ParserSyntaxError as exc:
                logger.debug("LibCST parse failed for %s: %s", name, exc)
            else:
                info = ModuleInfo.build(name, module, is_package=name in self.packages)
        self._parsed[name] = info
        return info

    def lookup_class(self, qualified: str) -> tuple[ModuleInfo, cst.ClassDef] | None:
        """Finds a top-level class by dotted name, following re-exports."""
        seen: set[str] = set()
        while qualified not in seen:
            seen.add(qualified)
            module, _, name = qualified.rpartition(".")
            info = self.get(module)
            if info is None:
                return None
            node = info.classes.get(name)
            if node is not None:
                return info, node
            targets = info.scope.targets(name)
            if not targets:
                return None
            qualified = targets[0]
        return None

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable
from urllib.parse import unquote, urlparse

import libcst as cst
from libcst.metadata import MetadataWrapper, PositionProvider
from lsprotocol.types import (
    TEXT_DOCUMENT_CODE_ACTION,
    CodeAction,
    CodeActionKind,
    CodeActionParams,
    Position,
    Range,
    TextEdit as LspTextEdit,
    WorkspaceEdit,
)
from pydantic import ValidationError
from pygls.lsp.server import LanguageServer

import shieldgen
from shieldgen.config import load_synthesis_config
from shieldgen.interface.workspace import Workspace
from shieldgen.invariants import never
from shieldgen.refactor import ImplementationEngine, ImplementRequest, RefactorPlan
from shieldgen.schema import ImplementRequestDTO, ImplementResponse
from shieldgen.synthesis.model import SynthesisMode

logger = logging.getLogger(__name__)

server = LanguageServer("shieldgen", shieldgen.__version__)
IMPLEMENT_COMMAND = "shieldgen.implementInterface"

ACTION_TITLES = {
    SynthesisMode.ELIDED: "Implement interface with resilience policy",
    SynthesisMode.EXPLICIT: "Implement interface with resilience policy, including async/await",
}


def _require_payload(payload: object, *, command: str) -> dict[str, object]:
    if payload is None:
        never("missing command payload", command=command)
    if isinstance(payload, list) and len(payload) == 1:
        payload = payload[0]
    if not isinstance(payload, dict):
        never(
            "invalid command payload type",
            command=command,
            payload_type=type(payload).__name__,
        )
    return payload


def _uri_to_path(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(uri)


def _project_root(ls: LanguageServer | None) -> Path | None:
    if ls is not None and ls.workspace.root_path:
        return Path(ls.workspace.root_path)
    return None


def _engine(
    ls: LanguageServer | None, workspace: Workspace | None = None
) -> ImplementationEngine:
    root = _project_root(ls)
    return ImplementationEngine(
        project_root=root, config=load_synthesis_config(root), workspace=workspace
    )


def _document_source(ls: LanguageServer | None, uri: str) -> str | None:
    if ls is None:
        return None
    return ls.workspace.get_text_document(uri).source


def class_at(source: str, line: int) -> str | None:
    """Name of the top-level class whose span covers zero-based ``line``."""
    try:
        wrapper = MetadataWrapper(cst.parse_module(source))
    except cst.ParserSyntaxError:
        return None
    positions = wrapper.resolve(PositionProvider)
    for stmt in wrapper.module.body:
        if not isinstance(stmt, cst.ClassDef):
            continue
        span = positions[stmt]
        if span.start.line - 1 <= line <= span.end.line - 1:
            return stmt.name.value
    return None


def _workspace_edit(uri: str, plan: RefactorPlan) -> WorkspaceEdit:
    edits = [
        LspTextEdit(
            range=Range(
                start=Position(line=edit.start[0], character=edit.start[1]),
                end=Position(line=edit.end[0], character=edit.end[1]),
            ),
            new_text=edit.replacement,
        )
        for edit in plan.edits
    ]
    return WorkspaceEdit(changes={uri: edits})


@server.command(IMPLEMENT_COMMAND)
def execute_implement(ls: LanguageServer | None, payload: dict | None = None) -> dict:
    payload = _require_payload(payload, command=IMPLEMENT_COMMAND)
    try:
        request = ImplementRequestDTO.model_validate(payload)
    except ValidationError as exc:
        return ImplementResponse(errors=[str(exc)]).model_dump()
    plan = _engine(ls).plan_implementation(
        ImplementRequest(
            target_path=request.target_path,
            class_name=request.class_name,
            interface=request.interface,
            mode=SynthesisMode(request.mode) if request.mode else None,
            source=request.source,
        )
    )
    return ImplementResponse.from_plan(plan).model_dump()


@server.feature(TEXT_DOCUMENT_CODE_ACTION)
def code_action(ls: LanguageServer | None, params: CodeActionParams) -> list[CodeAction]:
    uri = params.text_document.uri
    path = _uri_to_path(uri)
    source = _document_source(ls, uri)
    if source is None:
        try:
            source = path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.debug("no source for %s: %s", uri, exc)
            return []
    class_name = class_at(source, params.range.start.line)
    if class_name is None:
        return []
    # Both modes plan against one scan of the project.
    workspace = Workspace.from_root(_project_root(ls) or path.parent)
    engine = _engine(ls, workspace)
    actions: list[CodeAction] = []
    for mode, title in ACTION_TITLES.items():
        plan = engine.plan_implementation(
            ImplementRequest(
                target_path=str(path), class_name=class_name, mode=mode, source=source
            )
        )
        if plan.errors or not plan.edits:
            continue
        actions.append(
            CodeAction(
                title=title,
                kind=CodeActionKind.RefactorRewrite,
                edit=_workspace_edit(uri, plan),
            )
        )
    return actions


def start(start_fn: Callable[[], None] | None = None) -> None:
    """Start the language server over stdio."""
    (start_fn or server.start_io)()


if __name__ == "__main__":  # pragma: no cover
    start()  # pragma: no cover

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from shieldgen.config import load_synthesis_config, parse_mode
from shieldgen.exceptions import UnresolvedInterface
from shieldgen.refactor import ImplementationEngine, ImplementRequest, RefactorPlan
from shieldgen.schema import ImplementResponse, InterfaceResponse

app = typer.Typer(add_completion=False, help="Synthesize resilience decorators.")

_FATAL_EXIT = 2


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug details to stderr."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _engine(
    root: Optional[Path], config: Optional[Path], mode: Optional[str] = None
) -> ImplementationEngine:
    if mode is not None and parse_mode(mode) is None:
        raise typer.BadParameter(f"unknown mode {mode!r}; use elided or explicit")
    return ImplementationEngine(
        project_root=root,
        config=load_synthesis_config(root, config, mode=mode),
    )


def _emit_plan(
    plan: RefactorPlan, *, json_output: bool, list_members: bool = True
) -> None:
    response = ImplementResponse.from_plan(plan)
    if json_output:
        typer.echo(json.dumps(response.model_dump(), indent=2, sort_keys=True))
    else:
        if list_members:
            for member in response.members:
                typer.echo(f"+ {member.category} {member.name}")
            for module in response.imports:
                typer.echo(f"+ import {module}")
        for warning in response.warnings:
            typer.secho(warning, err=True, fg=typer.colors.YELLOW)
    if response.errors:
        for error in response.errors:
            typer.secho(str(error), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=_FATAL_EXIT)


@app.command("implement")
def implement(
    path: Path = typer.Argument(..., help="Module containing the class."),
    class_name: str = typer.Argument(..., metavar="CLASS"),
    interface: Optional[str] = typer.Option(
        None,
        "--interface",
        help="Interface as spelled in the module; defaults to the class's base.",
    ),
    mode: Optional[str] = typer.Option(None, "--mode", help="elided or explicit."),
    root: Optional[Path] = typer.Option(None, "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    write: bool = typer.Option(False, "--write", help="Rewrite the module in place."),
    json_output: bool = typer.Option(False, "--json", help="Emit machine-readable JSON."),
) -> None:
    """Add the members a class is missing from its interface."""
    engine = _engine(root, config, mode)
    plan = engine.plan_implementation(
        ImplementRequest(
            target_path=str(path),
            class_name=class_name,
            interface=interface,
            mode=parse_mode(mode) if mode else None,
        )
    )
    if write:
        for edit in plan.edits:
            Path(edit.path).write_text(edit.replacement, encoding="utf-8")
    elif not json_output:
        for edit in plan.edits:
            typer.echo(edit.replacement, nl=False)
    _emit_plan(plan, json_output=json_output, list_members=write)


@app.command("missing")
def missing(
    path: Path = typer.Argument(...),
    class_name: str = typer.Argument(..., metavar="CLASS"),
    interface: Optional[str] = typer.Option(None, "--interface"),
    root: Optional[Path] = typer.Option(None, "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    json_output: bool = typer.Option(False, "--json", help="Emit machine-readable JSON."),
) -> None:
    """List the members a class is missing, without changing anything."""
    plan = _engine(root, config).missing_members(
        ImplementRequest(target_path=str(path), class_name=class_name, interface=interface)
    )
    _emit_plan(plan, json_output=json_output)


@app.command("describe")
def describe(
    path: Path = typer.Argument(..., help="Module the interface name is resolved in."),
    interface: str = typer.Argument(...),
    root: Optional[Path] = typer.Option(None, "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
) -> None:
    """Print the member model of an interface as JSON."""
    try:
        descriptor = _engine(root, config).describe(path, interface)
    except UnresolvedInterface as exc:
        response = InterfaceResponse(interface=interface, errors=[str(exc)])
        typer.echo(json.dumps(response.model_dump(), indent=2, sort_keys=True))
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=_FATAL_EXIT) from exc
    response = InterfaceResponse.from_descriptor(descriptor)
    typer.echo(json.dumps(response.model_dump(), indent=2, sort_keys=True))


@app.command("lsp")
def lsp() -> None:
    """Run the language server over stdio."""
    from shieldgen.server import start

    start()


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()  # pragma: no cover

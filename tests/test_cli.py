from __future__ import annotations

import json
from pathlib import Path
import sys
import textwrap

from typer.testing import CliRunner


def _load():
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root / "src"))
    from shieldgen import cli

    return cli


def _project(tmp_path: Path) -> Path:
    (tmp_path / "contracts.py").write_text(
        textwrap.dedent(
            """
            from typing import Protocol


            class IStore(Protocol):
                def get(self, key: str) -> bytes: ...
                def put(self, key: str, value: bytes) -> None: ...
            """
        ).lstrip()
    )
    target = tmp_path / "app.py"
    target.write_text("from contracts import IStore\n\n\nclass Store(IStore):\n    pass\n")
    return target


def _invoke(args: list[str]):
    cli = _load()
    return CliRunner().invoke(cli.app, args)


def test_help_lists_commands() -> None:
    result = _invoke(["--help"])
    assert result.exit_code == 0
    for command in ("implement", "missing", "describe", "lsp"):
        assert command in result.output


def test_implement_prints_rewritten_module(tmp_path: Path) -> None:
    target = _project(tmp_path)
    result = _invoke(["implement", str(target), "Store", "--root", str(tmp_path)])
    assert result.exit_code == 0, result.output
    assert "def put(self, key: str, value: bytes) -> None:" in result.output
    assert target.read_text().endswith("    pass\n")


def test_implement_write_updates_file(tmp_path: Path) -> None:
    target = _project(tmp_path)
    result = _invoke(
        ["implement", str(target), "Store", "--root", str(tmp_path), "--write", "--mode", "explicit"]
    )
    assert result.exit_code == 0, result.output
    assert "+ forwarding get" in result.output
    assert "+ import shieldgen.policy" in result.output
    assert "_inner: IStore" in target.read_text()
    again = _invoke(["implement", str(target), "Store", "--root", str(tmp_path), "--write"])
    assert again.exit_code == 0
    assert "has no missing members" in again.output


def test_missing_json_payload(tmp_path: Path) -> None:
    target = _project(tmp_path)
    result = _invoke(["missing", str(target), "Store", "--root", str(tmp_path), "--json"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["edits"] == []
    assert [m["name"] for m in payload["members"]][-2:] == ["get", "put"]
    assert payload["errors"] == []


def test_unknown_mode_is_rejected(tmp_path: Path) -> None:
    target = _project(tmp_path)
    result = _invoke(["implement", str(target), "Store", "--mode", "sideways"])
    assert result.exit_code != 0


def test_missing_class_exits_with_error(tmp_path: Path) -> None:
    target = _project(tmp_path)
    result = _invoke(["missing", str(target), "Nope", "--root", str(tmp_path)])
    assert result.exit_code == 2
    assert "Class Nope not found" in result.output


def test_describe_emits_interface_model(tmp_path: Path) -> None:
    target = _project(tmp_path)
    result = _invoke(["describe", str(target), "IStore", "--root", str(tmp_path)])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["interface"] == "contracts.IStore"
    assert [m["name"] for m in payload["members"]] == ["get", "put"]


def test_describe_unresolved_interface(tmp_path: Path) -> None:
    target = _project(tmp_path)
    result = _invoke(["describe", str(target), "IMissing", "--root", str(tmp_path)])
    assert result.exit_code == 2

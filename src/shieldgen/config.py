from __future__ import annotations

import logging
from dataclasses import fields, replace
from datetime import date, datetime, time
from pathlib import Path
from typing import TypeAlias
import tomllib

from shieldgen.synthesis.model import SynthesisConfig, SynthesisMode

DEFAULT_CONFIG_NAME = "shieldgen.toml"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]

logger = logging.getLogger(__name__)

_NAME_KEYS = (
    "inner_field",
    "policy_field",
    "inner_parameter",
    "policy_parameter",
    "void_helper",
    "value_helper",
    "async_helper",
    "policy_type",
)


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        logger.debug("unreadable config %s: %s", path, exc)
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        logger.warning("ignoring malformed config %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def synthesis_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("synthesis", {})
    return section if isinstance(section, dict) else {}


def _normalize_name_list(value: TomlValue) -> list[str]:
    items: list[str] = []
    if value is None:
        return items
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            if isinstance(item, str):
                items.extend([part.strip() for part in item.split(",") if part.strip()])
    return [item for item in items if item]


def parse_mode(value: TomlValue) -> SynthesisMode | None:
    if isinstance(value, SynthesisMode):
        return value
    if not isinstance(value, str):
        return None
    try:
        return SynthesisMode(value.strip().lower())
    except ValueError:
        logger.warning("unknown synthesis mode %r; using the default", value)
        return None


def merge_payload(payload: TomlTable, defaults: TomlTable) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def synthesis_config(section: TomlTable | None, **overrides: TomlValue) -> SynthesisConfig:
    """Builds a :class:`SynthesisConfig` from a ``[synthesis]`` table.

    Keyword overrides (for instance from CLI flags) win over the table;
    ``None`` overrides are ignored. Unknown keys and values of the wrong type
    fall back to the defaults.
    """
    section = section if isinstance(section, dict) else {}
    merged = merge_payload(overrides, section)
    config = SynthesisConfig()
    known = {item.name for item in fields(SynthesisConfig)}
    for key in merged:
        if key not in known:
            logger.debug("ignoring unknown synthesis key %s", key)
    changes: dict[str, object] = {}
    mode = parse_mode(merged.get("mode"))
    if mode is not None:
        changes["mode"] = mode
    for key in _NAME_KEYS:
        value = merged.get(key)
        if isinstance(value, str) and value.strip():
            changes[key] = value.strip()
    if "event_types" in merged:
        event_types = _normalize_name_list(merged.get("event_types"))
        if event_types:
            changes["event_types"] = tuple(event_types)
    return replace(config, **changes)


def load_synthesis_config(
    root: Path | None = None, config_path: Path | None = None, **overrides: TomlValue
) -> SynthesisConfig:
    return synthesis_config(synthesis_defaults(root, config_path), **overrides)

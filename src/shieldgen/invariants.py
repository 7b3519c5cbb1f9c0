"""Invariant markers."""

from __future__ import annotations

from typing import NoReturn

from shieldgen.exceptions import NeverThrown


def never(reason: str = "", **env: object) -> NoReturn:
    """Mark a code path as intentionally unreachable.

    Used as the fall-through of exhaustive matches over closed variants, so a
    new variant without a handler fails loudly instead of being skipped.
    """
    details = ", ".join(f"{key}={value!r}" for key, value in sorted(env.items()))
    message = reason or "never() marker reached"
    if details:
        message = f"{message} ({details})"
    raise NeverThrown(message, env=env)

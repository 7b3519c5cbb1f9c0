"""The policy protocol generated decorators delegate to, and their runtime support."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable


@runtime_checkable
class ResiliencePolicy(Protocol):
    """Runs a zero-argument action under retry, timeout or circuit-breaking rules.

    Adapters for concrete resilience libraries implement this; the synthesized
    helper methods are its only callers. Generated members only reach
    ``execute_async`` once their result is awaited, so an adapter may call
    ``action`` eagerly without changing when failures surface.
    """

    def execute[T](self, action: Callable[[], T]) -> T: ...

    def execute_async[T](self, action: Callable[[], Awaitable[T]]) -> Awaitable[T]: ...


class NotGiven:
    """Default of a forwarded parameter whose own default stays with the wrapped member."""

    def __repr__(self) -> str:
        return "NOT_GIVEN"

    def __bool__(self) -> bool:
        return False


NOT_GIVEN = NotGiven()


def given(**arguments: object) -> dict[str, object]:
    """The keyword arguments that were actually passed."""
    return {name: value for name, value in arguments.items() if value is not NOT_GIVEN}


async def deferred[T](
    run: Callable[[Callable[[], Awaitable[T]]], Awaitable[T]],
    action: Callable[[], Awaitable[T]],
) -> T:
    """Await ``run(action)``, calling ``run`` only once awaited."""
    return await run(action)

"""Exception taxonomy for decorator synthesis."""

from __future__ import annotations


class SynthesisError(Exception):
    """Base class for errors raised while synthesizing a decorator."""


class UnresolvedInterface(SynthesisError):
    """The requested interface type could not be located.

    Fatal for the request: no delta is produced.
    """

    def __init__(self, qualified: str, reason: str = "") -> None:
        message = f"Unresolved interface {qualified}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.qualified = qualified
        self.reason = reason


class UnsupportedMemberKind(SynthesisError):
    """A member cannot be mapped to a method, property, event or indexer.

    Recovered locally: the member is excluded from synthesis and reported
    back to the caller as a warning.
    """

    def __init__(self, interface: str, member: str, reason: str) -> None:
        super().__init__(f"{interface}.{member}: {reason}")
        self.interface = interface
        self.member = member
        self.reason = reason


class AmbiguousTypeShortening(SynthesisError):
    """A short type name is bound to more than one target in scope.

    Never surfaced: the shortening policy answers it with the fully-qualified
    form.
    """

    def __init__(self, short_name: str, targets: tuple[str, ...]) -> None:
        super().__init__(
            f"{short_name} is bound to {', '.join(targets) or 'nothing'}"
        )
        self.short_name = short_name
        self.targets = targets


class NeverRaise(RuntimeError):
    """Sentinel exception for code paths that should be unreachable."""

    def __init__(self, message: str, *, env: dict[str, object] | None = None):
        super().__init__(message)
        self.env = dict(env or {})


class NeverThrown(NeverRaise):
    """Alias for NeverRaise used by the explicit never() marker."""

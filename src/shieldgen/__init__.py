"""shieldgen package root."""

from shieldgen.exceptions import (
    AmbiguousTypeShortening,
    NeverThrown,
    SynthesisError,
    UnresolvedInterface,
    UnsupportedMemberKind,
)
from shieldgen.invariants import never

__all__ = [
    "__version__",
    "AmbiguousTypeShortening",
    "NeverThrown",
    "SynthesisError",
    "UnresolvedInterface",
    "UnsupportedMemberKind",
    "never",
]

__version__ = "0.1.0"

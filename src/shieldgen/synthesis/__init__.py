"""Decorator synthesis."""

from shieldgen.synthesis.classify import classify
from shieldgen.synthesis.decorator import DecoratorSynthesizer
from shieldgen.synthesis.emission import MemberEmitter
from shieldgen.synthesis.model import (
    Accessor,
    CandidateMember,
    CandidateSet,
    MemberCategory,
    MemberSignature,
    Strategy,
    SynthesisConfig,
    SynthesisMode,
    SynthesisPlan,
)
from shieldgen.synthesis.naming import RenderedType, TypeNamePolicy, unique_name

__all__ = [
    "Accessor",
    "CandidateMember",
    "CandidateSet",
    "DecoratorSynthesizer",
    "MemberCategory",
    "MemberEmitter",
    "MemberSignature",
    "RenderedType",
    "Strategy",
    "SynthesisConfig",
    "SynthesisMode",
    "SynthesisPlan",
    "TypeNamePolicy",
    "classify",
    "unique_name",
]

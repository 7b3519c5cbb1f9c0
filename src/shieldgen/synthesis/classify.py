from __future__ import annotations

from typing import List

from shieldgen.interface.model import (
    ANY_TYPE,
    NONE_TYPE,
    EventMember,
    IndexerMember,
    MemberDescriptor,
    MethodMember,
    Parameter,
    PropertyMember,
    ReturnShape,
    TypeReference,
)
from shieldgen.invariants import never
from shieldgen.synthesis.model import (
    Accessor,
    Strategy,
    SynthesisMode,
    SynthesisPlan,
    call_arguments,
)

AWAITABLE = "collections.abc.Awaitable"


def classify(member: MemberDescriptor, mode: SynthesisMode) -> List[SynthesisPlan]:
    """Chooses the forwarding strategy for every accessor of ``member``."""
    if isinstance(member, MethodMember):
        return [_method_plan(member, mode)]
    if isinstance(member, PropertyMember):
        plans = []
        if member.readable:
            plans.append(_getter(member, member.name, member.annotation, mode))
        if member.writable:
            plans.append(_setter(member, member.name, member.annotation, mode))
        return plans
    if isinstance(member, EventMember):
        return [
            SynthesisPlan(
                member=member,
                strategy=Strategy.DIRECT_EVENT_ACCESS,
                accessor=Accessor.GET,
                mode=mode,
                name=member.name,
                returns=member.annotation,
            ),
            SynthesisPlan(
                member=member,
                strategy=Strategy.DIRECT_EVENT_ACCESS,
                accessor=Accessor.SET,
                mode=mode,
                name=member.name,
                parameters=(Parameter("value", member.annotation),),
                returns=NONE_TYPE,
                arguments="value",
            ),
        ]
    if isinstance(member, IndexerMember):
        return _indexer_plans(member, mode)
    never("unclassified member kind", kind=type(member).__name__)


def _method_plan(member: MethodMember, mode: SynthesisMode) -> SynthesisPlan:
    if member.shape is ReturnShape.VOID:
        strategy, returns, is_async = Strategy.DIRECT_VOID_CALL, NONE_TYPE, False
    elif member.shape is ReturnShape.VALUE:
        strategy, returns, is_async = Strategy.DIRECT_VALUE_CALL, member.returns, False
    elif member.shape is ReturnShape.AWAITABLE:
        strategy = Strategy.AWAITED_CALL
        returns, is_async = awaited_return(member.awaited, mode)
    else:
        never("unclassified return shape", shape=member.shape)
    return SynthesisPlan(
        member=member,
        strategy=strategy,
        accessor=Accessor.METHOD,
        mode=mode,
        name=member.name,
        parameters=member.parameters,
        returns=returns,
        generics=member.generics,
        is_async=is_async,
        arguments=call_arguments(member.parameters),
        generic_arguments=tuple(g.name for g in member.generics),
    )


def awaited_return(
    awaited: TypeReference | None, mode: SynthesisMode
) -> tuple[TypeReference | None, bool]:
    """Declared return type and ``async`` marker of an awaited member."""
    if mode is SynthesisMode.EXPLICIT:
        return awaited, True
    if mode is SynthesisMode.ELIDED:
        return TypeReference.named(AWAITABLE, awaited or ANY_TYPE), False
    never("unknown synthesis mode", mode=mode)


def _getter(
    member: MemberDescriptor, name: str, annotation: TypeReference | None, mode: SynthesisMode
) -> SynthesisPlan:
    return SynthesisPlan(
        member=member,
        strategy=Strategy.DIRECT_VALUE_CALL,
        accessor=Accessor.GET,
        mode=mode,
        name=name,
        returns=annotation,
    )


def _setter(
    member: MemberDescriptor, name: str, annotation: TypeReference | None, mode: SynthesisMode
) -> SynthesisPlan:
    return SynthesisPlan(
        member=member,
        strategy=Strategy.DIRECT_VOID_CALL,
        accessor=Accessor.SET,
        mode=mode,
        name=name,
        parameters=(Parameter("value", annotation),),
        returns=NONE_TYPE,
        arguments="value",
    )


def _indexer_plans(member: IndexerMember, mode: SynthesisMode) -> List[SynthesisPlan]:
    plans = []
    if member.readable:
        plans.append(
            SynthesisPlan(
                member=member,
                strategy=Strategy.DIRECT_VALUE_CALL,
                accessor=Accessor.METHOD,
                mode=mode,
                name="__getitem__",
                parameters=member.keys,
                returns=member.value,
                arguments=call_arguments(member.keys),
            )
        )
    if member.writable:
        parameters = (*member.keys, Parameter(member.value_name, member.value))
        plans.append(
            SynthesisPlan(
                member=member,
                strategy=Strategy.DIRECT_VOID_CALL,
                accessor=Accessor.METHOD,
                mode=mode,
                name="__setitem__",
                parameters=parameters,
                returns=NONE_TYPE,
                arguments=call_arguments(parameters),
            )
        )
    return plans

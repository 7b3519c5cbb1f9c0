from __future__ import annotations

from pathlib import Path
import sys

import pytest


def _load():
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root / "src"))
    from shieldgen.exceptions import NeverThrown
    from shieldgen.interface import model
    from shieldgen.synthesis.classify import classify
    from shieldgen.synthesis.model import Accessor, Strategy, SynthesisMode

    return classify, model, Accessor, Strategy, SynthesisMode, NeverThrown


def test_method_shapes_map_to_strategies() -> None:
    classify, model, Accessor, Strategy, SynthesisMode, _ = _load()
    user = model.TypeReference.named("pkg.User")
    void = model.MethodMember("ping", shape=model.ReturnShape.VOID, returns=model.NONE_TYPE)
    value = model.MethodMember("find", shape=model.ReturnShape.VALUE, returns=user)
    awaited = model.MethodMember(
        "load", shape=model.ReturnShape.AWAITABLE, returns=user, awaited=user
    )
    assert [p.strategy for p in classify(void, SynthesisMode.ELIDED)] == [
        Strategy.DIRECT_VOID_CALL
    ]
    (plan,) = classify(value, SynthesisMode.ELIDED)
    assert plan.strategy is Strategy.DIRECT_VALUE_CALL
    assert plan.accessor is Accessor.METHOD
    assert plan.returns == user
    (plan,) = classify(awaited, SynthesisMode.ELIDED)
    assert plan.strategy is Strategy.AWAITED_CALL


def test_awaited_member_return_depends_on_mode() -> None:
    classify, model, _, _, SynthesisMode, _ = _load()
    user = model.TypeReference.named("pkg.User")
    member = model.MethodMember(
        "load", shape=model.ReturnShape.AWAITABLE, returns=user, awaited=user
    )
    (elided,) = classify(member, SynthesisMode.ELIDED)
    assert elided.is_async is False
    assert elided.returns == model.TypeReference.named("collections.abc.Awaitable", user)
    (explicit,) = classify(member, SynthesisMode.EXPLICIT)
    assert explicit.is_async is True
    assert explicit.returns == user


def test_call_arguments_follow_parameter_kinds() -> None:
    classify, model, _, _, SynthesisMode, _ = _load()
    kinds = model.ParameterKind
    member = model.MethodMember(
        "send",
        parameters=(
            model.Parameter("first", kind=kinds.POSITIONAL_ONLY),
            model.Parameter("second"),
            model.Parameter("rest", kind=kinds.VAR_POSITIONAL),
            model.Parameter("flag", kind=kinds.KEYWORD_ONLY, default=model.DefaultValue("True")),
            model.Parameter("extra", kind=kinds.VAR_KEYWORD),
        ),
        shape=model.ReturnShape.VOID,
    )
    (plan,) = classify(member, SynthesisMode.ELIDED)
    assert plan.arguments == "first, second, *rest, flag=flag, **extra"
    assert plan.target("self._inner") == "self._inner.send(first, second, *rest, flag=flag, **extra)"


def test_property_accessors() -> None:
    classify, model, Accessor, Strategy, SynthesisMode, _ = _load()
    text = model.TypeReference.named("builtins.str")
    read_write = classify(model.PropertyMember("title", text, True, True), SynthesisMode.ELIDED)
    assert [(p.accessor, p.strategy) for p in read_write] == [
        (Accessor.GET, Strategy.DIRECT_VALUE_CALL),
        (Accessor.SET, Strategy.DIRECT_VOID_CALL),
    ]
    getter, setter = read_write
    assert getter.target("self._inner") == "self._inner.title"
    assert setter.target("self._inner") == 'setattr(self._inner, "title", value)'
    read_only = classify(model.PropertyMember("title", text, True, False), SynthesisMode.ELIDED)
    assert [p.accessor for p in read_only] == [Accessor.GET]


def test_event_access_is_direct() -> None:
    classify, model, Accessor, Strategy, SynthesisMode, _ = _load()
    event = model.EventMember("changed", model.TypeReference.named("pkg.Event"))
    plans = classify(event, SynthesisMode.EXPLICIT)
    assert {p.strategy for p in plans} == {Strategy.DIRECT_EVENT_ACCESS}
    assert [p.accessor for p in plans] == [Accessor.GET, Accessor.SET]
    assert plans[1].target("self._inner") == "self._inner.changed = value"


def test_indexer_plans() -> None:
    classify, model, _, Strategy, SynthesisMode, _ = _load()
    key = model.Parameter("key", model.TypeReference.named("builtins.int"))
    indexer = model.IndexerMember(
        keys=(key,),
        value=model.TypeReference.named("builtins.str"),
        readable=True,
        writable=True,
        value_name="text",
    )
    getter, setter = classify(indexer, SynthesisMode.ELIDED)
    assert getter.name == "__getitem__"
    assert getter.strategy is Strategy.DIRECT_VALUE_CALL
    assert getter.target("self._inner") == "self._inner[key]"
    assert setter.name == "__setitem__"
    assert [p.name for p in setter.parameters] == ["key", "text"]
    assert setter.target("self._inner") == "self._inner.__setitem__(key, text)"


def test_unknown_member_kind_hits_never() -> None:
    classify, _, _, _, SynthesisMode, NeverThrown = _load()
    with pytest.raises(NeverThrown):
        classify(object(), SynthesisMode.ELIDED)  # type: ignore[arg-type]


def test_unportable_defaults_are_forwarded_only_when_passed() -> None:
    _, model, *_ = _load()
    from shieldgen.synthesis.model import call_arguments, keyword_forwarding_problem

    kinds = model.ParameterKind
    unset = model.DefaultValue("...", portable=False)
    parameters = (
        model.Parameter("first"),
        model.Parameter("size", default=unset),
        model.Parameter("offset", default=model.DefaultValue("0")),
        model.Parameter("loud", kind=kinds.KEYWORD_ONLY, default=unset),
    )
    assert call_arguments(parameters) == "first, size, offset, loud=loud"
    assert (
        call_arguments(parameters, "given")
        == "first, offset=offset, **given(size=size, loud=loud)"
    )
    assert keyword_forwarding_problem(parameters) is None
    spread = (
        model.Parameter("first", default=unset),
        model.Parameter("rest", kind=kinds.VAR_POSITIONAL),
    )
    assert "*rest follows" in keyword_forwarding_problem(spread)
    positional = (model.Parameter("key", kind=kinds.POSITIONAL_ONLY, default=unset),)
    assert "positional-only parameter key" in keyword_forwarding_problem(positional)

from __future__ import annotations

from pathlib import Path
import sys
import textwrap

import libcst as cst
import pytest


def _load():
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root / "src"))
    from shieldgen.exceptions import AmbiguousTypeShortening
    from shieldgen.interface.model import (
        ConstraintKind,
        GenericConstraint,
        GenericKind,
        GenericParameter,
        TypeReference,
    )
    from shieldgen.interface.types import ImportScope
    from shieldgen.synthesis.naming import TypeNamePolicy, unique_name

    return (
        TypeNamePolicy,
        ImportScope,
        TypeReference,
        AmbiguousTypeShortening,
        GenericParameter,
        GenericConstraint,
        ConstraintKind,
        GenericKind,
        unique_name,
    )


def _policy(source: str, module: str = "app"):
    TypeNamePolicy, ImportScope, *_ = _load()
    parsed = cst.parse_module(textwrap.dedent(source).strip() + "\n")
    return TypeNamePolicy(ImportScope.from_module(parsed, module))


def test_short_name_when_bound_once() -> None:
    _, _, TypeReference, *_ = _load()
    policy = _policy("from pkg.models import User\n")
    rendered = policy.render(TypeReference.named("pkg.models.User"))
    assert rendered.text == "User"
    assert rendered.imports == ()


def test_module_alias_spelling() -> None:
    _, _, TypeReference, *_ = _load()
    policy = _policy("import typing as t\nimport os\n")
    assert policy.render(TypeReference.named("typing.Any")).text == "t.Any"
    assert policy.render(TypeReference.named("os.PathLike")).text == "os.PathLike"


def test_unimported_type_is_fully_qualified_with_import() -> None:
    _, _, TypeReference, *_ = _load()
    policy = _policy("import json\n")
    rendered = policy.render(
        TypeReference.named(
            "collections.abc.Awaitable", TypeReference.named("pkg.models.User")
        )
    )
    assert rendered.text == "collections.abc.Awaitable[pkg.models.User]"
    assert rendered.imports == ("collections.abc", "pkg.models")


def test_plain_module_import_needs_no_new_import() -> None:
    _, _, TypeReference, *_ = _load()
    policy = _policy("import pkg.models\n")
    rendered = policy.render(TypeReference.named("pkg.models.User"))
    assert rendered.text == "pkg.models.User"
    assert rendered.imports == ()


def test_ambiguous_short_name_falls_back_to_qualified() -> None:
    _, _, TypeReference, AmbiguousTypeShortening, *_ = _load()
    policy = _policy(
        """
        try:
            from fast import Parser
        except ImportError:
            from slow import Parser
        """
    )
    with pytest.raises(AmbiguousTypeShortening):
        policy.shorten("fast.Parser")
    rendered = policy.render(TypeReference.named("fast.Parser"))
    assert rendered.text == "fast.Parser"
    assert rendered.imports == ("fast",)


def test_shadowed_builtin_is_not_shortened() -> None:
    _, _, TypeReference, *_ = _load()
    policy = _policy("from mylib import list\n")
    assert policy.render(TypeReference.named("builtins.int")).text == "int"
    rendered = policy.render(TypeReference.named("builtins.list"))
    assert rendered.text == "builtins.list"
    assert rendered.imports == ("builtins",)


def test_local_definitions_render_bare() -> None:
    _, _, TypeReference, *_ = _load()
    policy = _policy("class Order:\n    pass\n", module="shop.orders")
    assert policy.render(TypeReference.named("shop.orders.Order")).text == "Order"


def test_generic_parameter_constraints_render() -> None:
    (
        _,
        _,
        TypeReference,
        _,
        GenericParameter,
        GenericConstraint,
        ConstraintKind,
        GenericKind,
        _,
    ) = _load()
    policy = _policy("from pkg import Base\n")
    bound = GenericParameter(
        "T",
        GenericKind.TYPE_VAR,
        (GenericConstraint(ConstraintKind.BOUND, (TypeReference.named("pkg.Base"),)),),
    )
    assert policy.render_generic(bound).text == "T: Base"
    values = GenericParameter(
        "N",
        GenericKind.TYPE_VAR,
        (
            GenericConstraint(
                ConstraintKind.VALUE_SET,
                (TypeReference.named("builtins.int"), TypeReference.named("builtins.float")),
            ),
        ),
    )
    assert policy.render_generic(values).text == "N: (int, float)"
    assert policy.render_generic(GenericParameter("Ts", GenericKind.TYPE_VAR_TUPLE)).text == "*Ts"
    assert policy.render_generic(GenericParameter("P", GenericKind.PARAM_SPEC)).text == "**P"


def test_unique_name_appends_counter() -> None:
    *_, unique_name = _load()
    assert unique_name("_inner", set()) == "_inner"
    assert unique_name("_inner", {"_inner"}) == "_inner2"
    assert unique_name("_inner", {"_inner", "_inner2"}) == "_inner3"


def test_default_names_are_qualified_and_imported() -> None:
    _load()
    from shieldgen.interface.model import DefaultValue

    policy = _policy("from contracts.colors import Color\n")
    limit = policy.render_default(DefaultValue("LIMIT + 1", (("LIMIT", "contracts.LIMIT"),)))
    assert limit.text == "contracts.LIMIT + 1"
    assert limit.imports == ("contracts",)
    shade = policy.render_default(
        DefaultValue("Color.RED", (("Color", "contracts.colors.Color"),))
    )
    assert shade.text == "Color.RED"
    assert shade.imports == ()
    builtin = policy.render_default(
        DefaultValue("frozenset(key=1)", (("frozenset", "builtins.frozenset"),))
    )
    assert builtin.text == "frozenset(key=1)"
    module = policy.render_default(DefaultValue("os.sep", (("os", "os"),)))
    assert module.text == "os.sep"
    assert module.imports == ("os",)

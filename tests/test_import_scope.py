from __future__ import annotations

from pathlib import Path
import sys
import textwrap

import libcst as cst


def _load():
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root / "src"))
    from shieldgen.interface.model import (
        NONE_TYPE,
        ConstraintKind,
        GenericKind,
        TypeKind,
        TypeReference,
    )
    from shieldgen.interface.types import ImportScope, TypeResolver, typevar_calls

    return (
        ImportScope,
        TypeResolver,
        typevar_calls,
        TypeReference,
        TypeKind,
        NONE_TYPE,
        ConstraintKind,
        GenericKind,
    )


def _module(source: str) -> cst.Module:
    return cst.parse_module(textwrap.dedent(source).strip() + "\n")


def test_import_scope_collects_bindings() -> None:
    ImportScope, *_ = _load()
    module = _module(
        """
        import os
        import collections.abc
        import typing as t
        from pkg.models import User, Order as PurchaseOrder
        from . import sibling
        from .helpers import make

        class Local:
            pass

        def factory():
            pass

        ALIAS = int
        """
    )
    scope = ImportScope.from_module(module, "pkg.service")
    assert scope.targets("os") == ("os",)
    assert scope.targets("collections") == ("collections",)
    assert scope.targets("t") == ("typing",)
    assert scope.targets("User") == ("pkg.models.User",)
    assert scope.targets("PurchaseOrder") == ("pkg.models.Order",)
    assert scope.targets("sibling") == ("pkg.sibling",)
    assert scope.targets("make") == ("pkg.helpers.make",)
    assert scope.targets("Local") == ("pkg.service.Local",)
    assert scope.targets("factory") == ("pkg.service.factory",)
    assert scope.targets("ALIAS") == ("pkg.service.ALIAS",)
    assert scope.has_module_import("collections.abc")
    assert scope.has_module_import("os")
    assert not scope.has_module_import("typing")


def test_import_scope_records_rebinding_as_ambiguous() -> None:
    ImportScope, *_ = _load()
    module = _module(
        """
        try:
            from fast import Parser
        except ImportError:
            from slow import Parser
        """
    )
    scope = ImportScope.from_module(module, "app")
    assert scope.targets("Parser") == ("fast.Parser", "slow.Parser")


def test_import_scope_package_relative_imports() -> None:
    ImportScope, *_ = _load()
    module = _module("from .models import User\nfrom ..core import Base\n")
    scope = ImportScope.from_module(module, "app.api", is_package=True)
    assert scope.targets("User") == ("app.api.models.User",)
    assert scope.targets("Base") == ("app.core.Base",)


def test_resolver_structural_references() -> None:
    (
        ImportScope,
        TypeResolver,
        _typevar_calls,
        TypeReference,
        TypeKind,
        NONE_TYPE,
        *_,
    ) = _load()
    module = _module(
        """
        from typing import Optional
        from collections.abc import Awaitable
        import pkg.models
        """
    )
    resolver = TypeResolver(ImportScope.from_module(module, "app"), ["T"])

    def resolve(text: str):
        return resolver.resolve(cst.parse_expression(text))

    assert resolve("int") == TypeReference.named("builtins.int")
    assert resolve("None") == NONE_TYPE
    assert resolve("T") == TypeReference.param("T")
    assert resolve("Awaitable[T]") == TypeReference.named(
        "collections.abc.Awaitable", TypeReference.param("T")
    )
    assert resolve("pkg.models.User") == TypeReference.named("pkg.models.User")
    assert resolve("'pkg.models.User'") == TypeReference.named("pkg.models.User")
    union = resolve("int | None")
    assert union.kind is TypeKind.UNION
    assert union.args == (TypeReference.named("builtins.int"), NONE_TYPE)
    optional = resolve("Optional[str]")
    assert optional.qualified == "typing.Optional"
    assert optional.shortened == "Optional[str]"


def test_resolver_legacy_typevars_and_constraints() -> None:
    (
        ImportScope,
        TypeResolver,
        typevar_calls,
        TypeReference,
        _TypeKind,
        _NONE_TYPE,
        ConstraintKind,
        GenericKind,
    ) = _load()
    module = _module(
        """
        from typing import TypeVar, ParamSpec

        class Base:
            pass

        T = TypeVar("T", bound=Base)
        N = TypeVar("N", int, float)
        P = ParamSpec("P")
        NOT_A_VAR = dict(a=1)
        """
    )
    scope = ImportScope.from_module(module, "app")
    resolver = TypeResolver(scope, (), typevar_calls(module))
    assert resolver.is_typevar("T")
    assert resolver.is_typevar("P")
    assert not resolver.is_typevar("NOT_A_VAR")
    bounded = resolver.legacy_generic("T")
    assert bounded.constraints[0].kind is ConstraintKind.BOUND
    assert bounded.constraints[0].types == (TypeReference.named("app.Base"),)
    valued = resolver.legacy_generic("N")
    assert valued.constraints[0].kind is ConstraintKind.VALUE_SET
    assert valued.constraints[0].types == (
        TypeReference.named("builtins.int"),
        TypeReference.named("builtins.float"),
    )
    assert resolver.legacy_generic("P").kind is GenericKind.PARAM_SPEC
    assert resolver.resolve(cst.parse_expression("P.args")) == TypeReference.param("P.args")


def test_default_value_records_name_targets() -> None:
    ImportScope, *_ = _load()
    from shieldgen.interface.types import default_value

    scope = ImportScope.from_module(
        _module(
            """
            import os
            from contracts.colors import Color

            LIMIT = 10
            """
        ),
        "contracts",
    )
    limit = default_value(cst.parse_expression("LIMIT * 2"), scope)
    assert limit.references == (("LIMIT", "contracts.LIMIT"),)
    assert limit.portable
    shade = default_value(cst.parse_expression("Color.RED"), scope)
    assert shade.references == (("Color", "contracts.colors.Color"),)
    call = default_value(cst.parse_expression("frozenset(sep=os.sep, flag=True)"), scope)
    assert call.references == (("frozenset", "builtins.frozenset"), ("os", "os"))
    assert call.portable


def test_default_value_that_cannot_be_restated() -> None:
    ImportScope, *_ = _load()
    from shieldgen.interface.types import default_value

    scope = ImportScope.from_module(_module("LIMIT = 10\n"), "contracts")
    assert not default_value(cst.parse_expression("..."), scope).portable
    assert not default_value(cst.parse_expression("UNKNOWN"), scope).portable
    assert not default_value(cst.parse_expression("lambda: LIMIT"), scope).portable
    assert default_value(cst.parse_expression("None"), scope).references == ()

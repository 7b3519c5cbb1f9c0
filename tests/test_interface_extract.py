from __future__ import annotations

from pathlib import Path
import sys
import textwrap

import pytest


def _load():
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root / "src"))
    from shieldgen.exceptions import UnresolvedInterface
    from shieldgen.interface import extract, model
    from shieldgen.interface.workspace import Workspace

    return extract, model, Workspace, UnresolvedInterface


def _workspace(**modules: str):
    _, _, Workspace, _ = _load()
    workspace = Workspace()
    for name, source in modules.items():
        workspace.add(name.replace("__", "."), textwrap.dedent(source).strip() + "\n")
    return workspace


def _describe(workspace, qualified: str, *args):
    extract, model, _, _ = _load()
    ref = model.TypeReference.named(qualified, *args)
    return extract.describe_interface(ref, workspace)


def _members(descriptor) -> dict:
    return {member.name: member for member in descriptor.members}


def test_protocol_members_and_shapes() -> None:
    _, model, _, _ = _load()
    workspace = _workspace(
        service="""
        from collections.abc import Awaitable
        from typing import Protocol

        class User:
            pass

        class IUserService(Protocol):
            def ping(self) -> None: ...
            def find(self, user_id: int, *, strict: bool = False) -> User: ...
            async def load(self, user_id: int) -> User: ...
            def refresh(self) -> Awaitable[None]: ...
            def legacy(self, value): ...
        """
    )
    descriptor = _describe(workspace, "service.IUserService")
    members = _members(descriptor)
    assert list(members) == ["ping", "find", "load", "refresh", "legacy"]
    assert members["ping"].shape is model.ReturnShape.VOID
    find = members["find"]
    assert find.shape is model.ReturnShape.VALUE
    assert find.returns == model.TypeReference.named("service.User")
    assert [p.kind for p in find.parameters] == [
        model.ParameterKind.POSITIONAL_OR_KEYWORD,
        model.ParameterKind.KEYWORD_ONLY,
    ]
    assert find.parameters[1].default == model.DefaultValue("False")
    load = members["load"]
    assert load.shape is model.ReturnShape.AWAITABLE
    assert load.awaited == model.TypeReference.named("service.User")
    refresh = members["refresh"]
    assert refresh.shape is model.ReturnShape.AWAITABLE
    assert refresh.awaited == model.NONE_TYPE
    assert members["legacy"].shape is model.ReturnShape.VALUE
    assert members["legacy"].returns is None
    assert descriptor.excluded == ()


def test_generic_constraints_are_carried() -> None:
    _, model, _, _ = _load()
    workspace = _workspace(
        repo="""
        from typing import Callable, Protocol, TypeVar

        class Base:
            pass

        K = TypeVar("K", int, str)

        class IStore(Protocol):
            def get[T: Base](self, key: str) -> T: ...
            def pick(self, key: K) -> K: ...
            def run[*Ts, **P](self, fn: Callable[P, None]) -> None: ...
        """
    )
    members = _members(_describe(workspace, "repo.IStore"))
    (generic,) = members["get"].generics
    assert generic.name == "T"
    assert generic.constraints == (
        model.GenericConstraint(
            model.ConstraintKind.BOUND, (model.TypeReference.named("repo.Base"),)
        ),
    )
    (legacy,) = members["pick"].generics
    assert legacy.name == "K"
    assert legacy.constraints[0].kind is model.ConstraintKind.VALUE_SET
    assert [g.kind for g in members["run"].generics] == [
        model.GenericKind.TYPE_VAR_TUPLE,
        model.GenericKind.PARAM_SPEC,
    ]


def test_class_type_parameters_are_substituted_through_bases() -> None:
    _, model, _, _ = _load()
    workspace = _workspace(
        repo="""
        from typing import Protocol, TypeVar

        T = TypeVar("T")

        class IReader(Protocol[T]):
            def read(self, key: str) -> T: ...

        class IRepository[E](IReader[E], Protocol):
            async def save(self, item: E) -> None: ...
        """,
        models="""
        class User:
            pass
        """,
    )
    user = model.TypeReference.named("models.User")
    members = _members(_describe(workspace, "repo.IRepository", user))
    assert list(members) == ["save", "read"]
    assert members["save"].parameters[0].annotation == user
    assert members["read"].returns == user
    assert members["read"].generics == ()


def test_unbound_class_parameter_defaults_to_any() -> None:
    _, model, _, _ = _load()
    workspace = _workspace(
        repo="""
        from typing import Protocol

        class IBox[T](Protocol):
            def get(self) -> T: ...
        """
    )
    members = _members(_describe(workspace, "repo.IBox"))
    assert members["get"].returns == model.ANY_TYPE


def test_diamond_inheritance_collapses_members() -> None:
    workspace = _workspace(
        shapes="""
        from typing import Protocol

        class IBase(Protocol):
            def close(self) -> None: ...

        class ILeft(IBase, Protocol):
            def left(self) -> int: ...

        class IRight(IBase, Protocol):
            def right(self) -> int: ...
            def close(self) -> None: ...

        class IBoth(ILeft, IRight, Protocol):
            pass
        """
    )
    members = _describe(workspace, "shapes.IBoth").members
    assert [m.name for m in members] == ["left", "right", "close"]


def test_properties_events_and_indexers() -> None:
    _, model, _, _ = _load()
    workspace = _workspace(
        widgets="""
        from typing import ClassVar, Final, Protocol

        class Event[T]:
            pass

        class IWidget(Protocol):
            title: str
            ident: Final[int]
            changed: Event[str]
            registry: ClassVar[dict]

            @property
            def size(self) -> int: ...

            @size.setter
            def size(self, value: int) -> None: ...

            @property
            def label(self) -> str: ...

            def __getitem__(self, key: int) -> str: ...
            def __setitem__(self, key: int, text: str) -> None: ...
        """
    )
    descriptor = _describe(workspace, "widgets.IWidget")
    members = _members(descriptor)
    assert members["title"] == model.PropertyMember(
        "title", model.TypeReference.named("builtins.str"), True, True
    )
    assert members["ident"].writable is False
    assert isinstance(members["changed"], model.EventMember)
    assert members["size"].readable and members["size"].writable
    assert members["label"].writable is False
    indexer = members["__getitem__"]
    assert isinstance(indexer, model.IndexerMember)
    assert indexer.readable and indexer.writable
    assert indexer.value_name == "text"
    assert [p.name for p in indexer.keys] == ["key"]
    assert [e.member for e in descriptor.excluded] == ["registry"]


def test_setter_in_derived_interface_pairs_with_base_getter() -> None:
    _, model, _, _ = _load()
    workspace = _workspace(
        widgets="""
        from typing import Protocol


        class IReadable(Protocol):
            @property
            def size(self) -> int: ...

            @property
            def label(self) -> str: ...


        class IWidget(IReadable, Protocol):
            @IReadable.size.setter
            def size(self, value: int) -> None: ...

            @label.setter
            def label(self, value: str) -> None: ...

            @colour.setter
            def colour(self, value: str) -> None: ...
        """
    )
    descriptor = _describe(workspace, "widgets.IWidget")
    members = _members(descriptor)
    assert members["size"] == model.PropertyMember(
        "size", model.TypeReference.named("builtins.int"), readable=True, writable=True
    )
    assert members["label"] == model.PropertyMember(
        "label", model.TypeReference.named("builtins.str"), readable=True, writable=True
    )
    assert "colour" not in members
    assert descriptor.warnings == (
        "widgets.IWidget.colour: setter has no property getter to pair with; not synthesized.",
    )


def test_unsupported_members_are_excluded_not_fatal() -> None:
    workspace = _workspace(
        api="""
        import abc
        from typing import overload

        class IApi(abc.ABC):
            @abc.abstractmethod
            def call(self) -> int: ...

            @staticmethod
            def build() -> "IApi": ...

            @classmethod
            def create(cls) -> "IApi": ...

            def __add__(self, other: "IApi") -> "IApi": ...

            @overload
            def only_stub(self, x: int) -> int: ...

            class Nested:
                pass

            version = 3
        """
    )
    descriptor = _describe(workspace, "api.IApi")
    assert [m.name for m in descriptor.members] == ["call"]
    assert sorted(e.member for e in descriptor.excluded) == [
        "Nested",
        "__add__",
        "build",
        "create",
        "only_stub",
        "version",
    ]


def test_metaclass_abc_is_an_interface() -> None:
    workspace = _workspace(
        meta="""
        from abc import ABCMeta, abstractmethod

        class IJob(metaclass=ABCMeta):
            @abstractmethod
            def run(self) -> None: ...
        """
    )
    assert [m.name for m in _describe(workspace, "meta.IJob").members] == ["run"]


def test_re_exported_interface_is_found() -> None:
    workspace = _workspace(
        pkg="""
        from pkg.contracts import IClock
        """,
        pkg__contracts="""
        from typing import Protocol

        class IClock(Protocol):
            def now(self) -> float: ...
        """,
    )
    descriptor = _describe(workspace, "pkg.IClock")
    assert [m.name for m in descriptor.members] == ["now"]


def test_external_base_produces_warning() -> None:
    workspace = _workspace(
        streams="""
        from typing import Protocol
        from thirdparty import IClosable

        class IStream(IClosable, Protocol):
            def read(self) -> bytes: ...
        """
    )
    descriptor = _describe(workspace, "streams.IStream")
    assert [m.name for m in descriptor.members] == ["read"]
    assert any("thirdparty.IClosable" in warning for warning in descriptor.warnings)


def test_unresolved_interface_is_fatal() -> None:
    _, _, _, UnresolvedInterface = _load()
    workspace = _workspace(
        plain="""
        class NotAnInterface:
            def run(self) -> None: ...
        """
    )
    with pytest.raises(UnresolvedInterface):
        _describe(workspace, "plain.Missing")
    with pytest.raises(UnresolvedInterface):
        _describe(workspace, "plain.NotAnInterface")
    with pytest.raises(UnresolvedInterface):
        _describe(workspace, "nowhere.IThing")

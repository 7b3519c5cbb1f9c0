"""Source rendering for synthesized decorator members.

Every member is rendered as text through the type-name policy and parsed
back with libcst, so a candidate always carries a well-formed statement node.
"""

from __future__ import annotations

from dataclasses import replace
from typing import List, Sequence

import libcst as cst

from shieldgen.interface.model import (
    NONE_TYPE,
    OBJECT_TYPE,
    DefaultValue,
    GenericParameter,
    Parameter,
    ParameterKind,
    TypeKind,
    TypeReference,
)
from shieldgen.invariants import never
from shieldgen.synthesis.classify import AWAITABLE, awaited_return
from shieldgen.synthesis.model import (
    Accessor,
    CandidateMember,
    MemberCategory,
    MemberSignature,
    Strategy,
    SynthesisConfig,
    SynthesisMode,
    SynthesisPlan,
    call_arguments,
    has_unportable_default,
)
from shieldgen.synthesis.naming import TypeNamePolicy

CALLABLE = "collections.abc.Callable"
NOT_GIVEN = "shieldgen.policy.NOT_GIVEN"
GIVEN = "shieldgen.policy.given"
DEFERRED = "shieldgen.policy.deferred"
_HELPER_PARAM = "T"
_NO_ARGS = TypeReference(TypeKind.LIST, "[]")


def _callable_of(result: TypeReference) -> TypeReference:
    return TypeReference.named(CALLABLE, _NO_ARGS, result)


def helper_parameters(config: SynthesisConfig) -> dict[str, Parameter]:
    value = TypeReference.param(_HELPER_PARAM)
    return {
        config.void_helper: Parameter("action", _callable_of(OBJECT_TYPE)),
        config.value_helper: Parameter("action", _callable_of(value)),
        config.async_helper: Parameter(
            "action", _callable_of(TypeReference.named(AWAITABLE, value))
        ),
    }


class MemberEmitter:
    def __init__(
        self,
        policy: TypeNamePolicy,
        config: SynthesisConfig,
        mode: SynthesisMode,
        inner_field: str,
        policy_field: str,
    ) -> None:
        self.policy = policy
        self.config = config
        self.mode = mode
        self.inner_field = inner_field
        self.policy_field = policy_field
        self._imports: List[str] = []

    # --- rendering primitives --------------------------------------------

    def _type(self, ref: TypeReference) -> str:
        rendered = self.policy.render(ref)
        self._imports.extend(rendered.imports)
        return rendered.text

    def _generic(self, generic: GenericParameter) -> str:
        rendered = self.policy.render_generic(generic)
        self._imports.extend(rendered.imports)
        return rendered.text

    def _param(self, param: Parameter) -> str:
        prefix = {
            ParameterKind.VAR_POSITIONAL: "*",
            ParameterKind.VAR_KEYWORD: "**",
        }.get(param.kind, "")
        text = f"{prefix}{param.name}"
        if param.annotation is not None:
            text = f"{text}: {self._type(param.annotation)}"
            if param.default is not None:
                text = f"{text} = {self._default(param.default)}"
        elif param.default is not None:
            text = f"{text}={self._default(param.default)}"
        return text

    def _default(self, default: DefaultValue) -> str:
        if not default.portable:
            return self._type(TypeReference.named(NOT_GIVEN))
        rendered = self.policy.render_default(default)
        self._imports.extend(rendered.imports)
        return rendered.text

    def _parameters(self, parameters: Sequence[Parameter]) -> str:
        parts = ["self"]
        positional_only = [p for p in parameters if p.kind is ParameterKind.POSITIONAL_ONLY]
        for param in positional_only:
            parts.append(self._param(param))
        if positional_only:
            parts.append("/")
        star_written = False
        for param in parameters:
            if param.kind is ParameterKind.POSITIONAL_ONLY:
                continue
            if param.kind is ParameterKind.VAR_POSITIONAL:
                star_written = True
            if param.kind is ParameterKind.KEYWORD_ONLY and not star_written:
                parts.append("*")
                star_written = True
            parts.append(self._param(param))
        return ", ".join(parts)

    def _header(
        self,
        name: str,
        parameters: Sequence[Parameter],
        returns: TypeReference | None,
        generics: Sequence[GenericParameter] = (),
        is_async: bool = False,
        decorator: str | None = None,
    ) -> str:
        lines = []
        if decorator is not None:
            lines.append(f"@{decorator}")
        type_params = ""
        if generics:
            type_params = "[" + ", ".join(self._generic(g) for g in generics) + "]"
        annotation = f" -> {self._type(returns)}" if returns is not None else ""
        keyword = "async def" if is_async else "def"
        lines.append(
            f"{keyword} {name}{type_params}({self._parameters(parameters)}){annotation}:"
        )
        return "\n".join(lines)

    def _finish(
        self,
        category: MemberCategory,
        name: str,
        source: str,
        *,
        signature: MemberSignature | None = None,
        field_type: TypeReference | None = None,
        accessor: Accessor = Accessor.METHOD,
    ) -> CandidateMember:
        imports = tuple(dict.fromkeys(self._imports))
        self._imports = []
        node = cst.parse_statement(source)
        return CandidateMember(
            category=category,
            name=name,
            source=source,
            node=node,
            signature=signature,
            field_type=field_type,
            accessor=accessor,
            imports=imports,
        )

    # --- members ---------------------------------------------------------

    def field(self, name: str, ref: TypeReference) -> CandidateMember:
        self._imports = []
        source = f"{name}: {self._type(ref)}\n"
        return self._finish(MemberCategory.FIELD, name, source, field_type=ref)

    def constructor(self, inner: TypeReference, policy: TypeReference) -> CandidateMember:
        self._imports = []
        parameters = (
            Parameter(self.config.inner_parameter, inner),
            Parameter(self.config.policy_parameter, policy),
        )
        header = self._header("__init__", parameters, NONE_TYPE)
        source = (
            f"{header}\n"
            f"    self.{self.inner_field} = {self.config.inner_parameter}\n"
            f"    self.{self.policy_field} = {self.config.policy_parameter}\n"
        )
        return self._finish(
            MemberCategory.CONSTRUCTOR,
            "__init__",
            source,
            signature=MemberSignature.build("__init__", Accessor.METHOD, parameters),
        )

    def helpers(self) -> List[CandidateMember]:
        config = self.config
        params = helper_parameters(config)
        value = TypeReference.param(_HELPER_PARAM)
        generic = (GenericParameter(_HELPER_PARAM),)
        policy = f"self.{self.policy_field}"
        async_returns, async_marker = awaited_return(value, self.mode)
        specs = [
            (config.void_helper, (), NONE_TYPE, False),
            (config.value_helper, generic, value, False),
            (config.async_helper, generic, async_returns, async_marker),
        ]
        helpers = []
        for name, generics, returns, is_async in specs:
            self._imports = []
            parameters = (params[name],)
            header = self._header(name, parameters, returns, generics, is_async)
            if name == config.void_helper:
                body = f"{policy}.execute(action)"
            elif name == config.value_helper:
                body = f"return {policy}.execute(action)"
            elif is_async:
                body = f"return await {policy}.execute_async(action)"
            else:
                # The policy runs when the returned awaitable is awaited.
                deferred = self._type(TypeReference.named(DEFERRED))
                body = f"return {deferred}({policy}.execute_async, action)"
            helpers.append(
                self._finish(
                    MemberCategory.HELPER,
                    name,
                    f"{header}\n    {body}\n",
                    signature=MemberSignature.build(
                        name, Accessor.METHOD, parameters, [g.name for g in generics]
                    ),
                )
            )
        return helpers

    def forwarding(self, plan: SynthesisPlan) -> CandidateMember:
        self._imports = []
        decorator = None
        if plan.accessor is Accessor.GET:
            decorator = "property"
        elif plan.accessor is Accessor.SET:
            decorator = f"{plan.name}.setter"
        header = self._header(
            plan.name,
            plan.parameters,
            plan.returns,
            plan.generics,
            plan.is_async,
            decorator,
        )
        source = f"{header}\n    {self._body(plan)}\n"
        return self._finish(
            MemberCategory.FORWARDING,
            plan.name,
            source,
            signature=MemberSignature.build(
                plan.name,
                plan.accessor,
                plan.parameters,
                [g.name for g in plan.generics],
            ),
            accessor=plan.accessor,
        )

    def _body(self, plan: SynthesisPlan) -> str:
        if any(has_unportable_default(p) for p in plan.parameters):
            given = self._type(TypeReference.named(GIVEN))
            plan = replace(plan, arguments=call_arguments(plan.parameters, given))
        target = plan.target(f"self.{self.inner_field}")
        config = self.config
        if plan.strategy is Strategy.DIRECT_VOID_CALL:
            return f"self.{config.void_helper}(lambda: {target})"
        if plan.strategy is Strategy.DIRECT_VALUE_CALL:
            return f"return self.{config.value_helper}(lambda: {target})"
        if plan.strategy is Strategy.AWAITED_CALL:
            call = f"self.{config.async_helper}(lambda: {target})"
            if not plan.is_async:
                return f"return {call}"
            if plan.returns == NONE_TYPE:
                return f"await {call}"
            return f"return await {call}"
        if plan.strategy is Strategy.DIRECT_EVENT_ACCESS:
            if plan.accessor is Accessor.SET:
                return target
            return f"return {target}"
        never("unknown forwarding strategy", strategy=plan.strategy)

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, List

import libcst as cst

from shieldgen.interface.model import InterfaceDescriptor, TypeReference
from shieldgen.synthesis.classify import classify
from shieldgen.synthesis.emission import MemberEmitter
from shieldgen.synthesis.model import (
    CandidateMember,
    CandidateSet,
    SynthesisConfig,
    SynthesisMode,
    keyword_forwarding_problem,
)
from shieldgen.synthesis.naming import TypeNamePolicy, unique_name

if TYPE_CHECKING:
    from shieldgen.refactor.model import ClassSnapshot

logger = logging.getLogger(__name__)


@dataclass
class DecoratorSynthesizer:
    """Builds the full candidate member set of a resilience decorator.

    Two fields, one constructor, three helpers and one forwarding member per
    interface accessor, rendered for the class described by a snapshot. The
    snapshot only informs naming and type spelling; deciding what is missing
    is the merge step's job.
    """

    config: SynthesisConfig = field(default_factory=SynthesisConfig)

    def candidates(
        self,
        interface: InterfaceDescriptor,
        snapshot: "ClassSnapshot",
        mode: SynthesisMode | None = None,
    ) -> CandidateSet:
        config = self.config
        mode = mode or config.mode
        inner_type = interface.interface
        policy_type = TypeReference.named(config.policy_type)

        inner_field = self._field_name(snapshot, inner_type, config.inner_field, ())
        policy_field = self._field_name(
            snapshot, policy_type, config.policy_field, (inner_field,)
        )
        emitter = MemberEmitter(
            TypeNamePolicy(snapshot.scope), config, mode, inner_field, policy_field
        )
        members: List[CandidateMember] = [
            emitter.field(inner_field, inner_type),
            emitter.field(policy_field, policy_type),
            emitter.constructor(inner_type, policy_type),
            *emitter.helpers(),
        ]
        warnings: List[str] = []
        for member in interface.members:
            for plan in classify(member, mode):
                problem = keyword_forwarding_problem(plan.parameters)
                if problem is not None:
                    message = f"{interface.name}.{plan.name}: dropped, {problem}"
                    logger.debug(message)
                    warnings.append(message)
                    continue
                try:
                    members.append(emitter.forwarding(plan))
                except cst.ParserSyntaxError as exc:
                    message = (
                        f"{interface.name}.{plan.name}: dropped, forwarding member"
                        f" did not render to valid source ({exc.message})"
                    )
                    logger.debug(message)
                    warnings.append(message)
        return CandidateSet(members=tuple(members), warnings=tuple(warnings))

    def _field_name(
        self,
        snapshot: "ClassSnapshot",
        ref: TypeReference,
        preferred: str,
        taken: Iterable[str],
    ) -> str:
        existing = snapshot.field_of_type(ref)
        if existing is not None:
            return existing.name
        return unique_name(preferred, {*snapshot.bound_names, *taken})

"""Pick one generation scenario from the inputs a request carries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

from .contracts import GenerationRequest, MediaInput, Scenario
from .errors import InvalidRequest


@dataclass(frozen=True)
class IdentityTransfer:
    subject: MediaInput
    reference: MediaInput
    kind: Scenario = Scenario.IDENTITY_TRANSFER

    @property
    def media(self) -> Tuple[MediaInput, ...]:
        # The reference is the base plate and must lead.
        return (self.reference, self.subject)


@dataclass(frozen=True)
class GenerativePlacement:
    subject: MediaInput
    kind: Scenario = Scenario.GENERATIVE_PLACEMENT

    @property
    def media(self) -> Tuple[MediaInput, ...]:
        return (self.subject,)


@dataclass(frozen=True)
class GuidedReimagination:
    reference: MediaInput
    kind: Scenario = Scenario.GUIDED_REIMAGINATION

    @property
    def media(self) -> Tuple[MediaInput, ...]:
        return (self.reference,)


@dataclass(frozen=True)
class PureSynthesis:
    kind: Scenario = Scenario.PURE_SYNTHESIS

    @property
    def media(self) -> Tuple[MediaInput, ...]:
        return ()


ScenarioVariant = Union[IdentityTransfer, GenerativePlacement, GuidedReimagination, PureSynthesis]

_INVALID_MESSAGE = "Invalid input combination: provide a subject image, a reference image, or a creative brief."


def scenario_for(subject_present: bool, reference_present: bool, brief_present: bool) -> Scenario:
    if subject_present and reference_present:
        return Scenario.IDENTITY_TRANSFER
    if subject_present:
        return Scenario.GENERATIVE_PLACEMENT
    if reference_present:
        return Scenario.GUIDED_REIMAGINATION
    if brief_present:
        return Scenario.PURE_SYNTHESIS
    raise InvalidRequest(_INVALID_MESSAGE)


def select_scenario(request: GenerationRequest) -> ScenarioVariant:
    subject = request.subject_image
    reference = request.reference_image
    kind = scenario_for(subject is not None, reference is not None, bool(request.brief))
    if kind == Scenario.IDENTITY_TRANSFER:
        return IdentityTransfer(subject=subject, reference=reference)
    if kind == Scenario.GENERATIVE_PLACEMENT:
        return GenerativePlacement(subject=subject)
    if kind == Scenario.GUIDED_REIMAGINATION:
        return GuidedReimagination(reference=reference)
    return PureSynthesis()


def validate_request(request: GenerationRequest) -> Scenario:
    return select_scenario(request).kind

"""Assemble the instruction payload sent to the generation backend.

The instruction is built from segments in a fixed order:

    role -> task -> format -> inputs -> analysis? -> brief? -> directives -> text -> quality

Media parts lead the payload in the order the selected scenario defines.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

from .contracts import ComposedPayload, GenerationRequest, InstructionSegment, Scenario
from .formats import resolve_format
from .overlay import instruction_for_mode
from .scenarios import select_scenario


SEGMENT_ORDER: Tuple[str, ...] = (
    "role",
    "task",
    "format",
    "inputs",
    "analysis",
    "brief",
    "directives",
    "text",
    "quality",
)


@dataclass(frozen=True)
class _Framing:
    role: str
    task: str
    inputs: Tuple[str, ...]
    brief_label: str


_FRAMINGS: Dict[Scenario, _Framing] = {
    Scenario.IDENTITY_TRANSFER: _Framing(
        role="ROLE: Senior VFX Compositor.",
        task="TASK: Identity replacement and relighting on an existing base plate.",
        inputs=(
            "IMAGE_1 (Base Plate): Master reference. Composition, lighting and color grade.",
            "IMAGE_2 (Source): User identity.",
        ),
        brief_label="ADDITIONAL INSTRUCTION",
    ),
    Scenario.GENERATIVE_PLACEMENT: _Framing(
        role="ROLE: Movie Poster Concept Artist.",
        task="TASK: Create a new scene featuring the subject.",
        inputs=("IMAGE_1: The main subject.",),
        brief_label="SCENE DESCRIPTION",
    ),
    Scenario.GUIDED_REIMAGINATION: _Framing(
        role="ROLE: Creative Director / Art Director.",
        task="TASK: Reimagine the reference image.",
        inputs=("IMAGE_1: Visual reference (composition and lighting base).",),
        brief_label="CREATIVE DIRECTION",
    ),
    Scenario.PURE_SYNTHESIS: _Framing(
        role="ROLE: AI Image Generator.",
        task="TASK: Create a movie poster from scratch.",
        inputs=(),
        brief_label="PROMPT",
    ),
}


def _directives(scenario: Scenario, has_brief: bool) -> List[str]:
    if scenario == Scenario.IDENTITY_TRANSFER:
        return [
            "Replace the identity of the main subject in IMAGE_1 with the person from IMAGE_2.",
            "PRESERVE IMAGE_1's lighting, shadows, geometry and color grading exactly.",
            "Adapt IMAGE_2's head geometry and pose to match IMAGE_1's camera angle.",
            "Keep IMAGE_2's identity recognizable. Do not blend the two identities.",
        ]
    if scenario == Scenario.GENERATIVE_PLACEMENT:
        environment = (
            "GENERATE a high-end cinematic environment based on the SCENE DESCRIPTION."
            if has_brief
            else "INVENT a high-end cinematic environment that suits the subject."
        )
        return [
            environment,
            "PLACE the subject from IMAGE_1 into this scene.",
            "Match lighting and reflections on the subject to the new environment.",
            "Keep the subject's identity and proportions intact.",
        ]
    if scenario == Scenario.GUIDED_REIMAGINATION:
        transform = (
            "APPLY the CREATIVE DIRECTION to transform the content, style or subject matter."
            if has_brief
            else "Produce a fresh variation of the content and styling."
        )
        return [
            "Generate a NEW image that respects the composition and lighting structure of IMAGE_1.",
            transform,
            "If the direction asks for a different person or character, generate a new fictional "
            "character fitting the description.",
            "Maintain the professional movie-poster aesthetic of the reference.",
        ]
    return [
        "Generate a cinematic image based on the PROMPT.",
        "Ensure high dynamic range and dramatic lighting.",
    ]


def _inputs_text(framing: _Framing) -> str:
    if not framing.inputs:
        return "INPUTS: None. Work from the text prompt alone."
    return "INPUTS:\n" + "\n".join(f"- {line}" for line in framing.inputs)


def quality_directive(image_size: str = "4K") -> str:
    return (
        f"OUTPUT: Photorealistic, {image_size} resolution. Sharp detail, natural skin texture, "
        "no banding or artifacts."
    )


def compose(request: GenerationRequest, image_size: str = "4K") -> ComposedPayload:
    """Build the payload for a request. Raises ``InvalidRequest`` when nothing usable is supplied."""
    variant = select_scenario(request)
    framing = _FRAMINGS[variant.kind]
    aspect_ratio, format_instruction = resolve_format(
        request.spec.output_type, request.spec.landing_position
    )
    brief = request.brief

    segments: List[InstructionSegment] = [
        InstructionSegment("role", framing.role),
        InstructionSegment("task", framing.task),
        InstructionSegment("format", format_instruction),
        InstructionSegment("inputs", _inputs_text(framing)),
    ]
    analysis = (request.analysis_context or "").strip()
    if analysis:
        segments.append(InstructionSegment("analysis", f"TECH SPECS (reference analysis):\n{analysis}"))
    if brief:
        segments.append(InstructionSegment("brief", f'{framing.brief_label}: "{brief}"'))
    directives = _directives(variant.kind, bool(brief))
    numbered = "\n".join(f"{idx}. {line}" for idx, line in enumerate(directives, start=1))
    segments.append(InstructionSegment("directives", f"INSTRUCTIONS:\n{numbered}"))
    segments.append(InstructionSegment("text", instruction_for_mode(request.text_mode, request.custom_text)))
    segments.append(InstructionSegment("quality", quality_directive(image_size)))

    return ComposedPayload(
        scenario=variant.kind,
        media=variant.media,
        segments=tuple(segments),
        aspect_ratio=aspect_ratio,
    )


def compose_refinement(instruction: str, aspect_ratio: str, image_size: str = "4K") -> str:
    request_text = (instruction or "").strip()
    return "\n".join(
        [
            "ROLE: Senior Photo Retoucher.",
            "TASK: Localized image refinement.",
            f'USER REQUEST: "{request_text}"',
            "INSTRUCTIONS:",
            "1. Edit ONLY the region or attribute the request targets.",
            "2. Preserve film grain, identity and lighting everywhere outside that region.",
            "3. Do NOT regenerate, recompose or restyle the image as a whole.",
            f"4. Keep original quality. Output {image_size}.",
            f"Output Ratio: {aspect_ratio}.",
        ]
    )

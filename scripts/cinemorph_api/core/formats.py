"""Resolve output formats into aspect ratios and layout instructions."""

from __future__ import annotations

import re
from typing import Dict, Optional, Tuple

from .contracts import LandingPosition, OutputType


_DIM_RE = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+)\s*$")

_ASPECT_RATIOS: Dict[OutputType, str] = {
    OutputType.SQUARE_FEED: "1:1",
    OutputType.VERTICAL_STORY: "9:16",
    OutputType.THUMBNAIL: "16:9",
    OutputType.LANDING_HERO: "16:9",
    OutputType.LANDING_MOBILE: "9:16",
}

_HERO_LAYOUTS: Dict[LandingPosition, str] = {
    LandingPosition.LEFT: (
        "LAYOUT: Subject anchored LEFT. RIGHT side: clean negative space reserved for headline and CTA."
    ),
    LandingPosition.RIGHT: (
        "LAYOUT: Subject anchored RIGHT. LEFT side: clean negative space reserved for headline and CTA."
    ),
    LandingPosition.CENTER: (
        "LAYOUT: Subject CENTERED. Symmetric negative space on both sides for overlay copy."
    ),
}

_MOBILE_LAYOUTS: Dict[LandingPosition, str] = {
    LandingPosition.TOP: (
        "LAYOUT: Subject in TOP half. Clean negative space at BOTTOM, "
        "extend the background seamlessly to fill it."
    ),
    LandingPosition.BOTTOM: (
        "LAYOUT: Subject in BOTTOM half. Clean negative space at TOP, "
        "extend the background seamlessly to fill it."
    ),
}

_SQUARE_INSTRUCTION = "FORMAT: SQUARE AD (1:1). Balanced composition, no layout constraint."


def effective_position(output_type: OutputType, position: LandingPosition) -> LandingPosition:
    """Clamp a landing position to the ones the output type supports."""
    if output_type == OutputType.LANDING_HERO and not position.is_horizontal:
        return LandingPosition.CENTER
    if output_type == OutputType.LANDING_MOBILE and position.is_horizontal:
        return LandingPosition.TOP
    return position


def resolve_format(
    output_type: OutputType | str | None,
    landing_position: LandingPosition | str | None = None,
) -> Tuple[str, str]:
    """Return ``(aspect_ratio, layout_instruction)``. Never raises."""
    kind = OutputType.parse(output_type)
    position = effective_position(kind, LandingPosition.parse(landing_position))
    aspect_ratio = _ASPECT_RATIOS[kind]

    if kind == OutputType.VERTICAL_STORY:
        return aspect_ratio, "FORMAT: SOCIAL MEDIA STORY (9:16). Vertical composition, subject within the central safe zone."
    if kind == OutputType.THUMBNAIL:
        return aspect_ratio, (
            "FORMAT: YOUTUBE THUMBNAIL (16:9). High contrast, rule of thirds, "
            "strong rim light separating the subject from the background."
        )
    if kind == OutputType.LANDING_HERO:
        return aspect_ratio, f"FORMAT: CINEMATIC WEB HEADER (16:9). {_HERO_LAYOUTS[position]}"
    if kind == OutputType.LANDING_MOBILE:
        return aspect_ratio, f"FORMAT: MOBILE LANDING PAGE (Vertical 9:16). {_MOBILE_LAYOUTS[position]}"
    return aspect_ratio, _SQUARE_INSTRUCTION


def refinement_aspect_ratio(output_type: OutputType | str | None) -> str:
    kind = OutputType.parse(output_type)
    if kind in {OutputType.VERTICAL_STORY, OutputType.LANDING_MOBILE}:
        return "9:16"
    if kind in {OutputType.THUMBNAIL, OutputType.LANDING_HERO}:
        return "16:9"
    return "1:1"


def resolve_image_size(size: Optional[str]) -> str:
    if not size:
        return "4K"
    normalized = size.strip().lower()
    if normalized in {"1k", "2k", "4k"}:
        return normalized.upper()
    match = _DIM_RE.match(normalized)
    if match:
        longest = max(int(match.group(1)), int(match.group(2)))
        if longest >= 3600:
            return "4K"
        if longest >= 1800:
            return "2K"
        return "1K"
    return "4K"

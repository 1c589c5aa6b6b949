"""Text overlay policy."""

from __future__ import annotations

from .contracts import TextMode


CLEAN_INSTRUCTION = "TEXT: Remove all existing text, logos and typography. Deliver a clean plate."
MOCKUP_INSTRUCTION = (
    "TEXT: Mimic the reference's text layout as an un-rendered mockup. "
    "Match the visual weight and placement of every text block; legibility is not required."
)


def text_mode_for(preserve_text: bool, custom_text: str | None) -> TextMode:
    if not preserve_text:
        return TextMode.CLEAN
    if custom_text and custom_text.strip():
        return TextMode.CUSTOM
    return TextMode.MOCKUP


def instruction_for_mode(mode: TextMode, custom_text: str | None = "") -> str:
    if mode == TextMode.CUSTOM and custom_text and custom_text.strip():
        literal = custom_text.strip()
        return (
            f'TEXT RENDER: Render this literal text exactly: "{literal}". '
            "Match the source typography style and placement."
        )
    if mode == TextMode.CLEAN:
        return CLEAN_INSTRUCTION
    return MOCKUP_INSTRUCTION


def resolve_text_instruction(preserve_text: bool, custom_text: str | None = "") -> str:
    return instruction_for_mode(text_mode_for(preserve_text, custom_text), custom_text)

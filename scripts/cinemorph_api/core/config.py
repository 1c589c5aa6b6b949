"""Environment-driven configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .formats import resolve_image_size


GEMINI_IMAGE_MODEL = "gemini-3-pro-image-preview"
GEMINI_TEXT_MODEL = "gemini-3-pro-preview"
OPENAI_IMAGE_MODEL = "gpt-image-1"
OPENAI_TEXT_MODEL = "gpt-4.1-mini"


def find_dotenv_path(start: Optional[Path] = None) -> Optional[Path]:
    current = Path(start or Path.cwd()).resolve()
    for parent in (current, *current.parents):
        candidate = parent / ".env"
        if candidate.exists():
            return candidate
    return None


def load_environment(start: Optional[Path] = None) -> Optional[Path]:
    """Load ``.env`` without overriding variables already set in the process."""
    dotenv_path = find_dotenv_path(start)
    if dotenv_path is not None:
        load_dotenv(dotenv_path=dotenv_path, override=False)
    return dotenv_path


def image_size() -> str:
    return resolve_image_size(os.getenv("CINEMORPH_IMAGE_SIZE"))


def gemini_image_model() -> str:
    return os.getenv("CINEMORPH_IMAGE_MODEL") or GEMINI_IMAGE_MODEL


def gemini_text_model() -> str:
    return os.getenv("CINEMORPH_TEXT_MODEL") or GEMINI_TEXT_MODEL


def openai_image_model() -> str:
    return os.getenv("CINEMORPH_OPENAI_IMAGE_MODEL") or OPENAI_IMAGE_MODEL


def openai_text_model() -> str:
    return os.getenv("CINEMORPH_OPENAI_TEXT_MODEL") or OPENAI_TEXT_MODEL

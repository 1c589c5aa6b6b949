"""Backend registry."""

from __future__ import annotations

from typing import Dict

from .base import AnalysisBackend, AssistantBackend, Backend, BackendPart, BackendResponse, GenerationBackend


_BACKENDS: Dict[str, Backend] = {}


def _build_backend(provider: str) -> Backend:
    key = provider.strip().lower()
    if key == "gemini":
        from .gemini import GeminiBackend
        return GeminiBackend()
    if key == "openai":
        from .openai import OpenAIBackend
        return OpenAIBackend()
    raise ValueError(f"No backend registered for provider '{provider}'.")


def get_backend(provider: str) -> Backend:
    key = provider.strip().lower()
    backend = _BACKENDS.get(key)
    if backend is not None:
        return backend
    backend = _build_backend(key)
    _BACKENDS[key] = backend
    return backend


__all__ = [
    "get_backend",
    "AnalysisBackend",
    "AssistantBackend",
    "Backend",
    "BackendPart",
    "BackendResponse",
    "GenerationBackend",
]

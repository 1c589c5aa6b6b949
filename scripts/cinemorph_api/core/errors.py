"""Error taxonomy shared by the composer, clients and studio."""

from __future__ import annotations

from typing import Optional


_MAX_DISPLAY_CHARS = 50


class CineMorphError(RuntimeError):
    pass


class InvalidRequest(CineMorphError, ValueError):
    """No usable input combination; raised before any I/O."""


class MissingCredential(CineMorphError):
    pass


class ModelRefusal(CineMorphError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Model refusal: {detail}")
        self.detail = detail


class EmptyResponse(CineMorphError):
    pass


class BackendError(CineMorphError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StageTransitionError(CineMorphError):
    pass


class PipelineBusy(CineMorphError):
    pass


def user_message(exc: BaseException) -> str:
    """Short message suitable for a stage detail; full detail belongs in the log."""
    if isinstance(exc, ModelRefusal):
        return exc.detail
    if isinstance(exc, MissingCredential):
        return "API key missing or rejected. Select a valid key and run again."
    message = str(exc) or exc.__class__.__name__
    if len(message) > _MAX_DISPLAY_CHARS:
        return "Generation failed: check logs for details"
    return message

"""Core contracts and helpers."""

from .contracts import (
    ComposedPayload,
    GeneratedArtifact,
    GenerationRequest,
    LandingPosition,
    MediaInput,
    OutputSpec,
    OutputType,
    PosterResult,
    ProcessingStage,
    Scenario,
    StageId,
    StageStatus,
    TextMode,
)

__all__ = [
    "ComposedPayload",
    "GeneratedArtifact",
    "GenerationRequest",
    "LandingPosition",
    "MediaInput",
    "OutputSpec",
    "OutputType",
    "PosterResult",
    "ProcessingStage",
    "Scenario",
    "StageId",
    "StageStatus",
    "TextMode",
]

"""CineMorph public surface."""

from .api import analyze, build_request, generate, refine, save_artifact
from .assistant import Assistant
from .core import (
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
from .core.errors import (
    BackendError,
    CineMorphError,
    EmptyResponse,
    InvalidRequest,
    MissingCredential,
    ModelRefusal,
    PipelineBusy,
    StageTransitionError,
)
from .studio import Studio

__all__ = [
    "analyze",
    "build_request",
    "generate",
    "refine",
    "save_artifact",
    "Assistant",
    "Studio",
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
    "BackendError",
    "CineMorphError",
    "EmptyResponse",
    "InvalidRequest",
    "MissingCredential",
    "ModelRefusal",
    "PipelineBusy",
    "StageTransitionError",
]

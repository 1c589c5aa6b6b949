"""Core data contracts for CineMorph."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")


class OutputType(str, Enum):
    SQUARE_FEED = "square-feed"
    VERTICAL_STORY = "vertical-story"
    LANDING_HERO = "landing-hero"
    LANDING_MOBILE = "landing-mobile"
    THUMBNAIL = "thumbnail"

    @classmethod
    def parse(cls, value: "OutputType | str | None") -> "OutputType":
        """Normalize a user or legacy output-type name; unknown names fall back to square feed."""
        if isinstance(value, OutputType):
            return value
        if not value:
            return cls.SQUARE_FEED
        slug = _slug(str(value))
        return _OUTPUT_TYPE_ALIASES.get(slug, cls.SQUARE_FEED)

    @property
    def is_landing(self) -> bool:
        return self in {OutputType.LANDING_HERO, OutputType.LANDING_MOBILE}


_OUTPUT_TYPE_ALIASES: Dict[str, OutputType] = {
    "square-feed": OutputType.SQUARE_FEED,
    "square": OutputType.SQUARE_FEED,
    "feed": OutputType.SQUARE_FEED,
    "ad-feed": OutputType.SQUARE_FEED,
    "vertical-story": OutputType.VERTICAL_STORY,
    "story": OutputType.VERTICAL_STORY,
    "stories": OutputType.VERTICAL_STORY,
    "ad-stories": OutputType.VERTICAL_STORY,
    "landing-hero": OutputType.LANDING_HERO,
    "hero": OutputType.LANDING_HERO,
    "landing-mobile": OutputType.LANDING_MOBILE,
    "mobile": OutputType.LANDING_MOBILE,
    "thumbnail": OutputType.THUMBNAIL,
    "youtube-thumbnail": OutputType.THUMBNAIL,
}


class LandingPosition(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    TOP = "top"
    BOTTOM = "bottom"

    @classmethod
    def parse(cls, value: "LandingPosition | str | None") -> "LandingPosition":
        if isinstance(value, LandingPosition):
            return value
        if not value:
            return cls.CENTER
        try:
            return cls(_slug(str(value)))
        except ValueError:
            return cls.CENTER

    @property
    def is_horizontal(self) -> bool:
        return self in {LandingPosition.LEFT, LandingPosition.CENTER, LandingPosition.RIGHT}


class TextMode(str, Enum):
    CLEAN = "clean"
    MOCKUP = "mockup"
    CUSTOM = "custom"


class Scenario(str, Enum):
    IDENTITY_TRANSFER = "identity-transfer"
    GENERATIVE_PLACEMENT = "generative-placement"
    GUIDED_REIMAGINATION = "guided-reimagination"
    PURE_SYNTHESIS = "pure-synthesis"


class StageStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class StageId(str, Enum):
    ANALYSIS = "analysis"
    POSE_MAPPING = "pose-mapping"
    RELIGHTING = "relighting"
    COMPOSITING = "compositing"
    FINAL_RENDER = "final-render"


@dataclass(frozen=True)
class OutputSpec:
    output_type: OutputType = OutputType.SQUARE_FEED
    landing_position: LandingPosition = LandingPosition.CENTER


@dataclass(frozen=True)
class MediaInput:
    data: bytes
    mime_type: str = "image/png"
    name: Optional[str] = None

    def __repr__(self) -> str:
        return f"MediaInput(name={self.name!r}, mime_type={self.mime_type!r}, bytes={len(self.data)})"


@dataclass
class GenerationRequest:
    spec: OutputSpec = field(default_factory=OutputSpec)
    subject_image: Optional[MediaInput] = None
    reference_image: Optional[MediaInput] = None
    analysis_context: Optional[str] = None
    text_mode: TextMode = TextMode.CLEAN
    custom_text: str = ""
    creative_brief: str = ""

    @property
    def brief(self) -> str:
        return (self.creative_brief or "").strip()


@dataclass(frozen=True)
class InstructionSegment:
    kind: str
    text: str


@dataclass(frozen=True)
class ComposedPayload:
    """Ordered media parts followed by exactly one instruction text."""

    scenario: Optional[Scenario]
    media: Tuple[MediaInput, ...]
    segments: Tuple[InstructionSegment, ...]
    aspect_ratio: str

    @property
    def instruction(self) -> str:
        return "\n\n".join(segment.text for segment in self.segments)

    def segment_kinds(self) -> Tuple[str, ...]:
        return tuple(segment.kind for segment in self.segments)


@dataclass(frozen=True)
class RenderConfig:
    aspect_ratio: str
    image_size: str = "4K"


@dataclass(frozen=True)
class GeneratedArtifact:
    data: bytes
    mime_type: str
    data_uri: str
    created_at: datetime
    width: Optional[int] = None
    height: Optional[int] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return (
            f"GeneratedArtifact(mime_type={self.mime_type!r}, bytes={len(self.data)}, "
            f"size={self.width}x{self.height}, created_at={self.created_at.isoformat()})"
        )


@dataclass(frozen=True)
class ProcessingStage:
    id: StageId
    name: str
    status: StageStatus = StageStatus.PENDING
    details: Optional[str] = None


@dataclass(frozen=True)
class ChatTurn:
    role: str
    text: str


@dataclass
class PosterResult:
    artifact: GeneratedArtifact
    image_path: Path
    receipt_path: Path
    scenario: Optional[Scenario] = None
    stages: Tuple[ProcessingStage, ...] = ()

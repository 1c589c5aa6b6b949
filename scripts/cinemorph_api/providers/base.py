"""Backend capability interfaces."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol, Sequence

from cinemorph_api.core.contracts import ChatTurn, MediaInput, RenderConfig


@dataclass(frozen=True)
class BackendPart:
    text: Optional[str] = None
    data: Optional[bytes] = None
    mime_type: Optional[str] = None

    @property
    def has_image(self) -> bool:
        return bool(self.data)

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())


@dataclass
class BackendResponse:
    parts: Sequence[BackendPart] = ()
    model: Optional[str] = None
    usage: Optional[Mapping[str, Any]] = None
    raw_request: Mapping[str, Any] = field(default_factory=dict)
    raw_response: Mapping[str, Any] = field(default_factory=dict)


class GenerationBackend(Protocol):
    """Accepts ordered media parts plus one instruction text."""

    name: str

    def generate(
        self,
        media: Sequence[MediaInput],
        instruction: str,
        config: RenderConfig,
    ) -> BackendResponse:
        ...


class AnalysisBackend(Protocol):
    name: str

    def analyze(self, image: MediaInput, instruction: str) -> str:
        ...


class AssistantBackend(Protocol):
    name: str

    def reply(
        self,
        history: Sequence[ChatTurn],
        message: str,
        system_instruction: str,
    ) -> str:
        ...


class Backend(GenerationBackend, AnalysisBackend, AssistantBackend, Protocol):
    pass

"""Clients that send composed payloads to a backend and interpret the reply."""

from __future__ import annotations

import logging
from typing import Optional

from cinemorph_api.core import config as settings
from cinemorph_api.core.composer import compose_refinement
from cinemorph_api.core.contracts import (
    ComposedPayload,
    GeneratedArtifact,
    MediaInput,
    OutputType,
    RenderConfig,
)
from cinemorph_api.core.credentials import CredentialProvider
from cinemorph_api.core.errors import (
    BackendError,
    CineMorphError,
    EmptyResponse,
    InvalidRequest,
    MissingCredential,
    ModelRefusal,
)
from cinemorph_api.core.formats import refinement_aspect_ratio
from cinemorph_api.core.utils import build_artifact
from cinemorph_api.providers.base import AnalysisBackend, BackendResponse, GenerationBackend


logger = logging.getLogger(__name__)

ANALYSIS_INSTRUCTION = """Act as a Technical Director for VFX. Analyze this image for a compositing task.
Return a structured report covering:
1. CAMERA: Estimated focal length (e.g. 35mm, 85mm), depth of field.
2. LIGHTING: Direction (clock face), hardness (softbox vs hard sunlight), color temperature (Kelvin), key:fill ratio.
3. PERSPECTIVE: Horizon line height, camera angle (high/low/eye-level).
4. TEXTURE: Grain structure, specularity of skin and surfaces.

Keep it concise but highly technical."""


def interpret_response(
    response: BackendResponse,
    *,
    provider: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> GeneratedArtifact:
    """Turn a backend reply into an artifact.

    The first image-bearing part wins. A reply with text only is a refusal,
    and a reply with neither is empty. The backend's request and response
    summaries travel in the artifact metadata so receipts can record them.
    """
    for part in response.parts:
        if part.has_image:
            return build_artifact(
                part.data,
                part.mime_type,
                provider=provider,
                model=response.model,
                metadata={
                    **(metadata or {}),
                    "provider_request": dict(response.raw_request),
                    "provider_response": dict(response.raw_response),
                    "usage": dict(response.usage) if response.usage else None,
                },
            )
    for part in response.parts:
        if part.has_text:
            raise ModelRefusal(part.text)
    raise EmptyResponse("No image data returned.")


def _call_backend(backend: GenerationBackend, payload_media, instruction: str, config: RenderConfig) -> BackendResponse:
    try:
        return backend.generate(payload_media, instruction, config)
    except CineMorphError:
        raise
    except Exception as exc:
        raise BackendError(str(exc) or exc.__class__.__name__) from exc


class GenerationClient:
    def __init__(
        self,
        backend: GenerationBackend,
        credentials: CredentialProvider,
        image_size: Optional[str] = None,
    ) -> None:
        self.backend = backend
        self.credentials = credentials
        self.image_size = image_size

    def generate(self, payload: ComposedPayload, aspect_ratio: Optional[str] = None) -> GeneratedArtifact:
        if not self.credentials.has_credential():
            raise MissingCredential(f"No API key configured for {self.backend.name}.")
        ratio = aspect_ratio or payload.aspect_ratio
        config = RenderConfig(aspect_ratio=ratio, image_size=self.image_size or settings.image_size())
        logger.info(
            "Sending %s payload to %s (%d media part(s), %s)",
            payload.scenario.value if payload.scenario else "custom",
            self.backend.name,
            len(payload.media),
            ratio,
        )
        response = _call_backend(self.backend, payload.media, payload.instruction, config)
        return interpret_response(
            response,
            provider=self.backend.name,
            metadata={
                "scenario": payload.scenario.value if payload.scenario else None,
                "aspect_ratio": ratio,
                "image_size": config.image_size,
            },
        )


class RefinementClient:
    def __init__(self, backend: GenerationBackend, image_size: Optional[str] = None) -> None:
        self.backend = backend
        self.image_size = image_size

    def refine(
        self,
        artifact: GeneratedArtifact,
        instruction: str,
        output_type: OutputType | str | None,
    ) -> GeneratedArtifact:
        if not (instruction or "").strip():
            raise InvalidRequest("Refinement instruction is empty.")
        ratio = refinement_aspect_ratio(output_type)
        size = self.image_size or settings.image_size()
        config = RenderConfig(aspect_ratio=ratio, image_size=size)
        source = MediaInput(data=artifact.data, mime_type=artifact.mime_type, name="current")
        logger.info("Refining artifact via %s (%s)", self.backend.name, ratio)
        response = _call_backend(self.backend, (source,), compose_refinement(instruction, ratio, size), config)
        return interpret_response(
            response,
            provider=self.backend.name,
            metadata={"refinement": instruction.strip(), "aspect_ratio": ratio, "image_size": size},
        )


class AnalysisClient:
    def __init__(self, backend: AnalysisBackend) -> None:
        self.backend = backend

    def analyze(self, image: MediaInput) -> Optional[str]:
        """Technical notes for a reference image, or ``None`` when analysis is unavailable."""
        try:
            text = self.backend.analyze(image, ANALYSIS_INSTRUCTION)
        except Exception:
            logger.warning("Reference analysis failed; continuing without context", exc_info=True)
            return None
        text = (text or "").strip()
        return text or None

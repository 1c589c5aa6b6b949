"""Public API for CineMorph."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple, Union

from cinemorph_api.clients import AnalysisClient, RefinementClient
from cinemorph_api.core.contracts import (
    ComposedPayload,
    GeneratedArtifact,
    GenerationRequest,
    LandingPosition,
    OutputSpec,
    OutputType,
    PosterResult,
)
from cinemorph_api.core.credentials import credentials_for
from cinemorph_api.core.errors import MissingCredential
from cinemorph_api.core.overlay import text_mode_for
from cinemorph_api.core.receipts import build_receipt, write_receipt
from cinemorph_api.core.router import resolve_provider
from cinemorph_api.core.utils import (
    MediaSource,
    artifact_from_data_uri,
    artifact_from_path,
    build_artifact,
    ensure_out_dir,
    extension_from_mime,
    read_media,
    read_media_pair,
    utc_timestamp,
)
from cinemorph_api.providers import get_backend
from cinemorph_api.studio import Studio


ArtifactSource = Union[GeneratedArtifact, str, Path, bytes]


def build_request(
    *,
    subject: Optional[MediaSource] = None,
    reference: Optional[MediaSource] = None,
    brief: str = "",
    output_type: OutputType | str = OutputType.SQUARE_FEED,
    landing_position: LandingPosition | str = LandingPosition.CENTER,
    preserve_text: bool = False,
    custom_text: str = "",
    analysis_context: Optional[str] = None,
) -> GenerationRequest:
    subject_media, reference_media = read_media_pair(subject, reference)
    return GenerationRequest(
        spec=OutputSpec(
            output_type=OutputType.parse(output_type),
            landing_position=LandingPosition.parse(landing_position),
        ),
        subject_image=subject_media,
        reference_image=reference_media,
        analysis_context=analysis_context,
        text_mode=text_mode_for(preserve_text, custom_text),
        custom_text=(custom_text or "").strip(),
        creative_brief=brief or "",
    )


def save_artifact(
    artifact: GeneratedArtifact,
    out_dir: Path,
    *,
    prefix: str = "poster",
    request: Optional[GenerationRequest] = None,
    payload: Optional[ComposedPayload] = None,
    refinement: Optional[str] = None,
) -> Tuple[Path, Path]:
    stamp = utc_timestamp()
    base = f"{prefix}-{stamp}"
    image_path = out_dir / f"{base}.{extension_from_mime(artifact.mime_type)}"
    counter = 1
    while image_path.exists():
        base = f"{prefix}-{stamp}-{counter:02d}"
        image_path = out_dir / f"{base}.{extension_from_mime(artifact.mime_type)}"
        counter += 1
    image_path.write_bytes(artifact.data)
    receipt_path = out_dir / f"receipt-{base}.json"
    write_receipt(
        receipt_path,
        build_receipt(
            artifact=artifact,
            image_path=image_path,
            receipt_path=receipt_path,
            request=request,
            payload=payload,
            refinement=refinement,
        ),
    )
    return image_path, receipt_path


def _coerce_artifact(image: ArtifactSource) -> GeneratedArtifact:
    if isinstance(image, GeneratedArtifact):
        return image
    if isinstance(image, str) and image.startswith("data:"):
        return artifact_from_data_uri(image)
    if isinstance(image, bytes):
        media = read_media(image)
        return build_artifact(media.data, media.mime_type)
    return artifact_from_path(image)


def generate(
    *,
    subject: Optional[MediaSource] = None,
    reference: Optional[MediaSource] = None,
    brief: str = "",
    output_type: OutputType | str = OutputType.SQUARE_FEED,
    landing_position: LandingPosition | str = LandingPosition.CENTER,
    preserve_text: bool = False,
    custom_text: str = "",
    analysis_context: Optional[str] = None,
    analyze: bool = True,
    provider: Optional[str] = None,
    image_size: Optional[str] = None,
    out_dir: Optional[str | Path] = None,
) -> PosterResult:
    request = build_request(
        subject=subject,
        reference=reference,
        brief=brief,
        output_type=output_type,
        landing_position=landing_position,
        preserve_text=preserve_text,
        custom_text=custom_text,
        analysis_context=analysis_context,
    )
    studio = Studio(provider=provider, image_size=image_size, auto_analyze=analyze)
    artifact = studio.generate(request, allow_credential_refresh=False)
    out_path = ensure_out_dir(Path(out_dir) if out_dir else None)
    image_path, receipt_path = save_artifact(
        artifact,
        out_path,
        prefix=studio.provider,
        request=request,
        payload=studio.last_payload,
    )
    return PosterResult(
        artifact=artifact,
        image_path=image_path,
        receipt_path=receipt_path,
        scenario=studio.last_payload.scenario if studio.last_payload else None,
        stages=studio.stages,
    )


def refine(
    *,
    image: ArtifactSource,
    instruction: str,
    output_type: OutputType | str = OutputType.SQUARE_FEED,
    provider: Optional[str] = None,
    image_size: Optional[str] = None,
    out_dir: Optional[str | Path] = None,
) -> PosterResult:
    resolved_provider = resolve_provider(provider)
    if not credentials_for(resolved_provider).has_credential():
        raise MissingCredential(f"No API key configured for {resolved_provider}.")
    artifact = _coerce_artifact(image)
    client = RefinementClient(get_backend(resolved_provider), image_size)
    refined = client.refine(artifact, instruction, output_type)
    out_path = ensure_out_dir(Path(out_dir) if out_dir else None)
    image_path, receipt_path = save_artifact(
        refined,
        out_path,
        prefix=f"{resolved_provider}-refined",
        refinement=instruction.strip(),
    )
    return PosterResult(artifact=refined, image_path=image_path, receipt_path=receipt_path)


def analyze(*, image: MediaSource, provider: Optional[str] = None) -> Optional[str]:
    media = read_media(image, "reference")
    resolved_provider = resolve_provider(provider)
    if not credentials_for(resolved_provider).has_credential():
        return None
    return AnalysisClient(get_backend(resolved_provider)).analyze(media)

"""Session orchestration: the pipeline wrapped around the backend clients."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Iterator, Optional, Sequence

from cinemorph_api.clients import AnalysisClient, GenerationClient, RefinementClient
from cinemorph_api.core import config as settings
from cinemorph_api.core.composer import compose
from cinemorph_api.core.contracts import (
    ComposedPayload,
    GeneratedArtifact,
    GenerationRequest,
    MediaInput,
    OutputType,
    ProcessingStage,
    StageId,
    StageStatus,
)
from cinemorph_api.core.credentials import CredentialProvider, credentials_for
from cinemorph_api.core.errors import InvalidRequest, MissingCredential, ModelRefusal, PipelineBusy, user_message
from cinemorph_api.core.pipeline import STAGE_PROGRESS, Pipeline, StageListener
from cinemorph_api.core.router import resolve_provider
from cinemorph_api.core.scenarios import select_scenario
from cinemorph_api.core.utils import media_digest
from cinemorph_api.providers import Backend, get_backend


logger = logging.getLogger(__name__)

ANALYSIS_DONE = "Lighting topology mapped"
ANALYSIS_SKIPPED = "Analysis skipped (auto-mode)"
FAST_SEGMENTATION = "Using fast segmentation"


class Studio:
    """One user session.

    Holds the stage list, the cached reference analysis and the current
    artifact. At most one generation or refinement runs at a time; a failed
    attempt never replaces the last good artifact.
    """

    def __init__(
        self,
        backend: Optional[Backend] = None,
        *,
        provider: Optional[str] = None,
        credentials: Optional[CredentialProvider] = None,
        image_size: Optional[str] = None,
        auto_analyze: bool = True,
        listeners: Optional[Sequence[StageListener]] = None,
    ) -> None:
        if backend is None:
            provider = resolve_provider(provider)
            backend = get_backend(provider)
        self.provider = backend.name
        self.backend = backend
        self.credentials = credentials or credentials_for(self.provider)
        self.image_size = image_size or settings.image_size()
        self.auto_analyze = auto_analyze
        self.pipeline = Pipeline(listeners)
        self.generation_client = GenerationClient(backend, self.credentials, self.image_size)
        self.refinement_client = RefinementClient(backend, self.image_size)
        self.analysis_client = AnalysisClient(backend)
        self.output_type = OutputType.SQUARE_FEED
        self.last_payload: Optional[ComposedPayload] = None
        self._artifact: Optional[GeneratedArtifact] = None
        self._analysis_digest: Optional[str] = None
        self._analysis_text: Optional[str] = None
        self._busy = threading.Lock()

    @property
    def artifact(self) -> Optional[GeneratedArtifact]:
        return self._artifact

    @property
    def analysis_text(self) -> Optional[str]:
        return self._analysis_text

    @property
    def stages(self) -> tuple[ProcessingStage, ...]:
        return self.pipeline.stages

    @contextmanager
    def _exclusive(self, action: str) -> Iterator[None]:
        if not self._busy.acquire(blocking=False):
            raise PipelineBusy(f"Cannot {action} while another operation is in flight.")
        try:
            yield
        finally:
            self._busy.release()

    def analyze_reference(self, reference: MediaInput) -> Optional[str]:
        with self._exclusive("analyze"):
            self.pipeline.begin_analysis()
            return self._run_analysis(reference)

    def _run_analysis(self, reference: MediaInput) -> Optional[str]:
        text = self.analysis_client.analyze(reference)
        self._analysis_digest = media_digest(reference)
        self._analysis_text = text
        self.pipeline.complete(StageId.ANALYSIS, ANALYSIS_DONE if text else ANALYSIS_SKIPPED)
        return text

    def generate(self, request: GenerationRequest, *, allow_credential_refresh: bool = True) -> GeneratedArtifact:
        select_scenario(request)
        with self._exclusive("generate"):
            refreshed = False
            while True:
                try:
                    return self._generation_pass(request)
                except MissingCredential:
                    if refreshed or not allow_credential_refresh:
                        raise
                    refreshed = True
                    logger.warning("Credential missing or rejected; asking for a new one")
                    if not self.credentials.request_credential():
                        raise
                    logger.info("Credential refreshed; restarting generation from the first stage")

    def _analysis_is_cached(self, reference: Optional[MediaInput]) -> bool:
        return (
            reference is not None
            and self._analysis_text is not None
            and media_digest(reference) == self._analysis_digest
        )

    def _prepare_analysis(self, request: GenerationRequest) -> Optional[str]:
        reference = request.reference_image
        cached = self._analysis_is_cached(reference)
        self.pipeline.reset_for_generation(keep_analysis=cached)
        context = request.analysis_context or (self._analysis_text if cached else None)
        if self.pipeline.status(StageId.ANALYSIS) == StageStatus.COMPLETED:
            return context
        if cached:
            self.pipeline.skip(StageId.ANALYSIS, ANALYSIS_DONE)
            return context
        attempted = reference is not None and media_digest(reference) == self._analysis_digest
        if (
            reference is not None
            and context is None
            and self.auto_analyze
            and not attempted
            and self.credentials.has_credential()
        ):
            self.pipeline.start(StageId.ANALYSIS, STAGE_PROGRESS[StageId.ANALYSIS])
            return self._run_analysis(reference)
        self.pipeline.skip(StageId.ANALYSIS, ANALYSIS_SKIPPED if attempted else FAST_SEGMENTATION)
        return context

    def _generation_pass(self, request: GenerationRequest) -> GeneratedArtifact:
        logger.info(
            "Generating with mode: subject=%s, reference=%s, brief=%s",
            request.subject_image is not None,
            request.reference_image is not None,
            bool(request.brief),
        )
        context = self._prepare_analysis(request)
        payload = compose(replace(request, analysis_context=context), image_size=self.image_size)

        for stage_id in (StageId.POSE_MAPPING, StageId.RELIGHTING, StageId.COMPOSITING):
            self.pipeline.advance(stage_id)

        self.pipeline.start(StageId.FINAL_RENDER, STAGE_PROGRESS[StageId.FINAL_RENDER])
        try:
            artifact = self.generation_client.generate(payload)
        except Exception as exc:
            logger.error("Generation failed (%s): %s", exc.__class__.__name__, exc)
            self.pipeline.fail(StageId.FINAL_RENDER, user_message(exc))
            raise
        self._artifact = artifact
        self.last_payload = payload
        self.output_type = request.spec.output_type
        self.pipeline.complete(StageId.FINAL_RENDER, "Render finished")
        return artifact

    def refine(self, instruction: str, output_type: OutputType | str | None = None) -> GeneratedArtifact:
        if self._artifact is None:
            raise InvalidRequest("Nothing to refine yet; generate an image first.")
        if not (instruction or "").strip():
            raise InvalidRequest("Refinement instruction is empty.")
        with self._exclusive("refine"):
            snapshot = self._artifact
            kind = OutputType.parse(output_type) if output_type else self.output_type
            self.pipeline.begin_refinement("Applying magic fix...")
            try:
                refined = self.refinement_client.refine(snapshot, instruction, kind)
            except Exception as exc:
                logger.error("Refinement failed (%s): %s", exc.__class__.__name__, exc)
                detail = user_message(exc) if isinstance(exc, ModelRefusal) else "Refinement failed. Try again."
                self.pipeline.fail(StageId.FINAL_RENDER, detail)
                raise
            self._artifact = refined
            self.pipeline.complete(StageId.FINAL_RENDER, "Refinement applied successfully")
            return refined

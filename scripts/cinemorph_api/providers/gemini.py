"""Gemini backend (google-genai)."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

try:
    from google import genai  # type: ignore
    from google.genai import types  # type: ignore
except Exception:  # pragma: no cover
    genai = None  # type: ignore
    types = None  # type: ignore

from cinemorph_api.core import config as settings
from cinemorph_api.core.contracts import ChatTurn, MediaInput, RenderConfig
from cinemorph_api.core.credentials import api_key_for
from cinemorph_api.core.errors import BackendError, MissingCredential
from .base import BackendPart, BackendResponse


logger = logging.getLogger(__name__)

_CREDENTIAL_MARKERS = (
    "requested entity was not found",
    "api key not valid",
    "api_key_invalid",
    "permission denied",
)

_GENAI_CLIENT: Optional["genai.Client"] = None
_GENAI_CLIENT_KEY: Optional[str] = None


def _client() -> "genai.Client":
    global _GENAI_CLIENT, _GENAI_CLIENT_KEY
    api_key = api_key_for("gemini")
    if not api_key:
        raise MissingCredential("GEMINI_API_KEY, GOOGLE_API_KEY or API_KEY not set.")
    if genai is None:
        raise BackendError("google-genai package not installed. Run: pip install google-genai")
    # The key can be refreshed mid-session; rebuild the client when it changes.
    if _GENAI_CLIENT is None or _GENAI_CLIENT_KEY != api_key:
        _GENAI_CLIENT = genai.Client(api_key=api_key)
        _GENAI_CLIENT_KEY = api_key
    return _GENAI_CLIENT


def _extract_status_code(exc: Exception) -> Optional[int]:
    for attr in ("code", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def _translate_error(exc: Exception) -> Exception:
    status = _extract_status_code(exc)
    message = str(exc) or exc.__class__.__name__
    lowered = message.lower()
    if status in {401, 403} or any(marker in lowered for marker in _CREDENTIAL_MARKERS):
        return MissingCredential(message)
    return BackendError(message, status_code=status)


def _media_part(media: MediaInput) -> "types.Part":
    return types.Part(inline_data=types.Blob(data=media.data, mime_type=media.mime_type))


def _build_image_config(config_: RenderConfig) -> "types.GenerateContentConfig":
    image_config_kwargs: Dict[str, Any] = {"aspect_ratio": config_.aspect_ratio}
    if config_.image_size:
        image_config_kwargs["image_size"] = config_.image_size
    return types.GenerateContentConfig(
        response_modalities=["TEXT", "IMAGE"],
        image_config=types.ImageConfig(**image_config_kwargs),
    )


def _first_candidate_parts(response: Any) -> List[BackendPart]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    candidate = candidates[0]
    content = getattr(candidate, "content", None)
    raw_parts = getattr(content, "parts", None) or []
    parts: List[BackendPart] = []
    for part in raw_parts:
        inline_data = getattr(part, "inline_data", None)
        data = getattr(inline_data, "data", None) if inline_data is not None else None
        if data:
            if isinstance(data, str):
                data = data.encode("latin1")
            parts.append(BackendPart(data=data, mime_type=getattr(inline_data, "mime_type", None)))
            continue
        text = getattr(part, "text", None)
        if text:
            parts.append(BackendPart(text=text))
    return parts


class GeminiBackend:
    name = "gemini"

    def __init__(self, image_model: Optional[str] = None, text_model: Optional[str] = None) -> None:
        self._image_model = image_model
        self._text_model = text_model

    @property
    def image_model(self) -> str:
        return self._image_model or settings.gemini_image_model()

    @property
    def text_model(self) -> str:
        return self._text_model or settings.gemini_text_model()

    def generate(
        self,
        media: Sequence[MediaInput],
        instruction: str,
        config: RenderConfig,
    ) -> BackendResponse:
        client = _client()
        model = self.image_model
        parts = [_media_part(item) for item in media]
        parts.append(types.Part(text=instruction))
        content_config = _build_image_config(config)
        raw_request = {
            "model": model,
            "media": [{"mime_type": item.mime_type, "bytes": len(item.data)} for item in media],
            "instruction": instruction,
            "aspect_ratio": config.aspect_ratio,
            "image_size": config.image_size,
        }
        try:
            response = client.models.generate_content(
                model=model,
                contents=[types.Content(role="user", parts=parts)],
                config=content_config,
            )
        except Exception as exc:
            logger.exception("Gemini generation request failed")
            raise _translate_error(exc) from exc

        usage = getattr(response, "usage_metadata", None)
        candidates = getattr(response, "candidates", None) or []
        return BackendResponse(
            parts=_first_candidate_parts(response),
            model=model,
            usage=usage.model_dump() if hasattr(usage, "model_dump") else None,
            raw_request=raw_request,
            raw_response={
                "model": model,
                "candidates": len(candidates),
                "finish_reason": str(getattr(candidates[0], "finish_reason", None)) if candidates else None,
            },
        )

    def analyze(self, image: MediaInput, instruction: str) -> str:
        client = _client()
        try:
            response = client.models.generate_content(
                model=self.text_model,
                contents=[types.Content(role="user", parts=[_media_part(image), types.Part(text=instruction)])],
            )
        except Exception as exc:
            raise _translate_error(exc) from exc
        return (getattr(response, "text", None) or "").strip()

    def reply(self, history: Sequence[ChatTurn], message: str, system_instruction: str) -> str:
        client = _client()
        contents = [
            types.Content(role=turn.role, parts=[types.Part(text=turn.text)])
            for turn in history
        ]
        try:
            chat = client.chats.create(
                model=self.text_model,
                history=contents,
                config=types.GenerateContentConfig(system_instruction=system_instruction),
            )
            response = chat.send_message(message)
        except Exception as exc:
            raise _translate_error(exc) from exc
        return (getattr(response, "text", None) or "").strip()

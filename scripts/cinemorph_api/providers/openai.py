"""OpenAI backend."""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional, Sequence

try:
    import openai  # type: ignore
except Exception:  # pragma: no cover
    openai = None  # type: ignore

from cinemorph_api.core import config as settings
from cinemorph_api.core.contracts import ChatTurn, MediaInput, RenderConfig
from cinemorph_api.core.credentials import api_key_for
from cinemorph_api.core.errors import BackendError, MissingCredential
from cinemorph_api.core.utils import encode_data_uri, extension_from_mime
from .base import BackendPart, BackendResponse


logger = logging.getLogger(__name__)

_SIZES_BY_RATIO: Dict[str, str] = {
    "1:1": "1024x1024",
    "9:16": "1024x1536",
    "16:9": "1536x1024",
}

_MODERATION_CODES = {"moderation_blocked", "content_policy_violation"}


def _client() -> "openai.OpenAI":
    api_key = api_key_for("openai")
    if not api_key:
        raise MissingCredential("OPENAI_API_KEY not set.")
    if openai is None:
        raise BackendError("openai package not installed. Run: pip install openai")
    return openai.OpenAI(api_key=api_key)


def _size_for(aspect_ratio: str) -> str:
    return _SIZES_BY_RATIO.get(aspect_ratio, "1024x1024")


def _translate_error(exc: Exception) -> Exception:
    status = getattr(exc, "status_code", None)
    message = str(exc) or exc.__class__.__name__
    if openai is not None and isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return MissingCredential(message)
    return BackendError(message, status_code=status if isinstance(status, int) else None)


def _is_moderation_block(exc: Exception) -> bool:
    if openai is None or not isinstance(exc, openai.BadRequestError):
        return False
    return getattr(exc, "code", None) in _MODERATION_CODES


def _file_tuple(index: int, media: MediaInput) -> tuple:
    ext = extension_from_mime(media.mime_type)
    return (media.name or f"image_{index + 1}.{ext}", media.data, media.mime_type)


class OpenAIBackend:
    name = "openai"

    def __init__(self, image_model: Optional[str] = None, text_model: Optional[str] = None) -> None:
        self._image_model = image_model
        self._text_model = text_model

    @property
    def image_model(self) -> str:
        return self._image_model or settings.openai_image_model()

    @property
    def text_model(self) -> str:
        return self._text_model or settings.openai_text_model()

    def generate(
        self,
        media: Sequence[MediaInput],
        instruction: str,
        config: RenderConfig,
    ) -> BackendResponse:
        client = _client()
        model = self.image_model
        size = _size_for(config.aspect_ratio)
        kwargs: Dict[str, Any] = {
            "model": model,
            "prompt": instruction,
            "size": size,
            "quality": "high",
            "n": 1,
        }
        raw_request = {
            "model": model,
            "size": size,
            "media": [{"mime_type": item.mime_type, "bytes": len(item.data)} for item in media],
            "instruction": instruction,
        }
        try:
            if media:
                # Image order is preserved; the first image is the base plate.
                response = client.images.edit(
                    image=[_file_tuple(idx, item) for idx, item in enumerate(media)],
                    **kwargs,
                )
            else:
                response = client.images.generate(**kwargs)
        except Exception as exc:
            if _is_moderation_block(exc):
                return BackendResponse(
                    parts=[BackendPart(text=str(exc))],
                    model=model,
                    raw_request=raw_request,
                    raw_response={"moderation": True},
                )
            logger.exception("OpenAI image request failed")
            raise _translate_error(exc) from exc

        parts: List[BackendPart] = []
        for item in getattr(response, "data", None) or []:
            b64 = getattr(item, "b64_json", None)
            if b64:
                parts.append(BackendPart(data=base64.b64decode(b64), mime_type="image/png"))
            revised = getattr(item, "revised_prompt", None)
            if revised and not b64:
                parts.append(BackendPart(text=revised))
        usage = getattr(response, "usage", None)
        return BackendResponse(
            parts=parts,
            model=model,
            usage=usage.model_dump() if hasattr(usage, "model_dump") else None,
            raw_request=raw_request,
            raw_response={"model": model, "images": len(parts)},
        )

    def analyze(self, image: MediaInput, instruction: str) -> str:
        client = _client()
        try:
            response = client.chat.completions.create(
                model=self.text_model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": instruction},
                            {
                                "type": "image_url",
                                "image_url": {"url": encode_data_uri(image.data, image.mime_type)},
                            },
                        ],
                    }
                ],
            )
        except Exception as exc:
            raise _translate_error(exc) from exc
        return (response.choices[0].message.content or "").strip()

    def reply(self, history: Sequence[ChatTurn], message: str, system_instruction: str) -> str:
        client = _client()
        messages: List[Dict[str, str]] = [{"role": "system", "content": system_instruction}]
        for turn in history:
            messages.append({"role": "assistant" if turn.role == "model" else "user", "content": turn.text})
        messages.append({"role": "user", "content": message})
        try:
            response = client.chat.completions.create(model=self.text_model, messages=messages)
        except Exception as exc:
            raise _translate_error(exc) from exc
        return (response.choices[0].message.content or "").strip()

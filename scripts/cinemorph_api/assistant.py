"""Conversational product assistant."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from cinemorph_api.core.contracts import ChatTurn
from cinemorph_api.core.errors import BackendError, CineMorphError, InvalidRequest
from cinemorph_api.providers.base import AssistantBackend


logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are a helper for CineMorph, a marketing image generator that turns a subject photo, "
    "a layout reference and a creative brief into feed ads, stories, landing-page heroes and thumbnails."
)
WELCOME = (
    "Hello! I am your CineMorph assistant. Ask me anything about creating posters "
    "or using the platform."
)
FALLBACK_REPLY = "I couldn't generate a response."


class Assistant:
    """Stateless backend exchange over an ordered local history.

    A turn is recorded only after the backend answers, so a failed exchange
    leaves the history exactly as it was.
    """

    def __init__(
        self,
        backend: AssistantBackend,
        system_instruction: str = SYSTEM_INSTRUCTION,
        welcome: Optional[str] = WELCOME,
    ) -> None:
        self.backend = backend
        self.system_instruction = system_instruction
        self._history: List[ChatTurn] = [ChatTurn(role="model", text=welcome)] if welcome else []

    @property
    def history(self) -> Tuple[ChatTurn, ...]:
        return tuple(self._history)

    def send(self, message: str) -> str:
        text = (message or "").strip()
        if not text:
            raise InvalidRequest("Message is empty.")
        try:
            reply = self.backend.reply(self.history, text, self.system_instruction)
        except CineMorphError:
            raise
        except Exception as exc:
            logger.exception("Assistant request failed")
            raise BackendError(str(exc) or exc.__class__.__name__) from exc
        reply = (reply or "").strip() or FALLBACK_REPLY
        self._history.extend([ChatTurn(role="user", text=text), ChatTurn(role="model", text=reply)])
        return reply

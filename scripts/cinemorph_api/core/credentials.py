"""Credential provider capability backed by environment variables."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol, Sequence, Tuple


logger = logging.getLogger(__name__)

KeyPrompt = Callable[[str], Optional[str]]

PROVIDER_KEYS: Dict[str, Tuple[str, ...]] = {
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY"),
    "openai": ("OPENAI_API_KEY", "OPENAI_API_KEY_BACKUP"),
}


class CredentialProvider(Protocol):
    def has_credential(self) -> bool:
        ...

    def request_credential(self) -> bool:
        ...


def api_key_for(provider: str) -> Optional[str]:
    for key in PROVIDER_KEYS.get(provider.strip().lower(), ()):
        value = os.getenv(key)
        if value and value.strip():
            return value.strip()
    return None


def write_env_key(dotenv_path: Path, key: str, value: str) -> None:
    if not dotenv_path.parent.exists():
        dotenv_path.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = []
    if dotenv_path.exists():
        lines = dotenv_path.read_text(encoding="utf-8").splitlines()
    escaped = value.replace("\\", "\\\\").replace("\"", "\\\"")
    new_line = f'{key}="{escaped}"'
    for idx, line in enumerate(lines):
        if line.strip().startswith(f"{key}="):
            lines[idx] = new_line
            break
    else:
        lines.append(new_line)
    dotenv_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    try:
        os.chmod(dotenv_path, 0o600)
    except OSError:
        logger.warning("Could not restrict permissions on %s", dotenv_path)


class EnvCredentialProvider:
    """Reports whether a key is configured and can ask the user for one.

    ``prompt`` receives the variable name and returns the entered key, or
    ``None``/empty to decline. Without a prompt the provider never refreshes.
    """

    def __init__(
        self,
        env_keys: Sequence[str],
        prompt: Optional[KeyPrompt] = None,
        dotenv_path: Optional[Path] = None,
    ) -> None:
        if not env_keys:
            raise ValueError("At least one environment key is required.")
        self.env_keys = tuple(env_keys)
        self.prompt = prompt
        self.dotenv_path = dotenv_path

    def has_credential(self) -> bool:
        return any((os.getenv(key) or "").strip() for key in self.env_keys)

    def request_credential(self) -> bool:
        if self.prompt is None:
            return False
        key = self.env_keys[0]
        value = (self.prompt(key) or "").strip()
        if not value:
            return False
        os.environ[key] = value
        if self.dotenv_path is not None:
            write_env_key(self.dotenv_path, key, value)
            logger.info("Saved %s to %s", key, self.dotenv_path)
        return True


def credentials_for(
    provider: str,
    prompt: Optional[KeyPrompt] = None,
    dotenv_path: Optional[Path] = None,
) -> EnvCredentialProvider:
    key = provider.strip().lower()
    if key not in PROVIDER_KEYS:
        raise ValueError(f"No credentials registered for provider '{provider}'.")
    return EnvCredentialProvider(PROVIDER_KEYS[key], prompt=prompt, dotenv_path=dotenv_path)

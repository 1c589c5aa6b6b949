"""Receipt writer for CineMorph artifacts."""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Optional

from .contracts import ComposedPayload, GeneratedArtifact, GenerationRequest


_OMITTED_KEYS = {"data", "data_uri", "image", "image_bytes", "b64_json"}


def _serialize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, bytes):
        return f"<bytes:{len(value)}>"
    if is_dataclass(value):
        return {k: _serialize(v) for k, v in asdict(value).items()}
    if isinstance(value, Mapping):
        return {str(k): _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    return str(value)


def _sanitize_payload(payload: Any) -> Any:
    if payload is None:
        return None
    if isinstance(payload, (str, int, float, bool)):
        return payload
    if isinstance(payload, bytes):
        return f"<bytes:{len(payload)}>"
    if isinstance(payload, Mapping):
        sanitized: MutableMapping[str, Any] = {}
        for key, value in payload.items():
            if str(key).lower() in _OMITTED_KEYS:
                sanitized[str(key)] = "<omitted>"
                continue
            sanitized[str(key)] = _sanitize_payload(value)
        return sanitized
    if isinstance(payload, (list, tuple)):
        return [_sanitize_payload(item) for item in payload]
    return str(payload)


def build_receipt(
    *,
    artifact: GeneratedArtifact,
    image_path: Path,
    receipt_path: Path,
    request: Optional[GenerationRequest] = None,
    payload: Optional[ComposedPayload] = None,
    refinement: Optional[str] = None,
) -> dict[str, Any]:
    metadata = dict(artifact.metadata or {})
    provider_request = metadata.pop("provider_request", {})
    provider_response = metadata.pop("provider_response", {})
    usage = metadata.pop("usage", None)
    receipt: dict[str, Any] = {
        "request": _sanitize_payload(_serialize(request)),
        "provider": artifact.provider,
        "model": artifact.model,
        "provider_request": _sanitize_payload(_serialize(provider_request)),
        "provider_response": _sanitize_payload(_serialize(provider_response)),
        "usage": _sanitize_payload(_serialize(usage)),
        "artifact": _sanitize_payload(_serialize(replace(artifact, metadata=metadata))),
        "artifacts": {
            "image_path": str(image_path),
            "receipt_path": str(receipt_path),
        },
    }
    if payload is not None:
        receipt["composition"] = {
            "scenario": _serialize(payload.scenario),
            "aspect_ratio": payload.aspect_ratio,
            "media": [_sanitize_payload(_serialize(item)) for item in payload.media],
            "segments": [segment.kind for segment in payload.segments],
            "instruction": payload.instruction,
        }
    if refinement is not None:
        receipt["refinement"] = refinement
    return receipt


def write_receipt(path: Path, payload: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2)
        handle.write("\n")

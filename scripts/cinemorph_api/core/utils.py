"""Utility helpers for CineMorph."""

from __future__ import annotations

import base64
import binascii
import hashlib
import io
import mimetypes
import os
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError

from .contracts import GeneratedArtifact, MediaInput
from .errors import InvalidRequest

_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<b64>;base64)?,(?P<data>.*)$", re.DOTALL)

MediaSource = Union[str, Path, bytes, MediaInput]

DEFAULT_MIME = "image/png"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def ensure_out_dir(out_dir: Optional[Path]) -> Path:
    if out_dir is None:
        root = Path(os.getenv("CINEMORPH_OUTPUTS", "outputs"))
        out_dir = root / "cinemorph" / utc_timestamp()
    out_dir = Path(out_dir).expanduser().resolve()
    out_dir.mkdir(parents=True, exist_ok=True)
    return out_dir


def is_url(value: str) -> bool:
    return bool(_URL_RE.match(value or ""))


def mime_from_suffix(path: str | Path) -> Optional[str]:
    suffix = Path(path).suffix.lower()
    if suffix == ".png":
        return "image/png"
    if suffix in {".jpg", ".jpeg"}:
        return "image/jpeg"
    if suffix == ".webp":
        return "image/webp"
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed


def extension_from_mime(mime_type: Optional[str], fallback: str = "png") -> str:
    if mime_type:
        mime = mime_type.lower()
        if mime.endswith("/jpeg") or mime.endswith("/jpg"):
            return "jpg"
        if mime.endswith("/png"):
            return "png"
        if mime.endswith("/webp"):
            return "webp"
        if "/" in mime:
            return mime.split("/", 1)[1]
    return fallback


def sniff_mime(data: bytes) -> Optional[str]:
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def read_media(value: Optional[MediaSource], name: Optional[str] = None) -> Optional[MediaInput]:
    """Load one image input. ``None`` stays ``None`` so optional inputs pass through."""
    if value is None:
        return None
    if isinstance(value, MediaInput):
        return value
    if isinstance(value, bytes):
        data, path_str = value, None
    elif isinstance(value, (str, Path)):
        if isinstance(value, str) and is_url(value):
            raise InvalidRequest("URL inputs are not supported; download the image first.")
        path = Path(value).expanduser().resolve()
        if not path.is_file():
            raise InvalidRequest(f"Image not found: {path}")
        data, path_str = path.read_bytes(), str(path)
    else:
        raise TypeError(f"Unsupported input type: {type(value)}")
    if not data:
        raise InvalidRequest(f"Image input '{name or path_str or 'bytes'}' is empty.")
    mime_type = sniff_mime(data) or (mime_from_suffix(path_str) if path_str else None) or DEFAULT_MIME
    return MediaInput(data=data, mime_type=mime_type, name=name or (Path(path_str).name if path_str else None))


def read_media_pair(
    subject: Optional[MediaSource],
    reference: Optional[MediaSource],
) -> Tuple[Optional[MediaInput], Optional[MediaInput]]:
    """Read subject and reference side by side; both finish before this returns."""
    with ThreadPoolExecutor(max_workers=2) as pool:
        subject_future = pool.submit(read_media, subject, "subject")
        reference_future = pool.submit(read_media, reference, "reference")
        return subject_future.result(), reference_future.result()


def media_digest(media: Optional[MediaInput]) -> Optional[str]:
    if media is None:
        return None
    return hashlib.sha256(media.data).hexdigest()


def encode_data_uri(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_uri(uri: str) -> Tuple[bytes, str]:
    match = _DATA_URI_RE.match((uri or "").strip())
    if not match or not match.group("b64"):
        raise InvalidRequest("Expected a base64 data URI (data:<mime>;base64,<payload>).")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidRequest(f"Malformed base64 payload in data URI: {exc}") from exc
    return data, match.group("mime") or DEFAULT_MIME


def image_dimensions(data: bytes) -> Tuple[Optional[int], Optional[int]]:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.width, img.height
    except (UnidentifiedImageError, OSError):
        return None, None


def build_artifact(
    data: bytes,
    mime_type: Optional[str] = None,
    *,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    metadata: Optional[Mapping[str, Any]] = None,
) -> GeneratedArtifact:
    declared = mime_type or sniff_mime(data) or DEFAULT_MIME
    width, height = image_dimensions(data)
    return GeneratedArtifact(
        data=data,
        mime_type=declared,
        data_uri=encode_data_uri(data, declared),
        created_at=datetime.now(timezone.utc),
        width=width,
        height=height,
        provider=provider,
        model=model,
        metadata=dict(metadata or {}),
    )


def artifact_from_data_uri(uri: str) -> GeneratedArtifact:
    data, mime_type = decode_data_uri(uri)
    return build_artifact(data, mime_type, metadata={"source": "data-uri"})


def artifact_from_path(path: str | Path) -> GeneratedArtifact:
    media = read_media(path)
    return build_artifact(media.data, media.mime_type, metadata={"source": str(path)})

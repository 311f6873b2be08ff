"""Disk storage for mistake-notebook question images."""

from __future__ import annotations

import io
import logging
import secrets
import time
from pathlib import Path
from typing import Iterable, Optional

from PIL import Image

from ..config import settings
from ..errors import BadRequestError

_LOGGER = logging.getLogger("studytrack.uploads")

URL_PREFIX = "/uploads/"
ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif"}
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif"}
ALLOWED_FORMATS = {"JPEG", "PNG", "GIF"}


def upload_root() -> Path:
    root = settings.UPLOAD_DIR
    root.mkdir(parents=True, exist_ok=True)
    return root


def _sniff_image_format(payload: bytes) -> str:
    try:
        with Image.open(io.BytesIO(payload)) as img:
            fmt = img.format or ""
            img.verify()
    except Exception:
        raise BadRequestError("file content is not a valid image")
    return fmt


def save_question_image(payload: bytes, filename: str, content_type: Optional[str]) -> str:
    """Validate and store an uploaded image, returning its public URL.

    Extension, declared content type and the decoded image format must
    all be jpeg, png or gif.
    """
    ext = Path(filename or "").suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise BadRequestError("only jpeg, png or gif images are allowed")
    if content_type and content_type.lower() not in ALLOWED_CONTENT_TYPES:
        raise BadRequestError("only jpeg, png or gif images are allowed")
    if len(payload) > settings.MAX_UPLOAD_BYTES:
        raise BadRequestError("image too large")
    if _sniff_image_format(payload) not in ALLOWED_FORMATS:
        raise BadRequestError("only jpeg, png or gif images are allowed")
    name = f"question-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"
    (upload_root() / name).write_bytes(payload)
    _LOGGER.info("stored question image %s (%d bytes)", name, len(payload))
    return URL_PREFIX + name


def path_for_url(url: str) -> Optional[Path]:
    if not url or not url.startswith(URL_PREFIX):
        return None
    return settings.UPLOAD_DIR / Path(url).name


def delete_images(urls: Iterable[Optional[str]]) -> None:
    """Remove stored files for `urls`; missing files are ignored."""
    for url in urls:
        path = path_for_url(url) if url else None
        if path is None:
            continue
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            _LOGGER.warning("could not delete image %s: %s", path, exc)

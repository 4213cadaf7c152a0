from __future__ import annotations

import io
import logging
from pathlib import Path

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Formats accepted from disk; mirrors the upload dialog filter (png, jpg, jpeg, webp).
SUPPORTED_FORMATS = frozenset({"PNG", "JPEG", "WEBP"})
DEFAULT_MIME_TYPE = "image/jpeg"


class ImageLoadError(RuntimeError):
    """Raised when a file cannot be used as an analysis image."""


def _identify(image_bytes: bytes) -> str | None:
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            image.verify()
            return image.format
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return None


def detect_mime_type(image_bytes: bytes, default: str = DEFAULT_MIME_TYPE) -> str:
    """Best-effort MIME type for a data URL; unknown payloads get ``default``."""
    image_format = _identify(image_bytes)
    if image_format is None:
        return default
    return Image.MIME.get(image_format, default)


def load_image_bytes(path: Path) -> bytes:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ImageLoadError(f"Failed to read image {path}: {exc}") from exc

    image_format = _identify(data)
    if image_format is None:
        raise ImageLoadError(f"{path} is not a decodable image")
    if image_format not in SUPPORTED_FORMATS:
        raise ImageLoadError(
            f"{path} is a {image_format} image; supported formats are "
            + ", ".join(sorted(SUPPORTED_FORMATS))
        )
    logger.debug("Loaded image path=%s format=%s bytes=%d", path, image_format, len(data))
    return data


__all__ = [
    "DEFAULT_MIME_TYPE",
    "ImageLoadError",
    "SUPPORTED_FORMATS",
    "detect_mime_type",
    "load_image_bytes",
]

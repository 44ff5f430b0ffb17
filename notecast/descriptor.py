from __future__ import annotations

import hashlib
import io

from PIL import Image, UnidentifiedImageError

from .errors import DescriptorError
from .media import Dimensions, FileDescriptor, is_image


def _image_dimensions(data: bytes) -> tuple[Dimensions | None, str | None]:
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
            detected = Image.MIME.get(img.format or "")
    except (UnidentifiedImageError, OSError, ValueError):
        return None, None

    if width <= 0 or height <= 0:
        return None, detected
    return Dimensions(width=int(width), height=int(height)), detected


class HashingDescriptorBuilder:
    """
    Builds a FileDescriptor from raw media bytes.

    Hashes with SHA-256 and, for image content (declared or detected), reads
    the pixel dimensions with Pillow. A missing mime type is filled in from the
    detected image format when there is one.
    """

    def build(
        self, data: bytes, source_url: str, mime_type: str | None, caption: str
    ) -> FileDescriptor:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise DescriptorError(f"media bytes expected, got {type(data).__name__}")

        raw = bytes(data)
        if not raw:
            raise DescriptorError("cannot describe empty media")

        digest = hashlib.sha256(raw).hexdigest()
        mime = (mime_type or "").strip() or None

        dimensions: Dimensions | None = None
        if mime is None or is_image(mime):
            dimensions, detected = _image_dimensions(raw)
            mime = mime or detected

        return FileDescriptor(
            sha256=digest,
            size=len(raw),
            mime_type=mime,
            url=(source_url or "").strip() or None,
            caption=caption or "",
            dimensions=dimensions,
        )

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    OTHER = "other"


def is_image(content_type: str | None) -> bool:
    return (content_type or "").strip().lower().startswith("image")


def is_video(content_type: str | None) -> bool:
    return (content_type or "").strip().lower().startswith("video")


def media_kind(content_type: str | None) -> MediaKind | None:
    """Classify a content type; None when no content type is known."""
    if not (content_type or "").strip():
        return None
    if is_image(content_type):
        return MediaKind.IMAGE
    if is_video(content_type):
        return MediaKind.VIDEO
    return MediaKind.OTHER


def guess_content_type(path: str | Path) -> str | None:
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed


@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class FileDescriptor:
    """Content hash and metadata derived from media bytes."""

    sha256: str
    size: int
    mime_type: str | None = None
    url: str | None = None
    caption: str = ""
    dimensions: Dimensions | None = None

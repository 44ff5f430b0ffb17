from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .media import MediaKind, media_kind
from .servers import ServerTarget


class PipelineState(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    REMOTE_PROCESSING = "remote_processing"
    DOWNLOADING = "downloading"
    HASHING = "hashing"
    SIGNING = "signing"
    SENDING = "sending"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ProgressSnapshot:
    """What an observer sees after each stage transition."""

    generation: int
    state: PipelineState
    progress: float
    stage_label: str | None


@dataclass
class UploadSession:
    """
    Mutable state of the single in-flight upload.

    Only the pipeline writes these fields, and only from its event loop.
    `media_kind` is None exactly when no media is bound; bound media with an
    unknown content type is OTHER.
    """

    media_ref: Any = None
    content_type: str | None = None
    media_kind: MediaKind | None = None
    target: ServerTarget | None = None
    caption: str = ""
    state: PipelineState = PipelineState.IDLE
    progress: float = 0.0
    stage_label: str | None = None
    is_uploading: bool = False

    def bind_media(self, media_ref: Any, content_type: str | None) -> None:
        self.media_ref = media_ref
        self.content_type = (content_type or "").strip() or None
        self.media_kind = media_kind(self.content_type) or MediaKind.OTHER

    def clear(self, default_target: ServerTarget | None) -> None:
        self.media_ref = None
        self.content_type = None
        self.media_kind = None
        self.caption = ""
        self.target = default_target
        self.progress = 0.0
        self.stage_label = None
        self.is_uploading = False

    def snapshot(self, generation: int) -> ProgressSnapshot:
        return ProgressSnapshot(
            generation=generation,
            state=self.state,
            progress=self.progress,
            stage_label=self.stage_label,
        )

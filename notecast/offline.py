from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any

from .collaborators import UploadedMedia
from .errors import DownloadError, UploadError
from .media import guess_content_type
from .records import ContentAddressedRecord, ExternalLinkRecord, SignedRecord
from .servers import ServerTarget
from .transport import LocalFileReader

_OFFLINE_SCHEME = "offline://"


@dataclass
class OfflineMediaHost:
    """
    Network-free stand-in for a hosting server.

    `upload()` keeps the bytes in memory under a content-derived URL and
    `fetch()` serves them back, so the external-link path can run end to end
    without a network.
    """

    reader: LocalFileReader = field(default_factory=LocalFileReader)
    blobs: dict[str, bytes] = field(default_factory=dict)
    _lock: Lock = field(default_factory=Lock, repr=False)

    def upload(
        self, media_ref: Any, target: ServerTarget, *, content_type: str | None = None
    ) -> UploadedMedia:
        data = self.reader.read_bytes(media_ref)
        if not data:
            raise UploadError("refusing to host empty media")

        mime = (content_type or "").strip() or guess_content_type(str(media_ref))
        url = f"{_OFFLINE_SCHEME}{target.server}/{hashlib.sha256(data).hexdigest()}"
        with self._lock:
            self.blobs[url] = data
        return UploadedMedia(url=url, mime_type=mime)

    def fetch(self, url: str) -> bytes:
        with self._lock:
            data = self.blobs.get((url or "").strip())
        if data is None:
            raise DownloadError(f"Couldn't download {url}: not found")
        return data


class OfflineSigner:
    """
    Assigns canonical event ids without producing signatures.

    Useful for dry runs and tests; relays would reject these records.
    """

    def sign_external_link(self, record: ExternalLinkRecord) -> SignedRecord | None:
        return SignedRecord.from_unsigned(record.to_unsigned())

    def sign_content_addressed(
        self, record: ContentAddressedRecord
    ) -> tuple[SignedRecord, SignedRecord] | None:
        storage = SignedRecord.from_unsigned(record.to_unsigned())
        header = SignedRecord.from_unsigned(record.companion_for(storage))
        return storage, header


class RecordingBroadcaster:
    """Collects published records and optionally appends them to a JSONL file."""

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._lock = Lock()
        self.published: list[SignedRecord] = []

    def publish(self, record: SignedRecord, companion: SignedRecord | None = None) -> None:
        batch = [record] if companion is None else [record, companion]
        with self._lock:
            self.published.extend(batch)
            if self._path is None:
                return
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8", newline="\n") as fp:
                for item in batch:
                    fp.write(json.dumps(item.as_event(), ensure_ascii=False, sort_keys=True) + "\n")

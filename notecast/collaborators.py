from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from .media import FileDescriptor
from .records import ContentAddressedRecord, ExternalLinkRecord, SignedRecord
from .servers import ServerTarget


@dataclass(frozen=True)
class UploadedMedia:
    url: str
    mime_type: str | None = None


class MediaReader(Protocol):
    def read_bytes(self, media_ref: Any) -> bytes: ...


class UploadTransport(Protocol):
    def upload(
        self, media_ref: Any, target: ServerTarget, *, content_type: str | None = None
    ) -> UploadedMedia: ...


class MediaFetcher(Protocol):
    def fetch(self, url: str) -> bytes: ...


class DescriptorBuilder(Protocol):
    def build(
        self, data: bytes, source_url: str, mime_type: str | None, caption: str
    ) -> FileDescriptor: ...


class RecordSigner(Protocol):
    def sign_external_link(self, record: ExternalLinkRecord) -> SignedRecord | None: ...

    def sign_content_addressed(
        self, record: ContentAddressedRecord
    ) -> tuple[SignedRecord, SignedRecord] | None: ...


class Broadcaster(Protocol):
    def publish(self, record: SignedRecord, companion: SignedRecord | None = None) -> None: ...

from __future__ import annotations

import base64
import hashlib
import json
from dataclasses import dataclass
from typing import Any, Sequence

from .errors import RecordError
from .media import Dimensions, FileDescriptor

KIND_FILE_HEADER = 1063
KIND_FILE_STORAGE = 1064
KIND_FILE_STORAGE_HEADER = 1065

Tag = tuple[str, ...]


@dataclass(frozen=True)
class UnsignedEvent:
    pubkey: str
    created_at: int
    kind: int
    tags: tuple[Tag, ...]
    content: str

    def event_id(self) -> str:
        """Canonical id: SHA-256 of the serialized [0, pubkey, created_at, kind, tags, content]."""
        payload = json.dumps(
            [0, self.pubkey, int(self.created_at), int(self.kind), [list(t) for t in self.tags], self.content],
            ensure_ascii=False,
            separators=(",", ":"),
        ).encode("utf-8")
        return hashlib.sha256(payload).hexdigest()


@dataclass(frozen=True)
class SignedRecord:
    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: tuple[Tag, ...]
    content: str
    sig: str | None = None

    @classmethod
    def from_unsigned(cls, event: UnsignedEvent, *, sig: str | None = None) -> "SignedRecord":
        return cls(
            id=event.event_id(),
            pubkey=event.pubkey,
            created_at=int(event.created_at),
            kind=int(event.kind),
            tags=event.tags,
            content=event.content,
            sig=sig,
        )

    def as_event(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(t) for t in self.tags],
            "content": self.content,
            "sig": self.sig or "",
        }


def _metadata_tags(descriptor: FileDescriptor) -> list[Tag]:
    tags: list[Tag] = []
    if descriptor.mime_type:
        tags.append(("m", descriptor.mime_type))
    tags.append(("x", descriptor.sha256))
    tags.append(("size", str(int(descriptor.size))))
    if descriptor.dimensions is not None:
        tags.append(("dim", str(descriptor.dimensions)))
    return tags


@dataclass(frozen=True)
class ExternalLinkRecord:
    """File header pointing at media hosted elsewhere, verifiable by its hash."""

    author: str
    created_at: int
    url: str
    sha256: str
    size: int
    mime_type: str | None
    caption: str = ""
    dimensions: Dimensions | None = None

    def to_unsigned(self) -> UnsignedEvent:
        descriptor = FileDescriptor(
            sha256=self.sha256,
            size=self.size,
            mime_type=self.mime_type,
            dimensions=self.dimensions,
        )
        tags = [("url", self.url), *_metadata_tags(descriptor)]
        return UnsignedEvent(
            pubkey=self.author,
            created_at=self.created_at,
            kind=KIND_FILE_HEADER,
            tags=tuple(tags),
            content=self.caption,
        )


@dataclass(frozen=True)
class ContentAddressedRecord:
    """Media bytes stored inside the record itself, plus the header fields describing them."""

    author: str
    created_at: int
    data: bytes
    sha256: str
    size: int
    mime_type: str | None
    caption: str = ""
    dimensions: Dimensions | None = None

    def to_unsigned(self) -> UnsignedEvent:
        tags: list[Tag] = []
        if self.mime_type:
            tags.append(("m", self.mime_type))
        return UnsignedEvent(
            pubkey=self.author,
            created_at=self.created_at,
            kind=KIND_FILE_STORAGE,
            tags=tuple(tags),
            content=base64.b64encode(self.data).decode("ascii"),
        )

    def companion_for(self, storage: SignedRecord) -> UnsignedEvent:
        """Header record referencing the signed storage record by id."""
        descriptor = FileDescriptor(
            sha256=self.sha256,
            size=self.size,
            mime_type=self.mime_type,
            dimensions=self.dimensions,
        )
        tags = [("e", storage.id), *_metadata_tags(descriptor)]
        return UnsignedEvent(
            pubkey=self.author,
            created_at=self.created_at,
            kind=KIND_FILE_STORAGE_HEADER,
            tags=tuple(tags),
            content=self.caption,
        )


def build_external_link_record(
    descriptor: FileDescriptor,
    *,
    author: str,
    created_at: int,
    url: str | None = None,
) -> ExternalLinkRecord:
    """`url` overrides the descriptor's own URL when given."""
    url = (url or descriptor.url or "").strip()
    if not url:
        raise RecordError("external-link records require the remote URL")
    return ExternalLinkRecord(
        author=author,
        created_at=int(created_at),
        url=url,
        sha256=descriptor.sha256,
        size=int(descriptor.size),
        mime_type=descriptor.mime_type,
        caption=descriptor.caption,
        dimensions=descriptor.dimensions,
    )


def build_content_addressed_record(
    data: bytes,
    descriptor: FileDescriptor,
    *,
    author: str,
    created_at: int,
) -> ContentAddressedRecord:
    if len(data) != int(descriptor.size):
        raise RecordError(
            f"descriptor size {descriptor.size} does not match {len(data)} bytes of media"
        )
    return ContentAddressedRecord(
        author=author,
        created_at=int(created_at),
        data=bytes(data),
        sha256=descriptor.sha256,
        size=int(descriptor.size),
        mime_type=descriptor.mime_type,
        caption=descriptor.caption,
        dimensions=descriptor.dimensions,
    )


def tag_values(tags: Sequence[Sequence[str]], name: str) -> list[str]:
    return [str(t[1]) for t in tags if len(t) > 1 and t[0] == name]

from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet

KIND_TEXT_NOTE = 1
KIND_CHANNEL_MESSAGE = 42
KIND_LIVE_CHAT_MESSAGE = 1311
KIND_POLL_NOTE = 6969
KIND_MUTE_LIST = 10000
KIND_PEOPLE_LIST = 30000
KIND_DRAFT = 31234

# Chat kinds always belong to a channel or live activity, never start a thread.
_CHAT_KINDS = frozenset({KIND_CHANNEL_MESSAGE, KIND_LIVE_CHAT_MESSAGE})


@dataclass(frozen=True)
class Note:
    """A cached record as the feed sees it. Never mutated by feed code."""

    id: str
    author: str | None
    kind: int
    created_at: int | None
    tags: tuple[tuple[str, ...], ...] = ()
    content: str = ""

    def _tag_values(self, name: str) -> list[str]:
        return [t[1] for t in self.tags if len(t) > 1 and t[0] == name]

    @property
    def hashtags(self) -> frozenset[str]:
        return frozenset(v.lower() for v in self._tag_values("t"))

    @property
    def geotags(self) -> frozenset[str]:
        return frozenset(v.lower() for v in self._tag_values("g"))

    @property
    def reply_to(self) -> tuple[str, ...]:
        return tuple(self._tag_values("e"))

    def is_tagged_hashes(self, hashtags: AbstractSet[str]) -> bool:
        if not hashtags:
            return False
        return not self.hashtags.isdisjoint(hashtags)

    def is_tagged_geohashes(self, geotags: AbstractSet[str]) -> bool:
        if not geotags:
            return False
        return not self.geotags.isdisjoint(geotags)

    def is_new_thread(self) -> bool:
        return not self.reply_to and self.kind not in _CHAT_KINDS

    def sort_key(self) -> tuple[int, str]:
        return (self.created_at or 0, self.id)

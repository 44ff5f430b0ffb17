from __future__ import annotations

import time
from typing import Callable, Iterable

from .cache import NoteCache
from .note import (
    KIND_CHANNEL_MESSAGE,
    KIND_DRAFT,
    KIND_LIVE_CHAT_MESSAGE,
    KIND_POLL_NOTE,
    KIND_TEXT_NOTE,
    Note,
)
from .visibility import VisibilitySet

CONVERSATION_KINDS = frozenset(
    {
        KIND_TEXT_NOTE,
        KIND_POLL_NOTE,
        KIND_CHANNEL_MESSAGE,
        KIND_LIVE_CHAT_MESSAGE,
        KIND_DRAFT,
    }
)


def _is_visible(note: Note, visibility: VisibilitySet) -> bool:
    return (
        visibility.is_global
        or (note.author is not None and note.author in visibility.followed_authors)
        or note.is_tagged_hashes(visibility.followed_hashtags)
        or note.is_tagged_geohashes(visibility.followed_geotags)
    )


def accepts(note: Note, visibility: VisibilitySet, now: int) -> bool:
    """Whether a single note belongs in the conversations feed at instant `now`."""
    if note.kind not in CONVERSATION_KINDS:
        return False
    if not _is_visible(note, visibility):
        return False
    if not visibility.is_hidden_list and visibility.is_hidden(note.author):
        return False
    if not (note.created_at or 0) < now:
        return False
    return not note.is_new_thread()


def select_notes(notes: Iterable[Note], visibility: VisibilitySet, now: int) -> set[Note]:
    return {n for n in notes if accepts(n, visibility, now)}


def _total_order(note: Note) -> tuple:
    # Remaining fields only matter for distinct notes that share an id.
    return (note.sort_key(), note.kind, note.author or "", note.content, note.tags)


def sort_notes(notes: Iterable[Note]) -> list[Note]:
    """Newest first; equal timestamps ordered by id, highest first."""
    return sorted(notes, key=_total_order, reverse=True)


def filter_notes(notes: Iterable[Note], visibility: VisibilitySet, now: int) -> list[Note]:
    return sort_notes(select_notes(notes, visibility, now))


class ConversationsFeedFilter:
    """
    Replies-only home feed over the shared note cache.

    `feed()` evaluates the whole cache; `apply_filter()` screens a batch of
    newly cached notes for additive refreshes and leaves ordering to `sort()`.
    """

    def __init__(
        self, visibility: VisibilitySet, *, clock: Callable[[], float] | None = None
    ) -> None:
        self._visibility = visibility
        self._clock = clock or time.time

    def feed_key(self) -> str:
        return f"{self._visibility.viewer}-{self._visibility.active_list}"

    def show_hidden_key(self) -> bool:
        return self._visibility.is_hidden_list

    def now(self) -> int:
        return int(self._clock())

    def feed(self, cache: NoteCache) -> list[Note]:
        return self.sort(self.apply_filter(cache.snapshot()))

    def apply_filter(self, notes: Iterable[Note]) -> set[Note]:
        return select_notes(notes, self._visibility, self.now())

    def sort(self, notes: Iterable[Note]) -> list[Note]:
        return sort_notes(notes)

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Iterable

from .note import Note


@dataclass
class NoteCache:
    """
    Append-only note store keyed by id.

    The first copy of an id wins; later copies are ignored. `snapshot()`
    returns an immutable view safe to hand to the feed filter.
    """

    _notes: dict[str, Note] = field(default_factory=dict)
    _lock: Lock = field(default_factory=Lock, repr=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._notes)

    def __contains__(self, note_id: object) -> bool:
        with self._lock:
            return note_id in self._notes

    def add(self, note: Note) -> bool:
        with self._lock:
            if note.id in self._notes:
                return False
            self._notes[note.id] = note
            return True

    def add_many(self, notes: Iterable[Note]) -> list[Note]:
        """Add notes and return the ones that were new, in input order."""
        added: list[Note] = []
        for note in notes:
            if self.add(note):
                added.append(note)
        return added

    def get(self, note_id: str) -> Note | None:
        with self._lock:
            return self._notes.get(note_id)

    def snapshot(self) -> frozenset[Note]:
        with self._lock:
            return frozenset(self._notes.values())

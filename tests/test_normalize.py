from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from notecast.cache import NoteCache
from notecast.errors import RecordError
from notecast.note import Note
from notecast.normalize import load_notes, note_from_event, notes_from_events

_ID = "1" * 64
_PK = "A" * 64


class TestNoteFromEvent(unittest.TestCase):
    def test_maps_fields(self) -> None:
        note = note_from_event(
            {
                "id": _ID,
                "pubkey": _PK,
                "kind": 1,
                "created_at": 1700000000,
                "tags": [["e", "2" * 64], ["t", "Nostr"], ["bad", 3], []],
                "content": "hello",
            }
        )
        assert note is not None
        self.assertEqual(note.id, _ID)
        self.assertEqual(note.author, _PK.lower())
        self.assertEqual(note.created_at, 1700000000)
        self.assertEqual(note.tags, (("e", "2" * 64), ("t", "Nostr")))
        self.assertEqual(note.hashtags, frozenset({"nostr"}))
        self.assertEqual(note.reply_to, ("2" * 64,))
        self.assertFalse(note.is_new_thread())

    def test_skips_items_without_id_or_kind(self) -> None:
        self.assertIsNone(note_from_event({"id": "short", "kind": 1}))
        self.assertIsNone(note_from_event({"id": _ID, "kind": "text"}))
        self.assertIsNone(note_from_event({"id": _ID, "kind": True}))

    def test_keeps_malformed_author_and_timestamp_as_none(self) -> None:
        note = note_from_event({"id": _ID, "kind": "1", "pubkey": "nobody", "created_at": "soon"})
        assert note is not None
        self.assertEqual(note.kind, 1)
        self.assertIsNone(note.author)
        self.assertIsNone(note.created_at)
        self.assertEqual(note.content, "")

    def test_notes_from_events_ignores_non_objects(self) -> None:
        notes = notes_from_events([{"id": _ID, "kind": 1}, "junk", None, 7])
        self.assertEqual([n.id for n in notes], [_ID])


class TestLoadNotes(unittest.TestCase):
    def test_json_array_and_jsonl(self) -> None:
        events = [{"id": _ID, "kind": 1}, {"id": "2" * 64, "kind": 42}]
        with tempfile.TemporaryDirectory() as td:
            arr = Path(td) / "events.json"
            arr.write_text(json.dumps(events), encoding="utf-8")
            lines = Path(td) / "events.jsonl"
            lines.write_text("\n".join(json.dumps(e) for e in events) + "\n\n", encoding="utf-8")

            self.assertEqual(load_notes(arr), load_notes(lines))
            self.assertEqual(len(load_notes(arr)), 2)

    def test_empty_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "empty.jsonl"
            p.write_text("  \n", encoding="utf-8")
            self.assertEqual(load_notes(p), [])

    def test_invalid_json_raises(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "bad.jsonl"
            p.write_text('{"id": 1}\n{not json\n', encoding="utf-8")
            with self.assertRaises(RecordError) as ctx:
                load_notes(p)
            self.assertIn("line 2", str(ctx.exception))

    def test_missing_file_raises(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(RecordError):
                load_notes(Path(td) / "missing.json")


class TestNoteCache(unittest.TestCase):
    def test_first_copy_wins(self) -> None:
        cache = NoteCache()
        first = Note(id=_ID, author=None, kind=1, created_at=1, content="first")
        second = Note(id=_ID, author=None, kind=1, created_at=2, content="second")

        self.assertTrue(cache.add(first))
        self.assertFalse(cache.add(second))
        self.assertEqual(cache.get(_ID), first)
        self.assertIn(_ID, cache)
        self.assertEqual(len(cache), 1)

    def test_add_many_returns_new_notes_in_order(self) -> None:
        cache = NoteCache()
        a = Note(id="a" * 64, author=None, kind=1, created_at=1)
        b = Note(id="b" * 64, author=None, kind=1, created_at=1)
        cache.add(a)

        self.assertEqual(cache.add_many([b, a, b]), [b])
        self.assertEqual(cache.snapshot(), frozenset({a, b}))


if __name__ == "__main__":
    unittest.main()

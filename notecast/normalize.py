from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Iterable, Mapping

from .errors import RecordError
from .note import Note

_HEX_ID_RE = re.compile(r"^[0-9a-f]{64}$")


def _coerce_hex(value: Any) -> str | None:
    if isinstance(value, str):
        v = value.strip().lower()
        return v if _HEX_ID_RE.fullmatch(v) else None
    return None


def _coerce_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        s = value.strip()
        if s.isdigit():
            return int(s)
    return None


def _coerce_tags(value: Any) -> tuple[tuple[str, ...], ...]:
    if not isinstance(value, list):
        return ()

    out: list[tuple[str, ...]] = []
    for item in value:
        if not isinstance(item, list) or not item:
            continue
        if not all(isinstance(part, str) for part in item):
            continue
        out.append(tuple(item))
    return tuple(out)


def note_from_event(item: Mapping[str, Any]) -> Note | None:
    """
    Best-effort conversion of an event object into a Note.

    Items without a valid id or kind are skipped (None). A malformed author or
    timestamp is kept as None so the feed rules decide what to do with it.
    """
    note_id = _coerce_hex(item.get("id"))
    if note_id is None:
        return None

    kind = _coerce_int(item.get("kind"))
    if kind is None:
        return None

    content = item.get("content")

    return Note(
        id=note_id,
        author=_coerce_hex(item.get("pubkey")),
        kind=kind,
        created_at=_coerce_int(item.get("created_at")),
        tags=_coerce_tags(item.get("tags")),
        content=content if isinstance(content, str) else "",
    )


def notes_from_events(items: Iterable[Any]) -> list[Note]:
    out: list[Note] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        note = note_from_event(item)
        if note is not None:
            out.append(note)
    return out


def load_notes(path: str | Path) -> list[Note]:
    """
    Read notes from a JSON array file or a JSONL file (one event per line).

    Raises RecordError when the file is unreadable or not valid JSON.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise RecordError(f"Failed to read records file: {p}") from e

    stripped = text.lstrip()
    if not stripped:
        return []

    if stripped.startswith("["):
        try:
            data = json.loads(stripped)
        except ValueError as e:
            raise RecordError(f"Invalid JSON in {p}: {e}") from e
        return notes_from_events(data)

    items: list[Any] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            items.append(json.loads(line))
        except ValueError as e:
            raise RecordError(f"Invalid JSON on line {lineno} of {p}: {e}") from e
    return notes_from_events(items)

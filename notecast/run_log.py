from __future__ import annotations

import json
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, TextIO


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _truncate(text: str, *, limit: int) -> str:
    s = str(text or "")
    if limit <= 0:
        return ""
    if len(s) <= limit:
        return s
    return s[: max(0, limit - 1)] + "…"


def describe_exception(exc: BaseException) -> dict[str, str]:
    return {
        "type": type(exc).__name__,
        "message": _truncate(str(exc), limit=2000),
        "traceback": _truncate(
            "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            limit=12000,
        ),
    }


class RunLogger:
    """
    JSONL event log for publish sessions and CLI commands.

    Each line is one JSON object with `ts`, `level`, `event` and `session_id`, plus
    any bound context fields and per-call `data`. Writes are serialized with a lock
    because collaborator threads may log while the event loop does too.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        stream: TextIO | None = None,
        overwrite: bool = True,
        session_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        if path is None and stream is None:
            raise ValueError("either path or stream is required")

        self._path = Path(path) if path is not None else None
        self._overwrite = bool(overwrite)
        self._session_id = (session_id or "").strip() or uuid.uuid4().hex
        self._context: dict[str, Any] = dict(context or {})
        self._fp: TextIO | None = stream
        self._owns_fp = stream is None
        self._lock = Lock()
        self._opened = stream is not None

    @classmethod
    def open(
        cls,
        path: str | Path,
        *,
        overwrite: bool = True,
        session_id: str | None = None,
    ) -> "RunLogger":
        logger = cls(path, overwrite=overwrite, session_id=session_id)
        logger._ensure_open()
        return logger

    @property
    def session_id(self) -> str:
        return self._session_id

    def bind(self, **context: Any) -> "RunLogger":
        """Return a logger sharing this sink whose records also carry `context`."""
        child = RunLogger.__new__(RunLogger)
        child._path = self._path
        child._overwrite = self._overwrite
        child._session_id = self._session_id
        child._context = {**self._context, **context}
        child._fp = None
        child._owns_fp = False
        child._lock = self._lock
        child._opened = True
        child._parent = self
        return child

    def close(self) -> None:
        if getattr(self, "_parent", None) is not None:
            return
        with self._lock:
            if self._fp is not None:
                try:
                    self._fp.flush()
                finally:
                    if self._owns_fp:
                        self._fp.close()
                self._fp = None

    def __enter__(self) -> "RunLogger":
        self._ensure_open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def info(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("INFO", event, url=url, **data)

    def warning(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("WARN", event, url=url, **data)

    def error(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("ERROR", event, url=url, **data)

    def exception(
        self,
        event: str,
        *,
        exc: BaseException,
        url: str | None = None,
        **data: Any,
    ) -> None:
        self.log("ERROR", event, url=url, error=describe_exception(exc), **data)

    def log(self, level: str, event: str, *, url: str | None = None, **data: Any) -> None:
        lvl = (level or "").strip().upper() or "INFO"
        ev = (event or "").strip() or "event"

        record: dict[str, Any] = {
            "ts": _utc_now_iso(),
            "level": lvl,
            "event": ev,
            "session_id": self._session_id,
        }
        record.update(self._context)

        u = (url or "").strip()
        if u:
            record["url"] = u

        if data:
            record["data"] = data

        self._write(record)

    def _root(self) -> "RunLogger":
        parent = getattr(self, "_parent", None)
        return self if parent is None else parent._root()

    def _ensure_open(self) -> None:
        root = self._root()
        if root._fp is not None:
            return

        with root._lock:
            if root._fp is not None or root._path is None:
                return

            root._path.parent.mkdir(parents=True, exist_ok=True)
            mode = "w" if root._overwrite and not root._opened else "a"

            root._fp = root._path.open(mode, encoding="utf-8", newline="\n")
            root._opened = True

    def _write(self, record: dict[str, Any]) -> None:
        self._ensure_open()
        root = self._root()

        payload = json.dumps(
            record,
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )

        with root._lock:
            if root._fp is None:
                return
            root._fp.write(payload + "\n")
            root._fp.flush()

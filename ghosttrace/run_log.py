from __future__ import annotations

import json
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, TextIO

LEVELS: dict[str, int] = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _truncate(text: str, *, limit: int) -> str:
    s = str(text or "")
    if limit <= 0:
        return ""
    if len(s) <= limit:
        return s
    return s[: max(0, limit - 1)] + "…"


class _Sink:
    """Shared append-only JSONL file; one per log path, reused by bound loggers."""

    def __init__(self, path: Path, *, overwrite: bool) -> None:
        self.path = path
        self._overwrite = overwrite
        self._fp: TextIO | None = None
        self._lock = Lock()

    def open(self) -> None:
        with self._lock:
            if self._fp is not None:
                return
            self.path.parent.mkdir(parents=True, exist_ok=True)
            mode = "w" if self._overwrite else "a"
            self._fp = self.path.open(mode, encoding="utf-8", newline="\n")
            self._overwrite = False

    def close(self) -> None:
        with self._lock:
            if self._fp is not None:
                try:
                    self._fp.flush()
                finally:
                    self._fp.close()
                self._fp = None

    def write(self, record: dict[str, Any]) -> None:
        payload = json.dumps(
            record,
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        self.open()
        with self._lock:
            if self._fp is None:
                return
            self._fp.write(payload + "\n")
            self._fp.flush()


class RunLogger:
    """
    JSONL event log for analysis runs.

    Each line is one JSON object with `ts`, `level`, `event`, `session_id`, any bound
    context (for example `snapshot_id`), and the event payload under `data`.
    Events below `min_level` are dropped.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        overwrite: bool = False,
        min_level: str = "INFO",
        session_id: str | None = None,
        _sink: _Sink | None = None,
        _context: dict[str, Any] | None = None,
    ) -> None:
        lvl = (min_level or "").strip().upper() or "INFO"
        if lvl not in LEVELS:
            raise ValueError(f"unknown log level: {min_level!r}")

        self._sink = _sink or _Sink(Path(path), overwrite=bool(overwrite))
        self._min_level = lvl
        self._session_id = (session_id or "").strip() or uuid.uuid4().hex
        self._context: dict[str, Any] = dict(_context or {})

    @classmethod
    def open(
        cls,
        path: str | Path,
        *,
        overwrite: bool = False,
        min_level: str = "INFO",
        session_id: str | None = None,
    ) -> "RunLogger":
        logger = cls(path, overwrite=overwrite, min_level=min_level, session_id=session_id)
        logger._sink.open()
        return logger

    @property
    def path(self) -> Path:
        return self._sink.path

    @property
    def session_id(self) -> str:
        return self._session_id

    def close(self) -> None:
        self._sink.close()

    def __enter__(self) -> "RunLogger":
        self._sink.open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def bind(self, **context: Any) -> "RunLogger":
        merged = dict(self._context)
        merged.update({k: v for k, v in context.items() if v is not None})
        return RunLogger(
            self._sink.path,
            min_level=self._min_level,
            session_id=self._session_id,
            _sink=self._sink,
            _context=merged,
        )

    def debug(self, event: str, **data: Any) -> None:
        self.log("DEBUG", event, **data)

    def info(self, event: str, **data: Any) -> None:
        self.log("INFO", event, **data)

    def warning(self, event: str, **data: Any) -> None:
        self.log("WARN", event, **data)

    def error(self, event: str, **data: Any) -> None:
        self.log("ERROR", event, **data)

    def exception(self, event: str, *, exc: BaseException, **data: Any) -> None:
        err = {
            "type": type(exc).__name__,
            "message": _truncate(str(exc), limit=2000),
            "traceback": _truncate(
                "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                limit=12000,
            ),
        }
        self.log("ERROR", event, error=err, **data)

    def enabled_for(self, level: str) -> bool:
        lvl = (level or "").strip().upper() or "INFO"
        return LEVELS.get(lvl, LEVELS["INFO"]) >= LEVELS[self._min_level]

    def log(self, level: str, event: str, **data: Any) -> None:
        lvl = (level or "").strip().upper() or "INFO"
        if lvl not in LEVELS:
            lvl = "INFO"
        if not self.enabled_for(lvl):
            return

        record: dict[str, Any] = {
            "ts": _utc_now_iso(),
            "level": lvl,
            "event": (event or "").strip() or "event",
            "session_id": self._session_id,
        }
        record.update(self._context)
        if data:
            record["data"] = data

        self._sink.write(record)

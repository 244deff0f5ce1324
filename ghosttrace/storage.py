from __future__ import annotations

import json
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Sequence

from .errors import StorageUnavailable
from .records import Snapshot, UserRecord
from .run_log import RunLogger
from .storage_schema import initialize_sqlite

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _json_dumps(value: Any) -> str:
    return json.dumps(
        value,
        ensure_ascii=False,
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )


def _as_path(value: str | Path) -> str:
    return str(value)


def _newest_first(snapshots: Sequence[Snapshot]) -> list[Snapshot]:
    return sorted(snapshots, key=lambda s: (s.captured_at_dt(), s.id), reverse=True)


class SnapshotStore(ABC):
    """
    Append-only snapshot log plus a small key/value settings area.

    Reads never raise: an unavailable store reports no snapshots and no settings.
    Writes raise StorageUnavailable so callers can degrade to in-memory results.
    """

    @property
    def available(self) -> bool:
        return True

    def close(self) -> None:
        return None

    def __enter__(self) -> "SnapshotStore":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    @abstractmethod
    def append(self, followers: Sequence[UserRecord], following: Sequence[UserRecord]) -> int:
        ...

    @abstractmethod
    def list_all(self) -> list[Snapshot]:
        ...

    @abstractmethod
    def get_setting(self, key: str) -> Any | None:
        ...

    @abstractmethod
    def put_setting(self, key: str, value: Any) -> None:
        ...

    def get_latest(self) -> Snapshot | None:
        ordered = _newest_first(self.list_all())
        return ordered[0] if ordered else None

    def get_previous(self) -> Snapshot | None:
        ordered = _newest_first(self.list_all())
        return ordered[1] if len(ordered) >= 2 else None

    def recent(self, limit: int | None = None) -> list[Snapshot]:
        ordered = _newest_first(self.list_all())
        if limit is None:
            return ordered
        if limit <= 0:
            return []
        return ordered[:limit]

    def get_snapshot(self, snapshot_id: int) -> Snapshot | None:
        for snap in self.list_all():
            if snap.id == snapshot_id:
                return snap
        return None


class InMemorySnapshotStore(SnapshotStore):
    """Reference store that keeps everything in process memory."""

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = clock or _utc_now
        self._snapshots: list[Snapshot] = []
        self._settings: dict[str, str] = {}
        self._next_id = 1

    def append(self, followers: Sequence[UserRecord], following: Sequence[UserRecord]) -> int:
        snapshot = Snapshot(
            id=self._next_id,
            captured_at=self._clock().isoformat(),
            followers=tuple(followers),
            following=tuple(following),
        )
        self._next_id += 1
        self._snapshots.append(snapshot)
        return snapshot.id

    def list_all(self) -> list[Snapshot]:
        return list(self._snapshots)

    def get_setting(self, key: str) -> Any | None:
        raw = self._settings.get(key)
        return json.loads(raw) if raw is not None else None

    def put_setting(self, key: str, value: Any) -> None:
        # Stored serialized so callers cannot mutate what was saved.
        self._settings[key] = _json_dumps(value)


class UnavailableSnapshotStore(SnapshotStore):
    """Stand-in used when no backing store could be opened."""

    def __init__(self, reason: str = "storage is unavailable") -> None:
        self.reason = reason

    @property
    def available(self) -> bool:
        return False

    def append(self, followers: Sequence[UserRecord], following: Sequence[UserRecord]) -> int:
        raise StorageUnavailable(self.reason)

    def list_all(self) -> list[Snapshot]:
        return []

    def get_setting(self, key: str) -> Any | None:
        return None

    def put_setting(self, key: str, value: Any) -> None:
        raise StorageUnavailable(self.reason)


def _records_to_json(records: Sequence[UserRecord]) -> str:
    return _json_dumps([r.to_dict() for r in records])


def _records_from_json(raw: str) -> tuple[UserRecord, ...]:
    items = json.loads(raw or "[]")
    if not isinstance(items, list):
        raise ValueError("stored user list was not an array")
    return tuple(UserRecord.from_dict(item) for item in items if isinstance(item, dict))


class SQLiteSnapshotStore(SnapshotStore):
    """
    Durable snapshot log in a single SQLite file.

    Snapshot ids come from AUTOINCREMENT so they are never reused.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        clock: Clock | None = None,
        log: RunLogger | None = None,
    ) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row
        self._clock = clock or _utc_now
        self._log = log

    @classmethod
    def open(
        cls,
        path: str | Path,
        *,
        clock: Clock | None = None,
        log: RunLogger | None = None,
    ) -> "SQLiteSnapshotStore":
        db_path = _as_path(path)
        try:
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(db_path)
        except (OSError, sqlite3.DatabaseError) as e:
            raise StorageUnavailable(f"Failed to open sqlite database: {db_path}: {e}") from e

        try:
            initialize_sqlite(conn)
        except Exception as e:
            conn.close()
            raise StorageUnavailable(f"Failed to initialize sqlite schema: {e}") from e

        return cls(conn, clock=clock, log=log)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SQLiteSnapshotStore":
        return self

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    def append(self, followers: Sequence[UserRecord], following: Sequence[UserRecord]) -> int:
        captured_at = self._clock().isoformat()
        try:
            with self._conn:
                cur = self._conn.execute(
                    """
                    INSERT INTO snapshots(captured_at, followers_json, following_json)
                    VALUES (?, ?, ?)
                    """.strip(),
                    (captured_at, _records_to_json(followers), _records_to_json(following)),
                )
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Failed to append snapshot: {e}") from e

        snapshot_id = cur.lastrowid
        if snapshot_id is None:
            raise StorageUnavailable("Failed to read snapshot id after insert")
        return int(snapshot_id)

    def list_all(self) -> list[Snapshot]:
        try:
            rows = self._conn.execute(
                "SELECT id, captured_at, followers_json, following_json FROM snapshots ORDER BY id ASC"
            ).fetchall()
        except sqlite3.Error as e:
            self._warn("snapshot_list_failed", error=str(e))
            return []

        out: list[Snapshot] = []
        for r in rows:
            try:
                out.append(
                    Snapshot(
                        id=int(r["id"]),
                        captured_at=str(r["captured_at"]),
                        followers=_records_from_json(r["followers_json"]),
                        following=_records_from_json(r["following_json"]),
                    )
                )
            except ValueError as e:
                self._warn("snapshot_row_unreadable", snapshot_id=int(r["id"]), error=str(e))
        return out

    def get_setting(self, key: str) -> Any | None:
        k = (key or "").strip()
        if not k:
            raise ValueError("setting key must be non-empty")

        try:
            row = self._conn.execute(
                "SELECT value_json FROM settings WHERE key = ?",
                (k,),
            ).fetchone()
        except sqlite3.Error as e:
            self._warn("setting_read_failed", key=k, error=str(e))
            return None

        if row is None:
            return None

        try:
            return json.loads(row["value_json"])
        except ValueError as e:
            self._warn("setting_unreadable", key=k, error=str(e))
            return None

    def put_setting(self, key: str, value: Any) -> None:
        k = (key or "").strip()
        if not k:
            raise ValueError("setting key must be non-empty")

        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO settings(key, value_json, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                      value_json = excluded.value_json,
                      updated_at = excluded.updated_at
                    """.strip(),
                    (k, _json_dumps(value), _utc_now().isoformat()),
                )
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Failed to write setting {k}: {e}") from e

    def _warn(self, event: str, **data: Any) -> None:
        if self._log is not None:
            self._log.warning(event, **data)


def open_snapshot_store(
    path: str | Path | None,
    *,
    log: RunLogger | None = None,
    clock: Clock | None = None,
) -> SnapshotStore:
    """
    Open the SQLite store at `path`, falling back to an unavailable store.

    `None` disables persistence entirely. Opening never raises.
    """
    if path is None:
        if log is not None:
            log.info("storage_disabled")
        return UnavailableSnapshotStore("storage is disabled")

    try:
        store = SQLiteSnapshotStore.open(path, clock=clock, log=log)
    except StorageUnavailable as e:
        if log is not None:
            log.warning("storage_unavailable", path=str(path), error=str(e))
        return UnavailableSnapshotStore(str(e))

    if log is not None:
        log.debug("storage_opened", path=str(path))
    return store

from __future__ import annotations

from .analysis import AnalysisResult, FollowerAnalyzer
from .compare import (
    difference_by_key,
    find_new_followers,
    find_not_following_back,
    find_unfollowers,
)
from .errors import ConfigError, ExportError, ParseError, StorageUnavailable, ValidationError
from .normalize import normalize_followers, normalize_following
from .records import NormalizedKey, Snapshot, UserRecord, normalize_key
from .storage import InMemorySnapshotStore, SnapshotStore, SQLiteSnapshotStore, open_snapshot_store

__all__ = [
    "AnalysisResult",
    "ConfigError",
    "ExportError",
    "FollowerAnalyzer",
    "InMemorySnapshotStore",
    "NormalizedKey",
    "ParseError",
    "SQLiteSnapshotStore",
    "Snapshot",
    "SnapshotStore",
    "StorageUnavailable",
    "UserRecord",
    "ValidationError",
    "difference_by_key",
    "find_new_followers",
    "find_not_following_back",
    "find_unfollowers",
    "normalize_followers",
    "normalize_following",
    "normalize_key",
    "open_snapshot_store",
]

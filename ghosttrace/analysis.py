from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import AbstractSet, Any, Iterable, Literal, Sequence, get_args

from .compare import find_new_followers, find_not_following_back, find_unfollowers
from .errors import ParseError, StorageUnavailable, ValidationError
from .normalize import (
    ExportKind,
    detect_export_kind,
    load_export_file,
    normalize_export,
    normalize_followers,
    normalize_following,
)
from .records import NormalizedKey, Snapshot, UserRecord
from .run_log import RunLogger
from .storage import SnapshotStore
from .whitelist import filter_not_following_back, whitelisted_view

ViewName = Literal[
    "unfollowers",
    "new_followers",
    "not_following_back",
    "whitelist",
    "followers",
    "following",
]

VIEW_NAMES: tuple[str, ...] = get_args(ViewName)


def check_view_name(name: str) -> ViewName:
    v = (name or "").strip()
    if v not in VIEW_NAMES:
        raise ValidationError(f"Unknown view {name!r}; expected one of: {', '.join(VIEW_NAMES)}")
    return v  # type: ignore[return-value]


@dataclass(frozen=True)
class AnalysisResult:
    """
    Everything the presentation layer needs from one analysis or loaded snapshot.

    Whitelist-dependent views are derived on every call, never stored.
    """

    followers: Sequence[UserRecord]
    following: Sequence[UserRecord]
    unfollowers: Sequence[UserRecord]
    new_followers: Sequence[UserRecord]
    not_following_back: Sequence[UserRecord]
    snapshot_id: int | None = None
    captured_at: str | None = None
    previous_snapshot_id: int | None = None
    storage_error: str | None = None

    @property
    def has_history(self) -> bool:
        return self.previous_snapshot_id is not None

    def view(self, name: str, whitelist: AbstractSet[NormalizedKey] = frozenset()) -> list[UserRecord]:
        v = check_view_name(name)
        if v == "unfollowers":
            return list(self.unfollowers)
        if v == "new_followers":
            return list(self.new_followers)
        if v == "not_following_back":
            return filter_not_following_back(self.not_following_back, whitelist)
        if v == "whitelist":
            return whitelisted_view(self.not_following_back, whitelist)
        if v == "followers":
            return list(self.followers)
        return list(self.following)

    def counts(self, whitelist: AbstractSet[NormalizedKey] = frozenset()) -> dict[str, int]:
        return {name: len(self.view(name, whitelist)) for name in VIEW_NAMES}


@dataclass(frozen=True)
class SnapshotSummary:
    snapshot_id: int
    captured_at: str
    followers_count: int
    following_count: int


def _export_kind_for(path: Path, data: Any) -> ExportKind | None:
    # An empty list carries no shape; Instagram names the file after its kind.
    if isinstance(data, list) and not data and path.name.lower().startswith("following"):
        return "following"
    return detect_export_kind(data)


def search(records: Iterable[UserRecord], query: str | None) -> list[UserRecord]:
    q = (query or "").strip().lower()
    if not q:
        return list(records)
    return [r for r in records if q in r.normalized_key]


class FollowerAnalyzer:
    """
    Runs one analysis at a time against an injected snapshot store.

    Callers must not run two analyses concurrently against the same store: the
    "previous" snapshot is read before this run appends its own.
    """

    def __init__(self, store: SnapshotStore, *, log: RunLogger | None = None) -> None:
        self._store = store
        self._log = log

    @property
    def store(self) -> SnapshotStore:
        return self._store

    def analyze(self, followers_raw: Any, following_raw: Any) -> AnalysisResult:
        if followers_raw is None or following_raw is None:
            raise ValidationError("Please provide both followers and following exports")

        return self.analyze_records(
            normalize_followers(followers_raw),
            normalize_following(following_raw),
        )

    def analyze_records(
        self, followers: Sequence[UserRecord], following: Sequence[UserRecord]
    ) -> AnalysisResult:
        """Compare already-normalized lists against the latest stored snapshot."""
        followers = list(followers)
        following = list(following)
        self._info(
            "exports_normalized",
            followers=len(followers),
            following=len(following),
        )

        previous = self._store.get_latest()

        snapshot_id: int | None = None
        storage_error: str | None = None
        try:
            snapshot_id = self._store.append(followers, following)
        except StorageUnavailable as e:
            storage_error = str(e)
            if self._log is not None:
                self._log.warning("snapshot_not_saved", error=storage_error)

        log = self._log.bind(snapshot_id=snapshot_id) if self._log is not None else None

        if previous is not None:
            unfollowers = find_unfollowers(previous.followers, followers)
            new_followers = find_new_followers(previous.followers, followers)
        else:
            unfollowers = []
            new_followers = []

        not_following_back = find_not_following_back(followers, following)

        captured_at: str | None = None
        if snapshot_id is not None:
            saved = self._store.get_snapshot(snapshot_id)
            captured_at = saved.captured_at if saved is not None else None

        result = AnalysisResult(
            followers=followers,
            following=following,
            unfollowers=unfollowers,
            new_followers=new_followers,
            not_following_back=not_following_back,
            snapshot_id=snapshot_id,
            captured_at=captured_at,
            previous_snapshot_id=previous.id if previous is not None else None,
            storage_error=storage_error,
        )
        if log is not None:
            log.info(
                "analysis_completed",
                previous_snapshot_id=result.previous_snapshot_id,
                unfollowers=len(unfollowers),
                new_followers=len(new_followers),
                not_following_back=len(not_following_back),
            )
        return result

    def analyze_files(self, paths: Iterable[str | Path]) -> AnalysisResult:
        """
        Load export files, work out which is which, and analyze them.

        Files of the same kind are concatenated in the order given, so a split
        export (followers_1.json, followers_2.json, ...) is read as one list.
        """
        loaded: dict[ExportKind, list[UserRecord]] = {}
        for path in paths:
            data = load_export_file(path)
            kind = _export_kind_for(Path(path), data)
            if kind is None:
                raise ParseError(
                    f"{Path(path).name} doesn't look like an Instagram followers or following export",
                    reason="unrecognized_structure",
                )
            records = normalize_export(kind, data)
            self._info("export_loaded", path=str(path), kind=kind, records=len(records))
            loaded.setdefault(kind, []).extend(records)

        missing = [k for k in ("followers", "following") if k not in loaded]
        if missing:
            raise ValidationError(
                f"Please upload both followers and following files (missing: {', '.join(missing)})"
            )

        return self.analyze_records(loaded["followers"], loaded["following"])

    def load_snapshot(self, snapshot: Snapshot) -> AnalysisResult:
        """
        Rebuild results from a stored snapshot alone.

        Without a comparison run, unfollowers and new followers are empty.
        """
        return AnalysisResult(
            followers=list(snapshot.followers),
            following=list(snapshot.following),
            unfollowers=[],
            new_followers=[],
            not_following_back=find_not_following_back(snapshot.followers, snapshot.following),
            snapshot_id=snapshot.id,
            captured_at=snapshot.captured_at,
        )

    def load_snapshot_by_id(self, snapshot_id: int) -> AnalysisResult:
        snapshot = self._store.get_snapshot(snapshot_id)
        if snapshot is None:
            raise ValidationError(f"No snapshot with id {snapshot_id}")
        return self.load_snapshot(snapshot)

    def load_latest(self) -> AnalysisResult | None:
        latest = self._store.get_latest()
        if latest is None:
            return None
        return self.load_snapshot(latest)

    def history(self, limit: int | None = 5) -> list[SnapshotSummary]:
        return [
            SnapshotSummary(
                snapshot_id=s.id,
                captured_at=s.captured_at,
                followers_count=len(s.followers),
                following_count=len(s.following),
            )
            for s in self._store.recent(limit)
        ]

    def _info(self, event: str, **data: Any) -> None:
        if self._log is not None:
            self._log.info(event, **data)

from __future__ import annotations

from typing import AbstractSet, Any, Iterable, Sequence

from .errors import StorageUnavailable, ValidationError
from .records import NormalizedKey, UserRecord, normalize_key
from .run_log import RunLogger
from .storage import SnapshotStore

WHITELIST_SETTING = "whitelist"


def make_whitelist(usernames: Iterable[str] = ()) -> frozenset[NormalizedKey]:
    return frozenset(normalize_key(u) for u in usernames if isinstance(u, str) and u.strip())


def is_whitelisted(key: NormalizedKey, whitelist: AbstractSet[NormalizedKey]) -> bool:
    return key in whitelist


def add(username: str, whitelist: AbstractSet[NormalizedKey]) -> frozenset[NormalizedKey]:
    key = normalize_key(username)
    if not key.strip():
        raise ValidationError("username must be non-empty")
    return frozenset(whitelist) | {key}


def remove(username: str, whitelist: AbstractSet[NormalizedKey]) -> frozenset[NormalizedKey]:
    return frozenset(whitelist) - {normalize_key(username)}


def filter_not_following_back(
    records: Sequence[UserRecord], whitelist: AbstractSet[NormalizedKey]
) -> list[UserRecord]:
    return [r for r in records if r.normalized_key not in whitelist]


def whitelisted_view(
    records: Sequence[UserRecord], whitelist: AbstractSet[NormalizedKey]
) -> list[UserRecord]:
    return [r for r in records if r.normalized_key in whitelist]


def partition_not_following_back(
    records: Sequence[UserRecord], whitelist: AbstractSet[NormalizedKey]
) -> tuple[list[UserRecord], list[UserRecord]]:
    """
    Split not-following-back records into (visible, whitelisted).

    Both halves keep input order and together cover every record exactly once.
    """
    visible: list[UserRecord] = []
    hidden: list[UserRecord] = []
    for r in records:
        (hidden if r.normalized_key in whitelist else visible).append(r)
    return visible, hidden


def _coerce_stored(value: Any) -> frozenset[NormalizedKey]:
    if not isinstance(value, list):
        return frozenset()
    return make_whitelist(v for v in value if isinstance(v, str))


def load_whitelist(store: SnapshotStore) -> frozenset[NormalizedKey]:
    return _coerce_stored(store.get_setting(WHITELIST_SETTING))


def save_whitelist(store: SnapshotStore, whitelist: AbstractSet[NormalizedKey]) -> None:
    store.put_setting(WHITELIST_SETTING, sorted(whitelist))


def _persist(
    store: SnapshotStore,
    whitelist: frozenset[NormalizedKey],
    *,
    log: RunLogger | None,
    event: str,
    username: str,
) -> frozenset[NormalizedKey]:
    try:
        save_whitelist(store, whitelist)
    except StorageUnavailable as e:
        if log is not None:
            log.warning("whitelist_not_persisted", username=username, error=str(e))
        return whitelist

    if log is not None:
        log.info(event, username=username, size=len(whitelist))
    return whitelist


def add_to_whitelist(
    store: SnapshotStore, username: str, *, log: RunLogger | None = None
) -> frozenset[NormalizedKey]:
    updated = add(username, load_whitelist(store))
    return _persist(store, updated, log=log, event="whitelist_added", username=username)


def remove_from_whitelist(
    store: SnapshotStore, username: str, *, log: RunLogger | None = None
) -> frozenset[NormalizedKey]:
    updated = remove(username, load_whitelist(store))
    return _persist(store, updated, log=log, event="whitelist_removed", username=username)

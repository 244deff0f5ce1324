from __future__ import annotations

from typing import Iterable, Sequence

from .records import NormalizedKey, UserRecord


def key_set(records: Iterable[UserRecord]) -> set[NormalizedKey]:
    return {r.normalized_key for r in records}


def difference_by_key(a: Sequence[UserRecord], b: Sequence[UserRecord]) -> list[UserRecord]:
    """
    Return the elements of `a` whose normalized key does not appear in `b`.

    Order of `a` is preserved and duplicates in `a` are kept; this filters, it does not
    deduplicate. Runs in O(len(a) + len(b)).
    """
    excluded = key_set(b)
    return [r for r in a if r.normalized_key not in excluded]


def find_unfollowers(previous: Sequence[UserRecord], current: Sequence[UserRecord]) -> list[UserRecord]:
    return difference_by_key(previous, current)


def find_new_followers(previous: Sequence[UserRecord], current: Sequence[UserRecord]) -> list[UserRecord]:
    return difference_by_key(current, previous)


def find_not_following_back(
    followers: Sequence[UserRecord], following: Sequence[UserRecord]
) -> list[UserRecord]:
    return difference_by_key(following, followers)

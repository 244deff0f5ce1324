from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, NewType

NormalizedKey = NewType("NormalizedKey", str)


def normalize_key(username: str) -> NormalizedKey:
    return NormalizedKey((username or "").lower())


@dataclass(frozen=True)
class UserRecord:
    """One entry of a followers or following list."""

    username: str
    timestamp: int | None = None
    profile_url: str | None = None
    normalized_key: NormalizedKey = field(init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "normalized_key", normalize_key(self.username))

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "timestamp": self.timestamp,
            "href": self.profile_url,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserRecord":
        username = data.get("username")
        if not isinstance(username, str) or not username:
            raise ValueError("stored user record is missing a username")

        ts = data.get("timestamp")
        href = data.get("href")
        return cls(
            username=username,
            timestamp=int(ts) if isinstance(ts, int) and not isinstance(ts, bool) else None,
            profile_url=href if isinstance(href, str) and href else None,
        )


@dataclass(frozen=True)
class Snapshot:
    """One immutable capture of both lists, as recorded by a store."""

    id: int
    captured_at: str
    followers: tuple[UserRecord, ...] = ()
    following: tuple[UserRecord, ...] = ()

    def captured_at_dt(self) -> datetime:
        try:
            dt = datetime.fromisoformat(self.captured_at)
        except ValueError:
            return datetime.min.replace(tzinfo=timezone.utc)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt

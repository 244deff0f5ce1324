from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Mapping, Sequence

from .errors import ParseError
from .records import UserRecord

ExportKind = Literal["followers", "following"]

_STRING_LIST_KEYS = ("string_list_data", "stringListData")
_WRAPPER_KEYS = ("relationships_following", "relationshipsFollowing")


@dataclass(frozen=True)
class ExportShape:
    """Top-level shape of an export, resolved before any element is read."""

    kind: Literal["bare", "wrapped"]
    elements: Sequence[Any]


@dataclass(frozen=True)
class ElementShape:
    kind: Literal["titled", "listed", "flat", "unknown"]
    title: str | None = None
    entries: Sequence[Mapping[str, Any]] = ()
    has_string_list: bool = False


def _coerce_str(value: Any) -> str | None:
    if isinstance(value, str):
        s = value.strip()
        return s if s else None
    return None


def _coerce_timestamp(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value or None
    if isinstance(value, float) and value.is_integer():
        return int(value) or None
    return None


def _is_empty(raw: Any) -> bool:
    if raw is None or raw is False:
        return True
    if isinstance(raw, str) and not raw.strip():
        return True
    if isinstance(raw, (int, float)) and not isinstance(raw, bool) and raw == 0:
        return True
    return False


def _string_list(item: Mapping[str, Any]) -> list[Mapping[str, Any]] | None:
    for key in _STRING_LIST_KEYS:
        if key in item:
            value = item[key]
            if not isinstance(value, list):
                return None
            return [entry for entry in value if isinstance(entry, Mapping)]
    return None


def _wrapped_elements(raw: Mapping[str, Any]) -> Sequence[Any] | None:
    for key in _WRAPPER_KEYS:
        if key in raw:
            value = raw[key]
            return value if isinstance(value, list) else None
    return None


def classify_element(item: Any) -> ElementShape:
    if not isinstance(item, Mapping):
        return ElementShape(kind="unknown")

    entries = _string_list(item)
    has_list = entries is not None

    title = _coerce_str(item.get("title"))
    if title:
        return ElementShape(
            kind="titled",
            title=title,
            entries=entries or (),
            has_string_list=has_list,
        )

    if has_list:
        return ElementShape(kind="listed", entries=entries or (), has_string_list=True)

    if _coerce_str(item.get("value")):
        return ElementShape(kind="flat", entries=(item,))

    return ElementShape(kind="unknown")


def _record_from_entry(entry: Mapping[str, Any], *, username: str | None = None) -> UserRecord | None:
    name = username or _coerce_str(entry.get("value"))
    if not name:
        return None
    return UserRecord(
        username=name,
        timestamp=_coerce_timestamp(entry.get("timestamp")),
        profile_url=_coerce_str(entry.get("href")),
    )


def _records_from_element(shape: ElementShape, *, allow_title: bool) -> list[UserRecord]:
    if shape.kind == "titled" and allow_title:
        meta = shape.entries[0] if shape.entries else {}
        record = _record_from_entry(meta, username=shape.title)
        return [record] if record is not None else []

    if shape.kind == "unknown":
        return []

    out: list[UserRecord] = []
    for entry in shape.entries:
        record = _record_from_entry(entry)
        if record is not None:
            out.append(record)
    return out


def _resolve_followers_shape(raw: Any) -> ExportShape:
    if _is_empty(raw):
        raise ParseError("File appears to be empty", reason="empty_file")

    if not isinstance(raw, list):
        raise ParseError(
            "Expected Instagram export format. File should contain an array of follower data.",
            reason="not_an_array",
        )

    return ExportShape(kind="bare", elements=raw)


def _resolve_following_shape(raw: Any) -> ExportShape:
    if _is_empty(raw):
        raise ParseError("File appears to be empty", reason="empty_file")

    if isinstance(raw, list):
        return ExportShape(kind="bare", elements=raw)

    if isinstance(raw, Mapping):
        elements = _wrapped_elements(raw)
        if elements is not None:
            return ExportShape(kind="wrapped", elements=elements)

    raise ParseError(
        "Expected Instagram export format. File should contain following data "
        "or a relationships_following array.",
        reason="not_an_array",
    )


def _check_first_element(
    shape: ExportShape,
    *,
    accept_title: bool,
    hint: str,
) -> None:
    if not shape.elements:
        return
    first = classify_element(shape.elements[0])
    recognized = first.kind in ("listed", "flat") or (
        first.kind == "titled" and (accept_title or first.has_string_list)
    )
    if not recognized:
        raise ParseError(
            f"Unrecognized file format. Make sure you uploaded the {hint} file from Instagram export.",
            reason="unrecognized_structure",
        )


def normalize_followers(raw: Any) -> list[UserRecord]:
    """
    Normalize a followers export into user records.

    Accepts a list of elements carrying string_list_data entries; entries without a
    value are skipped. Raises ParseError without returning partial results.
    """
    shape = _resolve_followers_shape(raw)
    _check_first_element(shape, accept_title=False, hint="followers_1.json")

    out: list[UserRecord] = []
    for item in shape.elements:
        out.extend(_records_from_element(classify_element(item), allow_title=False))
    return out


def normalize_following(raw: Any) -> list[UserRecord]:
    """
    Normalize a following export (bare array or relationships_following wrapper).

    A title on an element names the user; its string_list_data only supplies
    timestamp and href in that case.
    """
    shape = _resolve_following_shape(raw)
    _check_first_element(shape, accept_title=True, hint="following.json")

    out: list[UserRecord] = []
    for item in shape.elements:
        out.extend(_records_from_element(classify_element(item), allow_title=True))
    return out


def normalize_export(kind: ExportKind, raw: Any) -> list[UserRecord]:
    if kind == "followers":
        return normalize_followers(raw)
    if kind == "following":
        return normalize_following(raw)
    raise ValueError(f"unknown export kind: {kind!r}")


def detect_export_kind(raw: Any) -> ExportKind | None:
    """
    Guess which export a parsed file is, or None when it matches neither.

    An empty list is a followers export with no followers.
    """
    if isinstance(raw, Mapping):
        return "following" if _wrapped_elements(raw) is not None else None

    if not isinstance(raw, list):
        return None

    if not raw:
        return "followers"

    if not all(isinstance(item, Mapping) for item in raw):
        return None

    if any(_coerce_str(item.get("title")) for item in raw):
        return "following"

    if all(_string_list(item) is not None for item in raw):
        return "followers"

    return None


def parse_export_text(text: str) -> Any:
    if not (text or "").strip():
        raise ParseError("File appears to be empty", reason="empty_file")
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(
            f"Invalid JSON. Upload the original files from the Instagram export without editing them: {e}",
            reason="invalid_json",
        ) from e


def load_export_file(path: str | Path) -> Any:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(f"Failed to read export file: {p}: {e}", reason="unreadable_file") from e
    return parse_export_text(text)

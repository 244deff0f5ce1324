from __future__ import annotations

from typing import Literal, cast

from .errors import ValidationError
from .storage import SnapshotStore

Theme = Literal["light", "dark"]

THEME_SETTING = "theme"
THEMES: tuple[Theme, ...] = ("light", "dark")


def load_theme(store: SnapshotStore) -> Theme | None:
    value = store.get_setting(THEME_SETTING)
    if isinstance(value, str) and value in THEMES:
        return cast(Theme, value)
    return None


def save_theme(store: SnapshotStore, theme: str) -> Theme:
    t = (theme or "").strip().lower()
    if t not in THEMES:
        raise ValidationError(f"Unknown theme {theme!r}; expected one of: {', '.join(THEMES)}")
    store.put_setting(THEME_SETTING, t)
    return cast(Theme, t)

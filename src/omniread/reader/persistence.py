"""Durable reader settings: global theme and layout, per-book location."""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional, Protocol

from omniread.errors import PersistenceError
from omniread.library.models import ColorScheme, LayoutMode, Theme

log = logging.getLogger(__name__)

KEY_COLOR_SCHEME = "theme.colorScheme"
KEY_FONT_SCALE = "theme.fontScalePercent"
KEY_FONT_FAMILY = "theme.fontFamily"
KEY_LAYOUT_MODE = "reader.layoutMode"
LOCATION_PREFIX = "lastLocation."
PROGRESS_PREFIX = "progress."

_WRITE_ERRORS = (sqlite3.Error, OSError, PersistenceError)


class SettingsStore(Protocol):
    def get_setting(self, key: str) -> Optional[str]: ...

    def set_setting(self, key: str, value: str) -> None: ...

    def remove_setting(self, key: str) -> None: ...


class SessionPersistence:
    """Bridges session state to the settings store.

    Writes never raise. A failed write is logged and kept pending; every
    pending write is retried, in order, on the next mutation.
    """

    def __init__(
        self,
        store: SettingsStore,
        default_theme: Theme = Theme(),
        default_layout: LayoutMode = LayoutMode.SINGLE_PAGE,
    ) -> None:
        self._store = store
        self._default_theme = default_theme
        self._default_layout = default_layout
        self._pending: dict[str, Optional[str]] = {}  # None means remove

    @property
    def pending(self) -> dict[str, Optional[str]]:
        return dict(self._pending)

    # ── Reads ──────────────────────────────────────

    def _read(self, key: str) -> Optional[str]:
        if key in self._pending:
            return self._pending[key]
        try:
            return self._store.get_setting(key)
        except _WRITE_ERRORS as e:
            log.warning("Could not read setting %s: %s", key, e)
            return None

    def load_defaults(self) -> Theme:
        base = self._default_theme
        scheme = self._read(KEY_COLOR_SCHEME)
        scale = self._read(KEY_FONT_SCALE)
        family = self._read(KEY_FONT_FAMILY)

        try:
            color_scheme = ColorScheme(scheme) if scheme else base.color_scheme
        except ValueError:
            log.warning("Ignoring stored color scheme %r", scheme)
            color_scheme = base.color_scheme
        try:
            font_scale = int(scale) if scale else base.font_scale
        except ValueError:
            log.warning("Ignoring stored font scale %r", scale)
            font_scale = base.font_scale

        return Theme(
            color_scheme=color_scheme,
            font_scale=font_scale,
            font_family=family or base.font_family,
        )

    def load_layout_mode(self) -> LayoutMode:
        value = self._read(KEY_LAYOUT_MODE)
        try:
            return LayoutMode(value) if value else self._default_layout
        except ValueError:
            log.warning("Ignoring stored layout mode %r", value)
            return self._default_layout

    def load_location(self, book_hash: str) -> Optional[str]:
        return self._read(LOCATION_PREFIX + book_hash) or None

    def load_progress(self, book_hash: str) -> float:
        value = self._read(PROGRESS_PREFIX + book_hash)
        try:
            return max(0.0, min(1.0, float(value))) if value else 0.0
        except ValueError:
            return 0.0

    # ── Writes ─────────────────────────────────────

    def save_theme(self, theme: Theme) -> None:
        self._write(
            {
                KEY_COLOR_SCHEME: theme.color_scheme.value,
                KEY_FONT_SCALE: str(theme.font_scale),
                KEY_FONT_FAMILY: theme.font_family,
            }
        )

    def save_layout_mode(self, mode: LayoutMode) -> None:
        self._write({KEY_LAYOUT_MODE: mode.value})

    def save_location(
        self, book_hash: str, bookmark: str, progress: Optional[float] = None
    ) -> None:
        changes: dict[str, Optional[str]] = {LOCATION_PREFIX + book_hash: bookmark}
        if progress is not None:
            changes[PROGRESS_PREFIX + book_hash] = f"{progress:.4f}"
        self._write(changes)

    def forget(self, book_hash: str) -> None:
        self._write({LOCATION_PREFIX + book_hash: None, PROGRESS_PREFIX + book_hash: None})

    def flush(self) -> bool:
        """Retry pending writes. Returns True when nothing is left pending."""
        self._write({})
        return not self._pending

    def _write(self, changes: dict[str, Optional[str]]) -> None:
        for key in changes:
            # Re-insert so a newer value moves behind older pending writes
            self._pending.pop(key, None)
        self._pending.update(changes)

        for key, value in list(self._pending.items()):
            try:
                if value is None:
                    self._store.remove_setting(key)
                else:
                    self._store.set_setting(key, value)
            except _WRITE_ERRORS as e:
                log.warning(
                    "Could not persist %s (%d pending, will retry): %s",
                    key,
                    len(self._pending),
                    e,
                )
                return
            del self._pending[key]

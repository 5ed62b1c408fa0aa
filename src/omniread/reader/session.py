"""Reading session: the state machine around one open book.

States run ``LOADING -> READY -> (ERROR | CLOSED)``. Layout changes,
navigation and theme changes keep the session ``READY``. Every open hands its
continuations an ``_OpenTicket``; ``close()`` or a newer ``open()`` kills the
ticket, and nothing holding a dead ticket may touch the session again.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from omniread.errors import LoadFailedError, SessionError, SessionStateError, SurfaceBindError
from omniread.library.models import (
    BookContent,
    CatalogEntry,
    FlowConfig,
    LayoutMode,
    Theme,
    TocEntry,
)
from omniread.parsers.base import load_document

from .input import DIRECTIONS, InputRouter
from .persistence import SessionPersistence
from .surface import RELOCATED, RenderSurface, SurfaceBinder, TextRenderSurface
from .themes import theme_rules

log = logging.getLogger(__name__)

DocumentLoader = Callable[[Path], BookContent]


class SessionState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


class SessionEvent(str, Enum):
    RELOCATED = "relocated"
    THEME_CHANGED = "theme-changed"
    LAYOUT_CHANGED = "layout-changed"
    STATE_CHANGED = "state-changed"


SessionListener = Callable[[SessionEvent, Any], None]


class _OpenTicket:
    __slots__ = ("entry", "alive")

    def __init__(self, entry: CatalogEntry) -> None:
        self.entry = entry
        self.alive = True


class ReadingSession:
    def __init__(
        self,
        container: Any,
        persistence: SessionPersistence,
        *,
        binder: SurfaceBinder = TextRenderSurface,
        loader: DocumentLoader = load_document,
        layout_mode: Optional[LayoutMode] = None,
        theme: Optional[Theme] = None,
        debounce: float = 0.15,
    ) -> None:
        self._container = container
        self._persistence = persistence
        self._bind = binder
        self._load = loader
        self._layout_mode = layout_mode or persistence.load_layout_mode()
        self._theme = theme or persistence.load_defaults()
        self._debounce = debounce

        self._state = SessionState.CLOSED
        self._entry: Optional[CatalogEntry] = None
        self._error: Optional[SessionError] = None
        self._document: Optional[BookContent] = None
        self._toc: tuple[TocEntry, ...] = ()
        self._current_location: Optional[str] = None
        self._surface: Optional[RenderSurface] = None
        self._input: Optional[InputRouter] = None
        self._ticket: Optional[_OpenTicket] = None
        self._layout_lock = asyncio.Lock()
        self._listeners: list[SessionListener] = []

    # ── State ──────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def entry(self) -> Optional[CatalogEntry]:
        return self._entry

    @property
    def error(self) -> Optional[SessionError]:
        return self._error

    @property
    def layout_mode(self) -> LayoutMode:
        return self._layout_mode

    @property
    def theme(self) -> Theme:
        return self._theme

    @property
    def current_location(self) -> Optional[str]:
        return self._current_location

    @property
    def table_of_contents(self) -> tuple[TocEntry, ...]:
        return self._toc

    @property
    def document(self) -> Optional[BookContent]:
        return self._document

    @property
    def surface(self) -> Optional[RenderSurface]:
        return self._surface

    @property
    def input(self) -> Optional[InputRouter]:
        return self._input

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        log.debug("Session %s -> %s", self._state.value, state.value)
        self._state = state
        self._emit(SessionEvent.STATE_CHANGED, state)

    def _require_ready(self, action: str) -> None:
        if self._state is not SessionState.READY:
            raise SessionStateError(f"Cannot {action} while {self._state.value}")

    # ── Events ─────────────────────────────────────

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: SessionEvent, payload: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:
                log.exception("Session listener failed on %s", event.value)

    # ── Surface binding ────────────────────────────

    def _bind_surface(
        self, ticket: _OpenTicket, document: BookContent, mode: LayoutMode
    ) -> RenderSurface:
        surface = self._bind(document, self._container, FlowConfig.for_mode(mode))
        self._surface = surface
        surface.on(RELOCATED, functools.partial(self._on_relocated, ticket))
        surface.apply_theme(theme_rules(self._theme))
        return surface

    def _release_surface(self) -> None:
        surface, self._surface = self._surface, None
        if surface is None:
            return
        try:
            surface.destroy()
        except Exception:
            log.exception("Render surface failed to release")

    def _teardown(self) -> None:
        if self._ticket is not None:
            self._ticket.alive = False
        self._release_surface()
        if self._input is not None:
            self._input.detach()
            self._input = None

    def _fail(self, error: SessionError) -> None:
        self._teardown()
        self._error = error
        self._set_state(SessionState.ERROR)

    def _on_relocated(
        self, ticket: _OpenTicket, bookmark: str, progress: Optional[float] = None
    ) -> None:
        if not ticket.alive or ticket is not self._ticket:
            return
        self._current_location = bookmark
        if self._state is not SessionState.READY:
            # The opening display; the stored location is not changed by it
            return
        entry = ticket.entry
        entry.last_location = bookmark
        if progress is not None:
            entry.progress = progress
        self._persistence.save_location(entry.hash, bookmark, progress)
        self._emit(SessionEvent.RELOCATED, bookmark)

    # ── Transitions ────────────────────────────────

    async def open(self, entry: CatalogEntry) -> None:
        """Load ``entry`` and show it at its last location.

        Any earlier open, finished or still in flight, is closed first. On
        failure the session ends up in ``ERROR`` with ``error`` set.
        """
        self.close()
        ticket = _OpenTicket(entry)
        self._ticket = ticket
        self._entry = entry
        self._error = None
        self._document = None
        self._toc = ()
        self._current_location = None
        self._set_state(SessionState.LOADING)

        try:
            document = await asyncio.to_thread(self._load, Path(entry.source_path))
            if not ticket.alive:
                log.debug("Discarding stale open of %s", entry.title)
                return
            surface = self._bind_surface(ticket, document, self._layout_mode)
            self._document = document
            self._toc = tuple(document.toc)
            start = entry.last_location or self._persistence.load_location(entry.hash)
            await surface.display(start)
        except asyncio.CancelledError:
            if ticket.alive:
                self.close()
            raise
        except Exception as e:
            if not ticket.alive:
                log.debug("Stale open of %s failed: %s", entry.title, e)
                return
            log.error("Could not open %s: %s", entry.source_path, e)
            self._fail(LoadFailedError(f"Could not open {entry.title}: {e}"))
            return

        if not ticket.alive:
            return
        self._current_location = surface.current_location()
        self._input = InputRouter(self._debounce)
        self._set_state(SessionState.READY)
        log.info("Opened %s at %s", entry.title, self._current_location)

    async def change_layout_mode(self, mode: LayoutMode | str) -> None:
        """Rebind the surface for ``mode`` and show the same location.

        Raises:
            SessionStateError: The session is not READY.
            SurfaceBindError: The new surface failed; the previous mode was
                restored (or, if that failed too, the session is in ERROR).
        """
        mode = LayoutMode(mode)
        self._require_ready("change layout")
        if mode is self._layout_mode:
            return

        async with self._layout_lock:
            ticket = self._ticket
            document = self._document
            if self._state is not SessionState.READY or mode is self._layout_mode:
                return
            if ticket is None or document is None or self._surface is None:
                return
            previous = self._layout_mode

            # Capture before teardown: a fresh surface has no position of its own
            try:
                location = self._surface.current_location() or self._current_location
            except Exception:
                log.exception("Could not read location from surface")
                location = self._current_location
            self._current_location = location
            self._release_surface()

            try:
                surface = self._bind_surface(ticket, document, mode)
                self._layout_mode = mode
                await surface.display(location)
            except Exception as e:
                if not ticket.alive:
                    return
                log.warning("Layout %s failed, reverting to %s: %s", mode.value, previous.value, e)
                self._release_surface()
                self._layout_mode = previous
                try:
                    surface = self._bind_surface(ticket, document, previous)
                    await surface.display(location)
                except Exception as revert_error:
                    if ticket.alive:
                        log.error("Could not restore %s layout: %s", previous.value, revert_error)
                        self._fail(LoadFailedError(f"Display failed: {revert_error}"))
                    raise SurfaceBindError(
                        f"Could not switch to {mode.label} layout: {e}"
                    ) from revert_error
                raise SurfaceBindError(f"Could not switch to {mode.label} layout: {e}") from e

            if not ticket.alive:
                return
            self._persistence.save_layout_mode(mode)
            self._emit(SessionEvent.LAYOUT_CHANGED, mode)
            log.debug("Layout %s at %s", mode.value, location)

    async def navigate(self, direction: str) -> bool:
        """Turn a page. Returns False if nothing moved."""
        if direction not in DIRECTIONS:
            raise ValueError(f"Unknown direction: {direction}")
        surface = self._surface
        if self._state is not SessionState.READY or surface is None:
            return False
        try:
            if direction == "next":
                return await surface.next()
            return await surface.prev()
        except Exception:
            log.exception("Navigation %s failed", direction)
            return False

    async def jump_to(self, bookmark: str) -> bool:
        surface = self._surface
        if self._state is not SessionState.READY or surface is None:
            return False
        try:
            await surface.display(bookmark)
        except Exception:
            log.exception("Jump to %s failed", bookmark)
            return False
        return True

    async def handle_input(self, direction: str, scope: str) -> bool:
        """Route a key press from ``scope``; duplicates of one press are dropped."""
        if self._input is None:
            return False
        accepted = self._input.dispatch(direction, scope)
        if accepted is None:
            return False
        return await self.navigate(accepted)

    def focus_input(self, scope: Optional[str]) -> None:
        if self._input is not None:
            self._input.focus(scope)

    def apply_theme(self, **changes: Any) -> Theme:
        """Merge theme fields, restyle the bound surface and persist globally."""
        theme = self._theme.merge(**changes)
        if theme == self._theme:
            return theme
        self._theme = theme
        if self._surface is not None:
            try:
                self._surface.apply_theme(theme_rules(theme))
            except Exception:
                log.exception("Could not apply theme to surface")
        self._persistence.save_theme(theme)
        self._emit(SessionEvent.THEME_CHANGED, theme)
        return theme

    def resize(self) -> None:
        if self._surface is None:
            return
        try:
            self._surface.resize()
        except Exception:
            log.exception("Render surface failed to resize")

    def close(self) -> None:
        """Release the surface and input bindings. Safe from any state."""
        self._teardown()
        if self._state is SessionState.CLOSED:
            return
        self._persistence.flush()
        self._set_state(SessionState.CLOSED)
        if self._entry is not None:
            log.info("Closed %s", self._entry.title)

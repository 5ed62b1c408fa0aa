from __future__ import annotations

from typing import Any, Callable

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import Screen
from textual.widgets import Footer, ListItem, ListView, Static

from omniread.errors import SessionStateError, SurfaceBindError
from omniread.library.models import CatalogEntry
from omniread.reader.input import SURFACE, WINDOW
from omniread.reader.session import ReadingSession, SessionEvent, SessionState
from omniread.reader.themes import next_color_scheme, next_font_family


class PageView(Static, can_focus=True):
    """The render surface container. Binds the page keys in its own scope."""

    BINDINGS = [
        Binding("left", "turn('prev')", "←", show=False),
        Binding("right", "turn('next')", "→", show=False),
        Binding("space", "turn('next')", "Next", show=False),
    ]

    async def action_turn(self, direction: str) -> None:
        screen = self.screen
        if isinstance(screen, ReaderScreen):
            await screen.route_key(direction, SURFACE)

    def on_focus(self) -> None:
        if isinstance(self.screen, ReaderScreen):
            self.screen.session.focus_input(SURFACE)

    def on_blur(self) -> None:
        if isinstance(self.screen, ReaderScreen):
            self.screen.session.focus_input(WINDOW)

    def on_resize(self) -> None:
        if isinstance(self.screen, ReaderScreen):
            self.screen.session.resize()


class ReaderScreen(Screen):
    BINDINGS = [
        Binding("escape", "go_back", "Back"),
        Binding("left", "turn('prev')", "←"),
        Binding("right", "turn('next')", "→"),
        Binding("space", "turn('next')", "Next", show=False),
        Binding("t", "toggle_toc", "TOC"),
        Binding("l", "cycle_layout", "Layout"),
        Binding("c", "cycle_colors", "Colors"),
        Binding("=", "font_bigger", "A+"),
        Binding("minus", "font_smaller", "A-"),
        Binding("f", "cycle_font", "Font"),
    ]

    FONT_STEP = 10

    def __init__(
        self,
        entry: CatalogEntry,
        session_factory: Callable[[PageView], ReadingSession],
    ) -> None:
        super().__init__()
        self._entry = entry
        self._page_view = PageView("Loading...", id="content-text", markup=False)
        self._session = session_factory(self._page_view)

    @property
    def session(self) -> ReadingSession:
        return self._session

    def compose(self) -> ComposeResult:
        yield Static("", id="reader-header")
        with Horizontal(id="reader-body"):
            with Vertical(id="toc-sidebar"):
                yield Static("Table of Contents", id="toc-title")
                yield ListView(id="toc-list")
            yield self._page_view
        yield Footer()

    def on_mount(self) -> None:
        self._unsubscribe = self._session.subscribe(self._on_session_event)
        self._update_header()
        self._open_book()

    @work(exclusive=True, group="open")
    async def _open_book(self) -> None:
        session = self.session
        await session.open(self._entry)

        if session.state is SessionState.READY:
            self._populate_toc()
            self.query_one("#content-text", PageView).focus()
        elif session.state is SessionState.ERROR:
            self._show_error(str(session.error))

    def on_unmount(self) -> None:
        self._unsubscribe()
        self._session.close()

    def _show_error(self, message: str) -> None:
        content = self.query_one("#content-text", PageView)
        content.add_class("failed")
        content.update(f"{message}\n\nPress Esc to return to the library.")
        self.notify(message, severity="error")

    # ── Header ─────────────────────────────────────

    def _on_session_event(self, event: SessionEvent, payload: Any) -> None:
        self._update_header()

    def _update_header(self) -> None:
        session = self._session
        theme = session.theme
        parts = [
            f" {self._entry.title}",
            session.layout_mode.label,
            theme.color_scheme.value.title(),
            f"{theme.font_family} {theme.font_scale}%",
        ]
        if session.state is SessionState.READY:
            parts.append(f"{self._entry.progress:.0%}")
        elif session.state is SessionState.LOADING:
            parts.append("Loading...")
        header = "  │  ".join(parts)
        self.query_one("#reader-header", Static).update(header)

    # ── Navigation ─────────────────────────────────

    async def route_key(self, direction: str, scope: str) -> None:
        await self.session.handle_input(direction, scope)

    async def action_turn(self, direction: str) -> None:
        await self.route_key(direction, WINDOW)

    # ── TOC ───────────────────────────────────────

    def _populate_toc(self) -> None:
        toc_list = self.query_one("#toc-list", ListView)
        toc_list.clear()
        for toc_entry in self.session.table_of_contents:
            item = ListItem(Static(toc_entry.label), classes="toc-item")
            item.data = toc_entry.target_ref  # type: ignore[attr-defined]
            toc_list.append(item)

    def action_toggle_toc(self) -> None:
        sidebar = self.query_one("#toc-sidebar")
        sidebar.toggle_class("visible")
        if sidebar.has_class("visible"):
            self.query_one("#toc-list", ListView).focus()
        else:
            self.query_one("#content-text", PageView).focus()

    @on(ListView.Selected, "#toc-list")
    async def on_toc_selected(self, event: ListView.Selected) -> None:
        target = getattr(event.item, "data", None)
        if target is None:
            return
        await self.session.jump_to(target)
        self.query_one("#toc-sidebar").remove_class("visible")
        self.query_one("#content-text", PageView).focus()

    # ── Layout & Theme ─────────────────────────────

    async def action_cycle_layout(self) -> None:
        session = self.session
        target = session.layout_mode.cycle()
        try:
            await session.change_layout_mode(target)
        except SessionStateError:
            return
        except SurfaceBindError as e:
            self.notify(str(e), severity="warning")
            if session.state is SessionState.ERROR:
                self._show_error(str(session.error))
        self._update_header()

    def action_cycle_colors(self) -> None:
        session = self.session
        session.apply_theme(color_scheme=next_color_scheme(session.theme.color_scheme))

    def action_font_bigger(self) -> None:
        session = self.session
        session.apply_theme(font_scale=session.theme.font_scale + self.FONT_STEP)

    def action_font_smaller(self) -> None:
        session = self.session
        session.apply_theme(font_scale=session.theme.font_scale - self.FONT_STEP)

    def action_cycle_font(self) -> None:
        session = self.session
        session.apply_theme(font_family=next_font_family(session.theme.font_family))

    # ── Back ───────────────────────────────────────

    def action_go_back(self) -> None:
        self.session.close()
        self.app.pop_screen()

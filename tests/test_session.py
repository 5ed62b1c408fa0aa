"""Tests for the reading session state machine."""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path

import pytest

from omniread.errors import LoadFailedError, SessionStateError, SurfaceBindError
from omniread.library.catalog import CatalogStore
from omniread.library.ingest import IngestionPipeline
from omniread.library.models import CatalogEntry, ColorScheme, FlowConfig, LayoutMode
from omniread.reader.input import SURFACE, WINDOW
from omniread.reader.persistence import (
    KEY_COLOR_SCHEME,
    KEY_LAYOUT_MODE,
    LOCATION_PREFIX,
    PROGRESS_PREFIX,
    SessionPersistence,
)
from omniread.reader.session import ReadingSession, SessionEvent, SessionState

from conftest import FakeContainer, make_document

SINGLE = FlowConfig.for_mode(LayoutMode.SINGLE_PAGE)
DOUBLE = FlowConfig.for_mode(LayoutMode.DOUBLE_PAGE)
SCROLL = FlowConfig.for_mode(LayoutMode.SCROLL)


def _entry(book_hash: str = "h1", title: str = "Book") -> CatalogEntry:
    return CatalogEntry(hash=book_hash, title=title, source_path=f"/books/{book_hash}.epub")


@pytest.fixture
def document():
    return make_document(chapters=3, paragraphs=4)


@pytest.fixture
def session(container, persistence, binder, document) -> ReadingSession:
    return ReadingSession(
        container, persistence, binder=binder, loader=lambda path: document, debounce=10.0
    )


@pytest.fixture
def events(session: ReadingSession) -> list:
    received: list = []
    session.subscribe(lambda event, payload: received.append((event, payload)))
    return received


class BlockingLoader:
    """Loader that holds chosen paths until released."""

    def __init__(self, document, blocked: set[str]) -> None:
        self.document = document
        self.blocked = blocked
        self.release = threading.Event()

    def __call__(self, path: Path):
        if path.stem in self.blocked:
            self.release.wait(timeout=5)
        return self.document


class TestOpen:
    @pytest.mark.asyncio
    async def test_open_reaches_ready(self, session, events, binder):
        await session.open(_entry())

        assert session.state is SessionState.READY
        assert session.current_location == "0:0"
        assert [t.label for t in session.table_of_contents] == [
            "Chapter 1",
            "Chapter 2",
            "Chapter 3",
        ]
        assert binder.current.flow == SINGLE
        states = [p for e, p in events if e is SessionEvent.STATE_CHANGED]
        assert states == [SessionState.LOADING, SessionState.READY]

    @pytest.mark.asyncio
    async def test_open_at_entry_location(self, session, binder):
        entry = _entry()
        entry.last_location = "2:1"
        await session.open(entry)
        assert ("display", "2:1") in binder.log
        assert session.current_location == "2:1"

    @pytest.mark.asyncio
    async def test_open_at_stored_location(self, session, store, binder):
        store.values[LOCATION_PREFIX + "h1"] = "1:3"
        await session.open(_entry())
        assert session.current_location == "1:3"

    @pytest.mark.asyncio
    async def test_opening_display_does_not_save(self, session, store, events):
        entry = _entry()
        await session.open(entry)
        assert entry.last_location is None
        assert not any(k.startswith(LOCATION_PREFIX) for k, _ in store.writes)
        assert not any(e is SessionEvent.RELOCATED for e, _ in events)

    @pytest.mark.asyncio
    async def test_load_failure(self, container, persistence, binder):
        def unreadable(path: Path):
            raise ValueError("not a zip file")

        session = ReadingSession(container, persistence, binder=binder, loader=unreadable)
        await session.open(_entry())

        assert session.state is SessionState.ERROR
        assert isinstance(session.error, LoadFailedError)
        assert "not a zip file" in str(session.error)
        assert session.surface is None
        assert binder.surfaces == []

    @pytest.mark.asyncio
    async def test_first_display_failure(self, session, binder):
        binder.fail_display_flows.add(SINGLE)
        await session.open(_entry())
        assert session.state is SessionState.ERROR
        assert binder.current.destroyed

    @pytest.mark.asyncio
    async def test_reopen_after_error(self, session, binder):
        binder.fail_flows.add(SINGLE)
        await session.open(_entry())
        assert session.state is SessionState.ERROR

        binder.fail_flows.clear()
        await session.open(_entry())
        assert session.state is SessionState.READY
        assert session.error is None


class TestCancellation:
    @pytest.mark.asyncio
    async def test_close_while_loading(self, container, persistence, binder, document, store):
        loader = BlockingLoader(document, {"slow"})
        session = ReadingSession(container, persistence, binder=binder, loader=loader)
        entry = _entry("slow")

        task = asyncio.create_task(session.open(entry))
        await asyncio.sleep(0)
        assert session.state is SessionState.LOADING

        session.close()
        loader.release.set()
        await task

        assert session.state is SessionState.CLOSED
        assert binder.surfaces == []
        assert entry.last_location is None
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_newer_open_wins(self, container, persistence, binder, document):
        loader = BlockingLoader(document, {"first"})
        session = ReadingSession(container, persistence, binder=binder, loader=loader)
        first, second = _entry("first"), _entry("second")

        task = asyncio.create_task(session.open(first))
        await asyncio.sleep(0)
        await session.open(second)
        loader.release.set()
        await task

        assert session.state is SessionState.READY
        assert session.entry is second
        assert first.last_location is None
        assert len(binder.surfaces) == 1

    @pytest.mark.asyncio
    async def test_task_cancelled(self, container, persistence, binder, document):
        loader = BlockingLoader(document, {"slow"})
        session = ReadingSession(container, persistence, binder=binder, loader=loader)

        task = asyncio.create_task(session.open(_entry("slow")))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        loader.release.set()

        assert session.state is SessionState.CLOSED
        assert binder.surfaces == []


class TestLayout:
    @pytest.mark.asyncio
    async def test_location_captured_before_teardown(self, session, binder):
        await session.open(_entry())
        await session.jump_to("1:2")
        binder.log.clear()

        await session.change_layout_mode(LayoutMode.DOUBLE_PAGE)

        kinds = [item[0] for item in binder.log]
        assert kinds.index("location") < kinds.index("destroy") < kinds.index("bind")
        assert ("display", "1:2") in binder.log
        assert binder.current.flow == DOUBLE
        assert session.current_location == "1:2"

    @pytest.mark.asyncio
    async def test_cycle_all_modes_keeps_location(self, session, binder, store, events):
        await session.open(_entry())
        await session.jump_to("2:3")

        for mode in (LayoutMode.SCROLL, LayoutMode.DOUBLE_PAGE, LayoutMode.SINGLE_PAGE):
            await session.change_layout_mode(mode)
            assert session.layout_mode is mode
            assert session.current_location == "2:3"
            assert binder.current.flow == FlowConfig.for_mode(mode)

        assert store.values[KEY_LAYOUT_MODE] == "single"
        layouts = [p for e, p in events if e is SessionEvent.LAYOUT_CHANGED]
        assert layouts == [LayoutMode.SCROLL, LayoutMode.DOUBLE_PAGE, LayoutMode.SINGLE_PAGE]

    @pytest.mark.asyncio
    async def test_same_mode_is_noop(self, session, binder):
        await session.open(_entry())
        await session.change_layout_mode("single")
        assert len(binder.surfaces) == 1

    @pytest.mark.asyncio
    async def test_requires_ready(self, session):
        with pytest.raises(SessionStateError):
            await session.change_layout_mode(LayoutMode.DOUBLE_PAGE)

    @pytest.mark.asyncio
    async def test_bind_failure_reverts(self, session, binder, store):
        await session.open(_entry())
        await session.jump_to("1:1")
        binder.fail_flows.add(DOUBLE)

        with pytest.raises(SurfaceBindError):
            await session.change_layout_mode(LayoutMode.DOUBLE_PAGE)

        assert session.state is SessionState.READY
        assert session.layout_mode is LayoutMode.SINGLE_PAGE
        assert binder.current.flow == SINGLE
        assert not binder.current.destroyed
        assert session.current_location == "1:1"
        assert KEY_LAYOUT_MODE not in store.values

    @pytest.mark.asyncio
    async def test_revert_failure_is_error(self, session, binder):
        await session.open(_entry())
        binder.fail_flows.update({DOUBLE, SINGLE})

        with pytest.raises(SurfaceBindError):
            await session.change_layout_mode(LayoutMode.DOUBLE_PAGE)

        assert session.state is SessionState.ERROR
        assert isinstance(session.error, LoadFailedError)
        assert session.surface is None

    @pytest.mark.asyncio
    async def test_theme_follows_new_surface(self, session, binder):
        await session.open(_entry())
        session.apply_theme(color_scheme=ColorScheme.SEPIA)
        await session.change_layout_mode(LayoutMode.SCROLL)
        assert binder.current.rules["body"]["background"] == "#f4ecd8"


class TestNavigation:
    @pytest.mark.asyncio
    async def test_navigate_saves_location(self, session, store, events):
        entry = _entry()
        await session.open(entry)

        assert await session.navigate("next") is True
        assert entry.last_location == "0:1"
        assert entry.progress > 0
        assert store.values[LOCATION_PREFIX + "h1"] == "0:1"
        assert PROGRESS_PREFIX + "h1" in store.values
        assert (SessionEvent.RELOCATED, "0:1") in events

    @pytest.mark.asyncio
    async def test_navigate_bounds(self, session):
        await session.open(_entry())
        assert await session.navigate("prev") is False
        with pytest.raises(ValueError):
            await session.navigate("sideways")

    @pytest.mark.asyncio
    async def test_navigate_when_closed(self, session):
        assert await session.navigate("next") is False
        assert await session.jump_to("1:0") is False

    @pytest.mark.asyncio
    async def test_jump_to(self, session):
        entry = _entry()
        await session.open(entry)
        assert await session.jump_to("2:0") is True
        assert session.current_location == "2:0"
        assert entry.last_location == "2:0"

    @pytest.mark.asyncio
    async def test_one_press_one_page(self, session):
        await session.open(_entry())
        # Both the page view and the screen see the same key press
        assert await session.handle_input("next", SURFACE) is True
        assert await session.handle_input("next", WINDOW) is False
        assert session.current_location == "0:1"

    @pytest.mark.asyncio
    async def test_unfocused_scope_ignored(self, session):
        await session.open(_entry())
        session.focus_input(SURFACE)
        assert await session.handle_input("next", WINDOW) is False
        assert await session.handle_input("next", SURFACE) is True
        assert await session.handle_input("next", SURFACE) is True
        assert session.current_location == "0:2"

    @pytest.mark.asyncio
    async def test_input_before_ready(self, session):
        assert await session.handle_input("next", SURFACE) is False


class TestThemeAndClose:
    @pytest.mark.asyncio
    async def test_apply_theme(self, session, binder, store, events):
        await session.open(_entry())
        theme = session.apply_theme(color_scheme=ColorScheme.LIGHT, font_scale=130)

        assert theme.color_scheme is ColorScheme.LIGHT
        assert binder.current.rules["body"]["font-size"] == "130%"
        assert store.values[KEY_COLOR_SCHEME] == "light"
        assert (SessionEvent.THEME_CHANGED, theme) in events

    @pytest.mark.asyncio
    async def test_theme_is_global(self, session, container, binder, store, document):
        session.apply_theme(color_scheme=ColorScheme.SEPIA)
        other = ReadingSession(
            container, SessionPersistence(store), binder=binder, loader=lambda p: document
        )
        assert other.theme.color_scheme is ColorScheme.SEPIA

    @pytest.mark.asyncio
    async def test_close_releases_everything(self, session, binder):
        await session.open(_entry())
        surface = binder.current
        router = session.input

        session.close()

        assert session.state is SessionState.CLOSED
        assert surface.destroyed
        assert session.surface is None
        assert router is not None and not router.attached
        assert await session.handle_input("next", SURFACE) is False

    @pytest.mark.asyncio
    async def test_close_twice(self, session, events):
        await session.open(_entry())
        session.close()
        session.close()
        closed = [p for e, p in events if p is SessionState.CLOSED]
        assert len(closed) == 1

    @pytest.mark.asyncio
    async def test_late_relocation_ignored(self, session, binder):
        entry = _entry()
        await session.open(entry)
        surface = binder.current
        session.close()

        surface.position = 5
        surface._moved()
        assert entry.last_location is None

    @pytest.mark.asyncio
    async def test_listener_errors_contained(self, session):
        def broken(event, payload):
            raise RuntimeError("listener bug")

        session.subscribe(broken)
        await session.open(_entry())
        assert session.state is SessionState.READY

    @pytest.mark.asyncio
    async def test_unsubscribe(self, session):
        received = []
        unsubscribe = session.subscribe(lambda e, p: received.append(e))
        unsubscribe()
        await session.open(_entry())
        assert received == []


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_ingest_read_and_switch_layout(self, db, make_epub):
        f = make_epub("book1.epub", title="Foo", author="Bar", chapters=3, paragraphs=12)
        catalog = CatalogStore(db)
        report = await IngestionPipeline(catalog).ingest_many([f])
        assert len(catalog) == 1
        entry = report.added[0]
        assert (entry.title, entry.author) == ("Foo", "Bar")

        persistence = SessionPersistence(db)
        session = ReadingSession(FakeContainer(), persistence)
        await session.open(entry)
        assert session.state is SessionState.READY
        assert session.current_location == "0:0"

        for _ in range(3):
            assert await session.navigate("next") is True
        location = session.current_location
        assert location != "0:0"
        assert persistence.load_location(entry.hash) == location
        assert entry.last_location == location

        await session.change_layout_mode(LayoutMode.DOUBLE_PAGE)
        assert session.current_location == location
        session.close()

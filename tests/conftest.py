"""Shared fixtures for tests."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from types import SimpleNamespace
from typing import Optional

import pytest

from omniread.config import AppConfig
from omniread.library.catalog import CatalogStore
from omniread.library.database import Database
from omniread.library.models import BookContent, Chapter, FlowConfig, TocEntry, make_bookmark
from omniread.reader.persistence import SessionPersistence
from omniread.reader.surface import RELOCATED, RenderSurface


@pytest.fixture
def db(tmp_path: Path) -> Database:
    db_path = tmp_path / "test.db"
    database = Database(db_path)
    yield database
    database.close()


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
    )


@pytest.fixture
def catalog(db: Database) -> CatalogStore:
    return CatalogStore(db)


# ── EPUB files ─────────────────────────────────────


def write_epub(
    path: Path,
    title: Optional[str] = "Test Book",
    author: Optional[str] = "Test Author",
    chapters: int = 2,
    paragraphs: int = 2,
    identifier: str = "test123",
    cover: Optional[bytes] = None,
) -> Path:
    from ebooklib import epub

    book = epub.EpubBook()
    book.set_identifier(identifier)
    if title:
        book.set_title(title)
    book.set_language("en")
    if author:
        book.add_author(author)
    if cover is not None:
        book.set_cover("cover.png", cover)

    items = []
    for n in range(1, chapters + 1):
        c = epub.EpubHtml(title=f"Chapter {n}", file_name=f"ch{n}.xhtml", lang="en")
        body = "".join(
            f"<p>Chapter {n} paragraph {p}.</p>" for p in range(1, paragraphs + 1)
        )
        c.content = f"<html><body><h1>Chapter {n}</h1>{body}</body></html>"
        book.add_item(c)
        items.append(c)

    book.toc = [epub.Link(c.file_name, c.title, f"ch{i}") for i, c in enumerate(items, 1)]
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.spine = items

    epub.write_epub(str(path), book)
    return path


@pytest.fixture
def make_epub(tmp_path: Path):
    def _make(name: str = "book.epub", **kwargs) -> Path:
        return write_epub(tmp_path / name, **kwargs)

    return _make


# ── Reader fakes ───────────────────────────────────


def make_document(chapters: int = 3, paragraphs: int = 4) -> BookContent:
    chs = [
        Chapter(
            index=i,
            title=f"Chapter {i + 1}",
            paragraphs=[f"Paragraph {p} of chapter {i + 1}." for p in range(paragraphs)],
        )
        for i in range(chapters)
    ]
    toc = [TocEntry(ch.title, make_bookmark(ch.index)) for ch in chs]
    return BookContent(title="Fake Book", chapters=chs, toc=toc)


class FakeContainer:
    """Stands in for the Static widget a surface draws into."""

    def __init__(self, width: int = 80, height: int = 10) -> None:
        self.size = SimpleNamespace(width=width, height=height)
        self.styles = SimpleNamespace(color=None, background=None)
        self.content = ""
        self.updates = 0

    def update(self, content: str) -> None:
        self.content = content
        self.updates += 1


class FakeSurface(RenderSurface):
    """Moves one paragraph at a time and records what the session did to it."""

    def __init__(self, document: BookContent, container, flow: FlowConfig, log: list) -> None:
        super().__init__()
        self.document = document
        self.container = container
        self.flow = flow
        self.log = log
        self.refs = [
            (ch.index, p) for ch in document.chapters for p in range(len(ch.paragraphs))
        ] or [(0, 0)]
        self.position = 0
        self.destroyed = False
        self.rules: dict = {}
        self.fail_display = False
        log.append(("bind", flow))

    def _ref_index(self, bookmark: Optional[str]) -> int:
        if not bookmark:
            return 0
        ch, _, para = bookmark.partition(":")
        ref = (int(ch), int(para or 0))
        return self.refs.index(ref) if ref in self.refs else 0

    def _moved(self) -> None:
        self._emit(RELOCATED, make_bookmark(*self.refs[self.position]), self.position / len(self.refs))

    async def display(self, bookmark: Optional[str] = None) -> None:
        self.log.append(("display", bookmark))
        if self.fail_display:
            raise RuntimeError("display failed")
        self.position = self._ref_index(bookmark)
        self._moved()

    async def next(self) -> bool:
        if self.position + 1 >= len(self.refs):
            return False
        self.position += 1
        self._moved()
        return True

    async def prev(self) -> bool:
        if self.position == 0:
            return False
        self.position -= 1
        self._moved()
        return True

    def current_location(self) -> Optional[str]:
        if self.destroyed:
            raise RuntimeError("surface destroyed")
        self.log.append(("location",))
        return make_bookmark(*self.refs[self.position])

    def apply_theme(self, rules: dict) -> None:
        self.rules = rules

    def destroy(self) -> None:
        self.log.append(("destroy", self.flow))
        self.destroyed = True
        super().destroy()


class FakeBinder:
    """Binder that hands out FakeSurfaces, optionally failing for some flows."""

    def __init__(self) -> None:
        self.log: list = []
        self.surfaces: list[FakeSurface] = []
        self.fail_flows: set[FlowConfig] = set()
        self.fail_display_flows: set[FlowConfig] = set()

    def __call__(self, document: BookContent, container, flow: FlowConfig) -> FakeSurface:
        if flow in self.fail_flows:
            self.log.append(("bind-failed", flow))
            raise RuntimeError(f"cannot bind {flow.flow}/{flow.spread}")
        surface = FakeSurface(document, container, flow, self.log)
        surface.fail_display = flow in self.fail_display_flows
        self.surfaces.append(surface)
        return surface

    @property
    def current(self) -> FakeSurface:
        return self.surfaces[-1]


class MemoryStore:
    """Settings store kept in a dict; ``fail`` makes every write raise."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.fail = False
        self.writes: list[tuple[str, Optional[str]]] = []

    def get_setting(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set_setting(self, key: str, value: str) -> None:
        if self.fail:
            raise sqlite3.OperationalError("database is locked")
        self.writes.append((key, value))
        self.values[key] = value

    def remove_setting(self, key: str) -> None:
        if self.fail:
            raise sqlite3.OperationalError("database is locked")
        self.writes.append((key, None))
        self.values.pop(key, None)


@pytest.fixture
def container() -> FakeContainer:
    return FakeContainer()


@pytest.fixture
def binder() -> FakeBinder:
    return FakeBinder()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def persistence(store: MemoryStore) -> SessionPersistence:
    return SessionPersistence(store)

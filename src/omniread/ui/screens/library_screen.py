from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from textual import on
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen, Screen
from textual.widgets import (
    Button,
    DataTable,
    DirectoryTree,
    Footer,
    Header,
    Label,
    Static,
)

from omniread.library.ingest import is_document
from omniread.library.models import CatalogEntry

if TYPE_CHECKING:
    from omniread.app import OmniReadApp

SORT_OPTIONS = [
    ("added_at", "Recently Added"),
    ("title", "Title A-Z"),
    ("author", "Author A-Z"),
]


def _sorted_entries(entries: Iterable[CatalogEntry], key: str) -> list[CatalogEntry]:
    if key == "added_at":
        return sorted(entries, key=lambda e: e.added_at, reverse=True)
    return sorted(entries, key=lambda e: getattr(e, key).lower())


class BookDirectoryTree(DirectoryTree):
    def filter_paths(self, paths: Iterable[Path]) -> Iterable[Path]:
        return sorted(
            [p for p in paths if p.is_dir() or is_document(p)],
            key=lambda p: (not p.is_dir(), p.name.lower()),
        )


class FilePickerScreen(ModalScreen[str | None]):
    """Pick one EPUB, or press ``a`` to add every file in the highlighted folder."""

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
        Binding("a", "add_folder", "Add folder"),
    ]

    DEFAULT_CSS = """
    FilePickerScreen {
        align: center middle;
    }
    #file-picker-dialog {
        width: 80%;
        height: 80%;
        background: $surface;
        border: solid $primary;
        padding: 1 2;
    }
    #file-picker-title {
        text-align: center;
        text-style: bold;
        margin-bottom: 1;
    }
    #file-tree {
        height: 1fr;
        margin-bottom: 1;
    }
    #file-picker-buttons {
        align: center middle;
        height: 3;
    }
    #file-picker-buttons Button {
        margin: 0 2;
    }
    """

    def __init__(self, start_path: str = "~") -> None:
        super().__init__()
        self._start = str(Path(start_path).expanduser().resolve())
        self._folder: str | None = None

    def compose(self) -> ComposeResult:
        with Vertical(id="file-picker-dialog"):
            yield Label("Select an EPUB file, or a folder with [a]", id="file-picker-title")
            yield BookDirectoryTree(self._start, id="file-tree")
            with Horizontal(id="file-picker-buttons"):
                yield Button("Add folder [a]", variant="primary", id="fp-folder")
                yield Button("Cancel [Esc]", variant="default", id="fp-cancel")

    def on_mount(self) -> None:
        self.query_one("#file-tree", BookDirectoryTree).focus()

    @on(DirectoryTree.FileSelected)
    def on_file_selected(self, event: DirectoryTree.FileSelected) -> None:
        self.dismiss(str(event.path))

    @on(DirectoryTree.DirectorySelected)
    def on_directory_selected(self, event: DirectoryTree.DirectorySelected) -> None:
        self._folder = str(event.path)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "fp-folder":
            self.action_add_folder()
        else:
            self.dismiss(None)

    def action_add_folder(self) -> None:
        self.dismiss(self._folder or self._start)

    def action_cancel(self) -> None:
        self.dismiss(None)


class ConfirmClearScreen(ModalScreen[bool]):
    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
        Binding("y", "confirm", "Yes"),
        Binding("n", "cancel", "No"),
    ]

    DEFAULT_CSS = """
    ConfirmClearScreen {
        align: center middle;
    }
    """

    def __init__(self, count: int) -> None:
        super().__init__()
        self._count = count

    def compose(self) -> ComposeResult:
        with Vertical(id="confirm-dialog"):
            yield Label(
                f"Remove all {self._count} books from the library?",
                id="confirm-msg",
            )
            with Horizontal(id="confirm-buttons"):
                yield Button("Clear (y)", variant="error", id="cc-yes")
                yield Button("Cancel (n)", variant="default", id="cc-no")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "cc-yes")

    def action_confirm(self) -> None:
        self.dismiss(True)

    def action_cancel(self) -> None:
        self.dismiss(False)


class LibraryScreen(Screen):
    BINDINGS = [
        Binding("A", "add_book", "Add", priority=True),
        Binding("C", "clear_library", "Clear", priority=True),
        Binding("s", "cycle_sort", "Sort"),
        Binding("q", "quit_app", "Quit"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._sort_index = 0

    @property
    def ow(self) -> OmniReadApp:
        return self.app  # type: ignore[return-value]

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("", id="library-header")
        yield Static("Your library is empty. Press A to add EPUB files.", id="empty-library")
        yield DataTable(id="book-table")
        yield Static("", id="ingest-status")
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#book-table", DataTable)
        table.cursor_type = "row"
        table.add_columns("Title", "Author", "Progress", "Added", "Cover")
        self.refresh_books()
        table.focus()

    def on_screen_resume(self) -> None:
        self.refresh_books()
        self.query_one("#book-table", DataTable).focus()

    def refresh_books(self) -> None:
        table = self.query_one("#book-table", DataTable)
        table.clear()

        sort_key, sort_label = SORT_OPTIONS[self._sort_index]
        entries = _sorted_entries(self.ow.catalog.list_all(), sort_key)
        for entry in entries:
            progress = self.ow.persistence.load_progress(entry.hash)
            table.add_row(
                entry.title,
                entry.author,
                f"{progress:.0%}",
                datetime.fromtimestamp(entry.added_at).strftime("%Y-%m-%d"),
                "yes" if entry.cover_image else "",
                key=entry.hash,
            )

        self.query_one("#empty-library", Static).set_class(not entries, "visible")
        self.query_one("#library-header", Static).update(
            f" OmniRead Library  ({len(entries)} books)  Sort: {sort_label}"
        )

    def set_ingest_status(self, message: str) -> None:
        status = self.query_one("#ingest-status", Static)
        status.update(message)
        status.set_class(bool(message), "busy")

    # ── Add / Clear ─────────────────────────────

    def action_add_book(self) -> None:
        self.app.push_screen(
            FilePickerScreen(self.ow.config.library_start_dir),
            callback=self._on_file_picked,
        )

    def _on_file_picked(self, result: str | None) -> None:
        if result:
            self.ow.import_books([result])

    def action_clear_library(self) -> None:
        count = len(self.ow.catalog)
        if count == 0:
            return
        self.app.push_screen(ConfirmClearScreen(count), callback=self._on_clear_confirmed)

    def _on_clear_confirmed(self, confirmed: bool | None) -> None:
        if not confirmed:
            return
        self.ow.clear_library()
        self.refresh_books()
        self.notify("Library cleared")

    # ── Open / Sort / Quit ──────────────────────

    @on(DataTable.RowSelected, "#book-table")
    def on_row_selected(self, event: DataTable.RowSelected) -> None:
        entry = self.ow.catalog.get(str(event.row_key.value))
        if entry:
            if not Path(entry.source_path).exists():
                self.notify(f"File not found: {entry.source_path}", severity="error")
                return
            self.ow.open_book(entry)

    def action_cycle_sort(self) -> None:
        self._sort_index = (self._sort_index + 1) % len(SORT_OPTIONS)
        self.refresh_books()

    async def action_quit_app(self) -> None:
        await self.ow.action_quit()

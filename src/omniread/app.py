"""OmniRead - terminal EPUB library and reader."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Iterable

from textual import work
from textual.app import App

from omniread.config import AppConfig, load_config
from omniread.library.catalog import CatalogStore
from omniread.library.database import Database
from omniread.library.ingest import (
    IngestionPipeline,
    IngestOutcome,
    IngestStatus,
    collect_paths,
)
from omniread.library.models import CatalogEntry, LayoutMode, Theme
from omniread.reader.persistence import SessionPersistence
from omniread.reader.session import ReadingSession
from omniread.ui.screens.library_screen import LibraryScreen
from omniread.ui.screens.reader_screen import PageView, ReaderScreen
from omniread.ui.themes import APP_CSS

log = logging.getLogger(__name__)


class OmniReadApp(App):
    """An EPUB library with content-hash dedup and a paginated reader."""

    TITLE = "OmniRead"
    CSS = APP_CSS

    def __init__(
        self,
        config: AppConfig | None = None,
        import_paths: Iterable[str] | None = None,
    ) -> None:
        super().__init__()
        self.config = config or load_config()
        self.db = Database(self.config.db_path)
        self.catalog = CatalogStore(self.db)
        self.pipeline = IngestionPipeline(self.catalog)
        self.persistence = SessionPersistence(
            self.db,
            default_theme=Theme(
                color_scheme=self.config.default_color_scheme,
                font_scale=self.config.default_font_scale,
                font_family=self.config.default_font_family,
            ),
            default_layout=LayoutMode(self.config.default_layout_mode),
        )
        self._import_paths = list(import_paths or [])
        self._library: LibraryScreen | None = None

    def on_mount(self) -> None:
        self._library = LibraryScreen()
        self.push_screen(self._library)
        if self._import_paths:
            self.import_books(self._import_paths)

    def new_session(self, container: PageView) -> ReadingSession:
        return ReadingSession(
            container, self.persistence, debounce=self.config.nav_debounce
        )

    # ── Library ─────────────────────────────────────

    @work(group="ingest")
    async def import_books(self, paths: list[str]) -> None:
        """Ingest files and folders, reporting each outcome as it lands."""
        candidates = collect_paths(paths)
        if not candidates:
            self.notify("Nothing to import", severity="warning")
            return

        total = len(candidates)
        done = 0

        def on_outcome(outcome: IngestOutcome) -> None:
            nonlocal done
            done += 1
            name = Path(outcome.path).name
            if outcome.status is IngestStatus.DUPLICATE:
                self.notify(f"Already in library: {name}")
            elif outcome.status is IngestStatus.FAILED:
                self.notify(outcome.message, severity="error")
            elif outcome.degraded:
                self.notify(f"Added {name} without metadata", severity="warning")
            self._set_ingest_status(f"Processing {done}/{total}...")

        self._set_ingest_status(f"Processing 0/{total}...")
        try:
            report = await self.pipeline.ingest_many(candidates, on_outcome=on_outcome)
        finally:
            self._set_ingest_status("")

        if report.added:
            self.notify(f"Added {len(report.added)} book(s)")
        if self._library is not None and self._library.is_mounted:
            self._library.refresh_books()

    def _set_ingest_status(self, message: str) -> None:
        if self._library is not None and self._library.is_mounted:
            self._library.set_ingest_status(message)

    def clear_library(self) -> None:
        for entry in self.catalog.list_all():
            self.persistence.forget(entry.hash)
        self.catalog.clear()

    def open_book(self, entry: CatalogEntry) -> None:
        """Open a book in the reader. Called from LibraryScreen."""
        entry.progress = self.persistence.load_progress(entry.hash)
        self.push_screen(ReaderScreen(entry, self.new_session))

    async def action_quit(self) -> None:
        if isinstance(self.screen, ReaderScreen):
            self.screen.session.close()
        self.workers.cancel_group(self, "ingest")
        if not self.persistence.flush():
            log.warning("Exiting with %d unsaved settings", len(self.persistence.pending))
        self.db.close()
        self.exit()


def _setup_logging(config: AppConfig) -> None:
    handler = logging.FileHandler(config.log_path, encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root = logging.getLogger("omniread")
    root.setLevel(config.log_level)
    root.addHandler(handler)


def main() -> None:
    config = load_config()
    _setup_logging(config)

    app = OmniReadApp(config=config, import_paths=sys.argv[1:])
    app.run()


if __name__ == "__main__":
    main()

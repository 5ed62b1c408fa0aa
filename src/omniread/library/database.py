"""SQLite database for the catalog and reader settings."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

from .models import CatalogEntry

_SCHEMA = """
CREATE TABLE IF NOT EXISTS books (
    hash TEXT PRIMARY KEY,
    source_path TEXT NOT NULL,
    title TEXT NOT NULL,
    author TEXT NOT NULL,
    cover_image TEXT,
    added_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


class Database:
    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ── Books ──────────────────────────────────────────────

    def add_book(self, entry: CatalogEntry) -> None:
        """Insert a new catalog row. Raises sqlite3.IntegrityError on a known hash."""
        with self._conn:
            self._conn.execute(
                """INSERT INTO books
                   (hash, source_path, title, author, cover_image, added_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    entry.hash,
                    entry.source_path,
                    entry.title,
                    entry.author,
                    entry.cover_image,
                    entry.added_at,
                ),
            )

    def get_book(self, book_hash: str) -> Optional[CatalogEntry]:
        row = self._conn.execute(
            "SELECT * FROM books WHERE hash = ?", (book_hash,)
        ).fetchone()
        return self._row_to_entry(row) if row else None

    def list_books(self) -> list[CatalogEntry]:
        rows = self._conn.execute(
            "SELECT * FROM books ORDER BY added_at ASC, rowid ASC"
        ).fetchall()
        return [self._row_to_entry(r) for r in rows]

    def clear_books(self) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM books")

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> CatalogEntry:
        return CatalogEntry(
            hash=row["hash"],
            source_path=row["source_path"],
            title=row["title"],
            author=row["author"],
            cover_image=row["cover_image"],
            added_at=row["added_at"],
        )

    # ── Settings ───────────────────────────────────────────

    def get_setting(self, key: str) -> Optional[str]:
        row = self._conn.execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, str(value)),
            )

    def remove_setting(self, key: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM settings WHERE key = ?", (key,))

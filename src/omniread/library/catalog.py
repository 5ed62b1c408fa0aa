"""Catalog store: the hash-keyed record of every book in the library."""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional, Protocol

from omniread.errors import DuplicateBookError

from .models import CatalogEntry

log = logging.getLogger(__name__)


class CatalogBackend(Protocol):
    def add_book(self, entry: CatalogEntry) -> None: ...

    def list_books(self) -> list[CatalogEntry]: ...

    def clear_books(self) -> None: ...


class CatalogStore:
    """Dedup authority over the persisted catalog.

    Writes go to the backend first; the in-memory snapshot is only replaced
    once the write has succeeded, so readers never see an unsaved entry.
    ``list_all`` returns an immutable tuple that later writes do not touch.
    """

    def __init__(self, backend: CatalogBackend) -> None:
        self._backend = backend
        self._snapshot: tuple[CatalogEntry, ...] = tuple(backend.list_books())
        self._by_hash = {e.hash: e for e in self._snapshot}

    def __len__(self) -> int:
        return len(self._snapshot)

    def __contains__(self, book_hash: object) -> bool:
        return book_hash in self._by_hash

    def get(self, book_hash: str) -> Optional[CatalogEntry]:
        return self._by_hash.get(book_hash)

    def list_all(self) -> tuple[CatalogEntry, ...]:
        return self._snapshot

    def put(self, entry: CatalogEntry) -> None:
        if entry.hash in self._by_hash:
            raise DuplicateBookError(entry.source_path, entry.hash)
        try:
            self._backend.add_book(entry)
        except sqlite3.IntegrityError as e:
            raise DuplicateBookError(entry.source_path, entry.hash) from e
        self._snapshot = self._snapshot + (entry,)
        self._by_hash = {**self._by_hash, entry.hash: entry}
        log.info("Cataloged %s (%s)", entry.title, entry.hash)

    def clear(self) -> None:
        self._backend.clear_books()
        self._snapshot = ()
        self._by_hash = {}
        log.info("Catalog cleared")

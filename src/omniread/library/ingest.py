"""Ingestion pipeline: file path -> content hash -> dedup check -> metadata -> catalog."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional

from omniread.errors import (
    DuplicateBookError,
    HashFailedError,
    IngestError,
    UnsupportedExtensionError,
)
from omniread.parsers.base import extract_metadata

from .catalog import CatalogStore
from .hashing import compute_content_hash
from .models import UNKNOWN_AUTHOR, BookMetadata, CatalogEntry

log = logging.getLogger(__name__)

DOCUMENT_EXTENSION = ".epub"

Hasher = Callable[[Path], str]
MetadataExtractor = Callable[[Path], BookMetadata]


class IngestStatus(str, Enum):
    ADDED = "added"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass
class IngestOutcome:
    path: str
    status: IngestStatus
    entry: Optional[CatalogEntry] = None
    message: str = ""
    degraded: bool = False  # metadata fell back to defaults


@dataclass
class IngestReport:
    """Summary of one batch, in input order."""

    outcomes: list[IngestOutcome] = field(default_factory=list)

    @property
    def added(self) -> list[CatalogEntry]:
        return [o.entry for o in self.outcomes if o.entry is not None]

    @property
    def duplicates(self) -> int:
        return sum(1 for o in self.outcomes if o.status is IngestStatus.DUPLICATE)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status is IngestStatus.FAILED)


def is_document(path: Path) -> bool:
    return path.suffix.lower() == DOCUMENT_EXTENSION


def collect_paths(paths: Iterable[str | Path]) -> list[Path]:
    """Expand folders into the files beneath them, keeping input order.

    Files of any type are returned; the pipeline skips what it cannot read.
    """
    collected: list[Path] = []
    for raw in paths:
        path = Path(raw).expanduser()
        if path.is_dir():
            collected.extend(
                sorted(
                    (p for p in path.rglob("*") if p.is_file()),
                    key=lambda p: str(p).lower(),
                )
            )
        else:
            collected.append(path)
    return collected


class IngestionPipeline:
    def __init__(
        self,
        catalog: CatalogStore,
        hasher: Hasher = compute_content_hash,
        extractor: MetadataExtractor = extract_metadata,
    ) -> None:
        self._catalog = catalog
        self._hasher = hasher
        self._extractor = extractor

    async def ingest(self, path: str | Path) -> CatalogEntry:
        """Catalog a single file.

        Raises:
            UnsupportedExtensionError: Not an EPUB.
            HashFailedError: The file could not be hashed.
            DuplicateBookError: The content hash is already cataloged.
        """
        entry, _ = await self._ingest_one(Path(path), seen=set())
        return entry

    async def ingest_many(
        self,
        paths: Iterable[str | Path],
        on_outcome: Optional[Callable[[IngestOutcome], None]] = None,
    ) -> IngestReport:
        """Ingest paths one at a time, in order. Errors never stop the batch.

        Paths that are not EPUBs are skipped and left out of the report.
        """
        report = IngestReport()
        seen: set[str] = set()

        for raw in paths:
            path = Path(raw)
            try:
                entry, degraded = await self._ingest_one(path, seen)
            except UnsupportedExtensionError:
                log.debug("Skipping non-EPUB %s", path)
                continue
            except DuplicateBookError as e:
                outcome = IngestOutcome(
                    str(path), IngestStatus.DUPLICATE, message=str(e)
                )
            except IngestError as e:
                outcome = IngestOutcome(str(path), IngestStatus.FAILED, message=str(e))
            except Exception as e:
                log.exception("Unexpected error ingesting %s", path)
                outcome = IngestOutcome(
                    str(path), IngestStatus.FAILED, message=f"Failed to add {path.name}: {e}"
                )
            else:
                outcome = IngestOutcome(
                    str(path), IngestStatus.ADDED, entry=entry, degraded=degraded
                )

            report.outcomes.append(outcome)
            if on_outcome:
                on_outcome(outcome)

        log.info(
            "Batch done: %d added, %d duplicate, %d failed",
            len(report.added),
            report.duplicates,
            report.failed,
        )
        return report

    async def _ingest_one(
        self, path: Path, seen: set[str]
    ) -> tuple[CatalogEntry, bool]:
        if not is_document(path):
            raise UnsupportedExtensionError(str(path))

        fallback_title = path.stem
        try:
            path = path.expanduser().resolve()
            book_hash = await asyncio.to_thread(self._hasher, path)
        except Exception as e:
            log.warning("Hash failed for %s: %s", path, e)
            raise HashFailedError(str(path), f"Cannot read {path.name}: {e}") from e

        # Check for duplicate before reading metadata (cheaper)
        if book_hash in seen or book_hash in self._catalog:
            raise DuplicateBookError(str(path), book_hash)

        degraded = False
        try:
            meta = await asyncio.to_thread(self._extractor, path)
        except Exception as e:
            log.warning("Metadata degraded for %s: %s", path, e)
            meta = BookMetadata()
            degraded = True

        entry = CatalogEntry(
            hash=book_hash,
            title=meta.title or fallback_title,
            author=meta.author or UNKNOWN_AUTHOR,
            cover_image=meta.cover_image,
            source_path=str(path),
            added_at=time.time(),
        )
        try:
            self._catalog.put(entry)
        except sqlite3.Error as e:
            log.error("Could not save %s: %s", path, e)
            raise IngestError(str(path), f"Could not save {path.name}: {e}") from e
        seen.add(book_hash)
        return entry, degraded

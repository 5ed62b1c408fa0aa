"""Exception types shared by ingestion, reading sessions and persistence."""

from __future__ import annotations


class OmniReadError(Exception):
    """Base class for all library and reader errors."""


# ── Ingestion ──────────────────────────────────────


class IngestError(OmniReadError):
    def __init__(self, path: str, message: str = "") -> None:
        super().__init__(message or path)
        self.path = path


class UnsupportedExtensionError(IngestError):
    """Not an EPUB. Batches skip these without reporting them."""


class HashFailedError(IngestError):
    """The file could not be read to compute its content hash."""


class DuplicateBookError(IngestError):
    def __init__(self, path: str, book_hash: str) -> None:
        super().__init__(path, f"Already in library: {path}")
        self.book_hash = book_hash


# ── Reading sessions ───────────────────────────────


class SessionError(OmniReadError):
    pass


class LoadFailedError(SessionError):
    """The document is unreadable or the first display failed. Terminal."""


class SurfaceBindError(SessionError):
    """A layout change could not bind a new render surface."""


class SessionStateError(SessionError):
    """The operation is not valid in the session's current state."""


# ── Persistence ────────────────────────────────────


class PersistenceError(OmniReadError):
    """Raised by settings stores; never propagated past SessionPersistence."""

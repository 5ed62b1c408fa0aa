"""Base parser interface for document formats."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from omniread.library.models import BookContent, BookMetadata


class BaseParser(ABC):
    """Abstract base for format-specific parsers."""

    SUPPORTED_EXTENSIONS: tuple[str, ...] = ()

    @abstractmethod
    def parse(self, file_path: Path) -> BookContent:
        """Parse a file and return structured book content."""

    @abstractmethod
    def extract_metadata(self, file_path: Path) -> BookMetadata:
        """Read title, author and cover without parsing the whole book."""

    @classmethod
    def can_handle(cls, file_path: Path) -> bool:
        return file_path.suffix.lower() in cls.SUPPORTED_EXTENSIONS


def get_parser(file_path: Path) -> BaseParser:
    """Return the appropriate parser for a file."""
    from omniread.parsers.epub_parser import EpubParser

    parsers: list[type[BaseParser]] = [EpubParser]
    for parser_cls in parsers:
        if parser_cls.can_handle(file_path):
            return parser_cls()

    supported = []
    for p in parsers:
        supported.extend(p.SUPPORTED_EXTENSIONS)
    raise ValueError(
        f"Unsupported format: {file_path.suffix}. Supported: {', '.join(supported)}"
    )


def load_document(file_path: Path) -> BookContent:
    return get_parser(file_path).parse(file_path)


def extract_metadata(file_path: Path) -> BookMetadata:
    return get_parser(file_path).extract_metadata(file_path)

"""Data models for the book library and reader."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

UNKNOWN_AUTHOR = "Unknown Author"

FONT_SCALE_MIN = 50
FONT_SCALE_MAX = 200


@dataclass
class CatalogEntry:
    hash: str  # content hash, see library.hashing
    title: str
    source_path: str
    author: str = UNKNOWN_AUTHOR
    cover_image: Optional[str] = None  # data: URI
    added_at: float = field(default_factory=time.time)
    last_location: Optional[str] = None  # opaque bookmark
    progress: float = 0.0  # 0.0 - 1.0


@dataclass
class BookMetadata:
    """Best-effort fields pulled out of an EPUB package. Any may be missing."""

    title: Optional[str] = None
    author: Optional[str] = None
    cover_image: Optional[str] = None


@dataclass
class Chapter:
    """Parsed chapter content."""

    index: int
    title: str
    paragraphs: list[str] = field(default_factory=list)  # plain text paragraphs


def make_bookmark(chapter_index: int, paragraph_index: int = 0, offset: int = 0) -> str:
    """``offset`` counts the non-space characters of the paragraph before the mark."""
    if offset:
        return f"{chapter_index}:{paragraph_index}:{offset}"
    return f"{chapter_index}:{paragraph_index}"


def parse_position(bookmark: Optional[str]) -> Optional[tuple[int, int, int]]:
    """Return (chapter, paragraph, offset) or None if the bookmark is malformed."""
    if not bookmark:
        return None
    parts = bookmark.split(":")
    if len(parts) > 3:
        return None
    try:
        values = [int(p) for p in parts]
    except ValueError:
        return None
    if any(v < 0 for v in values):
        return None
    values += [0] * (3 - len(values))
    return values[0], values[1], values[2]


def parse_bookmark(bookmark: Optional[str]) -> Optional[tuple[int, int]]:
    """Return (chapter, paragraph) or None if the bookmark is malformed."""
    position = parse_position(bookmark)
    if position is None:
        return None
    return position[0], position[1]


@dataclass(frozen=True)
class TocEntry:
    label: str
    target_ref: str  # bookmark


@dataclass
class BookContent:
    """Full parsed book structure."""

    title: str
    chapters: list[Chapter] = field(default_factory=list)
    toc: list[TocEntry] = field(default_factory=list)


class ColorScheme(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    SEPIA = "sepia"


class LayoutMode(str, Enum):
    SCROLL = "scroll"
    SINGLE_PAGE = "single"
    DOUBLE_PAGE = "double"

    @property
    def label(self) -> str:
        return {"scroll": "Scroll", "single": "Single", "double": "Double"}[self.value]

    def cycle(self) -> LayoutMode:
        modes = list(LayoutMode)
        return modes[(modes.index(self) + 1) % len(modes)]


@dataclass(frozen=True)
class FlowConfig:
    """Layout-engine parameters: continuous scrolling or pages, with or without spreads."""

    flow: str = "paginated"  # "scrolled" | "paginated"
    spread: str = "none"  # "none" | "always"

    @classmethod
    def for_mode(cls, mode: LayoutMode) -> FlowConfig:
        if mode is LayoutMode.SCROLL:
            return cls(flow="scrolled", spread="none")
        if mode is LayoutMode.DOUBLE_PAGE:
            return cls(flow="paginated", spread="always")
        return cls(flow="paginated", spread="none")

    @property
    def scrolled(self) -> bool:
        return self.flow == "scrolled"

    @property
    def dual(self) -> bool:
        return self.flow == "paginated" and self.spread == "always"


def clamp_font_scale(value: int) -> int:
    return max(FONT_SCALE_MIN, min(FONT_SCALE_MAX, int(value)))


@dataclass(frozen=True)
class Theme:
    color_scheme: ColorScheme = ColorScheme.DARK
    font_scale: int = 100  # percent
    font_family: str = "serif"

    def __post_init__(self) -> None:
        object.__setattr__(self, "color_scheme", ColorScheme(self.color_scheme))
        object.__setattr__(self, "font_scale", clamp_font_scale(self.font_scale))
        if not self.font_family:
            object.__setattr__(self, "font_family", "serif")

    def merge(self, **changes: object) -> Theme:
        """Return a copy with the given fields replaced; None values are ignored."""
        unknown = set(changes) - {"color_scheme", "font_scale", "font_family"}
        if unknown:
            raise TypeError(f"Unknown theme fields: {', '.join(sorted(unknown))}")
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

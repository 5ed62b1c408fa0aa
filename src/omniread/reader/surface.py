"""Render surfaces: bound document-layout instances a reading session drives.

``RenderSurface`` is the contract the session relies on. ``TextRenderSurface``
flows parsed chapters into a terminal widget, paginating or scrolling
according to a ``FlowConfig``, and reports positions as bookmarks of the form
``"<chapter>:<paragraph>[:<offset>]"``, where the offset counts the non-space
characters of the paragraph above the first line shown.
"""

from __future__ import annotations

import bisect
import logging
import textwrap
import unicodedata
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Protocol

from omniread.library.models import (
    FONT_SCALE_MAX,
    FONT_SCALE_MIN,
    BookContent,
    FlowConfig,
    make_bookmark,
    parse_position,
)

log = logging.getLogger(__name__)

RELOCATED = "relocated"

Ref = tuple[int, int, int]  # (chapter index, paragraph index, text offset)


class RenderSurface(ABC):
    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable[..., None]]] = {}

    def on(self, event: str, callback: Callable[..., None]) -> None:
        self._listeners.setdefault(event, []).append(callback)

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners.get(event, ())):
            callback(*args)

    @abstractmethod
    async def display(self, bookmark: Optional[str] = None) -> None:
        """Show the given position, or the document start."""

    @abstractmethod
    async def next(self) -> bool:
        """Advance one view. Returns False at the end of the document."""

    @abstractmethod
    async def prev(self) -> bool:
        """Go back one view. Returns False at the start of the document."""

    @abstractmethod
    def current_location(self) -> Optional[str]: ...

    @abstractmethod
    def apply_theme(self, rules: dict[str, dict[str, str]]) -> None: ...

    def resize(self) -> None:
        """Reflow after the container changed size."""

    def destroy(self) -> None:
        self._listeners.clear()


SurfaceBinder = Callable[[BookContent, Any, FlowConfig], RenderSurface]


class TextContainer(Protocol):
    """The widget a TextRenderSurface draws into (a Textual ``Static``)."""

    size: Any
    styles: Any

    def update(self, content: str) -> None: ...


def _display_width(text: str) -> int:
    """Return display width accounting for CJK double-width characters."""
    return sum(
        2 if unicodedata.east_asian_width(ch) in ("F", "W") else 1 for ch in text
    )


def _wrap_cjk(text: str, width: int) -> list[str]:
    """Wrap text to display width, handling CJK double-width characters."""
    if not text.strip():
        return [""]
    # Fast path: pure ASCII — use textwrap for proper word breaking
    if text.isascii():
        return textwrap.wrap(text, width=width) or [""]
    # CJK / mixed path: wrap by display width
    lines: list[str] = []
    current: list[str] = []
    current_w = 0
    for ch in text:
        cw = 2 if unicodedata.east_asian_width(ch) in ("F", "W") else 1
        if current_w + cw > width and current:
            lines.append("".join(current))
            current = []
            current_w = 0
            if ch == " ":
                continue  # skip leading space on new line
        current.append(ch)
        current_w += cw
    if current:
        lines.append("".join(current))
    return lines or [""]


def _text_length(text: str) -> int:
    return sum(1 for ch in text if not ch.isspace())


def _pad_to_width(text: str, width: int) -> str:
    """Pad text with spaces to reach target display width."""
    dw = _display_width(text)
    return text + " " * max(0, width - dw)


def _parse_percent(value: Optional[str], default: int) -> int:
    if not value:
        return default
    try:
        return int(str(value).strip().rstrip("%"))
    except ValueError:
        return default


class TextRenderSurface(RenderSurface):
    """Lays chapter paragraphs out as wrapped terminal lines.

    Scrolled flow concatenates every chapter and moves a viewport over the
    lines. Paginated flow cuts each chapter into screen-sized pages; with a
    spread, two pages are shown side by side and every chapter starts on a
    left page.

    The surface remembers the exact line at the top of the view as a text
    offset into its paragraph, so a position survives reflows and rebinding
    even when the new layout breaks lines or pages somewhere else.
    """

    PARAGRAPH_SPACING = 1

    def __init__(self, document: BookContent, container: TextContainer, flow: FlowConfig) -> None:
        super().__init__()
        self._document = document
        self._container = container
        self._flow = flow
        self._font_scale = 100
        self._refs: list[Ref] = []  # first text ref of each page, or of each line
        self._views: list[list[str]] = []  # pages (paginated) or lines (scrolled)
        self._view_height = 20
        self._position = 0
        self._anchor: Ref = (0, 0, 0)
        self._destroyed = False
        self._reflow()

    # ── Layout ─────────────────────────────────────

    def _get_content_dimensions(self) -> tuple[int, int]:
        try:
            w = self._container.size.width - 4
            h = self._container.size.height
            if w < 10 or h < 3:
                return 72, 20
            return w, h
        except AttributeError:
            return 72, 20

    def _text_width(self, column_width: int) -> int:
        # Larger type means fewer characters per line
        scaled = column_width * 100 // max(FONT_SCALE_MIN, self._font_scale)
        return max(20, min(column_width, scaled))

    def _column_width(self) -> int:
        content_w, _ = self._get_content_dimensions()
        if self._flow.dual:
            return max(20, (content_w - 3) // 2)
        return max(20, content_w)

    def _wrap_chapter(self, chapter_index: int, width: int) -> tuple[list[str], list[Ref]]:
        chapter = self._document.chapters[chapter_index]
        lines: list[str] = []
        refs: list[Ref] = []
        for i, para in enumerate(chapter.paragraphs):
            if i:
                # Spacing belongs to the paragraph below it
                lines.extend([""] * self.PARAGRAPH_SPACING)
                refs.extend([(chapter_index, i, 0)] * self.PARAGRAPH_SPACING)
            offset = 0
            for line in _wrap_cjk(para, width):
                lines.append(line)
                refs.append((chapter_index, i, offset))
                offset += _text_length(line)
        return lines, refs

    def _reflow(self) -> None:
        _, content_h = self._get_content_dimensions()
        self._view_height = max(3, content_h)
        width = self._text_width(self._column_width())
        self._views = []
        self._refs = []

        if self._flow.scrolled:
            for idx in range(len(self._document.chapters)):
                lines, refs = self._wrap_chapter(idx, width)
                if self._views:
                    self._views.append([""])
                    self._refs.append((idx, 0, 0))
                self._views.extend([line] for line in lines)
                self._refs.extend(refs)
        else:
            for idx in range(len(self._document.chapters)):
                lines, refs = self._wrap_chapter(idx, width)
                chapter_pages = 0
                for i in range(0, len(lines), self._view_height):
                    page_lines = lines[i : i + self._view_height]
                    page_refs = refs[i : i + self._view_height]
                    text_refs = [r for line, r in zip(page_lines, page_refs) if line]
                    self._views.append(page_lines)
                    self._refs.append(text_refs[0] if text_refs else page_refs[0])
                    chapter_pages += 1
                if self._flow.dual and chapter_pages % 2:
                    self._views.append([])
                    self._refs.append(self._refs[-1])

        if not self._views:
            self._views = [["(empty)"]]
            self._refs = [(0, 0, 0)]

    # ── Positioning ────────────────────────────────

    def _resolve(self, bookmark: Optional[str]) -> Ref:
        """Clamp a bookmark to a real position in this document."""
        chapters = self._document.chapters
        parsed = parse_position(bookmark)
        if parsed is None or not chapters:
            if bookmark:
                log.debug("Unusable bookmark %r, showing start", bookmark)
            return (0, 0, 0)
        ch, para, offset = parsed
        if ch >= len(chapters):
            ch = len(chapters) - 1
            para, offset = len(chapters[ch].paragraphs), 0
        last_para = max(0, len(chapters[ch].paragraphs) - 1)
        if para > last_para:
            para, offset = last_para, 0
        return ch, para, offset

    def _index_for(self, ref: Ref) -> int:
        """First view showing the line that holds ``ref``."""
        # refs are non-decreasing; find the last view starting at or before ref,
        # then step back over views that start on the same line
        i = bisect.bisect_right(self._refs, ref) - 1
        index = bisect.bisect_left(self._refs, self._refs[i]) if i >= 0 else 0
        if self._flow.dual:
            index -= index % 2
        return index

    def _max_position(self) -> int:
        if self._flow.scrolled:
            return max(0, len(self._views) - self._view_height)
        last = len(self._views) - 1
        if self._flow.dual:
            last -= last % 2
        return last

    def _step(self) -> int:
        if self._flow.scrolled:
            return max(1, self._view_height - 1)
        return 2 if self._flow.dual else 1

    def _progress(self) -> float:
        if self._flow.scrolled:
            end = self._max_position()
            return 1.0 if end == 0 else min(1.0, self._position / end)
        shown = self._position + (2 if self._flow.dual else 1)
        return min(1.0, shown / len(self._views))

    def _relocated(self) -> None:
        self._emit(RELOCATED, make_bookmark(*self._anchor), self._progress())

    # ── Rendering ──────────────────────────────────

    def _render(self) -> None:
        content_w, content_h = self._get_content_dimensions()
        if self._flow.scrolled:
            window = self._views[self._position : self._position + content_h]
            page = [line for view in window for line in view]
            self._container.update("\n".join(self._indent(page, content_w)))
            return

        if self._flow.dual:
            page_width = self._column_width()
            left_page = self._views[self._position]
            right_idx = self._position + 1
            right_page = self._views[right_idx] if right_idx < len(self._views) else []
            left_page = self._indent(left_page, page_width)
            right_page = self._indent(right_page, page_width)

            combined: list[str] = []
            for j in range(content_h):
                left = left_page[j] if j < len(left_page) else ""
                right = right_page[j] if j < len(right_page) else ""
                combined.append(f"{_pad_to_width(left, page_width)} │ {right}")
            self._container.update("\n".join(combined))
        else:
            page = self._indent(self._views[self._position], content_w)
            padded = list(page) + [""] * max(0, content_h - len(page))
            self._container.update("\n".join(padded))

    def _indent(self, lines: list[str], column_width: int) -> list[str]:
        margin = (column_width - self._text_width(column_width)) // 2
        if margin <= 0:
            return lines
        pad = " " * margin
        return [pad + line if line else line for line in lines]

    def _check_alive(self) -> None:
        if self._destroyed:
            raise RuntimeError("render surface used after destroy()")

    # ── RenderSurface API ──────────────────────────

    async def display(self, bookmark: Optional[str] = None) -> None:
        self._check_alive()
        self._anchor = self._resolve(bookmark)
        self._position = min(self._index_for(self._anchor), self._max_position())
        self._render()
        self._relocated()

    async def next(self) -> bool:
        self._check_alive()
        target = min(self._position + self._step(), self._max_position())
        if target <= self._position:
            return False
        self._position = target
        self._anchor = self._refs[target]
        self._render()
        self._relocated()
        return True

    async def prev(self) -> bool:
        self._check_alive()
        target = max(0, self._position - self._step())
        if target >= self._position:
            return False
        self._position = target
        self._anchor = self._refs[target]
        self._render()
        self._relocated()
        return True

    def current_location(self) -> Optional[str]:
        self._check_alive()
        return make_bookmark(*self._anchor)

    def apply_theme(self, rules: dict[str, dict[str, str]]) -> None:
        self._check_alive()
        body = rules.get("body", {})
        styles = getattr(self._container, "styles", None)
        if styles is not None:
            if "color" in body:
                styles.color = body["color"]
            if "background" in body:
                styles.background = body["background"]

        scale = _parse_percent(body.get("font-size"), self._font_scale)
        scale = max(FONT_SCALE_MIN, min(FONT_SCALE_MAX, scale))
        if scale != self._font_scale:
            self._font_scale = scale
            self.resize()

    def resize(self) -> None:
        self._check_alive()
        self._reflow()
        self._position = min(self._index_for(self._anchor), self._max_position())
        self._render()

    def destroy(self) -> None:
        if self._destroyed:
            return
        super().destroy()
        self._destroyed = True
        self._container.update("")

"""EPUB parser using ebooklib."""

from __future__ import annotations

import base64
import re
import warnings
from pathlib import Path
from typing import Optional

import ebooklib
from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning
from ebooklib import epub

warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

from omniread.library.models import (
    BookContent,
    BookMetadata,
    Chapter,
    TocEntry,
    make_bookmark,
)

from .base import BaseParser


class EpubParser(BaseParser):
    SUPPORTED_EXTENSIONS = (".epub",)

    def parse(self, file_path: Path) -> BookContent:
        book = epub.read_epub(str(file_path), options={"ignore_ncx": False})
        title = self._get_meta(book, "title") or file_path.stem

        chapters: list[Chapter] = []
        toc: list[TocEntry] = []
        # spine position -> chapter index, for items that produced a chapter
        item_to_chapter: dict[int, int] = {}

        spine_items = list(book.get_items_of_type(ebooklib.ITEM_DOCUMENT))
        spine_ids = [item_id for item_id, _ in book.spine]
        id_to_item = {item.get_id(): item for item in spine_items}

        ordered_items = [id_to_item[sid] for sid in spine_ids if sid in id_to_item]
        # Fall back to all document items if spine is empty
        if not ordered_items:
            ordered_items = spine_items

        for idx, item in enumerate(ordered_items):
            content = item.get_content().decode("utf-8", errors="replace")
            paragraphs = self._html_to_paragraphs(content)
            if not paragraphs:
                continue

            ch_title = self._extract_title(content) or f"Chapter {len(chapters) + 1}"
            chapter = Chapter(
                index=len(chapters), title=ch_title, paragraphs=paragraphs
            )
            item_to_chapter[idx] = chapter.index
            chapters.append(chapter)
            toc.append(TocEntry(label=ch_title, target_ref=make_bookmark(chapter.index)))

        book_toc = self._extract_toc(book, ordered_items, item_to_chapter)
        if book_toc:
            toc = book_toc

        return BookContent(title=title, chapters=chapters, toc=toc)

    def extract_metadata(self, file_path: Path) -> BookMetadata:
        book = epub.read_epub(str(file_path), options={"ignore_ncx": True})
        return BookMetadata(
            title=self._get_meta(book, "title") or None,
            author=self._get_meta(book, "creator") or None,
            cover_image=self._cover_data_uri(book),
        )

    _BLOCK_TAGS = frozenset(
        ["p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote", "pre"]
    )

    def _html_to_paragraphs(self, html: str) -> list[str]:
        soup = BeautifulSoup(html, "lxml")

        for tag in soup.find_all(["script", "style", "sup"]):
            tag.decompose()

        paragraphs: list[str] = []
        block_tags = soup.find_all(list(self._BLOCK_TAGS))

        if block_tags:
            for tag in block_tags:
                if tag.find(list(self._BLOCK_TAGS)):
                    continue
                text = tag.get_text(separator=" ", strip=True)
                text = re.sub(r"\s+", " ", text).strip()
                if text:
                    paragraphs.append(text)
        else:
            text = soup.get_text(separator="\n")
            for para in re.split(r"\n\s*\n", text):
                cleaned = re.sub(r"\s+", " ", para).strip()
                if cleaned:
                    paragraphs.append(cleaned)

        return paragraphs

    def _extract_title(self, html: str) -> str:
        """Try to extract a title from heading tags."""
        soup = BeautifulSoup(html, "lxml")
        for level in ["h1", "h2", "h3", "title"]:
            tag = soup.find(level)
            if tag:
                text = tag.get_text(strip=True)
                if text and len(text) < 200:
                    return text
        return ""

    def _extract_toc(
        self,
        book: epub.EpubBook,
        ordered_items: list[epub.EpubItem],
        item_to_chapter: dict[int, int],
    ) -> list[TocEntry]:
        """Extract TOC from epub's navigation, pointing at parsed chapters."""
        entries: list[TocEntry] = []
        item_names = [item.get_name() for item in ordered_items]

        def _flatten_toc(toc_list: list) -> None:
            for entry in toc_list:
                if isinstance(entry, tuple):
                    # Section with sub-entries
                    _flatten_toc(list(entry))
                elif isinstance(entry, epub.Section):
                    continue
                elif isinstance(entry, epub.Link):
                    href = entry.href.split("#")[0] if entry.href else ""
                    if not entry.title or not href:
                        continue
                    for idx, name in enumerate(item_names):
                        if name == href or href.endswith(name) or name.endswith(href):
                            ch_idx = item_to_chapter.get(idx)
                            if ch_idx is not None:
                                entries.append(
                                    TocEntry(entry.title, make_bookmark(ch_idx))
                                )
                            break
                elif isinstance(entry, list):
                    _flatten_toc(entry)

        _flatten_toc(list(book.toc))
        return entries

    @staticmethod
    def _cover_data_uri(book: epub.EpubBook) -> Optional[str]:
        cover = next(iter(book.get_items_of_type(ebooklib.ITEM_COVER)), None)
        if cover is None:
            # EPUB2 style: <meta name="cover" content="item-id"/>
            for _, attrs in book.get_metadata("OPF", "cover"):
                if attrs and attrs.get("name") == "cover":
                    cover = book.get_item_with_id(attrs.get("content", ""))
                    break
        if cover is None:
            for item in book.get_items_of_type(ebooklib.ITEM_IMAGE):
                if "cover" in item.get_name().lower():
                    cover = item
                    break
        if cover is None:
            return None
        data = cover.get_content()
        if not data:
            return None
        media_type = cover.media_type or "image/jpeg"
        return f"data:{media_type};base64,{base64.b64encode(data).decode('ascii')}"

    @staticmethod
    def _get_meta(book: epub.EpubBook, field: str) -> str:
        values = book.get_metadata("DC", field)
        if values:
            val = values[0]
            if isinstance(val, tuple):
                return str(val[0]).strip() if val[0] else ""
            return str(val).strip()
        return ""

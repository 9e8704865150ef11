"""Splits extracted document text into overlapping passages."""

import bisect
import re
from dataclasses import dataclass
from typing import Optional

from langchain_text_splitters import RecursiveCharacterTextSplitter

PAGE_MARKER = re.compile(r"^--- Page (\d+) ---$", re.MULTILINE)


@dataclass(frozen=True)
class Passage:
    index: int
    content: str
    start_char: int
    page_number: Optional[int] = None


def normalize_text(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return re.sub(r"\n{3,}", "\n\n", text)


def _page_boundaries(text: str) -> tuple[list[int], list[int]]:
    """Offsets where a page starts, and the page number starting there."""
    offsets: list[int] = []
    numbers: list[int] = []
    for match in PAGE_MARKER.finditer(text):
        offsets.append(match.start())
        numbers.append(int(match.group(1)))
    if not offsets and "\f" in text:
        offsets.append(0)
        numbers.append(1)
        for page, match in enumerate(re.finditer("\f", text), start=2):
            offsets.append(match.end())
            numbers.append(page)
    return offsets, numbers


class TextChunker:
    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 150):
        if chunk_overlap >= chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            separators=["\n\n", "\n", ". ", " ", ""],
            keep_separator="end",
            add_start_index=True,
        )

    def chunk(self, text: str) -> list[Passage]:
        """
        Splits text into passages with their offsets and page numbers.

        Offsets refer to the normalized text. Empty or whitespace-only text
        yields no passages.
        """
        text = normalize_text(text or "")
        if not text.strip():
            return []

        offsets, numbers = _page_boundaries(text)
        passages = []
        for doc in self._splitter.create_documents([text]):
            content = doc.page_content
            if not content.strip():
                continue
            start = doc.metadata.get("start_index", -1)
            if start < 0:
                start = text.find(content)
            page_number = None
            if offsets:
                pos = bisect.bisect_right(offsets, start) - 1
                if pos >= 0:
                    page_number = numbers[pos]
                else:
                    page_number = numbers[0]
            passages.append(
                Passage(
                    index=len(passages),
                    content=content,
                    start_char=start,
                    page_number=page_number,
                )
            )
        return passages

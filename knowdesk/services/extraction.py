"""
Turns uploaded file bytes into plain text.

Text-native formats are decoded directly. PDFs go through the vision
describer when one is configured, with PyMuPDF's text layer as the fallback.
"""

import csv
import io
import json
from dataclasses import dataclass, field
from typing import Optional

import fitz
from bs4 import BeautifulSoup

from knowdesk.errors import ExtractionError
from knowdesk.models.document import FileType
from knowdesk.services.vision import (
    PageContent,
    PageResult,
    VisionPageDescriber,
    render_pages,
)
from knowdesk.utils.logging_config import logger


@dataclass
class ExtractedContent:
    text: str
    pages: list[PageResult] = field(default_factory=list)


def _decode(buffer: bytes) -> str:
    try:
        return buffer.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ExtractionError(f"File is not valid UTF-8 text: {e}") from e


def _normalize_lines(text: str) -> str:
    lines = [ln.strip() for ln in text.splitlines()]
    return "\n".join(ln for ln in lines if ln)


def _html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return _normalize_lines(soup.get_text("\n"))


def _csv_to_text(raw: str) -> str:
    try:
        rows = list(csv.reader(io.StringIO(raw)))
    except csv.Error as e:
        raise ExtractionError(f"Invalid CSV: {e}") from e
    rendered = []
    for row in rows:
        cells = [cell.strip() for cell in row]
        if any(cells):
            rendered.append(" | ".join(cells))
    return "\n".join(rendered)


def _json_to_text(raw: str) -> str:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Invalid JSON: {e}") from e
    return json.dumps(data, indent=2, ensure_ascii=False)


class ContentExtractor:
    def __init__(self, describer: Optional[VisionPageDescriber] = None):
        self.describer = describer

    def extract(
        self, buffer: bytes, declared_type: "FileType | str", title: str = ""
    ) -> ExtractedContent:
        """
        Extracts text from a file.

        Raises:
            UnsupportedFileType: if the declared type is not supported.
            ExtractionError: if the bytes cannot be parsed as the declared type.
        """
        file_type = FileType.parse(declared_type)

        if file_type is FileType.PDF:
            return self._extract_pdf(buffer, title)

        raw = _decode(buffer)
        if file_type is FileType.HTML:
            text = _html_to_text(raw)
        elif file_type is FileType.CSV:
            text = _csv_to_text(raw)
        elif file_type is FileType.JSON:
            text = _json_to_text(raw)
        else:
            text = raw
        return ExtractedContent(text=text)

    def _extract_pdf(self, buffer: bytes, title: str) -> ExtractedContent:
        try:
            doc = fitz.open(stream=buffer, filetype="pdf")
        except (fitz.FileDataError, RuntimeError, ValueError) as e:
            raise ExtractionError(f"Could not open PDF: {e}") from e
        if doc.page_count == 0:
            doc.close()
            raise ExtractionError("PDF has no pages")

        try:
            text_layer = [
                PageContent(i + 1, page.get_text().strip()) for i, page in enumerate(doc)
            ]
            pages: list[PageResult] = []
            if self.describer is not None:
                pages = self.describer.describe(doc, title)
                if not any(isinstance(p, PageContent) for p in pages):
                    logger.warning(
                        f"Vision extraction produced no content for '{title}', "
                        "falling back to the PDF text layer"
                    )
                    pages = []
        finally:
            doc.close()

        if not pages:
            pages = list(text_layer)
        else:
            # Pages beyond the vision limit come from the text layer.
            pages.extend(text_layer[len(pages):])

        logger.info(f"Extracted {len(pages)} PDF pages from '{title}'")
        return ExtractedContent(text=render_pages(pages), pages=pages)


def extract_text(buffer: bytes, declared_type: "FileType | str") -> str:
    """Text-only extraction without the vision path."""
    return ContentExtractor().extract(buffer, declared_type).text


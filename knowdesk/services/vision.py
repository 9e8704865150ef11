"""
Page-by-page PDF description with a multimodal model.

Each page is rasterized with PyMuPDF and sent to the model as a PNG. A page
that cannot be described becomes an EmptyPage instead of failing the document.
"""

import base64
from dataclasses import dataclass
from typing import Protocol, Union

import fitz

from knowdesk.errors import KnowdeskError
from knowdesk.utils.logging_config import logger

VISION_INSTRUCTION = """You are a document analysis expert. Extract ALL content from this document page comprehensively.

Your task:
1. Extract ALL text exactly as written (preserve formatting, lists, tables)
2. Describe ALL images, diagrams, charts, and graphics in detail
3. Describe any tables with their structure and data
4. Note any logos, signatures, or visual elements
5. Preserve the logical reading order

Format your response as clean, searchable text that captures everything on the page.
For images, describe them like: [IMAGE: Description of what the image shows]
For charts, describe them like: [CHART: Description of the chart and its data]
For tables, render them as pipe-delimited rows with a header row.

Be thorough, this text will be used to answer questions about the document."""


class ImageDescriber(Protocol):
    def describe_image(self, image_b64: str, instruction: str) -> str: ...


@dataclass(frozen=True)
class PageContent:
    page_number: int
    text: str
    has_images: bool = False
    has_charts: bool = False
    has_tables: bool = False


@dataclass(frozen=True)
class EmptyPage:
    page_number: int
    reason: str

    @property
    def text(self) -> str:
        return ""


PageResult = Union[PageContent, EmptyPage]


def page_marker(page_number: int) -> str:
    return f"--- Page {page_number} ---"


def render_pages(pages: list[PageResult]) -> str:
    """Joins page texts in order, each preceded by its page marker."""
    return "\n\n".join(f"{page_marker(p.page_number)}\n{p.text}" for p in pages)


def detect_visual_flags(content: str) -> tuple[bool, bool, bool]:
    lowered = content.lower()
    has_images = any(
        k in lowered for k in ("[image:", "image shows", "diagram", "photo")
    )
    has_charts = any(k in lowered for k in ("[chart:", "chart", "graph", "plot"))
    has_tables = "|" in content or any(k in lowered for k in ("table", "column"))
    return has_images, has_charts, has_tables


class VisionPageDescriber:
    def __init__(self, provider: ImageDescriber, max_pages: int = 20, dpi: int = 144):
        self.provider = provider
        self.max_pages = max_pages
        self.dpi = dpi

    def describe(self, doc: fitz.Document, title: str) -> list[PageResult]:
        """
        Describes up to `max_pages` pages of an open PDF.

        Args:
            doc: The opened PyMuPDF document.
            title: Document title, included in the per-page request.

        Returns:
            One PageResult per processed page, in page order.
        """
        results: list[PageResult] = []
        for index, page in enumerate(doc):
            page_number = index + 1
            if page_number > self.max_pages:
                logger.info(
                    f"Vision page limit ({self.max_pages}) reached for '{title}'"
                )
                break
            results.append(self._describe_page(page, page_number, title))
        return results

    def _describe_page(self, page: fitz.Page, page_number: int, title: str) -> PageResult:
        try:
            png = page.get_pixmap(dpi=self.dpi).tobytes("png")
        except (RuntimeError, ValueError) as e:
            logger.warning(f"Could not rasterize page {page_number} of '{title}': {e}")
            return EmptyPage(page_number, f"rasterization failed: {e}")

        instruction = (
            f"{VISION_INSTRUCTION}\n\nExtract all content from page {page_number} "
            f'of "{title}". Include every detail visible on the page.'
        )
        try:
            content = self.provider.describe_image(
                base64.b64encode(png).decode("ascii"), instruction
            )
        except KnowdeskError as e:
            logger.warning(f"Vision model failed on page {page_number} of '{title}': {e}")
            return EmptyPage(page_number, str(e))

        content = (content or "").strip()
        if not content:
            logger.warning(f"Vision model returned nothing for page {page_number} of '{title}'")
            return EmptyPage(page_number, "empty response")

        has_images, has_charts, has_tables = detect_visual_flags(content)
        return PageContent(page_number, content, has_images, has_charts, has_tables)

"""PDF rendering of letter text with PyMuPDF.

Produces a plain A4 letter: a letterhead band, a reference line, the
word-wrapped body and a footer on every page. Bodies longer than one page
continue on new pages.

PyMuPDF is synchronous, so rendering runs in a worker thread via
asyncio.to_thread to keep the event loop free during batch runs.

Usage:
    from outreach.letters.pdf import PyMuPdfRenderer

    renderer = PyMuPdfRenderer(config.bank)
    pdf_bytes = await renderer.render(letter.content, customer)
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import fitz  # PyMuPDF

from outreach.classifier.records import text
from outreach.core.errors import PdfRenderError
from outreach.core.logging import get_logger

if TYPE_CHECKING:
    from outreach.config_schema import BankSettings

logger = get_logger(__name__)

# Layout (points)
PAGE_WIDTH, PAGE_HEIGHT = fitz.paper_size("a4")
MARGIN = 56
HEADER_HEIGHT = 64
FOOTER_HEIGHT = 40
FONT = "helv"
FONT_BOLD = "hebo"
BODY_SIZE = 10
LINE_HEIGHT = 14

HEADER_COLOR = (0.0, 0.2, 0.4)
FOOTER_COLOR = (0.4, 0.4, 0.4)


def wrap_line(line: str, max_width: float, fontsize: float = BODY_SIZE) -> list[str]:
    """Word-wrap one line of text to a width in points.

    Words longer than the width are hard-split.
    """
    if not line.strip():
        return [""]

    wrapped: list[str] = []
    current = ""
    for word in line.split(" "):
        candidate = f"{current} {word}" if current else word
        if fitz.get_text_length(candidate, fontname=FONT, fontsize=fontsize) <= max_width:
            current = candidate
            continue
        if current:
            wrapped.append(current)
        while fitz.get_text_length(word, fontname=FONT, fontsize=fontsize) > max_width:
            cut = len(word)
            while cut > 1 and (
                fitz.get_text_length(word[:cut], fontname=FONT, fontsize=fontsize) > max_width
            ):
                cut -= 1
            wrapped.append(word[:cut])
            word = word[cut:]
        current = word
    wrapped.append(current)
    return wrapped


def wrap_text(content: str, max_width: float) -> list[str]:
    lines: list[str] = []
    for line in content.splitlines():
        lines.extend(wrap_line(line.rstrip(), max_width))
    return lines


class PyMuPdfRenderer:
    """Renders letter text to A4 PDF bytes.

    Attributes:
        _bank: Bank profile used for letterhead and footer
    """

    def __init__(self, bank: BankSettings):
        self._bank = bank

    async def render(self, content: str, customer: Mapping[str, Any]) -> bytes:
        """Render a letter to PDF.

        Args:
            content: Letter body text
            customer: Normalized customer record (for the reference line)

        Returns:
            PDF document bytes

        Raises:
            PdfRenderError: If the content is empty or PyMuPDF fails
        """
        account_no = text(customer.get("ACCOUNT_NO"))
        if not content.strip():
            raise PdfRenderError(
                f"Cannot render PDF for account {account_no}: letter content is empty",
                code="empty_content",
            )
        try:
            pdf = await asyncio.to_thread(self._render_sync, content, account_no)
        except (RuntimeError, ValueError) as e:
            raise PdfRenderError(
                f"PDF rendering failed for account {account_no}: {e}", code="render_failed"
            ) from e

        logger.debug("pdf_rendered", account_no=account_no, size=len(pdf))
        return pdf

    def _render_sync(self, content: str, account_no: str) -> bytes:
        now = datetime.now(UTC)
        body_width = PAGE_WIDTH - 2 * MARGIN
        body_top = MARGIN + HEADER_HEIGHT + 2 * LINE_HEIGHT
        body_bottom = PAGE_HEIGHT - MARGIN - FOOTER_HEIGHT
        lines_per_page = max(int((body_bottom - body_top) // LINE_HEIGHT), 1)

        lines = wrap_text(content, body_width)
        pages = [lines[i : i + lines_per_page] for i in range(0, len(lines), lines_per_page)]

        with fitz.open() as doc:
            for page_number, page_lines in enumerate(pages, start=1):
                page = doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
                self._draw_header(page, now, account_no)
                y = body_top
                for line in page_lines:
                    if line:
                        page.insert_text((MARGIN, y), line, fontname=FONT, fontsize=BODY_SIZE)
                    y += LINE_HEIGHT
                self._draw_footer(page, page_number, len(pages))

            doc.set_metadata(
                {
                    "title": f"{self._bank.name} letter {account_no}",
                    "author": self._bank.name,
                    "creationDate": fitz.get_pdf_now(),
                }
            )
            return doc.tobytes(garbage=3, deflate=True)

    def _draw_header(self, page: fitz.Page, now: datetime, account_no: str) -> None:
        band = fitz.Rect(0, 0, PAGE_WIDTH, MARGIN + HEADER_HEIGHT - 16)
        page.draw_rect(band, color=HEADER_COLOR, fill=HEADER_COLOR)
        page.insert_text(
            (MARGIN, MARGIN),
            self._bank.name.upper(),
            fontname=FONT_BOLD,
            fontsize=16,
            color=(1, 1, 1),
        )
        page.insert_text(
            (MARGIN, MARGIN + 18),
            "Official Banking Communication",
            fontname=FONT,
            fontsize=9,
            color=(1, 1, 1),
        )
        reference = (
            f"Date: {now.strftime('%d/%m/%Y')}    "
            f"Reference: {self._bank.short_name}/{account_no}/{now.year}"
        )
        page.insert_text(
            (MARGIN, MARGIN + HEADER_HEIGHT + 4), reference, fontname=FONT, fontsize=9
        )

    def _draw_footer(self, page: fitz.Page, page_number: int, page_count: int) -> None:
        y = PAGE_HEIGHT - MARGIN
        page.draw_line(
            (MARGIN, y - FOOTER_HEIGHT + 12),
            (PAGE_WIDTH - MARGIN, y - FOOTER_HEIGHT + 12),
            color=FOOTER_COLOR,
            width=0.5,
        )
        footer = (
            f"This is a computer-generated letter. {self._bank.name}. "
            f"For queries: {self._bank.helpline}  |  {self._bank.website}"
        )
        page.insert_text((MARGIN, y - 8), footer, fontname=FONT, fontsize=7, color=FOOTER_COLOR)
        page.insert_text(
            (PAGE_WIDTH - MARGIN - 50, y + 6),
            f"Page {page_number} of {page_count}",
            fontname=FONT,
            fontsize=7,
            color=FOOTER_COLOR,
        )

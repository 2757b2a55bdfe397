"""Assemble rendered page bitmaps into PDF documents.

Each bitmap is placed on an A4 page inside a content box inset by a fixed
margin. The bitmap is scaled to the box width; when the scaled bitmap is
taller than the box it is tiled: the same bitmap is drawn on as many extra
pages as needed, shifted up by one box height per page and clipped to the
box, so nothing is cut off or squashed.

Pages are drawn with reportlab and collected into a pypdf PdfWriter, which
is the document handle passed between students in combined mode.

**Output Contract:**
- Every student's first bitmap starts a new physical page
- Bitmap order, and tile order within a bitmap, are preserved
- The optional cover sheet is a single page placed before everything else
"""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from babel.dates import format_datetime
from PIL import Image
from pypdf import PdfReader, PdfWriter
from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from .config_loader import DEFAULT_LOCALE, DEFAULT_MARGIN_MM

LOG = logging.getLogger(__name__)

# Tiles shorter than this (in points) are rounding noise, not content.
TILE_EPSILON_PT = 0.5


@dataclass(frozen=True)
class TilePlacement:
    """Where one tile of a bitmap goes.

    Parameters
    ----------
    page_index : int
        0-based physical page within this bitmap's tiles.
    offset : float
        How far the bitmap is shifted up, in points, so this tile's slice
        shows through the content box.
    """

    page_index: int
    offset: float


@dataclass(frozen=True)
class CoverSheet:
    """Content of the batch cover page."""

    title: str
    class_name: str
    term_name: str
    student_count: int
    watermark: str
    template: str
    generated_at: datetime


def plan_tiles(image_height: float, box_height: float) -> List[TilePlacement]:
    """Split a scaled bitmap height into content-box tiles.

    Parameters
    ----------
    image_height : float
        Bitmap height after scaling to the box width, in points.
    box_height : float
        Content box height, in points.

    Returns
    -------
    List[TilePlacement]
        At least one placement; offsets step by ``box_height``.

    Raises
    ------
    ValueError
        If box_height is not positive.

    Examples
    --------
    >>> [t.offset for t in plan_tiles(1500, 800)]
    [0, 800]
    """
    if box_height <= 0:
        raise ValueError("content box height must be positive")
    count = max(1, math.ceil((image_height - TILE_EPSILON_PT) / box_height))
    return [TilePlacement(page_index=i, offset=i * box_height) for i in range(count)]


class PdfAssembler:
    """Places page bitmaps on A4 pages.

    Parameters
    ----------
    margin_mm : float
        Inset of the content box on every side.
    locale : str
        Babel locale for the cover sheet timestamp.
    """

    def __init__(self, margin_mm: float = DEFAULT_MARGIN_MM, locale: str = DEFAULT_LOCALE):
        self.page_width, self.page_height = A4
        self.margin = margin_mm * mm
        self.box_width = self.page_width - 2 * self.margin
        self.box_height = self.page_height - 2 * self.margin
        self.locale = locale

    @classmethod
    def from_config(cls, config: Dict) -> "PdfAssembler":
        return cls(
            margin_mm=(config.get("pdf", {}) or {}).get("margin_mm", DEFAULT_MARGIN_MM),
            locale=(config.get("rendering", {}) or {}).get("locale", DEFAULT_LOCALE),
        )

    def scaled_height(self, image: Image.Image) -> float:
        width, height = image.size
        return height * self.box_width / width

    def draw_bitmap(self, pdf: canvas.Canvas, image: Image.Image) -> int:
        """Draw one bitmap, tiling if needed; returns the physical page count."""
        draw_height = self.scaled_height(image)
        reader = ImageReader(image)
        tiles = plan_tiles(draw_height, self.box_height)
        box_top = self.margin + self.box_height
        for tile in tiles:
            pdf.saveState()
            clip = pdf.beginPath()
            clip.rect(self.margin, self.margin, self.box_width, self.box_height)
            pdf.clipPath(clip, stroke=0, fill=0)
            image_top = box_top + tile.offset
            pdf.drawImage(
                reader,
                self.margin,
                image_top - draw_height,
                width=self.box_width,
                height=draw_height,
            )
            pdf.restoreState()
            pdf.showPage()
        return len(tiles)

    def render_pages(self, pages: Sequence[Image.Image], title: Optional[str] = None) -> bytes:
        """Draw bitmaps onto A4 pages and return the PDF bytes.

        Raises
        ------
        ValueError
            If ``pages`` is empty.
        """
        if not pages:
            raise ValueError("No page bitmaps to assemble")
        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=A4)
        if title:
            pdf.setTitle(title)
        physical = sum(self.draw_bitmap(pdf, image) for image in pages)
        pdf.save()
        LOG.debug("Assembled %d bitmap(s) onto %d page(s)", len(pages), physical)
        return buffer.getvalue()

    def assemble(
        self,
        pages: Sequence[Image.Image],
        writer: Optional[PdfWriter] = None,
        title: Optional[str] = None,
    ) -> PdfWriter:
        """Append one student's bitmaps to ``writer`` (a new one if None)."""
        writer = writer if writer is not None else PdfWriter()
        writer.append(PdfReader(io.BytesIO(self.render_pages(pages, title))))
        return writer

    def student_document(self, pages: Sequence[Image.Image], title: Optional[str] = None) -> bytes:
        """A standalone PDF for one student."""
        writer = self.assemble(pages, title=title)
        if title:
            writer.add_metadata({"/Title": title})
        return writer_bytes(writer)

    def cover_page(self, cover: CoverSheet) -> bytes:
        """Draw the batch cover sheet as a one-page PDF."""
        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=A4)
        pdf.setTitle(cover.title)
        centre = self.page_width / 2
        y = self.page_height - 70 * mm

        pdf.setFillColor(HexColor("#1e3a8a"))
        pdf.setFont("Helvetica-Bold", 26)
        pdf.drawCentredString(centre, y, cover.title)
        y -= 14 * mm
        pdf.setFont("Helvetica", 16)
        pdf.setFillColor(HexColor("#334155"))
        pdf.drawCentredString(centre, y, f"{cover.class_name} - {cover.term_name}")
        y -= 6 * mm
        pdf.setStrokeColor(HexColor("#1e3a8a"))
        pdf.setLineWidth(1.2)
        pdf.line(centre - 60 * mm, y, centre + 60 * mm, y)
        y -= 14 * mm

        pdf.setFont("Helvetica", 12)
        pdf.setFillColor(HexColor("#111827"))
        details = [
            ("Students", str(cover.student_count)),
            ("Watermark", cover.watermark),
            ("Template", cover.template),
            ("Generated", format_datetime(cover.generated_at, format="medium", locale=self.locale)),
        ]
        for label, value in details:
            pdf.drawRightString(centre - 3 * mm, y, f"{label}:")
            pdf.drawString(centre + 3 * mm, y, value)
            y -= 9 * mm

        pdf.showPage()
        pdf.save()
        return buffer.getvalue()

    def add_cover(self, writer: PdfWriter, cover: CoverSheet) -> PdfWriter:
        """Insert the cover sheet as the first page of ``writer``."""
        cover_reader = PdfReader(io.BytesIO(self.cover_page(cover)))
        writer.insert_page(cover_reader.pages[0], 0)
        return writer


def writer_bytes(writer: PdfWriter) -> bytes:
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()

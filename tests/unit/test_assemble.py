"""Unit tests for assemble module - bitmap placement, tiling and cover sheet.

Tests cover:
- Tile planning for bitmaps shorter and taller than the content box
- Physical page counts of assembled PDFs
- Appending several students to one document handle
- Cover sheet content and position

Real-world significance:
- A report card that overflows one page must continue on the next page,
  not be squashed or cut off
- Printed batches start with a cover sheet the office can file
"""

from __future__ import annotations

import io
from datetime import datetime, timezone

import pytest
from PIL import Image
from pypdf import PdfReader, PdfWriter

from reportcards.assemble import CoverSheet, PdfAssembler, plan_tiles, writer_bytes


def bitmap(width: int = 200, height_ratio: float = 297 / 210) -> Image.Image:
    return Image.new("RGB", (width, round(width * height_ratio)), "white")


@pytest.mark.unit
class TestPlanTiles:
    """Unit tests for plan_tiles."""

    def test_short_bitmap_is_one_tile(self) -> None:
        assert plan_tiles(500, 800) == plan_tiles(800, 800)
        assert [t.offset for t in plan_tiles(500, 800)] == [0]

    def test_tall_bitmap_spans_pages(self) -> None:
        tiles = plan_tiles(2000, 800)
        assert [t.page_index for t in tiles] == [0, 1, 2]
        assert [t.offset for t in tiles] == [0, 800, 1600]

    def test_rounding_noise_does_not_add_a_page(self) -> None:
        assert len(plan_tiles(800.3, 800)) == 1

    def test_box_height_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="content box height must be positive"):
            plan_tiles(100, 0)


@pytest.mark.unit
class TestPdfAssembler:
    """Unit tests for PdfAssembler."""

    def test_content_box_inset_by_margin(self) -> None:
        assembler = PdfAssembler(margin_mm=10)
        assert assembler.box_width == pytest.approx(assembler.page_width - 2 * 10 * 72 / 25.4)

    def test_one_page_per_a4_bitmap(self, assembler: PdfAssembler) -> None:
        document = assembler.student_document([bitmap(), bitmap()], title="Ada Obi")
        reader = PdfReader(io.BytesIO(document))
        assert len(reader.pages) == 2
        assert reader.metadata.title == "Ada Obi"

    def test_tall_bitmap_is_tiled(self, assembler: PdfAssembler) -> None:
        """Verify an overflowing bitmap continues on extra pages.

        Real-world significance:
        - A page grown for a long comment must print completely
        """
        tall = bitmap(height_ratio=3.0)
        expected = len(plan_tiles(assembler.scaled_height(tall), assembler.box_height))
        document = assembler.student_document([tall])
        assert expected == 3
        assert len(PdfReader(io.BytesIO(document)).pages) == expected

    def test_pages_are_a4(self, assembler: PdfAssembler) -> None:
        page = PdfReader(io.BytesIO(assembler.student_document([bitmap()]))).pages[0]
        assert float(page.mediabox.width) == pytest.approx(595.27, abs=0.1)
        assert float(page.mediabox.height) == pytest.approx(841.89, abs=0.1)

    def test_assemble_appends_to_existing_writer(self, assembler: PdfAssembler) -> None:
        writer = PdfWriter()
        assembler.assemble([bitmap()], writer)
        assembler.assemble([bitmap(), bitmap()], writer)
        assert len(PdfReader(io.BytesIO(writer_bytes(writer))).pages) == 3

    def test_empty_page_list_raises(self, assembler: PdfAssembler) -> None:
        with pytest.raises(ValueError, match="No page bitmaps to assemble"):
            assembler.student_document([])

    def test_cover_is_inserted_first(self, assembler: PdfAssembler) -> None:
        """Verify the cover sheet becomes page 1 with the batch details.

        Real-world significance:
        - The office files printed batches by the cover sheet
        """
        writer = assembler.assemble([bitmap()])
        cover = CoverSheet(
            title="Report Cards",
            class_name="JSS 1A",
            term_name="First Term",
            student_count=28,
            watermark="FINAL",
            template="classic",
            generated_at=datetime(2024, 12, 13, 9, 30, tzinfo=timezone.utc),
        )
        assembler.add_cover(writer, cover)

        reader = PdfReader(io.BytesIO(writer_bytes(writer)))
        assert len(reader.pages) == 2
        text = reader.pages[0].extract_text()
        assert "Report Cards" in text
        assert "JSS 1A - First Term" in text
        assert "28" in text
        assert "FINAL" in text
        assert "classic" in text
        assert "2024" in text

"""Classic layout.

Centered school header over a single-column body. The class theme color
drives headings and the subject table header.
"""

from __future__ import annotations

from reportcards.sections import draw_sections

SKIN = {
    "primary": "#1e3a8a",
    "use_class_theme": True,
    "page_margin_mm": 12,
    "section_gap_mm": 4,
    "title_size": 18,
    "heading_size": 11,
    "body_size": 9,
    "table_size": 8.5,
    "small_size": 7.5,
    "stat_size": 13,
    "row_height_mm": 7,
    "logo_mm": 20,
    "zebra": True,
}

SECTION_ORDER = (
    "header",
    "student_info",
    "subjects",
    "summary",
    "rankings",
    "attendance",
    "comments",
    "footer",
)

SUBJECTS_PER_PAGE = 15


def render_page(page, context) -> None:
    """Draw one page of the classic report card."""
    draw_sections(page, context)

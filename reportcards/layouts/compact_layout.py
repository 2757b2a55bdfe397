"""Compact layout.

Small type and tight rows so most classes fit on a single page. Summary
figures come before the subject table.
"""

from __future__ import annotations

from reportcards.sections import draw_sections

SKIN = {
    "primary": "#334155",
    "use_class_theme": True,
    "page_margin_mm": 8,
    "section_gap_mm": 2.5,
    "title_size": 14,
    "heading_size": 9,
    "body_size": 8,
    "table_size": 7.5,
    "small_size": 6.5,
    "stat_size": 10,
    "row_height_mm": 5.5,
    "logo_mm": 14,
    "zebra": False,
}

SECTION_ORDER = (
    "header",
    "student_info",
    "summary",
    "rankings",
    "subjects",
    "attendance",
    "comments",
    "footer",
)

SUBJECTS_PER_PAGE = 22


def render_page(page, context) -> None:
    draw_sections(page, context)

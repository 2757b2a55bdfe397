"""Modern layout.

A full-width color band carries the school identity in white, followed by
the student card and the summary figures above the subject table.
"""

from __future__ import annotations

from reportcards.drawing import parse_color, tint
from reportcards.formatting import sanitize_text
from reportcards.sections import content_box, draw_sections, gap

SKIN = {
    "primary": "#0f766e",
    "use_class_theme": True,
    "page_margin_mm": 10,
    "section_gap_mm": 5,
    "title_size": 20,
    "heading_size": 10,
    "body_size": 9,
    "table_size": 8.5,
    "small_size": 7.5,
    "stat_size": 14,
    "row_height_mm": 7.5,
    "logo_mm": 18,
    "zebra": True,
}

SECTION_ORDER = (
    "header",
    "student_info",
    "summary",
    "rankings",
    "attendance",
    "subjects",
    "comments",
    "footer",
)

SUBJECTS_PER_PAGE = 12


def draw_band_header(page, context, y: int) -> int:
    """School name on a color band spanning the full page width."""
    report = context.report
    color = parse_color(context.skin.get("primary", SKIN["primary"]))
    left, right = content_box(page, context)
    band_height = page.mm(30)
    page.rect((0, 0, page.width, band_height), fill=color)
    page.rect((0, band_height, page.width, band_height + page.mm(1.5)), fill=tint(color, 0.5))

    text_left = left
    logo_size = page.mm(context.skin["logo_mm"])
    if context.logo is not None:
        top = (band_height - logo_size) // 2
        page.paste_image(context.logo, (left, top, left + logo_size, top + logo_size))
        text_left = left + logo_size + page.mm(4)

    title_size = context.skin["title_size"]
    body_size = context.skin["body_size"]
    line_y = page.mm(6)
    name = sanitize_text(report.school_display_name)
    page.text(text_left, line_y, page.fit_text(name, title_size, right - text_left, True),
              title_size, fill="white", bold=True)
    line_y += page.line_height(title_size)
    motto = sanitize_text(report.school.motto)
    if motto:
        page.text(text_left, line_y, page.fit_text(motto, body_size, right - text_left),
                  body_size, fill=tint(color, 0.8))
        line_y += page.line_height(body_size)

    term = " ".join(
        part
        for part in (sanitize_text(report.term.session_label), sanitize_text(report.term.term_label))
        if part
    )
    page.text(right, band_height - page.mm(3) - page.pt(body_size), term or "Report Card",
              body_size, fill="white", bold=True, anchor="ra")
    return band_height + page.mm(1.5) + gap(page, context)


def render_page(page, context) -> None:
    """Draw one page of the modern report card."""
    draw_sections(page, context, overrides={"header": draw_band_header})

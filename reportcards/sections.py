"""Section drawers shared by the layout modules.

Each drawer takes the page, the page context and the current y position in
pixels, draws its section across the content width, and returns the y
position below it. Layouts pick the order and may replace any drawer with
their own; all of them draw from the same canonical fields.

Every piece of free text passes through sanitize_text() before it is drawn.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Tuple

from .data_models import SubjectRecord
from .drawing import PageCanvas, parse_color, tint
from .formatting import (
    calculate_percentile,
    categorize_component_score,
    format_gpa,
    format_percentile,
    format_position,
    format_score,
    has_valid_ranking,
    match_component_score,
    ordinal,
    sanitize_text,
)
from .render import Column, PageContext

Drawer = Callable[[PageCanvas, PageContext, int], int]


def content_box(page: PageCanvas, context: PageContext) -> Tuple[int, int]:
    """Left and right pixel edges of the drawable area."""
    margin = page.mm(context.skin.get("page_margin_mm", 12))
    return margin, page.width - margin


def primary(context: PageContext):
    return parse_color(context.skin.get("primary", "#1e3a8a"))


def gap(page: PageCanvas, context: PageContext, factor: float = 1.0) -> int:
    return page.mm(context.skin.get("section_gap_mm", 4) * factor)


def section_title(page: PageCanvas, context: PageContext, y: int, title: str) -> int:
    left, right = content_box(page, context)
    size = context.skin.get("heading_size", 11)
    color = primary(context)
    page.text(left, y, title.upper(), size, fill=color, bold=True)
    y += page.line_height(size)
    page.hline(left, right, y, fill=color, width=max(page.mm(0.4), 1))
    return y + page.mm(1.5)


def draw_header(page: PageCanvas, context: PageContext, y: int) -> int:
    """Centered school identity: logo, name, address, motto, term line."""
    report = context.report
    left, right = content_box(page, context)
    centre = (left + right) // 2
    color = primary(context)
    title_size = context.skin.get("title_size", 18)
    body_size = context.skin.get("body_size", 9)

    logo_size = page.mm(context.skin.get("logo_mm", 20))
    if context.logo is not None:
        page.paste_image(context.logo, (left, y, left + logo_size, y + logo_size))

    name = sanitize_text(report.school_display_name)
    page.text(centre, y, page.fit_text(name.upper(), title_size, right - left - 2 * logo_size, True),
              title_size, fill=color, bold=True, anchor="ma")
    y += page.line_height(title_size)
    for line in (report.school.address, report.school.motto):
        text = sanitize_text(line)
        if text:
            page.text(centre, y, page.fit_text(text, body_size, right - left), body_size,
                      fill="dimgray", anchor="ma")
            y += page.line_height(body_size)

    term_line = " ".join(
        part for part in (sanitize_text(report.term.session_label), sanitize_text(report.term.term_label)) if part
    )
    subtitle = f"Report Card - {term_line}" if term_line else "Report Card"
    page.text(centre, y + page.mm(1), subtitle, body_size + 2, fill=color, bold=True, anchor="ma")
    y = max(y + page.line_height(body_size + 2) + page.mm(1), y + logo_size // 4)
    page.hline(left, right, y, fill=color, width=max(page.mm(0.6), 1))
    return y + gap(page, context)


def draw_student_info(page: PageCanvas, context: PageContext, y: int) -> int:
    """Two-column grid of student identity fields."""
    report = context.report
    left, right = content_box(page, context)
    size = context.skin.get("body_size", 9)
    class_name = sanitize_text(report.student.class_name)
    if report.student.arm_name:
        class_name = f"{class_name} ({sanitize_text(report.student.arm_name)})"
    fields = [
        ("Name", sanitize_text(report.student.full_name)),
        ("Admission No", sanitize_text(report.student.admission_number)),
        ("Class", class_name),
        ("Session", sanitize_text(report.term.session_label) or "-"),
        ("Term", sanitize_text(report.term.term_label) or "-"),
        ("Page", f"{context.page_number} of {context.page_count}"),
    ]
    column_width = (right - left) // 2
    label_width = page.mm(28)
    row_height = page.line_height(size, 1.6)
    background = tint(primary(context), 0.92)
    rows = (len(fields) + 1) // 2
    page.rect((left, y, right, y + rows * row_height + page.mm(2)), fill=background)
    y += page.mm(1)
    for index, (label, value) in enumerate(fields):
        column, row = index % 2, index // 2
        x = left + page.mm(2) + column * column_width
        row_y = y + row * row_height
        page.text(x, row_y, f"{label}:", size, fill="dimgray", bold=True)
        page.text(x + label_width, row_y,
                  page.fit_text(value, size, column_width - label_width - page.mm(4)), size)
    return y + rows * row_height + page.mm(1) + gap(page, context)


def cell_value(subject: SubjectRecord, column: Column, context: PageContext) -> str:
    """Display text for one subject-table cell."""
    if column.key == "subject":
        return sanitize_text(subject.subject_name)
    if column.key == "ca" or column.key == "exam":
        if not subject.component_scores:
            return "-"
        ca_score, exam_score = categorize_component_score(
            subject.component_scores, context.exam_keywords
        )
        return format_score(ca_score if column.key == "ca" else exam_score)
    if column.key.startswith("component:"):
        name = column.key.split(":", 1)[1]
        score = match_component_score(name, subject.component_scores, context.match_threshold)
        return format_score(score)
    if column.key == "total":
        return format_score(subject.total_score)
    if column.key == "grade":
        return sanitize_text(subject.grade) or "-"
    if column.key == "position":
        return ordinal(subject.subject_position)
    if column.key == "remark":
        return sanitize_text(subject.remark) or "-"
    return "-"


def column_edges(left: int, right: int, columns: Tuple[Column, ...]) -> List[Tuple[int, int]]:
    total_weight = sum(column.weight for column in columns)
    edges = []
    x = float(left)
    for column in columns:
        width = (right - left) * column.weight / total_weight
        edges.append((round(x), round(x + width)))
        x += width
    return edges


def draw_subjects(page: PageCanvas, context: PageContext, y: int) -> int:
    """Subject table for this page's chunk of subjects."""
    left, right = content_box(page, context)
    size = context.skin.get("table_size", 8.5)
    color = primary(context)
    row_height = page.mm(context.skin.get("row_height_mm", 7))
    pad = page.mm(1.2)
    edges = column_edges(left, right, context.columns)
    text_offset = (row_height - page.pt(size)) // 2

    page.rect((left, y, right, y + row_height), fill=color)
    for column, (x0, x1) in zip(context.columns, edges):
        title = page.fit_text(column.title, size, x1 - x0 - 2 * pad, bold=True)
        if column.key in ("subject", "remark"):
            page.text(x0 + pad, y + text_offset, title, size, fill="white", bold=True)
        else:
            page.text((x0 + x1) // 2, y + text_offset, title, size, fill="white", bold=True, anchor="ma")
    y += row_height

    zebra = tint(color, 0.94) if context.skin.get("zebra", True) else None
    grid = tint(color, 0.6)
    if not context.subjects:
        page.rect((left, y, right, y + row_height), outline=grid)
        page.text((left + right) // 2, y + text_offset, "No subjects recorded for this term.",
                  size, fill="dimgray", anchor="ma")
        return y + row_height + gap(page, context)

    for index, subject in enumerate(context.subjects):
        if zebra is not None and index % 2 == 1:
            page.rect((left, y, right, y + row_height), fill=zebra)
        for column, (x0, x1) in zip(context.columns, edges):
            value = page.fit_text(cell_value(subject, column, context), size, x1 - x0 - 2 * pad,
                                  bold=column.key == "grade")
            if column.key in ("subject", "remark"):
                page.text(x0 + pad, y + text_offset, value, size)
            else:
                page.text((x0 + x1) // 2, y + text_offset, value, size,
                          bold=column.key == "grade", anchor="ma")
        page.hline(left, right, y + row_height, fill=grid)
        y += row_height
    page.rect((left, y - row_height * (len(context.subjects) + 1), right, y), outline=grid)
    return y + gap(page, context)


def stat_boxes(page: PageCanvas, context: PageContext, y: int, stats: List[Tuple[str, str]]) -> int:
    """A row of labelled value boxes."""
    left, right = content_box(page, context)
    if not stats:
        return y
    color = primary(context)
    label_size = context.skin.get("small_size", 7.5)
    value_size = context.skin.get("stat_size", 13)
    spacing = page.mm(2)
    width = (right - left - spacing * (len(stats) - 1)) / len(stats)
    height = page.line_height(label_size) + page.line_height(value_size) + page.mm(3)
    for index, (label, value) in enumerate(stats):
        x0 = round(left + index * (width + spacing))
        x1 = round(x0 + width)
        page.rect((x0, y, x1, y + height), fill=tint(color, 0.9), outline=tint(color, 0.5))
        centre = (x0 + x1) // 2
        page.text(centre, y + page.mm(1), label.upper(), label_size, fill="dimgray", anchor="ma")
        page.text(centre, y + page.mm(1) + page.line_height(label_size),
                  page.fit_text(value, value_size, width - page.mm(2), True),
                  value_size, fill=color, bold=True, anchor="ma")
    return y + height + gap(page, context)


def draw_summary(page: PageCanvas, context: PageContext, y: int) -> int:
    summary = context.report.summary
    y = section_title(page, context, y, "Performance Summary")
    return stat_boxes(page, context, y, [
        ("Total Score", format_score(summary.total_score)),
        ("Average", f"{summary.average_score:.1f}%"),
        ("GPA", format_gpa(summary.gpa_average)),
        ("Subjects", str(len(context.report.subjects))),
    ])


def draw_rankings(page: PageCanvas, context: PageContext, y: int) -> int:
    """Arm and level positions with percentiles, honoring the class toggles."""
    summary = context.report.summary
    config = context.report.config
    stats: List[Tuple[str, str]] = []
    if config.show_arm_ranking:
        stats.append(("Position in Arm", format_position(summary.position_in_arm, summary.total_students_in_arm)))
        if has_valid_ranking(summary.position_in_arm, summary.total_students_in_arm):
            stats.append(("Arm Percentile", format_percentile(
                calculate_percentile(summary.position_in_arm, summary.total_students_in_arm))))
    if config.show_level_ranking:
        stats.append(("Position in Level", format_position(summary.position_in_level, summary.total_students_in_level)))
        if has_valid_ranking(summary.position_in_level, summary.total_students_in_level):
            stats.append(("Level Percentile", format_percentile(
                calculate_percentile(summary.position_in_level, summary.total_students_in_level))))
    if summary.campus_percentile is not None:
        stats.append(("Campus", format_percentile(summary.campus_percentile)))
    if not stats:
        return y
    y = section_title(page, context, y, "Class Ranking")
    return stat_boxes(page, context, y, stats[:4])


def draw_attendance(page: PageCanvas, context: PageContext, y: int) -> int:
    attendance = context.report.attendance
    if attendance is None:
        return y
    y = section_title(page, context, y, "Attendance")
    return stat_boxes(page, context, y, [
        ("Present", str(attendance.present)),
        ("Absent", str(attendance.absent)),
        ("Late", str(attendance.late)),
        ("Total Days", str(attendance.total)),
        ("Rate", f"{attendance.rate:.1f}%"),
    ])


def draw_comments(page: PageCanvas, context: PageContext, y: int) -> int:
    """Teacher and principal remarks with signature lines."""
    report = context.report
    left, right = content_box(page, context)
    size = context.skin.get("body_size", 9)
    color = primary(context)
    y = section_title(page, context, y, "Remarks")
    for label, comment in (
        (report.config.teacher_label, report.comments.teacher),
        (report.config.principal_label, report.comments.principal),
    ):
        page.text(left, y, f"{sanitize_text(label)}'s Comment:", size, fill=color, bold=True)
        y += page.line_height(size)
        y = page.paragraph(left + page.mm(3), y, sanitize_text(comment), size, right - left - page.mm(3))
        y += page.mm(5)
        page.hline(right - page.mm(60), right, y, fill="gray")
        page.text(right - page.mm(30), y + page.mm(1), "Signature", context.skin.get("small_size", 7.5),
                  fill="gray", anchor="ma")
        y += page.line_height(size) + page.mm(2)
    return y + gap(page, context)


def draw_footer(page: PageCanvas, context: PageContext, y: int) -> int:
    """Footer pinned to the bottom of the page, or below content on a grown page."""
    left, right = content_box(page, context)
    size = context.skin.get("small_size", 7.5)
    margin = page.mm(context.skin.get("page_margin_mm", 12))
    footer_y = max(y + gap(page, context), page.height - margin - page.line_height(size))
    page.hline(left, right, footer_y - page.mm(1), fill=tint(primary(context), 0.5))
    text = (
        f"{sanitize_text(context.report.school_display_name)} | "
        f"{sanitize_text(context.report.student.full_name)}"
    )
    page.text(left, footer_y, page.fit_text(text, size, (right - left) * 0.7), size, fill="gray")
    page.text(right, footer_y, f"Page {context.page_number} of {context.page_count}", size,
              fill="gray", anchor="ra")
    return footer_y + page.line_height(size)


DRAWERS: Dict[str, Drawer] = {
    "header": draw_header,
    "student_info": draw_student_info,
    "subjects": draw_subjects,
    "summary": draw_summary,
    "rankings": draw_rankings,
    "attendance": draw_attendance,
    "comments": draw_comments,
    "footer": draw_footer,
}


def draw_sections(page: PageCanvas, context: PageContext, overrides: Dict[str, Drawer] | None = None) -> int:
    """Draw ``context.sections`` top to bottom, using ``overrides`` where given."""
    drawers = {**DRAWERS, **(overrides or {})}
    y = page.mm(context.skin.get("page_margin_mm", 12))
    for section in context.sections:
        drawer = drawers.get(section)
        if drawer is None:
            raise KeyError(f"Unknown report section: {section}")
        y = drawer(page, context, y)
    return y

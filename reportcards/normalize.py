"""Normalize raw report payloads into the canonical report record.

Report payloads reach the pipeline from several producers and disagree on
naming: camelCase or snake_case, and several historical synonyms for the same
field (``positionInLevel``, ``position_in_level``, ``position_in_grade``,
``gradeLevelPosition``). Each canonical field has one precedence-ordered
synonym tuple in FIELD_SYNONYMS; a field resolves to the first synonym that
holds a non-null value (text fields also skip blank strings). camelCase
spellings come first.

Totals and averages are never trusted from the payload: they are recomputed
from the subject list so the printed summary always agrees with the printed
table.

**Error Handling:**
- Missing or malformed input is recovered with defaults, never raised
- A subject list that is not a list is treated as empty
- Non-numeric subject totals become 0; non-numeric component scores are dropped
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from .data_models import (
    NOT_AVAILABLE,
    AssessmentComponent,
    AttendanceBlock,
    CanonicalReport,
    CommentsBlock,
    SchoolBlock,
    StudentBlock,
    SubjectRecord,
    SummaryBlock,
    TermBlock,
    VisualConfig,
)
from .utils import coerce_int, coerce_number, string_or_empty

LOG = logging.getLogger(__name__)

DEFAULT_SCHOOL_NAME = "School Name"
DEFAULT_STUDENT_NAME = "Unknown Student"
DEFAULT_CLASS_NAME = "Unknown Class"
DEFAULT_SUBJECT_NAME = "Unknown Subject"
DEFAULT_COMMENT = "No comment provided."

FIELD_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    # Top-level blocks
    "student": ("student",),
    "term": ("term",),
    "subjects": ("subjects", "subject_results", "results"),
    "school": ("schoolConfig", "school_config", "school"),
    "summary": ("summary",),
    "comments": ("comments",),
    "attendance": ("attendance",),
    # Student block
    "student.full_name": ("fullName", "full_name", "name"),
    "student.admission_number": ("admissionNumber", "admission_number", "admNumber"),
    "student.class_name": ("className", "class_name", "class"),
    "student.arm_name": ("armName", "arm_name", "arm"),
    # Term block
    "term.session_label": ("sessionLabel", "session_label", "session"),
    "term.term_label": ("termLabel", "term_label", "name"),
    # Subject rows
    "subject.subject_name": ("subjectName", "subject_name", "name"),
    "subject.total_score": ("totalScore", "total_score", "score"),
    "subject.grade": ("grade", "gradeLabel", "grade_label"),
    "subject.remark": ("remark", "teacherRemark", "teacher_remark"),
    "subject.component_scores": ("componentScores", "component_scores"),
    "subject.subject_position": ("subjectPosition", "subject_position", "position"),
    "subject.total_students_in_subject": (
        "totalStudentsInSubject",
        "total_students_in_subject",
        "subjectSize",
    ),
    # School block
    "school.name": ("schoolName", "school_name", "name"),
    "school.display_name": ("displayName", "display_name"),
    "school.address": ("address",),
    "school.motto": ("motto",),
    "school.logo_url": ("logoUrl", "logo_url"),
    # Summary block
    "summary.position_in_arm": ("positionInArm", "position_in_arm", "classPosition"),
    "summary.total_students_in_arm": (
        "totalStudentsInArm",
        "total_students_in_arm",
        "classSize",
    ),
    "summary.position_in_level": (
        "positionInLevel",
        "position_in_level",
        "position_in_grade",
        "gradeLevelPosition",
    ),
    "summary.total_students_in_level": (
        "totalStudentsInLevel",
        "total_students_in_level",
        "total_in_grade",
        "gradeLevelSize",
    ),
    "summary.gpa_average": ("gpaAverage", "gpa_average", "gpa"),
    "summary.campus_percentile": ("campusPercentile", "campus_percentile", "percentile"),
    # Comments block
    "comments.teacher": ("teacher", "teacherComment", "teacher_comment"),
    "comments.principal": ("principal", "principalComment", "principal_comment"),
    # Attendance block
    "attendance.present": ("present", "daysPresent", "days_present"),
    "attendance.absent": ("absent", "daysAbsent", "days_absent"),
    "attendance.late": ("late",),
    "attendance.excused": ("excused",),
    "attendance.unexcused": ("unexcused",),
    "attendance.total": ("total", "totalDays", "total_days"),
    # Class presentation overrides
    "config.layout": ("layout", "template"),
    "config.color_theme": ("colorTheme", "color_theme"),
    "config.custom_logo_url": ("customLogoUrl", "custom_logo_url"),
    "config.school_name_override": ("schoolNameOverride", "school_name_override"),
    "config.principal_label": ("principalLabel", "principal_label"),
    "config.teacher_label": ("teacherLabel", "teacher_label"),
    "config.show_arm_ranking": ("showArmRanking", "show_arm_ranking"),
    "config.show_level_ranking": ("showLevelRanking", "show_level_ranking"),
    "config.show_subject_position": ("showSubjectPosition", "show_subject_position"),
    # Assessment component definitions
    "component.name": ("name", "componentName", "component_name"),
    "component.max_score": ("maxScore", "max_score", "max"),
}


def resolve(block: Any, field_name: str, *, text: bool = False) -> Any:
    """Return the first non-null value among a field's synonyms.

    Parameters
    ----------
    block : Any
        Mapping to read from. Anything that is not a mapping resolves to None.
    field_name : str
        Key into FIELD_SYNONYMS.
    text : bool
        Also skip blank strings, so ``{"fullName": "", "name": "Ada"}``
        resolves to 'Ada'.

    Returns
    -------
    Any
        Resolved value, or None when no synonym holds one.
    """
    if not isinstance(block, Mapping):
        return None
    for key in FIELD_SYNONYMS[field_name]:
        value = block.get(key)
        if value is None:
            continue
        if text and not string_or_empty(value):
            continue
        return value
    return None


def _block(raw: Any, field_name: str) -> Mapping[str, Any]:
    value = resolve(raw, field_name)
    return value if isinstance(value, Mapping) else {}


def _text(block: Any, field_name: str, default: Optional[str] = None) -> Optional[str]:
    value = resolve(block, field_name, text=True)
    return string_or_empty(value) if value is not None else default


def _ranking(block: Any, field_name: str) -> Any:
    value = resolve(block, field_name)
    if value is None:
        return NOT_AVAILABLE
    if isinstance(value, (int, float, str)) and not isinstance(value, bool):
        return value
    return NOT_AVAILABLE


def _flag(block: Any, field_name: str, default: bool = True) -> bool:
    value = resolve(block, field_name)
    return value if isinstance(value, bool) else default


def normalize_component_scores(value: Any) -> Optional[Dict[str, float]]:
    """Keep numeric component scores under unique, trimmed names."""
    if not isinstance(value, Mapping):
        return None
    scores: Dict[str, float] = {}
    for name, score in value.items():
        number = coerce_number(score)
        key = string_or_empty(name)
        if number is None or not key or key in scores:
            continue
        scores[key] = number
    return scores


def normalize_subject(raw_subject: Mapping[str, Any]) -> SubjectRecord:
    total = coerce_number(resolve(raw_subject, "subject.total_score"))
    return SubjectRecord(
        subject_name=_text(raw_subject, "subject.subject_name", DEFAULT_SUBJECT_NAME),
        total_score=total if total is not None else 0.0,
        grade=_text(raw_subject, "subject.grade", "-"),
        remark=_text(raw_subject, "subject.remark", "-"),
        component_scores=normalize_component_scores(
            resolve(raw_subject, "subject.component_scores")
        ),
        subject_position=coerce_int(resolve(raw_subject, "subject.subject_position")),
        total_students_in_subject=coerce_int(
            resolve(raw_subject, "subject.total_students_in_subject")
        ),
    )


def normalize_subjects(raw_subjects: Any) -> Tuple[SubjectRecord, ...]:
    """Normalize the subject list, keeping order.

    A value that is not a list is treated as an empty list, and entries that
    are not mappings are skipped.
    """
    if not isinstance(raw_subjects, (list, tuple)):
        if raw_subjects is not None:
            LOG.warning(
                "Subject list is %s, not a list; treating as empty",
                type(raw_subjects).__name__,
            )
        return ()
    subjects = []
    for index, raw_subject in enumerate(raw_subjects):
        if not isinstance(raw_subject, Mapping):
            LOG.warning("Skipping malformed subject entry at position %d", index)
            continue
        subjects.append(normalize_subject(raw_subject))
    return tuple(subjects)


def summarize(subjects: Sequence[SubjectRecord], raw_summary: Mapping[str, Any]) -> SummaryBlock:
    """Recompute totals from subjects and resolve ranking fields.

    ``average_score`` is ``total_score / len(subjects)``, or 0 with no subjects.
    """
    total = sum(subject.total_score for subject in subjects)
    average = total / len(subjects) if subjects else 0.0
    return SummaryBlock(
        total_score=total,
        average_score=average,
        position_in_arm=_ranking(raw_summary, "summary.position_in_arm"),
        total_students_in_arm=_ranking(raw_summary, "summary.total_students_in_arm"),
        position_in_level=_ranking(raw_summary, "summary.position_in_level"),
        total_students_in_level=_ranking(raw_summary, "summary.total_students_in_level"),
        gpa_average=_ranking(raw_summary, "summary.gpa_average"),
        campus_percentile=coerce_number(resolve(raw_summary, "summary.campus_percentile")),
    )


def normalize_attendance(raw_attendance: Any) -> Optional[AttendanceBlock]:
    """Attendance counts with rate recomputed as present / total * 100."""
    if not isinstance(raw_attendance, Mapping):
        return None

    def count(field_name: str) -> int:
        return coerce_int(resolve(raw_attendance, field_name)) or 0

    present = count("attendance.present")
    total = count("attendance.total")
    return AttendanceBlock(
        present=present,
        absent=count("attendance.absent"),
        late=count("attendance.late"),
        excused=count("attendance.excused"),
        unexcused=count("attendance.unexcused"),
        total=total,
        rate=(present / total) * 100 if total > 0 else 0.0,
    )


def normalize_components(raw_components: Any) -> Optional[Tuple[AssessmentComponent, ...]]:
    """Assessment component definitions, dropping unnamed or duplicate entries."""
    if not isinstance(raw_components, (list, tuple)) or not raw_components:
        return None
    components = []
    seen = set()
    for raw in raw_components:
        if isinstance(raw, AssessmentComponent):
            component = raw
        elif isinstance(raw, Mapping):
            name = _text(raw, "component.name")
            if not name:
                continue
            component = AssessmentComponent(
                name=name,
                max_score=coerce_number(resolve(raw, "component.max_score")) or 0.0,
            )
        else:
            continue
        if component.name in seen:
            continue
        seen.add(component.name)
        components.append(component)
    return tuple(components) or None


def visual_config(class_config: Any, default_layout: Optional[str] = None) -> VisualConfig:
    """Build presentation settings from a class configuration.

    Accepts either ``{"report_config": {...}}`` or the inner mapping.
    """
    if isinstance(class_config, Mapping):
        inner = class_config.get("report_config", class_config.get("reportConfig"))
        settings = inner if isinstance(inner, Mapping) else class_config
    else:
        settings = {}
    defaults = VisualConfig()
    return VisualConfig(
        layout=_text(settings, "config.layout", default_layout),
        color_theme=_text(settings, "config.color_theme", defaults.color_theme),
        custom_logo_url=_text(settings, "config.custom_logo_url"),
        school_name_override=_text(settings, "config.school_name_override"),
        principal_label=_text(settings, "config.principal_label", defaults.principal_label),
        teacher_label=_text(settings, "config.teacher_label", defaults.teacher_label),
        show_arm_ranking=_flag(settings, "config.show_arm_ranking"),
        show_level_ranking=_flag(settings, "config.show_level_ranking"),
        show_subject_position=_flag(settings, "config.show_subject_position"),
    )


def merge_school(raw_school: Mapping[str, Any], school_config: Any, config: VisualConfig) -> SchoolBlock:
    """Merge school identity: class override > report payload > school config > fallback."""
    sources = [raw_school, school_config if isinstance(school_config, Mapping) else {}]

    def first(field_name: str) -> Optional[str]:
        for source in sources:
            value = _text(source, field_name)
            if value:
                return value
        return None

    return SchoolBlock(
        name=config.school_name_override or first("school.name") or DEFAULT_SCHOOL_NAME,
        display_name=first("school.display_name"),
        address=first("school.address"),
        motto=first("school.motto"),
        logo_url=config.custom_logo_url or first("school.logo_url"),
    )


def build_canonical_report(
    raw_report: Any,
    school_config: Optional[Mapping[str, Any]] = None,
    admission_number: Optional[str] = None,
    assessment_components: Any = None,
    class_config: Optional[Mapping[str, Any]] = None,
    default_layout: Optional[str] = None,
) -> CanonicalReport:
    """Normalize one raw report payload into a CanonicalReport.

    Parameters
    ----------
    raw_report : Any
        Report payload as fetched from the report source. Non-mapping input
        yields a report made entirely of defaults.
    school_config : Mapping, optional
        School-wide defaults (name, address, motto, logo).
    admission_number : str, optional
        Roster admission number; takes precedence over the payload's.
    assessment_components : list, optional
        Class assessment structure, as mappings or AssessmentComponent.
    class_config : Mapping, optional
        Class presentation overrides.
    default_layout : str, optional
        Layout used when the class does not name one.

    Returns
    -------
    CanonicalReport
        Fully populated record; no field is ever missing.
    """
    if not isinstance(raw_report, Mapping):
        LOG.warning("Report payload is %s, not a mapping; using defaults", type(raw_report).__name__)
        raw_report = {}

    student = _block(raw_report, "student")
    term = _block(raw_report, "term")
    subjects = normalize_subjects(resolve(raw_report, "subjects"))
    comments = _block(raw_report, "comments")
    config = visual_config(class_config, default_layout)

    return CanonicalReport(
        student=StudentBlock(
            full_name=_text(student, "student.full_name", DEFAULT_STUDENT_NAME),
            admission_number=string_or_empty(admission_number)
            or _text(student, "student.admission_number", NOT_AVAILABLE),
            class_name=_text(student, "student.class_name", DEFAULT_CLASS_NAME),
            arm_name=_text(student, "student.arm_name"),
        ),
        school=merge_school(_block(raw_report, "school"), school_config, config),
        term=TermBlock(
            session_label=_text(term, "term.session_label", ""),
            term_label=_text(term, "term.term_label", ""),
        ),
        subjects=subjects,
        summary=summarize(subjects, _block(raw_report, "summary")),
        comments=CommentsBlock(
            teacher=_text(comments, "comments.teacher", DEFAULT_COMMENT),
            principal=_text(comments, "comments.principal", DEFAULT_COMMENT),
        ),
        attendance=normalize_attendance(resolve(raw_report, "attendance")),
        assessment_components=normalize_components(assessment_components),
        config=config,
    )

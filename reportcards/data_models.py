"""Unified data models for the report card pipeline.

This module provides the core dataclasses passed between pipeline steps:
roster and debt facts on the way in, the canonical report record in the
middle, and batch/share results on the way out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from .enums import IneligibilityReason, JobState, OutputMode, Watermark
from .utils import as_utc

# Rankings and GPA arrive as numbers, numeric strings or the "N/A" sentinel.
Ranking = Union[int, float, str]

NOT_AVAILABLE = "N/A"


@dataclass(frozen=True)
class RosterEntry:
    """One enrolled student as listed on the class roster.

    Parameters
    ----------
    student_id : str
        Stable student identifier.
    name : str
        Display name.
    admission_number : str
        School admission number; empty when the school has not assigned one.
    class_id : str
        Enrollment class reference.
    """

    student_id: str
    name: str
    admission_number: str
    class_id: str


@dataclass(frozen=True)
class Invoice:
    """A fee invoice for one student in one term."""

    student_id: str
    total_amount: float
    amount_paid: float
    status: str


@dataclass(frozen=True)
class ReportFact:
    """Whether a term report exists for a student, with its average if known."""

    student_id: str
    report_exists: bool
    average_score: Optional[float] = None


@dataclass(frozen=True)
class StudentStanding:
    """Roster entry joined with debt and report-existence facts.

    Computed once per batch session by eligibility.derive_standings() and
    never mutated afterwards.

    Parameters
    ----------
    student_id, name, admission_number, class_id
        Copied from the roster entry.
    has_debt : bool
        True when the term's unpaid balance is positive or any invoice is
        not marked 'Paid'.
    outstanding_amount : float
        Sum of ``total_amount - amount_paid`` over the term's invoices.
    report_exists : bool
        True when a term report has been recorded for the student.
    average_score : float, optional
        Average reported alongside the report fact, if any.
    """

    student_id: str
    name: str
    admission_number: str
    class_id: str
    has_debt: bool
    outstanding_amount: float
    report_exists: bool
    average_score: Optional[float] = None

    @property
    def is_eligible(self) -> bool:
        return not self.has_debt and self.report_exists


@dataclass(frozen=True)
class EligibilityResult:
    """Partition of a session's standings.

    Parameters
    ----------
    eligible : List[StudentStanding]
        Students with no debt and an existing report, in session order.
    ineligible : Dict[IneligibilityReason, List[StudentStanding]]
        Every other student, bucketed by the first failing predicate.
    """

    eligible: List[StudentStanding]
    ineligible: Dict[IneligibilityReason, List[StudentStanding]]

    @property
    def all_ineligible(self) -> List[StudentStanding]:
        return [s for bucket in self.ineligible.values() for s in bucket]


@dataclass(frozen=True)
class StudentBlock:
    full_name: str
    admission_number: str
    class_name: str
    arm_name: Optional[str] = None


@dataclass(frozen=True)
class SchoolBlock:
    name: str
    display_name: Optional[str] = None
    address: Optional[str] = None
    motto: Optional[str] = None
    logo_url: Optional[str] = None


@dataclass(frozen=True)
class TermBlock:
    session_label: str
    term_label: str


@dataclass(frozen=True)
class SubjectRecord:
    """One row of the subject table.

    Parameters
    ----------
    subject_name : str
        Subject display name.
    total_score : float
        Subject total; non-numeric input is coerced to 0.
    grade : str
        Letter grade, '-' when absent.
    remark : str
        Teacher remark, '-' when absent.
    component_scores : Dict[str, float], optional
        Score per assessment component name (e.g. {"CA 1": 18, "Exam": 55}).
    subject_position : Ranking, optional
        Rank within the subject, None when not computed.
    total_students_in_subject : int, optional
        Number of students ranked in the subject.
    """

    subject_name: str
    total_score: float
    grade: str = "-"
    remark: str = "-"
    component_scores: Optional[Dict[str, float]] = None
    subject_position: Optional[Ranking] = None
    total_students_in_subject: Optional[int] = None


@dataclass(frozen=True)
class SummaryBlock:
    total_score: float
    average_score: float
    position_in_arm: Ranking = NOT_AVAILABLE
    total_students_in_arm: Ranking = NOT_AVAILABLE
    position_in_level: Ranking = NOT_AVAILABLE
    total_students_in_level: Ranking = NOT_AVAILABLE
    gpa_average: Ranking = NOT_AVAILABLE
    campus_percentile: Optional[float] = None


@dataclass(frozen=True)
class CommentsBlock:
    teacher: str
    principal: str


@dataclass(frozen=True)
class AttendanceBlock:
    present: int = 0
    absent: int = 0
    late: int = 0
    excused: int = 0
    unexcused: int = 0
    total: int = 0
    rate: float = 0.0


@dataclass(frozen=True)
class AssessmentComponent:
    """A column of the class's assessment structure (e.g. 'CA 1' out of 20)."""

    name: str
    max_score: float


@dataclass(frozen=True)
class VisualConfig:
    """Per-class presentation overrides.

    ``layout`` names a module in the layouts directory; None means the
    configured default layout.
    """

    layout: Optional[str] = None
    color_theme: str = "#1e3a8a"
    custom_logo_url: Optional[str] = None
    school_name_override: Optional[str] = None
    principal_label: str = "Principal"
    teacher_label: str = "Class Teacher"
    show_arm_ranking: bool = True
    show_level_ranking: bool = True
    show_subject_position: bool = True


@dataclass(frozen=True)
class CanonicalReport:
    """The one shape every layout renders from.

    Produced by normalize.build_canonical_report(). Every numeric field holds
    a number or a sentinel ('N/A' / None); nothing is ever missing.
    """

    student: StudentBlock
    school: SchoolBlock
    term: TermBlock
    subjects: Tuple[SubjectRecord, ...]
    summary: SummaryBlock
    comments: CommentsBlock
    config: VisualConfig
    attendance: Optional[AttendanceBlock] = None
    assessment_components: Optional[Tuple[AssessmentComponent, ...]] = None

    @property
    def school_display_name(self) -> str:
        return self.config.school_name_override or self.school.display_name or self.school.name


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of checking one student before generation.

    Parameters
    ----------
    student_id : str
        Student checked.
    passed : bool
        True when the student can be rendered.
    reasons : List[str]
        Human-readable reasons, empty when passed.
    student_name : str, optional
        Display name for messages.
    """

    student_id: str
    passed: bool
    reasons: List[str] = field(default_factory=list)
    student_name: Optional[str] = None


@dataclass(frozen=True)
class BatchOptions:
    """Options chosen for one generation run.

    Parameters
    ----------
    output_mode : OutputMode
        ZIP of per-student PDFs or one combined PDF.
    watermark : Watermark
        Stamp drawn on every page.
    include_cover_sheet : bool
        Prepend a cover page (combined mode only).
    include_csv_summary : bool
        Produce a CSV summary of the batch.
    csv_as_separate_file : bool
        Emit the CSV as its own artifact instead of a ZIP entry. Always true in
        combined mode, which has no archive to hold it.
    layout_override : str, optional
        Layout used for every student, ignoring class configuration.
    batch_title : str
        Title printed on the cover sheet.
    """

    output_mode: OutputMode = OutputMode.ZIP
    watermark: Watermark = Watermark.NONE
    include_cover_sheet: bool = False
    include_csv_summary: bool = False
    csv_as_separate_file: bool = False
    layout_override: Optional[str] = None
    batch_title: str = "Report Cards"


@dataclass(frozen=True)
class BatchFailure:
    """A student that could not be processed, with a human-readable reason."""

    name: str
    reason: str
    student_id: Optional[str] = None


@dataclass
class BatchReport:
    """Accumulating success/failure tally of a batch job.

    ``successes`` holds student ids; two students may share a display name.
    """

    successes: List[str] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.successes)

    @property
    def failure_count(self) -> int:
        return len(self.failures)


@dataclass(frozen=True)
class BatchArtifact:
    """A file produced by a batch, ready to hand to the host's save mechanism."""

    filename: str
    content: bytes
    media_type: str


@dataclass(frozen=True)
class BatchResult:
    """Terminal outcome of a batch job.

    ``artifacts`` is empty unless ``state`` is COMPLETED.
    """

    state: JobState
    report: BatchReport
    artifacts: List[BatchArtifact] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(frozen=True)
class ShareLinkRecord:
    """Persisted share token for one (student, term)."""

    student_id: str
    term_id: str
    token: str
    expires_at: datetime
    published: bool = True

    def is_live(self, now: datetime) -> bool:
        return as_utc(self.expires_at) > as_utc(now)


@dataclass(frozen=True)
class IssuedLink:
    student_id: str
    student_name: str
    url: str
    token: str
    expires_at: datetime
    reused: bool


@dataclass(frozen=True)
class ShareResult:
    links: List[IssuedLink]
    failures: List[BatchFailure]

"""Batch generation of report cards for a class.

A BatchJob takes the selected students through a forward-only state
machine::

    idle -> queued -> validating -> generating -> packaging -> completed
                                                            \\-> failed
                                                            \\-> cancelled

**Error Handling Philosophy:**

- **Validation** is all-or-nothing: any failing student blocks the batch
  before rendering starts (ValidationBlockedError, job FAILED)
- **Generation** is best-effort: a student whose report cannot be fetched,
  renders no pages, or raises during normalize/render/assemble is recorded
  as ``{name, reason}`` and the loop moves on
- **Packaging** runs only if at least one student succeeded; with zero
  successes the job fails with "Failed to generate any report cards." and
  no artifact is exposed
- **Collaborator errors** outside the per-student loop (a validation
  service that raises, a packaging error) end the job FAILED with the error;
  ``run()`` always returns a BatchResult
- **Cancellation** is checked between students and before packaging; a
  cancelled job discards partial work and exposes no artifact

Students are processed one at a time, in selection order. Combined-mode page
order therefore equals selection order.
"""

from __future__ import annotations

import io
import logging
import threading
import zipfile
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

import pandas as pd
from pypdf import PdfReader, PdfWriter

from .assemble import CoverSheet, PdfAssembler, writer_bytes
from .data_models import (
    BatchArtifact,
    BatchFailure,
    BatchOptions,
    BatchReport,
    BatchResult,
    StudentStanding,
)
from .enums import JobState, OutputMode
from .formatting import batch_filename, student_report_filename
from .normalize import build_canonical_report
from .render import ReportRenderer
from .validation import ValidationBlockedError, validate_selection

LOG = logging.getLogger(__name__)

ZERO_SUCCESS_MESSAGE = "Failed to generate any report cards."

ProgressCallback = Callable[[int, int], None]

CSV_COLUMNS = [
    "Student Name",
    "Admission Number",
    "Average Score",
    "Has Debt",
    "Report Exists",
    "Status",
]

_TRANSITIONS = {
    JobState.IDLE: {JobState.QUEUED},
    JobState.QUEUED: {JobState.VALIDATING, JobState.FAILED, JobState.CANCELLED},
    JobState.VALIDATING: {JobState.GENERATING, JobState.FAILED, JobState.CANCELLED},
    JobState.GENERATING: {JobState.PACKAGING, JobState.FAILED, JobState.CANCELLED},
    JobState.PACKAGING: {JobState.COMPLETED, JobState.FAILED},
}


class JobCancelled(Exception):
    """Internal signal that the job was cancelled at a checkpoint."""


def unique_name(filename: str, used: Dict[str, int]) -> str:
    """Suffix ``_2``, ``_3`` ... before the extension when a name repeats."""
    if filename not in used:
        used[filename] = 1
        return filename
    stem, dot, extension = filename.rpartition(".")
    if not dot:
        stem, extension = filename, ""
    count = used[filename]
    while True:
        count += 1
        candidate = f"{stem}_{count}{dot}{extension}"
        if candidate not in used:
            used[filename] = count
            used[candidate] = 1
            return candidate


def summary_frame(
    students: Sequence[StudentStanding], report: BatchReport
) -> pd.DataFrame:
    """CSV summary rows for the selected students, in selection order."""
    failed = {failure.student_id: failure.reason for failure in report.failures}
    succeeded = set(report.successes)
    rows = []
    for student in students:
        if student.student_id in succeeded:
            status = "Generated"
        elif student.student_id in failed:
            status = f"Failed: {failed[student.student_id]}"
        else:
            status = "Not processed"
        rows.append(
            {
                "Student Name": student.name,
                "Admission Number": student.admission_number or "",
                "Average Score": (
                    round(student.average_score, 2) if student.average_score is not None else ""
                ),
                "Has Debt": "Yes" if student.has_debt else "No",
                "Report Exists": "Yes" if student.report_exists else "No",
                "Status": status,
            }
        )
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


class BatchJob:
    """One generation run over a set of selected students.

    Parameters
    ----------
    students : Sequence[StudentStanding]
        Selected students, in the order they should be processed.
    term_id : str
        Term being generated.
    class_id : str
        Class the students belong to.
    class_name, term_name : str
        Display names used in filenames and the cover sheet.
    options : BatchOptions
        Output mode, watermark, cover sheet and CSV choices.
    reports : ReportSource
        Fetches raw report payloads.
    config_source : ConfigSource
        School and class configuration.
    validator : ValidationSource
        Pre-generation checks.
    renderer : ReportRenderer
        Turns canonical reports into page bitmaps.
    assembler : PdfAssembler
        Turns bitmaps into PDF pages.
    progress : callable, optional
        Called with ``(current, total)`` after each student.
    clock : callable, optional
        Returns the current time; used for the cover sheet timestamp.
    """

    def __init__(
        self,
        students: Sequence[StudentStanding],
        term_id: str,
        class_id: str,
        class_name: str,
        term_name: str,
        options: BatchOptions,
        reports,
        config_source,
        validator,
        renderer: ReportRenderer,
        assembler: PdfAssembler,
        progress: Optional[ProgressCallback] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.students = list(students)
        self.term_id = term_id
        self.class_id = class_id
        self.class_name = class_name
        self.term_name = term_name
        self.options = options
        self.reports = reports
        self.config_source = config_source
        self.validator = validator
        self.renderer = renderer
        self.assembler = assembler
        self.progress = progress
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.state = JobState.IDLE
        self.current = 0
        self.total = len(self.students)
        self.report = BatchReport()
        self._cancel = threading.Event()

    # State ---------------------------------------------------------------

    def _transition(self, new_state: JobState) -> None:
        allowed = _TRANSITIONS.get(self.state, set())
        if new_state not in allowed:
            raise RuntimeError(f"Invalid job transition {self.state.value} -> {new_state.value}")
        LOG.info("Batch job %s -> %s", self.state.value, new_state.value)
        self.state = new_state

    def cancel(self) -> None:
        """Request cancellation; honored at the next checkpoint."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _checkpoint(self) -> None:
        if self._cancel.is_set():
            raise JobCancelled()

    def _advance(self) -> None:
        self.current += 1
        if self.progress is not None:
            self.progress(self.current, self.total)

    # Per-student ---------------------------------------------------------

    def render_student(self, student: StudentStanding):
        """Fetch, normalize and render one student; returns page bitmaps.

        Raises
        ------
        LookupError
            If the report source has no payload for the student.
        ValueError
            If rendering produced no pages.
        """
        raw = self.reports.fetch_report(student.student_id, self.term_id)
        if raw is None:
            raise LookupError("No report data found for this term.")
        canonical = build_canonical_report(
            raw,
            school_config=self.config_source.school_config(),
            admission_number=student.admission_number,
            assessment_components=self.config_source.assessment_components(self.class_id),
            class_config=self.config_source.class_config(self.class_id),
        )
        pages = self.renderer.render(
            canonical, layout=self.options.layout_override, watermark=self.options.watermark
        )
        if not pages:
            raise ValueError("Rendering produced no pages.")
        return pages

    # Run -----------------------------------------------------------------

    def run(self) -> BatchResult:
        """Execute the job to a terminal state.

        Returns
        -------
        BatchResult
            Terminal state, success/failure report and, when COMPLETED, the
            artifacts. A blocked validation yields FAILED with the gate's
            message; per-student reasons are in ``report.failures``.
        """
        self._transition(JobState.QUEUED)
        try:
            self._checkpoint()
            self._transition(JobState.VALIDATING)
            names = {s.student_id: s.name for s in self.students}
            try:
                validate_selection(
                    self.validator, [s.student_id for s in self.students], self.term_id, names
                )
            except ValidationBlockedError as exc:
                self.report.failures.extend(
                    BatchFailure(
                        name=f.student_name or f.student_id,
                        reason="; ".join(f.reasons) or "Validation failed.",
                        student_id=f.student_id,
                    )
                    for f in exc.failures
                )
                self._transition(JobState.FAILED)
                return BatchResult(state=JobState.FAILED, report=self.report, error=str(exc))

            self._checkpoint()
            self._transition(JobState.GENERATING)
            documents = self._generate()

            self._checkpoint()
            if not self.report.successes:
                LOG.error(ZERO_SUCCESS_MESSAGE)
                self._transition(JobState.FAILED)
                return BatchResult(
                    state=JobState.FAILED, report=self.report, error=ZERO_SUCCESS_MESSAGE
                )

            self._transition(JobState.PACKAGING)
            artifacts = self._package(documents)
            self._transition(JobState.COMPLETED)
            LOG.info(
                "Batch completed: %d succeeded, %d failed",
                self.report.success_count,
                self.report.failure_count,
            )
            return BatchResult(state=JobState.COMPLETED, report=self.report, artifacts=artifacts)
        except JobCancelled:
            LOG.warning("Batch job cancelled after %d of %d student(s)", self.current, self.total)
            self._transition(JobState.CANCELLED)
            return BatchResult(state=JobState.CANCELLED, report=self.report, error="Cancelled.")
        except Exception as exc:
            # Collaborator or packaging errors outside the per-student loop.
            error = str(exc) or exc.__class__.__name__
            LOG.exception("Batch job failed while %s: %s", self.state.value, error)
            self._transition(JobState.FAILED)
            return BatchResult(state=JobState.FAILED, report=self.report, error=error)

    def _generate(self) -> List[tuple]:
        """Render every student; returns ``(student, pdf_bytes)`` for successes."""
        documents = []
        for student in self.students:
            self._checkpoint()
            try:
                pages = self.render_student(student)
                title = f"{student.name} - {self.term_name} Report Card"
                document = self.assembler.student_document(pages, title=title)
            except Exception as exc:
                reason = str(exc) or exc.__class__.__name__
                LOG.warning("Failed to generate report card for %s: %s", student.name, reason)
                self.report.failures.append(
                    BatchFailure(name=student.name, reason=reason, student_id=student.student_id)
                )
            else:
                self.report.successes.append(student.student_id)
                documents.append((student, document))
            self._advance()
        return documents

    def _package(self, documents: List[tuple]) -> List[BatchArtifact]:
        if self.options.output_mode is OutputMode.ZIP:
            artifacts = [self._zip(documents)]
        else:
            artifacts = [self._combined(documents)]
        csv_artifact = self._csv()
        if csv_artifact is not None:
            if self.options.output_mode is OutputMode.ZIP and not self.options.csv_as_separate_file:
                artifacts[0] = self._zip(documents, extra=csv_artifact)
            else:
                artifacts.append(csv_artifact)
        return artifacts

    def _zip(self, documents: List[tuple], extra: Optional[BatchArtifact] = None) -> BatchArtifact:
        buffer = io.BytesIO()
        used: Dict[str, int] = {}
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for student, document in documents:
                entry = unique_name(
                    student_report_filename(student.name, student.admission_number, self.term_name),
                    used,
                )
                archive.writestr(entry, document)
            if extra is not None:
                archive.writestr(unique_name(extra.filename, used), extra.content)
        return BatchArtifact(
            filename=batch_filename(
                self.class_name, self.term_name, "ReportCards", OutputMode.ZIP.extension
            ),
            content=buffer.getvalue(),
            media_type="application/zip",
        )

    def _combined(self, documents: List[tuple]) -> BatchArtifact:
        writer = PdfWriter()
        if self.options.include_cover_sheet:
            self.assembler.add_cover(
                writer,
                CoverSheet(
                    title=self.options.batch_title,
                    class_name=self.class_name,
                    term_name=self.term_name,
                    student_count=len(self.students),
                    watermark=self.options.watermark.value,
                    template=self.options.layout_override or self.renderer.default_layout,
                    generated_at=self.clock(),
                ),
            )
        for _, document in documents:
            writer.append(PdfReader(io.BytesIO(document)))
        writer.add_metadata({"/Title": f"{self.class_name} {self.term_name} Report Cards"})
        return BatchArtifact(
            filename=batch_filename(
                self.class_name, self.term_name, "ReportCards", OutputMode.COMBINED.extension
            ),
            content=writer_bytes(writer),
            media_type="application/pdf",
        )

    def _csv(self) -> Optional[BatchArtifact]:
        if not self.options.include_csv_summary:
            return None
        frame = summary_frame(self.students, self.report)
        return BatchArtifact(
            filename=batch_filename(self.class_name, self.term_name, "Summary", "csv"),
            content=frame.to_csv(index=False).encode("utf-8"),
            media_type="text/csv",
        )

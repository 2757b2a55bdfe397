"""Unit tests for batch module - job state machine and packaging.

Tests cover:
- Successful ZIP and combined runs
- Partial failure tolerance and total failure
- The validation gate blocking before any rendering
- Cancellation between students
- ZIP entry naming, duplicate names and CSV summaries
- Cover sheet placement in combined mode
- Progress reporting

Real-world significance:
- One broken record must not stop a whole class's report cards
- A batch with nothing to show must fail loudly, not hand out an empty ZIP
"""

from __future__ import annotations

import io
import zipfile
from datetime import datetime, timezone
from typing import List, Tuple

import pandas as pd
import pytest
from pypdf import PdfReader

from reportcards.assemble import PdfAssembler
from reportcards.batch import ZERO_SUCCESS_MESSAGE, BatchJob, summary_frame, unique_name
from reportcards.data_models import BatchFailure, BatchOptions, BatchReport
from reportcards.enums import JobState, OutputMode, Watermark
from reportcards.render import ReportRenderer
from tests.fixtures import sample_input

TERM = "2024-T1"


def make_job(
    renderer: ReportRenderer,
    assembler: PdfAssembler,
    students,
    sources,
    options: BatchOptions = BatchOptions(),
    progress=None,
) -> BatchJob:
    return BatchJob(
        students=students,
        term_id=TERM,
        class_id="jss1a",
        class_name="JSS 1A",
        term_name="First Term",
        options=options,
        reports=sources,
        config_source=sources,
        validator=sources,
        renderer=renderer,
        assembler=assembler,
        progress=progress,
        clock=lambda: datetime(2024, 12, 13, 9, 30, tzinfo=timezone.utc),
    )


def reports_for(students, num_subjects: int = 3):
    return {
        s.student_id: sample_input.create_raw_report(full_name=s.name, num_subjects=num_subjects)
        for s in students
    }


def zip_entries(content: bytes) -> List[str]:
    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        return archive.namelist()


@pytest.mark.unit
class TestBatchJobZip:
    """Unit tests for ZIP-mode batches."""

    def test_all_students_succeed(self, renderer, assembler) -> None:
        students = sample_input.create_standings(3)
        job = make_job(renderer, assembler, students, sample_input.InMemorySources(reports_for(students)))

        result = job.run()

        assert result.state is JobState.COMPLETED
        assert result.report.success_count == 3
        assert result.report.failure_count == 0
        [artifact] = result.artifacts
        assert artifact.filename == "JSS 1A_First Term_ReportCards.zip"
        assert artifact.media_type == "application/zip"
        assert zip_entries(artifact.content) == [
            "Ada Obi_ADM-001_First Term_Report.pdf",
            "Bola Adeyemi_ADM-002_First Term_Report.pdf",
            "Chidi Okeke_ADM-003_First Term_Report.pdf",
        ]

    def test_partial_failure_is_tolerated(self, renderer, assembler) -> None:
        """Verify missing and crashing students are recorded and skipped.

        Real-world significance:
        - A class of 40 still gets 38 report cards when two records break
        """
        students = sample_input.create_standings(3)
        reports = reports_for(students)
        del reports["stu-002"]
        sources = sample_input.InMemorySources(reports, explode_for=["stu-003"])
        job = make_job(renderer, assembler, students, sources)

        result = job.run()

        assert result.state is JobState.COMPLETED
        assert result.report.successes == ["stu-001"]
        assert result.report.failures == [
            BatchFailure(
                name="Bola Adeyemi", reason="No report data found for this term.", student_id="stu-002"
            ),
            BatchFailure(name="Chidi Okeke", reason="database connection reset", student_id="stu-003"),
        ]
        assert zip_entries(result.artifacts[0].content) == ["Ada Obi_ADM-001_First Term_Report.pdf"]

    def test_total_failure_exposes_no_artifact(self, renderer, assembler) -> None:
        students = sample_input.create_standings(2)
        job = make_job(renderer, assembler, students, sample_input.InMemorySources({}))

        result = job.run()

        assert result.state is JobState.FAILED
        assert result.error == ZERO_SUCCESS_MESSAGE
        assert result.artifacts == []
        assert result.report.failure_count == 2

    def test_duplicate_names_get_suffixes(self, renderer, assembler) -> None:
        students = [
            sample_input.create_standing("s1", "Ada Obi", None),
            sample_input.create_standing("s2", "Ada Obi", None),
        ]
        job = make_job(renderer, assembler, students, sample_input.InMemorySources(reports_for(students)))
        entries = zip_entries(job.run().artifacts[0].content)
        assert entries == [
            "Ada Obi_NO_ADM_First Term_Report.pdf",
            "Ada Obi_NO_ADM_First Term_Report_2.pdf",
        ]

    def test_csv_summary_inside_zip(self, renderer, assembler) -> None:
        students = sample_input.create_standings(2)
        reports = reports_for(students)
        del reports["stu-002"]
        options = BatchOptions(include_csv_summary=True)
        job = make_job(renderer, assembler, students, sample_input.InMemorySources(reports), options)

        result = job.run()

        [artifact] = result.artifacts
        with zipfile.ZipFile(io.BytesIO(artifact.content)) as archive:
            assert "JSS 1A_First Term_Summary.csv" in archive.namelist()
            frame = pd.read_csv(io.BytesIO(archive.read("JSS 1A_First Term_Summary.csv")), dtype=str)
        assert list(frame["Student Name"]) == ["Ada Obi", "Bola Adeyemi"]
        assert list(frame["Status"]) == ["Generated", "Failed: No report data found for this term."]
        assert list(frame["Has Debt"]) == ["No", "No"]

    def test_csv_status_for_same_name_students(self, renderer, assembler) -> None:
        """Verify the CSV status follows the student, not the display name.

        Real-world significance:
        - Two pupils called Ada Obi must not share one status row
        """
        students = [
            sample_input.create_standing("s1", "Ada Obi", "ADM-101"),
            sample_input.create_standing("s2", "Ada Obi", "ADM-102"),
        ]
        reports = reports_for(students)
        sources = sample_input.InMemorySources(reports, explode_for=["s2"])
        options = BatchOptions(include_csv_summary=True, csv_as_separate_file=True)
        job = make_job(renderer, assembler, students, sources, options)

        result = job.run()

        csv_artifact = result.artifacts[1]
        frame = pd.read_csv(io.BytesIO(csv_artifact.content), dtype=str)
        assert list(frame["Admission Number"]) == ["ADM-101", "ADM-102"]
        assert list(frame["Status"]) == ["Generated", "Failed: database connection reset"]

    def test_csv_summary_as_separate_file(self, renderer, assembler) -> None:
        students = sample_input.create_standings(1)
        options = BatchOptions(include_csv_summary=True, csv_as_separate_file=True)
        job = make_job(renderer, assembler, students, sample_input.InMemorySources(reports_for(students)), options)

        result = job.run()

        assert [a.filename for a in result.artifacts] == [
            "JSS 1A_First Term_ReportCards.zip",
            "JSS 1A_First Term_Summary.csv",
        ]
        assert zip_entries(result.artifacts[0].content) == ["Ada Obi_ADM-001_First Term_Report.pdf"]


@pytest.mark.unit
class TestBatchJobCombined:
    """Unit tests for combined-PDF batches."""

    def test_combined_with_cover_sheet(self, renderer, assembler) -> None:
        """Verify the cover is page 1 and the first student starts on page 2.

        Real-world significance:
        - Printed batches are filed by their cover sheet
        """
        students = sample_input.create_standings(2)
        options = BatchOptions(
            output_mode=OutputMode.COMBINED,
            include_cover_sheet=True,
            watermark=Watermark.DRAFT,
            batch_title="Term Report Cards",
        )
        job = make_job(renderer, assembler, students, sample_input.InMemorySources(reports_for(students)), options)

        result = job.run()

        [artifact] = result.artifacts
        assert artifact.filename == "JSS 1A_First Term_ReportCards.pdf"
        reader = PdfReader(io.BytesIO(artifact.content))
        assert len(reader.pages) == 3
        cover_text = reader.pages[0].extract_text()
        assert "Term Report Cards" in cover_text
        assert "DRAFT" in cover_text
        assert "classic" in cover_text

    def test_combined_page_order_follows_selection(self, renderer, assembler) -> None:
        students = sample_input.create_standings(3)
        reports = reports_for(students)
        # The second student overflows onto a second page.
        reports["stu-002"] = sample_input.create_raw_report(full_name="Bola Adeyemi", num_subjects=20)
        options = BatchOptions(output_mode=OutputMode.COMBINED)
        job = make_job(renderer, assembler, students, sample_input.InMemorySources(reports), options)

        result = job.run()

        reader = PdfReader(io.BytesIO(result.artifacts[0].content))
        assert len(reader.pages) == 4
        assert job.reports.fetched == ["stu-001", "stu-002", "stu-003"]

    def test_combined_csv_is_always_separate(self, renderer, assembler) -> None:
        students = sample_input.create_standings(1)
        options = BatchOptions(output_mode=OutputMode.COMBINED, include_csv_summary=True)
        job = make_job(renderer, assembler, students, sample_input.InMemorySources(reports_for(students)), options)
        filenames = [a.filename for a in job.run().artifacts]
        assert filenames == ["JSS 1A_First Term_ReportCards.pdf", "JSS 1A_First Term_Summary.csv"]


@pytest.mark.unit
class TestBatchJobLifecycle:
    """Unit tests for validation, cancellation and progress."""

    def test_validation_blocks_before_rendering(self, renderer, assembler) -> None:
        """Verify a failing student stops the batch before any fetch.

        Real-world significance:
        - The gate is atomic; no partial batch exists after a block
        """
        students = sample_input.create_standings(3)
        sources = sample_input.InMemorySources(
            reports_for(students), fail_validation={"stu-002": ["Results have not been published yet."]}
        )
        job = make_job(renderer, assembler, students, sources)

        result = job.run()

        assert result.state is JobState.FAILED
        assert result.artifacts == []
        assert sources.fetched == []
        assert "Bola Adeyemi" in result.error
        assert result.report.failures == [
            BatchFailure(
                name="Bola Adeyemi", reason="Results have not been published yet.", student_id="stu-002"
            )
        ]

    def test_cancel_between_students(self, renderer, assembler) -> None:
        students = sample_input.create_standings(3)
        sources = sample_input.InMemorySources(reports_for(students))
        job_holder = []

        def progress(current: int, total: int) -> None:
            if current == 1:
                job_holder[0].cancel()

        job = make_job(renderer, assembler, students, sources, progress=progress)
        job_holder.append(job)

        result = job.run()

        assert result.state is JobState.CANCELLED
        assert result.artifacts == []
        assert sources.fetched == ["stu-001"]

    def test_cancel_before_start(self, renderer, assembler) -> None:
        students = sample_input.create_standings(1)
        sources = sample_input.InMemorySources(reports_for(students))
        job = make_job(renderer, assembler, students, sources)
        job.cancel()
        assert job.run().state is JobState.CANCELLED
        assert sources.validated == []

    def test_progress_is_monotonic(self, renderer, assembler) -> None:
        students = sample_input.create_standings(3)
        calls: List[Tuple[int, int]] = []
        job = make_job(
            renderer,
            assembler,
            students,
            sample_input.InMemorySources(reports_for(students)),
            progress=lambda current, total: calls.append((current, total)),
        )
        job.run()
        assert calls == [(1, 3), (2, 3), (3, 3)]

    def test_validation_service_error_fails_job(self, renderer, assembler) -> None:
        """Verify a crashing validation service ends the job FAILED.

        Real-world significance:
        - The caller always gets a terminal state and a report, even when
          the school database is unreachable
        """
        students = sample_input.create_standings(2)
        sources = sample_input.InMemorySources(reports_for(students))

        class DownValidator:
            def validate(self, student_ids, term_id):
                raise ConnectionError("validation service down")

        job = make_job(renderer, assembler, students, sources)
        job.validator = DownValidator()

        result = job.run()

        assert result.state is JobState.FAILED
        assert job.state is JobState.FAILED
        assert result.error == "validation service down"
        assert result.artifacts == []
        assert sources.fetched == []

    def test_packaging_error_fails_job(self, renderer, assembler, monkeypatch) -> None:
        students = sample_input.create_standings(1)
        job = make_job(renderer, assembler, students, sample_input.InMemorySources(reports_for(students)))

        def broken_zip(documents, extra=None):
            raise OSError("disk full")

        monkeypatch.setattr(job, "_zip", broken_zip)
        result = job.run()

        assert result.state is JobState.FAILED
        assert result.error == "disk full"
        assert result.report.successes == ["stu-001"]

    def test_job_cannot_run_twice(self, renderer, assembler) -> None:
        students = sample_input.create_standings(1)
        job = make_job(renderer, assembler, students, sample_input.InMemorySources(reports_for(students)))
        job.run()
        with pytest.raises(RuntimeError, match="Invalid job transition"):
            job.run()


@pytest.mark.unit
class TestHelpers:
    """Unit tests for naming and summary helpers."""

    def test_unique_name(self) -> None:
        used = {}
        names = [unique_name("a.pdf", used) for _ in range(3)]
        assert names == ["a.pdf", "a_2.pdf", "a_3.pdf"]

    def test_unique_name_skips_taken_suffix(self) -> None:
        used = {}
        unique_name("a_2.pdf", used)
        unique_name("a.pdf", used)
        assert unique_name("a.pdf", used) == "a_3.pdf"

    def test_summary_frame_uses_student_ids(self) -> None:
        students = [
            sample_input.create_standing("A1", "Ada Obi"),
            sample_input.create_standing("A2", "Ada Obi"),
        ]
        report = BatchReport(
            successes=["A1"], failures=[BatchFailure("Ada Obi", "boom", student_id="A2")]
        )
        frame = summary_frame(students, report)
        assert list(frame["Status"]) == ["Generated", "Failed: boom"]

    def test_summary_frame_statuses(self) -> None:
        students = [
            sample_input.create_standing("s1", "Ada", average_score=71.234),
            sample_input.create_standing("s2", "Bola", has_debt=True, average_score=None),
            sample_input.create_standing("s3", "Chidi"),
        ]
        report = BatchReport(successes=["s1"], failures=[BatchFailure("Bola", "boom", student_id="s2")])
        frame = summary_frame(students, report)
        assert list(frame["Status"]) == ["Generated", "Failed: boom", "Not processed"]
        assert frame.loc[0, "Average Score"] == 71.23
        assert frame.loc[1, "Has Debt"] == "Yes"
        assert frame.loc[1, "Average Score"] == ""

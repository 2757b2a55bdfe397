"""Unit tests for sources module - the file-backed data source.

Tests cover:
- Roster loading with fuzzy headers, from CSV and Excel
- Invoice and report-fact loading
- School, class and term configuration lookups
- Validation outcomes for unknown students, unpublished and incomplete reports

Real-world significance:
- Command-line runs read everything from a directory a school exports
"""

from __future__ import annotations

import json
from pathlib import Path

import pandas as pd
import pytest

from reportcards.sources import FileDataSource, read_table
from tests.fixtures import sample_input


@pytest.mark.unit
class TestFileDataSource:
    """Unit tests for FileDataSource."""

    def test_requires_school_file(self, tmp_test_dir: Path) -> None:
        with pytest.raises(FileNotFoundError, match="School configuration not found"):
            FileDataSource(tmp_test_dir)

    def test_requires_existing_directory(self, tmp_test_dir: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Data directory not found"):
            FileDataSource(tmp_test_dir / "missing")

    def test_load_roster(self, data_dir: Path) -> None:
        roster = FileDataSource(data_dir).load_roster("jss1a")
        assert [entry.student_id for entry in roster] == [
            "stu-001",
            "stu-002",
            "stu-003",
            "stu-004",
            "stu-005",
        ]
        assert roster[0].name == "Ada Obi"
        assert roster[0].admission_number == "ADM-001"

    def test_load_roster_from_excel(self, tmp_test_dir: Path) -> None:
        data_dir = sample_input.write_data_dir(tmp_test_dir / "data")
        frame = pd.read_csv(data_dir / "roster.csv", dtype=str)
        (data_dir / "roster.csv").unlink()
        frame.to_excel(data_dir / "roster.xlsx", index=False)
        assert len(FileDataSource(data_dir).load_roster("jss1a")) == 5

    def test_roster_missing_columns(self, tmp_test_dir: Path) -> None:
        data_dir = sample_input.write_data_dir(
            tmp_test_dir / "data", roster_headers=("Student ID", "Class", "Colour", "Full Name")
        )
        with pytest.raises(ValueError, match="ADMISSION NUMBER"):
            FileDataSource(data_dir).load_roster("jss1a")

    def test_unknown_class_has_no_students(self, data_dir: Path) -> None:
        assert FileDataSource(data_dir).load_roster("ss3b") == []

    def test_load_invoices(self, data_dir: Path) -> None:
        invoices = FileDataSource(data_dir).load_invoices("2024-T1", ["stu-001", "stu-004"])
        by_student = {invoice.student_id: invoice for invoice in invoices}
        assert by_student["stu-004"].total_amount == 50000
        assert by_student["stu-004"].amount_paid == 20000
        assert by_student["stu-001"].status == "Paid"

    def test_missing_invoice_file_means_no_invoices(self, data_dir: Path) -> None:
        (data_dir / "invoices.csv").unlink()
        assert FileDataSource(data_dir).load_invoices("2024-T1", ["stu-001"]) == []

    def test_load_report_facts(self, data_dir: Path) -> None:
        facts = FileDataSource(data_dir).load_report_facts("2024-T1", ["stu-001", "stu-005"])
        assert [fact.student_id for fact in facts] == ["stu-001"]
        # Four subjects scored 60..63.
        assert facts[0].average_score == pytest.approx(61.5)

    def test_report_facts_use_recomputed_average(self, data_dir: Path) -> None:
        """Verify the eligibility average is the one the printed report shows.

        Real-world significance:
        - A stale stored average must not disagree with the report card
        """
        reports = json.loads((data_dir / "reports.json").read_text(encoding="utf-8"))
        reports["2024-T1"]["stu-001"]["summary"]["averageScore"] = 99.0
        (data_dir / "reports.json").write_text(json.dumps(reports), encoding="utf-8")

        [fact] = FileDataSource(data_dir).load_report_facts("2024-T1", ["stu-001"])
        assert fact.average_score == pytest.approx(61.5)

    @pytest.mark.parametrize("payload", [["not", "a", "mapping"], "garbage", 42])
    def test_malformed_payload_counts_as_missing(self, data_dir: Path, payload) -> None:
        """Verify one broken entry in reports.json does not break the class.

        Real-world significance:
        - The other students still get their standings and report cards
        """
        reports = json.loads((data_dir / "reports.json").read_text(encoding="utf-8"))
        reports["2024-T1"]["stu-001"] = payload
        (data_dir / "reports.json").write_text(json.dumps(reports), encoding="utf-8")
        source = FileDataSource(data_dir)

        facts = source.load_report_facts("2024-T1", ["stu-001", "stu-002"])
        assert [fact.student_id for fact in facts] == ["stu-002"]
        assert source.fetch_report("stu-001", "2024-T1") is None

        outcomes = source.validate(["stu-001", "stu-002"], "2024-T1")
        assert not outcomes["stu-001"].passed
        assert outcomes["stu-001"].reasons[0].startswith("Results have not been published yet.")
        assert outcomes["stu-002"].passed

    def test_reports_json_must_be_an_object(self, data_dir: Path) -> None:
        (data_dir / "reports.json").write_text(json.dumps([1, 2]), encoding="utf-8")
        with pytest.raises(ValueError, match="must map term ids"):
            FileDataSource(data_dir).fetch_report("stu-001", "2024-T1")

    def test_config_lookups(self, data_dir: Path) -> None:
        source = FileDataSource(data_dir)
        assert source.class_name("jss1a") == "JSS 1A"
        assert source.class_name("unknown") == "unknown"
        assert source.term_name("2024-T1") == "First Term"
        assert source.class_config("jss1a")["colorTheme"] == "#0f766e"
        assert source.school_config()["name"] == "Greenfield College"
        assert source.assessment_components("jss1a") == []

    def test_invalid_reports_json(self, data_dir: Path) -> None:
        (data_dir / "reports.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(ValueError, match="reports.json is not valid JSON"):
            FileDataSource(data_dir).fetch_report("stu-001", "2024-T1")


@pytest.mark.unit
class TestFileValidation:
    """Unit tests for FileDataSource.validate."""

    def test_complete_report_passes(self, data_dir: Path) -> None:
        outcomes = FileDataSource(data_dir).validate(["stu-001"], "2024-T1")
        assert outcomes["stu-001"].passed
        assert outcomes["stu-001"].student_name == "Ada Obi"

    def test_unknown_student(self, data_dir: Path) -> None:
        outcome = FileDataSource(data_dir).validate(["ghost"], "2024-T1")["ghost"]
        assert not outcome.passed
        assert outcome.reasons == ["Student record not found in the system."]

    def test_unpublished_report(self, data_dir: Path) -> None:
        outcome = FileDataSource(data_dir).validate(["stu-005"], "2024-T1")["stu-005"]
        assert not outcome.passed
        assert outcome.reasons[0].startswith("Results have not been published yet.")

    def test_missing_scores(self, data_dir: Path) -> None:
        reports = json.loads((data_dir / "reports.json").read_text(encoding="utf-8"))
        reports["2024-T1"]["stu-002"]["subjects"][1]["totalScore"] = None
        (data_dir / "reports.json").write_text(json.dumps(reports), encoding="utf-8")

        outcome = FileDataSource(data_dir).validate(["stu-002"], "2024-T1")["stu-002"]
        assert outcome.reasons == ["Missing scores for the following subjects: English Language"]


    def test_missing_scores_under_synonym_key(self, data_dir: Path) -> None:
        """Verify subjects stored under 'results' are checked like the report reads them."""
        reports = json.loads((data_dir / "reports.json").read_text(encoding="utf-8"))
        payload = reports["2024-T1"]["stu-003"]
        payload["results"] = payload.pop("subjects")
        payload["results"][0]["totalScore"] = None
        (data_dir / "reports.json").write_text(json.dumps(reports), encoding="utf-8")

        outcome = FileDataSource(data_dir).validate(["stu-003"], "2024-T1")["stu-003"]
        assert outcome.reasons == ["Missing scores for the following subjects: Mathematics"]

@pytest.mark.unit
class TestReadTable:
    """Unit tests for read_table."""

    def test_unsupported_extension(self, tmp_test_dir: Path) -> None:
        path = tmp_test_dir / "roster.txt"
        path.write_text("x", encoding="utf-8")
        with pytest.raises(ValueError, match="Unsupported file type"):
            read_table(path)

    def test_missing_file(self, tmp_test_dir: Path) -> None:
        with pytest.raises(FileNotFoundError):
            read_table(tmp_test_dir / "roster.csv")

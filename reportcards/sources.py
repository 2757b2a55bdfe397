"""Data sources the pipeline reads from.

The pipeline never talks to a database directly. It is handed collaborators
implementing the protocols below, which keeps the core testable with plain
in-memory fakes and lets each deployment plug in its own backend.

FileDataSource implements all four protocols over a directory of files, for
command-line runs and demos::

    data/
      roster.csv | roster.xlsx   one row per student; headers fuzzy-mapped
      invoices.csv               student_id, term_id, total_amount, amount_paid, status
      reports.json               {term_id: {student_id: raw report payload}}
      school.yaml                school, classes and terms
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import pandas as pd
import yaml

from . import column_mapper
from .data_models import Invoice, ReportFact, RosterEntry, ValidationOutcome
from .enums import ValidationReason
from .normalize import build_canonical_report, resolve
from .utils import coerce_number, string_or_empty
from .validation import format_validation_reason

LOG = logging.getLogger(__name__)

ROSTER_FILENAMES = ("roster.xlsx", "roster.xls", "roster.csv")
INVOICE_COLUMNS = ["student_id", "term_id", "total_amount", "amount_paid", "status"]


class RosterSource(Protocol):
    def load_roster(self, class_id: str) -> List[RosterEntry]: ...

    def load_invoices(self, term_id: str, student_ids: Sequence[str]) -> List[Invoice]: ...

    def load_report_facts(self, term_id: str, student_ids: Sequence[str]) -> List[ReportFact]: ...


class ReportSource(Protocol):
    def fetch_report(self, student_id: str, term_id: str) -> Optional[Mapping[str, Any]]: ...


class ConfigSource(Protocol):
    def school_config(self) -> Mapping[str, Any]: ...

    def class_config(self, class_id: str) -> Mapping[str, Any]: ...

    def assessment_components(self, class_id: str) -> List[Mapping[str, Any]]: ...


class ValidationSource(Protocol):
    def validate(self, student_ids: Sequence[str], term_id: str) -> Mapping[str, ValidationOutcome]: ...


def read_table(path: Path) -> pd.DataFrame:
    """Read a CSV or Excel file as strings.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the extension is not .csv, .xls or .xlsx.
    """
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    suffix = path.suffix.lower()
    if suffix in (".xls", ".xlsx"):
        return pd.read_excel(path, dtype=str)
    if suffix == ".csv":
        return pd.read_csv(path, dtype=str, keep_default_na=False)
    raise ValueError(f"Unsupported file type {suffix}. Provide .csv, .xls or .xlsx")


class FileDataSource:
    """Roster, report, config and validation data read from ``data_dir``.

    Parameters
    ----------
    data_dir : Path
        Directory holding the files described in the module docstring.

    Raises
    ------
    FileNotFoundError
        If ``data_dir`` or ``school.yaml`` is missing.
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        if not self.data_dir.is_dir():
            raise FileNotFoundError(f"Data directory not found: {self.data_dir}")
        school_path = self.data_dir / "school.yaml"
        if not school_path.exists():
            raise FileNotFoundError(f"School configuration not found: {school_path}")
        with school_path.open("r", encoding="utf-8") as f:
            self._school_file = yaml.safe_load(f) or {}
        self._roster: Optional[pd.DataFrame] = None
        self._reports: Optional[Dict[str, Dict[str, Any]]] = None

    # Config ----------------------------------------------------------------

    def school_config(self) -> Mapping[str, Any]:
        return self._school_file.get("school", {}) or {}

    def _class_entry(self, class_id: str) -> Mapping[str, Any]:
        classes = self._school_file.get("classes", {}) or {}
        return classes.get(class_id, {}) or {}

    def class_config(self, class_id: str) -> Mapping[str, Any]:
        return self._class_entry(class_id).get("report_config", {}) or {}

    def assessment_components(self, class_id: str) -> List[Mapping[str, Any]]:
        return list(self._class_entry(class_id).get("assessment_components", []) or [])

    def class_name(self, class_id: str) -> str:
        return string_or_empty(self._class_entry(class_id).get("name")) or class_id

    def term_name(self, term_id: str) -> str:
        terms = self._school_file.get("terms", {}) or {}
        return string_or_empty((terms.get(term_id, {}) or {}).get("name")) or term_id

    # Roster ------------------------------------------------------------------

    def roster_frame(self) -> pd.DataFrame:
        """The roster with canonical column names, loaded once."""
        if self._roster is None:
            path = next(
                (self.data_dir / name for name in ROSTER_FILENAMES if (self.data_dir / name).exists()),
                None,
            )
            if path is None:
                raise FileNotFoundError(
                    f"No roster found in {self.data_dir}. Expected one of: {', '.join(ROSTER_FILENAMES)}"
                )
            mapped, _ = column_mapper.map_columns(read_table(path))
            missing = column_mapper.missing_columns(mapped)
            if missing:
                raise ValueError(f"Roster {path.name} is missing required column(s): {', '.join(missing)}")
            frame = column_mapper.filter_columns(mapped).fillna("")
            self._roster = frame.astype(str).apply(lambda col: col.str.strip())
        return self._roster

    def load_roster(self, class_id: str) -> List[RosterEntry]:
        """Students whose CLASS column holds the class id or its display name."""
        frame = self.roster_frame()
        class_keys = {class_id, self.class_name(class_id)}
        rows = frame[frame["CLASS"].isin(class_keys)]
        return [
            RosterEntry(
                student_id=row["STUDENT ID"],
                name=row["NAME"],
                admission_number=row["ADMISSION NUMBER"],
                class_id=class_id,
            )
            for _, row in rows.iterrows()
        ]

    def load_invoices(self, term_id: str, student_ids: Sequence[str]) -> List[Invoice]:
        path = self.data_dir / "invoices.csv"
        if not path.exists():
            LOG.info("No invoices.csv in %s; treating every student as debt-free", self.data_dir)
            return []
        frame = read_table(path)
        missing = [col for col in INVOICE_COLUMNS if col not in frame.columns]
        if missing:
            raise ValueError(f"invoices.csv is missing column(s): {', '.join(missing)}")
        wanted = set(student_ids)
        frame = frame[(frame["term_id"] == term_id) & frame["student_id"].isin(wanted)]
        return [
            Invoice(
                student_id=row["student_id"],
                total_amount=coerce_number(row["total_amount"]) or 0.0,
                amount_paid=coerce_number(row["amount_paid"]) or 0.0,
                status=string_or_empty(row["status"]),
            )
            for _, row in frame.iterrows()
        ]

    # Reports -----------------------------------------------------------------

    def _all_reports(self) -> Dict[str, Dict[str, Any]]:
        if self._reports is None:
            path = self.data_dir / "reports.json"
            if not path.exists():
                LOG.info("No reports.json in %s; no reports recorded", self.data_dir)
                self._reports = {}
            else:
                try:
                    self._reports = json.loads(path.read_text(encoding="utf-8")) or {}
                except json.JSONDecodeError as exc:
                    raise ValueError(f"reports.json is not valid JSON: {path}") from exc
                if not isinstance(self._reports, Mapping):
                    raise ValueError(f"reports.json must map term ids to student reports: {path}")
        return self._reports

    def fetch_report(self, student_id: str, term_id: str) -> Optional[Mapping[str, Any]]:
        """Raw payload for the student, or None.

        An entry that is not a JSON object counts as no report; it is logged
        and never raised.
        """
        term_reports = self._all_reports().get(term_id, {})
        if not isinstance(term_reports, Mapping):
            LOG.warning("reports.json entry for term %s is not an object; ignoring it", term_id)
            return None
        raw = term_reports.get(student_id)
        if raw is not None and not isinstance(raw, Mapping):
            LOG.warning(
                "Report for %s in term %s is a %s, not an object; treating it as missing",
                student_id,
                term_id,
                type(raw).__name__,
            )
            return None
        return raw

    def load_report_facts(self, term_id: str, student_ids: Sequence[str]) -> List[ReportFact]:
        facts = []
        for student_id in student_ids:
            raw = self.fetch_report(student_id, term_id)
            if raw is None:
                continue
            # Same recomputed average the printed report shows.
            average = build_canonical_report(raw).summary.average_score
            facts.append(ReportFact(student_id=student_id, report_exists=True, average_score=average))
        return facts

    # Validation --------------------------------------------------------------

    def validate(self, student_ids: Sequence[str], term_id: str) -> Dict[str, ValidationOutcome]:
        """Check each student is on the roster, has a report, and has every score.

        A report whose subjects include one without a total score fails with
        MISSING_SCORES naming those subjects.
        """
        frame = self.roster_frame()
        known = dict(zip(frame["STUDENT ID"], frame["NAME"]))
        outcomes: Dict[str, ValidationOutcome] = {}
        for student_id in student_ids:
            name = known.get(student_id)
            reasons: List[str] = []
            if name is None:
                reasons.append(format_validation_reason(ValidationReason.STUDENT_NOT_FOUND.value))
            else:
                raw = self.fetch_report(student_id, term_id)
                if raw is None:
                    reasons.append(format_validation_reason(ValidationReason.RESULTS_NOT_PUBLISHED.value))
                else:
                    subjects = resolve(raw, "subjects")
                    missing = [
                        {"subject": resolve(s, "subject.subject_name", text=True)}
                        for s in (subjects if isinstance(subjects, list) else [])
                        if isinstance(s, Mapping)
                        and coerce_number(resolve(s, "subject.total_score")) is None
                    ]
                    if missing:
                        reasons.append(
                            format_validation_reason(ValidationReason.MISSING_SCORES.value, missing)
                        )
            outcomes[student_id] = ValidationOutcome(
                student_id=student_id,
                passed=not reasons,
                reasons=reasons,
                student_name=name,
            )
        return outcomes

"""Decide which students in a class may receive a report card.

A student is eligible when they owe nothing for the term and a term report
has been recorded. Standings are derived once per batch session from the
roster, the term's invoices and report-existence facts; everything after
that is a pure function of those standings.

**Input Contract:**
- Roster entries for one class
- Invoices for the same term (any student not on the roster is ignored)
- Report facts for the same term

**Output Contract:**
- Standings sorted by student name, case-insensitively
- A partition where every standing appears in exactly one bucket
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence, Set

from .data_models import (
    EligibilityResult,
    Invoice,
    ReportFact,
    RosterEntry,
    StudentStanding,
)
from .enums import IneligibilityReason

LOG = logging.getLogger(__name__)

PAID_STATUS = "Paid"


def derive_standings(
    roster: Iterable[RosterEntry],
    invoices: Iterable[Invoice],
    reports: Iterable[ReportFact],
) -> List[StudentStanding]:
    """Join the roster with debt and report-existence facts.

    Parameters
    ----------
    roster : Iterable[RosterEntry]
        Students enrolled in the class.
    invoices : Iterable[Invoice]
        Term invoices. A student has debt when the summed balance
        (``total_amount - amount_paid``) is positive or any invoice has a
        status other than 'Paid'.
    reports : Iterable[ReportFact]
        Term report facts; a student with no fact has no report.

    Returns
    -------
    List[StudentStanding]
        One standing per roster entry, sorted by name.
    """
    invoices_by_student: Dict[str, List[Invoice]] = {}
    for invoice in invoices:
        invoices_by_student.setdefault(invoice.student_id, []).append(invoice)

    reports_by_student: Dict[str, ReportFact] = {}
    for fact in reports:
        reports_by_student.setdefault(fact.student_id, fact)

    standings = []
    for entry in roster:
        student_invoices = invoices_by_student.get(entry.student_id, [])
        total_owed = sum(inv.total_amount - inv.amount_paid for inv in student_invoices)
        has_unpaid = any(inv.status != PAID_STATUS for inv in student_invoices)
        fact = reports_by_student.get(entry.student_id)
        standings.append(
            StudentStanding(
                student_id=entry.student_id,
                name=entry.name,
                admission_number=entry.admission_number,
                class_id=entry.class_id,
                has_debt=total_owed > 0 or has_unpaid,
                outstanding_amount=total_owed,
                report_exists=fact is not None and fact.report_exists,
                average_score=fact.average_score if fact is not None else None,
            )
        )

    standings.sort(key=lambda s: s.name.casefold())
    LOG.info(
        "Derived standings for %d students (%d with debt, %d without report)",
        len(standings),
        sum(1 for s in standings if s.has_debt),
        sum(1 for s in standings if not s.report_exists),
    )
    return standings


def partition(standings: Sequence[StudentStanding]) -> EligibilityResult:
    """Split standings into eligible and ineligible students.

    Ineligible students are bucketed by the first failing predicate, debt
    before report existence. Order within each bucket follows ``standings``.

    Examples
    --------
    >>> result = partition(standings)
    >>> len(result.eligible) + len(result.all_ineligible) == len(standings)
    True
    """
    eligible: List[StudentStanding] = []
    ineligible: Dict[IneligibilityReason, List[StudentStanding]] = {
        IneligibilityReason.HAS_DEBT: [],
        IneligibilityReason.NO_REPORT: [],
    }
    for standing in standings:
        if standing.is_eligible:
            eligible.append(standing)
        elif standing.has_debt:
            ineligible[IneligibilityReason.HAS_DEBT].append(standing)
        else:
            ineligible[IneligibilityReason.NO_REPORT].append(standing)
    return EligibilityResult(eligible=eligible, ineligible=ineligible)


def default_selection(result: EligibilityResult) -> List[str]:
    """Student ids pre-selected for a batch: exactly the eligible set."""
    return [standing.student_id for standing in result.eligible]


def toggle_selection(selection: Sequence[str], student_id: str) -> List[str]:
    """Add or remove one student from a selection.

    Manual toggles are not re-checked against eligibility; the validation gate
    is the last word before generation.
    """
    if student_id in selection:
        return [sid for sid in selection if sid != student_id]
    return [*selection, student_id]


def search_standings(standings: Sequence[StudentStanding], query: str) -> List[StudentStanding]:
    """Filter standings by a case-insensitive name or admission number fragment."""
    needle = query.strip().casefold()
    if not needle:
        return list(standings)
    return [
        s
        for s in standings
        if needle in s.name.casefold() or needle in (s.admission_number or "").casefold()
    ]


def select_in_order(standings: Sequence[StudentStanding], selection: Iterable[str]) -> List[StudentStanding]:
    """Resolve selected ids to standings, keeping session order.

    Unknown ids are dropped with a warning.
    """
    wanted: Set[str] = set(selection)
    chosen = [s for s in standings if s.student_id in wanted]
    missing = wanted - {s.student_id for s in chosen}
    if missing:
        LOG.warning("Ignoring %d unknown student id(s): %s", len(missing), sorted(missing))
    return chosen


if __name__ == "__main__":
    print(
        "⚠️  Direct invocation: This module is typically executed via orchestrator.py.\n"
        "   Use `reportcards eligibility` to list a class's standings."
    )

"""Pre-generation validation gate.

Before any rendering starts, every selected student is checked by the
validation source (results published, grading scheme configured, scores
complete, ...). The gate is all-or-nothing: if any student fails, the whole
batch is blocked and the caller gets every failure at once so the data can be
fixed in one pass. Rendering, by contrast, is best-effort per student.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .data_models import ValidationOutcome
from .enums import ValidationReason

LOG = logging.getLogger(__name__)

GENERIC_FAILURE = "Unable to generate report card due to incomplete data."

REASON_MESSAGES = {
    ValidationReason.STUDENT_NOT_FOUND: "Student record not found in the system.",
    ValidationReason.NOT_ENROLLED: "Student is not enrolled in any class for this term.",
    ValidationReason.RESULTS_NOT_PUBLISHED: (
        "Results have not been published yet. "
        "Please publish results before generating report cards."
    ),
    ValidationReason.MISSING_GRADING_SCHEME: (
        "No grading scheme is configured for this class or campus. "
        "Please configure a grading scheme first."
    ),
}


class ValidationBlockedError(Exception):
    """Raised when one or more selected students fail validation.

    Attributes
    ----------
    failures : List[ValidationOutcome]
        Every failing outcome, in selection order.
    """

    def __init__(self, failures: Sequence[ValidationOutcome]):
        self.failures = list(failures)
        summary = "; ".join(
            f"{f.student_name or f.student_id}: {', '.join(f.reasons) or GENERIC_FAILURE}"
            for f in self.failures
        )
        super().__init__(
            f"Validation blocked generation for {len(self.failures)} student(s): {summary}"
        )


def format_validation_reason(
    reason: Optional[str], details: Optional[Sequence[Mapping[str, Any]]] = None
) -> str:
    """Turn a reason code from a validation source into a readable message.

    Parameters
    ----------
    reason : str, optional
        Reason code, e.g. 'MISSING_SCORES'.
    details : Sequence[Mapping], optional
        Extra detail records. For MISSING_SCORES each may carry a 'subject';
        for unknown codes the first record's 'error' is used if present.

    Examples
    --------
    >>> format_validation_reason("MISSING_SCORES", [{"subject": "Maths"}, {"subject": "Civic"}])
    'Missing scores for the following subjects: Maths, Civic'
    """
    code = ValidationReason.from_string(reason)
    if code in REASON_MESSAGES:
        return REASON_MESSAGES[code]
    if code is ValidationReason.MISSING_SCORES:
        subjects = [str(d.get("subject")) for d in details or [] if d.get("subject")]
        if not subjects:
            return "Some required scores are missing."
        return f"Missing scores for the following subjects: {', '.join(subjects)}"
    if details and details[0].get("error"):
        return str(details[0]["error"])
    return GENERIC_FAILURE


def check_selection(
    outcomes: Mapping[str, ValidationOutcome],
    student_ids: Sequence[str],
    names: Optional[Mapping[str, str]] = None,
) -> List[ValidationOutcome]:
    """Collect failing outcomes in selection order.

    A selected student the source returned nothing for counts as a failure:
    the gate never assumes success.
    """
    names = names or {}
    failures = []
    for student_id in student_ids:
        outcome = outcomes.get(student_id)
        if outcome is None:
            failures.append(
                ValidationOutcome(
                    student_id=student_id,
                    passed=False,
                    reasons=["No validation result returned for this student."],
                    student_name=names.get(student_id),
                )
            )
        elif not outcome.passed:
            if outcome.student_name is None and student_id in names:
                outcome = ValidationOutcome(
                    student_id=outcome.student_id,
                    passed=False,
                    reasons=list(outcome.reasons),
                    student_name=names[student_id],
                )
            failures.append(outcome)
    return failures


def validate_selection(
    validator: Any,
    student_ids: Sequence[str],
    term_id: str,
    names: Optional[Mapping[str, str]] = None,
) -> Dict[str, ValidationOutcome]:
    """Run the validation source over the selection and enforce the gate.

    Parameters
    ----------
    validator : ValidationSource
        Collaborator with ``validate(student_ids, term_id)``.
    student_ids : Sequence[str]
        Selected students.
    term_id : str
        Term being generated.
    names : Mapping[str, str], optional
        Display names for error messages.

    Returns
    -------
    Dict[str, ValidationOutcome]
        All outcomes, when every student passed.

    Raises
    ------
    ValidationBlockedError
        If any student failed; carries the full list of failures.
    """
    outcomes = dict(validator.validate(list(student_ids), term_id))
    failures = check_selection(outcomes, student_ids, names)
    if failures:
        LOG.warning("Validation blocked batch: %d of %d failed", len(failures), len(student_ids))
        raise ValidationBlockedError(failures)
    LOG.info("Validation passed for %d student(s)", len(student_ids))
    return outcomes

"""Enumerations for the report card pipeline."""

from enum import Enum


class Watermark(Enum):
    """Diagonal stamp drawn across every rendered page.

    Attributes
    ----------
    DRAFT : str
        Pages are stamped "DRAFT" for internal review runs.
    FINAL : str
        Pages are stamped "FINAL" for the copy sent to parents.
    NONE : str
        No stamp.
    """

    DRAFT = "DRAFT"
    FINAL = "FINAL"
    NONE = "NONE"

    @classmethod
    def from_string(cls, value: str | None) -> "Watermark":
        """Convert string to Watermark.

        Parameters
        ----------
        value : str | None
            Watermark name ('DRAFT', 'FINAL', 'NONE'), or None for default.
            Case-insensitive.

        Returns
        -------
        Watermark
            Corresponding Watermark enum, defaults to NONE if value is None.

        Raises
        ------
        ValueError
            If value is not a valid watermark name.

        Examples
        --------
        >>> Watermark.from_string('draft')
        <Watermark.DRAFT: 'DRAFT'>
        """
        if value is None:
            return cls.NONE

        value_upper = value.upper()
        for mark in cls:
            if mark.value == value_upper:
                return mark

        raise ValueError(
            f"Unknown watermark: {value}. "
            f"Valid options: {', '.join(m.value for m in cls)}"
        )

    @property
    def label(self) -> str | None:
        """Text drawn on the page, or None when nothing is stamped."""
        return None if self is Watermark.NONE else self.value


class OutputMode(Enum):
    """Packaging of a finished batch."""

    ZIP = "zip"
    COMBINED = "combined"

    @classmethod
    def from_string(cls, value: str | None) -> "OutputMode":
        """Convert string to OutputMode.

        Parameters
        ----------
        value : str | None
            Output mode ('zip', 'combined'), or None for default (ZIP).

        Returns
        -------
        OutputMode
            Corresponding OutputMode enum.

        Raises
        ------
        ValueError
            If value is not a valid output mode.
        """
        if value is None:
            return cls.ZIP

        value_lower = value.lower()
        for mode in cls:
            if mode.value == value_lower:
                return mode

        raise ValueError(
            f"Unknown output mode: {value}. "
            f"Valid options: {', '.join(m.value for m in cls)}"
        )

    @property
    def extension(self) -> str:
        return "zip" if self is OutputMode.ZIP else "pdf"


class JobState(Enum):
    """Lifecycle of a batch generation job.

    A job moves forward only::

        idle -> queued -> validating -> generating -> packaging -> completed
                                  \\            \\             \\-> failed
                                   \\-> failed   \\-> cancelled

    COMPLETED, FAILED and CANCELLED are terminal.
    """

    IDLE = "idle"
    QUEUED = "queued"
    VALIDATING = "validating"
    GENERATING = "generating"
    PACKAGING = "packaging"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in {JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED}


class IneligibilityReason(Enum):
    """First failing eligibility predicate for a student.

    Debt is checked before report existence, so a student who owes fees and
    has no report lands in HAS_DEBT.
    """

    HAS_DEBT = "has_debt"
    NO_REPORT = "no_report"


class ValidationReason(Enum):
    """Reason codes a validation source may return for a blocked student."""

    STUDENT_NOT_FOUND = "STUDENT_NOT_FOUND"
    NOT_ENROLLED = "NOT_ENROLLED"
    RESULTS_NOT_PUBLISHED = "RESULTS_NOT_PUBLISHED"
    MISSING_GRADING_SCHEME = "MISSING_GRADING_SCHEME"
    MISSING_SCORES = "MISSING_SCORES"

    @classmethod
    def from_string(cls, value: str | None) -> "ValidationReason | None":
        """Convert a reason code to ValidationReason, or None if unrecognized."""
        if not value:
            return None
        value_upper = value.upper()
        for reason in cls:
            if reason.value == value_upper:
                return reason
        return None

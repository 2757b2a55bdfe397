"""Display rules shared by every report card layout.

Rankings, percentiles and GPA arrive as numbers, numeric strings or the
'N/A' sentinel. These helpers turn them into the exact strings printed on the
page, sanitize free text before it reaches the drawing surface, and build
deterministic filenames.
"""

from __future__ import annotations

import html
import math
import re
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from rapidfuzz import fuzz, process

from .config_loader import DEFAULT_EXAM_KEYWORDS, DEFAULT_MATCH_THRESHOLD
from .data_models import NOT_AVAILABLE
from .utils import coerce_int, coerce_number

_SUFFIXES = {1: "st", 2: "nd", 3: "rd"}

_SCRIPT_BLOCK = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_MARKUP_TAG = re.compile(r"<[^>]*>")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE_RUN = re.compile(r"[ \t\r\n]+")

_FILENAME_ENTITIES = {
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#39;",
    "&": "&amp;",
}
_FILENAME_UNSAFE = re.compile(r"[^\w\s.\-]")

_NAME_NOISE = re.compile(r"[.\s\-]")

# Short assessment labels teachers use in class structures, mapped to a
# fragment of the longer name that appears in recorded component scores.
COMPONENT_ALIASES: Dict[str, Tuple[str, ...]] = {
    "fa": ("assessment1",),
    "sa": ("assessment2",),
    "hw": ("homeactivity", "homework"),
    "hol": ("holiday",),
    "pro": ("project",),
    "el": ("elearning",),
    "eva": ("evaluation",),
}


def ordinal(value: Any) -> str:
    """Render a position with its English ordinal suffix.

    Parameters
    ----------
    value : Any
        Position as int, float, numeric string, None or 'N/A'.

    Returns
    -------
    str
        '1st', '2nd', '3rd', '4th', ... with 11th/12th/13th (and 111th etc.)
        using 'th'. Non-numeric input renders as '-'.

    Examples
    --------
    >>> ordinal(22)
    '22nd'
    >>> ordinal(112)
    '112th'
    >>> ordinal("N/A")
    '-'
    """
    if value is None or value == NOT_AVAILABLE:
        return "-"
    number = coerce_int(value)
    if number is None:
        return "-"
    if 11 <= abs(number) % 100 <= 13:
        return f"{number}th"
    return f"{number}{_SUFFIXES.get(abs(number) % 10, 'th')}"


def has_valid_ranking(position: Any, total: Any) -> bool:
    """True when both position and cohort size are numeric."""
    if position in (None, NOT_AVAILABLE) or total in (None, NOT_AVAILABLE):
        return False
    return coerce_int(position) is not None and coerce_int(total) is not None


def format_position(position: Any, total: Any) -> str:
    """Format a rank as '3rd of 45', or 'N/A' when either side is missing."""
    if not has_valid_ranking(position, total):
        return NOT_AVAILABLE
    return f"{ordinal(position)} of {coerce_int(total)}"


def calculate_percentile(position: Any, total: Any) -> Optional[float]:
    """Percentile rank from position within a cohort.

    ``((total - position + 1) / total) * 100``; position 3 of 45 gives 95.56.
    Returns None when the ranking is incomplete or the cohort is empty.
    """
    if not has_valid_ranking(position, total):
        return None
    pos = coerce_int(position)
    tot = coerce_int(total)
    if not tot:
        return None
    return ((tot - pos + 1) / tot) * 100


def format_percentile(percentile: Any) -> str:
    """Phrase a percentile for parents.

    90 and above reads as 'Top X%' (rounded up); anything lower reads as an
    ordinal percentile. Non-numeric input renders as 'N/A'.

    Examples
    --------
    >>> format_percentile(95.5)
    'Top 5%'
    >>> format_percentile(74.6)
    '75th percentile'
    """
    number = coerce_number(percentile)
    if number is None:
        return NOT_AVAILABLE
    if number >= 90:
        return f"Top {math.ceil(100 - number)}%"
    # Halves round up (74.5 -> 75th), unlike round().
    return f"{ordinal(math.floor(number + 0.5))} percentile"


def format_score(value: Any, decimals: int = 1) -> str:
    """Render a score without trailing '.0' on whole numbers."""
    number = coerce_number(value)
    if number is None:
        return "-"
    if float(number).is_integer():
        return str(int(number))
    return f"{number:.{decimals}f}"


def format_gpa(value: Any) -> str:
    """GPA to two decimals, 'N/A' when absent or non-numeric."""
    number = coerce_number(value)
    if number is None:
        return NOT_AVAILABLE
    return f"{number:.2f}"


def sanitize_text(value: Any) -> str:
    """Strip markup and control characters from free text before drawing.

    Script and style blocks are removed with their contents, remaining tags
    are dropped, entities are decoded to the characters they stand for, and
    whitespace runs collapse to a single space.

    Examples
    --------
    >>> sanitize_text("Good <b>work</b>&amp; effort")
    'Good work& effort'
    """
    if value is None:
        return ""
    text = str(value)
    text = _SCRIPT_BLOCK.sub("", text)
    text = _MARKUP_TAG.sub("", text)
    text = html.unescape(text)
    # Decoding may surface new angle brackets; drop any tag they form.
    text = _MARKUP_TAG.sub("", text)
    text = _CONTROL_CHARS.sub("", text)
    return _WHITESPACE_RUN.sub(" ", text).strip()


def sanitize_filename_part(value: Any) -> str:
    """Make one component of a filename safe.

    Quote, angle-bracket and ampersand characters are first entity-encoded,
    then every character other than word characters, whitespace, '.' and '-'
    becomes '_'.

    Examples
    --------
    >>> sanitize_filename_part("O'Brien & Sons")
    'O__39_Brien _amp_ Sons'
    >>> sanitize_filename_part("A/100")
    'A_100'
    """
    text = "" if value is None else str(value)
    encoded = "".join(_FILENAME_ENTITIES.get(char, char) for char in text)
    return _FILENAME_UNSAFE.sub("_", encoded).strip()


def student_report_filename(name: str, admission_number: Optional[str], term_name: str) -> str:
    """Per-student archive entry name, e.g. 'Ada Obi_ADM-001_First Term_Report.pdf'."""
    safe_name = sanitize_filename_part(name)
    safe_adm = sanitize_filename_part(admission_number or "NO_ADM")
    safe_term = sanitize_filename_part(term_name)
    return f"{safe_name}_{safe_adm}_{safe_term}_Report.pdf"


def batch_filename(class_name: str, term_name: str, suffix: str, extension: str) -> str:
    """Batch-level filename such as 'JSS 1A_First Term_ReportCards.zip'."""
    return (
        f"{sanitize_filename_part(class_name)}_{sanitize_filename_part(term_name)}"
        f"_{suffix}.{extension}"
    )


def categorize_component_score(
    component_scores: Optional[Mapping[str, Any]],
    exam_keywords: Iterable[str] = DEFAULT_EXAM_KEYWORDS,
) -> Tuple[float, float]:
    """Bucket component scores into (continuous assessment, exam) totals.

    A component whose name contains any exam keyword counts toward the exam
    total; everything else counts toward CA. Non-numeric scores are ignored.

    Examples
    --------
    >>> categorize_component_score({"CA 1": 10, "CA 2": 12, "Final Exam": 50})
    (22.0, 50.0)
    """
    keywords = [k.lower() for k in exam_keywords]
    ca_score = 0.0
    exam_score = 0.0
    for key, value in (component_scores or {}).items():
        number = coerce_number(value)
        if number is None:
            continue
        lower_key = str(key).lower()
        if any(keyword in lower_key for keyword in keywords):
            exam_score += number
        else:
            ca_score += number
    return ca_score, exam_score


def _normalize_component_name(name: str) -> str:
    return _NAME_NOISE.sub("", name.lower().strip())


def match_component_score(
    component_name: str,
    component_scores: Optional[Mapping[str, Any]],
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> Optional[float]:
    """Find a subject's score for a class assessment component.

    Class structures and recorded scores often name the same component
    differently ('FA' vs 'Assessment 1', 'C.A 1' vs 'CA1'). Matching is tried
    in order:

    1. exact key
    2. case-insensitive key
    3. key with spaces, dots and hyphens removed
    4. known short aliases (see COMPONENT_ALIASES)
    5. fuzzy partial match, only when both names have at least 3 characters

    Returns
    -------
    float or None
        Matched score, or None when nothing matches.
    """
    if not component_scores:
        return None

    if component_name in component_scores:
        return coerce_number(component_scores[component_name])

    name_lower = component_name.lower().strip()
    name_normalized = _normalize_component_name(component_name)

    for key, value in component_scores.items():
        if str(key).lower().strip() == name_lower:
            return coerce_number(value)

    for key, value in component_scores.items():
        if _normalize_component_name(str(key)) == name_normalized:
            return coerce_number(value)

    fragments = COMPONENT_ALIASES.get(name_normalized, ())
    for key, value in component_scores.items():
        key_normalized = _normalize_component_name(str(key))
        if any(fragment in key_normalized for fragment in fragments):
            return coerce_number(value)

    if len(name_lower) < 3:
        return None
    candidates = {
        key: str(key).lower().strip()
        for key in component_scores
        if len(str(key).strip()) >= 3
    }
    if not candidates:
        return None
    match = process.extractOne(
        name_lower,
        candidates,
        scorer=fuzz.partial_ratio,
        score_cutoff=threshold,
    )
    if match is None:
        return None
    _, _, key = match
    return coerce_number(component_scores[key])

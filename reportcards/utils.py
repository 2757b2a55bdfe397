"""Utility functions shared across report card pipeline steps.

Small conversions used by the normalizer, renderer and packaging steps:
safe string/number coercion, fixed-size chunking, slug generation and UTC
timestamps.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from itertools import islice
from typing import Any, Iterator, List, Optional, Sequence, TypeVar

T = TypeVar("T")


def string_or_empty(value: Any) -> str:
    """Safely convert value to string, returning empty string for None/NaN.

    Parameters
    ----------
    value : Any
        Value to convert (may be None, NaN, empty string, or any type)

    Returns
    -------
    str
        Stringified value or empty string for None/NaN values
    """
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def coerce_number(value: Any) -> Optional[float]:
    """Parse a numeric value, returning None for anything non-numeric.

    Booleans are rejected. Strings are parsed after trimming; NaN and
    infinities count as non-numeric.

    Examples
    --------
    >>> coerce_number("72.5")
    72.5
    >>> coerce_number("N/A") is None
    True
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def coerce_int(value: Any) -> Optional[int]:
    """Parse an integer, truncating fractional values; None when non-numeric."""
    number = coerce_number(value)
    if number is None:
        return None
    return int(number)


def chunked(iterable: Sequence[T], size: int) -> Iterator[List[T]]:
    """Split a sequence into fixed-size chunks.

    Parameters
    ----------
    iterable : Sequence[T]
        Sequence to chunk.
    size : int
        Maximum number of items per chunk (must be positive).

    Returns
    -------
    Iterator[List[T]]
        Iterator yielding lists of up to `size` items.

    Raises
    ------
    ValueError
        If size is not positive.

    Examples
    --------
    >>> list(chunked([1, 2, 3, 4, 5], 2))
    [[1, 2], [3, 4], [5]]
    """
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for index in range(0, len(iterable), size):
        yield list(islice(iterable, index, index + size))


def slugify(value: str, separator: str = "_") -> str:
    """Convert a string to a URL-safe slug.

    Non-alphanumeric runs become ``separator``, repeats collapse and the
    result is lowercased.

    Returns
    -------
    str
        Slugified string, or 'unknown' if value is empty/whitespace.

    Examples
    --------
    >>> slugify("Ada Lovelace")
    'ada_lovelace'
    >>> slugify("Chloé O'Neil", separator="-")
    'chlo-o-neil'
    """
    cleaned = re.sub(r"[^A-Za-z0-9]+", separator, value.strip())
    collapsed = re.sub(re.escape(separator) + "+", separator, cleaned)
    return collapsed.strip(separator).lower() or "unknown"


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC.

    Examples
    --------
    >>> as_utc(datetime(2030, 1, 1)).isoformat()
    '2030-01-01T00:00:00+00:00'
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

"""Map roster spreadsheet headers to canonical column names.

Schools export rosters from different systems, so headers vary
("Admission No", "ADM NUMBER", "Student Name", "Full name"). Headers are
normalized and fuzzy-matched against the canonical names with rapidfuzz.
"""

import logging

import pandas as pd
from rapidfuzz import fuzz, process

LOG = logging.getLogger(__name__)

# Canonical roster columns. Order matters on ties: "class_name" scores 100
# against both CLASS and NAME, and the earlier entry wins.
REQUIRED_COLUMNS = [
    "STUDENT ID",
    "CLASS",
    "ADMISSION NUMBER",
    "NAME",
]

MATCH_THRESHOLD = 80


def normalize(col: str) -> str:
    """Normalize formatting prior to matching."""
    return str(col).lower().strip().replace(" ", "_").replace("-", "_")


def map_columns(df: pd.DataFrame, required_columns=REQUIRED_COLUMNS, threshold: int = MATCH_THRESHOLD):
    """
    Map dataframe columns to a set of required column names using fuzzy matching.

    Parameters
    ----------
    df : pandas.DataFrame
        Input dataframe whose columns will be matched and renamed.
    required_columns : Sequence[str], optional
        Canonical column names to match against. Defaults to REQUIRED_COLUMNS.
    threshold : int, optional
        Minimum ``fuzz.partial_ratio`` score for a match (default 80).

    Returns
    -------
    tuple[pandas.DataFrame, dict]
        ``(renamed_df, col_map)`` where ``col_map`` maps original column names
        to the canonical names they were matched to.

    Behavior
    --------
    - Input and canonical names are normalized with ``normalize(...)``.
    - Each input column takes its best match via ``process.extractOne`` with
      ``fuzz.partial_ratio``; matches below ``threshold`` are ignored.
    - A column whose header already equals a canonical name claims it first.
    - Each canonical name is claimed by at most one input column, in
      left-to-right order, so "First Name" and "Last Name" cannot both
      become NAME.
    """
    choices = [normalize(req) for req in required_columns]
    col_map = {}
    claimed = set()

    for column in df.columns:
        normalized = normalize(column)
        if normalized in choices:
            target = required_columns[choices.index(normalized)]
            col_map[column] = target
            claimed.add(target)

    for column in df.columns:
        if column in col_map:
            continue
        match = process.extractOne(
            query=normalize(column),
            choices=choices,
            scorer=fuzz.partial_ratio,
        )
        if match is None:
            continue
        _, score, index = match
        best_match = required_columns[index]
        if score < threshold or best_match in claimed:
            continue
        col_map[column] = best_match
        claimed.add(best_match)
        LOG.info("Matching '%s' to '%s' with score %.0f", column, best_match, score)

    return df.rename(columns=col_map), col_map


def filter_columns(
    df: pd.DataFrame, required_columns: list[str] = REQUIRED_COLUMNS
) -> pd.DataFrame:
    """Filter dataframe to only include required columns."""
    if df is None or df.empty:
        return df

    return df[[col for col in df.columns if col in required_columns]]


def missing_columns(df: pd.DataFrame, required_columns: list[str] = REQUIRED_COLUMNS) -> list[str]:
    """Canonical columns that no input column was mapped to."""
    return [col for col in required_columns if col not in df.columns]

"""Unit tests for formatting module - display rules, sanitization, filenames.

Tests cover:
- Ordinal suffixes including the teens exception
- Position, percentile and GPA strings and their 'N/A' / '-' fallbacks
- Markup and control-character stripping for free text
- Filename sanitization and naming patterns
- CA/Exam bucketing and assessment component matching

Real-world significance:
- These strings are printed on every report card parents receive
- Filenames end up inside ZIP archives opened on many operating systems
"""

from __future__ import annotations

import pytest

from reportcards import formatting


@pytest.mark.unit
class TestOrdinal:
    """Unit tests for ordinal suffixes."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (1, "1st"),
            (2, "2nd"),
            (3, "3rd"),
            (4, "4th"),
            (11, "11th"),
            (12, "12th"),
            (13, "13th"),
            (21, "21st"),
            (22, "22nd"),
            (23, "23rd"),
            (101, "101st"),
            (111, "111th"),
            (112, "112th"),
            (113, "113th"),
            ("3", "3rd"),
        ],
    )
    def test_suffixes(self, value, expected: str) -> None:
        """Verify suffixes follow English rules, teens included.

        Real-world significance:
        - '11st' or '12nd' on a report card looks careless to parents
        """
        assert formatting.ordinal(value) == expected

    @pytest.mark.parametrize("value", [None, "N/A", "", "abc"])
    def test_non_numeric_renders_dash(self, value) -> None:
        assert formatting.ordinal(value) == "-"


@pytest.mark.unit
class TestRankings:
    """Unit tests for position, percentile and GPA formatting."""

    def test_format_position(self) -> None:
        assert formatting.format_position(3, 45) == "3rd of 45"

    @pytest.mark.parametrize("position, total", [("N/A", 45), (3, None), ("x", 45)])
    def test_incomplete_ranking_is_not_available(self, position, total) -> None:
        assert formatting.format_position(position, total) == "N/A"

    def test_calculate_percentile(self) -> None:
        assert formatting.calculate_percentile(1, 40) == pytest.approx(100.0)
        assert formatting.calculate_percentile(3, 45) == pytest.approx(95.555, rel=1e-3)

    def test_calculate_percentile_empty_cohort(self) -> None:
        assert formatting.calculate_percentile(1, 0) is None
        assert formatting.calculate_percentile("N/A", 30) is None

    @pytest.mark.parametrize(
        "value, expected",
        [
            (95.5, "Top 5%"),
            (90, "Top 10%"),
            (99.2, "Top 1%"),
            (74.6, "75th percentile"),
            (74.5, "75th percentile"),
            (11.2, "11th percentile"),
            (42, "42nd percentile"),
        ],
    )
    def test_format_percentile(self, value, expected: str) -> None:
        assert formatting.format_percentile(value) == expected

    @pytest.mark.parametrize("value", [None, "N/A", "high"])
    def test_non_numeric_percentile(self, value) -> None:
        assert formatting.format_percentile(value) == "N/A"

    def test_format_gpa(self) -> None:
        assert formatting.format_gpa(3.456) == "3.46"
        assert formatting.format_gpa(None) == "N/A"
        assert formatting.format_gpa("N/A") == "N/A"

    def test_format_score(self) -> None:
        assert formatting.format_score(70.0) == "70"
        assert formatting.format_score(70.25) == "70.2"
        assert formatting.format_score(None) == "-"


@pytest.mark.unit
class TestSanitizeText:
    """Unit tests for free-text sanitization."""

    def test_strips_tags_and_script_blocks(self) -> None:
        """Verify teacher comments cannot inject markup.

        Real-world significance:
        - Comments are typed by staff and may be pasted from rich editors
        """
        text = 'Great term<script>alert("x")</script> <b>well done</b>'
        assert formatting.sanitize_text(text) == "Great term well done"

    def test_decodes_entities_and_drops_control_chars(self) -> None:
        assert formatting.sanitize_text("Tom &amp; Jerry\x07\n\nnext") == "Tom & Jerry next"

    def test_encoded_tags_do_not_survive(self) -> None:
        assert formatting.sanitize_text("&lt;img src=x&gt;Hello") == "Hello"

    def test_none_is_empty(self) -> None:
        assert formatting.sanitize_text(None) == ""


@pytest.mark.unit
class TestFilenames:
    """Unit tests for filename sanitization and naming."""

    def test_sanitize_quotes_and_ampersands(self) -> None:
        assert formatting.sanitize_filename_part("O'Brien & Sons") == "O__39_Brien _amp_ Sons"

    def test_sanitize_path_separators(self) -> None:
        assert formatting.sanitize_filename_part("A/100\\B") == "A_100_B"

    def test_sanitized_parts_contain_only_safe_characters(self) -> None:
        """Verify output never contains characters outside [word, space, '.', '-', '_'].

        Real-world significance:
        - Archive entries must extract on Windows, macOS and Linux alike
        """
        import re

        nasty = 'a<b>c:"d"|e?f*g/h\\i&j\'k'
        assert re.fullmatch(r"[\w\s.\-]*", formatting.sanitize_filename_part(nasty))

    def test_student_report_filename(self) -> None:
        name = formatting.student_report_filename("Ada Obi", "ADM/001", "First Term")
        assert name == "Ada Obi_ADM_001_First Term_Report.pdf"

    @pytest.mark.parametrize("admission", [None, ""])
    def test_missing_admission_number(self, admission) -> None:
        name = formatting.student_report_filename("Ada Obi", admission, "First Term")
        assert name == "Ada Obi_NO_ADM_First Term_Report.pdf"

    def test_batch_filename(self) -> None:
        assert (
            formatting.batch_filename("JSS 1A", "First Term", "ReportCards", "zip")
            == "JSS 1A_First Term_ReportCards.zip"
        )


@pytest.mark.unit
class TestComponentScores:
    """Unit tests for CA/Exam bucketing and component matching."""

    def test_categorize_by_keywords(self) -> None:
        scores = {"CA 1": 10, "CA 2": 12, "Final Exam": 50, "Midterm Test": 8}
        assert formatting.categorize_component_score(scores) == (22.0, 58.0)

    def test_categorize_with_custom_keywords(self) -> None:
        scores = {"Assignment": 10, "Paper": 50}
        assert formatting.categorize_component_score(scores, ["paper"]) == (10.0, 50.0)

    def test_categorize_ignores_non_numeric(self) -> None:
        assert formatting.categorize_component_score({"CA": "absent", "Exam": 40}) == (0.0, 40.0)

    def test_categorize_empty(self) -> None:
        assert formatting.categorize_component_score(None) == (0.0, 0.0)

    @pytest.mark.parametrize(
        "name, scores, expected",
        [
            ("CA1", {"CA1": 10}, 10.0),
            ("ca1", {"CA1": 11}, 11.0),
            ("C.A 1", {"CA-1": 12}, 12.0),
            ("FA", {"Formative Assessment1": 13}, 13.0),
            ("HW", {"Home Activity": 14}, 14.0),
            ("Project", {"Term Project Work": 15}, 15.0),
        ],
    )
    def test_match_component_score(self, name: str, scores, expected: float) -> None:
        """Verify each matching stage finds the recorded score.

        Real-world significance:
        - Class structures say 'FA' while score sheets say 'Assessment 1';
          an unmatched component prints a blank column
        """
        assert formatting.match_component_score(name, scores) == expected

    def test_short_names_are_not_fuzzy_matched(self) -> None:
        assert formatting.match_component_score("CA", {"Exam": 40}) is None

    def test_no_match_returns_none(self) -> None:
        assert formatting.match_component_score("Practical", {"Exam": 40}) is None
        assert formatting.match_component_score("Exam", None) is None

"""Unit tests for prepare_output module - output directory preparation.

Tests cover:
- Creating a missing output directory and its logs directory
- Purging previous artifacts while keeping logs
- Automatic removal versus prompting
- Declining the prompt

Real-world significance:
- A rerun must not mix last term's report cards with this term's
- Logs are the audit trail and survive every purge
"""

from __future__ import annotations

from pathlib import Path

import pytest

from reportcards import prepare_output


@pytest.fixture
def populated_output(tmp_test_dir: Path) -> dict:
    root = tmp_test_dir / "output"
    logs = root / "logs"
    logs.mkdir(parents=True)
    (logs / "reportcards_1.log").write_text("old run", encoding="utf-8")
    (root / "JSS 1A_First Term_ReportCards.zip").write_bytes(b"zip")
    (root / "qr_codes").mkdir()
    (root / "qr_codes" / "qr_stu_001_ada_obi.png").write_bytes(b"png")
    return {"root": root, "logs": logs}


@pytest.mark.unit
class TestPurgeOutputDirectory:
    """Unit tests for purge_output_directory."""

    def test_purge_keeps_logs(self, populated_output: dict) -> None:
        prepare_output.purge_output_directory(populated_output["root"], populated_output["logs"])
        assert [p.name for p in populated_output["root"].iterdir()] == ["logs"]
        assert (populated_output["logs"] / "reportcards_1.log").read_text(encoding="utf-8") == "old run"


@pytest.mark.unit
class TestPrepareOutputDirectory:
    """Unit tests for prepare_output_directory."""

    def test_creates_missing_directories(self, tmp_test_dir: Path) -> None:
        root = tmp_test_dir / "new_output"
        assert prepare_output.prepare_output_directory(root, root / "logs", auto_remove=False)
        assert root.is_dir()
        assert (root / "logs").is_dir()

    def test_auto_remove_does_not_prompt(self, populated_output: dict) -> None:
        def prompt(_path: Path) -> bool:
            raise AssertionError("prompt should not be called")

        ready = prepare_output.prepare_output_directory(
            populated_output["root"], populated_output["logs"], auto_remove=True, prompt=prompt
        )
        assert ready
        assert not (populated_output["root"] / "qr_codes").exists()

    def test_prompt_accepted(self, populated_output: dict) -> None:
        ready = prepare_output.prepare_output_directory(
            populated_output["root"], populated_output["logs"], auto_remove=False, prompt=lambda _: True
        )
        assert ready
        assert not (populated_output["root"] / "JSS 1A_First Term_ReportCards.zip").exists()

    def test_prompt_declined_keeps_files(self, populated_output: dict, capsys) -> None:
        """Verify declining leaves everything in place.

        Real-world significance:
        - Staff who have not yet copied last run's output can back out
        """
        ready = prepare_output.prepare_output_directory(
            populated_output["root"], populated_output["logs"], auto_remove=False, prompt=lambda _: False
        )
        assert not ready
        assert (populated_output["root"] / "JSS 1A_First Term_ReportCards.zip").exists()
        assert "Run cancelled" in capsys.readouterr().out

    def test_only_logs_is_treated_as_empty(self, tmp_test_dir: Path) -> None:
        root = tmp_test_dir / "output"
        (root / "logs").mkdir(parents=True)

        def prompt(_path: Path) -> bool:
            raise AssertionError("prompt should not be called")

        assert prepare_output.prepare_output_directory(root, root / "logs", auto_remove=False, prompt=prompt)

    def test_default_prompt_reads_input(self, tmp_test_dir: Path, monkeypatch) -> None:
        monkeypatch.setattr("builtins.input", lambda _: "y")
        assert prepare_output.default_prompt(tmp_test_dir)
        monkeypatch.setattr("builtins.input", lambda _: "")
        assert not prepare_output.default_prompt(tmp_test_dir)

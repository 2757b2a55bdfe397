"""Shared pytest fixtures for unit and integration tests.

This module provides:
- Temporary directory fixtures for file I/O testing
- Configuration fixtures for parameter testing
- Low-resolution renderer and assembler instances so rendering tests stay fast
- A file-backed data directory for source and CLI tests
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Dict, Generator

import pytest
import yaml

from reportcards.assemble import PdfAssembler
from reportcards.render import ReportRenderer
from tests.fixtures import sample_input

TEST_DPI = sample_input.TEST_DPI


@pytest.fixture
def tmp_test_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that's cleaned up after each test.

    Real-world significance:
    - Isolates file I/O tests from each other
    - Prevents test artifacts from polluting the file system

    Yields
    ------
    Path
        Absolute path to temporary directory (automatically deleted after test)
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def default_config() -> Dict[str, Any]:
    """Provide a complete, valid configuration.

    Real-world significance:
    - Matches the shape of config/parameters.yaml
    - Tests mutate copies of it to exercise validation and feature flags
    """
    return {
        "pipeline": {"before_run": {"clear_output_directory": True}},
        "rendering": {
            "dpi": TEST_DPI,
            "default_layout": "classic",
            "font_path": None,
            "exam_keywords": ["exam", "test", "final"],
            "component_match_threshold": 85,
            "locale": "en_GB",
        },
        "pdf": {"margin_mm": 6},
        "batch": {
            "output_mode": "zip",
            "watermark": "NONE",
            "include_cover_sheet": False,
            "include_csv_summary": False,
            "csv_as_separate_file": False,
        },
        "sharing": {
            "origin": "https://portal.greenfield.example",
            "expiry_hours": 720,
            "generate_qr": True,
        },
    }


@pytest.fixture
def config_dir(tmp_test_dir: Path, default_config: Dict[str, Any]) -> Path:
    """Directory holding a parameters.yaml written from default_config."""
    directory = tmp_test_dir / "config"
    directory.mkdir()
    (directory / "parameters.yaml").write_text(yaml.safe_dump(default_config), encoding="utf-8")
    return directory


@pytest.fixture
def data_dir(tmp_test_dir: Path) -> Path:
    """A FileDataSource directory with five students.

    stu-001..stu-003 are eligible, stu-004 owes fees and stu-005 has no
    report for the term.
    """
    return sample_input.write_data_dir(tmp_test_dir / "data")


@pytest.fixture
def renderer() -> ReportRenderer:
    return ReportRenderer(dpi=TEST_DPI)


@pytest.fixture
def assembler() -> PdfAssembler:
    return PdfAssembler()

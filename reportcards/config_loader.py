"""Configuration loading utilities for the report card pipeline.

Provides a centralized way to load and validate the parameters.yaml
configuration file across all pipeline modules.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

SCRIPT_DIR = Path(__file__).resolve().parent
DEFAULT_CONFIG_PATH = SCRIPT_DIR.parent / "config" / "parameters.yaml"

DEFAULT_DPI = 150
DEFAULT_LAYOUT = "classic"
DEFAULT_EXAM_KEYWORDS = ("exam", "test", "final")
DEFAULT_MATCH_THRESHOLD = 85
DEFAULT_LOCALE = "en_GB"
DEFAULT_MARGIN_MM = 6.0
DEFAULT_EXPIRY_HOURS = 720


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load and parse the parameters.yaml configuration file.

    Automatically validates the configuration after loading. Raises
    clear exceptions if validation fails, enabling fail-fast behavior
    for infrastructure errors.

    Parameters
    ----------
    config_path : Path, optional
        Path to the configuration file. If not provided, uses the default
        location (config/parameters.yaml in the project root).

    Returns
    -------
    Dict[str, Any]
        Parsed and validated YAML configuration as a nested dictionary.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    yaml.YAMLError
        If the configuration file is invalid YAML.
    ValueError
        If the configuration fails validation (see validate_config).
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    validate_config(config)
    return config


def _require_positive_number(value: Any, key: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number, got {type(value).__name__}")
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {value}")


def _require_bool(value: Any, key: str) -> None:
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be a boolean, got {type(value).__name__}")


def validate_config(config: Dict[str, Any]) -> None:
    """Validate the entire configuration for consistency and required values.

    Parameters
    ----------
    config : Dict[str, Any]
        Configuration dictionary (result of load_config).

    Raises
    ------
    ValueError
        If required configuration is missing or invalid.

    Notes
    -----
    **Validation checks:**

    - **Rendering:** dpi positive; default_layout a non-empty string;
      exam_keywords a non-empty list of strings; component_match_threshold
      within 0-100
    - **PDF:** margin_mm non-negative and smaller than half the page width
    - **Batch:** output_mode and watermark valid enum values; flags boolean
    - **Sharing:** origin an http(s) URL; expiry_hours positive

    Config is validated once at load time, not per step.
    """
    from .enums import OutputMode, Watermark

    rendering = config.get("rendering", {}) or {}
    _require_positive_number(rendering.get("dpi", DEFAULT_DPI), "rendering.dpi")

    layout = rendering.get("default_layout", DEFAULT_LAYOUT)
    if not isinstance(layout, str) or not layout.strip():
        raise ValueError("rendering.default_layout must be a non-empty string")

    keywords = rendering.get("exam_keywords", list(DEFAULT_EXAM_KEYWORDS))
    if not isinstance(keywords, list) or not keywords:
        raise ValueError("rendering.exam_keywords must be a non-empty list")
    if not all(isinstance(k, str) and k.strip() for k in keywords):
        raise ValueError("rendering.exam_keywords entries must be non-empty strings")

    threshold = rendering.get("component_match_threshold", DEFAULT_MATCH_THRESHOLD)
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise ValueError(
            f"rendering.component_match_threshold must be a number, "
            f"got {type(threshold).__name__}"
        )
    if not 0 <= threshold <= 100:
        raise ValueError(
            f"rendering.component_match_threshold must be between 0 and 100, got {threshold}"
        )

    font_path = rendering.get("font_path")
    if font_path is not None and not isinstance(font_path, str):
        raise ValueError(
            f"rendering.font_path must be a string, got {type(font_path).__name__}"
        )

    pdf_config = config.get("pdf", {}) or {}
    margin = pdf_config.get("margin_mm", DEFAULT_MARGIN_MM)
    if isinstance(margin, bool) or not isinstance(margin, (int, float)):
        raise ValueError(f"pdf.margin_mm must be a number, got {type(margin).__name__}")
    if margin < 0 or margin >= 105:
        raise ValueError(f"pdf.margin_mm must be between 0 and 105, got {margin}")

    batch = config.get("batch", {}) or {}
    try:
        OutputMode.from_string(batch.get("output_mode"))
    except ValueError as exc:
        raise ValueError(f"Invalid batch.output_mode: {exc}") from exc
    try:
        Watermark.from_string(batch.get("watermark"))
    except ValueError as exc:
        raise ValueError(f"Invalid batch.watermark: {exc}") from exc
    for key in ("include_cover_sheet", "include_csv_summary", "csv_as_separate_file"):
        _require_bool(batch.get(key, False), f"batch.{key}")

    sharing = config.get("sharing", {}) or {}
    origin = sharing.get("origin")
    if origin is not None:
        if not isinstance(origin, str) or not origin.startswith(("http://", "https://")):
            raise ValueError(
                f"sharing.origin must be an http(s) URL, got {origin!r}. "
                "Please define sharing.origin in config/parameters.yaml."
            )
    _require_positive_number(
        sharing.get("expiry_hours", DEFAULT_EXPIRY_HOURS), "sharing.expiry_hours"
    )
    _require_bool(sharing.get("generate_qr", True), "sharing.generate_qr")

    before_run = (config.get("pipeline", {}) or {}).get("before_run", {}) or {}
    _require_bool(
        before_run.get("clear_output_directory", False),
        "pipeline.before_run.clear_output_directory",
    )

"""Prepare the output directory for a run.

The directory is created if missing. If it already exists its contents are
removed, except the logs directory, either automatically or after the user
confirms.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Callable, Optional


def is_log_directory(candidate: Path, log_dir: Path) -> bool:
    """True if ``candidate`` resolves to the log directory."""
    try:
        return candidate.resolve() == log_dir.resolve()
    except FileNotFoundError:
        return False


def purge_output_directory(output_dir: Path, log_dir: Path) -> None:
    """Remove everything inside output_dir except the logs directory."""
    for child in output_dir.iterdir():
        if is_log_directory(child, log_dir):
            continue
        if child.is_dir():
            shutil.rmtree(child)
        else:
            child.unlink(missing_ok=True)


def default_prompt(output_dir: Path) -> bool:
    print("")
    print(f"⚠️  Output directory already has files: {output_dir}")
    response = input("Delete previous report cards and links (logs are kept)? [y/N] ")
    return response.strip().lower() in {"y", "yes"}


def prepare_output_directory(
    output_dir: Path,
    log_dir: Path,
    auto_remove: bool,
    prompt: Optional[Callable[[Path], bool]] = None,
) -> bool:
    """Prepare the output directory for a new run.

    Parameters
    ----------
    output_dir:
        Root directory for artifacts.
    log_dir:
        Directory for run logs, usually ``output_dir / "logs"``.
    auto_remove:
        Empty an existing directory without asking.
    prompt:
        Confirmation callable; ``False`` aborts.

    Returns
    -------
    bool
        ``True`` when ready, ``False`` when the user declined.
    """
    prompt_callable = prompt or default_prompt

    has_content = output_dir.exists() and any(
        not is_log_directory(child, log_dir) for child in output_dir.iterdir()
    )
    if has_content:
        if not auto_remove and not prompt_callable(output_dir):
            print("❌ Run cancelled. No changes made.")
            return False
        purge_output_directory(output_dir, log_dir)
    else:
        output_dir.mkdir(parents=True, exist_ok=True)

    log_dir.mkdir(parents=True, exist_ok=True)
    return True

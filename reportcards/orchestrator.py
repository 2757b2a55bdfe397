"""Report card command-line orchestrator.

Wires the file-backed data sources to the pipeline and runs one of three
commands:

- ``eligibility``: list a class's standings, grouped by eligibility
- ``generate``: validate, render and package report cards for a class
- ``share``: issue public share links (and optional QR codes)

**Error Handling Philosophy:**

- **Infrastructure Errors** (missing data files, invalid configuration,
  unknown layout) fail fast: exit code 1, no artifacts written
- **Validation** blocks the whole batch when any selected student fails:
  every failure is printed, exit code 1
- **Per-student errors** during generation or link issuing are reported in
  the summary and do not stop the run; the run fails only when no student
  succeeded

**Exit Codes:**
- 0: Run completed successfully (possibly with per-student failures)
- 1: Run failed (infrastructure error, blocked validation, zero successes)
- 2: User cancelled (output preparation step)
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from . import eligibility, generate_qr_codes, prepare_output, sharing
from .assemble import PdfAssembler
from .batch import BatchJob
from .config_loader import DEFAULT_EXPIRY_HOURS, load_config
from .data_models import BatchOptions, StudentStanding
from .enums import IneligibilityReason, JobState, OutputMode, Watermark
from .formatting import batch_filename, format_score
from .render import ReportRenderer
from .sources import FileDataSource

SCRIPT_DIR = Path(__file__).resolve().parent
ROOT_DIR = SCRIPT_DIR.parent
DEFAULT_OUTPUT_DIR = ROOT_DIR / "output"
DEFAULT_CONFIG_DIR = ROOT_DIR / "config"

LOG = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reportcards",
        description="Generate and share term report cards for a class",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s eligibility data/ jss1a 2024-T1
  %(prog)s generate data/ jss1a 2024-T1 --mode combined --cover --watermark DRAFT
  %(prog)s share data/ jss1a 2024-T1
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("data_dir", type=Path, help="Directory with roster, reports and school.yaml")
        sub.add_argument("class_id", help="Class identifier as listed in school.yaml")
        sub.add_argument("term_id", help="Term identifier as listed in school.yaml")
        sub.add_argument(
            "--config",
            type=Path,
            default=DEFAULT_CONFIG_DIR,
            dest="config_dir",
            help=f"Config directory (default: {DEFAULT_CONFIG_DIR})",
        )

    def add_selection(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "--output",
            type=Path,
            default=DEFAULT_OUTPUT_DIR,
            dest="output_dir",
            help=f"Output directory (default: {DEFAULT_OUTPUT_DIR})",
        )
        sub.add_argument(
            "--students",
            nargs="+",
            default=None,
            metavar="STUDENT_ID",
            help="Explicit selection (default: every eligible student)",
        )

    eligibility_parser = subparsers.add_parser("eligibility", help="List eligible and ineligible students")
    add_common(eligibility_parser)
    eligibility_parser.add_argument("--search", default="", help="Filter by name or admission number")

    generate_parser = subparsers.add_parser("generate", help="Generate report cards")
    add_common(generate_parser)
    add_selection(generate_parser)
    generate_parser.add_argument(
        "--mode",
        choices=[mode.value for mode in OutputMode],
        default=None,
        help="ZIP of per-student PDFs or one combined PDF (default: from config)",
    )
    generate_parser.add_argument(
        "--watermark",
        choices=[mark.value for mark in Watermark],
        default=None,
        help="Watermark on every page (default: from config)",
    )
    generate_parser.add_argument("--layout", default=None, help="Layout for every student")
    generate_parser.add_argument(
        "--cover", action="store_true", default=None, help="Add a cover sheet (combined mode)"
    )
    generate_parser.add_argument(
        "--csv", action="store_true", default=None, help="Include a CSV summary"
    )
    generate_parser.add_argument(
        "--csv-separate",
        action="store_true",
        default=None,
        dest="csv_separate",
        help="Write the CSV summary next to the ZIP instead of inside it",
    )
    generate_parser.add_argument("--title", default="Report Cards", help="Cover sheet title")

    share_parser = subparsers.add_parser("share", help="Issue public share links")
    add_common(share_parser)
    add_selection(share_parser)
    share_parser.add_argument(
        "--store",
        type=Path,
        default=None,
        help="Share link store (default: <data_dir>/share_links.json)",
    )
    share_parser.add_argument("--origin", default=None, help="Public site origin (default: from config)")
    share_parser.add_argument(
        "--no-qr", action="store_true", dest="no_qr", help="Skip QR code generation"
    )
    return parser


def configure_logging(output_dir: Path, run_id: str) -> Path:
    """Log to ``<output_dir>/logs/reportcards_<run_id>.log`` and warnings to stderr."""
    log_dir = output_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"reportcards_{run_id}.log"

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.WARNING)
    console.setFormatter(logging.Formatter("%(levelname)s %(message)s"))

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(logging.INFO)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console)
    return log_path


def print_header(command: str, class_name: str, term_name: str) -> None:
    print()
    print(f"🚀 Report cards: {command}")
    print(f"🏫 Class: {class_name}")
    print(f"🗓️  Term:  {term_name}")
    print()


def print_step(step_num: int, description: str) -> None:
    print()
    print(f"{'=' * 60}")
    print(f"Step {step_num}: {description}")
    print(f"{'=' * 60}")


def print_step_complete(step_num: int, description: str, duration: float) -> None:
    print(f"✅ Step {step_num}: {description} complete in {duration:.1f} seconds.")


def print_summary(step_times: List[tuple], total_duration: float, succeeded: int, failed: int) -> None:
    print()
    print(f"{'=' * 60}")
    print("🎉 Run completed successfully!")
    print(f"{'=' * 60}")
    print()
    print("🕒 Time Summary:")
    for step_name, duration in step_times:
        print(f"  - {step_name:<25} {duration:.1f}s")
    print(f"  - {'─' * 25} {'─' * 6}")
    print(f"  - {'Total Time':<25} {total_duration:.1f}s")
    print()
    print(f"👥 Students succeeded:     {succeeded}")
    if failed:
        print(f"⚠️  Students failed:        {failed}")


def print_failures(failures) -> None:
    for failure in failures:
        print(f" - {failure.name}: {failure.reason}")


def load_standings(source: FileDataSource, class_id: str, term_id: str) -> List[StudentStanding]:
    roster = source.load_roster(class_id)
    if not roster:
        raise ValueError(f"No students found for class {class_id!r}")
    ids = [entry.student_id for entry in roster]
    return eligibility.derive_standings(
        roster,
        source.load_invoices(term_id, ids),
        source.load_report_facts(term_id, ids),
    )


def resolve_selection(
    standings: Sequence[StudentStanding], requested: Optional[Sequence[str]]
) -> List[StudentStanding]:
    """Explicit ids in session order, or the eligible set by default."""
    if requested:
        selected = eligibility.select_in_order(standings, requested)
    else:
        result = eligibility.partition(standings)
        selected = eligibility.select_in_order(standings, eligibility.default_selection(result))
    if not selected:
        raise ValueError("No students selected. Pass --students or resolve eligibility issues first.")
    return selected


def batch_options(args: argparse.Namespace, config: dict) -> BatchOptions:
    """Merge CLI flags over the ``batch`` config section.

    ``--csv-separate`` implies ``--csv``. A cover sheet only exists in
    combined mode, so asking for one in zip mode prints a warning.
    """
    batch_config = config.get("batch", {}) or {}

    def pick(flag, key, default):
        return flag if flag is not None else batch_config.get(key, default)

    csv_separate = pick(args.csv_separate, "csv_as_separate_file", False)
    options = BatchOptions(
        output_mode=OutputMode.from_string(pick(args.mode, "output_mode", "zip")),
        watermark=Watermark.from_string(pick(args.watermark, "watermark", "NONE")),
        include_cover_sheet=pick(args.cover, "include_cover_sheet", False),
        include_csv_summary=bool(args.csv_separate) or pick(args.csv, "include_csv_summary", False),
        csv_as_separate_file=csv_separate,
        layout_override=args.layout,
        batch_title=args.title,
    )
    if options.include_cover_sheet and options.output_mode is OutputMode.ZIP:
        print("⚠️  Cover sheet is only added in combined mode; ignoring it for the ZIP.")
    return options


def run_eligibility(args: argparse.Namespace) -> int:
    load_config(args.config_dir / "parameters.yaml")
    source = FileDataSource(args.data_dir)
    print_header("eligibility", source.class_name(args.class_id), source.term_name(args.term_id))

    standings = load_standings(source, args.class_id, args.term_id)
    if args.search:
        standings = eligibility.search_standings(standings, args.search)
    result = eligibility.partition(standings)

    print(f"✅ Eligible ({len(result.eligible)}):")
    for s in result.eligible:
        average = format_score(s.average_score) if s.average_score is not None else "-"
        print(f"  - {s.student_id:<10} {s.name:<30} avg {average}")
    labels = {
        IneligibilityReason.HAS_DEBT: "Outstanding fees",
        IneligibilityReason.NO_REPORT: "No report",
    }
    for reason, students in result.ineligible.items():
        print(f"⛔ {labels[reason]} ({len(students)}):")
        for s in students:
            extra = f" owes {format_score(s.outstanding_amount)}" if s.has_debt else ""
            print(f"  - {s.student_id:<10} {s.name:<30}{extra}")
    return 0


def run_generate(args: argparse.Namespace, config: dict, output_dir: Path, run_id: str) -> int:
    source = FileDataSource(args.data_dir)
    class_name = source.class_name(args.class_id)
    term_name = source.term_name(args.term_id)
    options = batch_options(args, config)
    renderer = ReportRenderer.from_config(config)
    if options.layout_override:
        renderer.layout(options.layout_override)
    print_header("generate", class_name, term_name)

    step_times = []
    total_start = time.time()

    step_start = time.time()
    print_step(1, "Preparing output directory")
    auto_remove = config.get("pipeline", {}).get("before_run", {}).get("clear_output_directory", False)
    if not prepare_output.prepare_output_directory(output_dir, output_dir / "logs", auto_remove):
        return 2
    log_path = configure_logging(output_dir, run_id)
    print(f"Log written to {log_path}")
    step_times.append(("Output Preparation", time.time() - step_start))
    print_step_complete(1, "Output directory prepared", step_times[-1][1])

    step_start = time.time()
    print_step(2, "Selecting students")
    standings = load_standings(source, args.class_id, args.term_id)
    selected = resolve_selection(standings, args.students)
    print(f"👥 Selected {len(selected)} of {len(standings)} student(s)")
    step_times.append(("Selection", time.time() - step_start))
    print_step_complete(2, "Selection", step_times[-1][1])

    step_start = time.time()
    print_step(3, "Generating report cards")

    def progress(current: int, total: int) -> None:
        print(f"  [{current}/{total}]", end="\r" if current < total else "\n", flush=True)

    job = BatchJob(
        students=selected,
        term_id=args.term_id,
        class_id=args.class_id,
        class_name=class_name,
        term_name=term_name,
        options=options,
        reports=source,
        config_source=source,
        validator=source,
        renderer=renderer,
        assembler=PdfAssembler.from_config(config),
        progress=progress,
    )
    result = job.run()
    step_times.append(("Generation", time.time() - step_start))
    if result.state is not JobState.COMPLETED:
        print(f"\n❌ Generation {result.state.value}: {result.error}", file=sys.stderr)
        print_failures(result.report.failures)
        return 1
    print_step_complete(3, "Generation", step_times[-1][1])

    step_start = time.time()
    print_step(4, "Writing artifacts")
    for artifact in result.artifacts:
        target = output_dir / artifact.filename
        target.write_bytes(artifact.content)
        print(f"📄 {target}")
    step_times.append(("Writing", time.time() - step_start))
    print_step_complete(4, "Writing", step_times[-1][1])

    if result.report.failures:
        print("Students that could not be generated:")
        print_failures(result.report.failures)
    print_summary(
        step_times, time.time() - total_start, result.report.success_count, result.report.failure_count
    )
    return 0


def run_share(args: argparse.Namespace, config: dict, output_dir: Path, run_id: str) -> int:
    source = FileDataSource(args.data_dir)
    class_name = source.class_name(args.class_id)
    term_name = source.term_name(args.term_id)
    sharing_config = config.get("sharing", {}) or {}
    origin = args.origin or sharing_config.get("origin")
    if not origin:
        raise ValueError("No share origin configured. Set sharing.origin or pass --origin.")
    expiry_hours = sharing_config.get("expiry_hours", DEFAULT_EXPIRY_HOURS)
    generate_qr = sharing_config.get("generate_qr", True) and not args.no_qr
    print_header("share", class_name, term_name)

    step_times = []
    total_start = time.time()
    output_dir.mkdir(parents=True, exist_ok=True)
    log_path = configure_logging(output_dir, run_id)
    print(f"Log written to {log_path}")

    step_start = time.time()
    print_step(1, "Issuing share links")
    standings = load_standings(source, args.class_id, args.term_id)
    selected = resolve_selection(standings, args.students)
    store = sharing.JsonShareLinkStore(args.store or args.data_dir / "share_links.json")
    result = sharing.issue_links(selected, args.term_id, store, origin, expiry_hours)
    csv_path = sharing.export_links_csv(
        result.links, output_dir / batch_filename(class_name, term_name, "ShareLinks", "csv")
    )
    print(f"🔗 Issued {len(result.links)} link(s); exported to {csv_path}")
    print()
    print(sharing.clipboard_text(result.links))
    step_times.append(("Link Issuing", time.time() - step_start))
    print_step_complete(1, "Link issuing", step_times[-1][1])

    step_start = time.time()
    print_step(2, "Generating QR codes")
    if generate_qr and result.links:
        generated = generate_qr_codes.generate_link_qr_codes(result.links, output_dir)
        print(f"Generated {len(generated)} QR code PNG file(s) in {output_dir / 'qr_codes'}")
        step_times.append(("QR Code Generation", time.time() - step_start))
        print_step_complete(2, "QR code generation", step_times[-1][1])
    else:
        print("QR code generation skipped (disabled or no links).")

    if result.failures:
        print("Students without a link:")
        print_failures(result.failures)
    if not result.links:
        print("\n❌ No share links were issued.", file=sys.stderr)
        return 1
    print_summary(step_times, time.time() - total_start, len(result.links), len(result.failures))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command-line orchestrator."""
    args = build_parser().parse_args(argv)
    run_id = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")

    try:
        if args.command == "eligibility":
            return run_eligibility(args)

        config = load_config(args.config_dir / "parameters.yaml")
        output_dir = args.output_dir.resolve()
        if args.command == "generate":
            return run_generate(args, config, output_dir, run_id)
        return run_share(args, config, output_dir, run_id)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:
        print(f"\n❌ Run failed: {exc}", file=sys.stderr)
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

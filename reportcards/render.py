"""Render a canonical report into A4 page bitmaps.

The renderer splits the subject list into page-sized chunks, then asks a
layout module to draw each page on its own off-screen PageCanvas. Layout
modules live in ``reportcards/layouts/`` as ``{name}_layout.py`` and are
loaded by file path, so a school can drop in a new variant without touching
the normalizer or this module.

**Layout module interface:**
- ``SKIN``: dict of colors, font sizes and spacing
- ``SECTION_ORDER``: tuple of section names drawn top to bottom
- ``SUBJECTS_PER_PAGE``: maximum subject rows per page
- ``render_page(page, context)``: draws one page

**Page rules:**
- Header, student info, the subject chunk and the footer appear on every page
- Summary, rankings and attendance appear on the first page only
- Comments appear on the last page only
- The watermark, when set, is stamped on every page
"""

from __future__ import annotations

import importlib.util
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from PIL import Image

from .config_loader import (
    DEFAULT_DPI,
    DEFAULT_EXAM_KEYWORDS,
    DEFAULT_LAYOUT,
    DEFAULT_MATCH_THRESHOLD,
)
from .data_models import CanonicalReport, SubjectRecord
from .drawing import FontBook, PageCanvas
from .enums import Watermark
from .utils import chunked

LOG = logging.getLogger(__name__)

SCRIPT_DIR = Path(__file__).resolve().parent
DEFAULT_LAYOUT_DIR = SCRIPT_DIR / "layouts"

REQUIRED_LAYOUT_ATTRIBUTES = ("SKIN", "SECTION_ORDER", "SUBJECTS_PER_PAGE", "render_page")
FIRST_PAGE_SECTIONS = frozenset({"summary", "rankings", "attendance"})
LAST_PAGE_SECTIONS = frozenset({"comments"})


@dataclass(frozen=True)
class Column:
    """One subject-table column.

    ``key`` is 'subject', 'ca', 'exam', 'total', 'grade', 'position', 'remark'
    or 'component:<name>' for a class assessment component.
    """

    key: str
    title: str
    weight: float


@dataclass(frozen=True)
class PageContext:
    """Everything a layout needs to draw one page.

    Parameters
    ----------
    report : CanonicalReport
        The student's full report.
    subjects : Sequence[SubjectRecord]
        Subject rows for this page only.
    page_number : int
        1-based page number.
    page_count : int
        Pages in this student's report.
    sections : Tuple[str, ...]
        Sections to draw on this page, in layout order.
    skin : Dict[str, Any]
        Layout skin with the class theme color applied.
    columns : Tuple[Column, ...]
        Subject table columns.
    exam_keywords : Tuple[str, ...]
        Keywords that put a component in the Exam column.
    match_threshold : float
        Fuzzy score cutoff for component name matching.
    logo : Image.Image, optional
        School logo, when one could be loaded from disk.
    """

    report: CanonicalReport
    subjects: Sequence[SubjectRecord]
    page_number: int
    page_count: int
    sections: Tuple[str, ...]
    skin: Dict[str, Any]
    columns: Tuple[Column, ...]
    exam_keywords: Tuple[str, ...]
    match_threshold: float
    logo: Optional[Image.Image] = None

    @property
    def is_first_page(self) -> bool:
        return self.page_number == 1

    @property
    def is_last_page(self) -> bool:
        return self.page_number == self.page_count


def load_layout_module(layout_dir: Path, layout_name: str):
    """Dynamically load a layout module from ``{layout_dir}/{layout_name}_layout.py``.

    Parameters
    ----------
    layout_dir : Path
        Directory containing layout modules.
    layout_name : str
        Layout name, e.g. 'classic'.

    Returns
    -------
    module
        Loaded module defining SKIN, SECTION_ORDER, SUBJECTS_PER_PAGE and
        render_page().

    Raises
    ------
    FileNotFoundError
        If the layout file does not exist.
    ImportError
        If the module cannot be loaded.
    AttributeError
        If the module is missing part of the layout interface.
    """
    module_name = f"{layout_name}_layout"
    module_path = Path(layout_dir) / f"{module_name}.py"

    if not module_path.exists():
        raise FileNotFoundError(
            f"Layout module not found: {module_path}. "
            f"Expected {module_name}.py in {layout_dir}"
        )

    spec = importlib.util.spec_from_file_location(module_name, module_path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Could not load layout module: {module_path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[f"_dynamic_{module_name}"] = module
    spec.loader.exec_module(module)

    missing = [attr for attr in REQUIRED_LAYOUT_ATTRIBUTES if not hasattr(module, attr)]
    if missing:
        raise AttributeError(
            f"Layout module {module_name} must define {', '.join(missing)}. "
            f"Check {module_path} and ensure it implements the layout interface."
        )
    if int(module.SUBJECTS_PER_PAGE) <= 0:
        raise ValueError(f"{module_name}.SUBJECTS_PER_PAGE must be positive")
    return module


def available_layouts(layout_dir: Path = DEFAULT_LAYOUT_DIR) -> List[str]:
    """Names of the layout modules present in ``layout_dir``, sorted."""
    return sorted(
        path.name[: -len("_layout.py")] for path in Path(layout_dir).glob("*_layout.py")
    )


def paginate_subjects(
    subjects: Sequence[SubjectRecord], capacity: int
) -> List[List[SubjectRecord]]:
    """Split subjects into ordered page chunks of at most ``capacity`` rows.

    Concatenating the chunks gives back the input. An empty subject list
    still yields one (empty) chunk, since every report has a first page.

    Examples
    --------
    >>> [len(c) for c in paginate_subjects(list_of_20_subjects, 8)]
    [8, 8, 4]
    """
    chunks = list(chunked(list(subjects), capacity))
    return chunks or [[]]


def sections_for_page(
    section_order: Sequence[str], page_number: int, page_count: int
) -> Tuple[str, ...]:
    """Filter a layout's section order down to what belongs on one page."""
    selected = []
    for section in section_order:
        if section in FIRST_PAGE_SECTIONS and page_number != 1:
            continue
        if section in LAST_PAGE_SECTIONS and page_number != page_count:
            continue
        selected.append(section)
    return tuple(selected)


def build_columns(report: CanonicalReport) -> Tuple[Column, ...]:
    """Subject table columns for a report.

    One column per assessment component when the class defines them,
    otherwise the two-column CA/Exam split. The position column appears only
    when enabled and at least one subject carries a position.
    """
    columns = [Column("subject", "Subject", 2.6)]
    if report.assessment_components:
        for component in report.assessment_components:
            max_score = component.max_score
            title = component.name
            if max_score:
                title = f"{component.name} ({int(max_score) if float(max_score).is_integer() else max_score})"
            columns.append(Column(f"component:{component.name}", title, 1.0))
    else:
        columns.append(Column("ca", "CA", 1.0))
        columns.append(Column("exam", "Exam", 1.0))
    columns.append(Column("total", "Total", 1.0))
    columns.append(Column("grade", "Grade", 0.9))
    if report.config.show_subject_position and any(
        s.subject_position is not None for s in report.subjects
    ):
        columns.append(Column("position", "Pos.", 0.9))
    columns.append(Column("remark", "Remark", 2.0))
    return tuple(columns)


def load_logo(reference: Optional[str]) -> Optional[Image.Image]:
    """Open a school logo from a local path; remote or missing logos are skipped."""
    if not reference:
        return None
    path = Path(reference)
    if not path.is_file():
        LOG.debug("Logo %s is not a local file; drawing without it", reference)
        return None
    try:
        with Image.open(path) as source:
            return source.convert("RGBA")
    except OSError as exc:
        LOG.warning("Could not read logo %s: %s", path, exc)
        return None


class ReportRenderer:
    """Renders canonical reports with the configured layouts.

    Parameters
    ----------
    layout_dir : Path
        Directory searched for ``{name}_layout.py`` modules.
    dpi : float
        Pixel density of the page surface.
    default_layout : str
        Layout used when neither the caller nor the class names one.
    font_path : str, optional
        TrueType font file; Pillow's bundled font when None.
    exam_keywords : Sequence[str]
        Component-name keywords for the Exam column.
    match_threshold : float
        Fuzzy component matching cutoff (0-100).
    """

    def __init__(
        self,
        layout_dir: Path = DEFAULT_LAYOUT_DIR,
        dpi: float = DEFAULT_DPI,
        default_layout: str = DEFAULT_LAYOUT,
        font_path: Optional[str] = None,
        exam_keywords: Sequence[str] = DEFAULT_EXAM_KEYWORDS,
        match_threshold: float = DEFAULT_MATCH_THRESHOLD,
    ):
        self.layout_dir = Path(layout_dir)
        self.dpi = dpi
        self.default_layout = default_layout
        self.fonts = FontBook(font_path)
        self.exam_keywords = tuple(exam_keywords)
        self.match_threshold = match_threshold
        self._layouts: Dict[str, Any] = {}

    @classmethod
    def from_config(cls, config: Dict[str, Any], layout_dir: Optional[Path] = None) -> "ReportRenderer":
        rendering = config.get("rendering", {}) or {}
        return cls(
            layout_dir=layout_dir or DEFAULT_LAYOUT_DIR,
            dpi=rendering.get("dpi", DEFAULT_DPI),
            default_layout=rendering.get("default_layout", DEFAULT_LAYOUT),
            font_path=rendering.get("font_path"),
            exam_keywords=rendering.get("exam_keywords", DEFAULT_EXAM_KEYWORDS),
            match_threshold=rendering.get("component_match_threshold", DEFAULT_MATCH_THRESHOLD),
        )

    def layout(self, name: str):
        """Load (once) and return the layout module called ``name``."""
        if name not in self._layouts:
            self._layouts[name] = load_layout_module(self.layout_dir, name)
        return self._layouts[name]

    def resolve_layout(self, report: CanonicalReport, override: Optional[str] = None):
        """Pick the layout: explicit override, then class setting, then default.

        An explicit override that does not exist is an error. A class setting
        naming a layout that is not installed falls back to the default.
        """
        if override:
            return override, self.layout(override)
        class_layout = report.config.layout
        if class_layout and class_layout != self.default_layout:
            try:
                return class_layout, self.layout(class_layout)
            except FileNotFoundError:
                LOG.warning(
                    "Layout %r is not installed; using %r", class_layout, self.default_layout
                )
        return self.default_layout, self.layout(self.default_layout)

    def render(
        self,
        report: CanonicalReport,
        layout: Optional[str] = None,
        watermark: Watermark = Watermark.NONE,
    ) -> List[Image.Image]:
        """Render one student's report.

        Parameters
        ----------
        report : CanonicalReport
            Normalized report.
        layout : str, optional
            Layout name overriding the class setting.
        watermark : Watermark
            Stamp for every page.

        Returns
        -------
        List[Image.Image]
            One RGB bitmap per page, in order.
        """
        layout_name, module = self.resolve_layout(report, layout)
        chunks = paginate_subjects(report.subjects, int(module.SUBJECTS_PER_PAGE))
        skin = dict(module.SKIN)
        if skin.get("use_class_theme", True):
            skin["primary"] = report.config.color_theme
        columns = build_columns(report)
        logo = load_logo(report.school.logo_url)

        pages: List[Image.Image] = []
        try:
            for page_number, chunk in enumerate(chunks, start=1):
                context = PageContext(
                    report=report,
                    subjects=chunk,
                    page_number=page_number,
                    page_count=len(chunks),
                    sections=sections_for_page(module.SECTION_ORDER, page_number, len(chunks)),
                    skin=skin,
                    columns=columns,
                    exam_keywords=self.exam_keywords,
                    match_threshold=self.match_threshold,
                    logo=logo,
                )
                with PageCanvas(self.dpi, self.fonts) as page:
                    module.render_page(page, context)
                    if watermark.label:
                        page.watermark(watermark.label)
                pages.append(page.result)
        finally:
            if logo is not None:
                logo.close()

        LOG.info(
            "Rendered %s with layout %s: %d subject(s) on %d page(s)",
            report.student.full_name,
            layout_name,
            len(report.subjects),
            len(pages),
        )
        return pages

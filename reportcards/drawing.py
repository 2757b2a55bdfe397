"""Off-screen drawing surface for one report card page.

Pages are drawn with Pillow at a fixed physical size (A4 at the configured
DPI), so output never depends on a window or screen size. Layout code works
in millimetres and points; PageCanvas converts to pixels.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageFont

LOG = logging.getLogger(__name__)

A4_WIDTH_MM = 210.0
A4_HEIGHT_MM = 297.0
MM_PER_INCH = 25.4
POINTS_PER_INCH = 72.0

RGB = Tuple[int, int, int]


def a4_pixels(dpi: float) -> Tuple[int, int]:
    """Pixel size of an A4 page at ``dpi``; 150 dpi gives (1240, 1754)."""
    return (
        round(A4_WIDTH_MM / MM_PER_INCH * dpi),
        round(A4_HEIGHT_MM / MM_PER_INCH * dpi),
    )


def parse_color(value: str, default: str = "#1e3a8a") -> RGB:
    """Parse a CSS-style color, falling back to ``default`` when invalid."""
    try:
        return ImageColor.getrgb(value)[:3]
    except (ValueError, AttributeError):
        LOG.warning("Invalid color %r; using %s", value, default)
        return ImageColor.getrgb(default)[:3]


def tint(color: RGB, amount: float) -> RGB:
    """Blend ``color`` toward white; amount 0 keeps it, 1 gives white."""
    return tuple(round(c + (255 - c) * amount) for c in color)  # type: ignore[return-value]


class FontBook:
    """Caches fonts by pixel size.

    Uses a TrueType file when ``font_path`` is given, otherwise Pillow's
    bundled scalable font.
    """

    def __init__(self, font_path: Optional[str] = None, bold_font_path: Optional[str] = None):
        self.font_path = font_path
        self.bold_font_path = bold_font_path or font_path
        self._cache: Dict[Tuple[int, bool], ImageFont.ImageFont] = {}

    def get(self, size_px: int, bold: bool = False):
        key = (max(size_px, 1), bold)
        if key not in self._cache:
            path = self.bold_font_path if bold else self.font_path
            if path:
                if not Path(path).exists():
                    raise FileNotFoundError(f"Font file not found: {path}")
                self._cache[key] = ImageFont.truetype(path, key[0])
            else:
                self._cache[key] = ImageFont.load_default(size=key[0])
        return self._cache[key]


class PageCanvas:
    """A white A4 page that layouts draw onto.

    The canvas grows downward when content passes the bottom edge, so a page
    with unusually long comments becomes a taller bitmap rather than losing
    text; the PDF assembler tiles such bitmaps across physical pages.

    Use as a context manager; the working surface is released on exit and
    ``result`` keeps the finished bitmap.

    Examples
    --------
    >>> with PageCanvas(dpi=100, fonts=FontBook()) as page:
    ...     page.text(10, 10, "Hello", 12)
    >>> page.result.size
    (827, 1169)
    """

    def __init__(self, dpi: float, fonts: FontBook, background: str = "white"):
        self.dpi = dpi
        self.fonts = fonts
        self.width, self.height = a4_pixels(dpi)
        self.background = background
        self.image: Optional[Image.Image] = None
        self.draw: Optional[ImageDraw.ImageDraw] = None
        self.result: Optional[Image.Image] = None

    def __enter__(self) -> "PageCanvas":
        self.image = Image.new("RGB", (self.width, self.height), self.background)
        self.draw = ImageDraw.Draw(self.image)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None and self.image is not None:
            self.result = self.image.copy()
        if self.image is not None:
            self.image.close()
        self.image = None
        self.draw = None

    # Unit conversion -----------------------------------------------------

    def mm(self, value: float) -> int:
        return round(value / MM_PER_INCH * self.dpi)

    def pt(self, value: float) -> int:
        return max(round(value / POINTS_PER_INCH * self.dpi), 1)

    @property
    def width_mm(self) -> float:
        return A4_WIDTH_MM

    # Geometry ------------------------------------------------------------

    def ensure_height(self, bottom_px: int) -> None:
        """Grow the surface so that ``bottom_px`` is inside it."""
        if bottom_px <= self.height:
            return
        grown = Image.new("RGB", (self.width, bottom_px), self.background)
        grown.paste(self.image, (0, 0))
        self.image.close()
        self.image = grown
        self.draw = ImageDraw.Draw(self.image)
        self.height = bottom_px
        LOG.debug("Page surface grown to %d px", bottom_px)

    # Text ----------------------------------------------------------------

    def font(self, size_pt: float, bold: bool = False):
        return self.fonts.get(self.pt(size_pt), bold)

    def text_width(self, text: str, size_pt: float, bold: bool = False) -> float:
        return self.draw.textlength(text, font=self.font(size_pt, bold))

    def line_height(self, size_pt: float, spacing: float = 1.3) -> int:
        return round(self.pt(size_pt) * spacing)

    def text(
        self,
        x: float,
        y: float,
        text: str,
        size_pt: float,
        fill: RGB | str = "black",
        bold: bool = False,
        anchor: str = "la",
    ) -> None:
        """Draw one line of text at pixel position (x, y)."""
        self.ensure_height(int(y + self.line_height(size_pt)))
        self.draw.text((x, y), text, fill=fill, font=self.font(size_pt, bold), anchor=anchor)

    def fit_text(self, text: str, size_pt: float, max_width: float, bold: bool = False) -> str:
        """Truncate ``text`` with an ellipsis so it fits ``max_width`` pixels."""
        if self.text_width(text, size_pt, bold) <= max_width:
            return text
        ellipsis = "…"
        trimmed = text
        while trimmed and self.text_width(trimmed + ellipsis, size_pt, bold) > max_width:
            trimmed = trimmed[:-1]
        return (trimmed.rstrip() + ellipsis) if trimmed else ""

    def wrap(self, text: str, size_pt: float, max_width: float, bold: bool = False) -> List[str]:
        """Greedy word wrap to ``max_width`` pixels; over-long words are truncated."""
        lines: List[str] = []
        current = ""
        for word in text.split():
            candidate = f"{current} {word}".strip()
            if self.text_width(candidate, size_pt, bold) <= max_width:
                current = candidate
                continue
            if current:
                lines.append(current)
            current = self.fit_text(word, size_pt, max_width, bold)
        if current:
            lines.append(current)
        return lines or [""]

    def paragraph(
        self,
        x: float,
        y: float,
        text: str,
        size_pt: float,
        max_width: float,
        fill: RGB | str = "black",
        bold: bool = False,
    ) -> int:
        """Draw wrapped text and return the y coordinate below it."""
        step = self.line_height(size_pt)
        for line in self.wrap(text, size_pt, max_width, bold):
            self.text(x, y, line, size_pt, fill=fill, bold=bold)
            y += step
        return int(y)

    # Shapes --------------------------------------------------------------

    def rect(
        self,
        box: Tuple[float, float, float, float],
        fill: Optional[RGB | str] = None,
        outline: Optional[RGB | str] = None,
        width: int = 1,
    ) -> None:
        self.ensure_height(int(box[3]) + 1)
        self.draw.rectangle(box, fill=fill, outline=outline, width=width)

    def hline(self, x0: float, x1: float, y: float, fill: RGB | str = "black", width: int = 1) -> None:
        self.ensure_height(int(y) + width)
        self.draw.line([(x0, y), (x1, y)], fill=fill, width=width)

    def paste_image(self, source: Image.Image, box: Tuple[int, int, int, int]) -> None:
        """Scale ``source`` to fit inside ``box`` keeping aspect ratio, then paste."""
        x0, y0, x1, y1 = box
        thumbnail = source.convert("RGBA")
        thumbnail.thumbnail((max(x1 - x0, 1), max(y1 - y0, 1)))
        self.ensure_height(y1)
        self.image.paste(thumbnail, (x0, y0), thumbnail)
        thumbnail.close()

    def watermark(self, label: str, color: RGB = (200, 30, 30), opacity: int = 48) -> None:
        """Stamp ``label`` diagonally across the centre of the page."""
        size_px = max(self.width // 6, 12)
        font = self.fonts.get(size_px, bold=True)
        probe = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
        left, top, right, bottom = probe.textbbox((0, 0), label, font=font)
        layer = Image.new("RGBA", (right - left + 20, bottom - top + 20), (0, 0, 0, 0))
        ImageDraw.Draw(layer).text(
            (10 - left, 10 - top), label, font=font, fill=(*color, opacity)
        )
        rotated = layer.rotate(45, expand=True, resample=Image.Resampling.BICUBIC)
        position = (
            (self.width - rotated.width) // 2,
            (self.height - rotated.height) // 2,
        )
        self.image.paste(rotated, position, rotated)
        layer.close()
        rotated.close()

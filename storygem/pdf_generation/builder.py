"""
Render illustrated story pages into a printable PDF with an embedded font.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Callable, Sequence
from xml.sax.saxutils import escape

import reportlab
import requests
from PIL import Image, UnidentifiedImageError
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4, LETTER
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import inch, mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph

from storygem.common.errors import AssemblyError

logger = logging.getLogger(__name__)

ImageLoader = Callable[[str], bytes]

PAGE_SIZES = {
    "a4": A4,
    "letter": LETTER,
    "square": (8 * inch, 8 * inch),
}

ELLIPSIS = "…"


@dataclass(frozen=True)
class IllustratedPage:
    """One storybook page ready for layout."""

    page_number: int
    narration: str
    image_url: str


@dataclass(frozen=True)
class PageLayoutConfig:
    page_background: colors.Color
    text_color: colors.Color
    footer_color: colors.Color


DEFAULT_LAYOUT = PageLayoutConfig(
    page_background=colors.HexColor("#FFFBF2"),
    text_color=colors.HexColor("#2F2A40"),
    footer_color=colors.HexColor("#8A8FA8"),
)


@dataclass(frozen=True)
class _TextFit:
    paragraph: Paragraph
    height: float
    font_size: float
    truncated: bool


def fetch_image_bytes(url: str, *, timeout: float = 30.0) -> bytes:
    """Download an illustration, raising AssemblyError on any transport failure."""
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise AssemblyError(f"Could not download illustration from {url}: {exc}") from exc
    return response.content


class StorybookPDFBuilder:
    """
    Render story pages into a PDF, one page per (narration, illustration) pair.

    Each page places the illustration centered in the upper region, scaled to
    fit inside the margins with its aspect ratio preserved, and the narration
    below it. Narration that does not fit at ``font_size`` is shrunk one point
    at a time down to ``min_font_size``; if it still overflows it is cut at a
    word boundary and ended with an ellipsis.
    """

    def __init__(
        self,
        *,
        page_size: tuple[float, float] = PAGE_SIZES["square"],
        margin_mm: float = 15.0,
        image_region_ratio: float = 0.6,
        font_path: str | Path | None = None,
        font_size: float = 18.0,
        min_font_size: float = 11.0,
        leading_ratio: float = 1.4,
        layout: PageLayoutConfig = DEFAULT_LAYOUT,
        image_loader: ImageLoader | None = None,
        request_timeout: float = 30.0,
    ) -> None:
        if not 0.1 <= image_region_ratio <= 0.9:
            raise ValueError("image_region_ratio must fall between 0.1 and 0.9.")
        if min_font_size <= 0 or min_font_size > font_size:
            raise ValueError("min_font_size must be positive and no larger than font_size.")

        self.page_size = page_size
        self.margin = margin_mm * mm
        self.text_gap = 6 * mm
        self.image_region_ratio = image_region_ratio
        self.font_size = font_size
        self.min_font_size = min_font_size
        self.leading_ratio = leading_ratio
        self.layout = layout
        self.request_timeout = request_timeout
        self._image_loader: ImageLoader = image_loader or (
            lambda url: fetch_image_bytes(url, timeout=self.request_timeout)
        )

        self.body_font = self._configure_story_font(font_path)

        self.footer_style = ParagraphStyle(
            name="Footer",
            fontName=self.body_font,
            fontSize=9,
            leading=11,
            alignment=TA_CENTER,
            textColor=self.layout.footer_color,
        )

    # ------------------------------------------------------------------ public API

    def render(self, pages: Sequence[IllustratedPage], *, title: str | None = None) -> bytes:
        """Return the PDF bytes for ``pages`` in the order given."""
        if not pages:
            raise AssemblyError("Cannot render a storybook without pages.")

        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=self.page_size, invariant=1)
        if title:
            pdf.setTitle(title)
        pdf.setCreator("StoryGem")

        width, height = self.page_size
        for page in pages:
            image = self._load_image(page)
            self._draw_page(pdf, page, image, width, height)

        pdf.save()
        return buffer.getvalue()

    def build(
        self,
        pages: Sequence[IllustratedPage],
        output_path: Path | str,
        *,
        title: str | None = None,
    ) -> Path:
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_bytes(self.render(pages, title=title))
        return output_file

    # ------------------------------------------------------------------ geometry

    def image_box(self, width: float, height: float) -> tuple[float, float, float, float]:
        """Return (x, y, w, h) of the region the illustration is fitted into."""
        content_height = height - 2 * self.margin
        box_height = content_height * self.image_region_ratio
        return (
            self.margin,
            height - self.margin - box_height,
            width - 2 * self.margin,
            box_height,
        )

    def text_box(self, width: float, height: float) -> tuple[float, float, float, float]:
        """Return (x, y, w, h) of the region the narration is laid out in."""
        _, image_y, _, _ = self.image_box(width, height)
        footer_space = 14.0
        box_y = self.margin + footer_space
        return (
            self.margin,
            box_y,
            width - 2 * self.margin,
            max(image_y - self.text_gap - box_y, 0.0),
        )

    @staticmethod
    def fit_image(
        image_width: float,
        image_height: float,
        box: tuple[float, float, float, float],
    ) -> tuple[float, float, float, float]:
        """Scale an image into ``box`` preserving aspect ratio and center it."""
        box_x, box_y, box_w, box_h = box
        scale = min(box_w / image_width, box_h / image_height)
        draw_width = image_width * scale
        draw_height = image_height * scale
        return (
            box_x + (box_w - draw_width) / 2,
            box_y + (box_h - draw_height) / 2,
            draw_width,
            draw_height,
        )

    # ------------------------------------------------------------------ page rendering

    def _draw_page(
        self,
        pdf: canvas.Canvas,
        page: IllustratedPage,
        image: Image.Image,
        width: float,
        height: float,
    ) -> None:
        pdf.setFillColor(self.layout.page_background)
        pdf.rect(0, 0, width, height, stroke=0, fill=1)

        img_width, img_height = image.size
        x, y, draw_width, draw_height = self.fit_image(
            img_width, img_height, self.image_box(width, height)
        )
        pdf.drawImage(
            ImageReader(image),
            x,
            y,
            draw_width,
            draw_height,
            preserveAspectRatio=True,
            mask="auto",
        )

        text_x, text_y, text_width, text_height = self.text_box(width, height)
        fit = self.fit_text(page.narration, text_width, text_height)
        if fit.truncated:
            logger.warning(
                "Narration for page %d overflowed its text box and was truncated.",
                page.page_number,
            )
        fit.paragraph.drawOn(pdf, text_x, text_y + text_height - fit.height)

        self._draw_footer(pdf, str(page.page_number), width)
        pdf.showPage()

    def fit_text(self, narration: str, width: float, height: float) -> _TextFit:
        """Lay out ``narration`` in the box, shrinking then truncating as needed."""
        size = self.font_size
        while True:
            paragraph, used = self._layout_paragraph(narration, size, width, height)
            if used <= height:
                return _TextFit(paragraph, used, size, truncated=False)
            if size - 1 < self.min_font_size:
                break
            size -= 1

        words = narration.split()
        low, high = 0, len(words)
        best: tuple[Paragraph, float] | None = None
        while low < high:
            middle = (low + high + 1) // 2
            candidate = " ".join(words[:middle]).rstrip(",;:.!?") + ELLIPSIS
            paragraph, used = self._layout_paragraph(candidate, size, width, height)
            if used <= height:
                best = (paragraph, used)
                low = middle
            else:
                high = middle - 1

        if best is None:
            best = self._layout_paragraph(ELLIPSIS, size, width, height)
        return _TextFit(best[0], best[1], size, truncated=True)

    def _layout_paragraph(
        self,
        text: str,
        size: float,
        width: float,
        height: float,
    ) -> tuple[Paragraph, float]:
        style = ParagraphStyle(
            name=f"Narration{size:g}",
            fontName=self.body_font,
            fontSize=size,
            leading=size * self.leading_ratio,
            alignment=TA_CENTER,
            textColor=self.layout.text_color,
        )
        markup = "<br/>".join(escape(line) for line in text.strip().splitlines())
        paragraph = Paragraph(markup, style)
        _, used = paragraph.wrap(width, height)
        return paragraph, used

    def _draw_footer(self, pdf: canvas.Canvas, text: str, width: float) -> None:
        footer = Paragraph(escape(text), self.footer_style)
        _, footer_height = footer.wrap(width - 2 * self.margin, 20)
        footer.drawOn(pdf, self.margin, self.margin - footer_height / 2)

    # ------------------------------------------------------------------ helpers

    def _load_image(self, page: IllustratedPage) -> Image.Image:
        data = self._image_loader(page.image_url)
        try:
            image = Image.open(BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise AssemblyError(
                f"Illustration for page {page.page_number} is not a readable image."
            ) from exc
        if image.mode not in ("RGB", "RGBA", "L"):
            image = image.convert("RGBA")
        return image

    def _configure_story_font(self, font_path: str | Path | None) -> str:
        if font_path is not None:
            path = Path(font_path).expanduser()
            name = f"StoryGem-{path.stem}"
            if not self._register_font(name, path):
                raise AssemblyError(f"Story font at '{path}' could not be loaded.")
            return name

        playful_options = [
            ("ComicSansMS", ["Comic Sans MS.ttf", "ComicSansMS.ttf", "comic.ttf"]),
            ("ChalkboardSE-Light", ["ChalkboardSE-Light.ttf"]),
        ]
        search_roots = [
            Path("/Library/Fonts"),
            Path.home() / "Library" / "Fonts",
            Path("C:/Windows/Fonts"),
            Path("/usr/share/fonts/truetype/msttcorefonts"),
            Path("/usr/local/share/fonts"),
        ]
        for font_name, candidates in playful_options:
            for root in search_roots:
                for candidate in candidates:
                    if self._register_font(font_name, root / candidate):
                        return font_name

        # ReportLab ships Bitstream Vera, so an embeddable TrueType font is always available.
        bundled = Path(reportlab.__file__).resolve().parent / "fonts" / "Vera.ttf"
        if self._register_font("StoryGem-Vera", bundled):
            return "StoryGem-Vera"

        raise AssemblyError("No embeddable TrueType font is available for the storybook text.")

    @staticmethod
    def _register_font(font_name: str, font_path: Path) -> bool:
        if font_name in pdfmetrics.getRegisteredFontNames():
            return True
        if not font_path.is_file():
            return False
        try:
            pdfmetrics.registerFont(TTFont(font_name, str(font_path)))
        except (TTFError, OSError):
            logger.warning("Skipping unusable font file %s", font_path)
            return False
        return True

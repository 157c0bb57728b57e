"""PDF assembly tests: one page per pair, embedded font, fitting rules."""

from io import BytesIO

import pytest
from pypdf import PdfReader

from conftest import make_image_bytes
from storygem.common.errors import AssemblyError
from storygem.pdf_generation import IllustratedPage, StorybookPDFBuilder


def _pages(count):
    return [
        IllustratedPage(
            page_number=n,
            narration=f"Chapter {n} of the firefly tale.",
            image_url=f"https://images.test/page-{n}.png",
        )
        for n in range(1, count + 1)
    ]


def test_render_produces_one_page_per_pair_in_order(pdf_builder, image_loader):
    data = pdf_builder.render(_pages(3), title="Lily's Bedtime Story")

    reader = PdfReader(BytesIO(data))
    assert len(reader.pages) == 3
    assert image_loader.requested == [
        "https://images.test/page-1.png",
        "https://images.test/page-2.png",
        "https://images.test/page-3.png",
    ]
    texts = [page.extract_text() for page in reader.pages]
    for number, text in enumerate(texts, start=1):
        assert f"Chapter {number}" in text
    assert reader.metadata.title == "Lily's Bedtime Story"


def test_narration_font_is_embedded(pdf_builder):
    data = pdf_builder.render(_pages(1))

    assert b"/FontFile2" in data


def test_render_is_deterministic(pdf_builder):
    assert pdf_builder.render(_pages(2)) == pdf_builder.render(_pages(2))


def test_render_without_pages_fails(pdf_builder):
    with pytest.raises(AssemblyError):
        pdf_builder.render([])


def test_unreadable_illustration_fails():
    builder = StorybookPDFBuilder(image_loader=lambda url: b"<html>not an image</html>")

    with pytest.raises(AssemblyError, match="page 1 is not a readable image"):
        builder.render(_pages(1))


def test_build_writes_file(pdf_builder, tmp_path):
    output = pdf_builder.build(_pages(2), tmp_path / "out" / "book.pdf")

    assert output.read_bytes().startswith(b"%PDF")


def test_fit_image_preserves_aspect_and_centers():
    assert StorybookPDFBuilder.fit_image(200, 100, (0, 0, 100, 100)) == (0, 25, 100, 50)
    assert StorybookPDFBuilder.fit_image(50, 100, (10, 10, 100, 100)) == (35, 10, 50, 100)


def test_image_box_stays_inside_margins(pdf_builder):
    width, height = pdf_builder.page_size
    x, y, w, h = pdf_builder.image_box(width, height)
    _, text_y, _, text_h = pdf_builder.text_box(width, height)

    assert x == pdf_builder.margin
    assert x + w == pytest.approx(width - pdf_builder.margin)
    assert y + h == pytest.approx(height - pdf_builder.margin)
    assert text_y + text_h < y


def test_short_narration_keeps_base_font(pdf_builder):
    fit = pdf_builder.fit_text("Lily smiled.", 400, 200)

    assert fit.font_size == pdf_builder.font_size
    assert not fit.truncated
    assert fit.height <= 200


def test_long_narration_shrinks_before_truncating(pdf_builder):
    sentence = "The little firefly flickered softly over the sleepy meadow. "
    medium = sentence * 3

    full = pdf_builder.fit_text(medium, 300, 10_000)
    # Room for the text at a smaller size only.
    squeezed = pdf_builder.fit_text(medium, 300, full.height * 0.8)

    assert not squeezed.truncated
    assert pdf_builder.min_font_size <= squeezed.font_size < pdf_builder.font_size


def test_overflowing_narration_is_truncated_with_ellipsis(pdf_builder):
    text = "Lily counted every star in the sky, one by one, until sleep came. " * 40

    fit = pdf_builder.fit_text(text, 300, 60)

    assert fit.truncated
    assert fit.font_size == pdf_builder.min_font_size
    assert fit.height <= 60
    assert fit.paragraph.text.endswith("…")


def test_invalid_font_path_is_reported(tmp_path):
    bogus = tmp_path / "broken.ttf"
    bogus.write_bytes(b"not a font")

    with pytest.raises(AssemblyError, match="could not be loaded"):
        StorybookPDFBuilder(font_path=bogus, image_loader=lambda url: make_image_bytes())

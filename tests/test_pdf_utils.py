"""
Signed PDF composition tests

Covers coordinate mapping, text/image rendering rules and the
compositor's skip and failure behaviour.

Run with: python -m pytest tests/test_pdf_utils.py -v
"""

import io
import logging
from unittest.mock import MagicMock, patch

import pytest
from PyPDF2 import PdfReader, PdfWriter
from reportlab.pdfgen import canvas as rl_canvas
from reportlab.pdfgen.textobject import PDFTextObject

from conftest import make_pdf
from signflow.errors import SourceDecodeError, SourceFetchError
from signflow.field_types import FieldSpec, FieldType, is_present
from signflow.pdf_utils import (
    PageOverlay,
    Rect,
    compose_signed_pdf,
    count_pages,
    decode_data_url,
    font_size_for,
    map_field,
    render_field,
)


def spec(**kwargs):
    defaults = dict(page=1, x=0.1, y=0.1, width=0.3, height=0.05, type=FieldType.TEXT, value="hello", id=1)
    defaults.update(kwargs)
    return FieldSpec(**defaults)


def static_fetch(data):
    return lambda location: data


def image_count(page):
    resources = page.get("/Resources")
    if resources is None:
        return 0
    xobjects = resources.get_object().get("/XObject")
    if xobjects is None:
        return 0
    xobjects = xobjects.get_object()
    return sum(1 for name in xobjects if xobjects[name].get_object().get("/Subtype") == "/Image")


def page_text(page):
    return page.extract_text() or ""


# =============================================================================
# Coordinate mapping
# =============================================================================

class TestMapField:

    @pytest.mark.parametrize("width,height", [(612, 792), (595.28, 841.89), (100, 50)])
    def test_maps_fraction_box_to_bottom_left_points(self, width, height):
        rect = map_field(spec(x=0.1, y=0.2, width=0.3, height=0.1), width, height)
        assert rect.x == pytest.approx(0.1 * width, abs=1e-9)
        assert rect.y == pytest.approx(height - 0.2 * height - 0.1 * height, abs=1e-9)
        assert rect.width == pytest.approx(0.3 * width, abs=1e-9)
        assert rect.height == pytest.approx(0.1 * height, abs=1e-9)

    def test_top_left_box_lands_at_page_top(self):
        rect = map_field(spec(x=0, y=0, width=0.5, height=0.25), 200, 400)
        assert rect == Rect(0, 300, 100, 100)

    def test_out_of_range_values_are_mapped_not_rejected(self):
        rect = map_field(spec(x=-0.5, y=0.9, width=1.5, height=0.3), 100, 100)
        assert rect.x == pytest.approx(-50)
        assert rect.width == pytest.approx(150)
        assert rect.y == pytest.approx(100 - 90 - 30)


class TestFontSize:

    def test_small_box_clamps_to_minimum(self):
        assert font_size_for(3 / 0.55) == 8

    def test_large_box_clamps_to_maximum(self):
        assert font_size_for(40 / 0.55) == 12

    def test_mid_box_keeps_computed_size(self):
        assert font_size_for(10 / 0.55) == pytest.approx(10)


class TestPresence:

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_values_are_absent(self, value):
        assert not is_present(value)

    @pytest.mark.parametrize("value", ["0", " ", "x"])
    def test_any_other_string_is_present(self, value):
        assert is_present(value)


def test_decode_data_url_strips_prefix():
    assert decode_data_url("data:image/png;base64,aGVsbG8=") == b"hello"
    assert decode_data_url("aGVsbG8=") == b"hello"


# =============================================================================
# Field rendering (mocked canvas)
# =============================================================================

class TestRenderField:

    def test_text_is_inset_and_vertically_centered(self):
        overlay = MagicMock()
        rect = Rect(100, 200, 150, 20)
        assert render_field(overlay, rect, spec(type=FieldType.NAME, value="Jane Doe")) is True

        c = overlay.canvas
        x, y = c.beginText.call_args[0]
        assert x == pytest.approx(102)
        assert y == pytest.approx(200 + (20 - 11) / 2)
        text_obj = c.beginText.return_value
        font_name, font_size, leading = text_obj.setFont.call_args[0]
        assert font_name == "Helvetica"
        assert font_size == pytest.approx(11)
        assert leading == pytest.approx(11 * 1.2)
        text_obj.setFillColorRGB.assert_called_once_with(0, 0, 0)
        text_obj.textLine.assert_called_once_with("Jane Doe")
        c.drawText.assert_called_once_with(text_obj)

    def test_long_text_is_wrapped_by_reportlab(self):
        overlay = MagicMock()
        rect = Rect(0, 100, 60, 20)
        render_field(overlay, rect, spec(value="a rather long sentence that will not fit"))

        text_obj = overlay.canvas.beginText.return_value
        assert text_obj.textLine.call_count > 1
        overlay.canvas.drawText.assert_called_once_with(text_obj)

    def test_image_fills_the_whole_box(self, signature_value):
        overlay = MagicMock()
        rect = Rect(10, 20, 150, 30)
        assert render_field(overlay, rect, spec(type=FieldType.SIGNATURE, value=signature_value)) is True

        args, kwargs = overlay.canvas.drawImage.call_args
        assert args[1:] == (10, 20)
        assert kwargs["width"] == 150
        assert kwargs["height"] == 30
        overlay.canvas.drawText.assert_not_called()

    @pytest.mark.parametrize("value", [
        "data:image/png;base64,not base64 at all!!",
        "data:image/png;base64,aGVsbG8=",
        "data:image/png;base64",
    ])
    def test_malformed_image_is_skipped_and_logged(self, value, caplog):
        overlay = MagicMock()
        with caplog.at_level(logging.WARNING, logger="signflow.pdf_utils"):
            result = render_field(overlay, Rect(0, 0, 10, 10), spec(id=42, type=FieldType.INITIALS, value=value))
        assert result is False
        overlay.canvas.drawImage.assert_not_called()
        assert "42" in caplog.text

    def test_draw_failure_is_contained(self):
        overlay = MagicMock()
        overlay.canvas.drawText.side_effect = ValueError("bad glyph")
        assert render_field(overlay, Rect(0, 0, 100, 20), spec(value="x")) is False

    @pytest.mark.parametrize("value", ["Zoë 漢字", "emoji \U0001F600"])
    def test_text_outside_font_encoding_is_skipped(self, value, caplog):
        overlay = MagicMock()
        with caplog.at_level(logging.WARNING, logger="signflow.pdf_utils"):
            result = render_field(overlay, Rect(0, 0, 100, 20), spec(id=7, type=FieldType.NAME, value=value))
        assert result is False
        overlay.canvas.beginText.assert_not_called()
        overlay.canvas.drawText.assert_not_called()
        assert "7" in caplog.text

    def test_accented_latin_text_is_drawn(self):
        overlay = MagicMock()
        assert render_field(overlay, Rect(0, 0, 100, 20), spec(value="Zoë Müller")) is True
        overlay.canvas.beginText.return_value.textLine.assert_called_once_with("Zoë Müller")

    def test_failure_on_a_later_line_leaves_no_partial_text(self):
        overlay = PageOverlay(612, 792)
        original_line = PDFTextObject.textLine
        calls = []

        def fail_on_second_line(self, text=""):
            calls.append(text)
            if len(calls) == 2:
                raise ValueError("cannot draw line")
            return original_line(self, text)

        with patch.object(PDFTextObject, "textLine", autospec=True, side_effect=fail_on_second_line):
            result = render_field(overlay, Rect(0, 100, 60, 20), spec(value="a rather long sentence that will not fit"))

        assert result is False
        page = PdfReader(io.BytesIO(make_pdf())).pages[0]
        overlay.merge_into(page)
        assert page_text(page).strip() == ""


# =============================================================================
# Document compositor (real PDFs)
# =============================================================================

class TestComposeSignedPdf:

    def test_end_to_end_date_field(self):
        source = make_pdf(pages=1, size=(612, 792))
        field = spec(page=1, x=0.5, y=0.1, width=0.2, height=0.05, type=FieldType.DATE, value="2024-01-01")
        original_begin = rl_canvas.Canvas.beginText
        original_font = PDFTextObject.setFont

        with patch.object(rl_canvas.Canvas, "beginText", autospec=True, side_effect=original_begin) as begin, \
                patch.object(PDFTextObject, "setFont", autospec=True, side_effect=original_font) as set_font:
            output = compose_signed_pdf("src.pdf", [field], fetch=static_fetch(source))

        box_height = 0.05 * 792
        box_y = 792 - 0.1 * 792 - box_height
        font_size = 12
        _, name, size, leading = set_font.call_args[0]
        assert (name, size) == ("Helvetica", font_size)
        _, x, y = begin.call_args[0]
        assert x == pytest.approx(308)
        assert y == pytest.approx(box_y + (box_height - font_size) / 2)

        reader = PdfReader(io.BytesIO(output))
        assert len(reader.pages) == 1
        assert "2024-01-01" in page_text(reader.pages[0])

    def test_signature_image_is_embedded(self, signature_value):
        source = make_pdf(pages=2)
        field = spec(page=2, type=FieldType.SIGNATURE, value=signature_value)
        output = compose_signed_pdf("src.pdf", [field], fetch=static_fetch(source))

        reader = PdfReader(io.BytesIO(output))
        assert image_count(reader.pages[0]) == 0
        assert image_count(reader.pages[1]) == 1

    def test_empty_values_leave_no_mark(self, caplog):
        source = make_pdf(pages=1)
        fields = [
            spec(id=1, type=FieldType.TEXT, value=None),
            spec(id=2, type=FieldType.TEXT, value=""),
            spec(id=3, type=FieldType.SIGNATURE, value=None),
            spec(id=4, type=FieldType.INITIALS, value=""),
        ]
        with caplog.at_level(logging.WARNING):
            output = compose_signed_pdf("src.pdf", fields, fetch=static_fetch(source))

        page = PdfReader(io.BytesIO(output)).pages[0]
        assert page_text(page).strip() == ""
        assert image_count(page) == 0
        assert not [r for r in caplog.records if r.name.startswith("signflow") and r.levelno >= logging.WARNING]

    def test_zero_text_value_is_rendered(self):
        source = make_pdf(pages=1)
        output = compose_signed_pdf("src.pdf", [spec(value="0")], fetch=static_fetch(source))
        assert "0" in page_text(PdfReader(io.BytesIO(output)).pages[0])

    def test_out_of_range_page_is_skipped(self):
        source = make_pdf(pages=3)
        fields = [
            spec(id=1, page=99, value="lost field"),
            spec(id=2, page=0, value="also lost"),
            spec(id=3, page=2, value="kept field"),
        ]
        output = compose_signed_pdf("src.pdf", fields, fetch=static_fetch(source))

        reader = PdfReader(io.BytesIO(output))
        assert len(reader.pages) == 3
        text = "".join(page_text(p) for p in reader.pages)
        assert "kept field" in page_text(reader.pages[1])
        assert "lost" not in text

    def test_malformed_image_does_not_block_following_field(self):
        source = make_pdf(pages=1)
        fields = [
            spec(id=1, type=FieldType.SIGNATURE, value="data:image/png;base64,Zm9vYmFy"),
            spec(id=2, y=0.5, type=FieldType.NAME, value="Jane Doe"),
        ]
        output = compose_signed_pdf("src.pdf", fields, fetch=static_fetch(source))

        page = PdfReader(io.BytesIO(output)).pages[0]
        assert image_count(page) == 0
        assert "Jane Doe" in page_text(page)

    def test_identical_inputs_give_identical_pages(self, signature_value):
        source = make_pdf(pages=2)
        fields = [
            spec(id=1, page=1, type=FieldType.SIGNATURE, value=signature_value),
            spec(id=2, page=1, y=0.4, type=FieldType.NAME, value="Jane Doe"),
            spec(id=3, page=2, type=FieldType.DATE, value="2024-01-01"),
        ]
        first = PdfReader(io.BytesIO(compose_signed_pdf("src.pdf", fields, fetch=static_fetch(source))))
        second = PdfReader(io.BytesIO(compose_signed_pdf("src.pdf", fields, fetch=static_fetch(source))))

        assert len(first.pages) == len(second.pages) == 2
        for a, b in zip(first.pages, second.pages):
            assert page_text(a) == page_text(b)
            assert image_count(a) == image_count(b)
            assert a.get_contents().get_data() == b.get_contents().get_data()

    def test_fetch_failure_is_fatal(self):
        def failing_fetch(location):
            raise SourceFetchError("boom", location=location, status_code=500)

        with pytest.raises(SourceFetchError) as exc:
            compose_signed_pdf("https://example.com/doc.pdf", [spec()], fetch=failing_fetch)
        assert exc.value.status_code == 500

    def test_garbage_source_is_a_decode_error(self):
        with pytest.raises(SourceDecodeError):
            compose_signed_pdf("src.pdf", [spec()], fetch=static_fetch(b"this is not a pdf"))

    @pytest.mark.parametrize("algorithm", [None, "AES-128"])
    def test_owner_only_encrypted_source_is_opened(self, algorithm):
        reader = PdfReader(io.BytesIO(make_pdf(pages=1)))
        writer = PdfWriter()
        for page in reader.pages:
            writer.add_page(page)
        if algorithm:
            writer.encrypt(user_password="", owner_password="owner-only", algorithm=algorithm)
        else:
            writer.encrypt(user_password="", owner_password="owner-only")
        encrypted = io.BytesIO()
        writer.write(encrypted)

        output = compose_signed_pdf("src.pdf", [spec(value="Approved")], fetch=static_fetch(encrypted.getvalue()))
        assert "Approved" in page_text(PdfReader(io.BytesIO(output)).pages[0])

    def test_unencodable_text_does_not_block_following_field(self, caplog):
        source = make_pdf(pages=1)
        fields = [
            spec(id=1, type=FieldType.NAME, value="Zoë 漢字"),
            spec(id=2, y=0.5, type=FieldType.NAME, value="Jane Doe"),
        ]
        with caplog.at_level(logging.WARNING, logger="signflow.pdf_utils"):
            output = compose_signed_pdf("src.pdf", fields, fetch=static_fetch(source))

        text = page_text(PdfReader(io.BytesIO(output)).pages[0])
        assert "Jane Doe" in text
        assert "Zo" not in text
        assert "Champ 1" in caplog.text


def test_count_pages():
    assert count_pages(make_pdf(pages=4)) == 4
    with pytest.raises(SourceDecodeError):
        count_pages(b"%PDF-nope")

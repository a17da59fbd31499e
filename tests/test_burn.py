"""Tests for burning signature images into PDFs."""

import io
import logging

import pytest
from pypdf import PdfReader, PdfWriter
from pypdf.generic import RectangleObject

from utilsign.burn import PdfBurnError, burn_signatures, page_sizes
from utilsign.models import BurnInput, BurnStatus, PlaceholderGeometry


def _input(payload: str, page: int = 1, x=10, y=10, w=20, h=10) -> BurnInput:
    return BurnInput(
        placeholder=PlaceholderGeometry(
            page_number=page, x_percent=x, y_percent=y, width_percent=w, height_percent=h
        ),
        image_base64=payload,
    )


class TestBurnSignatures:
    """Placement, skipping and output integrity."""

    def test_image_lands_at_mapped_box(self, sample_pdf, png_payload, placements):
        result = burn_signatures(sample_pdf, [_input(png_payload)])

        assert result.report.burned_count == 1
        drawn = placements(result.pdf_bytes)
        assert len(drawn) == 1
        assert drawn[0] == pytest.approx((20, 160, 40, 20), abs=0.01)

    def test_jpeg_is_burned(self, sample_pdf, jpeg_payload, placements):
        result = burn_signatures(sample_pdf, [_input(jpeg_payload, x=0, y=90, w=50, h=10)])
        assert placements(result.pdf_bytes) == [pytest.approx((0, 0, 100, 20), abs=0.01)]

    def test_input_bytes_untouched(self, sample_pdf, png_payload):
        before = bytes(sample_pdf)
        result = burn_signatures(sample_pdf, [_input(png_payload)])
        assert sample_pdf == before
        assert result.pdf_bytes != sample_pdf

    def test_page_count_and_sizes_preserved(self, two_page_pdf, png_payload):
        result = burn_signatures(two_page_pdf, [_input(png_payload, page=2)])
        assert page_sizes(result.pdf_bytes) == page_sizes(two_page_pdf)

    def test_targets_the_right_page(self, two_page_pdf, png_payload, placements):
        result = burn_signatures(two_page_pdf, [_input(png_payload, page=2)])
        assert placements(result.pdf_bytes, page_index=0) == []
        assert len(placements(result.pdf_bytes, page_index=1)) == 1

    def test_out_of_range_page_is_skipped(self, sample_pdf, png_payload, placements, caplog):
        with caplog.at_level(logging.WARNING, logger="utilsign.burn"):
            result = burn_signatures(
                sample_pdf, [_input(png_payload, page=5), _input(png_payload)]
            )
        statuses = [o.status for o in result.report.outcomes]
        assert statuses == [BurnStatus.SKIPPED, BurnStatus.BURNED]
        assert "page 5" in result.report.skipped[0].reason
        assert len(placements(result.pdf_bytes)) == 1
        warnings = [r for r in caplog.records if r.name == "utilsign.burn"]
        assert [r.levelno for r in warnings] == [logging.WARNING]
        assert "page 5" in warnings[0].getMessage()

    def test_page_zero_is_skipped(self, sample_pdf, png_payload):
        result = burn_signatures(sample_pdf, [_input(png_payload, page=0)])
        assert result.report.burned_count == 0
        assert len(PdfReader(io.BytesIO(result.pdf_bytes)).pages) == 1

    def test_undecodable_image_is_skipped(self, sample_pdf, png_payload, placements):
        result = burn_signatures(
            sample_pdf,
            [_input("data:image/png;base64,bm90IGFuIGltYWdl"), _input(png_payload)],
        )
        assert result.report.skipped[0].index == 0
        assert result.report.burned_count == 1
        assert len(placements(result.pdf_bytes)) == 1

    def test_oversized_image_is_skipped(
        self, sample_pdf, png_payload, oversized_png_payload, placements, caplog
    ):
        with caplog.at_level(logging.WARNING, logger="utilsign.burn"):
            result = burn_signatures(
                sample_pdf, [_input(oversized_png_payload), _input(png_payload)]
            )
        statuses = [o.status for o in result.report.outcomes]
        assert statuses == [BurnStatus.SKIPPED, BurnStatus.BURNED]
        assert len(placements(result.pdf_bytes)) == 1
        assert any(
            r.name == "utilsign.burn" and r.levelno == logging.WARNING for r in caplog.records
        )

    def test_no_inputs_returns_equivalent_pdf(self, sample_pdf):
        result = burn_signatures(sample_pdf, [])
        assert result.report.outcomes == []
        assert page_sizes(result.pdf_bytes) == page_sizes(sample_pdf)

    def test_many_stamps_on_one_page(self, sample_pdf, png_payload, placements):
        inputs = [_input(png_payload, x=10 * i, y=5 * i, w=10, h=5) for i in range(4)]
        result = burn_signatures(sample_pdf, inputs)
        assert len(placements(result.pdf_bytes)) == 4

    def test_mediabox_origin_offset(self, sample_pdf, png_payload, placements):
        writer = PdfWriter(clone_from=PdfReader(io.BytesIO(sample_pdf)))
        writer.pages[0].mediabox = RectangleObject([50, 100, 250, 300])
        buf = io.BytesIO()
        writer.write(buf)

        result = burn_signatures(buf.getvalue(), [_input(png_payload)])
        assert placements(result.pdf_bytes)[0] == pytest.approx((70, 260, 40, 20), abs=0.01)

    def test_garbage_pdf_raises(self, png_payload):
        with pytest.raises(PdfBurnError):
            burn_signatures(b"not a pdf", [_input(png_payload)])


class TestPageSizes:

    def test_reads_mediabox(self, sample_pdf):
        assert page_sizes(sample_pdf) == [(200.0, 200.0)]

    def test_garbage(self):
        with pytest.raises(PdfBurnError):
            page_sizes(b"%PDF-garbage")

"""Stamp signature images onto PDF pages.

Each page that receives signatures gets a one-page reportlab overlay with
the images drawn at their mapped boxes; the overlay is then merged onto a
clone of the source document with pypdf and the whole thing serialized to
fresh bytes. The input buffer is never touched.

A bad entry never aborts the burn: a page reference outside the document
or an image that will not decode is logged, recorded as skipped in the
:class:`~utilsign.models.BurnReport`, and the remaining entries go on.
"""

import io
import logging
from typing import NamedTuple, Sequence

from pypdf import PageObject, PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from reportlab.pdfgen import canvas

from .coordinates import PlacementBox, map_placeholder
from .images import EmbeddedImage, ImageDecodeError, ImageEmbedder
from .models import BurnInput, BurnOutcome, BurnReport, BurnStatus

logger = logging.getLogger("utilsign.burn")


class PdfBurnError(RuntimeError):
    """The PDF itself could not be read or written."""


class BurnResult(NamedTuple):
    pdf_bytes: bytes
    report: BurnReport


class PageSize(NamedTuple):
    width: float
    height: float


def page_sizes(pdf_bytes: bytes) -> list[PageSize]:
    """Return the MediaBox size of every page.

    Raises:
        PdfBurnError: If the bytes are not a readable PDF.
    """
    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        return [
            PageSize(float(p.mediabox.width), float(p.mediabox.height))
            for p in reader.pages
        ]
    except (PyPdfError, OSError, ValueError) as exc:
        raise PdfBurnError(f"Cannot read PDF: {exc}") from exc


def _render_overlay(
    page: PageObject,
    stamps: list[tuple[EmbeddedImage, PlacementBox]],
    embedder: ImageEmbedder,
) -> PageObject:
    """Draw ``stamps`` onto a transparent page the size of ``page``."""
    box = page.mediabox
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=(float(box.right), float(box.top)), invariant=1)
    for handle, placement in stamps:
        if not embedder.owns(handle):
            raise ValueError("Image handle belongs to a different document")
        c.drawImage(
            handle.reader,
            placement.x,
            placement.y,
            width=placement.width,
            height=placement.height,
            mask="auto",
        )
    c.save()
    buf.seek(0)
    return PdfReader(buf).pages[0]


def burn_signatures(pdf_bytes: bytes, inputs: Sequence[BurnInput]) -> BurnResult:
    """Burn signature images into a PDF.

    Args:
        pdf_bytes: Source PDF.
        inputs: Geometry + image pairs, processed in order.

    Returns:
        New PDF bytes and a report with one outcome per input.

    Raises:
        PdfBurnError: If the source cannot be parsed or the result cannot
            be serialized.
    """
    try:
        writer = PdfWriter(clone_from=PdfReader(io.BytesIO(pdf_bytes)))
    except (PyPdfError, OSError, ValueError) as exc:
        raise PdfBurnError(f"Cannot read PDF: {exc}") from exc

    page_count = len(writer.pages)
    embedder = ImageEmbedder()
    report = BurnReport()
    stamps_by_page: dict[int, list[tuple[EmbeddedImage, PlacementBox]]] = {}

    for index, item in enumerate(inputs):
        page_number = item.placeholder.page_number
        page_idx = page_number - 1

        if page_idx < 0 or page_idx >= page_count:
            logger.warning(
                "Skipping signature %d: page %d not in document (%d pages)",
                index, page_number, page_count,
            )
            report.outcomes.append(
                BurnOutcome(
                    index=index,
                    page_number=page_number,
                    status=BurnStatus.SKIPPED,
                    reason=f"page {page_number} out of range",
                )
            )
            continue

        try:
            handle = embedder.embed(item.image_base64)
        except ImageDecodeError as exc:
            logger.warning("Skipping signature %d on page %d: %s", index, page_number, exc)
            report.outcomes.append(
                BurnOutcome(
                    index=index,
                    page_number=page_number,
                    status=BurnStatus.SKIPPED,
                    reason=str(exc),
                )
            )
            continue

        box = writer.pages[page_idx].mediabox
        placement = map_placeholder(
            item.placeholder, float(box.width), float(box.height)
        ).offset(float(box.left), float(box.bottom))
        stamps_by_page.setdefault(page_idx, []).append((handle, placement))
        report.outcomes.append(
            BurnOutcome(index=index, page_number=page_number, status=BurnStatus.BURNED)
        )

    try:
        for page_idx, stamps in stamps_by_page.items():
            page = writer.pages[page_idx]
            page.merge_page(_render_overlay(page, stamps, embedder))

        out = io.BytesIO()
        writer.write(out)
    except (PyPdfError, OSError) as exc:
        raise PdfBurnError(f"Cannot write PDF: {exc}") from exc

    logger.info(
        "Burned %d of %d signature(s) into %d page(s)",
        report.burned_count, len(report.outcomes), len(stamps_by_page),
    )
    return BurnResult(out.getvalue(), report)

"""Shared fixtures for UtilSign tests."""

import base64
import io
import struct
import zlib

import pytest
from PIL import Image
from pypdf import PdfReader
from reportlab.pdfgen import canvas

from utilsign.engine import CompletionEngine
from utilsign.models import Caller
from utilsign.notify import Notifier


def _make_pdf(pages: int = 1, size: tuple[float, float] = (200, 200)) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=size, invariant=1)
    for n in range(pages):
        c.drawString(10, 10, f"Page {n + 1}")
        c.showPage()
    c.save()
    return buf.getvalue()


def _image_payload(fmt: str, mime: str, mode: str = "RGB") -> str:
    color = (200, 0, 0, 255) if mode == "RGBA" else (200, 0, 0)
    img = Image.new(mode, (40, 20), color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return f"data:{mime};base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def _multiply(m, n):
    a, b, c, d, e, f = m
    A, B, C, D, E, F = n
    return [
        a * A + b * C,
        a * B + b * D,
        c * A + d * C,
        c * B + d * D,
        e * A + f * C + E,
        e * B + f * D + F,
    ]


def image_placements(pdf_bytes: bytes, page_index: int = 0) -> list[tuple[float, float, float, float]]:
    """``(x, y, width, height)`` of every XObject drawn on a page.

    Walks the content stream tracking the current transformation matrix,
    so the values are in page space whatever nesting the merge produced.
    """
    page = PdfReader(io.BytesIO(pdf_bytes)).pages[page_index]
    contents = page.get_contents()
    if contents is None:
        return []
    ctm = [1.0, 0.0, 0.0, 1.0, 0.0, 0.0]
    stack = []
    found = []
    for operands, operator in contents.operations:
        if operator == b"q":
            stack.append(list(ctm))
        elif operator == b"Q":
            ctm = stack.pop()
        elif operator == b"cm":
            ctm = _multiply([float(v) for v in operands], ctm)
        elif operator == b"Do":
            found.append((ctm[4], ctm[5], ctm[0], ctm[3]))
    return found


class RecordingMailer:
    """Collects outgoing mail instead of sending it."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail_for: set[str] = set()

    def send(self, to: str, subject: str, body: str) -> None:
        if to in self.fail_for:
            raise ConnectionError(f"relay refused {to}")
        self.sent.append((to, subject, body))

    def to(self, address: str) -> list[tuple[str, str, str]]:
        return [m for m in self.sent if m[0] == address]


@pytest.fixture
def sample_pdf() -> bytes:
    """One 200 x 200 pt page."""
    return _make_pdf()


@pytest.fixture
def two_page_pdf() -> bytes:
    return _make_pdf(pages=2)


@pytest.fixture
def png_payload() -> str:
    """A 40 x 20 red PNG as a data URL."""
    return _image_payload("PNG", "image/png", mode="RGBA")


@pytest.fixture
def jpeg_payload() -> str:
    return _image_payload("JPEG", "image/jpeg")


@pytest.fixture
def oversized_png_payload() -> str:
    """A 1 x 1 PNG whose header claims 60000 x 60000 pixels."""
    buf = io.BytesIO()
    Image.new("RGB", (1, 1)).save(buf, format="PNG")
    raw = bytearray(buf.getvalue())
    # Signature (8) + chunk length (4) + b"IHDR" (4), then width and height.
    raw[16:24] = struct.pack(">II", 60000, 60000)
    raw[29:33] = struct.pack(">I", zlib.crc32(bytes(raw[12:29])))
    return "data:image/png;base64," + base64.b64encode(bytes(raw)).decode("ascii")


@pytest.fixture
def placements():
    return image_placements


@pytest.fixture
def tmp_store(tmp_path):
    """Create a temporary RecordStore."""
    from utilsign.store import RecordStore

    return RecordStore(base_dir=tmp_path)


@pytest.fixture
def tmp_storage(tmp_path):
    from utilsign.store import ObjectStorage

    return ObjectStorage(base_dir=tmp_path)


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def engine(tmp_store, tmp_storage, mailer) -> CompletionEngine:
    return CompletionEngine(
        tmp_store,
        tmp_storage,
        notifier=Notifier(mailer, "https://sign.test"),
        lock_timeout=0.2,
    )


@pytest.fixture
def owner() -> Caller:
    return Caller(user_id="user-1", email="owner@example.com")


@pytest.fixture
def stranger() -> Caller:
    return Caller(user_id="user-2", email="stranger@example.com")


def placeholder_spec(email: str, page: int = 1, **geometry) -> dict:
    spec = {
        "pageNumber": page,
        "xPercent": 10,
        "yPercent": 10,
        "widthPercent": 20,
        "heightPercent": 10,
        "assignedSignerEmail": email,
    }
    spec.update(geometry)
    return spec


@pytest.fixture
def spec():
    """Factory for editor-style placeholder dicts."""
    return placeholder_spec

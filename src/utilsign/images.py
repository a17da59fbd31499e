"""Signature image decoding.

Signature pads hand us base64 text, usually as a data URL
(``data:image/png;base64,...``), occasionally bare. We decode with Pillow
and wrap the result in a reportlab ``ImageReader`` that the burn engine can
draw. Handles come from an :class:`ImageEmbedder` created for one burn and
cannot be drawn by another one.
"""

import base64
import binascii
import io
from typing import Optional
from uuid import uuid4

from PIL import Image, UnidentifiedImageError
from reportlab.lib.utils import ImageReader

PNG = "PNG"
JPEG = "JPEG"

# Everything Pillow raises on truncated, oversized or otherwise hostile input.
# DecompressionBombError subclasses plain Exception, not OSError.
_PILLOW_DECODE_ERRORS = (
    UnidentifiedImageError,
    Image.DecompressionBombError,
    OSError,
    SyntaxError,
    ValueError,
    EOFError,
    MemoryError,
)


class ImageDecodeError(ValueError):
    """The payload is not a decodable PNG or JPEG image."""


def declared_format(payload: str) -> Optional[str]:
    """Return the image format a data URL header declares, if any."""
    if not payload.startswith("data:") or "," not in payload:
        return None
    header = payload.split(",", 1)[0].lower()
    if "image/png" in header:
        return PNG
    if "image/jpeg" in header or "image/jpg" in header:
        return JPEG
    return None


def _strip_header(payload: str) -> str:
    if payload.startswith("data:") and "," in payload:
        return payload.split(",", 1)[1]
    return payload


def decode_signature_image(payload: str) -> Image.Image:
    """Decode a base64 signature payload into a Pillow image.

    A declared PNG or JPEG must decode as that format; anything else is
    decoded as PNG.

    Args:
        payload: Base64 text, optionally prefixed with a data URL header.

    Returns:
        The decoded image, converted to RGB or RGBA.

    Raises:
        ImageDecodeError: If the payload is not valid base64 or not an
            image of the expected format.
    """
    expected = declared_format(payload) or PNG
    body = "".join(_strip_header(payload).split())
    try:
        raw = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageDecodeError(f"invalid base64 payload: {exc}") from exc
    if not raw:
        raise ImageDecodeError("empty image payload")

    try:
        image = Image.open(io.BytesIO(raw))
        image.load()
    except _PILLOW_DECODE_ERRORS as exc:
        raise ImageDecodeError(f"cannot decode {expected} image: {exc}") from exc

    if image.format != expected:
        raise ImageDecodeError(
            f"expected {expected} image, got {image.format or 'unknown'}"
        )

    if image.mode not in ("RGB", "RGBA"):
        has_alpha = "A" in image.getbands() or "transparency" in image.info
        try:
            image = image.convert("RGBA" if has_alpha else "RGB")
        except _PILLOW_DECODE_ERRORS as exc:
            raise ImageDecodeError(f"cannot convert {expected} image: {exc}") from exc
    return image


class EmbeddedImage:
    """A decoded signature image bound to the embedder that created it."""

    def __init__(self, reader: ImageReader, size: tuple[int, int], owner: str) -> None:
        self.reader = reader
        self.size = size
        self._owner = owner


class ImageEmbedder:
    """Creates drawable image handles for a single output document."""

    def __init__(self) -> None:
        self._token = str(uuid4())

    def embed(self, payload: str) -> EmbeddedImage:
        """Decode ``payload`` into a handle usable with this embedder only.

        Raises:
            ImageDecodeError: See :func:`decode_signature_image`.
        """
        image = decode_signature_image(payload)
        return EmbeddedImage(ImageReader(image), image.size, self._token)

    def owns(self, handle: EmbeddedImage) -> bool:
        return handle._owner == self._token

"""Placeholder geometry to PDF point conversion.

The editor measures fields from the page's top-left corner with Y growing
downwards, as percentages of the page size. PDF user space has its origin
at the bottom-left with Y growing upwards, and images are anchored at their
own bottom-left corner. So besides scaling we flip the Y axis and subtract
the box height::

    x      = (x% / 100) * W
    width  = (w% / 100) * W
    height = (h% / 100) * H
    y      = H - (y% / 100) * H - height

Worked example, A4 portrait (595 x 842 pt), field at 10/70/30/8 %::

    x      = 59.5
    width  = 178.5
    height = 67.36
    y      = 842 - 589.4 - 67.36 = 185.24
"""

from typing import NamedTuple

from .models import PlaceholderGeometry


class PlacementBox(NamedTuple):
    """Absolute placement in PDF points, bottom-left origin."""

    x: float
    y: float
    width: float
    height: float

    def offset(self, dx: float, dy: float) -> "PlacementBox":
        """Shift the box, e.g. onto a MediaBox that does not start at 0,0."""
        return PlacementBox(self.x + dx, self.y + dy, self.width, self.height)


def percent_to_absolute(
    x_percent: float,
    y_percent: float,
    width_percent: float,
    height_percent: float,
    page_width: float,
    page_height: float,
) -> PlacementBox:
    """Convert a top-left percentage box to bottom-left PDF points.

    Args:
        x_percent: Left edge, percent of page width.
        y_percent: Top edge, percent of page height, measured from the top.
        width_percent: Box width, percent of page width.
        height_percent: Box height, percent of page height.
        page_width: Page width in points.
        page_height: Page height in points.

    Returns:
        The box with ``(x, y)`` at its bottom-left corner.
    """
    x = (x_percent / 100) * page_width
    width = (width_percent / 100) * page_width
    height = (height_percent / 100) * page_height
    y = page_height - (y_percent / 100) * page_height - height
    return PlacementBox(x, y, width, height)


def map_placeholder(
    geometry: PlaceholderGeometry, page_width: float, page_height: float
) -> PlacementBox:
    """:func:`percent_to_absolute` for a stored placeholder."""
    return percent_to_absolute(
        geometry.x_percent,
        geometry.y_percent,
        geometry.width_percent,
        geometry.height_percent,
        page_width,
        page_height,
    )

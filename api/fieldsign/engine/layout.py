"""Coordinate transforms for field placements.

Fields are authored in a design space matching a 595x842 point page with
the origin at the top-left. PDF pages put the origin at the bottom-left, so
painting only needs a vertical flip; the editor canvas needs a scale.
"""
import math
from typing import NamedTuple

REFERENCE_PAGE_WIDTH = 595.0
REFERENCE_PAGE_HEIGHT = 842.0
MIN_CANVAS_SIZE = 20


class Rect(NamedTuple):
    x: float
    y: float
    width: float
    height: float


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _round2(value) -> float:
    return _round_half_up(float(value) * 100) / 100


def to_page_space(field, page_width: float, page_height: float) -> Rect:
    """Paint-time placement of ``field`` on a page of the given size.

    No scaling is applied; coordinates are rounded to 2 decimals so that
    adjacent fills and strokes do not leave hairline seams.
    """
    x = float(field.x)
    y = float(page_height) - float(field.y) - float(field.height)
    return Rect(_round2(x), _round2(y), _round2(field.width), _round2(field.height))


def to_canvas_space(field, canvas_width: float, canvas_height: float) -> Rect:
    """Placement of ``field`` on an on-screen canvas (origin top-left)."""
    scale_x = canvas_width / REFERENCE_PAGE_WIDTH
    scale_y = canvas_height / REFERENCE_PAGE_HEIGHT
    return Rect(
        _round_half_up(float(field.x) * scale_x),
        _round_half_up(float(field.y) * scale_y),
        max(MIN_CANVAS_SIZE, _round_half_up(float(field.width) * scale_x)),
        max(MIN_CANVAS_SIZE, _round_half_up(float(field.height) * scale_y)),
    )

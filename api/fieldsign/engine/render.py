"""Paint resolved fields onto page surfaces.

``FieldRenderer`` turns one field plus its page-space rectangle into calls
on a ``PaintSurface``. ``resolve_and_render_fields`` is the whole job for a
document: resolve formulas and visibility, check every placement against
the document's pages, then paint each field that should be shown.
"""
import logging
import math
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

from ..errors import PageOutOfRangeError
from ..utils import decode_data_uri
from .coerce import parse_float_prefix
from .dates import US_PATTERN, format_date, parse_date
from .layout import Rect, to_page_space
from .paint import BLACK, GRAY, Color, PaintSurface, parse_hex_color, resolve_font
from .pipeline import ResolvedField, resolve_fields, should_render
from .types import CHECKED_VALUES, FieldType

logger = logging.getLogger(__name__)

PADDING = 4
DEFAULT_FONT_SIZE = 12
LABEL_FONT_SIZE = 10
ELLIPSIS = "..."
BACKGROUND_OPACITY = 0.3
BORDER_OPACITY = 0.8
CHECKBOX_BORDER = 1.5
CHECKMARK_WIDTH = 2
RADIO_MAX_RADIUS = 8

_ARITHMETIC = set("+-*/")
_IMAGE_MAGIC = {
    "png": b"\x89PNG",
    "jpeg": b"\xff\xd8",
}


def truncate_to_width(text: str, max_width: float, measure: Callable[[str], float]) -> str:
    """Shorten ``text`` with a trailing ellipsis until it fits ``max_width``."""
    if measure(text) <= max_width:
        return text
    kept = text
    while kept:
        kept = kept[:-1]
        candidate = kept + ELLIPSIS
        if measure(candidate) <= max_width:
            return candidate
    return ELLIPSIS if measure(ELLIPSIS) <= max_width else ""


def format_usd(value: Optional[str]) -> str:
    amount = parse_float_prefix(value)
    if math.isnan(amount) or math.isinf(amount):
        return "$0.00"
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_formula_value(value: str, rule: Optional[str]) -> str:
    number = parse_float_prefix(value)
    if math.isnan(number) or math.isinf(number):
        return value
    if _ARITHMETIC.intersection(rule or ""):
        return f"{number:.2f}"
    if number == int(number):
        return str(int(number))
    return value


def image_format(mime: str) -> str:
    return "jpeg" if mime.lower() in ("image/jpeg", "image/jpg") else "png"


def _color(value: Optional[str], default: Optional[Color]) -> Optional[Color]:
    if not value:
        return default
    try:
        return parse_hex_color(value)
    except ValueError:
        logger.debug("Invalid color %r, using gray", value)
        return GRAY


class FieldRenderer:
    """Per-type painting of resolved fields on one surface."""

    def __init__(self, surface: PaintSurface):
        self.surface = surface
        self._painters = {
            FieldType.SIGNATURE.value: self._paint_image,
            FieldType.INITIAL.value: self._paint_image,
            FieldType.CHECKBOX.value: self._paint_checkbox,
            FieldType.TEXT.value: self._paint_text,
            FieldType.EMAIL.value: self._paint_text,
            FieldType.PHONE.value: self._paint_text,
            FieldType.NUMBER.value: self._paint_text,
            FieldType.DATE.value: self._paint_date,
            FieldType.DROPDOWN.value: self._paint_text,
            FieldType.RADIO.value: self._paint_radio,
            FieldType.FORMULA.value: self._paint_formula,
            FieldType.PAYMENT.value: self._paint_payment,
        }

    def render(self, field: ResolvedField, rect: Rect) -> None:
        self._paint_box(field, rect)
        painter = self._painters.get(field.type, self._paint_text)
        painter(field, rect)

    def _paint_box(self, field, rect):
        fill = _color(field.background_color, None)
        if fill is not None:
            self.surface.draw_rect(*rect, fill=fill, opacity=BACKGROUND_OPACITY)
        stroke = _color(field.border_color, None)
        if stroke is not None:
            self.surface.draw_rect(*rect, stroke=stroke, line_width=1, opacity=BORDER_OPACITY)

    def draw_text(self, field, rect, text: str) -> Optional[str]:
        """Draw ``text`` left-aligned and vertically centered, truncated to fit.

        Returns the text actually drawn.
        """
        font = resolve_font(field.font_family)
        size = field.font_size or DEFAULT_FONT_SIZE
        color = _color(field.text_color or field.color, BLACK)
        fitted = truncate_to_width(
            text, rect.width - 2 * PADDING,
            lambda s: self.surface.measure_text_width(s, font, size),
        )
        if not fitted:
            return None
        ascent = self.surface.font_ascent(font, size)
        baseline = rect.y + (rect.height - ascent) / 2
        self.surface.draw_text(fitted, rect.x + PADDING, baseline, font=font, size=size, color=color)
        return fitted

    def _paint_text(self, field, rect):
        self.draw_text(field, rect, field.value or "")

    def _paint_date(self, field, rect):
        parsed = parse_date(field.value)
        text = format_date(parsed, US_PATTERN) if parsed is not None else (field.value or "")
        self.draw_text(field, rect, text)

    def _paint_formula(self, field, rect):
        self.draw_text(field, rect, format_formula_value(field.value or "", field.validation_rule))

    def _paint_payment(self, field, rect):
        self.draw_text(field, rect, format_usd(field.value))

    def _paint_radio(self, field, rect):
        self.draw_text(field, rect, field.value or "")
        if field.value not in field.option_list:
            return
        radius = min(RADIO_MAX_RADIUS, rect.height * 0.2)
        cx = rect.x + rect.width - radius * 2
        cy = rect.y + rect.height / 2
        color = _color(field.text_color or field.color, BLACK)
        self.surface.draw_circle(cx, cy, radius, stroke=color, line_width=1)
        self.surface.draw_circle(cx, cy, radius * 0.6, fill=color)

    def _paint_checkbox(self, field, rect):
        side = min(rect.width, rect.height)
        left = rect.x + (rect.width - side) / 2
        bottom = rect.y + (rect.height - side) / 2
        color = _color(field.text_color or field.color, BLACK)
        self.surface.draw_rect(left, bottom, side, side, stroke=color, line_width=CHECKBOX_BORDER)
        if (field.value or "") not in CHECKED_VALUES:
            return
        start = (left + side * 0.2, bottom + side * 0.5)
        corner = (left + side * 0.4, bottom + side * 0.3)
        end = (left + side * 0.8, bottom + side * 0.7)
        self.surface.draw_line(*start, *corner, color=color, line_width=CHECKMARK_WIDTH)
        self.surface.draw_line(*corner, *end, color=color, line_width=CHECKMARK_WIDTH)

    def _paint_image(self, field, rect):
        try:
            data, mime = decode_data_uri(field.value or "")
            fmt = image_format(mime)
            if not data.startswith(_IMAGE_MAGIC[fmt]):
                raise ValueError(f"payload is not a {fmt} image")
            img_w, img_h = self.surface.image_size(data)
            scale = min(rect.width / img_w, rect.height / img_h)
            w, h = img_w * scale, img_h * scale
            self.surface.draw_image(
                data,
                rect.x + (rect.width - w) / 2,
                rect.y + (rect.height - h) / 2,
                w, h,
            )
        except Exception as exc:
            logger.warning("Could not draw %s image for field %s: %s", field.type, field.id, exc)
            label = "Initial" if field.type == FieldType.INITIAL.value else "Signature"
            self.surface.draw_text(
                label, rect.x + PADDING, rect.y + rect.height / 2 - 5,
                font=resolve_font(None), size=LABEL_FONT_SIZE, color=GRAY,
            )


def check_pages(fields: Sequence, page_dimensions: Mapping[int, Tuple[float, float]]) -> None:
    for field in fields:
        if field.page_number not in page_dimensions:
            raise PageOutOfRangeError(field.id, field.page_number, len(page_dimensions))


def resolve_and_render_fields(
    fields: Sequence,
    page_dimensions: Mapping[int, Tuple[float, float]],
    surface_for_page: Callable[[int], PaintSurface],
) -> Dict[int, int]:
    """Resolve ``fields`` and paint every renderable one on its page.

    ``page_dimensions`` maps 1-based page numbers to ``(width, height)``;
    ``surface_for_page`` returns the surface to paint a page on and is only
    called for pages that receive at least one field. A field on a missing
    page fails the whole call before anything is painted. Returns the
    number of fields painted per page.
    """
    resolved = resolve_fields(fields)
    check_pages(resolved, page_dimensions)

    renderers: Dict[int, FieldRenderer] = {}
    painted: Dict[int, int] = {}
    for field in resolved:
        if not should_render(field):
            continue
        page = field.page_number
        width, height = page_dimensions[page]
        rect = to_page_space(field, width, height)
        if page not in renderers:
            renderers[page] = FieldRenderer(surface_for_page(page))
        try:
            renderers[page].render(field, rect)
        except Exception:
            logger.exception("Failed to render field %s on page %s", field.id, page)
            continue
        painted[page] = painted.get(page, 0) + 1
    return painted

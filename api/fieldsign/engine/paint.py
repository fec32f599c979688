from io import BytesIO
from typing import Optional, Protocol, Tuple

from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

Color = Tuple[float, float, float]

BLACK: Color = (0.0, 0.0, 0.0)
GRAY: Color = (0.5, 0.5, 0.5)

DEFAULT_FONT = "Helvetica"
_FONT_FAMILIES = {
    "times": "Times-Roman",
    "serif": "Times-Roman",
    "courier": "Courier",
    "mono": "Courier",
    "helvetica": "Helvetica",
    "sans": "Helvetica",
}


def resolve_font(family: Optional[str]) -> str:
    """Map a field's font family onto one of the standard PDF fonts."""
    key = (family or "").strip().lower()
    for prefix, font in _FONT_FAMILIES.items():
        if key.startswith(prefix):
            return font
    return DEFAULT_FONT


def parse_hex_color(value: str) -> Color:
    hex_value = value.strip().lstrip("#")
    if len(hex_value) == 3:
        hex_value = "".join(ch * 2 for ch in hex_value)
    if len(hex_value) != 6:
        raise ValueError(f"not a hex color: {value!r}")
    return tuple(int(hex_value[i:i + 2], 16) / 255 for i in (0, 2, 4))


class PaintSurface(Protocol):
    """What the field renderer needs from a page it paints on."""

    def draw_rect(self, x: float, y: float, width: float, height: float, *,
                  fill: Optional[Color] = None, stroke: Optional[Color] = None,
                  line_width: float = 1.0, opacity: float = 1.0) -> None: ...

    def draw_line(self, x1: float, y1: float, x2: float, y2: float, *,
                  color: Color = BLACK, line_width: float = 1.0) -> None: ...

    def draw_circle(self, x: float, y: float, radius: float, *,
                    fill: Optional[Color] = None, stroke: Optional[Color] = None,
                    line_width: float = 1.0, opacity: float = 1.0) -> None: ...

    def draw_text(self, text: str, x: float, y: float, *, font: str, size: float,
                  color: Color = BLACK) -> None: ...

    def draw_image(self, data: bytes, x: float, y: float, width: float, height: float) -> None: ...

    def image_size(self, data: bytes) -> Tuple[float, float]: ...

    def measure_text_width(self, text: str, font: str, size: float) -> float: ...

    def font_ascent(self, font: str, size: float) -> float: ...


class ReportLabSurface:
    """``PaintSurface`` backed by a single-page ReportLab canvas."""

    def __init__(self, width: float, height: float):
        self.width = width
        self.height = height
        self._buf = BytesIO()
        self._canvas = canvas.Canvas(self._buf, pagesize=(width, height))

    def draw_rect(self, x, y, width, height, *, fill=None, stroke=None, line_width=1.0, opacity=1.0):
        c = self._canvas
        c.saveState()
        if fill is not None:
            c.setFillColorRGB(*fill)
            c.setFillAlpha(opacity)
        if stroke is not None:
            c.setStrokeColorRGB(*stroke)
            c.setStrokeAlpha(opacity)
            c.setLineWidth(line_width)
        c.rect(x, y, width, height, stroke=int(stroke is not None), fill=int(fill is not None))
        c.restoreState()

    def draw_line(self, x1, y1, x2, y2, *, color=BLACK, line_width=1.0):
        c = self._canvas
        c.saveState()
        c.setStrokeColorRGB(*color)
        c.setLineWidth(line_width)
        c.line(x1, y1, x2, y2)
        c.restoreState()

    def draw_circle(self, x, y, radius, *, fill=None, stroke=None, line_width=1.0, opacity=1.0):
        c = self._canvas
        c.saveState()
        if fill is not None:
            c.setFillColorRGB(*fill)
            c.setFillAlpha(opacity)
        if stroke is not None:
            c.setStrokeColorRGB(*stroke)
            c.setStrokeAlpha(opacity)
            c.setLineWidth(line_width)
        c.circle(x, y, radius, stroke=int(stroke is not None), fill=int(fill is not None))
        c.restoreState()

    def draw_text(self, text, x, y, *, font, size, color=BLACK):
        c = self._canvas
        c.saveState()
        c.setFont(font, size)
        c.setFillColorRGB(*color)
        c.drawString(x, y, text)
        c.restoreState()

    def draw_image(self, data, x, y, width, height):
        self._canvas.drawImage(ImageReader(BytesIO(data)), x, y, width=width, height=height, mask="auto")

    def image_size(self, data):
        return ImageReader(BytesIO(data)).getSize()

    def measure_text_width(self, text, font, size):
        return pdfmetrics.stringWidth(text, font, size)

    def font_ascent(self, font, size):
        return pdfmetrics.getAscent(font, size)

    def draw_watermark(self, text: str, *, font: str = "Helvetica-Bold", opacity: float = 0.15, angle: float = -30):
        size = min(self.width, self.height) * 0.05
        text_width = self.measure_text_width(text, font, size)
        c = self._canvas
        c.saveState()
        c.setFillColorRGB(*GRAY)
        c.setFillAlpha(opacity)
        c.setFont(font, size)
        c.translate(self.width / 2, self.height / 2)
        c.rotate(angle)
        c.drawString(-text_width / 2, 0, text)
        c.restoreState()

    def finish(self) -> bytes:
        self._canvas.showPage()
        self._canvas.save()
        return self._buf.getvalue()

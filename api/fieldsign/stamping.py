from io import BytesIO
from typing import Dict, Optional, Sequence
from pypdf import PdfReader, PdfWriter
from .engine.paint import GRAY, ReportLabSurface
from .engine.render import resolve_and_render_fields

HEADER_FONT = "Helvetica"
HEADER_SIZE = 10

def page_dimensions(reader: PdfReader) -> Dict[int, tuple]:
    return {
        i + 1: (float(page.mediabox.width), float(page.mediabox.height))
        for i, page in enumerate(reader.pages)
    }

def stamp_pdf(original_pdf_bytes: bytes, fields: Sequence, *, document_id, watermark_text: Optional[str] = None) -> bytes:
    """Paint ``fields`` onto the original PDF and return the stamped copy.

    Every page also gets a "Document Id" header and, when ``watermark_text``
    is given, a diagonal watermark. Raises ``PageOutOfRangeError`` when a
    field sits on a page the PDF does not have.
    """
    reader = PdfReader(BytesIO(original_pdf_bytes))
    writer = PdfWriter()
    for p in reader.pages:
        writer.add_page(p)
    dims = page_dimensions(reader)

    overlays: Dict[int, ReportLabSurface] = {}

    def surface_for_page(page_number: int) -> ReportLabSurface:
        if page_number not in overlays:
            overlays[page_number] = ReportLabSurface(*dims[page_number])
        return overlays[page_number]

    resolve_and_render_fields(fields, dims, surface_for_page)

    for page_number, (w, h) in dims.items():
        surface = surface_for_page(page_number)
        surface.draw_text(f"Document Id: {document_id}", 15, h - 20, font=HEADER_FONT, size=HEADER_SIZE, color=GRAY)
        if watermark_text:
            surface.draw_watermark(watermark_text)

    for page_number, surface in overlays.items():
        overlay_reader = PdfReader(BytesIO(surface.finish()))
        writer.pages[page_number - 1].merge_page(overlay_reader.pages[0])

    out = BytesIO(); writer.write(out)
    return out.getvalue()

import logging
from io import BytesIO
from typing import Optional
from reportlab.pdfgen import canvas
from reportlab.lib.pagesizes import letter
from reportlab.lib.utils import ImageReader

logger = logging.getLogger(__name__)

SIGNATURE_BOX = (180, 60)

def render_certificate(info: dict, signature: Optional[bytes] = None) -> bytes:
    """Certificate of completion: one ``key: value`` line per entry of ``info``.

    ``signature`` is an image drawn under the last line when given.
    """
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.setFont("Helvetica-Bold", 14)
    c.drawString(72, 750, "Certificate of Completion")
    c.setFont("Helvetica", 10)
    y = 720
    for k, v in info.items():
        txt = f"{k}: {v if v is not None else ''}"
        c.drawString(72, y, txt[:95])
        y -= 14
        if y < 72:
            c.showPage(); c.setFont("Helvetica", 10); y = 750
    if signature:
        box_w, box_h = SIGNATURE_BOX
        if y - box_h - 20 < 72:
            c.showPage(); y = 750
        try:
            image = ImageReader(BytesIO(signature))
            img_w, img_h = image.getSize()
            scale = min(box_w / img_w, box_h / img_h)
            c.setFont("Helvetica", 10)
            c.drawString(72, y - 6, "Signature:")
            c.drawImage(image, 72, y - 20 - img_h * scale, width=img_w * scale, height=img_h * scale, mask="auto")
        except Exception as exc:
            logger.warning("Signature image left off the certificate: %s", exc)
    c.showPage(); c.save()
    return buf.getvalue()

"""Turn a completed document into its sealed final PDF.

``seal_document`` is pure bytes-in/bytes-out; ``finalize_document`` wraps it
with storage and bookkeeping and is what the signing API and the Celery
worker call.
"""
import json
import logging
from datetime import datetime
from io import BytesIO
from typing import Optional, Sequence, Tuple

from pypdf import PdfReader, PdfWriter
from sqlmodel import Session, select

from .certificate import render_certificate
from .engine.types import SIGNATURE_TYPES
from .events import append_event
from .models import Document, Field, FinalArtifact, Signer
from .stamping import stamp_pdf
from .errors import StorageError
from .storage import delete_object, get_bytes, put_bytes
from .utils import decode_data_uri, sha256_bytes

logger = logging.getLogger(__name__)

PRODUCER = "fieldsign"


def _signature_image(fields: Sequence) -> Optional[bytes]:
    for field in fields:
        if field.type in SIGNATURE_TYPES and field.value:
            try:
                return decode_data_uri(field.value)[0]
            except ValueError:
                continue
    return None


def seal_document(original: bytes, document: Document, signer: Optional[Signer], fields: Sequence) -> Tuple[bytes, str, str]:
    """Stamp fields, append the certificate and set metadata.

    Returns ``(pdf_bytes, audit_json, sha256_final)``.
    """
    watermark = (document.watermark_text or document.title) if document.enable_watermark else None
    stamped = stamp_pdf(original, fields, document_id=document.id, watermark_text=watermark)

    now = datetime.utcnow().isoformat() + "Z"
    audit = {
        "document_id": document.id,
        "title": document.title,
        "sha256_original": sha256_bytes(original),
        "signer_name": signer.name if signer else None,
        "signer_email": signer.email if signer else None,
        "signer_ip": signer.ip_address if signer else None,
        "signer_user_agent": signer.user_agent if signer else None,
        "signed_at": signer.completed_at.isoformat() + "Z" if signer and signer.completed_at else None,
        "sealed_at": now,
        "events_summary": "See DB events table for hash chain",
    }

    writer = PdfWriter()
    for p in PdfReader(BytesIO(stamped)).pages:
        writer.add_page(p)
    cert_pdf = render_certificate(audit, signature=_signature_image(fields))
    for p in PdfReader(BytesIO(cert_pdf)).pages:
        writer.add_page(p)
    writer.add_metadata({
        "/Title": document.title,
        "/Subject": f"Signed document {document.id}",
        "/Producer": PRODUCER,
        "/Creator": PRODUCER,
    })

    buf = BytesIO(); writer.write(buf); final_pdf = buf.getvalue()
    sha_final = sha256_bytes(final_pdf)
    audit_json = json.dumps({**audit, "sha256_final": sha_final})
    return final_pdf, audit_json, sha_final


def finalize_document(session: Session, document: Document) -> FinalArtifact:
    """Seal ``document`` once; later calls return the existing artifact."""
    existing = session.exec(select(FinalArtifact).where(FinalArtifact.document_id == document.id)).first()
    if existing:
        return existing

    fields = session.exec(select(Field).where(Field.document_id == document.id).order_by(Field.id)).all()
    signer = session.exec(select(Signer).where(Signer.document_id == document.id)).first()
    original = get_bytes(document.s3_key)
    final_pdf, audit_json, sha_final = seal_document(original, document, signer, fields)

    stamp = datetime.utcnow().strftime("%Y%m%dT%H%M%S")
    key_pdf = f"documents/{document.id}/final/{stamp}.pdf"
    key_audit = f"documents/{document.id}/final/{stamp}.audit.json"
    put_bytes(key_pdf, final_pdf, content_type="application/pdf")
    try:
        put_bytes(key_audit, audit_json.encode(), content_type="application/json")
    except StorageError:
        logger.warning("Audit upload failed for document %s, removing %s", document.id, key_pdf)
        delete_object(key_pdf)
        raise

    artifact = FinalArtifact(
        document_id=document.id, s3_key_pdf=key_pdf, s3_key_audit_json=key_audit, sha256_final=sha_final,
    )
    document.status = "COMPLETED"
    document.completed_at = datetime.utcnow()
    session.add(artifact)
    session.add(document)
    append_event(session, document.id, "system", "sealed", {"sha256_final": sha_final})
    session.commit()
    session.refresh(artifact)
    logger.info("Sealed document %s (sha256 %s)", document.id, sha_final)
    return artifact

from datetime import datetime
from io import BytesIO
from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile
from pypdf import PdfReader
from pypdf.errors import PdfReadError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from ..config import SIGNING_LINK_BASE
from ..db import get_session
from ..engine.formula import evaluate_formula
from ..engine.render import check_pages
from ..engine.pipeline import resolve_fields
from ..events import append_event
from ..models import Document
from ..records import get_document, get_final_artifact, get_signer, list_fields, reconcile, sa_to_dict
from ..schemas import FormulaRequest
from ..storage import delete_object, get_bytes, put_bytes
from ..utils import make_token, sha256_bytes

router = APIRouter()

def _serialize_document(doc: Document):
    return sa_to_dict(doc)

def _page_dimensions(doc: Document):
    # only the page numbers matter when checking placements
    return {n: (0.0, 0.0) for n in range(1, doc.page_count + 1)}

@router.post("")
async def upload_document(
    file: UploadFile = File(...),
    title: str = Form(None),
    enable_watermark: bool = Form(False),
    watermark_text: str = Form(None),
    session: Session = Depends(get_session),
):
    data = await file.read()
    try:
        page_count = len(PdfReader(BytesIO(data)).pages)
    except PdfReadError:
        raise HTTPException(400, "uploaded file is not a readable PDF")
    filename = file.filename or "document.pdf"
    doc = Document(
        title=title or filename,
        filename=filename,
        sha256=sha256_bytes(data),
        s3_key="pending",
        page_count=page_count,
        enable_watermark=enable_watermark,
        watermark_text=watermark_text,
    )
    session.add(doc)
    session.flush()
    key = f"documents/{doc.id}/original/{filename}"
    put_bytes(key, data, content_type=file.content_type or "application/pdf")
    doc.s3_key = key
    session.add(doc)
    try:
        append_event(session, doc.id, "user", "uploaded", {"filename": filename, "sha256": doc.sha256})
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        delete_object(key)
        raise
    session.refresh(doc)
    return _serialize_document(doc)

@router.get("/{document_id}")
def get_document_detail(document_id: int, session: Session = Depends(get_session)):
    doc = get_document(session, document_id)
    signer = get_signer(session, document_id)
    final_artifact = get_final_artifact(session, document_id)
    return {
        "document": _serialize_document(doc),
        "signer": sa_to_dict(signer) if signer else None,
        "final_artifact": sa_to_dict(final_artifact) if final_artifact else None,
    }

@router.get("/{document_id}/pdf")
def download_document_pdf(document_id: int, session: Session = Depends(get_session)):
    doc = get_document(session, document_id)
    pdf_bytes = get_bytes(doc.s3_key)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{doc.filename}"'},
    )

@router.get("/{document_id}/final-pdf")
def download_final_pdf(document_id: int, session: Session = Depends(get_session)):
    get_document(session, document_id)
    final_artifact = get_final_artifact(session, document_id)
    if not final_artifact:
        raise HTTPException(404, "final artifact not ready")
    pdf_bytes = get_bytes(final_artifact.s3_key_pdf)
    return Response(content=pdf_bytes, media_type="application/pdf")

@router.post("/{document_id}/formula")
def preview_formula(document_id: int, payload: FormulaRequest, session: Session = Depends(get_session)):
    get_document(session, document_id)
    fields = resolve_fields(list_fields(session, document_id))
    return {"result": evaluate_formula(payload.expression, fields)}

@router.post("/{document_id}/send")
def send_document(document_id: int, session: Session = Depends(get_session)):
    doc = get_document(session, document_id)
    if doc.status == "COMPLETED":
        raise HTTPException(409, "document already completed")
    signer = get_signer(session, document_id)
    if not signer:
        raise HTTPException(400, "add a signer before sending")
    fields = list_fields(session, document_id)
    if not fields:
        raise HTTPException(400, "add fields before sending")
    check_pages(fields, _page_dimensions(doc))
    reconcile(session, document_id, fields)

    token = make_token({"signer_id": signer.id, "document_id": doc.id})
    now = datetime.utcnow()
    doc.status = "PENDING"
    doc.sent_at = now
    signer.notified_at = now
    session.add(doc); session.add(signer)
    append_event(session, doc.id, "user", "sent", {"signer_id": signer.id, "email": signer.email})
    session.commit()
    return {"ok": True, "token": token, "link": f"{SIGNING_LINK_BASE}/{token}"}

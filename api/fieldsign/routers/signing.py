import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from itsdangerous import BadSignature
from sqlmodel import Session
from ..db import get_session
from ..engine.pipeline import resolve_fields
from ..engine.validation import validate_fields
from ..errors import ValidationFailed
from ..events import append_event
from ..finalize import finalize_document
from ..models import Document, Signer
from ..records import apply_signer_values, get_final_artifact, resolved_payload, list_fields, sa_to_dict
from ..schemas import DeclineRequest, SignSave
from ..storage import get_bytes
from ..utils import read_token

logger = logging.getLogger(__name__)

router = APIRouter()

CLOSED_STATUSES = ("COMPLETED", "DECLINED")

# ---------- helpers ----------
def _load(session: Session, token: str):
    try:
        data = read_token(token)
    except BadSignature:
        raise HTTPException(404, "invalid signing link")
    signer = session.get(Signer, data.get("signer_id"))
    if not signer or signer.document_id != data.get("document_id"):
        raise HTTPException(404, "not found")
    doc = session.get(Document, signer.document_id)
    if not doc:
        raise HTTPException(404, "not found")
    return signer, doc

def _require_open(signer: Signer):
    if signer.status in CLOSED_STATUSES:
        raise HTTPException(409, f"signing already {signer.status.lower()}")

def _client_info(request: Request):
    return (request.client.host if request.client else None), request.headers.get("user-agent")

# ---------- routes ----------

@router.get("/{token}")
def load_signing_session(token: str, request: Request, session: Session = Depends(get_session)):
    signer, doc = _load(session, token)
    ip, ua = _client_info(request)
    if signer.status == "PENDING":
        signer.status = "VIEWED"
        signer.viewed_at = datetime.utcnow()
        signer.ip_address = ip
        signer.user_agent = ua
        session.add(signer)
    append_event(session, doc.id, f"signer:{signer.id}", "opened", {}, ip=ip, ua=ua)
    session.commit()
    final_artifact = get_final_artifact(session, doc.id)
    return {
        "document": sa_to_dict(doc),
        "signer": sa_to_dict(signer),
        "final_artifact": sa_to_dict(final_artifact) if final_artifact else None,
        "fields": resolved_payload(list_fields(session, doc.id)),
    }

@router.get("/{token}/pdf")
def get_original_pdf(token: str, session: Session = Depends(get_session)):
    signer, doc = _load(session, token)
    return Response(content=get_bytes(doc.s3_key), media_type="application/pdf")

@router.get("/{token}/final-pdf")
def get_final_pdf(token: str, session: Session = Depends(get_session)):
    signer, doc = _load(session, token)
    final_artifact = get_final_artifact(session, doc.id)
    if not final_artifact:
        raise HTTPException(404, "final artifact not ready")
    return Response(content=get_bytes(final_artifact.s3_key_pdf), media_type="application/pdf")

@router.post("/{token}/save")
def save_partial(token: str, payload: SignSave, session: Session = Depends(get_session)):
    signer, doc = _load(session, token)
    _require_open(signer)
    fields = apply_signer_values(session, signer, payload.values)
    append_event(session, doc.id, f"signer:{signer.id}", "filled", {"fields": sorted(payload.values)})
    session.commit()
    return {"ok": True, "fields": resolved_payload(fields)}

@router.post("/{token}/complete")
def complete_signing(token: str, payload: SignSave, request: Request, session: Session = Depends(get_session)):
    signer, doc = _load(session, token)
    if signer.status == "COMPLETED" and not get_final_artifact(session, doc.id):
        # completion was recorded but sealing failed; finish the seal
        logger.info("Resuming seal of document %s for signer %s", doc.id, signer.id)
        artifact = finalize_document(session, doc)
        return {"ok": True, "sealed": True, "sha256_final": artifact.sha256_final}
    _require_open(signer)
    fields = apply_signer_values(session, signer, payload.values)
    errors = validate_fields(resolve_fields(fields))
    if errors:
        session.rollback()
        raise ValidationFailed(errors)

    ip, ua = _client_info(request)
    signer.status = "COMPLETED"
    signer.completed_at = datetime.utcnow()
    signer.ip_address = signer.ip_address or ip
    signer.user_agent = signer.user_agent or ua
    session.add(signer)
    append_event(session, doc.id, f"signer:{signer.id}", "completed", {"signer_id": signer.id}, ip=ip, ua=ua)
    session.commit()

    artifact = finalize_document(session, doc)
    return {"ok": True, "sealed": True, "sha256_final": artifact.sha256_final}

@router.post("/{token}/decline")
def decline_signing(token: str, payload: DeclineRequest, request: Request, session: Session = Depends(get_session)):
    signer, doc = _load(session, token)
    _require_open(signer)
    ip, ua = _client_info(request)
    signer.status = "DECLINED"
    session.add(signer)
    append_event(session, doc.id, f"signer:{signer.id}", "declined", {"reason": payload.reason}, ip=ip, ua=ua)
    session.commit()
    logger.info("Signer %s declined document %s", signer.id, doc.id)
    return {"ok": True, "status": signer.status}

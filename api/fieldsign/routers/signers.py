from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session
from ..db import get_session
from ..engine.reconcile import unbind_signer
from ..events import append_event
from ..models import Signer
from ..records import get_document, get_signer, list_fields, reconcile, sa_to_dict
from ..schemas import SignerSave

router = APIRouter()

@router.put("/{document_id}/signer")
def save_signer(document_id: int, payload: SignerSave, session: Session = Depends(get_session)):
    doc = get_document(session, document_id)
    if doc.status == "COMPLETED":
        raise HTTPException(409, "document already completed")
    signer = get_signer(session, document_id)
    if signer is None:
        signer = Signer(document_id=document_id, name=payload.name, email=payload.email)
    else:
        signer.name = payload.name
        signer.email = payload.email
    session.add(signer)
    session.flush()
    report = reconcile(session, document_id)
    append_event(session, document_id, "user", "signer_saved", {
        "signer_id": signer.id,
        "email": signer.email,
        "reconciled": report.total,
    })
    session.commit()
    session.refresh(signer)
    return sa_to_dict(signer)

@router.delete("/{document_id}/signer", status_code=status.HTTP_204_NO_CONTENT)
def delete_signer(document_id: int, session: Session = Depends(get_session)):
    doc = get_document(session, document_id)
    if doc.status == "COMPLETED":
        raise HTTPException(409, "document already completed")
    signer = get_signer(session, document_id)
    if signer is None:
        raise HTTPException(404, "signer not found")
    changed = unbind_signer(list_fields(session, document_id), signer.id)
    for field in changed:
        session.add(field)
    append_event(session, document_id, "user", "signer_removed", {"signer_id": signer.id, "unbound": len(changed)})
    session.delete(signer)
    if doc.status == "PENDING":
        doc.status = "DRAFT"
        session.add(doc)
    session.commit()

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session
from ..db import get_session
from ..engine.logic import evaluate_visibility
from ..engine.pipeline import resolve_fields
from ..engine.render import check_pages
from ..events import append_event
from ..models import Field
from ..records import get_document, list_fields, reconcile, resolved_payload
from ..schemas import FieldsSave

router = APIRouter()

@router.get("/{document_id}/fields")
def get_fields(document_id: int, session: Session = Depends(get_session)):
    get_document(session, document_id)
    return {"fields": resolved_payload(list_fields(session, document_id))}

@router.put("/{document_id}/fields")
def save_fields(document_id: int, payload: FieldsSave, session: Session = Depends(get_session)):
    """Replace the document's fields with ``payload.fields``.

    Entries carrying the id of an existing field update it in place; other
    entries create new fields; existing fields left out are deleted.
    """
    doc = get_document(session, document_id)
    if doc.status != "DRAFT":
        raise HTTPException(409, "fields can only be edited while the document is a draft")
    existing = {f.id: f for f in list_fields(session, document_id)}

    kept = []
    for item in payload.fields:
        data = item.model_dump(mode="json", exclude={"id"})
        field = existing.pop(item.id, None) if item.id is not None else None
        if field is None:
            field = Field(document_id=document_id, **data)
        else:
            for key, value in data.items():
                setattr(field, key, value)
        kept.append(field)
    check_pages(kept, {n: None for n in range(1, doc.page_count + 1)})

    for stale in existing.values():
        session.delete(stale)
    for field in kept:
        session.add(field)
    session.flush()
    report = reconcile(session, document_id, kept)
    append_event(session, document_id, "user", "fields_saved", {
        "count": len(kept),
        "deleted": len(existing),
        "reconciled": report.total,
    })
    session.commit()
    return {"fields": resolved_payload(list_fields(session, document_id))}

@router.get("/{document_id}/fields/{field_id}/visibility")
def get_field_visibility(document_id: int, field_id: int, session: Session = Depends(get_session)):
    get_document(session, document_id)
    fields = resolve_fields(list_fields(session, document_id))
    field = next((f for f in fields if f.id == str(field_id)), None)
    if field is None:
        raise HTTPException(404, "field not found")
    return {"field_id": field_id, "visible": evaluate_visibility(field, fields)}

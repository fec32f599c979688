"""Loading and updating a document's field/signer rows.

Every change to fields or to the signer goes through ``reconcile`` before
the caller commits.
"""
import logging
from typing import Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy.inspection import inspect as sa_inspect
from sqlmodel import Session, select

from .engine.logic import apply_persistent_effects, resolve_rules
from .engine.pipeline import resolve_fields
from .engine.reconcile import ReconcileReport, reconcile_signer_bindings
from .engine.types import FieldType
from .models import Document, Field, FinalArtifact, Signer

logger = logging.getLogger(__name__)


def sa_to_dict(obj):
    if obj is None:
        return {}
    mapper = sa_inspect(obj).mapper
    data = {}
    for col in mapper.columns:
        data[col.key] = getattr(obj, col.key)
    return data


def get_document(session: Session, document_id: int) -> Document:
    doc = session.get(Document, document_id)
    if not doc:
        raise HTTPException(404, "document not found")
    return doc


def get_signer(session: Session, document_id: int) -> Optional[Signer]:
    return session.exec(select(Signer).where(Signer.document_id == document_id)).first()


def get_final_artifact(session: Session, document_id: int) -> Optional[FinalArtifact]:
    return session.exec(select(FinalArtifact).where(FinalArtifact.document_id == document_id)).first()


def list_fields(session: Session, document_id: int) -> List[Field]:
    return session.exec(select(Field).where(Field.document_id == document_id).order_by(Field.id)).all()


def resolved_payload(fields) -> List[dict]:
    return [f.model_dump() for f in resolve_fields(fields)]


def reconcile(session: Session, document_id: int, fields: Optional[List[Field]] = None) -> ReconcileReport:
    if fields is None:
        fields = list_fields(session, document_id)
    signer = get_signer(session, document_id)
    report = reconcile_signer_bindings(fields, signer.id if signer else None)
    for field in fields:
        session.add(field)
    return report


def apply_signer_values(session: Session, signer: Signer, values: Dict[str, Optional[str]]) -> List[Field]:
    """Store a signer's submitted values, then apply rule effects that persist.

    Values for unknown fields, formula fields and fields bound to another
    signer are ignored. Returns the document's fields after the update.
    """
    fields = list_fields(session, signer.document_id)
    by_id = {str(f.id): f for f in fields}
    for field_id, value in values.items():
        field = by_id.get(str(field_id))
        if field is None or field.type == FieldType.FORMULA.value:
            continue
        if field.signer_id not in (None, signer.id):
            logger.warning("Signer %s tried to fill field %s bound to signer %s", signer.id, field.id, field.signer_id)
            continue
        field.value = value

    effects = resolve_rules(resolve_fields(fields))
    changed = apply_persistent_effects(fields, effects)
    if changed:
        logger.info("Rule effects updated %s field(s) on document %s", len(changed), signer.document_id)
    reconcile(session, signer.document_id, fields)
    return fields

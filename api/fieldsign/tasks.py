import logging
from celery import Celery
from sqlmodel import Session
from .config import REDIS_URL, WORKER_QUEUE

logger = logging.getLogger(__name__)

cel = Celery("fieldsign", broker=REDIS_URL, backend=REDIS_URL)

@cel.task(name="seal_document", queue=WORKER_QUEUE)
def seal_document_task(document_id: int):
    from . import db
    from .finalize import finalize_document
    from .models import Document
    with Session(db.engine) as session:
        document = session.get(Document, document_id)
        if not document:
            logger.warning("seal_document: document %s not found", document_id)
            return None
        artifact = finalize_document(session, document)
        return {"pdf": artifact.s3_key_pdf, "audit": artifact.s3_key_audit_json, "sha256_final": artifact.sha256_final}

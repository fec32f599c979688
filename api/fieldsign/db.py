import logging
from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy import text, inspect
from .config import DATABASE_URL

logger = logging.getLogger(__name__)

engine = create_engine(DATABASE_URL, echo=False, pool_pre_ping=True)

def init_db():
    from .models import Document, Signer, Field, Event, FinalArtifact
    SQLModel.metadata.create_all(engine)
    _ensure_single_signer_index()

def get_session():
    with Session(engine) as session:
        yield session

def _ensure_single_signer_index():
    inspector = inspect(engine)
    try:
        indexes = inspector.get_indexes("signer")
    except Exception:
        return
    if any(idx.get("name") == "uq_signer_document" for idx in indexes):
        return
    with engine.begin() as conn:
        duplicates = conn.execute(
            text("SELECT document_id FROM signer GROUP BY document_id HAVING COUNT(*) > 1")
        ).fetchall()
        if duplicates:
            ids = ", ".join(str(row[0]) for row in duplicates)
            logger.warning(
                "documents with more than one signer detected; resolve before enforcing uniqueness: %s",
                ids,
            )
            return
        conn.execute(text("CREATE UNIQUE INDEX IF NOT EXISTS uq_signer_document ON signer(document_id)"))

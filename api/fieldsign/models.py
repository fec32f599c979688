from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field as ORMField

class Document(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    title: str
    filename: str
    s3_key: str
    sha256: Optional[str] = None
    page_count: int = 0
    status: str = "DRAFT"  # DRAFT|PENDING|COMPLETED
    enable_watermark: bool = False
    watermark_text: Optional[str] = None
    created_at: datetime = ORMField(default_factory=datetime.utcnow)
    sent_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

class Signer(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    document_id: int = ORMField(index=True)  # one signer per document, see db._ensure_single_signer_index
    email: str
    name: str
    status: str = "PENDING"  # PENDING|VIEWED|COMPLETED|DECLINED
    notified_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

class Field(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    document_id: int = ORMField(index=True)
    type: str  # see engine.types.FieldType
    label: Optional[str] = None
    placeholder: Optional[str] = None
    required: bool = False
    page_number: int = 1
    # design space: 595x842 reference page, origin top-left
    x: float
    y: float
    width: float
    height: float
    value: Optional[str] = None
    validation_rule: Optional[str] = None
    conditional_logic: Optional[str] = None
    color: Optional[str] = None
    font_family: Optional[str] = None
    font_size: Optional[float] = None
    background_color: Optional[str] = None
    border_color: Optional[str] = None
    text_color: Optional[str] = None
    options: Optional[str] = None
    signer_id: Optional[int] = None

class Event(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    document_id: int = ORMField(index=True)
    actor: str  # system|signer:<id>|user
    type: str   # uploaded|fields_saved|signer_saved|signer_removed|sent|opened|filled|completed|declined|sealed
    meta_json: str = "{}"
    ip: Optional[str] = None
    ua: Optional[str] = None
    at: datetime = ORMField(default_factory=datetime.utcnow)
    prev_hash: Optional[str] = None
    hash: Optional[str] = None

class FinalArtifact(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    document_id: int = ORMField(index=True)
    s3_key_pdf: str
    s3_key_audit_json: str
    sha256_final: str
    completed_at: datetime = ORMField(default_factory=datetime.utcnow)

from typing import List
from sqlmodel import Session, select
from .models import Event
from .utils import canonical_json, sha256_bytes

GENESIS_HASH = "0" * 64

def append_event(session: Session, document_id: int, actor: str, type_: str, meta: dict, ip=None, ua=None) -> Event:
    """Add the next link of the document's event chain; the caller commits."""
    last = session.exec(
        select(Event).where(Event.document_id == document_id).order_by(Event.id.desc())
    ).first()
    prev_hash = last.hash if last else GENESIS_HASH
    payload = {"actor": actor, "type": type_, "meta": meta}
    event = Event(
        document_id=document_id, actor=actor, type=type_,
        meta_json=canonical_json(payload), prev_hash=prev_hash,
        ip=ip, ua=ua,
    )
    event.hash = sha256_bytes((prev_hash + event.meta_json).encode())
    session.add(event)
    session.flush()
    return event

def verify_chain(events: List[Event]) -> bool:
    prev_hash = GENESIS_HASH
    for event in events:
        if event.prev_hash != prev_hash:
            return False
        if event.hash != sha256_bytes((prev_hash + event.meta_json).encode()):
            return False
        prev_hash = event.hash
    return True

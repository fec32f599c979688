"""Keep field bindings consistent with a document's single signer.

Once a signer exists, every signature/initial field and every required
field belongs to that signer, and no field points at any other signer id.
While no signer exists, signature/initial fields are unbound.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .types import SIGNATURE_TYPES

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    unbound: int = 0
    rebound: int = 0
    relinked: int = 0

    @property
    def total(self) -> int:
        return self.unbound + self.rebound + self.relinked

    def __bool__(self):
        return self.total > 0


def _type(field) -> str:
    return getattr(field.type, "value", field.type)


def reconcile_signer_bindings(fields: Sequence, signer_id: Optional[int]) -> ReconcileReport:
    """Bind fields to ``signer_id`` in place; a second run changes nothing."""
    report = ReconcileReport()
    if signer_id is None:
        return report

    for field in fields:
        current = field.signer_id
        if current == signer_id:
            continue
        if _type(field) in SIGNATURE_TYPES or field.required:
            if current is None:
                report.unbound += 1
            else:
                report.rebound += 1
            field.signer_id = signer_id
        elif current is not None:
            report.relinked += 1
            field.signer_id = signer_id

    if report:
        logger.info(
            "Reconciled fields for signer %s: %s newly bound, %s rebound, %s relinked",
            signer_id, report.unbound, report.rebound, report.relinked,
        )
    return report


def unbind_signer(fields: Sequence, signer_id: Optional[int]) -> List:
    """Detach fields from a signer that is being deleted.

    Returns the fields that changed.
    """
    changed = []
    for field in fields:
        if field.signer_id is None:
            continue
        if _type(field) in SIGNATURE_TYPES or field.signer_id == signer_id:
            field.signer_id = None
            changed.append(field)
    if changed:
        logger.info("Unbound %s field(s) from deleted signer %s", len(changed), signer_id)
    return changed

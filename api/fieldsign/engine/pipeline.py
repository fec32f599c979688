"""Two-pass field resolution run before anything is painted.

1. formula pass: every formula field gets the result of its expression;
2. visibility pass: a field with a rule is visible when the rule's
   condition holds against the formula results.

The input is never modified; the output is a new list of ``ResolvedField``.
"""
import logging
from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, field_validator

from .formula import evaluate_formula
from .logic import owner_visibility
from .types import FieldType

logger = logging.getLogger(__name__)


class ResolvedField(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    type: str
    label: Optional[str] = None
    placeholder: Optional[str] = None
    required: bool = False
    page_number: int = 1
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
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
    signer_id: Optional[str] = None
    is_visible: bool = True

    @field_validator("id", "signer_id", "type", mode="before")
    @classmethod
    def _as_text(cls, value):
        if isinstance(value, FieldType):
            return value.value
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @property
    def option_list(self) -> List[str]:
        return [o.strip() for o in (self.options or "").split(",") if o.strip()]


def resolve_fields(fields: Sequence) -> List[ResolvedField]:
    """Resolve formula values and visibility for one document's fields.

    Formulas see the input values; rules see the formula results.
    """
    snapshot = [ResolvedField.model_validate(f) for f in fields]

    computed = []
    for field in snapshot:
        if field.type == FieldType.FORMULA.value and field.validation_rule:
            result = evaluate_formula(field.validation_rule, snapshot)
            logger.debug("Formula field %s resolved to %r", field.id, result)
            field = field.model_copy(update={"value": result})
        computed.append(field)

    return [f.model_copy(update={"is_visible": owner_visibility(f, computed)}) for f in computed]


def should_render(field: ResolvedField) -> bool:
    if not field.is_visible:
        return False
    return bool(field.value) or field.type == FieldType.CHECKBOX.value

from enum import Enum
from typing import Dict, Iterable


class FieldType(str, Enum):
    SIGNATURE = "signature"
    INITIAL = "initial"
    TEXT = "text"
    EMAIL = "email"
    PHONE = "phone"
    NUMBER = "number"
    DATE = "date"
    CHECKBOX = "checkbox"
    DROPDOWN = "dropdown"
    RADIO = "radio"
    FORMULA = "formula"
    PAYMENT = "payment"


SIGNATURE_TYPES = frozenset({FieldType.SIGNATURE.value, FieldType.INITIAL.value})
CHECKED_VALUES = frozenset({"true", "checked"})


def field_lookup(fields: Iterable) -> Dict[str, object]:
    """Index fields by the string form of their id, the form rules and formulas use."""
    return {str(f.id): f for f in fields}

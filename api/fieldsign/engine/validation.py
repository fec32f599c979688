"""Checks a signer's values must pass before a document can be completed.

Constraints come from ``validation_rule`` on non-formula fields::

    range:1,100              number fields
    range:today,none         date fields (``today``/``none`` or a date)
    length:2,40              text fields
    pattern:/^[A-Z]{2}$/i    text fields
"""
import logging
import math
import re
from datetime import date, datetime, time
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel

from .coerce import parse_float_prefix, to_number
from .dates import parse_date
from .pipeline import ResolvedField
from .types import FieldType

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[\d\s\-+()]{7,20}$")
_NUMBER_RANGE_RE = re.compile(r"range:(-?\d+\.?\d*),(-?\d+\.?\d*)")
_DATE_RANGE_RE = re.compile(r"range:([^,]+),([^,]+)")
_LENGTH_RE = re.compile(r"length:(\d+),(\d+)")
_PATTERN_RE = re.compile(r"pattern:/(.+)/(i|g|m|gi|gm|im|gim)?")
_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE}


class FieldValidationError(BaseModel):
    field_id: str
    code: str
    message: str


def _blank(value: Optional[str]) -> bool:
    return not value or not value.strip()


def _as_datetime(value, end_of_day=False) -> datetime:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    return datetime.combine(value, time.max if end_of_day else time.min)


def _date_bound(text: str, end_of_day: bool) -> Optional[datetime]:
    text = text.strip()
    if text == "none":
        return None
    if text == "today":
        return _as_datetime(date.today(), end_of_day)
    parsed = parse_date(text)
    return _as_datetime(parsed) if parsed is not None else None


def _number_errors(field, label, value) -> List[FieldValidationError]:
    if math.isnan(to_number(value)):
        return [FieldValidationError(field_id=field.id, code="format", message=f'"{label}" must be a valid number')]
    m = _NUMBER_RANGE_RE.search(field.validation_rule or "")
    if not m:
        return []
    low, high = float(m.group(1)), float(m.group(2))
    number = parse_float_prefix(value)
    if number < low or number > high:
        return [FieldValidationError(
            field_id=field.id, code="range",
            message=f'"{label}" must be between {m.group(1)} and {m.group(2)}',
        )]
    return []


def _date_errors(field, label, value) -> List[FieldValidationError]:
    parsed = parse_date(value)
    if parsed is None:
        return [FieldValidationError(field_id=field.id, code="format", message=f'"{label}" must be a valid date')]
    m = _DATE_RANGE_RE.search(field.validation_rule or "")
    if not m:
        return []
    errors = []
    when = _as_datetime(parsed)
    low = _date_bound(m.group(1), end_of_day=False)
    high = _date_bound(m.group(2), end_of_day=True)
    if low is not None and when < low:
        errors.append(FieldValidationError(
            field_id=field.id, code="range", message=f'"{label}" must be on or after {low:%m/%d/%Y}',
        ))
    if high is not None and when > high:
        errors.append(FieldValidationError(
            field_id=field.id, code="range", message=f'"{label}" must be on or before {high:%m/%d/%Y}',
        ))
    return errors


def _text_errors(field, label, value) -> List[FieldValidationError]:
    errors = []
    rule = field.validation_rule or ""
    m = _LENGTH_RE.search(rule)
    if m:
        low, high = int(m.group(1)), int(m.group(2))
        if len(value) < low:
            errors.append(FieldValidationError(
                field_id=field.id, code="length", message=f'"{label}" must be at least {low} characters',
            ))
        elif len(value) > high:
            errors.append(FieldValidationError(
                field_id=field.id, code="length", message=f'"{label}" cannot exceed {high} characters',
            ))
    m = _PATTERN_RE.search(rule)
    if m:
        flags = 0
        for ch in m.group(2) or "":
            flags |= _FLAGS.get(ch, 0)
        try:
            matched = re.search(m.group(1), value, flags)
        except re.error as exc:
            logger.warning("Ignoring invalid pattern on field %s: %s", field.id, exc)
            matched = True
        if not matched:
            errors.append(FieldValidationError(
                field_id=field.id, code="pattern", message=f'"{label}" does not match the required format',
            ))
    return errors


def _format_errors(field, label, value) -> List[FieldValidationError]:
    if field.type == FieldType.EMAIL.value and not EMAIL_RE.match(value):
        return [FieldValidationError(
            field_id=field.id, code="format", message=f'"{label}" must be a valid email address',
        )]
    if field.type == FieldType.PHONE.value and not PHONE_RE.match(value):
        return [FieldValidationError(
            field_id=field.id, code="format", message=f'"{label}" must be a valid phone number',
        )]
    return []


_CHECKS = {
    FieldType.EMAIL.value: _format_errors,
    FieldType.PHONE.value: _format_errors,
    FieldType.NUMBER.value: _number_errors,
    FieldType.DATE.value: _date_errors,
    FieldType.TEXT.value: _text_errors,
}


def validate_field(field: ResolvedField) -> List[FieldValidationError]:
    label = field.label or field.type.capitalize()
    if _blank(field.value):
        if field.required and field.type != FieldType.FORMULA.value:
            return [FieldValidationError(field_id=field.id, code="required", message=f'"{label}" is required')]
        return []
    check = _CHECKS.get(field.type)
    return check(field, label, field.value) if check else []


def validate_fields(resolved: Sequence[ResolvedField]) -> Dict[str, List[FieldValidationError]]:
    """Errors per field id, for visible fields only; empty when all pass."""
    errors = {}
    for field in resolved:
        if not field.is_visible:
            continue
        found = validate_field(field)
        if found:
            errors[field.id] = found
    return errors

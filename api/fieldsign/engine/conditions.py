"""Condition trees used by conditional field logic.

A condition is either a single comparison against another field's value
(``SimpleCondition``) or an ``and``/``or`` combination of conditions
(``CompoundCondition``). Evaluation never raises: missing fields, bad
numbers and bad regular expressions all resolve to ``False``.
"""
import logging
import math
import re
from enum import Enum
from typing import Annotated, Callable, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .coerce import to_number
from .types import CHECKED_VALUES, field_lookup

logger = logging.getLogger(__name__)


class ConditionType(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    GREATER_OR_EQUAL = "greaterOrEqual"
    LESS_OR_EQUAL = "lessOrEqual"
    IS_CHECKED = "isChecked"
    IS_NOT_CHECKED = "isNotChecked"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    MATCHES_REGEX = "matchesRegex"


# spellings written by older editors
_TYPE_ALIASES = {
    "greaterThanOrEqual": ConditionType.GREATER_OR_EQUAL.value,
    "lessThanOrEqual": ConditionType.LESS_OR_EQUAL.value,
}


class SimpleCondition(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: ConditionType
    field_id: Optional[str] = Field(default=None, alias="fieldId")
    value: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _legacy_type(cls, value):
        if isinstance(value, str):
            return _TYPE_ALIASES.get(value, value)
        return value

    @field_validator("field_id", "value", mode="before")
    @classmethod
    def _as_text(cls, value):
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)


class CompoundCondition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    operator: Literal["and", "or"]
    conditions: List["Condition"] = []


Condition = Annotated[
    Union[CompoundCondition, SimpleCondition], Field(union_mode="left_to_right")
]
CompoundCondition.model_rebuild()

condition_adapter = TypeAdapter(Condition)


def _compare(op: Callable[[float, float], bool]):
    def run(value: str, expected: str) -> bool:
        left, right = to_number(value), to_number(expected)
        if math.isnan(left) or math.isnan(right):
            return False
        return op(left, right)
    return run


def _matches(value: str, pattern: str) -> bool:
    try:
        return re.search(pattern, value) is not None
    except re.error:
        logger.warning("Invalid regular expression in condition: %r", pattern)
        return False


_OPERATORS: Dict[ConditionType, Callable[[str, str], bool]] = {
    ConditionType.EQUALS: lambda v, e: v == e,
    ConditionType.NOT_EQUALS: lambda v, e: v != e,
    ConditionType.CONTAINS: lambda v, e: e in v,
    ConditionType.NOT_CONTAINS: lambda v, e: e not in v,
    ConditionType.GREATER_THAN: _compare(lambda a, b: a > b),
    ConditionType.LESS_THAN: _compare(lambda a, b: a < b),
    ConditionType.GREATER_OR_EQUAL: _compare(lambda a, b: a >= b),
    ConditionType.LESS_OR_EQUAL: _compare(lambda a, b: a <= b),
    ConditionType.IS_CHECKED: lambda v, e: v in CHECKED_VALUES,
    ConditionType.IS_NOT_CHECKED: lambda v, e: v not in CHECKED_VALUES,
    ConditionType.IS_EMPTY: lambda v, e: v.strip() == "",
    ConditionType.IS_NOT_EMPTY: lambda v, e: v.strip() != "",
    ConditionType.STARTS_WITH: lambda v, e: v.startswith(e),
    ConditionType.ENDS_WITH: lambda v, e: v.endswith(e),
    ConditionType.MATCHES_REGEX: _matches,
}


def _evaluate(condition, fields: Mapping[str, object]) -> bool:
    if isinstance(condition, CompoundCondition):
        results = (_evaluate(c, fields) for c in condition.conditions)
        return all(results) if condition.operator == "and" else any(results)

    if not condition.field_id:
        return True
    source = fields.get(condition.field_id)
    value = getattr(source, "value", None)
    if not value:
        return condition.type is ConditionType.IS_EMPTY
    return _OPERATORS[condition.type](str(value), condition.value or "")


def evaluate_condition(condition: Union[SimpleCondition, CompoundCondition, dict], all_fields) -> bool:
    """Evaluate ``condition`` against the current values of ``all_fields``.

    ``and`` over an empty list is ``True`` and ``or`` over an empty list is
    ``False``.
    """
    if isinstance(condition, dict):
        try:
            condition = condition_adapter.validate_python(condition)
        except ValidationError as exc:
            logger.warning("Ignoring malformed condition: %s", exc.errors(include_url=False))
            return False
    return _evaluate(condition, field_lookup(all_fields))

"""Conditional field rules: parsing, effects and visibility.

A rule is stored as JSON on the field that owns it::

    {"condition": {...}, "action": {"type": "show"}, "targetFieldId": "12"}

The owner is visible exactly when the rule's condition holds; visibility is
recomputed every time fields are resolved and is never stored. The action
applies to ``targetFieldId``, which may be a different field than the
owner: ``setValue``, ``require`` and ``makeOptional`` are applied to the
stored fields when a signer submits values (see
``apply_persistent_effects``).
"""
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .conditions import Condition, evaluate_condition

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    SHOW = "show"
    HIDE = "hide"
    REQUIRE = "require"
    MAKE_OPTIONAL = "makeOptional"
    SET_VALUE = "setValue"


PERSISTENT_ACTIONS = frozenset({ActionType.REQUIRE, ActionType.MAKE_OPTIONAL, ActionType.SET_VALUE})


class RuleAction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: ActionType
    value: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def _as_text(cls, value):
        return value if value is None or isinstance(value, str) else str(value)


class ConditionalLogic(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    condition: Condition
    action: RuleAction
    target_field_id: str = Field(alias="targetFieldId", min_length=1)
    # written by older releases; read and ignored
    is_visible: Optional[bool] = Field(default=None, alias="isVisible")

    @field_validator("target_field_id", mode="before")
    @classmethod
    def _id_as_text(cls, value):
        return str(value) if isinstance(value, int) and not isinstance(value, bool) else value


def parse_conditional_logic(raw: Optional[str]) -> Optional[ConditionalLogic]:
    """Deserialize a stored rule; anything unusable is treated as no rule."""
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Conditional logic is not valid JSON: %r", raw)
        return None
    if not isinstance(data, dict):
        return None
    try:
        return ConditionalLogic.model_validate(data)
    except ValidationError as exc:
        logger.warning("Ignoring conditional logic without a usable rule: %s", exc.errors(include_url=False))
        return None


@dataclass(frozen=True)
class RuleEffect:
    source_field_id: str
    target_field_id: str
    action: ActionType
    condition_met: bool
    value: Optional[str] = None


def collect_rules(fields: Iterable) -> List[Tuple[str, ConditionalLogic]]:
    rules = []
    for field in fields:
        logic = parse_conditional_logic(getattr(field, "conditional_logic", None))
        if logic is not None:
            rules.append((str(field.id), logic))
    return rules


def resolve_rules(fields: Sequence) -> List[RuleEffect]:
    """Evaluate every rule carried by ``fields`` against their current values."""
    effects = []
    for owner_id, logic in collect_rules(fields):
        effects.append(RuleEffect(
            source_field_id=owner_id,
            target_field_id=logic.target_field_id,
            action=logic.action.type,
            condition_met=evaluate_condition(logic.condition, fields),
            value=logic.action.value,
        ))
    return effects


def owner_visibility(field, fields: Sequence) -> bool:
    logic = parse_conditional_logic(getattr(field, "conditional_logic", None))
    if logic is None:
        return True
    return evaluate_condition(logic.condition, fields)


def evaluate_visibility(field, all_fields: Sequence) -> bool:
    """Whether ``field`` is visible: its own rule's condition, or ``True``
    when it carries no usable rule.

    ``field`` is considered even when it is not part of ``all_fields``.
    """
    fields = list(all_fields)
    if not any(str(f.id) == str(field.id) for f in fields):
        fields.append(field)
    return owner_visibility(field, fields)


def apply_persistent_effects(fields: Sequence, effects: Optional[Iterable[RuleEffect]] = None) -> list:
    """Apply met ``setValue``/``require``/``makeOptional`` effects in place.

    Returns the fields that changed so the caller can persist them.
    """
    if effects is None:
        effects = resolve_rules(fields)
    by_id = {str(f.id): f for f in fields}
    changed = {}
    for effect in effects:
        if not effect.condition_met or effect.action not in PERSISTENT_ACTIONS:
            continue
        target = by_id.get(effect.target_field_id)
        if target is None:
            logger.warning(
                "Rule on field %s targets missing field %s",
                effect.source_field_id, effect.target_field_id,
            )
            continue
        if effect.action is ActionType.SET_VALUE:
            attr, new = "value", effect.value or ""
        else:
            attr, new = "required", effect.action is ActionType.REQUIRE
        if getattr(target, attr) != new:
            setattr(target, attr, new)
            changed[effect.target_field_id] = target
    return list(changed.values())

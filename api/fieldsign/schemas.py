import json
from pydantic import BaseModel, Field, field_validator
from typing import Dict, List, Optional, Union
from .engine.types import FieldType

class FieldIn(BaseModel):
    id: Optional[int] = None  # keep an existing field (and the ${id} references to it)
    type: FieldType
    label: Optional[str] = None
    placeholder: Optional[str] = None
    required: bool = False
    page_number: int = Field(default=1, ge=1)
    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    value: Optional[str] = None
    validation_rule: Optional[str] = None
    conditional_logic: Optional[Union[str, dict]] = None
    color: Optional[str] = None
    font_family: Optional[str] = None
    font_size: Optional[float] = Field(default=None, gt=0)
    background_color: Optional[str] = None
    border_color: Optional[str] = None
    text_color: Optional[str] = None
    options: Optional[str] = None
    signer_id: Optional[int] = None

    @field_validator("conditional_logic")
    @classmethod
    def _serialize_rule(cls, value):
        if isinstance(value, dict):
            return json.dumps(value)
        return value

class FieldsSave(BaseModel):
    fields: List[FieldIn]

class SignerSave(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)

class SignSave(BaseModel):
    values: Dict[str, Optional[str]]  # field_id -> value (text/date/checkbox/signature data URI)

class DeclineRequest(BaseModel):
    reason: Optional[str] = None

class FormulaRequest(BaseModel):
    expression: str

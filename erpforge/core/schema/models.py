"""Schema model: field definitions and entity schemas.

Schemas are plain data. They are frozen pydantic models, so every change
(adding a field, appending a select option) produces a new schema object
that the store swaps in. Drafts coming from the AI oracle or the HTTP API
are accepted in either the camelCase wire form (``menuName``, ``columns``,
``readOnly``) or the Python attribute names.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from erpforge.core.errors import InvalidSchemaError

_log = logging.getLogger("erpforge.schema")

Value = Union[str, int, float, None]
Row = Dict[str, Value]

GENERATED_FIELD_NAMES = ("id", "createdAt", "updatedAt")


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    EMAIL = "email"
    PHONE = "phone"
    DATE = "date"
    SELECT = "select"
    TEXTAREA = "textarea"


_FIELD_TYPE_VALUES = {t.value for t in FieldType}


def _optional_number(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        out = float(v)
    except (TypeError, ValueError):
        return None
    if math.isnan(out) or math.isinf(out):
        return None
    return out


class FieldValidation(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None

    @field_validator("min", "max", mode="before")
    @classmethod
    def _coerce_bound(cls, v: Any) -> Optional[float]:
        return _optional_number(v)

    @field_validator("pattern", mode="before")
    @classmethod
    def _coerce_pattern(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        s = str(v)
        return s or None

    def is_empty(self) -> bool:
        return self.min is None and self.max is None and not self.pattern


class FieldDefinition(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str
    type: FieldType = FieldType.STRING
    label: str = ""
    required: bool = False
    read_only: bool = Field(default=False, alias="readOnly")
    generated: bool = False
    placeholder: Optional[str] = None
    options: List[str] = Field(default_factory=list)
    validation: Optional[FieldValidation] = None

    @model_validator(mode="before")
    @classmethod
    def _default_label(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and not data.get("label"):
            data = {**data, "label": str(data.get("name") or "")}
        return data

    @field_validator("name", mode="before")
    @classmethod
    def _check_name(cls, v: Any) -> str:
        s = str(v if v is not None else "").strip()
        if not s:
            raise ValueError("field name must not be empty")
        return s

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, v: Any) -> Any:
        if isinstance(v, FieldType):
            return v
        s = str(v or "").strip().lower()
        if s in _FIELD_TYPE_VALUES:
            return s
        _log.warning("Unknown field type %r, falling back to string", v)
        return FieldType.STRING.value

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v else []
        return [str(o) for o in v if o is not None]

    @field_validator("validation", mode="before")
    @classmethod
    def _coerce_validation(cls, v: Any) -> Any:
        if isinstance(v, (Mapping, FieldValidation)):
            return v
        return None

    @model_validator(mode="after")
    def _select_needs_options(self) -> "FieldDefinition":
        if self.type == FieldType.SELECT and not self.options:
            raise ValueError(f"select field '{self.name}' requires a non-empty options list")
        return self

    @property
    def display_label(self) -> str:
        return self.label or self.name

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EntitySchema(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    entity_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("entityId", "menuId", "entity_id"),
        serialization_alias="entityId",
    )
    display_name: str = Field(
        default="",
        validation_alias=AliasChoices("displayName", "menuName", "display_name"),
        serialization_alias="displayName",
    )
    table_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("tableName", "table_name"),
        serialization_alias="tableName",
    )
    description: str = ""
    columns: List[FieldDefinition] = Field(
        default_factory=list,
        validation_alias=AliasChoices("columns", "fields"),
    )

    @field_validator("display_name", "description", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @model_validator(mode="after")
    def _unique_names(self) -> "EntitySchema":
        seen: set[str] = set()
        for col in self.columns:
            if col.name in seen:
                raise ValueError(f"duplicate field name: {col.name}")
            seen.add(col.name)
        return self

    def get_field(self, name: str) -> Optional[FieldDefinition]:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    @property
    def field_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def with_columns(self, columns: List[FieldDefinition]) -> "EntitySchema":
        return self.model_copy(update={"columns": list(columns)})

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _generated_templates() -> Dict[str, FieldDefinition]:
    return {
        "id": FieldDefinition(
            name="id", type=FieldType.STRING, label="ID", required=True, read_only=True, generated=True
        ),
        "createdAt": FieldDefinition(
            name="createdAt", type=FieldType.DATE, label="Created At", required=True, read_only=True, generated=True
        ),
        "updatedAt": FieldDefinition(
            name="updatedAt", type=FieldType.DATE, label="Updated At", required=True, read_only=True, generated=True
        ),
    }


def ensure_generated_fields(schema: EntitySchema) -> EntitySchema:
    """Return ``schema`` with ``id`` first and ``createdAt``/``updatedAt`` last.

    Generated fields that already exist keep their position but are forced
    read-only and generated.
    """
    templates = _generated_templates()
    present = set(schema.field_names)

    columns: List[FieldDefinition] = []
    if "id" not in present:
        columns.append(templates["id"])
    for col in schema.columns:
        if col.name in GENERATED_FIELD_NAMES and not (col.read_only and col.generated):
            col = col.model_copy(update={"read_only": True, "generated": True})
        columns.append(col)
    for name in ("createdAt", "updatedAt"):
        if name not in present:
            columns.append(templates[name])

    return schema.with_columns(columns)


def _validation_reason(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = str(err.get("msg", "invalid"))
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or str(exc)


def parse_field(raw: Any) -> FieldDefinition:
    if isinstance(raw, FieldDefinition):
        return raw
    try:
        return FieldDefinition.model_validate(raw)
    except ValidationError as exc:
        raise InvalidSchemaError(reason=_validation_reason(exc)) from exc


def schema_from_draft(draft: Union[EntitySchema, Mapping[str, Any]]) -> EntitySchema:
    """Validate a schema draft and inject the generated fields."""
    if isinstance(draft, EntitySchema):
        return ensure_generated_fields(draft)
    if not isinstance(draft, Mapping):
        raise InvalidSchemaError(reason=f"expected an object, got {type(draft).__name__}")
    try:
        schema = EntitySchema.model_validate(dict(draft))
    except ValidationError as exc:
        raise InvalidSchemaError(reason=_validation_reason(exc)) from exc
    return ensure_generated_fields(schema)

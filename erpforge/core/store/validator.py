"""Row validation and coercion.

Runs on every insert and update. The validator never rejects a row for its
content: empty strings become null, bad numbers become null, everything
else that looks wrong is kept and reported as a soft warning. Unknown
``select`` values are accepted and reported back as a ``SchemaPatch`` that
the caller applies to the schema.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from erpforge.core.observability.metrics import VALIDATION_WARNINGS_TOTAL
from erpforge.core.schema.models import EntitySchema, FieldDefinition, FieldType, Row, Value

_log = logging.getLogger("erpforge.validation")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[0-9\-+() ]+$")


@dataclass(frozen=True)
class ValidationWarning:
    field: str
    kind: str
    message: str
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "kind": self.kind, "message": self.message, "value": self.value}


@dataclass
class SchemaPatch:
    """Select options observed in a row but missing from the schema."""

    new_options: Dict[str, List[str]] = field(default_factory=dict)

    def add_option(self, field_name: str, option: str) -> None:
        opts = self.new_options.setdefault(field_name, [])
        if option not in opts:
            opts.append(option)

    def is_empty(self) -> bool:
        return not any(self.new_options.values())

    def to_dict(self) -> Dict[str, List[str]]:
        return {k: list(v) for k, v in self.new_options.items() if v}


@dataclass
class ValidationResult:
    row: Row
    warnings: List[ValidationWarning] = field(default_factory=list)
    schema_patch: SchemaPatch = field(default_factory=SchemaPatch)


def _is_number(v: Any) -> bool:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return False
    return not (isinstance(v, float) and (math.isnan(v) or math.isinf(v)))


def coerce_number(v: Any) -> Optional[float | int]:
    """Return ``v`` as an int/float, or None when it is not numeric."""
    if _is_number(v):
        return v
    if not isinstance(v, str):
        return None
    s = v.strip()
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        pass
    try:
        out = float(s)
    except ValueError:
        return None
    if math.isnan(out) or math.isinf(out):
        return None
    return out


def _scalar(v: Any) -> Value:
    if isinstance(v, bool):
        return str(v).lower()
    if v is None or isinstance(v, (str, int, float)):
        return v
    if isinstance(v, (dict, list, tuple)):
        return json.dumps(v, ensure_ascii=False, default=str)
    return str(v)


class _Collector:
    def __init__(self, entity_id: Optional[str]):
        self.entity_id = entity_id
        self.warnings: List[ValidationWarning] = []

    def warn(self, col: FieldDefinition, kind: str, message: str, value: Any = None) -> None:
        self.warnings.append(ValidationWarning(field=col.name, kind=kind, message=message, value=value))
        VALIDATION_WARNINGS_TOTAL.labels(kind=kind).inc()
        _log.warning("entity=%s field=%s %s", self.entity_id or "-", col.display_label, message)


def _check_rules(col: FieldDefinition, value: Value, out: _Collector) -> None:
    rules = col.validation
    if rules is None or rules.is_empty():
        return
    if _is_number(value):
        if rules.min is not None and value < rules.min:
            out.warn(col, "below_min", f"value {value} is below min {rules.min:g}", value)
        if rules.max is not None and value > rules.max:
            out.warn(col, "above_max", f"value {value} is above max {rules.max:g}", value)
    if rules.pattern:
        try:
            matched = re.search(rules.pattern, str(value)) is not None
        except re.error as exc:
            out.warn(col, "bad_pattern", f"pattern {rules.pattern!r} is not a valid regex: {exc}")
            return
        if not matched:
            out.warn(col, "pattern_mismatch", f"value {value!r} does not match {rules.pattern!r}", value)


def validate_row(
    schema: EntitySchema,
    raw_row: Mapping[str, Any],
    *,
    entity_id: Optional[str] = None,
) -> ValidationResult:
    """Normalize ``raw_row`` against ``schema``.

    Keys that are not in the schema pass through untouched. The input
    mapping is not modified.
    """
    row: Row = dict(raw_row)
    out = _Collector(entity_id or schema.entity_id)
    patch = SchemaPatch()

    for col in schema.columns:
        if col.name not in row:
            if col.required and not col.generated:
                out.warn(col, "missing_required", "required field missing, stored as null")
                row[col.name] = None
            continue

        value = _scalar(row[col.name])
        if value == "":
            value = None
        row[col.name] = value
        if value is None:
            continue

        if col.type == FieldType.NUMBER:
            num = coerce_number(value)
            if num is None:
                out.warn(col, "invalid_number", f"invalid number {value!r}, stored as null", value)
                row[col.name] = None
                continue
            value = num
            row[col.name] = num
        elif col.type == FieldType.EMAIL:
            if not EMAIL_RE.match(str(value)):
                out.warn(col, "invalid_email", f"invalid email {value!r}", value)
        elif col.type == FieldType.PHONE:
            if not PHONE_RE.match(str(value)):
                out.warn(col, "invalid_phone", f"invalid phone {value!r}", value)
        elif col.type == FieldType.SELECT:
            option = str(value)
            if option not in col.options:
                out.warn(col, "new_option", f"new option {option!r} added", value)
                patch.add_option(col.name, option)

        _check_rules(col, value, out)

    return ValidationResult(row=row, warnings=out.warnings, schema_patch=patch)


def apply_schema_patch(schema: EntitySchema, patch: SchemaPatch) -> EntitySchema:
    """Append patched select options. Options are never removed."""
    if patch.is_empty():
        return schema
    columns: List[FieldDefinition] = []
    for col in schema.columns:
        extra = [o for o in patch.new_options.get(col.name, []) if o not in col.options]
        if extra:
            col = col.model_copy(update={"options": [*col.options, *extra]})
        columns.append(col)
    return schema.with_columns(columns)

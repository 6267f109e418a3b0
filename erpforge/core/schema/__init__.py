from erpforge.core.schema.models import (
    GENERATED_FIELD_NAMES,
    EntitySchema,
    FieldDefinition,
    FieldType,
    FieldValidation,
    Row,
    Value,
    ensure_generated_fields,
    parse_field,
    schema_from_draft,
)
from erpforge.core.schema.naming import derive_entity_id, slugify_label

__all__ = [
    "GENERATED_FIELD_NAMES",
    "EntitySchema",
    "FieldDefinition",
    "FieldType",
    "FieldValidation",
    "Row",
    "Value",
    "derive_entity_id",
    "ensure_generated_fields",
    "parse_field",
    "schema_from_draft",
    "slugify_label",
]

from __future__ import annotations

import pytest

from erpforge.core.errors import InvalidSchemaError
from erpforge.core.schema import (
    EntitySchema,
    FieldType,
    derive_entity_id,
    ensure_generated_fields,
    parse_field,
    schema_from_draft,
    slugify_label,
)


def test_generated_fields_are_injected_in_order():
    schema = schema_from_draft({"menuName": "Users", "columns": [{"name": "name", "type": "string"}]})

    assert schema.field_names == ["id", "name", "createdAt", "updatedAt"]
    for name in ("id", "createdAt", "updatedAt"):
        col = schema.get_field(name)
        assert col.read_only and col.generated
    assert schema.get_field("id").type == FieldType.STRING
    assert schema.get_field("createdAt").type == FieldType.DATE


def test_existing_generated_field_is_forced_read_only():
    schema = ensure_generated_fields(
        EntitySchema.model_validate({"columns": [{"name": "id", "type": "string", "readOnly": False}]})
    )

    assert schema.field_names == ["id", "createdAt", "updatedAt"]
    assert schema.get_field("id").read_only is True


def test_draft_accepts_wire_and_python_names():
    a = schema_from_draft({"menuId": "users", "menuName": "Users", "fields": []})
    b = schema_from_draft({"entity_id": "users", "display_name": "Users", "columns": []})

    assert a.entity_id == b.entity_id == "users"
    assert a.display_name == b.display_name == "Users"
    assert a.to_dict()["entityId"] == "users"


def test_unknown_type_falls_back_to_string():
    col = parse_field({"name": "memo", "type": "richtext"})
    assert col.type == FieldType.STRING
    assert col.label == "memo"


def test_select_without_options_is_invalid():
    with pytest.raises(InvalidSchemaError):
        parse_field({"name": "status", "type": "select"})


def test_duplicate_field_names_are_invalid():
    with pytest.raises(InvalidSchemaError) as exc:
        schema_from_draft({"columns": [{"name": "a"}, {"name": "a"}]})
    assert "duplicate" in exc.value.reason


def test_non_mapping_draft_is_invalid():
    with pytest.raises(InvalidSchemaError):
        schema_from_draft(["not", "a", "schema"])


def test_field_round_trips_through_wire_form():
    col = parse_field({"name": "age", "type": "number", "readOnly": True, "validation": {"min": "0", "max": 10}})
    out = col.to_dict()

    assert out["readOnly"] is True
    assert out["validation"] == {"min": 0.0, "max": 10.0}
    assert parse_field(out) == col


@pytest.mark.parametrize(
    "label,expected",
    [
        ("User Registration", "user_registration"),
        ("  Sales   Orders ", "sales_orders"),
        ("사용자 관리", "사용자_관리"),
        ("Orders (2024)!", "orders_2024"),
    ],
)
def test_slugify_label(label, expected):
    assert slugify_label(label) == expected


def test_derive_entity_id_appends_suffix_on_collision():
    existing = {"users", "users_1"}
    assert derive_entity_id("Users", existing) == "users_2"
    assert derive_entity_id("Orders", existing) == "orders"
    assert derive_entity_id("!!!", existing) == "entity"

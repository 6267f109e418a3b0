"""Structural errors raised by the store and schema layer.

Content problems (bad emails, non-numeric numbers, unknown select options)
never raise; they become soft warnings. Only missing identity or a broken
schema structure ends up here.
"""

from __future__ import annotations


class StoreError(Exception):
    pass


class EntityNotFoundError(StoreError):
    def __init__(self, *, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"Entity not found: {entity_id}")


class RowNotFoundError(StoreError):
    def __init__(self, *, entity_id: str, row_id: str):
        self.entity_id = entity_id
        self.row_id = row_id
        super().__init__(f"Row not found: {row_id} (entity={entity_id})")


class DuplicateRowIdError(StoreError):
    def __init__(self, *, entity_id: str, row_id: str):
        self.entity_id = entity_id
        self.row_id = row_id
        super().__init__(f"Row id already exists: {row_id} (entity={entity_id})")


class InvalidRowError(StoreError):
    def __init__(self, *, entity_id: str, reason: str):
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Invalid row for {entity_id}: {reason}")


class SchemaConflictError(StoreError):
    def __init__(self, message: str, *, entity_id: str | None = None, field_name: str | None = None):
        self.entity_id = entity_id
        self.field_name = field_name
        super().__init__(message)


class InvalidSchemaError(StoreError):
    def __init__(self, *, reason: str):
        self.reason = reason
        super().__init__(f"Invalid schema: {reason}")

"""In-memory entity store.

One ``EntityStore`` is built at process start and handed to whoever needs
it. It owns every entity (schema + rows) and tracks which entities have
unsaved changes. Request handlers run in a thread pool and the persistence
ticker runs in its own thread, so every public method takes the store lock.
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union
from uuid import uuid4

from erpforge.core.errors import (
    DuplicateRowIdError,
    EntityNotFoundError,
    InvalidRowError,
    RowNotFoundError,
    SchemaConflictError,
)
from erpforge.core.observability.metrics import ROWS_WRITTEN_TOTAL, inc_named
from erpforge.core.schema.models import (
    GENERATED_FIELD_NAMES,
    EntitySchema,
    FieldDefinition,
    Row,
    ensure_generated_fields,
    parse_field,
    schema_from_draft,
)
from erpforge.core.schema.naming import derive_entity_id
from erpforge.core.store.validator import SchemaPatch, apply_schema_patch, validate_row

_log = logging.getLogger("erpforge.store")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


@dataclass
class Entity:
    id: str
    schema: EntitySchema
    rows: List[Row] = field(default_factory=list)
    dirty: bool = False
    created_at: str = field(default_factory=_utc_now_iso)
    updated_at: str = field(default_factory=_utc_now_iso)
    revision: int = 0
    row_ids: Set[str] = field(default_factory=set, repr=False)

    @property
    def name(self) -> str:
        return self.schema.display_name or self.id

    @property
    def table_name(self) -> str:
        return self.schema.table_name or self.id

    def metadata(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "tableName": self.table_name,
            "description": self.schema.description,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def detached(self, *, with_rows: bool = True) -> "Entity":
        """Copy safe to hand out of the store."""
        rows = [dict(r) for r in self.rows] if with_rows else []
        return Entity(
            id=self.id,
            schema=self.schema,
            rows=rows,
            dirty=self.dirty,
            created_at=self.created_at,
            updated_at=self.updated_at,
            revision=self.revision,
            row_ids=set(self.row_ids) if with_rows else set(),
        )


@dataclass
class FailedRow:
    input: Any
    error_message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"input": self.input, "errorMessage": self.error_message}


@dataclass
class BulkInsertResult:
    succeeded: List[Row] = field(default_factory=list)
    failed: List[FailedRow] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "failed": [f.to_dict() for f in self.failed],
        }


@dataclass(frozen=True)
class PendingWrite:
    """A dirty entity (``entity`` set) or a deleted one (``entity`` is None)."""

    entity_id: str
    revision: int
    entity: Optional[Entity]


def _row_matches(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    for key, expected in filters.items():
        actual = row.get(key)
        if isinstance(expected, str) and isinstance(actual, str):
            if expected.lower() not in actual.lower():
                return False
        elif actual != expected:
            return False
    return True


class EntityStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entities: Dict[str, Entity] = {}
        # entity_id -> revision token of the deletion
        self._deleted: Dict[str, int] = {}
        self._clock = itertools.count(1)

    # ------------------------------------------------------------
    # internals (call with the lock held)
    # ------------------------------------------------------------
    def _require(self, entity_id: str) -> Entity:
        entity = self._entities.get(entity_id)
        if entity is None:
            raise EntityNotFoundError(entity_id=entity_id)
        return entity

    def _touch(self, entity: Entity, *, schema_changed: bool = False) -> None:
        entity.dirty = True
        entity.revision = next(self._clock)
        if schema_changed:
            entity.updated_at = _utc_now_iso()

    def _apply_patch(self, entity: Entity, patch: SchemaPatch) -> bool:
        if patch.is_empty():
            return False
        entity.schema = apply_schema_patch(entity.schema, patch)
        _log.info("Select options extended: %s %s", entity.id, patch.to_dict())
        return True

    @staticmethod
    def _index_of(entity: Entity, row_id: str) -> int:
        for i, row in enumerate(entity.rows):
            if row.get("id") == row_id:
                return i
        return -1

    # ------------------------------------------------------------
    # entities
    # ------------------------------------------------------------
    def create_entity(self, draft: Union[EntitySchema, Mapping[str, Any]]) -> Entity:
        schema = schema_from_draft(draft)
        with self._lock:
            base = schema.entity_id or schema.display_name or schema.table_name or ""
            entity_id = derive_entity_id(base, self._entities)
            schema = schema.model_copy(
                update={
                    "entity_id": entity_id,
                    "display_name": schema.display_name or entity_id,
                    "table_name": schema.table_name or entity_id,
                }
            )
            entity = Entity(id=entity_id, schema=schema)
            self._entities[entity_id] = entity
            self._deleted.pop(entity_id, None)
            self._touch(entity)
            inc_named("entities_created")
            _log.info("Entity created: %s", entity_id)
            return entity.detached()

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        with self._lock:
            entity = self._entities.get(entity_id)
            return entity.detached() if entity is not None else None

    def get_schema(self, entity_id: str) -> Optional[EntitySchema]:
        with self._lock:
            entity = self._entities.get(entity_id)
            return entity.schema if entity is not None else None

    def list_entities(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [e.metadata() for e in self._entities.values()]

    def delete_entity(self, entity_id: str) -> bool:
        """Drop an entity and its rows. Returns whether it existed."""
        with self._lock:
            existed = self._entities.pop(entity_id, None) is not None
            self._deleted[entity_id] = next(self._clock)
            if existed:
                inc_named("entities_deleted")
                _log.info("Entity deleted: %s", entity_id)
            return existed

    # ------------------------------------------------------------
    # schema edits
    # ------------------------------------------------------------
    def _set_columns(self, entity: Entity, columns: Sequence[FieldDefinition]) -> EntitySchema:
        seen: Set[str] = set()
        for col in columns:
            if col.name in seen:
                raise SchemaConflictError(
                    f"duplicate field name: {col.name}", entity_id=entity.id, field_name=col.name
                )
            seen.add(col.name)
        entity.schema = ensure_generated_fields(entity.schema.with_columns(list(columns)))
        self._touch(entity, schema_changed=True)
        return entity.schema

    def replace_fields(self, entity_id: str, fields: Iterable[Any]) -> EntitySchema:
        columns = [parse_field(f) for f in fields]
        with self._lock:
            entity = self._require(entity_id)
            schema = self._set_columns(entity, columns)
            _log.info("Schema replaced: %s (%d fields)", entity_id, len(schema.columns))
            return schema

    def add_field(self, entity_id: str, raw_field: Any) -> EntitySchema:
        col = parse_field(raw_field)
        with self._lock:
            entity = self._require(entity_id)
            if entity.schema.get_field(col.name) is not None:
                raise SchemaConflictError(
                    f"field already exists: {col.name}", entity_id=entity_id, field_name=col.name
                )
            columns = list(entity.schema.columns)
            # keep createdAt/updatedAt at the tail
            tail = next(
                (i for i, c in enumerate(columns) if c.generated and c.name != "id"),
                len(columns),
            )
            columns.insert(tail, col)
            schema = self._set_columns(entity, columns)
            _log.info("Field added: %s.%s", entity_id, col.name)
            return schema

    def remove_field(self, entity_id: str, field_name: str) -> EntitySchema:
        if field_name in GENERATED_FIELD_NAMES:
            raise SchemaConflictError(
                f"generated field cannot be removed: {field_name}", entity_id=entity_id, field_name=field_name
            )
        with self._lock:
            entity = self._require(entity_id)
            if entity.schema.get_field(field_name) is None:
                return entity.schema
            columns = [c for c in entity.schema.columns if c.name != field_name]
            schema = self._set_columns(entity, columns)
            _log.info("Field removed: %s.%s", entity_id, field_name)
            return schema

    def apply_schema_patch(self, entity_id: str, patch: SchemaPatch) -> EntitySchema:
        with self._lock:
            entity = self._require(entity_id)
            if self._apply_patch(entity, patch):
                self._touch(entity, schema_changed=True)
            return entity.schema

    # ------------------------------------------------------------
    # rows
    # ------------------------------------------------------------
    def insert(self, entity_id: str, raw_row: Mapping[str, Any]) -> Row:
        with self._lock:
            entity = self._require(entity_id)
            if not isinstance(raw_row, Mapping):
                raise InvalidRowError(entity_id=entity_id, reason=f"expected an object, got {type(raw_row).__name__}")

            supplied = raw_row.get("id")
            row_id = str(supplied) if supplied not in (None, "") else str(uuid4())
            if row_id in entity.row_ids:
                raise DuplicateRowIdError(entity_id=entity_id, row_id=row_id)

            now = _utc_now_iso()
            candidate: Dict[str, Any] = {"id": row_id}
            candidate.update((k, v) for k, v in raw_row.items() if k != "id")
            candidate["createdAt"] = now
            candidate["updatedAt"] = now

            result = validate_row(entity.schema, candidate, entity_id=entity_id)
            self._apply_patch(entity, result.schema_patch)

            entity.rows.append(result.row)
            entity.row_ids.add(row_id)
            self._touch(entity)
            ROWS_WRITTEN_TOTAL.labels(operation="insert").inc()
            _log.debug("Row inserted: %s (%s)", entity_id, row_id)
            return dict(result.row)

    def query(self, entity_id: str, filters: Optional[Mapping[str, Any]] = None) -> List[Row]:
        with self._lock:
            entity = self._require(entity_id)
            if not filters:
                return [dict(r) for r in entity.rows]
            return [dict(r) for r in entity.rows if _row_matches(r, filters)]

    def find_by_id(self, entity_id: str, row_id: str) -> Optional[Row]:
        with self._lock:
            entity = self._require(entity_id)
            idx = self._index_of(entity, row_id)
            return dict(entity.rows[idx]) if idx >= 0 else None

    def update(self, entity_id: str, row_id: str, updates: Mapping[str, Any]) -> Row:
        with self._lock:
            entity = self._require(entity_id)
            idx = self._index_of(entity, row_id)
            if idx < 0:
                raise RowNotFoundError(entity_id=entity_id, row_id=row_id)
            if not isinstance(updates, Mapping):
                raise InvalidRowError(entity_id=entity_id, reason=f"expected an object, got {type(updates).__name__}")

            current = entity.rows[idx]
            merged: Dict[str, Any] = {**current, **updates}
            merged["id"] = current["id"]
            merged["createdAt"] = current.get("createdAt")
            merged["updatedAt"] = _utc_now_iso()

            result = validate_row(entity.schema, merged, entity_id=entity_id)
            self._apply_patch(entity, result.schema_patch)

            entity.rows[idx] = result.row
            self._touch(entity)
            ROWS_WRITTEN_TOTAL.labels(operation="update").inc()
            _log.debug("Row updated: %s (%s)", entity_id, row_id)
            return dict(result.row)

    def delete(self, entity_id: str, row_id: str) -> None:
        with self._lock:
            entity = self._require(entity_id)
            idx = self._index_of(entity, row_id)
            if idx < 0:
                raise RowNotFoundError(entity_id=entity_id, row_id=row_id)
            del entity.rows[idx]
            entity.row_ids.discard(row_id)
            self._touch(entity)
            ROWS_WRITTEN_TOTAL.labels(operation="delete").inc()
            _log.debug("Row deleted: %s (%s)", entity_id, row_id)

    def bulk_insert(self, entity_id: str, raw_rows: Iterable[Any]) -> BulkInsertResult:
        """Insert rows one by one; a failing row is recorded and the batch goes on."""
        result = BulkInsertResult()
        for raw in raw_rows:
            try:
                result.succeeded.append(self.insert(entity_id, raw))
            except Exception as exc:
                result.failed.append(FailedRow(input=raw, error_message=str(exc)))
        _log.info(
            "Bulk insert: %s %d succeeded, %d failed",
            entity_id,
            len(result.succeeded),
            len(result.failed),
        )
        return result

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            per_entity = [
                {"id": e.id, "name": e.name, "rowCount": len(e.rows)} for e in self._entities.values()
            ]
            return {
                "entityCount": len(per_entity),
                "totalRowCount": sum(p["rowCount"] for p in per_entity),
                "perEntity": per_entity,
            }

    # ------------------------------------------------------------
    # persistence hooks
    # ------------------------------------------------------------
    def restore_entity(
        self,
        entity_id: str,
        schema: EntitySchema,
        rows: Iterable[Mapping[str, Any]],
        *,
        created_at: Optional[str] = None,
        updated_at: Optional[str] = None,
    ) -> Entity:
        """Put a persisted entity back without marking it dirty."""
        schema = ensure_generated_fields(schema)
        if schema.entity_id != entity_id:
            schema = schema.model_copy(update={"entity_id": entity_id})
        restored: List[Row] = []
        ids: Set[str] = set()
        for raw in rows:
            if not isinstance(raw, Mapping):
                continue
            row = copy.deepcopy(dict(raw))
            row_id = row.get("id")
            if row_id in (None, ""):
                row_id = uuid4()
            row_id = str(row_id)
            row["id"] = row_id
            if row_id in ids:
                _log.warning("Dropping duplicate row id on restore: %s (%s)", entity_id, row_id)
                continue
            ids.add(row_id)
            restored.append(row)

        now = _utc_now_iso()
        entity = Entity(
            id=entity_id,
            schema=schema,
            rows=restored,
            dirty=False,
            created_at=created_at or now,
            updated_at=updated_at or created_at or now,
            row_ids=ids,
        )
        with self._lock:
            entity.revision = next(self._clock)
            self._entities[entity_id] = entity
            self._deleted.pop(entity_id, None)
        return entity.detached(with_rows=False)

    def pending_writes(self) -> List[PendingWrite]:
        """Detached copies of every dirty entity plus every deleted id."""
        with self._lock:
            out = [
                PendingWrite(entity_id=e.id, revision=e.revision, entity=e.detached())
                for e in self._entities.values()
                if e.dirty
            ]
            out.extend(
                PendingWrite(entity_id=eid, revision=token, entity=None)
                for eid, token in self._deleted.items()
                if eid not in self._entities
            )
            return out

    def mark_clean(self, entity_id: str, revision: int) -> bool:
        """Clear the dirty flag if nothing changed since ``revision`` was captured."""
        with self._lock:
            entity = self._entities.get(entity_id)
            if entity is not None:
                if entity.revision == revision:
                    entity.dirty = False
                    return True
                return False
            if self._deleted.get(entity_id) == revision:
                del self._deleted[entity_id]
                return True
            return False

    def dirty_ids(self) -> List[str]:
        with self._lock:
            ids = [e.id for e in self._entities.values() if e.dirty]
            ids.extend(eid for eid in self._deleted if eid not in self._entities)
            return ids

    def has_pending(self) -> bool:
        with self._lock:
            return bool(self._deleted) or any(e.dirty for e in self._entities.values())

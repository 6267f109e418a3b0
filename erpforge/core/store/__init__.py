from erpforge.core.store.entity_store import BulkInsertResult, Entity, EntityStore, FailedRow, PendingWrite
from erpforge.core.store.persistence import PersistenceManager, SnapshotReport
from erpforge.core.store.validator import SchemaPatch, ValidationResult, ValidationWarning, validate_row

__all__ = [
    "BulkInsertResult",
    "Entity",
    "EntityStore",
    "FailedRow",
    "PendingWrite",
    "PersistenceManager",
    "SchemaPatch",
    "SnapshotReport",
    "ValidationResult",
    "ValidationWarning",
    "validate_row",
]

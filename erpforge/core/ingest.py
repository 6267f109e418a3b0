"""Ingestion flow shared by file upload and bulk import with foreign headers."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from erpforge.core.errors import EntityNotFoundError
from erpforge.core.reconcile.reconciler import ColumnReconciler, apply_matches
from erpforge.core.store.entity_store import EntityStore

_log = logging.getLogger("erpforge.ingest")


def ingest_records(
    store: EntityStore,
    reconciler: ColumnReconciler,
    entity_id: str,
    records: Sequence[Mapping[str, Any]],
    *,
    labels: Optional[Sequence[str]] = None,
) -> Dict[str, Any]:
    """Reconcile headers against the entity schema, rename keys and bulk insert.

    ``labels`` is the header row of the source file. Without it the labels
    are every key seen in any record, in first-seen order. Returns the
    matches used, insert/failure counts and the full bulk-insert result.
    """
    schema = store.get_schema(entity_id)
    if schema is None:
        raise EntityNotFoundError(entity_id=entity_id)

    headers: List[str] = list(labels) if labels is not None else _seen_keys(records)
    matches = reconciler.reconcile(headers, schema)
    transformed = apply_matches(records, matches)

    _log.info("Ingesting %d rows into %s (%d columns matched)", len(transformed), entity_id, len(matches))
    result = store.bulk_insert(entity_id, transformed)
    return {
        "matches": matches,
        "inserted": len(result.succeeded),
        "failed": len(result.failed),
        "result": result,
    }


def _seen_keys(records: Sequence[Mapping[str, Any]]) -> List[str]:
    keys: Dict[str, None] = {}
    for record in records:
        if isinstance(record, Mapping):
            keys.update((str(k), None) for k in record)
    return list(keys)

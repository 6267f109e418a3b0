"""Snapshot persistence for the entity store.

One JSON artifact per entity, ``<data_dir>/<entity_id>.json``::

    {"menu": {id, name, tableName, description, createdAt, updatedAt},
     "schema": {...},
     "data": [row, ...]}

Only dirty entities are written. Deleted entities have their artifact
removed. Writes go to a temp file first and are swapped in with
``Path.replace``. A crash loses at most one persist interval of changes.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from erpforge.core.observability.metrics import SNAPSHOT_WRITES_TOTAL
from erpforge.core.schema.models import EntitySchema
from erpforge.core.store.entity_store import Entity, EntityStore

_log = logging.getLogger("erpforge.persistence")

ARTIFACT_SUFFIX = ".json"


def entity_to_artifact(entity: Entity) -> Dict[str, Any]:
    return {
        "menu": entity.metadata(),
        "schema": entity.schema.to_dict(),
        "data": entity.rows,
    }


def _atomic_write(path: Path, obj: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(obj, indent=2, ensure_ascii=False, default=str), encoding="utf-8")
    tmp.replace(path)


@dataclass
class SnapshotReport:
    written: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {"written": self.written, "deleted": self.deleted, "failed": self.failed}


@dataclass
class LoadReport:
    loaded: List[str] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)


class PersistenceManager:
    def __init__(
        self,
        store: EntityStore,
        *,
        data_dir: Path,
        interval_seconds: float = 60.0,
    ):
        self.store = store
        self.data_dir = Path(data_dir)
        self.interval_seconds = float(interval_seconds)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        # serializes flush() between the ticker and shutdown
        self._flush_lock = threading.Lock()

    def artifact_path(self, entity_id: str) -> Path:
        return self.data_dir / f"{entity_id}{ARTIFACT_SUFFIX}"

    # ------------------------------------------------------------
    # load
    # ------------------------------------------------------------
    def load(self) -> LoadReport:
        """Rebuild the store from every artifact in ``data_dir``.

        Unreadable or malformed artifacts are skipped with a warning.
        """
        report = LoadReport()
        self.data_dir.mkdir(parents=True, exist_ok=True)

        for path in sorted(self.data_dir.glob(f"*{ARTIFACT_SUFFIX}")):
            entity_id = path.stem
            try:
                obj = json.loads(path.read_text(encoding="utf-8"))
                self._restore(entity_id, obj)
            except (OSError, ValueError, TypeError, ValidationError) as exc:
                report.skipped[entity_id] = str(exc)
                _log.warning("Failed to load %s: %s", path.name, exc)
                continue
            report.loaded.append(entity_id)

        _log.info("Loaded %d entities from %s (%d skipped)", len(report.loaded), self.data_dir, len(report.skipped))
        return report

    def _restore(self, entity_id: str, obj: Any) -> None:
        if not isinstance(obj, dict):
            raise ValueError(f"artifact must be an object, got {type(obj).__name__}")
        raw_schema = obj.get("schema")
        if not isinstance(raw_schema, dict):
            raise ValueError("artifact has no schema object")
        meta = obj.get("menu") if isinstance(obj.get("menu"), dict) else {}
        rows = obj.get("data") or []
        if not isinstance(rows, list):
            raise ValueError("artifact data must be a list")

        schema = EntitySchema.model_validate(raw_schema)
        if not schema.display_name and meta.get("name"):
            schema = schema.model_copy(update={"display_name": str(meta["name"])})
        self.store.restore_entity(
            entity_id,
            schema,
            rows,
            created_at=meta.get("createdAt"),
            updated_at=meta.get("updatedAt"),
        )

    # ------------------------------------------------------------
    # snapshot
    # ------------------------------------------------------------
    def flush(self) -> SnapshotReport:
        """Write every dirty entity and remove artifacts of deleted ones.

        An entity stays dirty when its write fails or when it changed while
        the write was in flight; the next tick picks it up again.
        """
        report = SnapshotReport()
        with self._flush_lock:
            pending = self.store.pending_writes()
            if not pending:
                return report

            for item in pending:
                path = self.artifact_path(item.entity_id)
                try:
                    if item.entity is not None:
                        _atomic_write(path, entity_to_artifact(item.entity))
                        report.written.append(item.entity_id)
                    else:
                        path.unlink(missing_ok=True)
                        report.deleted.append(item.entity_id)
                except (OSError, TypeError, ValueError) as exc:
                    report.failed[item.entity_id] = str(exc)
                    SNAPSHOT_WRITES_TOTAL.labels(outcome="failed").inc()
                    _log.error("Persist failed for %s: %s", item.entity_id, exc)
                    continue
                SNAPSHOT_WRITES_TOTAL.labels(outcome="deleted" if item.entity is None else "written").inc()
                self.store.mark_clean(item.entity_id, item.revision)

        _log.info(
            "Persisted %d entities, removed %d, %d failed",
            len(report.written),
            len(report.deleted),
            len(report.failed),
        )
        return report

    # ------------------------------------------------------------
    # ticker
    # ------------------------------------------------------------
    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            if not self.store.has_pending():
                continue
            try:
                self.flush()
            except Exception:
                # retried on the next tick
                _log.exception("Auto-persist failed")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="erpforge-persist", daemon=True)
        self._thread.start()
        _log.info("Auto-persist enabled (interval: %.1fs)", self.interval_seconds)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout=timeout)
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def shutdown(self) -> Optional[SnapshotReport]:
        """Stop the ticker and run one last snapshot. Errors are logged, not raised."""
        self.stop()
        try:
            return self.flush()
        except Exception:
            _log.exception("Final persist failed")
            return None

from __future__ import annotations

from collections import Counter
from typing import Dict

from prometheus_client import Counter as PromCounter

# Named counters (in-process, JSON snapshot)
_NAMED = Counter()

ROWS_WRITTEN_TOTAL = PromCounter(
    "erpforge_rows_written_total",
    "Rows written to the entity store",
    ["operation"],
)

VALIDATION_WARNINGS_TOTAL = PromCounter(
    "erpforge_validation_warnings_total",
    "Soft validation warnings raised while coercing rows",
    ["kind"],
)

COLUMN_MATCHES_TOTAL = PromCounter(
    "erpforge_column_matches_total",
    "Column matches produced by the reconciler",
    ["source"],
)

SNAPSHOT_WRITES_TOTAL = PromCounter(
    "erpforge_snapshot_writes_total",
    "Entity snapshot writes/deletes",
    ["outcome"],
)

AI_TOKENS_TOTAL = PromCounter(
    "erpforge_ai_tokens_total",
    "LLM tokens consumed through the gateway",
    ["task", "kind"],
)


def reset_metrics() -> None:
    """
    Test helper: clears the named counters to avoid cross-test leakage.
    """
    _NAMED.clear()


def inc_named(name: str, value: int = 1) -> None:
    if not name:
        return
    _NAMED[name] += int(value)


def snapshot_named() -> Dict[str, int]:
    return dict(_NAMED)

from erpforge.core.reconcile.reconciler import (
    ColumnMatcher,
    ColumnReconciler,
    apply_matches,
    normalize_targets,
)
from erpforge.core.reconcile.synonyms import SYNONYMS, load_synonym_overrides, load_synonyms

__all__ = [
    "ColumnMatcher",
    "ColumnReconciler",
    "SYNONYMS",
    "apply_matches",
    "load_synonym_overrides",
    "load_synonyms",
    "normalize_targets",
]

"""Column reconciliation: spreadsheet/extraction labels -> schema field names.

Two passes. The rule pass tries, for every source label, an exact
name/label match against all targets (1.0), then the synonym table (0.9),
then substring containment (0.8). Generated fields (``id``, ``createdAt``,
``updatedAt``) are matched by exact name or label only and are never offered
to the AI matcher. Labels left over go to the AI matcher in one call. A
failing matcher costs the AI matches only; the rule matches are always
returned.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from erpforge.core.ai.models import MIN_MATCH_CONFIDENCE, ColumnMatch, TargetField
from erpforge.core.ai.oracle import targets_from_schema
from erpforge.core.observability.metrics import COLUMN_MATCHES_TOTAL, inc_named
from erpforge.core.reconcile.synonyms import SYNONYMS, SynonymTable
from erpforge.core.schema.models import GENERATED_FIELD_NAMES, EntitySchema

_log = logging.getLogger("erpforge.reconcile")

EXACT_CONFIDENCE = 1.0
SYNONYM_CONFIDENCE = 0.9
SUBSTRING_CONFIDENCE = 0.8

Targets = Union[EntitySchema, Sequence[Union[TargetField, Mapping[str, Any]]]]


class ColumnMatcher(Protocol):
    def match_columns(self, unmatched: Sequence[str], targets: Sequence[TargetField]) -> List[ColumnMatch]:
        ...


def _norm(s: Any) -> str:
    return str(s if s is not None else "").strip().lower()


def _contains_either(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return a in b or b in a


def _is_generated(target: TargetField) -> bool:
    return target.name in GENERATED_FIELD_NAMES


def normalize_targets(targets: Targets) -> List[TargetField]:
    """Targets from a schema or a list of ``{name, label}``."""
    if isinstance(targets, EntitySchema):
        return targets_from_schema(targets)
    out: List[TargetField] = []
    for t in targets:
        if isinstance(t, TargetField):
            out.append(t)
        else:
            out.append(TargetField(name=str(t["name"]), label=str(t.get("label") or "")))
    return out


class ColumnReconciler:
    def __init__(self, matcher: Optional[ColumnMatcher] = None, *, synonyms: Optional[SynonymTable] = None):
        self.matcher = matcher
        table = synonyms if synonyms is not None else SYNONYMS
        self.synonyms: Dict[str, List[str]] = {_norm(k): [_norm(w) for w in v if _norm(w)] for k, v in table.items()}

    # ------------------------------------------------------------
    # rule pass
    # ------------------------------------------------------------
    def _exact(self, src: str, target: TargetField) -> bool:
        return src == _norm(target.name) or src == _norm(target.label)

    def _synonym(self, src: str, target: TargetField) -> bool:
        words = self.synonyms.get(_norm(target.name), [])
        return any(_contains_either(src, w) for w in words)

    def _substring(self, src: str, target: TargetField) -> bool:
        return _contains_either(src, _norm(target.name)) or _contains_either(src, _norm(target.label))

    def rule_match(self, source: str, targets: Sequence[TargetField]) -> Optional[ColumnMatch]:
        src = _norm(source)
        if not src:
            return None
        for target in targets:
            if self._exact(src, target):
                return ColumnMatch(source_label=source, target_field=target.name, confidence=EXACT_CONFIDENCE)
        editable = [t for t in targets if not _is_generated(t)]
        for check, confidence in ((self._synonym, SYNONYM_CONFIDENCE), (self._substring, SUBSTRING_CONFIDENCE)):
            for target in editable:
                if check(src, target):
                    return ColumnMatch(source_label=source, target_field=target.name, confidence=confidence)
        return None

    def rule_pass(self, sources: Iterable[str], targets: Sequence[TargetField]) -> Tuple[List[ColumnMatch], List[str]]:
        matches: List[ColumnMatch] = []
        unmatched: List[str] = []
        for source in dict.fromkeys(str(s) for s in sources if s is not None):
            m = self.rule_match(source, targets)
            if m is not None:
                matches.append(m)
            elif _norm(source):
                unmatched.append(source)
        return matches, unmatched

    # ------------------------------------------------------------
    # full reconciliation
    # ------------------------------------------------------------
    def reconcile(self, sources: Iterable[str], targets: Targets) -> List[ColumnMatch]:
        """Match ``sources`` against ``targets``; never raises because of the AI matcher."""
        target_list = normalize_targets(targets)
        rule_matches, unmatched = self.rule_pass(sources, target_list)
        COLUMN_MATCHES_TOTAL.labels(source="rule").inc(len(rule_matches))
        _log.info("Rule-based matching: %d matched, %d left", len(rule_matches), len(unmatched))

        ai_targets = [t for t in target_list if not _is_generated(t)]
        if not unmatched or not ai_targets or self.matcher is None:
            return rule_matches

        try:
            ai_matches = list(self.matcher.match_columns(unmatched, ai_targets))
        except Exception as exc:
            _log.warning("AI column matching failed, keeping rule matches only: %s", exc)
            inc_named("column_match_ai_failures")
            return rule_matches

        accepted = [m for m in ai_matches if m.accepted]
        if len(accepted) != len(ai_matches):
            _log.warning("Dropped %d AI matches below %.1f", len(ai_matches) - len(accepted), MIN_MATCH_CONFIDENCE)
        COLUMN_MATCHES_TOTAL.labels(source="ai").inc(len(accepted))
        _log.info("AI matching: %d matched", len(accepted))
        return rule_matches + accepted


def apply_matches(records: Iterable[Mapping[str, Any]], matches: Sequence[ColumnMatch]) -> List[Dict[str, Any]]:
    """Rename record keys to schema field names.

    Only matches at or above the confidence floor are used. When several
    source labels point at the same field, the first match wins. Columns
    without a match are dropped.
    """
    mapping: Dict[str, str] = {}
    taken = set()
    for m in matches:
        if not m.accepted or m.target_field in taken:
            continue
        if m.source_label in mapping:
            continue
        mapping[m.source_label] = m.target_field
        taken.add(m.target_field)

    out: List[Dict[str, Any]] = []
    for record in records:
        if not isinstance(record, Mapping):
            out.append(record)  # type: ignore[arg-type]
            continue
        out.append({target: record[source] for source, target in mapping.items() if source in record})
    return out

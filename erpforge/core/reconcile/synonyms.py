"""Synonym table for rule-based column matching.

Keys are canonical field names (lowercase). Values are labels that people
put in spreadsheet headers for that field, Korean and English.

An optional YAML/JSON override file is merged over the built-in table::

    name: [성명, full name]
    sku: [품번, item code]

Environment variable:
    ERPFORGE_SYNONYMS_FILE: path to the override file (optional).
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml

_log = logging.getLogger("erpforge.reconcile")

SynonymTable = Dict[str, List[str]]

SYNONYMS: SynonymTable = {
    "name": ["이름", "성명", "사용자명", "고객명", "username", "user_name", "customer_name", "명", "성함"],
    "email": ["이메일", "메일", "e-mail", "mail", "전자우편"],
    "phone": ["전화", "전화번호", "tel", "telephone", "mobile", "휴대폰", "연락처", "핸드폰"],
    "address": ["주소", "addr", "거주지", "소재지"],
    "department": ["부서", "dept", "소속", "팀"],
    "position": ["직급", "직위", "title", "포지션"],
    "status": ["상태", "state", "진행상태", "처리상태"],
    "date": ["날짜", "일자", "일시"],
    "amount": ["금액", "가격", "price", "cost", "비용"],
    "quantity": ["수량", "qty", "개수", "갯수"],
    "description": ["설명", "비고", "desc", "note", "메모", "내용"],
}


def _parse_override_dict(raw: Mapping) -> SynonymTable:
    out: SynonymTable = {}
    for key, value in raw.items():
        canonical = str(key).strip().lower()
        if not canonical:
            continue
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            _log.warning("Skipping synonym entry %r: expected a list, got %s", key, type(value).__name__)
            continue
        words = [str(v).strip() for v in value if v is not None and str(v).strip()]
        if words:
            out[canonical] = words
    return out


def merge_synonyms(base: Mapping[str, List[str]], extra: Mapping[str, List[str]]) -> SynonymTable:
    """Union of both tables; order kept, duplicates dropped (case-insensitive)."""
    merged: SynonymTable = {k: list(v) for k, v in base.items()}
    for key, words in extra.items():
        current = merged.setdefault(key, [])
        seen = {w.lower() for w in current}
        for w in words:
            if w.lower() not in seen:
                current.append(w)
                seen.add(w.lower())
    return merged


def load_synonym_overrides(path: Optional[Path] = None) -> SynonymTable:
    """
    Load synonym overrides from a YAML or JSON file.

    Returns an empty dict if no file is configured, or the file is missing,
    unreadable or malformed.
    """
    resolved = _resolve_path(path)
    if resolved is None or not resolved.exists():
        return {}

    try:
        raw_text = resolved.read_text(encoding="utf-8")
    except OSError as exc:
        _log.warning("Cannot read synonyms file %s: %s", resolved, exc)
        return {}

    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError:
        try:
            data = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            _log.warning("Failed to parse synonyms file %s as JSON or YAML: %s", resolved, exc)
            return {}

    if not isinstance(data, dict):
        _log.warning("Synonyms file %s must be a mapping, got %s", resolved, type(data).__name__)
        return {}

    overrides = _parse_override_dict(data)
    if overrides:
        _log.info("Loaded %d synonym overrides from %s", len(overrides), resolved)
    return overrides


def load_synonyms(path: Optional[Path] = None) -> SynonymTable:
    return merge_synonyms(SYNONYMS, load_synonym_overrides(path))


def _resolve_path(path: Optional[Path]) -> Optional[Path]:
    if path is not None:
        return Path(path)
    env_path = os.getenv("ERPFORGE_SYNONYMS_FILE", "").strip()
    return Path(env_path) if env_path else None

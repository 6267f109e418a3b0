"""Entity id derivation from human labels."""

from __future__ import annotations

import re
from typing import Container

_WHITESPACE_RE = re.compile(r"\s+")
_FALLBACK_SLUG = "entity"


def _keep(ch: str) -> bool:
    if ch.isascii():
        return ch.isdigit() or ("a" <= ch <= "z") or ch == "_"
    # Native-script letters (Hangul, CJK, ...) survive.
    return ch.isalnum()


def slugify_label(label: str) -> str:
    """Lowercase, whitespace to ``_``, drop anything outside ``[a-z0-9_]`` or native letters."""
    s = _WHITESPACE_RE.sub("_", (label or "").strip().lower())
    return "".join(ch for ch in s if _keep(ch))


def derive_entity_id(label: str, existing: Container[str]) -> str:
    """Slugify ``label`` and append ``_1``, ``_2``, ... until it is not in ``existing``."""
    slug = slugify_label(label) or _FALLBACK_SLUG
    candidate = slug
    counter = 1
    while candidate in existing:
        candidate = f"{slug}_{counter}"
        counter += 1
    return candidate

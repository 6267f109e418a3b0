"""Runtime settings.

All knobs come from environment variables (``ERPFORGE_*`` plus the shared
``LLM_*`` / ``AI_MODEL`` keys). Nothing here touches the filesystem.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_DATA_DIR = _PROJECT_ROOT / "data"


def _env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(key: str, default: float) -> float:
    raw = (os.getenv(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    raw = (os.getenv(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    data_dir: Path = _DEFAULT_DATA_DIR
    persist_interval_seconds: float = 60.0
    auto_persist: bool = True

    host: str = "0.0.0.0"
    port: int = 3001
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    max_upload_bytes: int = 10 * 1024 * 1024

    ai_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_timeout_seconds: float = 60.0
    synonyms_file: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "Settings":
        data_dir = (os.getenv("ERPFORGE_DATA_DIR") or "").strip()
        origins_raw = (os.getenv("ERPFORGE_CORS_ORIGINS") or "").strip()
        origins = [o.strip() for o in origins_raw.split(",") if o.strip()] if origins_raw else ["*"]
        synonyms = (os.getenv("ERPFORGE_SYNONYMS_FILE") or "").strip()

        interval = _env_float("ERPFORGE_PERSIST_INTERVAL", 60.0)
        if interval <= 0:
            interval = 60.0

        return cls(
            data_dir=Path(data_dir) if data_dir else _DEFAULT_DATA_DIR,
            persist_interval_seconds=interval,
            auto_persist=_env_bool("ERPFORGE_AUTO_PERSIST", True),
            host=os.getenv("ERPFORGE_HOST", "0.0.0.0"),
            port=_env_int("ERPFORGE_PORT", 3001),
            cors_origins=origins,
            max_upload_bytes=_env_int("ERPFORGE_MAX_UPLOAD_BYTES", 10 * 1024 * 1024),
            ai_model=os.getenv("AI_MODEL", "gpt-4o-mini"),
            llm_base_url=(os.getenv("LLM_BASE_URL") or "https://api.openai.com/v1").rstrip("/"),
            llm_timeout_seconds=_env_float("ERPFORGE_LLM_TIMEOUT", 60.0),
            synonyms_file=Path(synonyms) if synonyms else None,
        )

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook

from erpforge.api.main import create_app
from erpforge.core.ai.models import ColumnMatch, ExtractionResult, SchemaModification, TargetField
from erpforge.core.observability.metrics import reset_metrics
from erpforge.core.schema.models import EntitySchema, schema_from_draft
from erpforge.core.settings import Settings
from erpforge.core.store.entity_store import EntityStore


USER_DRAFT = {
    "menuName": "User Registration",
    "tableName": "users",
    "description": "registered users",
    "columns": [
        {"name": "name", "type": "string", "label": "이름", "required": True},
        {"name": "email", "type": "email", "label": "이메일", "required": True},
        {"name": "phone", "type": "phone", "label": "전화번호"},
        {"name": "age", "type": "number", "label": "나이", "validation": {"min": 0, "max": 150}},
        {"name": "status", "type": "select", "label": "상태", "options": ["active", "inactive"]},
    ],
}


class StubOracle:
    """Records calls; answers from canned values."""

    def __init__(
        self,
        *,
        matches: Optional[List[ColumnMatch]] = None,
        schema_draft: Optional[dict] = None,
        extraction: Optional[ExtractionResult] = None,
        modification: Optional[SchemaModification] = None,
        fail: Optional[Exception] = None,
    ):
        self.matches = matches or []
        self.schema_draft = schema_draft or USER_DRAFT
        self.extraction = extraction or ExtractionResult()
        self.modification = modification
        self.fail = fail
        self.match_calls: List[List[str]] = []
        self.prompts: List[str] = []

    def match_columns(self, unmatched: Sequence[str], targets: Sequence[TargetField]) -> List[ColumnMatch]:
        self.match_calls.append(list(unmatched))
        if self.fail is not None:
            raise self.fail
        return list(self.matches)

    def generate_schema(self, prompt: str) -> EntitySchema:
        self.prompts.append(prompt)
        if self.fail is not None:
            raise self.fail
        return schema_from_draft(self.schema_draft)

    def extract_data(self, text: str, schema: EntitySchema) -> ExtractionResult:
        self.prompts.append(text)
        if self.fail is not None:
            raise self.fail
        return self.extraction

    def analyze_schema_modification(self, prompt: str, schema: EntitySchema) -> Optional[SchemaModification]:
        self.prompts.append(prompt)
        return self.modification


class StubLLMClient:
    def __init__(self, responses: List[str], *, prompt_tokens: int = 5, completion_tokens: int = 7):
        self._responses = list(responses)
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.calls: List[dict] = []

    def complete(
        self,
        *,
        task: str,
        model: str,
        system_prompt: str,
        user_content: str,
        json_mode: bool,
    ) -> tuple[str, int, int]:
        self.calls.append({"task": task, "system_prompt": system_prompt, "user_content": user_content})
        if self._responses:
            content = self._responses.pop(0)
        else:
            content = "{}" if json_mode else "ok"
        return content, self.prompt_tokens, self.completion_tokens


def as_json(obj) -> str:
    return json.dumps(obj, ensure_ascii=False)


def xlsx_bytes(*sheets) -> bytes:
    wb = Workbook()
    wb.remove(wb.active)
    for i, rows in enumerate(sheets):
        ws = wb.create_sheet(f"Sheet{i + 1}")
        for row in rows:
            ws.append(list(row))
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


@pytest.fixture(autouse=True)
def _clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture()
def store() -> EntityStore:
    return EntityStore()


@pytest.fixture()
def users(store):
    return store.create_entity(USER_DRAFT)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(data_dir=tmp_path / "data", auto_persist=False)


@pytest.fixture()
def oracle() -> StubOracle:
    return StubOracle()


@pytest.fixture()
def client(settings, oracle):
    app = create_app(settings, oracle=oracle)
    with TestClient(app) as c:
        yield c

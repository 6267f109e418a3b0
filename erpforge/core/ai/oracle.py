"""AI oracle: prompts in, structured JSON out.

Four tasks, all in JSON mode through ``AIGatewayService``:

- ``generate_schema``: natural-language screen request -> entity schema draft
- ``extract_data``: free text -> one row for an existing schema
- ``match_columns``: unmatched spreadsheet labels -> schema field names
- ``analyze_schema_modification``: "add a birthday column" -> new field list

Model output is never trusted as-is: drafts go through schema validation,
extractions are restricted to known fields, matches below the confidence
floor or pointing at unknown fields are dropped.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from erpforge.core.ai.gateway import AIGatewayService
from erpforge.core.ai.models import (
    MIN_MATCH_CONFIDENCE,
    AIGatewayRequest,
    AIOracleError,
    ColumnMatch,
    ExtractionResult,
    SchemaModification,
    TargetField,
)
from erpforge.core.errors import InvalidSchemaError
from erpforge.core.schema.models import (
    EntitySchema,
    FieldType,
    ensure_generated_fields,
    schema_from_draft,
)

_log = logging.getLogger("erpforge.ai")

_FIELD_TYPES = "|".join(t.value for t in FieldType)

_MODIFICATION_KEYWORDS = (
    "컬럼", "필드", "항목", "추가", "삭제", "제거", "수정", "변경",
    "column", "field", "add", "remove", "delete", "modify", "rename", "change",
)

_SCHEMA_SYSTEM_PROMPT = (
    "You design database schemas for business data-entry screens (ERP style). "
    "Analyse the request and return ONLY a JSON object of this shape:\n"
    "{\n"
    '  "menuId": "snake_case_menu_id",\n'
    '  "menuName": "screen name shown to users",\n'
    '  "tableName": "snake_case_table_name",\n'
    '  "description": "what this screen is for",\n'
    '  "columns": [\n'
    "    {\n"
    '      "name": "column_name",\n'
    f'      "type": "{_FIELD_TYPES}",\n'
    '      "label": "label shown to users, in the language of the request",\n'
    '      "required": true,\n'
    '      "placeholder": "input hint",\n'
    '      "options": ["option1", "option2"],\n'
    '      "validation": {"min": 0, "max": 100, "pattern": "regex"}\n'
    "    }\n"
    "  ]\n"
    "}\n"
    "Rules: add the fields such a screen usually needs (status, dates, ...); "
    "use only the listed types; select fields must carry a non-empty options list."
)

_EXTRACT_SYSTEM_PROMPT = (
    "Extract values for the given schema from the user's text. "
    "Return ONLY a JSON object: "
    '{"data": {"column_name": "value"}, "confidence": 0.95, "missing": ["column_name"]}. '
    "Fields you cannot find are null and listed in missing. "
    "confidence is between 0 and 1."
)

_MATCH_SYSTEM_PROMPT = (
    "Match spreadsheet column headers to schema columns. "
    "Return ONLY a JSON object: "
    '{"matches": [{"source": "spreadsheet header", "target": "schema column name", "confidence": 0.95}]}. '
    f"Do not include matches with confidence below {MIN_MATCH_CONFIDENCE}. "
    "Leave out headers that match nothing."
)

_MODIFY_SYSTEM_PROMPT = (
    "You edit database schemas. Decide whether the user's request changes the columns. "
    "Return ONLY a JSON object: "
    '{"isSchemaModification": true, "action": "add|remove|modify", "columns": [full column list after the change]}. '
    "Keep the existing id, createdAt and updatedAt columns unchanged. "
    'If the request is not about the columns, return {"isSchemaModification": false}.'
)


def _default_model() -> str:
    return os.getenv("AI_MODEL", "gpt-4o-mini")


def _columns_for_prompt(schema: EntitySchema) -> str:
    return json.dumps([c.to_dict() for c in schema.columns], ensure_ascii=False, indent=2)


def has_modification_intent(prompt: str) -> bool:
    p = (prompt or "").lower()
    return any(k in p for k in _MODIFICATION_KEYWORDS)


class AIOracle:
    def __init__(self, gateway: AIGatewayService | None = None, *, model: str | None = None):
        self.gateway = gateway or AIGatewayService()
        self.model = model or _default_model()

    def _ask(self, task: str, system_prompt: str, user_content: str) -> Dict[str, Any]:
        req = AIGatewayRequest(
            task=task,
            model=self.model,
            system_prompt=system_prompt,
            user_content=user_content,
            json_mode=True,
        )
        try:
            return self.gateway.complete_json(req)
        except Exception as exc:
            _log.error("AI task %s failed: %s", task, exc)
            raise AIOracleError(task=task, reason=str(exc)) from exc

    # ------------------------------------------------------------
    # schema generation
    # ------------------------------------------------------------
    def generate_schema(self, prompt: str) -> EntitySchema:
        obj = self._ask("generate_schema", _SCHEMA_SYSTEM_PROMPT, prompt)
        try:
            schema = schema_from_draft(obj)
        except InvalidSchemaError as exc:
            raise AIOracleError(task="generate_schema", reason=exc.reason) from exc
        _log.info("Schema generated: %s (%d fields)", schema.display_name, len(schema.columns))
        return schema

    # ------------------------------------------------------------
    # free-text extraction
    # ------------------------------------------------------------
    def extract_data(self, text: str, schema: EntitySchema) -> ExtractionResult:
        system = f"{_EXTRACT_SYSTEM_PROMPT}\nSchema:\n{_columns_for_prompt(schema)}"
        obj = self._ask("extract_data", system, text)
        try:
            result = ExtractionResult.model_validate(obj)
        except ValidationError as exc:
            raise AIOracleError(task="extract_data", reason=str(exc)) from exc

        editable = {c.name for c in schema.columns if not c.generated}
        data = {k: v for k, v in result.data.items() if k in editable}
        missing = [m for m in dict.fromkeys(str(x) for x in result.missing) if m in editable]
        for name in editable:
            if data.get(name) in (None, "") and name not in missing:
                missing.append(name)
        _log.info("Data extracted with confidence %.2f (%d missing)", result.confidence, len(missing))
        return ExtractionResult(data=data, confidence=result.confidence, missing=missing)

    # ------------------------------------------------------------
    # column matching
    # ------------------------------------------------------------
    def match_columns(self, unmatched: Sequence[str], targets: Sequence[TargetField]) -> List[ColumnMatch]:
        if not unmatched:
            return []
        system = (
            f"{_MATCH_SYSTEM_PROMPT}\n"
            f"Spreadsheet headers: {json.dumps(list(unmatched), ensure_ascii=False)}\n"
            f"Schema columns: {json.dumps([t.model_dump() for t in targets], ensure_ascii=False)}"
        )
        obj = self._ask("match_columns", system, "Match the headers above.")
        raw_matches = obj.get("matches")
        if not isinstance(raw_matches, list):
            return []

        asked = set(unmatched)
        known = {t.name for t in targets}
        out: List[ColumnMatch] = []
        for raw in raw_matches:
            try:
                m = ColumnMatch.model_validate(raw)
            except ValidationError:
                continue
            if m.source_label not in asked or m.target_field not in known:
                continue
            if m.confidence < MIN_MATCH_CONFIDENCE:
                continue
            out.append(m)
        return out

    # ------------------------------------------------------------
    # schema modification
    # ------------------------------------------------------------
    def analyze_schema_modification(self, prompt: str, schema: EntitySchema) -> Optional[SchemaModification]:
        """Return the new column list when ``prompt`` asks for a schema change.

        Prompts without any field/column keyword skip the model call. Model
        failures and unusable answers return None so callers can fall back
        to data extraction.
        """
        if not has_modification_intent(prompt):
            return None

        system = f"{_MODIFY_SYSTEM_PROMPT}\nCurrent columns:\n{_columns_for_prompt(schema)}"
        try:
            obj = self._ask("schema_modification", system, prompt)
        except AIOracleError:
            return None
        if not obj.get("isSchemaModification"):
            return None

        try:
            mod = SchemaModification.model_validate(obj)
            checked = ensure_generated_fields(schema.with_columns(mod.columns))
            # duplicate names etc.
            EntitySchema.model_validate(checked.to_dict())
        except (ValidationError, InvalidSchemaError) as exc:
            _log.warning("Discarding schema modification: %s", exc)
            return None

        _log.info("Schema modification detected: %s", mod.action)
        return mod.model_copy(update={"columns": list(checked.columns)})


def targets_from_schema(schema: EntitySchema) -> List[TargetField]:
    return [TargetField(name=c.name, label=c.label) for c in schema.columns]

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, Field

from erpforge.api.deps import get_oracle, get_reconciler, get_settings, get_store, store_http_error
from erpforge.core.ai.models import AIGatewayNotConfiguredError, AIOracleError
from erpforge.core.ai.oracle import AIOracle
from erpforge.core.errors import StoreError
from erpforge.core.ingest import ingest_records
from erpforge.core.reconcile.reconciler import ColumnReconciler
from erpforge.core.settings import Settings
from erpforge.core.store.entity_store import EntityStore
from erpforge.core.tabular.decoder import TabularDecodeError, read_table

router = APIRouter(prefix="/api/ai", tags=["ai"])

_log = logging.getLogger("erpforge.ai")


class GenerateSchemaRequest(BaseModel):
    prompt: str = Field(min_length=1)


class ParseTextRequest(BaseModel):
    text: str = Field(min_length=1)
    menuId: str = Field(min_length=1)


class MatchColumnsRequest(BaseModel):
    sourceColumns: List[str]
    menuId: str = Field(min_length=1)


def _oracle_http_error(exc: AIOracleError) -> HTTPException:
    if isinstance(exc.__cause__, AIGatewayNotConfiguredError):
        return HTTPException(status_code=503, detail=str(exc.__cause__))
    return HTTPException(
        status_code=502,
        detail={"code": "ai_oracle_failed", "task": exc.task, "reason": exc.reason},
    )


@router.post("/generate-schema")
def generate_schema(req: GenerateSchemaRequest, oracle: AIOracle = Depends(get_oracle)):
    _log.info("Generating schema for: %r", req.prompt)
    try:
        schema = oracle.generate_schema(req.prompt)
    except AIOracleError as exc:
        raise _oracle_http_error(exc) from exc
    return {"success": True, "data": schema.to_dict()}


@router.post("/parse-text")
def parse_text(
    req: ParseTextRequest,
    store: EntityStore = Depends(get_store),
    oracle: AIOracle = Depends(get_oracle),
):
    """Apply a schema change when the text asks for one, else extract a row from it."""
    schema = store.get_schema(req.menuId)
    if schema is None:
        raise HTTPException(status_code=404, detail="Schema not found")

    modification = oracle.analyze_schema_modification(req.text, schema)
    if modification is not None:
        try:
            new_schema = store.replace_fields(req.menuId, modification.columns)
        except StoreError as exc:
            raise store_http_error(exc) from exc
        return {
            "success": True,
            "data": {
                "type": "schema_modification",
                "action": modification.action,
                "schema": new_schema.to_dict(),
            },
        }

    try:
        result = oracle.extract_data(req.text, schema)
    except AIOracleError as exc:
        raise _oracle_http_error(exc) from exc
    return {"success": True, "data": {"type": "data_parsing", **result.model_dump()}}


@router.post("/parse-file")
def parse_file(
    menuId: str = Form(...),
    file: UploadFile = File(...),
    store: EntityStore = Depends(get_store),
    reconciler: ColumnReconciler = Depends(get_reconciler),
    settings: Settings = Depends(get_settings),
):
    if store.get_schema(menuId) is None:
        raise HTTPException(status_code=404, detail="Schema not found")

    payload = file.file.read(settings.max_upload_bytes + 1)
    if len(payload) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail=f"file exceeds {settings.max_upload_bytes} bytes")

    _log.info("Parsing file %s for menu %s", file.filename, menuId)
    try:
        table = read_table(payload, file.filename or "")
    except TabularDecodeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        out = ingest_records(store, reconciler, menuId, table.records, labels=table.labels)
    except StoreError as exc:
        raise store_http_error(exc) from exc

    return {
        "success": True,
        "data": {
            "columnMatches": [m.to_dict() for m in out["matches"]],
            "inserted": out["inserted"],
            "failed": out["failed"],
            "results": out["result"].to_dict(),
        },
    }


@router.post("/match-columns")
def match_columns(
    req: MatchColumnsRequest,
    store: EntityStore = Depends(get_store),
    reconciler: ColumnReconciler = Depends(get_reconciler),
):
    schema = store.get_schema(req.menuId)
    if schema is None:
        raise HTTPException(status_code=404, detail="Schema not found")
    matches = reconciler.reconcile(req.sourceColumns, schema)
    return {"success": True, "data": [m.to_dict() for m in matches]}

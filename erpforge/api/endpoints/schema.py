from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

from erpforge.api.deps import get_store, store_http_error
from erpforge.core.errors import StoreError
from erpforge.core.store.entity_store import EntityStore

router = APIRouter(prefix="/api/schema", tags=["schema"])


@router.put("/{menu_id}")
def replace_columns(menu_id: str, payload: Dict[str, Any] = Body(...), store: EntityStore = Depends(get_store)):
    columns = payload.get("columns")
    if not isinstance(columns, list):
        raise HTTPException(status_code=400, detail="columns must be an array")
    try:
        store.replace_fields(menu_id, columns)
    except StoreError as exc:
        raise store_http_error(exc) from exc
    entity = store.get_entity(menu_id)
    if entity is None:
        raise HTTPException(status_code=404, detail="Menu not found")
    return {"success": True, "data": {**entity.metadata(), "schema": entity.schema.to_dict()}}


@router.post("/{menu_id}/add-column")
def add_column(menu_id: str, payload: Dict[str, Any] = Body(...), store: EntityStore = Depends(get_store)):
    column = payload.get("column")
    if not isinstance(column, dict):
        raise HTTPException(status_code=400, detail="column is required")
    try:
        schema = store.add_field(menu_id, column)
    except StoreError as exc:
        raise store_http_error(exc) from exc
    return {"success": True, "data": schema.to_dict()}


@router.delete("/{menu_id}/column/{column_name}")
def delete_column(menu_id: str, column_name: str, store: EntityStore = Depends(get_store)):
    try:
        schema = store.remove_field(menu_id, column_name)
    except StoreError as exc:
        raise store_http_error(exc) from exc
    return {"success": True, "data": schema.to_dict()}

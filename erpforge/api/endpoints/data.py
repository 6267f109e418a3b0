from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Request

from erpforge.api.deps import get_store, store_http_error
from erpforge.core.errors import StoreError
from erpforge.core.store.entity_store import EntityStore

router = APIRouter(prefix="/api/data", tags=["data"])


@router.get("/{menu_id}")
def query_rows(menu_id: str, request: Request, store: EntityStore = Depends(get_store)):
    # query string values are strings, so filters are substring matches
    filters = dict(request.query_params)
    try:
        rows = store.query(menu_id, filters)
    except StoreError as exc:
        raise store_http_error(exc) from exc
    return {"success": True, "data": rows, "count": len(rows)}


@router.get("/{menu_id}/{row_id}")
def get_row(menu_id: str, row_id: str, store: EntityStore = Depends(get_store)):
    try:
        row = store.find_by_id(menu_id, row_id)
    except StoreError as exc:
        raise store_http_error(exc) from exc
    if row is None:
        raise HTTPException(status_code=404, detail="Data not found")
    return {"success": True, "data": row}


@router.post("/{menu_id}/bulk")
def bulk_insert(menu_id: str, payload: Dict[str, Any] = Body(...), store: EntityStore = Depends(get_store)):
    rows = payload.get("rows")
    if not isinstance(rows, list):
        raise HTTPException(status_code=400, detail="rows must be an array")
    if store.get_schema(menu_id) is None:
        raise HTTPException(status_code=404, detail=f"Entity not found: {menu_id}")
    result = store.bulk_insert(menu_id, rows)
    return {"success": True, "data": result.to_dict()}


@router.post("/{menu_id}", status_code=201)
def insert_row(menu_id: str, row: Dict[str, Any] = Body(...), store: EntityStore = Depends(get_store)):
    try:
        stored = store.insert(menu_id, row)
    except StoreError as exc:
        raise store_http_error(exc) from exc
    return {"success": True, "data": stored}


@router.put("/{menu_id}/{row_id}")
def update_row(
    menu_id: str,
    row_id: str,
    updates: Dict[str, Any] = Body(...),
    store: EntityStore = Depends(get_store),
):
    try:
        stored = store.update(menu_id, row_id, updates)
    except StoreError as exc:
        raise store_http_error(exc) from exc
    return {"success": True, "data": stored}


@router.delete("/{menu_id}/{row_id}")
def delete_row(menu_id: str, row_id: str, store: EntityStore = Depends(get_store)):
    try:
        store.delete(menu_id, row_id)
    except StoreError as exc:
        raise store_http_error(exc) from exc
    return {"success": True, "message": "Data deleted successfully"}

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

from erpforge.api.deps import get_store, store_http_error
from erpforge.core.errors import StoreError
from erpforge.core.store.entity_store import Entity, EntityStore

router = APIRouter(prefix="/api/menus", tags=["menus"])


def _menu_payload(entity: Entity) -> Dict[str, Any]:
    return {**entity.metadata(), "schema": entity.schema.to_dict()}


@router.get("")
def list_menus(store: EntityStore = Depends(get_store)):
    return {"success": True, "data": store.list_entities()}


@router.get("/system/stats")
def system_stats(store: EntityStore = Depends(get_store)):
    return {"success": True, "data": store.stats()}


@router.post("", status_code=201)
def create_menu(draft: Dict[str, Any] = Body(...), store: EntityStore = Depends(get_store)):
    if not str(draft.get("menuName") or draft.get("displayName") or "").strip():
        raise HTTPException(status_code=400, detail="menuName is required")
    try:
        entity = store.create_entity(draft)
    except StoreError as exc:
        raise store_http_error(exc) from exc
    return {"success": True, "data": _menu_payload(entity)}


@router.get("/{menu_id}")
def get_menu(menu_id: str, store: EntityStore = Depends(get_store)):
    entity = store.get_entity(menu_id)
    if entity is None:
        raise HTTPException(status_code=404, detail="Menu not found")
    return {"success": True, "data": _menu_payload(entity)}


@router.delete("/{menu_id}")
def delete_menu(menu_id: str, store: EntityStore = Depends(get_store)):
    store.delete_entity(menu_id)
    return {"success": True, "message": "Menu deleted successfully"}


@router.get("/{menu_id}/schema")
def get_menu_schema(menu_id: str, store: EntityStore = Depends(get_store)):
    schema = store.get_schema(menu_id)
    if schema is None:
        raise HTTPException(status_code=404, detail="Schema not found")
    return {"success": True, "data": schema.to_dict()}

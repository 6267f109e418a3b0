"""Request-scoped accessors for the objects built in the app lifespan."""

from __future__ import annotations

from fastapi import HTTPException, Request

from erpforge.core.ai.oracle import AIOracle
from erpforge.core.errors import (
    DuplicateRowIdError,
    EntityNotFoundError,
    InvalidRowError,
    InvalidSchemaError,
    RowNotFoundError,
    SchemaConflictError,
    StoreError,
)
from erpforge.core.reconcile.reconciler import ColumnReconciler
from erpforge.core.settings import Settings
from erpforge.core.store.entity_store import EntityStore
from erpforge.core.store.persistence import PersistenceManager


def get_store(request: Request) -> EntityStore:
    return request.app.state.store


def get_persistence(request: Request) -> PersistenceManager:
    return request.app.state.persistence


def get_oracle(request: Request) -> AIOracle:
    return request.app.state.oracle


def get_reconciler(request: Request) -> ColumnReconciler:
    return request.app.state.reconciler


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def store_http_error(exc: StoreError) -> HTTPException:
    """Map a store error to the HTTP status the API reports for it."""
    if isinstance(exc, (EntityNotFoundError, RowNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (DuplicateRowIdError, SchemaConflictError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, (InvalidRowError, InvalidSchemaError)):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from erpforge import __version__
from erpforge.api.endpoints import ai, data, health, menus, schema
from erpforge.api.endpoints import metrics as metrics_ep
from erpforge.api.middleware.error_shaping import SafeErrorMiddleware
from erpforge.api.middleware.request_context import RequestContextMiddleware
from erpforge.core.ai.clients import OpenAIChatClient
from erpforge.core.ai.gateway import AIGatewayService
from erpforge.core.ai.oracle import AIOracle
from erpforge.core.reconcile.reconciler import ColumnReconciler
from erpforge.core.reconcile.synonyms import load_synonyms
from erpforge.core.settings import Settings
from erpforge.core.store.entity_store import EntityStore
from erpforge.core.store.persistence import PersistenceManager

_log = logging.getLogger("erpforge.app")


def _default_oracle(settings: Settings) -> AIOracle:
    client = OpenAIChatClient(
        api_key=(os.getenv("LLM_API_KEY") or "").strip(),
        base_url=settings.llm_base_url,
        timeout=settings.llm_timeout_seconds,
    )
    return AIOracle(AIGatewayService(client=client), model=settings.ai_model)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    persistence: PersistenceManager = app.state.persistence

    persistence.load()
    if settings.auto_persist:
        persistence.start()
    _log.info("erpforge %s ready (data dir: %s)", __version__, settings.data_dir)
    try:
        yield
    finally:
        # uvicorn maps SIGTERM/SIGINT to lifespan shutdown
        persistence.shutdown()
        _log.info("erpforge stopped")


def create_app(
    settings: Optional[Settings] = None,
    *,
    oracle: Optional[AIOracle] = None,
    store: Optional[EntityStore] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    store = store if store is not None else EntityStore()
    oracle = oracle if oracle is not None else _default_oracle(settings)

    app = FastAPI(title="erpforge API", version=__version__, lifespan=lifespan)

    app.state.settings = settings
    app.state.store = store
    app.state.oracle = oracle
    app.state.reconciler = ColumnReconciler(oracle, synonyms=load_synonyms(settings.synonyms_file))
    app.state.persistence = PersistenceManager(
        store,
        data_dir=settings.data_dir,
        interval_seconds=settings.persist_interval_seconds,
    )

    # ------------------------------------------------------------
    # Middleware stack
    # Starlette reverses add_middleware order: the LAST call is the OUTERMOST.
    #   SafeErrorMiddleware -> CORSMiddleware -> RequestContext -> handler
    # ------------------------------------------------------------
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SafeErrorMiddleware)

    app.include_router(health.router)
    app.include_router(metrics_ep.router)
    app.include_router(menus.router)
    app.include_router(data.router)
    app.include_router(schema.router)
    app.include_router(ai.router)

    return app

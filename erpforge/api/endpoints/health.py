from __future__ import annotations

import os
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from erpforge.core.observability.metrics import inc_named

router = APIRouter()


@router.get("/health/live")
async def live():
    inc_named("health_live")
    return {"status": "ok"}


@router.get("/health/ready")
def ready(request: Request):
    """
    Ready once the lifespan has built the store and the data directory is
    writable.
    """
    inc_named("health_ready")
    problems: list[str] = []

    store = getattr(request.app.state, "store", None)
    if store is None:
        problems.append("store_not_initialized")

    settings = getattr(request.app.state, "settings", None)
    if settings is not None:
        data_dir = settings.data_dir
        if data_dir.exists() and not os.access(data_dir, os.W_OK):
            problems.append(f"data_dir_not_writable:{data_dir}")

    if problems:
        return JSONResponse(status_code=503, content={"status": "not_ready", "problems": problems})
    return {"status": "ready"}


@router.get("/api/health")
def api_health(request: Request):
    inc_named("health_api")
    settings = getattr(request.app.state, "settings", None)
    persistence = getattr(request.app.state, "persistence", None)
    return {
        "status": "ok",
        "message": "erpforge server is running",
        "ai": getattr(settings, "ai_model", None),
        "autoPersist": bool(persistence is not None and persistence.running),
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }

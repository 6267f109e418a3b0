"""JSON snapshot of in-process counters and the Prometheus scrape endpoint."""

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from erpforge.core.observability.metrics import snapshot_named

router = APIRouter()


@router.get("/api/v1/metrics/snapshot")
def metrics_snapshot(request: Request):
    body = dict(snapshot_named())
    store = getattr(request.app.state, "store", None)
    if store is not None:
        stats = store.stats()
        body["entities"] = stats["entityCount"]
        body["rows"] = stats["totalRowCount"]
        body["dirty_entities"] = len(store.dirty_ids())
    return body


@router.get("/metrics", include_in_schema=False)
def prometheus_metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

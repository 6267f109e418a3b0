from __future__ import annotations

import re
from prometheus_client import Counter, Histogram


def normalize_path(path: str) -> str:
    """Reduce high-cardinality paths for metrics labels."""
    p = path or "/"

    # UUID-ish
    p = re.sub(r"/[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}", "/:uuid", p)
    # ints
    p = re.sub(r"/\d+", "/:id", p)

    # entity ids and row ids are free-form
    p = re.sub(r"^(/api/menus)/(?!system/)[^/]+", r"\1/:entity", p)
    p = re.sub(r"^(/api/data)/[^/]+/[^/]+$", r"\1/:entity/:row", p)
    p = re.sub(r"^(/api/data)/[^/]+(/bulk)?$", r"\1/:entity\2", p)
    p = re.sub(r"^(/api/schema)/[^/]+/column/[^/]+$", r"\1/:entity/column/:name", p)
    p = re.sub(r"^(/api/schema)/[^/]+", r"\1/:entity", p)

    return p


HTTP_REQUESTS_TOTAL = Counter(
    "erpforge_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "erpforge_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

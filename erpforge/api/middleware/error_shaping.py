from __future__ import annotations

import logging
import traceback
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

log = logging.getLogger("erpforge.errors")


class SafeErrorMiddleware(BaseHTTPMiddleware):
    """
    Outermost wrapper:
    - unhandled exceptions become a 500 JSON body, never a stack trace
    - the request id is kept in the body when known
    - the traceback is logged server-side
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            rid = getattr(request.state, "request_id", None) or request.headers.get("x-request-id")
            log.error(
                "Unhandled error: %s rid=%s method=%s path=%s\n%s",
                str(e),
                rid,
                request.method,
                request.url.path,
                traceback.format_exc(),
            )
            payload = {"success": False, "detail": "Internal Server Error"}
            if rid:
                payload["request_id"] = rid
            return JSONResponse(status_code=500, content=payload)

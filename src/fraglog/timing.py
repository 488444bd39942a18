from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

log = logging.getLogger("fraglog.access")


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Logs one line per request and tags the response with a request id.
    """
    async def dispatch(self, request: Request, call_next):
        start = time.time()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        status = 500

        try:
            resp = await call_next(request)
            status = resp.status_code
            resp.headers["x-fraglog-request-id"] = request_id
            return resp
        finally:
            dur_ms = (time.time() - start) * 1000.0
            log.info(
                "%s %s %d %.1fms client=%s rid=%s",
                request.method,
                request.url.path,
                int(status),
                dur_ms,
                request.client.host if request.client else None,
                request_id,
            )

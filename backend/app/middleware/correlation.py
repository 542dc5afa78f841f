"""
Correlation ID middleware
=========================
Tags every request with an X-Correlation-ID so the log lines of one chat
action (send, decide, presign) can be followed across retries and tabs.

X-Tab-ID is echoed back when the browser sends one.
"""
from __future__ import annotations

import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("legalai.request")


class CorrelationMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        tab_id = request.headers.get("X-Tab-ID", "")

        # Endpoint handlers read these from request.state
        request.state.correlation_id = correlation_id
        request.state.tab_id = tab_id

        response = await call_next(request)

        logger.info(
            "%s %s -> %s correlation_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            correlation_id,
            extra={"correlation_id": correlation_id, "tab_id": tab_id or None},
        )

        response.headers["X-Correlation-ID"] = correlation_id
        if tab_id:
            response.headers["X-Tab-ID"] = tab_id

        return response

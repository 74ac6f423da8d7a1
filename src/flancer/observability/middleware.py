"""Per-request log context for the negotiation API.

Every response carries an ``X-Request-ID`` (echoed from the client or
generated).  The id, and the negotiation id when the path names one, are
bound into structlog contextvars so engine log lines for the request can be
correlated without threading them through call signatures.
"""

from __future__ import annotations

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"
_NEGOTIATION_PATH = re.compile(r"^/negotiations/(?P<negotiation_id>[^/]+)")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind request-scoped log context and tag the response with its request id."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        context = {"request_id": request_id, "service": "flancer"}
        match = _NEGOTIATION_PATH.match(request.url.path)
        if match:
            context["negotiation_id"] = match["negotiation_id"]
        structlog.contextvars.bind_contextvars(**context)

        started = time.perf_counter()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.debug(
            "Request handled",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return response

"""
RequestContext Middleware - adds request tracking to all requests.

Adds to request.state:
- request_id: UUID for tracing this request (also echoed as X-Request-ID)
- ip_address: Client IP address

request_id is bound into the structlog context for the duration of the
request, so every log line emitted while handling it carries the id.
"""

import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from reviewreply.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        request.state.ip_address = request.client.host if request.client else None

        structlog.contextvars.bind_contextvars(request_id=request_id)
        start_time = time.time()
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        process_time = (time.time() - start_time) * 1000
        logger.info(
            "HTTP request completed",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(process_time, 2),
        )

        response.headers["X-Request-ID"] = request_id
        return response

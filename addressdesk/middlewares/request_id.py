from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..core.config import settings

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
logger = logging.getLogger("addressdesk.http")

MAX_REQUEST_ID_LENGTH = 128
QUIET_PATHS = frozenset({"/metrics", "/health"})


def _incoming_request_id(request: Request, header_name: str) -> str:
    supplied = (request.headers.get(header_name) or "").strip()
    if supplied and len(supplied) <= MAX_REQUEST_ID_LENGTH:
        return supplied
    return uuid4().hex


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each address API call with a correlation id and log its outcome.

    Probe endpoints (``/health``, ``/metrics``) log at DEBUG so scrapes do
    not drown out address traffic.
    """

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _incoming_request_id(request, self.header_name)
        token = request_id_ctx_var.set(request_id)
        request.state.request_id = request_id
        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        response.headers[self.header_name] = request_id
        response.headers.setdefault("X-Response-Time", f"{elapsed_ms:.2f}ms")

        path = request.url.path
        level = logging.DEBUG if path in QUIET_PATHS else logging.INFO
        logger.log(
            level,
            "address_api.request",
            extra={
                "extra_data": {
                    "app": settings.APP_NAME,
                    "request_id": request_id,
                    "method": request.method,
                    "path": path,
                    "status": response.status_code,
                    "elapsed_ms": elapsed_ms,
                }
            },
        )
        return response

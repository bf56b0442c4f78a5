"""Application factory and top-level wiring for Address Desk.

This module is the glue that brings together configuration, the address API
router and error handling. The goal is to give a new developer a bird's-eye
view of *what* pieces exist, *when* they are initialised, *why* they are
required, and *how* they interact.

The resolver components themselves (``LocalAddressCache``,
``SuggestionFetcher`` and ``ValidationComparator``) live in
``addressdesk.services`` and do not depend on the web app; the app only
forwards requests to the address backend.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import settings
from .core.errors import (
    address_validation_failed_handler,
    api_error_handler,
    http_exception_handler,
    validation_exception_handler,
)
from .middlewares import RequestIdMiddleware
from .services.proxy import ApiError
from .services.validation import AddressValidationFailed

# ---------- App init ----------
app = FastAPI(title=settings.APP_NAME)

# Every request gets a correlation id that also shows up in the JSON logs.
app.add_middleware(RequestIdMiddleware)

# ---------- Routers ----------
from .routers import address as address_router  # type: ignore  # noqa: E402

app.include_router(address_router.router)

# ---------- Exception handling ----------
# Failures leave the API as ``{"error": "..."}`` documents so clients can show
# the message directly.
app.add_exception_handler(ApiError, api_error_handler)
app.add_exception_handler(AddressValidationFailed, address_validation_failed_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)


@app.on_event("shutdown")
async def _close_backend_client() -> None:
    remote = getattr(app.state, "remote", None)
    if remote is not None:
        await remote.aclose()
        app.state.remote = None


__all__ = ["app"]

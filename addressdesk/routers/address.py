"""Beginner-friendly overview for this module.

WHAT: Exposes the address autocomplete, validation and comparison endpoints.
WHEN: Mounted by the application factory in ``addressdesk/__init__.py``.
WHY: Browser and CLI clients reach the address backend through one place that
attaches timeouts and turns failures into ``{"error": ...}`` responses.
HOW: Each handler delegates to the services layer; errors are rendered by the
exception handlers registered on the app.

File: addressdesk/routers/address.py
"""


from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..deps.services import get_comparator, get_remote_service
from ..schemas.address import (
    AddressInput,
    AddressValidationResult,
    CompareResult,
    ValidationRequest,
)
from ..services.remote import RemoteAddressService
from ..services.validation import ValidationComparator

router = APIRouter(prefix="/api/address", tags=["address"])


@router.get("/autocomplete")
async def autocomplete(
    request: Request,
    remote: RemoteAddressService = Depends(get_remote_service),
):
    # Query parameters (``search`` and optionally ``selected``) are forwarded
    # untouched; the backend owns their semantics.
    return await remote.autocomplete_passthrough(dict(request.query_params))


@router.post(
    "/validate",
    response_model=AddressValidationResult,
    response_model_exclude_none=True,
)
async def validate(
    payload: ValidationRequest,
    remote: RemoteAddressService = Depends(get_remote_service),
):
    body = payload.model_dump(by_alias=True, exclude_none=True)
    return await remote.validate_passthrough(body)


@router.post(
    "/compare",
    response_model=CompareResult,
    response_model_exclude_none=True,
)
async def compare(
    payload: AddressInput,
    comparator: ValidationComparator = Depends(get_comparator),
):
    return await comparator.compare(payload)

from __future__ import annotations

from fastapi import Depends, Request

from ..services.remote import RemoteAddressService
from ..services.validation import ValidationComparator


def get_remote_service(request: Request) -> RemoteAddressService:
    """Return the app-wide backend client, creating it on first use."""

    remote = getattr(request.app.state, "remote", None)
    if remote is None:
        remote = RemoteAddressService()
        request.app.state.remote = remote
    return remote


def get_comparator(remote: RemoteAddressService = Depends(get_remote_service)) -> ValidationComparator:
    return ValidationComparator(remote)

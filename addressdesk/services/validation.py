from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, List

from ..core.config import settings
from ..schemas.address import (
    AddressInput,
    AddressValidationResult,
    CachedAddress,
    CompareResult,
)
from .address_cache import LocalAddressCache
from .proxy import ApiError
from .remote import RemoteAddressService

logger = logging.getLogger(__name__)

GENERIC_VALIDATION_ERROR = "Validation failed"
MATCH_FIELDS = ("street", "city", "state", "zipcode")


class AddressValidationFailed(Exception):
    """A validation strategy failed; ``message`` is safe to show to users."""

    def __init__(self, message: str, *, status: int = 502) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


async def gather_fail_fast(*aws: Awaitable[Any]) -> List[Any]:
    """Run awaitables concurrently; stop at the first failure.

    Returns results in argument order when every awaitable succeeds. As soon
    as one raises, the others are cancelled and that exception is re-raised.
    """

    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []
    try:
        done, _pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        failures = [
            task.exception()
            for task in tasks
            if task in done and not task.cancelled() and task.exception() is not None
        ]
        if failures:
            raise failures[0]
        return [task.result() for task in tasks]
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()


def _failure(exc: ApiError) -> AddressValidationFailed:
    return AddressValidationFailed(
        exc.user_message(GENERIC_VALIDATION_ERROR), status=exc.status
    )


async def validate_single(
    remote: RemoteAddressService,
    address: AddressInput,
    *,
    skip_normalization: bool = False,
    timeout: float | None = None,
) -> AddressValidationResult:
    try:
        return await remote.validate(
            address, skip_normalization=skip_normalization, timeout=timeout
        )
    except ApiError as exc:
        logger.warning("Address validation failed (%s): %s", exc.kind, exc.message)
        raise _failure(exc) from exc


def addresses_match(first: AddressValidationResult, second: AddressValidationResult) -> bool:
    """Exact, field-by-field agreement of two normalized addresses."""

    left = first.normalized_address
    right = second.normalized_address
    if left is None or right is None:
        return False
    return all(getattr(left, name) == getattr(right, name) for name in MATCH_FIELDS)


class ValidationComparator:
    """Runs the blended and baseline strategies side by side.

    The blended strategy lets the backend normalize the address first, the
    baseline strategy skips normalization. Both calls start together, and a
    failure in either abandons the whole comparison.
    """

    def __init__(
        self,
        remote: RemoteAddressService,
        *,
        blended_timeout: float | None = None,
        baseline_timeout: float | None = None,
    ) -> None:
        self._remote = remote
        self.blended_timeout = (
            settings.COMPARE_BLENDED_TIMEOUT_S if blended_timeout is None else blended_timeout
        )
        self.baseline_timeout = (
            settings.COMPARE_BASELINE_TIMEOUT_S if baseline_timeout is None else baseline_timeout
        )

    async def compare(self, address: AddressInput) -> CompareResult:
        try:
            blended, baseline = await gather_fail_fast(
                self._remote.validate(
                    address, skip_normalization=False, timeout=self.blended_timeout
                ),
                self._remote.validate(
                    address, skip_normalization=True, timeout=self.baseline_timeout
                ),
            )
        except ApiError as exc:
            logger.warning("Address comparison failed (%s): %s", exc.kind, exc.message)
            raise _failure(exc) from exc

        match = addresses_match(blended, baseline)
        logger.info(
            "Address comparison finished",
            extra={"extra_data": {"addresses_match": match, "zipcode": address.zipcode}},
        )
        return CompareResult(claudeSmarty=blended, smartyOnly=baseline, addressesMatch=match)


def remember_validated(cache: LocalAddressCache, result: AddressValidationResult) -> CachedAddress:
    """Store the outcome of a successful validation in the local cache."""

    source = result.normalized_address or result.input_address
    entry = CachedAddress(
        street_line=source.street,
        secondary=source.secondary or "",
        city=source.city,
        state=source.state,
        zipcode=source.zipcode,
    )
    cache.save(entry)
    return entry

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Internal server error"


class ApiError(Exception):
    """Failure of a remote call, already classified for callers."""

    kind = "api_error"

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message

    def user_message(self, fallback: str = GENERIC_ERROR_MESSAGE) -> str:
        """Prefer the ``error`` field of a JSON body, then the raw text."""

        text = (self.message or "").strip()
        if not text:
            return fallback
        try:
            data = json.loads(text)
        except ValueError:
            return text
        if isinstance(data, dict):
            detail = data.get("error") or data.get("detail") or data.get("message")
            if isinstance(detail, str) and detail.strip():
                return detail.strip()
            return fallback
        return text


class UpstreamError(ApiError):
    """The remote service answered with a non-success status."""

    kind = "upstream_error"


class UpstreamTimeout(ApiError):
    """No response within the call's budget."""

    kind = "timeout"

    def __init__(self, message: str) -> None:
        super().__init__(504, message)


class UpstreamUnreachable(ApiError):
    """Connection level failure before any response arrived."""

    kind = "unreachable"

    def __init__(self, message: str) -> None:
        super().__init__(502, message)


def backend_urls() -> Dict[str, str]:
    return {
        "address": settings.ADDRESS_VALIDATION_URL,
    }


def _log_status(response: httpx.Response, context: str) -> None:
    if response.status_code in {401, 403}:
        logger.warning("Address backend authentication failed for %s", context)
    elif response.status_code >= 500:
        logger.error("Address backend error %s during %s", response.status_code, context)
    elif response.status_code >= 400:
        logger.error("Address backend request error %s during %s", response.status_code, context)


async def proxy_fetch(
    client: httpx.AsyncClient,
    service: str,
    path: str,
    *,
    method: str = "GET",
    params: Optional[Dict[str, Any]] = None,
    json: Any | None = None,
    timeout: float | None = None,
) -> httpx.Response:
    """Forward one request to a configured backend and classify the outcome.

    Raises ``UpstreamError`` for non-success statuses, ``UpstreamTimeout``
    when the budget runs out and ``UpstreamUnreachable`` for network failures.
    """

    base_url = backend_urls().get(service)
    if not base_url:
        raise ApiError(500, f"Backend URL not configured for {service}")

    url = f"{base_url.rstrip('/')}{path}"
    budget = httpx.Timeout(timeout if timeout is not None else settings.PROXY_TIMEOUT_S)
    context = f"{method} {path}"

    try:
        response = await client.request(method, url, params=params, json=json, timeout=budget)
    except httpx.TimeoutException as exc:
        logger.warning("Request to %s timed out (%s)", service, context)
        raise UpstreamTimeout(f"Request to {service} timed out") from exc
    except httpx.RequestError as exc:
        logger.warning("Failed to reach %s during %s: %s", service, context, exc)
        raise UpstreamUnreachable(f"Failed to reach {service}: {exc}") from exc

    if not response.is_success:
        _log_status(response, context)
        raise UpstreamError(response.status_code, response.text)

    return response

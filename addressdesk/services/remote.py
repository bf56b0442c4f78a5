from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from ..core.config import settings
from ..schemas.address import (
    AddressInput,
    AddressMetadata,
    AddressValidationResult,
    AutocompleteSuggestion,
    DPVAnalysis,
    ValidationRequest,
    ValidationTimings,
)
from .proxy import ApiError, proxy_fetch

logger = logging.getLogger(__name__)

SERVICE = "address"


def _join(*parts: Optional[str]) -> str:
    return " ".join(str(part) for part in parts if part)


def _split_footnotes(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [raw[i : i + 2] for i in range(0, len(raw), 2)]


def _input_address(body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "street": body.get("street") or "",
        "secondary": body.get("secondary") or "",
        "city": body.get("city") or "",
        "state": body.get("state") or "",
        "zipcode": body.get("zipcode") or "",
        "country": body.get("country") or "US",
    }


def _normalized_address(candidate: Dict[str, Any], body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    components = candidate.get("components")
    if not isinstance(components, dict) or not components:
        return None

    street = _join(
        components.get("primary_number"),
        components.get("street_predirection"),
        components.get("street_name"),
        components.get("street_suffix"),
        components.get("street_postdirection"),
    )
    secondary = _join(components.get("secondary_designator"), components.get("secondary_number"))

    zipcode = components.get("zipcode")
    plus4 = components.get("plus4_code")
    if zipcode and plus4:
        zipcode = f"{zipcode}-{plus4}"

    return {
        "street": street or candidate.get("delivery_line_1") or body.get("street") or "",
        "secondary": secondary or candidate.get("delivery_line_2") or "",
        "city": components.get("city_name") or body.get("city") or "",
        "state": components.get("state_abbreviation") or body.get("state") or "",
        "zipcode": zipcode or body.get("zipcode") or "",
        "country": body.get("country") or "US",
    }


def _timings(data: Dict[str, Any]) -> Optional[ValidationTimings]:
    raw = data.get("timings")
    if not isinstance(raw, dict):
        return None
    return ValidationTimings(
        claude_ms=(raw.get("claudeNormalization") or {}).get("actualFetchTime"),
        smarty_ms=(raw.get("smartyValidation") or {}).get("actualFetchTime"),
        total_ms=(raw.get("total") or {}).get("duration"),
    )


def transform_validation_response(body: Dict[str, Any], data: Dict[str, Any]) -> AddressValidationResult:
    """Map the backend's raw candidate list onto ``AddressValidationResult``.

    The backend answers ``{"validation": [candidate, ...], "isValid": bool}``
    where each candidate carries ``components``, ``metadata`` and ``analysis``.
    Responses that already use the result shape are parsed as they are.
    """

    if "input_address" in data and "validation" not in data:
        return AddressValidationResult.model_validate(data)

    candidates = data.get("validation") or []
    if not isinstance(candidates, list):
        raise ApiError(502, "Malformed validation response")
    candidate = candidates[0] if candidates else {}
    if not isinstance(candidate, dict):
        raise ApiError(502, "Malformed validation response")

    analysis = candidate.get("analysis") or None
    metadata = candidate.get("metadata") or None
    if not isinstance(analysis, (dict, type(None))) or not isinstance(metadata, (dict, type(None))):
        raise ApiError(502, "Malformed validation response")
    dpv = DPVAnalysis.model_validate(analysis) if analysis else None
    footnotes = _split_footnotes((analysis or {}).get("footnotes"))

    return AddressValidationResult(
        input_address=AddressInput.model_validate(_input_address(body)),
        normalized_address=_normalized_address(candidate, body),
        is_valid=bool(data.get("isValid", False)),
        dpv_analysis=dpv,
        metadata=AddressMetadata.model_validate(metadata) if metadata else None,
        timings=_timings(data),
        footnotes=footnotes or None,
        error=data.get("error"),
    )


class RemoteAddressService:
    """Client for the address backend's autocomplete and validation endpoints.

    Every call goes through ``proxy_fetch`` so callers only ever see
    ``ApiError`` subclasses, never raw transport exceptions.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(transport=transport)

    async def __aenter__(self) -> "RemoteAddressService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def autocomplete_passthrough(
        self, params: Dict[str, Any], *, timeout: float | None = None
    ) -> Dict[str, Any]:
        response = await proxy_fetch(
            self._client, SERVICE, "/api/autocomplete", params=params, timeout=timeout
        )
        return _json_body(response)

    async def autocomplete(
        self,
        search: str,
        selected: Optional[str] = None,
        *,
        timeout: float | None = None,
    ) -> List[AutocompleteSuggestion]:
        """Return suggestions for ``search``; ``selected`` narrows a multi-unit address."""

        params: Dict[str, Any] = {"search": search}
        if selected:
            params["selected"] = selected
        data = await self.autocomplete_passthrough(params, timeout=timeout)
        raw = data.get("suggestions") or []
        if not isinstance(raw, list):
            raise ApiError(502, "Malformed autocomplete response")
        try:
            return [AutocompleteSuggestion.model_validate(item) for item in raw]
        except ValidationError as exc:
            raise ApiError(502, "Malformed autocomplete response") from exc

    async def validate_passthrough(
        self, body: Dict[str, Any], *, timeout: float | None = None
    ) -> AddressValidationResult:
        response = await proxy_fetch(
            self._client,
            SERVICE,
            "/api/validate",
            method="POST",
            json=body,
            timeout=timeout if timeout is not None else settings.VALIDATE_TIMEOUT_S,
        )
        try:
            return transform_validation_response(body, _json_body(response))
        except (ValidationError, TypeError, AttributeError, KeyError) as exc:
            logger.warning("Address backend returned an unexpected validation payload: %s", exc)
            raise ApiError(502, "Malformed validation response") from exc

    async def validate(
        self,
        address: AddressInput,
        *,
        skip_normalization: bool = False,
        timeout: float | None = None,
    ) -> AddressValidationResult:
        """Validate ``address`` with one strategy, chosen by ``skip_normalization``."""

        request = ValidationRequest(
            **address.model_dump(exclude_none=True),
            skipNormalization=skip_normalization,
        )
        body = request.model_dump(by_alias=True, exclude_none=True)
        return await self.validate_passthrough(body, timeout=timeout)


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError as exc:
        logger.warning("Address backend returned a non-JSON body for %s", response.request.url)
        raise ApiError(502, "Malformed response from address backend") from exc
    if not isinstance(data, dict):
        raise ApiError(502, "Malformed response from address backend")
    return data

"""Beginner-friendly overview for this module.

WHAT: Defines the address shapes exchanged with the remote address service.
WHEN: Imported by the cache, the suggestion fetcher, the validators and the API.
WHY: One set of pydantic models keeps the wire contract in a single place.
HOW: Each model mirrors a JSON document; unknown fields are ignored.

File: addressdesk/schemas/address.py
"""


from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _format_address(address) -> str:
    parts = [address.street]
    if address.secondary:
        parts.append(address.secondary)
    parts.append(f"{address.city}, {address.state} {address.zipcode}")
    return ", ".join(parts)


class CachedAddress(_WireModel):
    """Previously validated address kept in the client's local cache."""

    street_line: str
    secondary: str = ""
    city: str = ""
    state: str = ""
    zipcode: str = ""

    @field_validator("secondary", "city", "state", "zipcode", mode="before")
    def _none_to_empty(cls, value: Optional[str]) -> str:
        return "" if value is None else value

    @property
    def identity_key(self) -> str:
        return f"{self.street_line}|{self.secondary}|{self.zipcode}"

    @property
    def display_key(self) -> str:
        return f"{self.street_line}|{self.city}|{self.state}|{self.zipcode}"

    @property
    def haystack(self) -> str:
        return f"{self.street_line} {self.secondary} {self.city} {self.state} {self.zipcode}"

    def to_address_input(self) -> "AddressInput":
        return AddressInput(
            street=self.street_line,
            secondary=self.secondary,
            city=self.city,
            state=self.state,
            zipcode=self.zipcode,
        )


class AutocompleteSuggestion(_WireModel):
    """Candidate returned by the remote lookup for a partial query.

    ``entries > 0`` marks a multi-unit building that needs a drill-down
    request before it is usable.
    """

    street_line: str
    secondary: str = ""
    city: str = ""
    state: str = ""
    zipcode: str = ""
    entries: int = Field(0, ge=0)

    @field_validator("secondary", "city", "state", "zipcode", mode="before")
    def _none_to_empty(cls, value: Optional[str]) -> str:
        return "" if value is None else value

    @property
    def is_multi_unit(self) -> bool:
        return self.entries > 0

    @property
    def display_key(self) -> str:
        return f"{self.street_line}|{self.city}|{self.state}|{self.zipcode}"

    def to_cached(self) -> CachedAddress:
        return CachedAddress(
            street_line=self.street_line,
            secondary=self.secondary,
            city=self.city,
            state=self.state,
            zipcode=self.zipcode,
        )

    def to_address_input(self) -> "AddressInput":
        return self.to_cached().to_address_input()


class AddressInput(_WireModel):
    """User-editable, unvalidated address."""

    street: str
    secondary: Optional[str] = None
    city: str = ""
    state: str = ""
    zipcode: str = ""
    country: Optional[str] = None

    @field_validator("street", "secondary", "city", "state", "zipcode", "country", mode="before")
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return str(value).strip()

    def format(self) -> str:
        return _format_address(self)


class NormalizedAddress(_WireModel):
    """Address as the backend normalized it; values are kept verbatim."""

    street: str = ""
    secondary: Optional[str] = None
    city: str = ""
    state: str = ""
    zipcode: str = ""
    country: Optional[str] = None

    def format(self) -> str:
        return _format_address(self)


class ValidationRequest(AddressInput):
    """Validation wire body: the address plus the strategy flag."""

    skip_normalization: bool = Field(False, alias="skipNormalization")


class DPVAnalysis(_WireModel):
    dpv_match_code: str = ""
    dpv_footnotes: str = ""
    dpv_cmra: str = ""
    dpv_vacant: str = ""
    dpv_no_stat: str = ""
    active: str = ""
    enhanced_match: Optional[str] = None

    @field_validator(
        "dpv_match_code", "dpv_footnotes", "dpv_cmra", "dpv_vacant", "dpv_no_stat", "active",
        mode="before",
    )
    def _none_to_empty(cls, value: Optional[str]) -> str:
        return "" if value is None else value


class AddressMetadata(_WireModel):
    record_type: Optional[str] = None
    zip_type: Optional[str] = None
    county_name: Optional[str] = None
    county_fips: Optional[str] = None
    carrier_route: Optional[str] = None
    congressional_district: Optional[str] = None
    building_default_indicator: Optional[str] = None
    rdi: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    precision: Optional[str] = None
    time_zone: Optional[str] = None
    utc_offset: Optional[float] = None
    dst: Optional[bool] = None


class ValidationTimings(_WireModel):
    claude_ms: Optional[float] = None
    smarty_ms: Optional[float] = None
    total_ms: Optional[float] = None


class AddressValidationResult(_WireModel):
    """Outcome of one validation strategy."""

    input_address: AddressInput
    normalized_address: Optional[NormalizedAddress] = None
    is_valid: bool = False
    dpv_analysis: Optional[DPVAnalysis] = None
    metadata: Optional[AddressMetadata] = None
    timings: Optional[ValidationTimings] = None
    footnotes: Optional[List[str]] = None
    error: Optional[str] = None


class CompareResult(_WireModel):
    """Both strategies' results plus the field-level agreement verdict."""

    claude_smarty: AddressValidationResult = Field(..., alias="claudeSmarty")
    smarty_only: AddressValidationResult = Field(..., alias="smartyOnly")
    addresses_match: bool = Field(..., alias="addressesMatch")

#!/usr/bin/env python3
"""
addressdesk

Purpose:
  Look up, drill into and validate US addresses from a terminal.
  - suggest:  recent local matches plus remote suggestions for partial text.
  - drill:    the individual units behind a multi-unit building.
  - validate: one validation strategy (blended by default).
  - compare:  both strategies side by side; a valid result is remembered locally.
  - recent:   search the local cache of previously validated addresses.

Backend:
  Base URL from --base-url or env ADDRESS_VALIDATION_URL.
  Autocomplete: GET  /api/autocomplete?search=...&selected=...
  Validate:     POST /api/validate  -> body: address fields + skipNormalization

Examples:
  addressdesk suggest "1600 Pennsylv"
  addressdesk suggest "350 5th Ave" --pick 1
  addressdesk drill "350 5th Ave" --secondary Apt --entries 12 --city "New York" --state NY --zip 10118
  addressdesk compare --street "1 Main St" --city Springfield --state IL --zip 62704
  addressdesk recent spring

Exit codes:
  0 = success
  1 = handled application error
  2 = network/HTTP error
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Optional

from pydantic import ValidationError

from .core.config import settings
from .core.logging import configure_logging
from .schemas.address import AddressInput, AutocompleteSuggestion
from .services.address_cache import LocalAddressCache
from .services.proxy import ApiError
from .services.remote import RemoteAddressService
from .services.suggestions import SuggestionFetcher
from .services.validation import (
    AddressValidationFailed,
    ValidationComparator,
    remember_validated,
    validate_single,
)

logger = logging.getLogger("addressdesk.cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="addressdesk", description="Address lookup and validation tools.")
    p.add_argument("--base-url", default=None,
                   help="Address backend base URL (default: env ADDRESS_VALIDATION_URL)")
    p.add_argument("--cache", default=None,
                   help=f"Local address cache file (default: {settings.address_cache_path})")
    p.add_argument("--json", action="store_true", help="Print raw JSON output.")
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging to stderr.")
    sub = p.add_subparsers(dest="command", required=True)

    suggest = sub.add_parser("suggest", help="Suggest addresses for partial text.")
    suggest.add_argument("text", help="Partial address text.")
    suggest.add_argument("--pick", type=int, default=None,
                         help="1-based suggestion to select; multi-unit buildings drill down.")

    drill = sub.add_parser("drill", help="List the units behind a multi-unit suggestion.")
    drill.add_argument("street_line", help="Suggestion street line, e.g. '350 5th Ave'.")
    drill.add_argument("--secondary", default="", help="Suggestion secondary, e.g. 'Apt'.")
    drill.add_argument("--entries", type=int, required=True, help="Unit count shown for the suggestion.")
    drill.add_argument("--city", default="")
    drill.add_argument("--state", default="")
    drill.add_argument("--zip", dest="zipcode", default="")

    for name, help_text in (("validate", "Validate one address."), ("compare", "Compare both strategies.")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--street", required=True)
        cmd.add_argument("--secondary", default=None)
        cmd.add_argument("--city", default="")
        cmd.add_argument("--state", default="")
        cmd.add_argument("--zip", dest="zipcode", default="")
        cmd.add_argument("--country", default=None)
        if name == "validate":
            cmd.add_argument("--skip-normalization", action="store_true",
                             help="Validate directly without AI normalization.")

    recent = sub.add_parser("recent", help="Search previously validated addresses.")
    recent.add_argument("query", nargs="?", default="")
    recent.add_argument("--limit", type=int, default=5)
    return p.parse_args(argv)


def _emit(payload: Any, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return
    if isinstance(payload, list):
        for line in payload:
            print(line)
    else:
        print(payload)


def _describe(index: int, suggestion: AutocompleteSuggestion) -> str:
    line = f"{index:>2}. {suggestion.street_line}"
    if suggestion.secondary:
        line += f" {suggestion.secondary}"
    line += f", {suggestion.city}, {suggestion.state} {suggestion.zipcode}"
    if suggestion.is_multi_unit:
        line += f"  ({suggestion.entries} units)"
    return line


def _address_from_args(args: argparse.Namespace) -> AddressInput:
    return AddressInput(
        street=args.street,
        secondary=args.secondary,
        city=args.city,
        state=args.state,
        zipcode=args.zipcode,
        country=args.country,
    )


async def _suggest(args: argparse.Namespace, remote: RemoteAddressService, cache: LocalAddressCache) -> int:
    async with SuggestionFetcher(remote, cache) as fetcher:
        fetcher.request_debounced(args.text)
        await fetcher.wait_idle()

        if args.pick is not None:
            if not 1 <= args.pick <= len(fetcher.suggestions):
                print(f"No suggestion #{args.pick}", file=sys.stderr)
                return 1
            chosen = await fetcher.select(fetcher.suggestions[args.pick - 1])
            if chosen is not None:
                _emit(chosen.model_dump(exclude_none=True), True)
                return 0

        local = fetcher.visible_local_results()
        if args.json:
            _emit(
                {
                    "recent": [addr.model_dump() for addr in local],
                    "suggestions": [s.model_dump() for s in fetcher.suggestions],
                },
                True,
            )
            return 0
        lines: List[str] = []
        if local:
            lines.append("Recent")
            lines.extend(f"  - {addr.haystack}" for addr in local)
        if fetcher.suggestions:
            lines.append("Suggestions")
            lines.extend(_describe(i, s) for i, s in enumerate(fetcher.suggestions, start=1))
        if not lines:
            lines.append("No matches")
        _emit(lines, False)
    return 0


async def _drill(args: argparse.Namespace, remote: RemoteAddressService, cache: LocalAddressCache) -> int:
    building = AutocompleteSuggestion(
        street_line=args.street_line,
        secondary=args.secondary,
        city=args.city,
        state=args.state,
        zipcode=args.zipcode,
        entries=args.entries,
    )
    async with SuggestionFetcher(remote, cache) as fetcher:
        units = await fetcher.drill_down(building)
    if args.json:
        _emit([unit.model_dump() for unit in units], True)
    else:
        _emit([_describe(i, unit) for i, unit in enumerate(units, start=1)] or ["No units"], False)
    return 0


async def _validate(args: argparse.Namespace, remote: RemoteAddressService) -> int:
    result = await validate_single(
        remote, _address_from_args(args), skip_normalization=args.skip_normalization
    )
    _emit(result.model_dump(exclude_none=True), True)
    return 0 if result.is_valid else 1


async def _compare(args: argparse.Namespace, remote: RemoteAddressService, cache: LocalAddressCache) -> int:
    result = await ValidationComparator(remote).compare(_address_from_args(args))
    if result.claude_smarty.is_valid:
        remember_validated(cache, result.claude_smarty)
    if args.json:
        _emit(result.model_dump(by_alias=True, exclude_none=True), True)
    else:
        blended = result.claude_smarty.normalized_address
        baseline = result.smarty_only.normalized_address
        _emit(
            [
                f"Claude + Smarty: {blended.format() if blended else '--'}",
                f"Smarty only:     {baseline.format() if baseline else '--'}",
                "Addresses match" if result.addresses_match else "Addresses differ",
            ],
            False,
        )
    return 0


def _recent(args: argparse.Namespace, cache: LocalAddressCache) -> int:
    if args.query:
        entries = cache.search(args.query, limit=args.limit)
    else:
        entries = cache.read()[: args.limit]
    if args.json:
        _emit([entry.model_dump() for entry in entries], True)
    else:
        _emit([entry.haystack for entry in entries] or ["No cached addresses"], False)
    return 0


async def run(args: argparse.Namespace) -> int:
    cache = LocalAddressCache(args.cache or settings.address_cache_path, max_entries=settings.ADDRESS_CACHE_MAX)
    if args.command == "recent":
        return _recent(args, cache)
    async with RemoteAddressService() as remote:
        if args.command == "suggest":
            return await _suggest(args, remote, cache)
        if args.command == "drill":
            return await _drill(args, remote, cache)
        if args.command == "validate":
            return await _validate(args, remote)
        return await _compare(args, remote, cache)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "WARNING")
    if args.base_url:
        settings.ADDRESS_VALIDATION_URL = args.base_url

    try:
        return asyncio.run(run(args))
    except (AddressValidationFailed, ApiError) as exc:
        message = exc.message if isinstance(exc, AddressValidationFailed) else exc.user_message()
        print(f"ERROR: {message}", file=sys.stderr)
        return 2
    except ValidationError as exc:
        print(f"ERROR: invalid address: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""Debounced address suggestions with drill-down for multi-unit buildings.

``SuggestionFetcher`` owns the visible state of one address input: the
matches found in the local cache, the remote suggestions and a loading flag.
It has two ways in:

* ``request_debounced`` for keystrokes. Lookups start only once the input has
  been quiet for the debounce window.
* ``request_immediate`` (and ``drill_down`` built on it) for explicit
  refinement requests that must not wait.

Both share one cancellation channel. Each dispatch cancels the previous
``CancellationToken`` and task before issuing a new one, and a response is
applied only while its token is still the current one, so an older request
that resolves late can never overwrite a newer result.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from ..core.config import settings
from ..schemas.address import AddressInput, AutocompleteSuggestion, CachedAddress
from .address_cache import LocalAddressCache
from .proxy import ApiError
from .remote import RemoteAddressService

logger = logging.getLogger(__name__)


class CancellationToken:
    """Marks one dispatched request; cancelled once it is superseded."""

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class SuggestionFetcher:
    def __init__(
        self,
        remote: RemoteAddressService,
        cache: LocalAddressCache,
        *,
        min_chars: int | None = None,
        debounce_seconds: float | None = None,
        timeout: float | None = None,
        on_change: Optional[Callable[["SuggestionFetcher"], None]] = None,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self.min_chars = settings.AUTOCOMPLETE_MIN_CHARS if min_chars is None else min_chars
        self.debounce_seconds = (
            settings.debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self.timeout = timeout
        self.on_change = on_change

        self.suggestions: List[AutocompleteSuggestion] = []
        self.local_results: List[CachedAddress] = []
        self.loading = False

        self._token: CancellationToken | None = None
        self._request_task: asyncio.Task | None = None
        self._debounce_task: asyncio.Task | None = None
        self._closed = False

    async def __aenter__(self) -> "SuggestionFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def request_debounced(self, value: str, enabled: bool = True) -> None:
        """Feed the latest input value; restarts the quiescence timer."""

        self._ensure_open()
        self._cancel_debounce()
        query = value.strip()
        if not enabled or len(query) < self.min_chars:
            self._cancel_request()
            self._reset_state()
            return
        loop = asyncio.get_running_loop()
        self._debounce_task = loop.create_task(self._debounce(query))

    set_input = request_debounced

    async def request_immediate(
        self, search: str, selected: Optional[str] = None
    ) -> List[AutocompleteSuggestion]:
        """Dispatch now, bypassing the debounce timer.

        Returns the suggestions that were applied, or an empty list when the
        request was superseded before it finished.
        """

        self._ensure_open()
        self._cancel_debounce()
        task = self._dispatch(search, selected)
        await asyncio.wait({task})
        if task.cancelled():
            return []
        return task.result()

    async def drill_down(self, suggestion: AutocompleteSuggestion) -> List[AutocompleteSuggestion]:
        """Ask for the individual units behind a multi-unit suggestion."""

        search = f"{suggestion.street_line} {suggestion.secondary}".strip()
        selected = (
            f"{suggestion.street_line} {suggestion.secondary} ({suggestion.entries}) "
            f"{suggestion.city} {suggestion.state} {suggestion.zipcode}"
        )
        return await self.request_immediate(search, selected)

    async def select(self, suggestion: AutocompleteSuggestion) -> AddressInput | None:
        """Pick a suggestion.

        Multi-unit buildings trigger a drill-down and return ``None``; a
        terminal suggestion clears the lists and returns its address fields.
        """

        if suggestion.is_multi_unit:
            await self.drill_down(suggestion)
            return None
        self.clear()
        return suggestion.to_address_input()

    def visible_local_results(self) -> List[CachedAddress]:
        """Local matches that the remote suggestions do not already show."""

        remote_keys = {suggestion.display_key for suggestion in self.suggestions}
        return [addr for addr in self.local_results if addr.display_key not in remote_keys]

    async def wait_idle(self) -> None:
        """Wait until neither a debounce timer nor a request is pending."""

        while True:
            pending = [
                task
                for task in (self._debounce_task, self._request_task)
                if task is not None and not task.done()
            ]
            if not pending:
                return
            await asyncio.wait(pending)

    def clear(self) -> None:
        self._cancel_debounce()
        self._cancel_request()
        self._reset_state()

    async def aclose(self) -> None:
        """Tear down: cancel the pending timer and any in-flight request."""

        if self._closed:
            return
        self._closed = True
        pending = [task for task in (self._debounce_task, self._request_task) if task is not None]
        self._cancel_debounce()
        self._cancel_request()
        self.loading = False
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("SuggestionFetcher is closed")

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)

    def _reset_state(self) -> None:
        self.suggestions = []
        self.local_results = []
        self.loading = False
        self._notify()

    def _cancel_debounce(self) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None

    def _cancel_request(self) -> None:
        if self._token is not None:
            self._token.cancel()
            self._token = None
        if self._request_task is not None and not self._request_task.done():
            self._request_task.cancel()
        self._request_task = None

    def _is_current(self, token: CancellationToken) -> bool:
        return token is self._token and not token.cancelled

    async def _debounce(self, query: str) -> None:
        await asyncio.sleep(self.debounce_seconds)
        self._debounce_task = None
        self.local_results = self._cache.search(query)
        self._notify()
        self._dispatch(query)

    def _dispatch(self, search: str, selected: Optional[str] = None) -> asyncio.Task:
        self._cancel_request()
        token = CancellationToken()
        self._token = token
        self.loading = True
        self._notify()
        task = asyncio.get_running_loop().create_task(self._run(token, search, selected))
        self._request_task = task
        return task

    async def _run(
        self, token: CancellationToken, search: str, selected: Optional[str]
    ) -> List[AutocompleteSuggestion]:
        result: List[AutocompleteSuggestion] = []
        try:
            result = await self._remote.autocomplete(search, selected, timeout=self.timeout)
        except ApiError as exc:
            logger.warning("Autocomplete lookup failed (%s): %s", exc.kind, exc.message)
        finally:
            # A cancelled or superseded request hands loading over to its successor.
            applied = self._is_current(token)
            if applied:
                self.suggestions = result
                self.loading = False
                self._request_task = None
                self._notify()
        return result if applied else []

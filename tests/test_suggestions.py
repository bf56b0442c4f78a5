"""Tests for debounced suggestions, cancellation and drill-down."""

import asyncio
import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from addressdesk.schemas.address import AutocompleteSuggestion, CachedAddress
from addressdesk.services.address_cache import LocalAddressCache
from addressdesk.services.proxy import UpstreamTimeout
from addressdesk.services.suggestions import CancellationToken, SuggestionFetcher


def suggestion(street: str, entries: int = 0, **overrides) -> AutocompleteSuggestion:
    fields = {
        "street_line": street,
        "secondary": "",
        "city": "Springfield",
        "state": "IL",
        "zipcode": "62704",
        "entries": entries,
    }
    fields.update(overrides)
    return AutocompleteSuggestion(**fields)


class FakeRemote:
    """Stands in for ``RemoteAddressService.autocomplete``.

    ``gates`` holds an ``asyncio.Event`` per search text; a call waits on it
    before answering. ``stubborn`` searches keep going even when cancelled,
    like a transport that does not honour cancellation.
    """

    def __init__(self, responses=None, *, failures=(), stubborn=()):
        self.responses = responses or {}
        self.failures = set(failures)
        self.stubborn = set(stubborn)
        self.gates = {}
        self.calls = []
        self.call_times = []

    def gate(self, search):
        self.gates[search] = asyncio.Event()
        return self.gates[search]

    async def autocomplete(self, search, selected=None, *, timeout=None):
        self.calls.append((search, selected))
        self.call_times.append(asyncio.get_running_loop().time())
        gate = self.gates.get(search)
        if gate is not None:
            try:
                await gate.wait()
            except asyncio.CancelledError:
                if search not in self.stubborn:
                    raise
                await gate.wait()
        if search in self.failures:
            raise UpstreamTimeout("Request to address timed out")
        return list(self.responses.get(search, []))


@pytest.fixture()
def cache(tmp_path):
    return LocalAddressCache(tmp_path / "cache.json")


def test_cancellation_token_flags_once_cancelled():
    token = CancellationToken()
    assert token.cancelled is False
    token.cancel()
    assert token.cancelled is True


def test_debounce_dispatches_once_after_quiet_window(cache):
    remote = FakeRemote({"1 Main St": [suggestion("1 Main St")]})

    async def scenario():
        fetcher = SuggestionFetcher(remote, cache, min_chars=3, debounce_seconds=0.2)
        loop = asyncio.get_running_loop()
        fetcher.request_debounced("1 Ma")
        await asyncio.sleep(0.05)
        fetcher.request_debounced("1 Mai")
        await asyncio.sleep(0.05)
        fetcher.request_debounced("1 Main St")
        last_change = loop.time()

        await asyncio.sleep(0.1)
        assert remote.calls == []

        await fetcher.wait_idle()
        assert remote.calls == [("1 Main St", None)]
        assert remote.call_times[0] - last_change >= 0.19
        assert [s.street_line for s in fetcher.suggestions] == ["1 Main St"]
        assert fetcher.loading is False
        await fetcher.aclose()

    asyncio.run(scenario())


def test_short_queries_never_reach_remote(cache):
    remote = FakeRemote()

    async def scenario():
        fetcher = SuggestionFetcher(remote, cache, min_chars=3, debounce_seconds=0.01)
        fetcher.request_debounced("1 ")
        await asyncio.sleep(0.1)
        fetcher.request_debounced("12345", enabled=False)
        await asyncio.sleep(0.1)
        assert remote.calls == []
        assert fetcher.suggestions == []
        assert fetcher.local_results == []
        assert fetcher.loading is False
        await fetcher.aclose()

    asyncio.run(scenario())


def test_dropping_below_threshold_clears_immediately(cache):
    cache.save(CachedAddress(street_line="1 Main St", city="Springfield", state="IL", zipcode="62704"))
    remote = FakeRemote({"1 Main": [suggestion("1 Main St")]})

    async def scenario():
        fetcher = SuggestionFetcher(remote, cache, min_chars=3, debounce_seconds=0.01)
        fetcher.request_debounced("1 Main")
        await fetcher.wait_idle()
        assert fetcher.suggestions and fetcher.local_results

        fetcher.request_debounced("1")
        # No waiting: the lists are already empty.
        assert fetcher.suggestions == []
        assert fetcher.local_results == []
        await fetcher.aclose()

    asyncio.run(scenario())


def test_local_results_appear_before_remote_answer(cache):
    cache.save(CachedAddress(street_line="1 Main St", city="Springfield", state="IL", zipcode="62704"))
    remote = FakeRemote({"main st": [suggestion("1 Main St")]})

    async def scenario():
        gate = remote.gate("main st")
        fetcher = SuggestionFetcher(remote, cache, min_chars=3, debounce_seconds=0.01)
        fetcher.request_debounced("main st")
        await asyncio.sleep(0.05)

        assert [a.street_line for a in fetcher.local_results] == ["1 Main St"]
        assert fetcher.loading is True
        assert fetcher.suggestions == []

        gate.set()
        await fetcher.wait_idle()
        assert fetcher.loading is False
        # The remote list already shows this address, so it is hidden locally.
        assert fetcher.visible_local_results() == []
        await fetcher.aclose()

    asyncio.run(scenario())


def test_late_response_of_superseded_request_is_ignored(cache):
    remote = FakeRemote(
        {"first query": [suggestion("1 Old Rd")], "second query": [suggestion("2 New Rd")]},
        stubborn={"first query"},
    )

    async def scenario():
        gate_a = remote.gate("first query")
        gate_b = remote.gate("second query")
        fetcher = SuggestionFetcher(remote, cache, min_chars=3, debounce_seconds=0.01)

        fetcher.request_debounced("first query")
        await asyncio.sleep(0.05)
        fetcher.request_debounced("second query")
        await asyncio.sleep(0.05)
        assert [call[0] for call in remote.calls] == ["first query", "second query"]

        gate_b.set()
        await asyncio.sleep(0.01)
        assert [s.street_line for s in fetcher.suggestions] == ["2 New Rd"]

        # A resolves after B; it must not overwrite B's result.
        gate_a.set()
        await asyncio.sleep(0.05)
        assert [s.street_line for s in fetcher.suggestions] == ["2 New Rd"]
        assert fetcher.loading is False
        await fetcher.aclose()

    asyncio.run(scenario())


def test_new_request_cancels_pending_one(cache):
    remote = FakeRemote({"second query": [suggestion("2 New Rd")]})

    async def scenario():
        remote.gate("first query")
        fetcher = SuggestionFetcher(remote, cache, min_chars=3, debounce_seconds=0.01)
        fetcher.request_debounced("first query")
        await asyncio.sleep(0.05)
        first_task = fetcher._request_task

        result = await fetcher.request_immediate("second query")

        assert first_task.cancelled()
        assert [s.street_line for s in result] == ["2 New Rd"]
        assert fetcher.loading is False
        await fetcher.aclose()

    asyncio.run(scenario())


def test_remote_failure_yields_empty_list(cache):
    remote = FakeRemote(failures={"1 Main"})

    async def scenario():
        fetcher = SuggestionFetcher(remote, cache, min_chars=3, debounce_seconds=0.01)
        fetcher.suggestions = [suggestion("stale")]
        fetcher.request_debounced("1 Main")
        await fetcher.wait_idle()
        assert fetcher.suggestions == []
        assert fetcher.loading is False
        await fetcher.aclose()

    asyncio.run(scenario())


def test_drill_down_composes_refinement_query(cache):
    building = suggestion("350 5th Ave", entries=12, secondary="Apt", city="New York", state="NY", zipcode="10118")
    units = [suggestion("350 5th Ave", secondary="Apt 1", city="New York", state="NY", zipcode="10118")]
    remote = FakeRemote({"350 5th Ave Apt": units})

    async def scenario():
        fetcher = SuggestionFetcher(remote, cache, min_chars=3, debounce_seconds=0.5)
        # A pending keystroke lookup must not fire after the drill-down.
        fetcher.request_debounced("350 5th")
        result = await fetcher.drill_down(building)

        assert remote.calls == [("350 5th Ave Apt", "350 5th Ave Apt (12) New York NY 10118")]
        assert result == units
        assert fetcher.suggestions == units
        await asyncio.sleep(0.6)
        assert len(remote.calls) == 1
        await fetcher.aclose()

    asyncio.run(scenario())


def test_drill_down_failure_empties_list(cache):
    building = suggestion("350 5th Ave", entries=3, secondary="Apt")
    remote = FakeRemote(failures={"350 5th Ave Apt"})

    async def scenario():
        fetcher = SuggestionFetcher(remote, cache, min_chars=3)
        fetcher.suggestions = [building]
        result = await fetcher.drill_down(building)
        assert result == []
        assert fetcher.suggestions == []
        assert fetcher.loading is False
        await fetcher.aclose()

    asyncio.run(scenario())


def test_select_returns_fields_for_terminal_suggestion(cache):
    remote = FakeRemote()

    async def scenario():
        fetcher = SuggestionFetcher(remote, cache, min_chars=3)
        chosen = suggestion("1 Main St", secondary="Unit 2")
        fetcher.suggestions = [chosen]
        address = await fetcher.select(chosen)
        assert address.street == "1 Main St"
        assert address.secondary == "Unit 2"
        assert address.zipcode == "62704"
        assert fetcher.suggestions == []
        assert remote.calls == []
        await fetcher.aclose()

    asyncio.run(scenario())


def test_aclose_cancels_timer_and_request(cache):
    remote = FakeRemote()

    async def scenario():
        remote.gate("in flight")
        fetcher = SuggestionFetcher(remote, cache, min_chars=3, debounce_seconds=0.01)
        fetcher.request_debounced("in flight")
        await asyncio.sleep(0.05)
        request_task = fetcher._request_task
        fetcher.request_debounced("never sent")

        await fetcher.aclose()

        assert request_task.cancelled()
        assert fetcher.loading is False
        await asyncio.sleep(0.05)
        assert [call[0] for call in remote.calls] == ["in flight"]
        with pytest.raises(RuntimeError):
            fetcher.request_debounced("after close")

    asyncio.run(scenario())


def test_on_change_listener_sees_loading_transitions(cache):
    remote = FakeRemote({"1 Main": [suggestion("1 Main St")]})
    seen = []

    async def scenario():
        fetcher = SuggestionFetcher(
            remote, cache, min_chars=3, debounce_seconds=0.01,
            on_change=lambda f: seen.append(f.loading),
        )
        fetcher.request_debounced("1 Main")
        await fetcher.wait_idle()
        await fetcher.aclose()

    asyncio.run(scenario())
    assert True in seen
    assert seen[-1] is False

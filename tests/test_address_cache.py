"""Tests for the local cache of previously validated addresses."""

import json
import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from addressdesk.schemas.address import CachedAddress
from addressdesk.services.address_cache import MAX_CACHE, LocalAddressCache


def make_address(n: int, **overrides) -> CachedAddress:
    fields = {
        "street_line": f"{n} Main St",
        "secondary": "",
        "city": "Springfield",
        "state": "IL",
        "zipcode": "62704",
    }
    fields.update(overrides)
    return CachedAddress(**fields)


@pytest.fixture()
def cache(tmp_path):
    return LocalAddressCache(tmp_path / "us-address-cache.json")


def test_read_missing_slot_is_empty(cache):
    assert cache.read() == []


def test_save_keeps_most_recent_first(cache):
    cache.save(make_address(1))
    cache.save(make_address(2))

    entries = cache.read()
    assert [entry.street_line for entry in entries] == ["2 Main St", "1 Main St"]


def test_save_evicts_oldest_beyond_bound(cache):
    for n in range(1, MAX_CACHE + 2):
        cache.save(make_address(n))

    entries = cache.read()
    assert len(entries) == MAX_CACHE
    keys = {entry.street_line for entry in entries}
    assert "1 Main St" not in keys
    assert f"{MAX_CACHE + 1} Main St" in keys
    assert entries[0].street_line == f"{MAX_CACHE + 1} Main St"


def test_save_replaces_entry_with_same_identity(cache):
    cache.save(make_address(1))
    cache.save(make_address(2))
    # Same street/secondary/zip but a corrected city moves to the front.
    cache.save(make_address(1, city="Springfeld"))

    entries = cache.read()
    assert len(entries) == 2
    assert entries[0].street_line == "1 Main St"
    assert entries[0].city == "Springfeld"


def test_identity_key_is_case_sensitive(cache):
    cache.save(make_address(1))
    cache.save(make_address(1, street_line="1 MAIN ST"))

    assert len(cache.read()) == 2


def test_corrupt_slot_reads_empty_and_recovers(cache):
    cache.path.write_text("{not json", encoding="utf-8")
    assert cache.read() == []

    cache.save(make_address(7))

    raw = json.loads(cache.path.read_text(encoding="utf-8"))
    assert len(raw) == 1
    assert raw[0]["street_line"] == "7 Main St"


@pytest.mark.parametrize(
    "payload",
    ['{"street_line": "1 Main St"}', '[{"city": "no street"}]', '"just a string"'],
)
def test_malformed_payloads_read_empty(cache, payload):
    cache.path.write_text(payload, encoding="utf-8")
    assert cache.read() == []


def test_write_failure_is_swallowed(tmp_path):
    # A directory where the slot file should be makes every write fail.
    slot = tmp_path / "slot"
    slot.mkdir()
    cache = LocalAddressCache(slot)

    cache.save(make_address(1))

    assert cache.read() == []


def test_search_is_case_insensitive_across_fields(cache):
    cache.save(make_address(1, city="Chicago", zipcode="60601"))
    cache.save(make_address(2, secondary="Apt 4B"))
    cache.save(make_address(3))

    assert [a.street_line for a in cache.search("apt 4b")] == ["2 Main St"]
    assert [a.street_line for a in cache.search("CHICAGO il")] == ["1 Main St"]
    assert cache.search("Nowhere") == []


def test_search_limits_results_in_storage_order(cache):
    for n in range(1, 9):
        cache.save(make_address(n))

    results = cache.search("main st")
    assert [a.street_line for a in results] == [f"{n} Main St" for n in (8, 7, 6, 5, 4)]
    assert len(cache.search("main st", limit=2)) == 2


def test_clear_empties_slot(cache):
    cache.save(make_address(1))
    cache.clear()
    assert cache.read() == []

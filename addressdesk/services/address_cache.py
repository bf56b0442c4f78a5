from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List

from pydantic import ValidationError

from ..schemas.address import CachedAddress

logger = logging.getLogger(__name__)

MAX_CACHE = 200
DEFAULT_SEARCH_LIMIT = 5


class LocalAddressCache:
    """Client-scoped store of previously validated addresses.

    Backed by one JSON slot on disk holding a list, most recently saved
    first. Storage problems never reach the caller: an absent or corrupt
    slot reads as empty and failed writes are dropped.
    """

    def __init__(self, path: Path | str, *, max_entries: int = MAX_CACHE) -> None:
        self.path = Path(path)
        self.max_entries = max_entries

    def read(self) -> List[CachedAddress]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as exc:
            logger.debug("Ignoring unreadable address cache %s: %s", self.path, exc)
            return []
        if not isinstance(raw, list):
            return []
        try:
            return [CachedAddress.model_validate(entry) for entry in raw]
        except ValidationError:
            logger.debug("Ignoring malformed address cache %s", self.path)
            return []

    def save(self, addr: CachedAddress) -> None:
        key = addr.identity_key
        entries = [entry for entry in self.read() if entry.identity_key != key]
        entries.insert(0, addr)
        del entries[self.max_entries :]
        self._write(entries)

    def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[CachedAddress]:
        needle = query.lower()
        matches: List[CachedAddress] = []
        for entry in self.read():
            if len(matches) >= limit:
                break
            if needle in entry.haystack.lower():
                matches.append(entry)
        return matches

    def clear(self) -> None:
        self._write([])

    def _write(self, entries: List[CachedAddress]) -> None:
        payload = [entry.model_dump() for entry in entries]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        except OSError as exc:
            # Full disk or read-only slot: the cache simply stays as it was.
            logger.debug("Could not write address cache %s: %s", self.path, exc)

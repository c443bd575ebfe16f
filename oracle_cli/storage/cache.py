"""
An injectable memo for store metadata keyed by title identifier, with an
optional JSON file store so lookups survive between runs.
"""

import json
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from oracle_cli.models.library import CacheEntry

log = logging.getLogger(__name__)


class _Miss(Enum):
    MISS = "miss"

    def __bool__(self) -> bool:
        return False


MISS = _Miss.MISS


@dataclass
class BatchLookup:
    """Result of a batch lookup: what the cache had, and what must be fetched."""

    ids: list[int]
    found: dict[int, Any] = field(default_factory=dict)
    missing: list[int] = field(default_factory=list)

    def merge(self, fetched: dict[int, Any]) -> list[Any]:
        """
        Combines cached and freshly fetched payloads in input order, one item
        per requested id, so a repeated id yields a repeated payload. Ids that
        are in neither are left out.
        """
        merged = []
        for title_id in self.ids:
            if title_id in self.found:
                merged.append(self.found[title_id])
            elif fetched.get(title_id) is not None:
                merged.append(fetched[title_id])
        return merged


class DetailsCache:
    """
    Memoizes metadata lookups. Entries never expire unless `max_age_days` is
    positive; `clear()` drops everything, in memory and on disk.
    """

    def __init__(
        self,
        cache_dir_path: Path | None = None,
        max_age_days: int = 0,
        stats_callback: Callable[[bool], None] | None = None,
        serializer: Callable[[Any], Any] | None = None,
        deserializer: Callable[[Any], Any] | None = None,
    ):
        """
        Initializes the cache.

        Args:
            cache_dir_path: Directory for persisted entries. None keeps the cache
            purely in memory.
            max_age_days: Age after which an entry counts as a miss. 0 disables
            expiry.
            stats_callback: Optional callback to report cache hits (True) or misses
            (False).
            serializer: Converts a payload to JSON-compatible data for the file
            store.
            deserializer: Inverse of `serializer`, applied when loading.
        """
        self.cache_dir = cache_dir_path / "details" if cache_dir_path else None
        self.max_age_seconds = max_age_days * 86400
        self._stats_callback = stats_callback
        self._serialize = serializer or (lambda payload: payload)
        self._deserialize = deserializer or (lambda data: data)
        self._entries: dict[int, CacheEntry] = {}
        self._initialized = False

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, title_id: int) -> bool:
        return self.get(title_id, record_stats=False) is not MISS

    def init(self) -> int:
        """Loads persisted entries. Safe to call more than once."""
        if self._initialized:
            return len(self._entries)
        self._initialized = True
        if self.cache_dir is None:
            return 0

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        loaded = 0
        for cache_file in self.cache_dir.glob("*.json"):
            try:
                with open(cache_file, encoding="utf-8") as f:
                    data = json.load(f)
                entry = CacheEntry(
                    title_id=int(data["title_id"]),
                    payload=self._deserialize(data["payload"]),
                    inserted_at=float(data["inserted_at"]),
                )
            except (OSError, ValueError, KeyError, TypeError) as e:
                log.debug(f"Skipping unreadable cache file {cache_file.name}: {e}")
                continue
            self._entries[entry.title_id] = entry
            loaded += 1
        log.debug(f"Loaded {loaded} cached metadata entries.")
        return loaded

    def _is_expired(self, entry: CacheEntry) -> bool:
        if self.max_age_seconds <= 0:
            return False
        return time.time() - entry.inserted_at > self.max_age_seconds

    def _record(self, hit: bool, record_stats: bool) -> None:
        if record_stats and self._stats_callback:
            self._stats_callback(hit)

    def get(self, title_id: int, record_stats: bool = True) -> Any:
        """Returns the cached payload, or MISS."""
        entry = self._entries.get(title_id)
        if entry is None or self._is_expired(entry):
            self._record(False, record_stats)
            return MISS
        self._record(True, record_stats)
        return entry.payload

    def put(self, title_id: int, payload: Any) -> None:
        entry = CacheEntry(title_id=title_id, payload=payload)
        self._entries[title_id] = entry
        if self.cache_dir is None:
            return
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            serialized = json.dumps(
                {
                    "title_id": title_id,
                    "inserted_at": entry.inserted_at,
                    "payload": self._serialize(payload),
                }
            )
            with open(self.cache_dir / f"{title_id}.json", "w", encoding="utf-8") as f:
                f.write(serialized)
        except (TypeError, OSError) as e:
            log.warning(f"Cache write failed for AppID {title_id}: {e}")

    def get_batch(self, title_ids: Iterable[int]) -> BatchLookup:
        """
        Splits ids into cached payloads and those to fetch upstream. `ids`
        keeps the input as given, repeats included; each id is looked up and
        listed as missing once.
        """
        lookup = BatchLookup(ids=list(title_ids))
        for title_id in dict.fromkeys(lookup.ids):
            payload = self.get(title_id)
            if payload is MISS:
                lookup.missing.append(title_id)
            else:
                lookup.found[title_id] = payload
        return lookup

    def clear(self) -> bool:
        """Removes all items from the cache."""
        log.info("Clearing all cache entries...")
        self._entries.clear()
        if self.cache_dir is None or not self.cache_dir.is_dir():
            return True
        try:
            for cache_file in self.cache_dir.glob("*.json"):
                cache_file.unlink()
            return True
        except OSError as e:
            log.error(f"Failed to clear cache: {e}")
            return False

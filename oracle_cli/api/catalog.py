"""
Searchable index of the Steam app list.

The list is large (hundreds of thousands of rows) and changes slowly, so it is
downloaded once and kept in a JSON file for a day.
"""

import asyncio
import json
import logging
import math
import re
import time
from pathlib import Path
from typing import Optional

import aiofiles

from oracle_cli.models.metadata import CatalogApp, SearchResults

from .client import SteamStoreClient

log = logging.getLogger(__name__)

CATALOG_TTL_SECONDS = 86400

# A term equal to one of these means the user is looking for extras
NON_GAME_SEARCH_TERMS = frozenset(
    {"dlc", "soundtrack", "demo", "pack", "artbook", "trailer", "movie", "beta", "pass"}
)

NON_GAME_KEYWORDS = (
    "dlc", "soundtrack", "demo", "pack", "sdk", "artbook", "art book", "trailer",
    "movie", "beta", "ost", "original sound", "wallpaper", "season pass",
    "bonus content", "costume", "pre-purchase", "pre-order", "expansion",
    "upgrade", "add-on", "outfit", "playtest", "guide", "manual", "cd key",
    "gift code", "gift card", "activation", "debundle", "training set",
)

_NON_GAME_PATTERN = re.compile(
    r"\b(?:" + "|".join(re.escape(k) for k in NON_GAME_KEYWORDS) + r")\b"
)


def is_non_game(name: str) -> bool:
    """Whole-word match against keywords that mark DLC, soundtracks and the like."""
    return bool(_NON_GAME_PATTERN.search(name.lower()))


class QuerySequencer:
    """
    Hands out increasing sequence numbers for search requests; a result is only
    worth showing while its number is still the latest.
    """

    def __init__(self):
        self._latest = 0

    def next(self) -> int:
        self._latest += 1
        return self._latest

    def is_current(self, seq: int) -> bool:
        return seq == self._latest


class CatalogIndex:
    """Loads the app list lazily and answers paginated name searches."""

    def __init__(
        self,
        client: SteamStoreClient,
        cache_file: Optional[Path] = None,
        ttl_seconds: int = CATALOG_TTL_SECONDS,
    ):
        self.client = client
        self.cache_file = cache_file
        self.ttl_seconds = ttl_seconds
        self._apps: list[CatalogApp] = []
        self._loaded = False
        self._load_lock = asyncio.Lock()
        self.sequencer = QuerySequencer()

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def __len__(self) -> int:
        return len(self._apps)

    def load_apps(self, apps: list[CatalogApp]) -> None:
        """Replaces the index contents without touching the network."""
        self._apps = list(apps)
        self._loaded = True

    async def _read_cache(self) -> Optional[list[CatalogApp]]:
        if self.cache_file is None or not self.cache_file.is_file():
            return None
        age = time.time() - self.cache_file.stat().st_mtime
        if age > self.ttl_seconds:
            log.debug(f"App list cache is {age / 3600:.1f}h old, refreshing.")
            return None
        try:
            async with aiofiles.open(self.cache_file, encoding="utf-8") as f:
                rows = json.loads(await f.read())
            return [CatalogApp(appid=row["appid"], name=row["name"]) for row in rows]
        except (OSError, ValueError, KeyError, TypeError) as e:
            log.warning(f"Ignoring unreadable app list cache: {e}")
            return None

    async def _write_cache(self, apps: list[CatalogApp]) -> None:
        if self.cache_file is None:
            return
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            payload = json.dumps([{"appid": a.appid, "name": a.name} for a in apps])
            async with aiofiles.open(self.cache_file, "w", encoding="utf-8") as f:
                await f.write(payload)
        except OSError as e:
            log.warning(f"Failed to save app list cache: {e}")

    async def ensure_loaded(self) -> None:
        """
        Raises:
            MetadataError: No fresh cache exists and the app list download failed.
        """
        async with self._load_lock:
            if self._loaded:
                return
            apps = await self._read_cache()
            if apps is None:
                log.info("Downloading the Steam app list...")
                apps = await self.client.fetch_app_list()
                await self._write_cache(apps)
            else:
                log.debug(f"Loaded {len(apps)} apps from cache.")
            self.load_apps(apps)

    def search(self, query: str, page: int = 1, per_page: int = 20) -> SearchResults:
        """
        Searches the loaded app list.

        A query made only of digits matches that AppID exactly. Otherwise the
        query is split on commas and an app matches when its name contains any
        term. DLC-like entries are hidden unless a term asks for them.
        """
        if per_page < 1:
            raise ValueError("per_page must be at least 1")
        query = query.strip()
        if not query:
            return SearchResults()

        if query.isascii() and query.isdigit():
            appid = int(query)
            matches = [app for app in self._apps if app.appid == appid]
        else:
            terms = [t.strip().lower() for t in query.split(",") if t.strip()]
            wants_extras = any(term in NON_GAME_SEARCH_TERMS for term in terms)
            matches = [
                app
                for app in self._apps
                if any(term in app.name.lower() for term in terms)
                and (wants_extras or not is_non_game(app.name))
            ]

        total = len(matches)
        total_pages = max(1, math.ceil(total / per_page))
        current_page = min(max(page, 1), total_pages)
        start = (current_page - 1) * per_page
        log.debug(
            f"Search '{query}': {total} results, page {current_page}/{total_pages}"
        )
        return SearchResults(
            games=matches[start : start + per_page],
            total=total,
            page=current_page,
            total_pages=total_pages,
            query=query,
        )

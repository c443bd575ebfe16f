"""
Async client for the Steam store and app-list APIs, with circuit breaker
protection and adaptive rate limiting.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp

from oracle_cli.exceptions import MetadataError
from oracle_cli.models.metadata import CatalogApp, TitleMetadata
from oracle_cli.utils.circuit_breaker import CircuitBreaker, CircuitBreakerError

from .rate_limiter import AdaptiveRateLimiter

log = logging.getLogger(__name__)


class SteamStoreClient:
    """
    Read-only lookups of title metadata.

    Features:
    - Circuit breaker for API resilience
    - Adaptive rate limiting (the store answers 429 quickly)
    - Connection pooling
    """

    STORE_URL = "https://store.steampowered.com/api/"
    APP_LIST_URL = "https://api.steampowered.com/ISteamApps/GetAppList/v2/"

    def __init__(self, max_workers: int = 8, request_timeout: float = 10):
        """
        Initializes the API client.

        Args:
            max_workers: The number of concurrent workers, used to tune the connection pool.
            request_timeout: Total timeout for one store request, in seconds.
        """
        self.max_workers = max_workers
        self.request_timeout = request_timeout

        self._session: Optional[aiohttp.ClientSession] = None
        # The store tolerates roughly 200 requests per 5 minutes
        self._rate_limiter = AdaptiveRateLimiter(
            initial_calls_per_second=1.5, max_calls_per_second=2.0
        )
        self._circuit_breaker = CircuitBreaker(
            name="Steam store API",
            failure_threshold=5,
            recovery_timeout=60,
            success_threshold=2,
            trip_on=(aiohttp.ClientError, TimeoutError),
        )

    async def _initialize_session(self) -> None:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.max_workers * 2,
                limit_per_host=self.max_workers,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={
                    "User-Agent": "oracle-cli/1.0",
                    "Accept-Encoding": "gzip, deflate",
                },
                timeout=aiohttp.ClientTimeout(
                    total=self.request_timeout, connect=10, sock_read=self.request_timeout
                ),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def api_call(
        self, url: str, timeout: Optional[aiohttp.ClientTimeout] = None, **params: Any
    ) -> Any:
        """
        Makes a rate-limited GET request guarded by the circuit breaker.

        Raises:
            MetadataError: On transport failures, non-2xx statuses or an open circuit.
        """
        await self._initialize_session()

        try:
            async with self._circuit_breaker:
                await self._rate_limiter.acquire()
                start_time = time.monotonic()

                async with self._session.get(url, params=params, timeout=timeout) as r:
                    duration_ms = (time.monotonic() - start_time) * 1000
                    log.debug(f"GET {url} -> {r.status} in {duration_ms:.0f}ms")

                    if r.status == 429:
                        retry_after = r.headers.get("Retry-After", "")
                        await self._rate_limiter.on_429(
                            float(retry_after)
                            if retry_after.isascii() and retry_after.isdigit()
                            else None
                        )

                    r.raise_for_status()
                    return await r.json(content_type=None)

        except CircuitBreakerError as e:
            log.error(f"[red]Circuit breaker is open for store calls: {e}[/red]")
            raise MetadataError(str(e)) from e
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            log.debug(f"Store call to {url} failed: {e}")
            raise MetadataError(f"Error fetching from Steam API: {e}") from e

    # Public API Methods
    async def fetch_app_details(self, title_id: int) -> TitleMetadata:
        """
        Fetches and normalizes the store details of one title.

        Raises:
            MetadataError: If the store has no data for the title.
        """
        response = await self.api_call(self.STORE_URL + "appdetails", appids=title_id)
        entry = (response or {}).get(str(title_id)) if isinstance(response, dict) else None
        if not entry or not entry.get("success") or not entry.get("data"):
            raise MetadataError(
                f"Steam API returned success=false or no data for AppID {title_id}"
            )
        try:
            return TitleMetadata.from_api(entry["data"])
        except ValueError as e:
            raise MetadataError(f"Failed to parse Steam API response: {e}") from e

    async def fetch_app_list(self) -> List[CatalogApp]:
        """Downloads the full app list (hundreds of thousands of rows)."""
        response = await self.api_call(
            self.APP_LIST_URL, timeout=aiohttp.ClientTimeout(total=120)
        )
        apps: List[Dict[str, Any]] = (
            (response or {}).get("applist", {}).get("apps", [])
            if isinstance(response, dict)
            else []
        )
        result = []
        for app in apps:
            name = str(app.get("name", "")).strip()
            if name and isinstance(app.get("appid"), int):
                result.append(CatalogApp(appid=app["appid"], name=name))
        log.info(f"Loaded {len(result)} apps from the Steam API.")
        return result

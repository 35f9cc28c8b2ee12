"""
================================================================================
Gismis v1.0 - Base Platform Adapter
================================================================================
Capability interface shared by every external anime catalog, plus an HTTP
base class for the concrete adapters.

Adapters implement four coroutines:
  - fetch_list(page, page_size)
  - search(keyword, limit)
  - fetch_detail(anime_id)
  - fetch_schedule(day)

and translate the platform's payloads into SourceRecords. Adding a platform
means adding one adapter; the merger and the aggregator never change.

Error contract:
  - transport failures / error statuses -> SourceFetchError (after retries)
  - payload without the expected container -> [] and a warning
  - items that cannot be translated (no id) -> skipped, never emitted
================================================================================
"""

import re
import time
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, runtime_checkable

import httpx

from ... import __version__
from ...errors import SourceFetchError
from ..models import SourceRecord


logger = logging.getLogger(__name__)

_DIGITS = re.compile(r'\d+')
_LEADING_NUMBER = re.compile(r'\s*-?\d+(?:\.\d+)?')


@runtime_checkable
class PlatformAdapter(Protocol):
    """What the aggregator needs from a platform."""

    platform: str

    async def fetch_list(self, page: int, page_size: int) -> List[SourceRecord]: ...

    async def search(self, keyword: str, limit: int = 20) -> List[SourceRecord]: ...

    async def fetch_detail(self, anime_id: str) -> Optional[SourceRecord]: ...

    async def fetch_schedule(self, day: Optional[int] = None) -> List[SourceRecord]: ...


class RateLimiter:
    """
    Minimum-interval rate limiter for API requests.

    Keeps each adapter under its platform's published limit
    (Jikan: 60/min, Bilibili and TMDB: conservative 120/min).
    """

    def __init__(self, requests_per_minute: int):
        """
        Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests allowed per minute
        """
        self.requests_per_minute = requests_per_minute
        self.min_interval = 60.0 / requests_per_minute  # Seconds between requests
        self.last_request = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self):
        """Wait until a request slot is available."""
        async with self._lock:
            now = time.monotonic()
            time_since_last = now - self.last_request

            if time_since_last < self.min_interval:
                wait_time = self.min_interval - time_since_last
                logger.debug(f"Rate limit: waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)

            self.last_request = time.monotonic()


class BasePlatformAdapter(ABC):
    """
    HTTP plumbing shared by the concrete adapters.

    Handles:
      - One lazily created httpx.AsyncClient (injectable for tests)
      - Rate limiting
      - Retries with exponential backoff on 429, 5xx and transport errors
      - JSON decoding, with every failure surfaced as SourceFetchError
    """

    # Platform identification
    platform: str = "base"
    name: str = "Base Platform"

    # API configuration
    base_url: str = ""

    # Rate limiting (requests per minute)
    rate_limit: int = 120

    # Request timeout (seconds); proxied upstreams can be slow
    request_timeout: float = 25.0

    # Retry configuration
    max_retries: int = 3
    retry_delay: float = 1.0

    user_agent: str = f"Gismis/{__version__}"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        request_timeout: Optional[float] = None
    ):
        if request_timeout is not None:
            self.request_timeout = request_timeout
        self.rate_limiter = RateLimiter(self.rate_limit)
        self._client = client

    def default_headers(self) -> Dict[str, str]:
        """Headers sent with every request; adapters extend this."""
        return {
            'User-Agent': self.user_agent,
            'Accept': 'application/json'
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.request_timeout,
                headers=self.default_headers(),
                follow_redirects=True
            )
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False
    ) -> Optional[Any]:
        """
        GET a JSON document with rate limiting and retries.

        Args:
            path: Path relative to base_url (or absolute URL)
            params: Query parameters
            allow_not_found: Return None on HTTP 404 instead of raising

        Returns:
            Decoded JSON body (None only for an allowed 404)

        Raises:
            SourceFetchError: On request failure after retries or undecodable body
        """
        client = await self._get_client()
        url = path if path.startswith(("http://", "https://")) else f"{self.base_url}{path}"
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                await self.rate_limiter.acquire()

                response = await client.get(url, params=params, headers=self.default_headers())

                if allow_not_found and response.status_code == 404:
                    return None

                response.raise_for_status()

            except httpx.HTTPStatusError as e:
                last_error = e
                status = e.response.status_code
                if status == 429 or status >= 500:
                    if attempt < self.max_retries - 1:
                        wait_time = self.retry_delay * (2 ** attempt)  # Exponential backoff
                        logger.warning(
                            f"{self.platform}: HTTP {status} on {path}, "
                            f"retry {attempt + 1}/{self.max_retries} in {wait_time:.1f}s"
                        )
                        await asyncio.sleep(wait_time)
                        continue
                raise SourceFetchError(
                    self.platform, f"HTTP {status} from {path}", status_code=status
                ) from e

            except httpx.RequestError as e:
                last_error = e
                if attempt < self.max_retries - 1:
                    logger.warning(
                        f"{self.platform}: Request error ({e!r}), "
                        f"retry {attempt + 1}/{self.max_retries}"
                    )
                    await asyncio.sleep(self.retry_delay)
                    continue
                raise SourceFetchError(self.platform, f"Request to {path} failed: {e!r}") from e

            try:
                return response.json()
            except ValueError as e:
                raise SourceFetchError(self.platform, f"Invalid JSON from {path}") from e

        raise SourceFetchError(self.platform, f"Max retries exceeded for {path}: {last_error!r}")

    def _translate_all(
        self,
        items: Optional[Iterable[Any]],
        transform: Callable[[Any], Optional[SourceRecord]]
    ) -> List[SourceRecord]:
        """Translate raw items, dropping the ones that cannot become a valid record."""
        records = []
        for item in items or []:
            if not isinstance(item, dict):
                continue
            try:
                record = transform(item)
            except (ValueError, TypeError) as e:
                logger.warning(f"{self.platform}: Skipping untranslatable item: {e}")
                continue
            if record is not None:
                records.append(record)
        return records

    # =========================================================================
    # ABSTRACT METHODS (must be implemented by adapters)
    # =========================================================================

    @abstractmethod
    async def fetch_list(self, page: int, page_size: int) -> List[SourceRecord]:
        """
        Fetch one page of the platform's popular anime.

        Args:
            page: Page number (1-based)
            page_size: Items per page

        Returns:
            List of SourceRecords
        """

    @abstractmethod
    async def search(self, keyword: str, limit: int = 20) -> List[SourceRecord]:
        """
        Search anime by keyword.

        Args:
            keyword: Search text
            limit: Maximum number of results

        Returns:
            List of SourceRecords
        """

    @abstractmethod
    async def fetch_detail(self, anime_id: str) -> Optional[SourceRecord]:
        """
        Fetch one anime by its platform id.

        Returns:
            SourceRecord or None if not found
        """

    @abstractmethod
    async def fetch_schedule(self, day: Optional[int] = None) -> List[SourceRecord]:
        """
        Fetch the weekly airing timetable.

        Args:
            day: 1 (Monday) .. 7 (Sunday), None for the whole week

        Returns:
            List of SourceRecords
        """

    def __repr__(self):
        return f"<{self.__class__.__name__}(platform='{self.platform}', rate_limit={self.rate_limit}/min)>"


# =============================================================================
# TRANSLATION HELPERS
# =============================================================================

def parse_latest_episode(label: Optional[str]) -> Optional[int]:
    """
    Pull the first run of digits out of a free-text episode label.

    Examples:
        "第12集"       -> 12
        "更新至第3话"   -> 3
        "全24话"        -> 24
        "即将开播"      -> None
    """
    if not label:
        return None
    match = _DIGITS.search(str(label))
    return int(match.group(0)) if match else None


def coerce_rating(value: Any) -> Optional[float]:
    """
    Coerce a rating that may arrive as a number, a numeric string or an
    object like {"score": 9.8}. Strings with a unit suffix ("9.8分") keep
    their leading number. Anything unusable becomes None.
    """
    if isinstance(value, dict):
        value = value.get('score')
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        match = _LEADING_NUMBER.match(value)
        if match:
            value = match.group(0)
    try:
        rating = float(value)
    except (TypeError, ValueError):
        return None
    if rating != rating:  # NaN
        return None
    return rating


def clean_aliases(values: Iterable[Any]) -> List[str]:
    """Drop falsy/blank aliases and duplicates, keeping first-seen order."""
    aliases = []
    for value in values:
        if not value or not isinstance(value, str) or not value.strip():
            continue
        if value not in aliases:
            aliases.append(value)
    return aliases


def safe_int(value: Any) -> Optional[int]:
    """int(value) or None for missing / non-numeric values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None

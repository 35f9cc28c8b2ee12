"""
================================================================================
Gismis v1.0 - Data Aggregator
================================================================================
Orchestrates every registered platform adapter behind one cached API.

Every public operation has the same shape:
  1. Build a deterministic cache key from the operation and its parameters
  2. Return the cached merge if present (list() can force a refresh)
  3. Fan out the per-adapter call to all adapters in parallel, each raced
     against its own per-source timeout
  4. Keep only the branches that succeeded, flattened in registration order
  5. Merge, cache with the operation's TTL, return

Source failures and timeouts stop here: they are logged and recorded in
last_results, and the operation returns whatever the other sources produced
(possibly an empty list). Bad arguments raise ValueError.

Usage:
    async with build_default_aggregator() as aggregator:
        page = await aggregator.list(1, 20)
        hits = await aggregator.search("进击的巨人", limit=10)
        monday = await aggregator.schedule(1)
================================================================================
"""

import copy
import time
import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..config import AggregatorConfig, Settings
from ..errors import SourceTimeoutError
from ..log import configure_logging, log_event
from .adapters.base import PlatformAdapter
from .adapters.bilibili import BilibiliAdapter
from .adapters.jikan import JikanAdapter
from .adapters.tmdb import TMDBAdapter
from .cache import MemoryBackend, RedisBackend, TTLCache
from .merger import DataMerger
from .models import MergedRecord, SourceRecord, decode_records, encode_records

logger = logging.getLogger(__name__)


class BranchState(str, Enum):
    """Outcome of one adapter call within a fan-out."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class BranchResult:
    """What happened to one adapter during the most recent fan-out."""
    platform: str
    state: BranchState = BranchState.PENDING
    data: Any = None
    error: Optional[BaseException] = None
    elapsed: float = 0.0  # seconds

    @property
    def succeeded(self) -> bool:
        return self.state is BranchState.SUCCEEDED


def build_cache_key(operation: str, *params: Any) -> str:
    """
    Deterministic cache key.

    Examples:
        build_cache_key("anime_list", 1, 20)    -> "anime_list:1:20"
        build_cache_key("search", "巨人", 10)    -> "search:巨人:10"
        build_cache_key("schedule", "all")      -> "schedule:all"
    """
    return ":".join([operation] + [str(p) for p in params])


def _consume_result(task: "asyncio.Task") -> None:
    # Abandoned branches must not log "exception was never retrieved"
    if not task.cancelled():
        task.exception()


class DataAggregator:
    """
    Parallel, fault-tolerant, cached access to several anime catalogs.

    Each instance owns its adapters, merger and cache; nothing is shared
    between instances.

    `last_results` holds the branch outcomes of the most recently completed
    operation on this instance (empty when it was served from the cache).
    Concurrent operations overwrite it, so read it right after awaiting a
    single call.
    """

    def __init__(
        self,
        adapters: Iterable[PlatformAdapter],
        cache: Optional[TTLCache] = None,
        merger: Optional[DataMerger] = None,
        config: Optional[AggregatorConfig] = None
    ):
        self.adapters: List[PlatformAdapter] = list(adapters)
        self.config = config or AggregatorConfig()
        self.cache = cache if cache is not None else TTLCache(default_ttl=self.config.list_ttl)
        self.merger = merger or DataMerger()
        self.last_results: List[BranchResult] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        """Close every adapter that holds network resources."""
        for adapter in self.adapters:
            close = getattr(adapter, 'close', None)
            if close is None:
                continue
            result = close()
            if inspect.isawaitable(result):
                await result

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    def platforms(self) -> List[str]:
        """Registered platform tags, in registration order."""
        return [adapter.platform for adapter in self.adapters]

    def has_platform(self, name: str) -> bool:
        return any(adapter.platform == name for adapter in self.adapters)

    def _adapter(self, name: str) -> Optional[PlatformAdapter]:
        for adapter in self.adapters:
            if adapter.platform == name:
                return adapter
        return None

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    async def list(self, page: int = 1, page_size: int = 20, force_refresh: bool = False) -> List[MergedRecord]:
        """
        One page of popular anime, merged across platforms.

        Args:
            page: Page number (1-based)
            page_size: Items requested from each platform
            force_refresh: Skip the cache read (the result is still cached)

        Returns:
            List of MergedRecords (empty if every source failed)
        """
        _require_positive(page=page, page_size=page_size)
        key = build_cache_key("anime_list", page, page_size)

        cached = self._cached(key, force_refresh)
        if cached is not None:
            return _detached(cached)

        merged = await self._aggregate(
            "list", lambda adapter: adapter.fetch_list(page, page_size)
        )
        self.cache.set(key, merged, self.config.list_ttl)
        return _detached(merged)

    async def search(self, keyword: str, limit: int = 20, force_refresh: bool = False) -> List[MergedRecord]:
        """
        Search every platform and merge the union.

        The full union is merged (and cached) before truncating to `limit`,
        so a title reported near the limit by several platforms is never
        split across clusters.
        """
        _require_positive(limit=limit)
        key = build_cache_key("search", keyword, limit)

        cached = self._cached(key, force_refresh)
        if cached is not None:
            return _detached(cached[:limit])

        merged = await self._aggregate(
            "search", lambda adapter: adapter.search(keyword, limit)
        )
        self.cache.set(key, merged, self.config.search_ttl)
        return _detached(merged[:limit])

    async def schedule(self, day: Optional[int] = None, force_refresh: bool = False) -> List[MergedRecord]:
        """
        Weekly airing timetable.

        Args:
            day: 1 (Monday) .. 7 (Sunday), None for the whole week
            force_refresh: Skip the cache read (the result is still cached)
        """
        if day is not None and not 1 <= day <= 7:
            raise ValueError(f"day must be between 1 and 7, got {day}")
        key = build_cache_key("schedule", day if day is not None else "all")

        cached = self._cached(key, force_refresh)
        if cached is not None:
            return _detached(cached)

        merged = await self._aggregate(
            "schedule", lambda adapter: adapter.fetch_schedule(day)
        )
        self.cache.set(key, merged, self.config.schedule_ttl)
        return _detached(merged)

    async def detail(self, platform: str, anime_id: str) -> Optional[SourceRecord]:
        """
        One anime from one platform, under the same timeout as a fan-out.

        Returns:
            SourceRecord, or None if the platform is unknown, the id does not
            exist, or the source failed
        """
        adapter = self._adapter(platform)
        if adapter is None:
            logger.warning(f"detail: Unknown platform '{platform}'")
            return None

        branch = await self._run_branch(
            adapter, "detail", lambda a: a.fetch_detail(anime_id)
        )
        self.last_results = [branch]
        return branch.data if branch.succeeded else None

    async def health_check(self) -> Dict[str, bool]:
        """Probe every adapter with a one-item list request."""
        branches = await self._fan_out("health", lambda adapter: adapter.fetch_list(1, 1))
        status = {branch.platform: branch.succeeded for branch in branches}
        healthy = sum(1 for ok in status.values() if ok)
        logger.info(f"Health check: {healthy}/{len(status)} sources healthy")
        return status

    # =========================================================================
    # FAN-OUT
    # =========================================================================

    def _cached(self, key: str, force_refresh: bool) -> Optional[List[MergedRecord]]:
        if force_refresh:
            return None
        cached = self.cache.get(key)
        if cached is not None:
            self.last_results = []
        return cached

    async def _aggregate(self, operation: str, call: Callable[[PlatformAdapter], Any]) -> List[MergedRecord]:
        branches = await self._fan_out(operation, call)

        records: List[SourceRecord] = []
        for branch in branches:
            if branch.succeeded:
                records.extend(branch.data or [])

        merged = self.merger.merge(records)
        ok = sum(1 for branch in branches if branch.succeeded)
        logger.info(
            f"{operation}: {ok}/{len(branches)} sources succeeded, "
            f"{len(records)} records merged into {len(merged)}"
        )
        return merged

    async def _fan_out(self, operation: str, call: Callable[[PlatformAdapter], Any]) -> List[BranchResult]:
        """Run `call` against every adapter concurrently; results keep registration order."""
        if not self.adapters:
            logger.warning(f"{operation}: No adapters registered")
            self.last_results = []
            return []

        branches = await asyncio.gather(*[
            self._run_branch(adapter, operation, call) for adapter in self.adapters
        ])
        self.last_results = branches
        return branches

    async def _run_branch(
        self,
        adapter: PlatformAdapter,
        operation: str,
        call: Callable[[PlatformAdapter], Any]
    ) -> BranchResult:
        """
        Race one adapter call against the per-source timeout.

        Never raises for source problems: a thrown error (synchronous or
        asynchronous) becomes FAILED, a missed deadline becomes TIMED_OUT
        and the abandoned call is cancelled without waiting for it.
        """
        branch = BranchResult(platform=adapter.platform)
        timeout = self.config.per_source_timeout
        started = time.monotonic()

        async def invoke():
            value = call(adapter)
            if inspect.isawaitable(value):
                value = await value
            return value

        task = asyncio.ensure_future(invoke())
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        branch.elapsed = time.monotonic() - started

        if not done:
            task.cancel()
            task.add_done_callback(_consume_result)
            branch.state = BranchState.TIMED_OUT
            branch.error = SourceTimeoutError(adapter.platform, timeout)
            logger.warning(f"{operation}: {adapter.platform} timed out after {timeout:.2f}s")
        elif task.cancelled():
            branch.state = BranchState.FAILED
            branch.error = asyncio.CancelledError()
            logger.error(f"{operation}: {adapter.platform} call was cancelled")
        elif task.exception() is not None:
            branch.state = BranchState.FAILED
            branch.error = task.exception()
            logger.error(f"{operation}: {adapter.platform} failed: {branch.error!r}")
        else:
            branch.state = BranchState.SUCCEEDED
            branch.data = task.result()

        log_event({
            'event': 'branch',
            'operation': operation,
            'platform': adapter.platform,
            'state': branch.state.value,
            'elapsed_ms': round(branch.elapsed * 1000, 1),
            'count': len(branch.data) if isinstance(branch.data, (list, tuple)) else None,
            'error': str(branch.error) if branch.error else None,
        })
        return branch


def _detached(records: List[MergedRecord]) -> List[MergedRecord]:
    # Cached entries stay immutable: callers get their own records
    return copy.deepcopy(records)


def _require_positive(**values: int) -> None:
    for name, value in values.items():
        if value < 1:
            raise ValueError(f"{name} must be >= 1, got {value}")


# =============================================================================
# WIRING
# =============================================================================

def build_default_aggregator(settings: Optional[Settings] = None) -> DataAggregator:
    """
    Aggregator wired from environment settings.

    Bilibili is always registered; TMDB only with an API token; Jikan unless
    disabled. REDIS_URL switches the cache to a shared Redis store.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level, settings.log_file or None, settings.debug_logging)

    adapters: List[PlatformAdapter] = [BilibiliAdapter(request_timeout=settings.request_timeout)]

    if settings.tmdb_api_token:
        adapters.append(TMDBAdapter(api_token=settings.tmdb_api_token, request_timeout=settings.request_timeout))
    else:
        logger.info("TMDB_API_TOKEN not set, TMDB adapter disabled")

    if settings.enable_jikan:
        adapters.append(JikanAdapter(request_timeout=settings.request_timeout))

    if settings.redis_url:
        backend = RedisBackend(url=settings.redis_url, dumps=encode_records, loads=decode_records)
        logger.info("Using Redis cache backend")
    else:
        backend = MemoryBackend()

    cache = TTLCache(backend=backend, default_ttl=settings.aggregator.list_ttl)
    aggregator = DataAggregator(adapters, cache=cache, config=settings.aggregator)
    logger.info(f"Aggregator ready with sources: {', '.join(aggregator.platforms())}")
    return aggregator

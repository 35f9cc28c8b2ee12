import asyncio
from typing import List, Optional

import httpx
import pytest

from gismis_app.catalog.models import SourceRecord


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubAdapter:
    """In-memory adapter returning canned records, optionally slow or broken."""

    def __init__(
        self,
        platform: str,
        records: Optional[List[SourceRecord]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0
    ):
        self.platform = platform
        self.records = records or []
        self.error = error
        self.delay = delay
        self.calls = []
        self.closed = False

    async def _respond(self, name, *args):
        self.calls.append((name,) + args)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.records)

    async def fetch_list(self, page, page_size):
        return await self._respond('fetch_list', page, page_size)

    async def search(self, keyword, limit=20):
        return await self._respond('search', keyword, limit)

    async def fetch_detail(self, anime_id):
        records = await self._respond('fetch_detail', anime_id)
        return next((r for r in records if r.id == anime_id), None)

    async def fetch_schedule(self, day=None):
        return await self._respond('fetch_schedule', day)

    async def close(self):
        self.closed = True


class ThrowingAdapter(StubAdapter):
    """Raises before returning an awaitable."""

    def fetch_list(self, page, page_size):
        raise RuntimeError(f"{self.platform} exploded")

    def search(self, keyword, limit=20):
        raise RuntimeError(f"{self.platform} exploded")


def mock_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by handler(request)."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def unthrottled(adapter):
    adapter.rate_limiter.min_interval = 0.0
    adapter.retry_delay = 0.0
    return adapter


def make_record(platform: str, title: str, record_id: str = "1", **kwargs) -> SourceRecord:
    return SourceRecord(
        id=record_id,
        source_platform=platform,
        title=title,
        play_url=kwargs.pop('play_url', f"https://{platform}.example/{record_id}"),
        **kwargs
    )


@pytest.fixture
def clock():
    return FakeClock()


class FakeRedis:
    """Tiny dict-backed stand-in for redis.Redis (decode_responses=True)."""

    def __init__(self):
        self.data = {}
        self.expiry = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex

    def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)

    def scan_iter(self, match=None):
        prefix = match.rstrip('*')
        return iter([k for k in list(self.data) if k.startswith(prefix)])

"""
================================================================================
Gismis v1.0 - Jikan Adapter (MyAnimeList)
================================================================================
REST client for Jikan v4, the unofficial MyAnimeList API.

Jikan Features:
  - Largest user base = most reliable scores
  - Member counts (used as play_count)
  - English / Japanese titles and synonyms for cross-platform matching
  - Weekly broadcast schedule
  - 60 requests/min, no authentication required

API Docs: https://docs.api.jikan.moe/
================================================================================
"""

import logging
from typing import Any, Dict, List, Optional

from .base import BasePlatformAdapter, clean_aliases, coerce_rating, safe_int
from ..models import AnimeStatus, SourceRecord

logger = logging.getLogger(__name__)


PLAY_URL = "https://myanimelist.net/anime/{mal_id}"

# Jikan /schedules filter values, 1 = Monday ... 7 = Sunday
WEEKDAYS = {
    1: 'monday',
    2: 'tuesday',
    3: 'wednesday',
    4: 'thursday',
    5: 'friday',
    6: 'saturday',
    7: 'sunday',
}

# broadcast.day comes back as "Mondays", "Tuesdays", ...
BROADCAST_DAYS = {f"{name.capitalize()}s": day for day, name in WEEKDAYS.items()}

STATUS_MAP = {
    'Finished Airing': AnimeStatus.COMPLETED,
    'Currently Airing': AnimeStatus.ONGOING,
    'Not yet aired': AnimeStatus.UPCOMING,
}

# Jikan caps page size at 25
MAX_LIMIT = 25


class JikanAdapter(BasePlatformAdapter):
    """
    Jikan v4 adapter for MyAnimeList data.

    Jikan scrapes MyAnimeList and enforces strict rate limits (60/min,
    3/sec); the shared RateLimiter keeps us under them.
    """

    platform = "mal"  # MyAnimeList
    name = "MyAnimeList (Jikan)"
    base_url = "https://api.jikan.moe/v4"
    rate_limit = 60

    async def fetch_list(self, page: int, page_size: int) -> List[SourceRecord]:
        """
        Top anime by MyAnimeList ranking.

        Jikan pages hold at most 25 items, so larger pages are stitched
        together from consecutive 25-item Jikan pages.
        """
        if page_size <= MAX_LIMIT:
            items = await self._top_anime(page, page_size)
            return self._translate_all(items[:page_size], self.transform)

        start = (page - 1) * page_size
        first = start // MAX_LIMIT + 1
        last = (start + page_size - 1) // MAX_LIMIT + 1

        items = []
        for jikan_page in range(first, last + 1):
            chunk = await self._top_anime(jikan_page, MAX_LIMIT)
            items.extend(chunk)
            if len(chunk) < MAX_LIMIT:
                break  # last page

        offset = start - (first - 1) * MAX_LIMIT
        return self._translate_all(items[offset:offset + page_size], self.transform)

    async def _top_anime(self, page: int, limit: int) -> list:
        data = await self._get_json("/top/anime", params={'page': page, 'limit': limit})

        items = _data(data)
        if not isinstance(items, list):
            logger.warning(f"{self.platform}: No data in top anime response (page {page})")
            return []
        return items

    async def search(self, keyword: str, limit: int = 20) -> List[SourceRecord]:
        """Search anime by title."""
        data = await self._get_json(
            "/anime",
            params={
                'q': keyword,
                'limit': min(limit, MAX_LIMIT),
                'order_by': 'members',  # Sort by popularity
                'sort': 'desc',
            }
        )

        items = _data(data)
        if not isinstance(items, list):
            logger.warning(f"{self.platform}: No data in search response for '{keyword}'")
            return []

        return self._translate_all(items, self.transform)[:limit]

    async def fetch_detail(self, anime_id: str) -> Optional[SourceRecord]:
        """Anime detail by MAL id."""
        data = await self._get_json(f"/anime/{anime_id}", allow_not_found=True)

        anime = _data(data)
        if not isinstance(anime, dict):
            return None

        records = self._translate_all([anime], self.transform)
        return records[0] if records else None

    async def fetch_schedule(self, day: Optional[int] = None) -> List[SourceRecord]:
        """Broadcast schedule for one weekday, or the whole week."""
        params = {'limit': MAX_LIMIT}
        if day is not None:
            params['filter'] = WEEKDAYS[day]

        data = await self._get_json("/schedules", params=params)

        items = _data(data)
        if not isinstance(items, list):
            logger.warning(f"{self.platform}: No data in schedule response")
            return []

        records = self._translate_all(items, self.transform)
        if day is not None:
            # Entries without broadcast info are still part of the day's listing
            records = [r for r in records if r.update_day in (None, day)]
        return records

    # =========================================================================
    # TRANSLATION
    # =========================================================================

    def transform(self, raw: Dict[str, Any]) -> Optional[SourceRecord]:
        """Translate a Jikan anime object into a SourceRecord."""
        mal_id = safe_int(raw.get('mal_id'))
        if mal_id is None:
            return None

        broadcast = raw.get('broadcast') if isinstance(raw.get('broadcast'), dict) else {}
        synonyms = raw.get('title_synonyms') or []

        return SourceRecord(
            id=str(mal_id),
            source_platform=self.platform,
            title=raw.get('title') or '',
            title_aliases=clean_aliases(
                [raw.get('title_english'), raw.get('title_japanese')] + list(synonyms)
            ),
            cover_url=self.cover_url(raw.get('images')),
            synopsis=raw.get('synopsis') or None,
            rating=coerce_rating(raw.get('score')),
            play_count=safe_int(raw.get('members')),
            status=self.map_status(raw.get('status')),
            genres=[g['name'] for g in raw.get('genres') or [] if isinstance(g, dict) and g.get('name')],
            release_year=safe_int(raw.get('year')),
            episode_count=safe_int(raw.get('episodes')),
            update_day=BROADCAST_DAYS.get(broadcast.get('day')),
            update_time=broadcast.get('time') or None,
            play_url=raw.get('url') or PLAY_URL.format(mal_id=mal_id),
        )

    @staticmethod
    def cover_url(images: Any) -> str:
        """Prefer the large JPG, falling back to the regular one."""
        if not isinstance(images, dict):
            return ''
        jpg = images.get('jpg') if isinstance(images.get('jpg'), dict) else {}
        return jpg.get('large_image_url') or jpg.get('image_url') or ''

    @staticmethod
    def map_status(status: Optional[str]) -> AnimeStatus:
        return STATUS_MAP.get(status, AnimeStatus.ONGOING)


def _data(payload: Any) -> Any:
    return payload.get('data') if isinstance(payload, dict) else None

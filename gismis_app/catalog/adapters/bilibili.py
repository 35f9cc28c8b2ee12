"""
================================================================================
Gismis v1.0 - Bilibili Adapter
================================================================================
Client for the public Bilibili PGC (bangumi) web APIs.

Bilibili Features:
  - Play counts, Chinese titles and high quality covers
  - A weekly timeline with airing day, time and latest episode label
  - No authentication, but expects browser-like headers and a Referer

Endpoints:
  - /pgc/web/rank/list             ranking list (used for paging)
  - /x/web-interface/search/type   bangumi search
  - /pgc/view/web/season           season detail
  - /pgc/web/timeline              weekly timetable
================================================================================
"""

import re
import logging
from typing import Any, Dict, List, Optional

from .base import BasePlatformAdapter, clean_aliases, coerce_rating, parse_latest_episode, safe_int
from ..models import AnimeStatus, SourceRecord

logger = logging.getLogger(__name__)


PLAY_URL = "https://www.bilibili.com/bangumi/play/ss{season_id}"

# Search results highlight the keyword with <em class="keyword">...</em>
_TAGS = re.compile(r'<[^>]+>')


class BilibiliAdapter(BasePlatformAdapter):
    """
    Bilibili bangumi adapter.

    Ratings arrive either as {"score": 9.7} or as a numeric string depending
    on the endpoint; the ranking list has no paging so it is sliced locally.
    """

    platform = "bilibili"
    name = "Bilibili"
    base_url = "https://api.bilibili.com"
    rate_limit = 120

    def default_headers(self) -> Dict[str, str]:
        return {
            'User-Agent': (
                'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 '
                '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
            ),
            'Referer': 'https://www.bilibili.com/',
            'Accept': 'application/json, text/plain, */*',
            'Accept-Language': 'zh-CN,zh;q=0.9,en;q=0.8',
        }

    async def fetch_list(self, page: int, page_size: int) -> List[SourceRecord]:
        """Popular bangumi from the 3-day ranking, paged locally."""
        data = await self._get_json(
            "/pgc/web/rank/list",
            params={'day': 3, 'season_type': 1}
        )

        items = _dig(data, 'result', 'list')
        if not isinstance(items, list):
            logger.warning(f"{self.platform}: No list in ranking response (code={_code(data)})")
            return []

        start = (page - 1) * page_size
        paged = items[start:start + page_size]
        logger.info(f"{self.platform}: Got {len(items)} ranked items, page {page} has {len(paged)}")

        return self._translate_all(paged, self.transform)

    async def search(self, keyword: str, limit: int = 20) -> List[SourceRecord]:
        """Search bangumi by keyword."""
        data = await self._get_json(
            "/x/web-interface/search/type",
            params={
                'search_type': 'media_bangumi',
                'keyword': keyword,
                'page': 1,
                'pagesize': limit,
            }
        )

        items = _dig(data, 'data', 'result')
        if not isinstance(items, list):
            logger.warning(f"{self.platform}: No result in search response for '{keyword}'")
            return []

        return self._translate_all(items, self.transform)[:limit]

    async def fetch_detail(self, anime_id: str) -> Optional[SourceRecord]:
        """Season detail by season id."""
        data = await self._get_json(
            "/pgc/view/web/season",
            params={'season_id': anime_id},
            allow_not_found=True
        )

        season = _dig(data, 'result')
        if not isinstance(season, dict):
            return None

        records = self._translate_all([season], self.transform)
        return records[0] if records else None

    async def fetch_schedule(self, day: Optional[int] = None) -> List[SourceRecord]:
        """Weekly timeline, optionally restricted to one weekday (1-7)."""
        data = await self._get_json(
            "/pgc/web/timeline",
            params={'types': 1, 'before': 0, 'after': 7}
        )

        timeline = _dig(data, 'result')
        if not isinstance(timeline, list):
            logger.warning(f"{self.platform}: No result in timeline response (code={_code(data)})")
            return []

        records = []
        for entry in timeline:
            if not isinstance(entry, dict):
                continue
            day_of_week = safe_int(entry.get('day_of_week'))
            if day is not None and day_of_week != day:
                continue
            records.extend(self._translate_all(
                entry.get('episodes'),
                lambda ep: self.transform_timeline_episode(ep, day_of_week)
            ))

        return records

    # =========================================================================
    # TRANSLATION
    # =========================================================================

    def transform(self, raw: Dict[str, Any]) -> Optional[SourceRecord]:
        """Translate a season / ranking / search item into a SourceRecord."""
        season_id = _first_id(raw.get('season_id'), raw.get('media_id'))
        if not season_id:
            logger.debug(f"{self.platform}: Dropping item without season_id/media_id")
            return None

        stat = raw.get('stat') if isinstance(raw.get('stat'), dict) else {}
        new_ep = raw.get('new_ep') if isinstance(raw.get('new_ep'), dict) else {}

        return SourceRecord(
            id=season_id,
            source_platform=self.platform,
            title=_strip_tags(raw.get('title') or raw.get('season_title')),
            title_aliases=clean_aliases([_strip_tags(raw.get('origin_name')), _strip_tags(raw.get('alias'))]),
            cover_url=raw.get('cover') or raw.get('square_cover') or '',
            synopsis=raw.get('evaluate') or raw.get('desc') or None,
            rating=coerce_rating(raw.get('rating') or raw.get('media_score')),
            play_count=safe_int(stat.get('view')),
            status=self.map_status(raw.get('is_finish')),
            genres=_styles(raw.get('styles')),
            release_year=safe_int(raw.get('season_year')),
            episode_count=safe_int(raw.get('total_count')),
            latest_episode=parse_latest_episode(new_ep.get('index_show')),
            update_day=safe_int(raw.get('day_of_week')),
            update_time=raw.get('pub_time') or None,
            play_url=raw.get('url') or PLAY_URL.format(season_id=season_id),
        )

    def transform_timeline_episode(self, raw: Dict[str, Any], day_of_week: Optional[int]) -> Optional[SourceRecord]:
        """Translate a timeline episode; everything on the timeline is airing."""
        season_id = _first_id(raw.get('season_id'))
        if not season_id:
            return None

        return SourceRecord(
            id=season_id,
            source_platform=self.platform,
            title=raw.get('title') or '',
            cover_url=raw.get('cover') or raw.get('square_cover') or '',
            status=AnimeStatus.ONGOING,
            update_day=day_of_week,
            update_time=raw.get('pub_time') or None,
            latest_episode=parse_latest_episode(raw.get('pub_index')),
            play_url=PLAY_URL.format(season_id=season_id),
        )

    @staticmethod
    def map_status(is_finish: Any) -> AnimeStatus:
        """is_finish == 1 means the season has finished airing."""
        return AnimeStatus.COMPLETED if safe_int(is_finish) == 1 else AnimeStatus.ONGOING


def _dig(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _strip_tags(text: Any) -> str:
    if not isinstance(text, str):
        return ''
    return _TAGS.sub('', text).strip()


def _styles(styles: Any) -> List[str]:
    # Search results send "奇幻/战斗", season payloads send a list
    if isinstance(styles, str):
        styles = styles.split('/')
    if not isinstance(styles, list):
        return []
    return [s.strip() for s in styles if isinstance(s, str) and s.strip()]


def _code(data: Any) -> Any:
    return data.get('code') if isinstance(data, dict) else None


def _first_id(*candidates: Any) -> str:
    for candidate in candidates:
        if candidate is None or isinstance(candidate, bool):
            continue
        value = str(candidate).strip()
        if value and value != '0':
            return value
    return ''

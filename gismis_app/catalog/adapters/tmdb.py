"""
================================================================================
Gismis v1.0 - TMDB Adapter
================================================================================
REST client for The Movie Database (v3), restricted to Japanese animation.

TMDB Features:
  - International ratings (vote_average, 0-10)
  - Posters, overviews and air dates in zh-CN
  - Bearer token authentication (TMDB_API_TOKEN)
  - No weekly timetable: fetch_schedule() is always empty

API Docs: https://developer.themoviedb.org/reference/intro/getting-started
================================================================================
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from .base import BasePlatformAdapter, clean_aliases, coerce_rating, safe_int
from ..models import AnimeStatus, SourceRecord

logger = logging.getLogger(__name__)


IMAGE_BASE = "https://image.tmdb.org/t/p"
PLAY_URL = "https://www.themoviedb.org/tv/{tmdb_id}"

# Animation genre id on TMDB
ANIMATION_GENRE_ID = 16

# TMDB TV genre ids (search/discover payloads only carry ids)
SERIES_GENRES = {
    10759: "Action & Adventure",
    16: "Animation",
    35: "Comedy",
    80: "Crime",
    99: "Documentary",
    18: "Drama",
    10751: "Family",
    10762: "Kids",
    9648: "Mystery",
    10763: "News",
    10764: "Reality",
    10765: "Sci-Fi & Fantasy",
    10766: "Soap",
    10767: "Talk",
    10768: "War & Politics",
    37: "Western",
}

STATUS_MAP = {
    'Ended': AnimeStatus.COMPLETED,
    'Canceled': AnimeStatus.COMPLETED,
    'Returning Series': AnimeStatus.ONGOING,
    'In Production': AnimeStatus.ONGOING,
    'Planned': AnimeStatus.UPCOMING,
}


class TMDBAdapter(BasePlatformAdapter):
    """TMDB adapter for Japanese animated TV series."""

    platform = "tmdb"
    name = "The Movie Database"
    base_url = "https://api.themoviedb.org/3"
    rate_limit = 120
    language = "zh-CN"

    def __init__(
        self,
        api_token: str = "",
        client: Optional[httpx.AsyncClient] = None,
        request_timeout: Optional[float] = None
    ):
        super().__init__(client=client, request_timeout=request_timeout)
        self.api_token = api_token
        if not api_token:
            logger.warning(f"{self.platform}: No API token configured, requests will be rejected")

    def default_headers(self) -> Dict[str, str]:
        headers = super().default_headers()
        headers['Authorization'] = f"Bearer {self.api_token}"
        return headers

    async def fetch_list(self, page: int, page_size: int) -> List[SourceRecord]:
        """Popular Japanese animated series. TMDB pages are fixed at 20 items."""
        data = await self._get_json(
            "/discover/tv",
            params={
                'with_genres': ANIMATION_GENRE_ID,
                'with_origin_country': 'JP',
                'sort_by': 'popularity.desc',
                'page': page,
                'language': self.language,
            }
        )

        results = _results(data)
        if results is None:
            logger.warning(f"{self.platform}: No results in discover response")
            return []

        return self._translate_all(results[:page_size], self.transform)

    async def search(self, keyword: str, limit: int = 20) -> List[SourceRecord]:
        """Search TV series and keep only animation."""
        data = await self._get_json(
            "/search/tv",
            params={'query': keyword, 'language': self.language, 'page': 1}
        )

        results = _results(data)
        if results is None:
            logger.warning(f"{self.platform}: No results in search response for '{keyword}'")
            return []

        anime = [
            item for item in results
            if isinstance(item, dict) and ANIMATION_GENRE_ID in (item.get('genre_ids') or [])
        ]
        logger.debug(f"{self.platform}: {len(anime)}/{len(results)} search results are animation")

        # Search payloads carry no status
        return self._translate_all(anime[:limit], self.transform_search_result)

    async def fetch_detail(self, anime_id: str) -> Optional[SourceRecord]:
        """Series detail by TMDB id."""
        data = await self._get_json(
            f"/tv/{anime_id}",
            params={'language': self.language},
            allow_not_found=True
        )
        if not isinstance(data, dict) or not data:
            return None

        records = self._translate_all([data], self.transform)
        return records[0] if records else None

    async def fetch_schedule(self, day: Optional[int] = None) -> List[SourceRecord]:
        """TMDB has no weekly timetable."""
        return []

    # =========================================================================
    # TRANSLATION
    # =========================================================================

    def transform(self, raw: Dict[str, Any]) -> Optional[SourceRecord]:
        """Translate a discover / detail item."""
        tmdb_id = safe_int(raw.get('id'))
        if tmdb_id is None:
            return None

        return SourceRecord(
            id=str(tmdb_id),
            source_platform=self.platform,
            title=raw.get('name') or '',
            title_aliases=clean_aliases([raw.get('original_name')]),
            cover_url=self.build_image_url(raw.get('poster_path')),
            synopsis=raw.get('overview') or None,
            rating=coerce_rating(raw.get('vote_average')),
            status=self.map_status(raw.get('status')),
            genres=self.genre_names(raw),
            release_year=self.parse_year(raw.get('first_air_date')),
            episode_count=safe_int(raw.get('number_of_episodes')),
            play_url=PLAY_URL.format(tmdb_id=tmdb_id),
        )

    def transform_search_result(self, raw: Dict[str, Any]) -> Optional[SourceRecord]:
        """Search results have no status; treat them as airing."""
        return self.transform({**raw, 'status': None})

    def genre_names(self, raw: Dict[str, Any]) -> List[str]:
        """Names from a detail payload's genres, else mapped from genre_ids."""
        genres = raw.get('genres')
        if isinstance(genres, list) and genres:
            return [g['name'] for g in genres if isinstance(g, dict) and g.get('name')]
        return [SERIES_GENRES[g] for g in raw.get('genre_ids') or [] if g in SERIES_GENRES]

    @staticmethod
    def build_image_url(path: Optional[str]) -> str:
        if not path:
            return ''
        return f"{IMAGE_BASE}/w500{path}"

    @staticmethod
    def map_status(status: Optional[str]) -> AnimeStatus:
        return STATUS_MAP.get(status, AnimeStatus.ONGOING)

    @staticmethod
    def parse_year(date_str: Optional[str]) -> Optional[int]:
        """Year from an ISO date ("2013-04-07" -> 2013), None if unparseable."""
        if not date_str or not isinstance(date_str, str):
            return None
        try:
            return date.fromisoformat(date_str[:10]).year
        except ValueError:
            return None


def _results(data: Any) -> Optional[list]:
    if not isinstance(data, dict):
        return None
    results = data.get('results')
    return results if isinstance(results, list) else None

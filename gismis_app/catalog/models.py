"""
================================================================================
Gismis v1.0 - Catalog Models
================================================================================
Canonical anime records shared by every adapter, the merger and the cache.

  SourceRecord  - one title as reported by ONE platform (immutable)
  MergedRecord  - one title fused across platforms, with a platform -> play
                  URL map (built during a merge pass, never mutated once cached)

Field names are snake_case here; to_dict()/from_dict() speak the camelCase
shape used on the wire and inside external cache stores.
================================================================================
"""

import json
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


# =============================================================================
# ENUMS
# =============================================================================

class AnimeStatus(str, Enum):
    """Airing status normalized across all platforms."""
    ONGOING = "ongoing"
    COMPLETED = "completed"
    UPCOMING = "upcoming"


# Optional scalar fields filled in from other platforms during a merge.
# Order matters only for readability.
FILLABLE_FIELDS = (
    'synopsis',
    'rating',
    'cover_url',
    'play_count',
    'release_year',
    'episode_count',
    'latest_episode',
    'update_day',
    'update_time',
)

# snake_case attribute -> camelCase wire key
_WIRE_KEYS = {
    'source_platform': 'platform',
    'title_aliases': 'titleAliases',
    'cover_url': 'coverUrl',
    'play_count': 'playCount',
    'release_year': 'releaseYear',
    'episode_count': 'episodeCount',
    'latest_episode': 'latestEpisode',
    'update_day': 'updateDay',
    'update_time': 'updateTime',
    'play_url': 'playUrl',
    'platform_links': 'platformLinks',
}


def _clamp_rating(rating: Optional[float]) -> Optional[float]:
    if rating is None:
        return None
    return min(10.0, max(0.0, float(rating)))


def _valid_day(day: Optional[int]) -> Optional[int]:
    if day is None:
        return None
    return day if 1 <= day <= 7 else None


# =============================================================================
# DATA MODELS
# =============================================================================

@dataclass(frozen=True)
class SourceRecord:
    """
    One anime as translated from a single platform's API.

    Adapters are the only producers. Construction validates the record so a
    half-translated item (e.g. one without an id) can never leave an adapter.
    """
    id: str                                  # Platform-local identifier
    source_platform: str                     # "bilibili", "tmdb", "mal", ...
    title: str
    play_url: str
    status: AnimeStatus = AnimeStatus.ONGOING
    title_aliases: tuple = ()
    cover_url: str = ""
    synopsis: Optional[str] = None
    rating: Optional[float] = None           # 0-10
    play_count: Optional[int] = None
    genres: tuple = ()
    release_year: Optional[int] = None
    episode_count: Optional[int] = None
    latest_episode: Optional[int] = None
    update_day: Optional[int] = None         # 1 = Monday ... 7 = Sunday
    update_time: Optional[str] = None        # Free text, usually "HH:MM"

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError(f"{self.source_platform}: record has no id (title={self.title!r})")
        if self.play_count is not None and self.play_count < 0:
            raise ValueError(f"{self.source_platform}:{self.id}: negative play count")

        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, 'title', self.title or "")
        object.__setattr__(self, 'cover_url', self.cover_url or "")
        object.__setattr__(self, 'status', AnimeStatus(self.status))
        object.__setattr__(self, 'title_aliases', tuple(self.title_aliases or ()))
        object.__setattr__(self, 'genres', tuple(self.genres or ()))
        object.__setattr__(self, 'rating', _clamp_rating(self.rating))
        object.__setattr__(self, 'update_day', _valid_day(self.update_day))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return _to_wire(self)


@dataclass
class MergedRecord:
    """
    One anime fused from every platform that reported it.

    Same fields as SourceRecord plus platform_links. The platform fields
    (id, source_platform, play_url) describe the record that seeded the
    cluster; platform_links holds every contributing platform.
    """
    id: str
    source_platform: str
    title: str
    play_url: str
    status: AnimeStatus = AnimeStatus.ONGOING
    title_aliases: List[str] = field(default_factory=list)
    cover_url: str = ""
    synopsis: Optional[str] = None
    rating: Optional[float] = None
    play_count: Optional[int] = None
    genres: List[str] = field(default_factory=list)
    release_year: Optional[int] = None
    episode_count: Optional[int] = None
    latest_episode: Optional[int] = None
    update_day: Optional[int] = None
    update_time: Optional[str] = None
    platform_links: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_source(cls, record: SourceRecord) -> "MergedRecord":
        """Seed a new cluster from a single source record."""
        return cls(
            id=record.id,
            source_platform=record.source_platform,
            title=record.title,
            play_url=record.play_url,
            status=record.status,
            title_aliases=list(record.title_aliases),
            cover_url=record.cover_url,
            synopsis=record.synopsis,
            rating=record.rating,
            play_count=record.play_count,
            genres=list(record.genres),
            release_year=record.release_year,
            episode_count=record.episode_count,
            latest_episode=record.latest_episode,
            update_day=record.update_day,
            update_time=record.update_time,
            platform_links={record.source_platform: record.play_url},
        )

    @property
    def platforms(self) -> List[str]:
        """Platforms contributing to this record, in merge order."""
        return list(self.platform_links.keys())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return _to_wire(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MergedRecord":
        """Rebuild a MergedRecord from its to_dict() form."""
        kwargs = {}
        for f in fields(cls):
            key = _WIRE_KEYS.get(f.name, f.name)
            if key in data:
                kwargs[f.name] = data[key]
        kwargs['status'] = AnimeStatus(kwargs.get('status', AnimeStatus.ONGOING))
        kwargs['title_aliases'] = list(kwargs.get('title_aliases') or [])
        kwargs['genres'] = list(kwargs.get('genres') or [])
        kwargs['platform_links'] = dict(kwargs.get('platform_links') or {})
        return cls(**kwargs)


def _to_wire(record) -> Dict[str, Any]:
    result = {}
    for f in fields(record):
        value = getattr(record, f.name)
        if isinstance(value, AnimeStatus):
            value = value.value
        elif isinstance(value, tuple):
            value = list(value)
        elif isinstance(value, (list, dict)):
            value = value.copy()
        result[_WIRE_KEYS.get(f.name, f.name)] = value
    return result


# =============================================================================
# JSON CODEC (external cache stores)
# =============================================================================

def encode_records(records: Iterable[MergedRecord]) -> str:
    """Serialize merged records to a JSON string."""
    return json.dumps([r.to_dict() for r in records], ensure_ascii=False, separators=(',', ':'))


def decode_records(raw: str) -> List[MergedRecord]:
    """Inverse of encode_records()."""
    return [MergedRecord.from_dict(item) for item in json.loads(raw)]

"""Platform adapters: one module per external anime catalog."""

from .base import BasePlatformAdapter, PlatformAdapter, RateLimiter
from .bilibili import BilibiliAdapter
from .jikan import JikanAdapter
from .tmdb import TMDBAdapter

__all__ = [
    'PlatformAdapter',
    'BasePlatformAdapter',
    'RateLimiter',
    'BilibiliAdapter',
    'TMDBAdapter',
    'JikanAdapter',
]

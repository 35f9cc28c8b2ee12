"""
Multi-source anime catalog: adapters, similarity merger, TTL cache and the
aggregator that ties them together.
"""

from .aggregator import BranchResult, BranchState, DataAggregator, build_cache_key, build_default_aggregator
from .cache import MemoryBackend, RedisBackend, TTLCache
from .merger import DataMerger, levenshtein, normalize_title, similarity
from .models import AnimeStatus, MergedRecord, SourceRecord

__all__ = [
    'DataAggregator',
    'BranchState',
    'BranchResult',
    'build_cache_key',
    'build_default_aggregator',
    'TTLCache',
    'MemoryBackend',
    'RedisBackend',
    'DataMerger',
    'normalize_title',
    'levenshtein',
    'similarity',
    'AnimeStatus',
    'SourceRecord',
    'MergedRecord',
]

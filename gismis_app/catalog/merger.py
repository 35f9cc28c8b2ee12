"""
================================================================================
Gismis v1.0 - Similarity Merger
================================================================================
Deduplicates anime reported by several platforms and fuses each group into a
single MergedRecord.

Problem:
  "进击的巨人" comes back from Bilibili, TMDB and MyAnimeList with three
  different ids, slightly different spellings and different subsets of
  optional fields.

Solution:
  1. Normalize titles (lowercase, keep only CJK ideographs, ASCII letters and
     digits)
  2. Exact normalized match -> same cluster (dict lookup)
  3. Otherwise Levenshtein similarity >= 0.8 against each cluster's title,
     first cluster in input order wins
  4. Fold the record into the cluster: platform link, fill-if-empty scalars,
     union of aliases and genres

The pass is a pure function of its input order: the aggregator feeds records
in adapter-registration order, which makes ambiguous clustering deterministic.
================================================================================
"""

import re
import logging
from typing import Dict, Iterable, List, Optional

from rapidfuzz.distance import Levenshtein

from .models import FILLABLE_FIELDS, MergedRecord, SourceRecord


logger = logging.getLogger(__name__)

# Everything that is not a CJK unified ideograph, a-z or 0-9 (after lowercasing)
_STRIP_PATTERN = re.compile(r'[^\u4e00-\u9fa5a-z0-9]')

DEFAULT_THRESHOLD = 0.8


# =============================================================================
# STRING METRICS
# =============================================================================

def normalize_title(title: Optional[str]) -> str:
    """
    Normalize a title for comparison.

    Examples:
        "Attack on Titan!!!" -> "attackontitan"
        "ATTACK ON TITAN"    -> "attackontitan"
        "进击的巨人 第二季"    -> "进击的巨人第二季"
        None                 -> ""
    """
    if not title:
        return ""
    return _STRIP_PATTERN.sub('', title.lower())


def levenshtein(a: str, b: str) -> int:
    """Edit distance with unit cost for insert, delete and substitute."""
    return Levenshtein.distance(a, b)


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Similarity of two titles in [0, 1].

    1 - levenshtein / longer length, computed on normalized titles.
    Symmetric, and similarity(x, x) == 1 for every x (including empty).
    """
    norm_a = normalize_title(a)
    norm_b = normalize_title(b)

    if norm_a == norm_b:
        return 1.0
    if not norm_a or not norm_b:
        return 0.0

    distance = levenshtein(norm_a, norm_b)
    return 1.0 - distance / max(len(norm_a), len(norm_b))


# =============================================================================
# MERGER
# =============================================================================

class DataMerger:
    """
    Clusters SourceRecords by title and fuses each cluster.

    Records from the preferred cover platform always replace the cluster's
    cover (Bilibili covers are higher resolution than TMDB posters).
    """

    def __init__(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        preferred_cover_platform: str = "bilibili"
    ):
        if not 0.0 < threshold <= 1.0:
            raise ValueError(f"threshold must be in (0, 1], got {threshold}")
        self.threshold = threshold
        self.preferred_cover_platform = preferred_cover_platform

    def merge(self, records: Iterable[SourceRecord]) -> List[MergedRecord]:
        """
        Merge records from all platforms into deduplicated MergedRecords.

        Args:
            records: Source records in adapter-registration order

        Returns:
            One MergedRecord per cluster, in order of first appearance
        """
        merged: List[MergedRecord] = []
        by_title: Dict[str, MergedRecord] = {}
        total = 0

        for record in records:
            total += 1
            key = normalize_title(record.title)

            cluster = by_title.get(key)
            if cluster is None:
                cluster = self._find_similar(merged, record.title)

            if cluster is not None:
                self.fold(cluster, record)
                continue

            cluster = MergedRecord.from_source(record)
            merged.append(cluster)
            by_title[key] = cluster

        if total:
            logger.debug(f"Merged {total} records into {len(merged)} titles")

        return merged

    def _find_similar(self, clusters: List[MergedRecord], title: str) -> Optional[MergedRecord]:
        for cluster in clusters:
            score = similarity(title, cluster.title)
            if score >= self.threshold:
                logger.debug(f"'{title}' ~ '{cluster.title}' (similarity={score:.2f})")
                return cluster
        return None

    def fold(self, target: MergedRecord, source: SourceRecord) -> None:
        """
        Fold one source record into an existing cluster.

        - platform link for the source's platform (last write wins)
        - optional scalars copied only where the cluster has nothing
        - preferred-platform cover always wins when present
        - aliases and genres unioned without duplicates
        """
        target.platform_links[source.source_platform] = source.play_url

        for name in FILLABLE_FIELDS:
            incoming = getattr(source, name)
            if incoming and not getattr(target, name):
                setattr(target, name, incoming)

        if source.source_platform == self.preferred_cover_platform and source.cover_url:
            target.cover_url = source.cover_url

        target.title_aliases = _union(target.title_aliases, source.title_aliases)
        target.genres = _union(target.genres, source.genres)


def _union(existing: List[str], incoming: Iterable[str]) -> List[str]:
    seen = set(existing)
    result = list(existing)
    for item in incoming:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result

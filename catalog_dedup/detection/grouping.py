"""Transitive grouping of duplicate pairs and group-level aggregation."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from catalog_dedup.detection.union_find import UnionFind
from catalog_dedup.storage.models import Confidence, DuplicatePair, GroupMethod

CONFIDENCE_ORDER: Dict[str, int] = {"high": 0, "medium": 1, "low": 2}


@dataclass
class PairGroup:
    """Raw connected component before enrichment."""

    member_ids: List[str]
    pairs: List[DuplicatePair] = field(default_factory=list)

    @property
    def key(self) -> str:
        return group_key(self.member_ids)


def group_key(member_ids: Iterable[str]) -> str:
    """Order-independent lookup key for a set of entry ids."""
    return ",".join(sorted(set(member_ids)))


def group_pairs(pairs: Sequence[DuplicatePair]) -> List[PairGroup]:
    """Cluster ``pairs`` into groups connected by chains of evidence."""
    forest = UnionFind()
    for pair in pairs:
        forest.union(pair.id1, pair.id2)

    buckets: Dict[str, PairGroup] = {}
    members: Dict[str, Dict[str, None]] = {}
    for pair in pairs:
        root = forest.find(pair.id1)
        bucket = buckets.setdefault(root, PairGroup(member_ids=[]))
        bucket.pairs.append(pair)
        seen = members.setdefault(root, {})
        seen.setdefault(pair.id1)
        seen.setdefault(pair.id2)

    for root, bucket in buckets.items():
        bucket.member_ids = list(members[root])
    return list(buckets.values())


def analyze_group(pairs: Sequence[DuplicatePair]) -> Tuple[GroupMethod, Confidence, Optional[float]]:
    """Aggregate detection method, confidence and mean similarity."""
    methods = {pair.detection_method for pair in pairs}

    method: GroupMethod
    if len(methods) == 1:
        method = next(iter(methods))
    elif "hash_and_embedding" in methods:
        method = "hash_and_embedding"
    else:
        method = "mixed"

    confidence: Confidence
    if "hash_and_embedding" in methods or {"same_title", "embedding"} <= methods:
        confidence = "high"
    elif "same_title" in methods or "embedding" in methods:
        confidence = "medium"
    else:
        confidence = "low"

    scores = [pair.similarity for pair in pairs if pair.similarity is not None]
    avg_similarity = sum(scores) / len(scores) if scores else None
    return method, confidence, avg_similarity

"""Disjoint-set forest over catalog entry ids."""
from __future__ import annotations

from typing import Dict, Iterable, List


class UnionFind:
    """Union by rank with path compression."""

    def __init__(self) -> None:
        self._parent: Dict[str, str] = {}
        self._rank: Dict[str, int] = {}

    def make_set(self, item: str) -> None:
        if item not in self._parent:
            self._parent[item] = item
            self._rank[item] = 0

    def find(self, item: str) -> str:
        """Return the root for ``item``, compressing the path on the way."""
        self.make_set(item)
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, left: str, right: str) -> str:
        """Merge the sets containing both items and return the new root."""
        root_left = self.find(left)
        root_right = self.find(right)
        if root_left == root_right:
            return root_left
        rank_left = self._rank[root_left]
        rank_right = self._rank[root_right]
        if rank_left < rank_right:
            root_left, root_right = root_right, root_left
        self._parent[root_right] = root_left
        if rank_left == rank_right:
            self._rank[root_left] += 1
        return root_left

    def connected(self, left: str, right: str) -> bool:
        return self.find(left) == self.find(right)

    def groups(self, items: Iterable[str]) -> Dict[str, List[str]]:
        """Bucket ``items`` by their root."""
        buckets: Dict[str, List[str]] = {}
        for item in items:
            buckets.setdefault(self.find(item), []).append(item)
        return buckets

    def __len__(self) -> int:
        return len(self._parent)

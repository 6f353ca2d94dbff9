"""Turns raw pair groups into reviewer-ready duplicate groups."""
from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Sequence, Set

import structlog

from catalog_dedup.detection.grouping import CONFIDENCE_ORDER, PairGroup, analyze_group
from catalog_dedup.observability.metrics import MetricsRegistry
from catalog_dedup.quality.scoring import select_canonical
from catalog_dedup.review.dismissals import DismissalStore
from catalog_dedup.storage.catalog import CatalogStore
from catalog_dedup.storage.models import DuplicateGroup, EntryDetail

LOGGER = structlog.get_logger(__name__)


def format_group_id(index: int) -> str:
    return f"group_{index}"


class GroupEnricher:
    """Attaches entry details and filters resolved or dismissed groups.

    Issues at most two batched reads per call, however many groups there are.
    """

    def __init__(
        self,
        *,
        catalog: CatalogStore,
        dismissals: DismissalStore,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._catalog = catalog
        self._dismissals = dismissals
        self._metrics = metrics or MetricsRegistry()

    async def _dismissed_keys(self) -> Set[str]:
        try:
            return await asyncio.to_thread(self._dismissals.dismissed_keys)
        except Exception as exc:
            LOGGER.warning("dismissed_fetch_failed", error=str(exc))
            return set()

    async def enrich(self, groups: Sequence[PairGroup], *, include_resolved: bool = False) -> List[DuplicateGroup]:
        if not groups:
            return []
        all_ids = {member for group in groups for member in group.member_ids}

        details_task = asyncio.to_thread(self._catalog.fetch_entry_details, sorted(all_ids))
        if include_resolved:
            details = await details_task
            dismissed: Set[str] = set()
        else:
            details, dismissed = await asyncio.gather(details_task, self._dismissed_keys())
        by_id: Dict[str, EntryDetail] = {detail.entry_id: detail for detail in details}

        enriched: List[DuplicateGroup] = []
        for group in groups:
            if not include_resolved and group.key in dismissed:
                self._metrics.incr("groups_dismissed_skipped")
                continue
            entries = [by_id[member] for member in group.member_ids if member in by_id]
            if not include_resolved and len(entries) < 2:
                self._metrics.incr("groups_resolved_skipped")
                continue
            method, confidence, avg_similarity = analyze_group(group.pairs)
            self._metrics.incr_labeled("groups_by_confidence", confidence)
            enriched.append(
                DuplicateGroup(
                    group_id=format_group_id(len(enriched) + 1),
                    member_ids=list(group.member_ids),
                    pairs=list(group.pairs),
                    detection_method=method,
                    confidence=confidence,
                    avg_similarity=avg_similarity,
                    entries=entries,
                    pair_count=len(group.pairs),
                    recommended_canonical=select_canonical(entries),
                )
            )

        enriched.sort(key=lambda item: (CONFIDENCE_ORDER[item.confidence], -len(item.member_ids)))
        self._metrics.incr("groups_presented", len(enriched))
        return enriched

"""Entry points used by the duplicate review interface."""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import orjson
import structlog

from catalog_dedup.detection.classify import classify_pairs
from catalog_dedup.detection.grouping import group_pairs
from catalog_dedup.detection.signals import SignalProvider
from catalog_dedup.observability.metrics import MetricsRegistry, record_duration
from catalog_dedup.review.dismissals import DismissalStore
from catalog_dedup.review.enrich import GroupEnricher
from catalog_dedup.review.resolve import ResolutionEngine
from catalog_dedup.storage.catalog import CatalogStore
from catalog_dedup.storage.models import (
    AutoResolveDecision,
    DismissResult,
    DuplicateGroup,
    GroupResolution,
    LessonResolution,
    ResolveResult,
    utcnow,
)

LOGGER = structlog.get_logger(__name__)

AUTO_RESOLVER = "auto-resolve"
EXACT_SIMILARITY = 1.0


class DuplicateReviewService:
    """Wires the signal provider, grouping, enrichment and resolution together."""

    def __init__(
        self,
        *,
        provider: SignalProvider,
        catalog: CatalogStore,
        reviewer: Optional[str] = None,
        metrics: Optional[MetricsRegistry] = None,
        report_dir: Optional[Path] = None,
    ) -> None:
        self._provider = provider
        self._catalog = catalog
        self._reviewer = reviewer
        self.metrics = metrics or MetricsRegistry()
        self._report_dir = report_dir
        self.dismissals = DismissalStore(catalog)
        self._enricher = GroupEnricher(catalog=catalog, dismissals=self.dismissals, metrics=self.metrics)
        self._engine = ResolutionEngine(catalog=catalog, metrics=self.metrics)

    async def fetch_duplicate_groups(self, include_resolved: bool = False) -> List[DuplicateGroup]:
        """Detect, group and enrich duplicates for review."""
        with record_duration(self.metrics, "run_duration_ms"):
            records = await asyncio.to_thread(self._provider.fetch_pairs)
            pairs = classify_pairs(records, metrics=self.metrics)
            if not pairs:
                return []
            raw_groups = group_pairs(pairs)
            self.metrics.incr("groups_detected", len(raw_groups))
            groups = await self._enricher.enrich(raw_groups, include_resolved=include_resolved)
        LOGGER.info(
            "duplicate_groups_ready",
            pairs=len(pairs),
            detected=len(raw_groups),
            presented=len(groups),
            include_resolved=include_resolved,
        )
        if self._report_dir is not None:
            self.write_report(groups, self._report_dir)
        return groups

    def write_report(self, groups: List[DuplicateGroup], directory: Path) -> Path:
        """Persist the presented groups as a JSON run report."""
        run_id = utcnow().strftime("%Y%m%dT%H%M%S%f")
        target = directory / f"groups-{run_id}.json"
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "run_id": run_id,
            "group_count": len(groups),
            "groups": [group.model_dump(mode="json") for group in groups],
            "metrics": self.metrics.snapshot(),
        }
        target.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
        return target

    async def resolve_group(self, resolution: GroupResolution) -> ResolveResult:
        return await self._engine.resolve(resolution, resolved_by=self._reviewer)

    async def dismiss_group(
        self,
        member_ids: Iterable[str],
        detection_method: Optional[str],
        notes: Optional[str] = None,
    ) -> DismissResult:
        """Record a "keep all" decision so the same set is not surfaced again."""
        try:
            await asyncio.to_thread(
                self.dismissals.dismiss,
                list(member_ids),
                detection_method,
                notes,
                dismissed_by=self._reviewer,
            )
        except Exception as exc:
            LOGGER.error("dismiss_failed", error=str(exc))
            return DismissResult(success=False, error=str(exc))
        self.metrics.incr("dismissals_recorded")
        return DismissResult(success=True)

    async def auto_resolve(
        self,
        *,
        dry_run: bool = False,
        group_ids: Optional[Sequence[str]] = None,
    ) -> List[AutoResolveDecision]:
        """Resolve exact duplicates by keeping each group's recommended entry.

        Only groups whose every pair is a hash and embedding match at
        similarity 1.0 qualify. With ``dry_run`` the decisions are returned
        unapplied.
        """
        groups = await self.fetch_duplicate_groups()
        decisions: List[AutoResolveDecision] = []
        for group in groups:
            if group_ids and group.group_id not in group_ids:
                continue
            if not is_exact_duplicate(group) or group.recommended_canonical is None:
                continue
            decision = plan_auto_resolution(group)
            if not dry_run:
                resolution = GroupResolution(
                    group_id=group.group_id,
                    resolutions=[LessonResolution(entry_id=decision.canonical_id, action="keep")]
                    + [
                        LessonResolution(entry_id=entry_id, action="archive", archive_target=decision.canonical_id)
                        for entry_id in decision.duplicate_ids
                    ],
                    notes=f"Auto-resolved exact duplicate. {decision.reason}",
                    detection_method=group.detection_method,
                )
                decision.result = await self._engine.resolve(resolution, resolved_by=AUTO_RESOLVER)
                if decision.result.success:
                    self.metrics.incr("groups_auto_resolved")
            decisions.append(decision)
        LOGGER.info(
            "auto_resolve_finished",
            dry_run=dry_run,
            candidates=len(decisions),
            resolved=sum(1 for item in decisions if item.result is not None and item.result.success),
        )
        return decisions


def is_exact_duplicate(group: DuplicateGroup) -> bool:
    return all(
        pair.detection_method == "hash_and_embedding"
        and pair.similarity is not None
        and pair.similarity >= EXACT_SIMILARITY
        for pair in group.pairs
    )


def plan_auto_resolution(group: DuplicateGroup) -> AutoResolveDecision:
    canonical_id = group.recommended_canonical
    chosen = next(entry for entry in group.entries if entry.entry_id == canonical_id)
    modified = chosen.last_modified.isoformat() if chosen.last_modified else "unknown"
    return AutoResolveDecision(
        group_id=group.group_id,
        canonical_id=canonical_id,
        duplicate_ids=[entry.entry_id for entry in group.entries if entry.entry_id != canonical_id],
        reason=(
            f"Selected based on canonical_score={chosen.canonical_score:.3f}, "
            f"completeness={chosen.metadata_completeness:.3f}, modified={modified}"
        ),
    )

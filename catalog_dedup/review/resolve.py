"""Applies reviewer decisions to the catalog."""
from __future__ import annotations

import asyncio
import re
from collections import Counter
from typing import List, Optional

import structlog

from catalog_dedup.errors import AlreadyArchivedError
from catalog_dedup.observability.metrics import MetricsRegistry
from catalog_dedup.storage.catalog import CatalogStore
from catalog_dedup.storage.models import GroupResolution, LessonResolution, ResolveResult

LOGGER = structlog.get_logger(__name__)

GROUP_ID_PATTERN = re.compile(r"group_[0-9]+")


class ResolutionEngine:
    """Validates a group resolution and archives duplicates one entry at a time.

    Each archive is its own transaction. A failure stops the run and leaves
    earlier archives committed. Re-submitting the same resolution skips the
    entries already archived to the same target and carries on with the rest,
    but the result still reports the already-archived entries as an error.
    """

    def __init__(self, *, catalog: CatalogStore, metrics: Optional[MetricsRegistry] = None) -> None:
        self._catalog = catalog
        self._metrics = metrics or MetricsRegistry()

    @staticmethod
    def validate(resolution: GroupResolution) -> Optional[str]:
        """Return an error message, or ``None`` when the resolution is acceptable."""
        if not GROUP_ID_PATTERN.fullmatch(resolution.group_id):
            return "Invalid group ID format"
        counts = Counter(item.entry_id for item in resolution.resolutions)
        for entry_id, count in counts.items():
            if count > 1:
                return f"Entry {entry_id} appears more than once in the resolution"
        kept = {item.entry_id for item in resolution.resolutions if item.action == "keep"}
        if not kept:
            return "At least one entry must be kept"
        for item in resolution.resolutions:
            if item.action != "archive":
                continue
            if not item.archive_target:
                return f"Entry {item.entry_id} to archive must specify which entry to link to"
            if item.archive_target not in kept:
                return (
                    f"Cannot archive {item.entry_id} to {item.archive_target} "
                    "- target entry is not being kept"
                )
        return None

    async def resolve(self, resolution: GroupResolution, *, resolved_by: Optional[str] = None) -> ResolveResult:
        error = self.validate(resolution)
        if error is not None:
            LOGGER.warning("resolution_rejected", group_id=resolution.group_id, error=error)
            return ResolveResult(success=False, error=error)

        to_keep = [item for item in resolution.resolutions if item.action == "keep"]
        to_archive: List[LessonResolution] = [item for item in resolution.resolutions if item.action == "archive"]

        archived = 0
        already_archived: List[str] = []
        for item in to_archive:
            try:
                await asyncio.to_thread(
                    self._catalog.archive_entry,
                    item.entry_id,
                    item.archive_target,
                    archived_by=resolved_by,
                    detection_method=resolution.detection_method,
                    notes=resolution.notes,
                )
            except AlreadyArchivedError as exc:
                if exc.canonical_id != item.archive_target:
                    return self._failed(resolution, item, exc, archived, len(to_keep))
                already_archived.append(str(exc))
                LOGGER.warning(
                    "archive_skipped",
                    group_id=resolution.group_id,
                    entry_id=item.entry_id,
                    canonical_id=exc.canonical_id,
                )
                continue
            except Exception as exc:
                return self._failed(resolution, item, exc, archived, len(to_keep))
            archived += 1
            self._metrics.incr("entries_archived")
            LOGGER.info("entry_archived", entry_id=item.entry_id, canonical_id=item.archive_target)

        if already_archived:
            LOGGER.warning(
                "group_resolution_incomplete",
                group_id=resolution.group_id,
                archived=archived,
                already_archived=len(already_archived),
            )
            return ResolveResult(
                success=False,
                archived_count=archived,
                kept_count=len(to_keep),
                error="; ".join(already_archived),
            )

        self._metrics.incr("groups_resolved")
        LOGGER.info(
            "group_resolved",
            group_id=resolution.group_id,
            archived=archived,
            kept=len(to_keep),
        )
        return ResolveResult(success=True, archived_count=archived, kept_count=len(to_keep))

    def _failed(
        self,
        resolution: GroupResolution,
        item: LessonResolution,
        exc: Exception,
        archived: int,
        kept: int,
    ) -> ResolveResult:
        self._metrics.incr("archive_failures")
        LOGGER.error(
            "archive_failed",
            group_id=resolution.group_id,
            entry_id=item.entry_id,
            canonical_id=item.archive_target,
            committed=archived,
            error=str(exc),
        )
        return ResolveResult(success=False, archived_count=archived, kept_count=kept, error=str(exc))

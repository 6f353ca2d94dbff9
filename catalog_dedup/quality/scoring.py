"""Canonical scoring used to recommend which duplicate to keep."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from catalog_dedup.storage.models import CatalogEntry, EntryDetail, utcnow

RECENCY_WEIGHT = 0.10
COMPLETENESS_WEIGHT = 0.15
GRADE_COVERAGE_WEIGHT = 0.05

RECENCY_HORIZON_YEARS = 10
GRADE_LEVEL_COUNT = 11

# facet lists stored under ``metadata``; grade_levels is a column of its own
FACET_FIELDS = (
    "thematic_categories",
    "season_timing",
    "cultural_heritage",
    "activity_type",
    "main_ingredients",
)
COMPLETENESS_FIELDS = FACET_FIELDS + ("grade_levels",)

COPY_TITLE_MARKERS = ("Copy", "_v2", "(Updated)")


@dataclass
class CanonicalScore:
    recency: float
    completeness: float
    grade_coverage: float
    total: float
    quality_notes: List[str] = field(default_factory=list)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def recency_score(entry: CatalogEntry, *, now: Optional[datetime] = None) -> float:
    """Linear decay from 1.0 for a fresh entry to 0.0 after ten years."""
    stamp = entry.last_modified or entry.created_at
    if stamp is None:
        return 0.0
    age_years = (_as_utc(now or utcnow()) - _as_utc(stamp)).total_seconds() / (365 * 24 * 3600)
    return min(1.0, max(0.0, 1 - age_years / RECENCY_HORIZON_YEARS))


def _filled(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and len(value) > 0


def completeness_score(entry: CatalogEntry) -> float:
    values: Dict[str, Any] = dict(entry.metadata)
    values["grade_levels"] = entry.grade_levels
    filled = sum(1 for name in COMPLETENESS_FIELDS if _filled(values.get(name)))
    return filled / len(COMPLETENESS_FIELDS)


def quality_notes(entry: CatalogEntry) -> List[str]:
    notes: List[str] = []
    processing = entry.metadata.get("processing_notes")
    if isinstance(processing, str) and "duplicate" in processing.lower():
        notes.append("Already flagged as duplicate")
    if any(marker in entry.title for marker in COPY_TITLE_MARKERS):
        notes.append("Title suggests it's a copy")
    return notes


def score_entry(entry: CatalogEntry, *, now: Optional[datetime] = None) -> CanonicalScore:
    recency = recency_score(entry, now=now)
    completeness = completeness_score(entry)
    coverage = min(1.0, len(set(entry.grade_levels)) / GRADE_LEVEL_COUNT)
    total = (
        RECENCY_WEIGHT * recency
        + COMPLETENESS_WEIGHT * completeness
        + GRADE_COVERAGE_WEIGHT * coverage
    )
    return CanonicalScore(
        recency=recency,
        completeness=completeness,
        grade_coverage=coverage,
        total=round(total, 6),
        quality_notes=quality_notes(entry),
    )


def _rank(detail: EntryDetail) -> tuple:
    stamp = detail.last_modified.timestamp() if detail.last_modified else float("-inf")
    return (-detail.canonical_score, -detail.metadata_completeness, -stamp, detail.entry_id)


def select_canonical(entries: Sequence[EntryDetail]) -> Optional[str]:
    """Pick the entry to keep: best score, then completeness, then latest edit.

    Entries without a modification date lose the date tie-break; the entry id
    settles anything left so the choice is stable between runs.
    """
    if not entries:
        return None
    return min(entries, key=_rank).entry_id

"""Pydantic models for duplicate evidence, groups and resolution records."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

DetectionMethod = Literal["hash_and_embedding", "same_title", "embedding"]
GroupMethod = Literal["hash_and_embedding", "same_title", "embedding", "mixed"]
Confidence = Literal["high", "medium", "low"]
ResolutionAction = Literal["keep", "archive"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DuplicatePair(BaseModel):
    """One piece of pairwise evidence from the signal provider."""

    id1: str = Field(min_length=1)
    id2: str = Field(min_length=1)
    detection_method: DetectionMethod
    similarity: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _distinct_endpoints(self) -> "DuplicatePair":
        if self.id1 == self.id2:
            raise ValueError(f"pair endpoints must differ: {self.id1}")
        return self


class EntryDetail(BaseModel):
    """Catalog entry summary shown to reviewers."""

    entry_id: str
    title: str
    summary: Optional[str] = None
    content_length: int = 0
    grade_levels: List[str] = Field(default_factory=list)
    has_summary: bool = False
    file_link: Optional[str] = None
    content_preview: Optional[str] = None
    last_modified: Optional[datetime] = None
    canonical_score: float = 0.0
    metadata_completeness: float = 0.0
    quality_notes: List[str] = Field(default_factory=list)


class DuplicateGroup(BaseModel):
    """A connected component of entries linked by duplicate evidence."""

    group_id: str
    member_ids: List[str]
    pairs: List[DuplicatePair]
    detection_method: GroupMethod
    confidence: Confidence
    avg_similarity: Optional[float] = None
    entries: List[EntryDetail] = Field(default_factory=list)
    pair_count: int = 0
    recommended_canonical: Optional[str] = None

    @field_validator("member_ids")
    @classmethod
    def _at_least_two(cls, value: List[str]) -> List[str]:
        if len(set(value)) < 2:
            raise ValueError("a duplicate group needs at least two members")
        return value


class LessonResolution(BaseModel):
    """Reviewer decision for a single entry within a group."""

    entry_id: str = Field(min_length=1)
    action: ResolutionAction
    archive_target: Optional[str] = None


class GroupResolution(BaseModel):
    """Full reviewer decision for one group."""

    group_id: str
    resolutions: List[LessonResolution]
    notes: Optional[str] = None
    detection_method: Optional[GroupMethod] = None


class CanonicalMapping(BaseModel):
    """Records that ``duplicate_id`` is superseded by ``canonical_id``."""

    duplicate_id: str
    canonical_id: str
    detection_method: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: datetime = Field(default_factory=utcnow)
    notes: Optional[str] = None


class ArchivedEntry(BaseModel):
    """Immutable snapshot of an entry taken when it was archived."""

    entry_id: str
    snapshot: Dict[str, Any]
    canonical_id: str
    archived_by: Optional[str] = None
    archived_at: datetime = Field(default_factory=utcnow)
    archive_reason: str


class DismissedGroup(BaseModel):
    """A set of entries a reviewer judged not to be duplicates."""

    entry_ids: Tuple[str, ...]
    detection_method: Optional[str] = None
    dismissed_by: Optional[str] = None
    dismissed_at: datetime = Field(default_factory=utcnow)
    notes: Optional[str] = None

    @field_validator("entry_ids", mode="before")
    @classmethod
    def _sorted_unique(cls, value: Any) -> Tuple[str, ...]:
        return tuple(sorted({str(item) for item in value}))


class CatalogEntry(BaseModel):
    """A live row of the catalog."""

    entry_id: str = Field(min_length=1)
    title: str
    summary: Optional[str] = None
    content_text: Optional[str] = None
    content_hash: Optional[str] = None
    file_link: Optional[str] = None
    grade_levels: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    last_modified: Optional[datetime] = None


class ResolveResult(BaseModel):
    """Outcome reported back to the review UI after a resolution."""

    success: bool
    archived_count: int = 0
    kept_count: int = 0
    error: Optional[str] = None


class DismissResult(BaseModel):
    success: bool
    error: Optional[str] = None


class AutoResolveDecision(BaseModel):
    """Canonical choice for one exact-duplicate group, with its outcome when applied."""

    group_id: str
    canonical_id: str
    duplicate_ids: List[str]
    reason: str
    result: Optional[ResolveResult] = None

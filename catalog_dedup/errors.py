"""Exception hierarchy for duplicate detection and resolution."""
from __future__ import annotations


class DedupError(Exception):
    """Base class for all catalog_dedup failures."""


class SignalProviderError(DedupError):
    """Raised when pairwise duplicate evidence cannot be loaded."""


class EntryNotFoundError(DedupError):
    """Raised when a catalog entry is missing from the live catalog."""

    def __init__(self, entry_id: str, *, role: str = "Entry") -> None:
        super().__init__(f"{role} not found: {entry_id}")
        self.entry_id = entry_id


class AlreadyArchivedError(DedupError):
    """Raised when an entry already has a canonical mapping."""

    def __init__(self, entry_id: str, canonical_id: str) -> None:
        super().__init__(f"Entry {entry_id} is already archived as a duplicate of {canonical_id}")
        self.entry_id = entry_id
        self.canonical_id = canonical_id

"""Persistent "not a duplicate" decisions."""
from __future__ import annotations

from typing import Iterable, List, Optional, Set

import structlog

from catalog_dedup.detection.grouping import group_key
from catalog_dedup.storage.catalog import CatalogStore
from catalog_dedup.storage.models import DismissedGroup

LOGGER = structlog.get_logger(__name__)

DEFAULT_NOTE = "Dismissed via duplicate review interface"


class DismissalStore:
    """Records dismissed entry sets and answers order-independent lookups."""

    def __init__(self, catalog: CatalogStore) -> None:
        self._catalog = catalog

    def dismiss(
        self,
        member_ids: Iterable[str],
        detection_method: Optional[str],
        notes: Optional[str] = None,
        *,
        dismissed_by: Optional[str] = None,
    ) -> DismissedGroup:
        """Record one immutable dismissal for ``member_ids``."""
        ids = {str(item) for item in member_ids if item}
        if len(ids) < 2:
            raise ValueError("A dismissed group needs at least two entry ids")
        dismissal = DismissedGroup(
            entry_ids=ids,
            detection_method=detection_method,
            dismissed_by=dismissed_by,
            notes=notes or DEFAULT_NOTE,
        )
        self._catalog.insert_dismissal(dismissal)
        LOGGER.info("group_dismissed", key=group_key(ids), detection_method=detection_method)
        return dismissal

    def is_dismissed(self, member_ids: Iterable[str]) -> bool:
        return self._catalog.dismissal_exists(group_key(member_ids))

    def dismissed_keys(self) -> Set[str]:
        """Return the whole dismissal index as sorted-key strings."""
        return {group_key(item.entry_ids) for item in self._catalog.list_dismissals() if item.entry_ids}

    def list_dismissals(self) -> List[DismissedGroup]:
        return self._catalog.list_dismissals()

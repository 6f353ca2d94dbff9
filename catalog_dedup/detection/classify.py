"""Validation of detection methods reported by the signal provider."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import structlog
from pydantic import ValidationError

from catalog_dedup.observability.metrics import MetricsRegistry
from catalog_dedup.storage.models import DetectionMethod, DuplicatePair

LOGGER = structlog.get_logger(__name__)

KNOWN_METHODS: frozenset[str] = frozenset({"hash_and_embedding", "same_title", "embedding"})
FALLBACK_METHOD: DetectionMethod = "embedding"

# older provider builds report the combined hash/embedding signal as "both"
_ALIASES = {"both": "hash_and_embedding"}


def classify_method(raw: Any) -> DetectionMethod:
    """Return a member of the closed detection method set for ``raw``.

    Unknown values fall back to ``embedding``, the most conservative
    classification, and are logged rather than raised.
    """
    method = str(raw).strip().lower() if raw is not None else ""
    method = _ALIASES.get(method, method)
    if method in KNOWN_METHODS:
        return method  # type: ignore[return-value]
    LOGGER.warning("unexpected_detection_method", detection_method=raw, fallback=FALLBACK_METHOD)
    return FALLBACK_METHOD


def _is_known(raw: Any) -> bool:
    method = str(raw).strip().lower() if raw is not None else ""
    return _ALIASES.get(method, method) in KNOWN_METHODS


def _similarity(raw: Any) -> Optional[float]:
    if raw in (None, ""):
        return None
    return float(raw)


def classify_pairs(
    records: Iterable[Dict[str, Any]],
    *,
    metrics: Optional[MetricsRegistry] = None,
) -> List[DuplicatePair]:
    """Convert raw provider records into validated duplicate pairs."""
    pairs: List[DuplicatePair] = []
    for record in records:
        id1 = str(record.get("id1") or "")
        id2 = str(record.get("id2") or "")
        if not id1 or not id2 or id1 == id2:
            LOGGER.warning("invalid_pair_dropped", id1=id1, id2=id2)
            continue
        raw_method = record.get("detection_method", record.get("detectionMethod"))
        if metrics is not None and not _is_known(raw_method):
            metrics.incr("unknown_methods")
        try:
            pair = DuplicatePair(
                id1=id1,
                id2=id2,
                detection_method=classify_method(raw_method),
                similarity=_similarity(record.get("similarity")),
            )
        except (ValidationError, TypeError, ValueError) as exc:
            LOGGER.warning("invalid_pair_dropped", id1=id1, id2=id2, error=str(exc))
            continue
        pairs.append(pair)
        if metrics is not None:
            metrics.incr_labeled("pairs_by_method", pair.detection_method)
    if metrics is not None:
        metrics.incr("pairs_received", len(pairs))
    return pairs

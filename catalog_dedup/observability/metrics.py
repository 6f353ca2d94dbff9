"""In-process counters for detection, review and resolution runs."""
from __future__ import annotations

import contextlib
import time
from collections import Counter, defaultdict
from pathlib import Path
from typing import Any, Dict, Iterator

import orjson
import structlog

from catalog_dedup.storage.models import utcnow

LOGGER = structlog.get_logger(__name__)

# counters every run report carries, even when they stay at zero
RUN_COUNTERS = (
    "pairs_received",
    "unknown_methods",
    "groups_detected",
    "groups_dismissed_skipped",
    "groups_resolved_skipped",
    "groups_presented",
    "groups_resolved",
    "groups_auto_resolved",
    "entries_archived",
    "archive_failures",
    "dismissals_recorded",
    "run_duration_ms",
)


class MetricsRegistry:
    """Plain counters plus counters broken down by a label such as detection method."""

    def __init__(self) -> None:
        self._counters: Dict[str, int] = {name: 0 for name in RUN_COUNTERS}
        self._labeled: Dict[str, Counter[str]] = defaultdict(Counter)

    def incr(self, name: str, value: int = 1) -> None:
        self._counters[name] = self._counters.get(name, 0) + value

    def incr_labeled(self, name: str, label: str, value: int = 1) -> None:
        """Count ``value`` against ``label`` within the ``name`` breakdown."""
        self._labeled[name][label] += value

    def get(self, name: str) -> int:
        return self._counters.get(name, 0)

    def labeled(self, name: str) -> Dict[str, int]:
        return dict(self._labeled.get(name, {}))

    def snapshot(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self._counters)
        for name, counts in sorted(self._labeled.items()):
            payload[name] = dict(sorted(counts.items()))
        return payload

    def export(self, *, path: Path, run_id: str) -> Path:
        """Write the run's counters and breakdowns to ``path`` as JSON."""
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "run_id": run_id,
            "generated_at": utcnow().isoformat(),
            "counters": self.snapshot(),
        }
        path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
        return path


@contextlib.contextmanager
def record_duration(registry: MetricsRegistry, metric_name: str) -> Iterator[None]:
    """Add the block's elapsed milliseconds to ``metric_name``."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        registry.incr(metric_name, elapsed_ms)
        LOGGER.info("timer_stop", metric=metric_name, duration_ms=elapsed_ms)

"""Adapters for the external signal provider."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Protocol

import orjson
import structlog

from catalog_dedup.errors import SignalProviderError

LOGGER = structlog.get_logger(__name__)


class SignalProvider(Protocol):
    """Returns the flat list of pairwise duplicate evidence for a run."""

    def fetch_pairs(self) -> List[Dict[str, Any]]:
        ...


class StaticSignalProvider:
    """Serves a fixed batch of records."""

    def __init__(self, records: Iterable[Dict[str, Any]]) -> None:
        self._records = [dict(record) for record in records]

    def fetch_pairs(self) -> List[Dict[str, Any]]:
        return [dict(record) for record in self._records]


class JsonlSignalProvider:
    """Reads pairs exported by the upstream detection job, one JSON object per line."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def fetch_pairs(self) -> List[Dict[str, Any]]:
        if not self._path.exists():
            raise SignalProviderError(f"Signal export not found: {self._path}")
        records: List[Dict[str, Any]] = []
        with self._path.open("r", encoding="utf-8") as handle:
            for lineno, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    record = orjson.loads(line)
                except orjson.JSONDecodeError as exc:
                    raise SignalProviderError(f"Malformed signal record on line {lineno}: {exc}") from exc
                if not isinstance(record, dict):
                    raise SignalProviderError(f"Signal record on line {lineno} is not an object")
                records.append(record)
        LOGGER.info("signal_pairs_loaded", path=str(self._path), count=len(records))
        return records

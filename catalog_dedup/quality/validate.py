"""JSON Schema validation and normalisation of imported catalog rows."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import jsonschema
import orjson

from catalog_dedup.quality.scoring import FACET_FIELDS

ENTRY_SCHEMA = "entry"

# exports from the lesson catalog still use its column names
LEGACY_KEYS = {"lesson_id": "entry_id"}
METADATA_KEYS = FACET_FIELDS + ("processing_notes",)


@dataclass
class ValidationResult:
    """Outcome of validating a single row."""

    ok: bool
    errors: List[str]
    record: Optional[Dict[str, Any]] = None


def normalize_entry(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Rename legacy keys and fold top-level facet columns into ``metadata``."""
    record = dict(row)
    for legacy, key in LEGACY_KEYS.items():
        if key not in record and legacy in record:
            record[key] = record.pop(legacy)
    if record.get("grade_levels") is None:
        record.pop("grade_levels", None)
    metadata = record.get("metadata", {})
    if not isinstance(metadata, dict):
        return record
    metadata = dict(metadata)
    for key in METADATA_KEYS:
        if key in record:
            metadata.setdefault(key, record.pop(key))
    record["metadata"] = metadata
    return record


class SchemaRegistry:
    """Lazily loads JSON Schema validators by record type."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self._validators: Dict[str, jsonschema.Draft202012Validator] = {}

    def _validator(self, record_type: str) -> jsonschema.Draft202012Validator:
        if record_type not in self._validators:
            path = self._root / f"{record_type}.schema.json"
            if not path.exists():
                raise FileNotFoundError(f"Schema not found for {record_type}: {path}")
            self._validators[record_type] = jsonschema.Draft202012Validator(orjson.loads(path.read_bytes()))
        return self._validators[record_type]

    def validate(self, record_type: str, payload: Mapping[str, Any]) -> ValidationResult:
        errors = [
            f"{error.json_path}: {error.message}"
            for error in self._validator(record_type).iter_errors(payload)
        ]
        return ValidationResult(ok=not errors, errors=errors, record=dict(payload) if not errors else None)

    def validate_entry(self, row: Mapping[str, Any]) -> ValidationResult:
        """Normalise a catalog row, then validate it against the entry schema."""
        return self.validate(ENTRY_SCHEMA, normalize_entry(row))

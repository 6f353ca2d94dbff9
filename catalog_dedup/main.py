"""Command-line entrypoints for duplicate review."""
from __future__ import annotations

import argparse
import asyncio
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import orjson
import structlog
import tomllib
from dotenv import load_dotenv
from pydantic import ValidationError

from catalog_dedup.detection.signals import JsonlSignalProvider
from catalog_dedup.errors import SignalProviderError
from catalog_dedup.observability.log import configure_logging
from catalog_dedup.quality.validate import SchemaRegistry
from catalog_dedup.review.service import DuplicateReviewService
from catalog_dedup.storage.catalog import CatalogStore
from catalog_dedup.storage.layout import DataLayout
from catalog_dedup.storage.models import CatalogEntry, GroupResolution

LOGGER = structlog.get_logger(__name__)

DEFAULT_SETTINGS = Path("config/settings.toml")
DEFAULT_SCHEMA_DIR = Path("config/schemas")
REVIEWER_ENV = "CATALOG_DEDUP_REVIEWER"


def load_settings(path: Path) -> Dict[str, Any]:
    """Read the TOML configuration file."""
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _emit(payload: Any) -> None:
    print(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode())


def reviewer_from(settings: Dict[str, Any]) -> Optional[str]:
    return os.environ.get(REVIEWER_ENV) or settings.get("review", {}).get("reviewer")


def build_service(settings: Dict[str, Any], *, signals_path: Optional[str] = None) -> DuplicateReviewService:
    """Assemble the review service from settings."""
    layout = DataLayout.from_settings(settings)
    pairs_path = Path(signals_path or settings.get("signals", {}).get("pairs_path", layout.root / "pairs.jsonl"))
    return DuplicateReviewService(
        provider=JsonlSignalProvider(pairs_path),
        catalog=CatalogStore(layout.catalog_sqlite()),
        reviewer=reviewer_from(settings),
        report_dir=layout.reports,
    )


def build_arg_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(prog="catalog-dedup", description="Catalog duplicate review")
    parser.add_argument("--settings", default=str(DEFAULT_SETTINGS), help="Path to settings TOML")
    sub = parser.add_subparsers(dest="command", required=True)

    importer = sub.add_parser("import-entries", help="Load catalog entries from a JSONL file")
    importer.add_argument("--file", required=True, help="JSONL file with one entry per line")

    groups = sub.add_parser("groups", help="List duplicate groups awaiting review")
    groups.add_argument("--include-resolved", action="store_true", help="Include dismissed and resolved groups")
    groups.add_argument("--signals", help="Override the signal export path")

    resolve = sub.add_parser("resolve", help="Apply a reviewer decision for one group")
    resolve.add_argument("--file", required=True, help="JSON file holding a group resolution")

    dismiss = sub.add_parser("dismiss", help="Mark a set of entries as not duplicates")
    dismiss.add_argument("--ids", required=True, help="Comma-separated entry ids")
    dismiss.add_argument("--method", default=None, help="Detection method that flagged the group")
    dismiss.add_argument("--notes", default=None)

    auto = sub.add_parser("auto-resolve", help="Resolve exact duplicates by keeping the recommended entry")
    auto.add_argument("--dry-run", action="store_true", help="Report decisions without archiving anything")
    auto.add_argument("--group", default=None, help="Comma-separated group ids to limit the run to")
    auto.add_argument("--signals", help="Override the signal export path")

    return parser


def run_import(args: argparse.Namespace, settings: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and upsert catalog rows, returning a summary."""
    layout = DataLayout.from_settings(settings)
    catalog = CatalogStore(layout.catalog_sqlite())
    registry = SchemaRegistry(Path(settings["app"].get("schema_dir", DEFAULT_SCHEMA_DIR)))
    accepted: List[CatalogEntry] = []
    rejects: List[Dict[str, Any]] = []
    with Path(args.file).open("r", encoding="utf-8") as handle:
        for lineno, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                row = orjson.loads(line)
            except orjson.JSONDecodeError as exc:
                rejects.append({"line": lineno, "errors": [f"Malformed JSON: {exc}"]})
                continue
            if not isinstance(row, dict):
                rejects.append({"line": lineno, "errors": ["Entry must be a JSON object"]})
                continue
            result = registry.validate_entry(row)
            if not result.ok:
                rejects.append({"line": lineno, "errors": result.errors})
                continue
            try:
                accepted.append(CatalogEntry(**result.record))
            except ValidationError as exc:
                rejects.append({"line": lineno, "errors": [str(exc)]})
    imported = catalog.upsert_entries(accepted)
    LOGGER.info("entries_imported", imported=imported, rejected=len(rejects))
    return {"imported": imported, "rejected": rejects}


async def run_groups(args: argparse.Namespace, settings: Dict[str, Any]) -> List[Dict[str, Any]]:
    service = build_service(settings, signals_path=getattr(args, "signals", None))
    groups = await service.fetch_duplicate_groups(include_resolved=args.include_resolved)
    layout = DataLayout.from_settings(settings)
    service.metrics.export(path=layout.metrics / "groups_latest.json", run_id="groups")
    return [group.model_dump(mode="json") for group in groups]


async def run_resolve(args: argparse.Namespace, settings: Dict[str, Any]) -> Dict[str, Any]:
    payload = orjson.loads(Path(args.file).read_bytes())
    try:
        resolution = GroupResolution(**payload)
    except ValidationError as exc:
        return {"success": False, "archived_count": 0, "kept_count": 0, "error": str(exc)}
    service = build_service(settings)
    result = await service.resolve_group(resolution)
    return result.model_dump()


async def run_dismiss(args: argparse.Namespace, settings: Dict[str, Any]) -> Dict[str, Any]:
    ids = [item.strip() for item in args.ids.split(",") if item.strip()]
    service = build_service(settings)
    result = await service.dismiss_group(ids, args.method, args.notes)
    return result.model_dump()


async def run_auto_resolve(args: argparse.Namespace, settings: Dict[str, Any]) -> Dict[str, Any]:
    group_ids = [item.strip() for item in args.group.split(",") if item.strip()] if args.group else None
    service = build_service(settings, signals_path=getattr(args, "signals", None))
    decisions = await service.auto_resolve(dry_run=args.dry_run, group_ids=group_ids)
    applied = [item.result for item in decisions if item.result is not None]
    summary = {
        "dry_run": args.dry_run,
        "candidates": len(decisions),
        "resolved": sum(1 for result in applied if result.success),
        "failed": sum(1 for result in applied if not result.success),
        "decisions": [item.model_dump(mode="json") for item in decisions],
    }
    layout = DataLayout.from_settings(settings)
    service.metrics.export(path=layout.metrics / "auto_resolve_latest.json", run_id="auto-resolve")
    return summary


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI."""
    load_dotenv()
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    settings = load_settings(Path(args.settings))
    configure_logging(Path("config/logging.yaml"))

    if args.command == "import-entries":
        _emit(run_import(args, settings))
        return

    if args.command == "groups":
        try:
            _emit(asyncio.run(run_groups(args, settings)))
        except SignalProviderError as exc:
            raise SystemExit(f"Failed to load duplicate signals: {exc}")
        return

    if args.command == "resolve":
        result = asyncio.run(run_resolve(args, settings))
        _emit(result)
        if not result["success"]:
            raise SystemExit(1)
        return

    if args.command == "dismiss":
        result = asyncio.run(run_dismiss(args, settings))
        _emit(result)
        if not result["success"]:
            raise SystemExit(1)
        return

    if args.command == "auto-resolve":
        try:
            summary = asyncio.run(run_auto_resolve(args, settings))
        except SignalProviderError as exc:
            raise SystemExit(f"Failed to load duplicate signals: {exc}")
        _emit(summary)
        if summary["failed"]:
            raise SystemExit(1)


if __name__ == "__main__":
    main()

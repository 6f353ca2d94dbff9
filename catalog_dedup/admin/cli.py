"""Administrative CLI utilities for the resolution audit trail."""
from __future__ import annotations

import argparse
from collections import Counter
from datetime import timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import orjson
from dateutil import parser as dateparser

from catalog_dedup.observability.log import configure_logging
from catalog_dedup.storage.catalog import CatalogStore


def _emit(payload: Any) -> None:
    print(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode())


def cmd_history(args: argparse.Namespace) -> List[Dict[str, Any]]:
    store = CatalogStore(Path(args.db))
    since = None
    if args.since:
        since = dateparser.isoparse(args.since)
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
    rows = [
        {
            "entry_id": item.entry_id,
            "title": item.snapshot.get("title"),
            "canonical_id": item.canonical_id,
            "archived_by": item.archived_by,
            "archived_at": item.archived_at.isoformat(),
            "archive_reason": item.archive_reason,
        }
        for item in store.list_archived(since=since)
    ]
    _emit(rows)
    return rows


def cmd_dismissals(args: argparse.Namespace) -> Dict[str, Any]:
    store = CatalogStore(Path(args.db))
    dismissals = store.list_dismissals()
    by_method: Counter[str] = Counter(item.detection_method or "unknown" for item in dismissals)
    summary = {
        "count": len(dismissals),
        "by_method": dict(by_method),
        "groups": [list(item.entry_ids) for item in dismissals],
    }
    _emit(summary)
    return summary


def cmd_canonical(args: argparse.Namespace) -> Dict[str, Any]:
    store = CatalogStore(Path(args.db))
    mapping = store.get_canonical_mapping(args.entry_id)
    explanation = {
        "entry_id": args.entry_id,
        "archived": mapping is not None,
        "canonical_id": store.canonical_for(args.entry_id),
        "resolved_by": mapping.resolved_by if mapping else None,
        "resolved_at": mapping.resolved_at.isoformat() if mapping else None,
    }
    _emit(explanation)
    return explanation


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="catalog_dedup.admin.cli", description="Administration commands")
    sub = parser.add_subparsers(dest="command", required=True)

    history = sub.add_parser("history", help="List archived duplicates")
    history.add_argument("--db", default="data/catalog.db")
    history.add_argument("--since", help="ISO date lower bound for archived_at")

    dismissals = sub.add_parser("dismissals", help="Summarise dismissed groups")
    dismissals.add_argument("--db", default="data/catalog.db")

    canonical = sub.add_parser("canonical", help="Show the canonical entry for an id")
    canonical.add_argument("entry_id")
    canonical.add_argument("--db", default="data/catalog.db")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    configure_logging(Path("config/logging.yaml"))
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "history":
        cmd_history(args)
        return
    if args.command == "dismissals":
        cmd_dismissals(args)
        return
    if args.command == "canonical":
        cmd_canonical(args)
        return


if __name__ == "__main__":
    main()

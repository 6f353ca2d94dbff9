#!/usr/bin/env python
"""Write demo catalog entries and duplicate signals for local review runs."""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Dict, List

import orjson
from dotenv import load_dotenv

DEMO_ENTRIES: List[Dict[str, object]] = [
    {
        "entry_id": "lesson-apple-pie",
        "title": "Apple Pie Fractions",
        "summary": "Practise fractions while portioning a pie.",
        "content_text": "Students divide a pie into equal parts and name each fraction.",
        "grade_levels": ["3", "4"],
    },
    {
        "entry_id": "lesson-apple-pie-copy",
        "title": "Apple Pie Fractions",
        "summary": "",
        "content_text": "Students divide a pie into equal parts and name each fraction.",
        "grade_levels": ["3"],
    },
    {
        "entry_id": "lesson-apple-pie-v2",
        "title": "Fractions with Apple Pie",
        "summary": "Fractions using pie slices.",
        "content_text": "Students divide a pie into equal parts, then compare fractions.",
        "grade_levels": ["4"],
    },
    {
        "entry_id": "lesson-seed-sprouting",
        "title": "Sprouting Seeds",
        "summary": "Observe germination over a week.",
        "content_text": "Place seeds on damp paper towels and record daily changes.",
        "grade_levels": ["2"],
    },
    {
        "entry_id": "lesson-seed-sprouting-jar",
        "title": "Sprouting Seeds",
        "summary": "Germination in a jar.",
        "content_text": "Grow bean sprouts in a glass jar and sketch the roots.",
        "grade_levels": ["2", "3"],
    },
]

DEMO_PAIRS: List[Dict[str, object]] = [
    {"id1": "lesson-apple-pie", "id2": "lesson-apple-pie-copy", "detection_method": "hash_and_embedding", "similarity": 1.0},
    {"id1": "lesson-apple-pie", "id2": "lesson-apple-pie-v2", "detection_method": "embedding", "similarity": 0.962},
    {"id1": "lesson-seed-sprouting", "id2": "lesson-seed-sprouting-jar", "detection_method": "same_title", "similarity": None},
]


def _write_jsonl(rows: List[Dict[str, object]], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        for row in rows:
            handle.write(orjson.dumps(row).decode())
            handle.write("\n")


def seed_demo(entries_path: Path, pairs_path: Path) -> None:
    """Write the demo entries and pairs as JSONL files."""
    _write_jsonl(DEMO_ENTRIES, entries_path)
    _write_jsonl(DEMO_PAIRS, pairs_path)


def main() -> None:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Seed demo catalog entries and duplicate signals")
    parser.add_argument("--entries", type=Path, default=Path("data/seed/entries.jsonl"))
    parser.add_argument("--pairs", type=Path, default=Path("data/signals/pairs.jsonl"))
    args = parser.parse_args()
    seed_demo(args.entries, args.pairs)


if __name__ == "__main__":
    main()

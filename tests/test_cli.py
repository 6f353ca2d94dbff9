import asyncio
import json
from pathlib import Path
from types import SimpleNamespace

from catalog_dedup import main as app_main


def _settings(tmp_path: Path) -> dict:
    data_root = tmp_path / "data"
    return {
        "app": {
            "data_root": str(data_root),
            "reports_dir": str(data_root / "reports"),
            "metrics_dir": str(data_root / "metrics"),
            "schema_dir": str(Path("config/schemas").resolve()),
        },
        "signals": {"pairs_path": str(tmp_path / "pairs.jsonl")},
        "review": {"reviewer": "cli-reviewer"},
    }


def _write_inputs(tmp_path: Path) -> Path:
    entries = tmp_path / "entries.jsonl"
    entries.write_text(
        '{"entry_id": "a", "title": "Apple Pie", "grade_levels": ["3"]}\n'
        '{"entry_id": "b", "title": "Apple Pie"}\n'
        '{"entry_id": "c", "title": "Apple Pie Fractions"}\n'
        '{"title": "missing id"}\n',
        encoding="utf-8",
    )
    (tmp_path / "pairs.jsonl").write_text(
        '{"id1": "a", "id2": "b", "detection_method": "same_title", "similarity": null}\n'
        '{"id1": "b", "id2": "c", "detection_method": "embedding", "similarity": 0.97}\n',
        encoding="utf-8",
    )
    return entries


def test_cli_import_group_and_resolve(tmp_path, monkeypatch):
    monkeypatch.delenv(app_main.REVIEWER_ENV, raising=False)
    settings = _settings(tmp_path)
    entries = _write_inputs(tmp_path)

    summary = app_main.run_import(SimpleNamespace(file=str(entries)), settings)
    assert summary["imported"] == 3
    assert [item["line"] for item in summary["rejected"]] == [4]

    groups = asyncio.run(app_main.run_groups(SimpleNamespace(include_resolved=False, signals=None), settings))
    assert len(groups) == 1
    assert groups[0]["confidence"] == "high"
    assert groups[0]["detection_method"] == "mixed"
    assert (tmp_path / "data" / "metrics" / "groups_latest.json").exists()

    resolution_path = tmp_path / "resolution.json"
    resolution_path.write_text(
        json.dumps(
            {
                "group_id": groups[0]["group_id"],
                "resolutions": [
                    {"entry_id": "a", "action": "keep"},
                    {"entry_id": "b", "action": "archive", "archive_target": "a"},
                    {"entry_id": "c", "action": "keep"},
                ],
                "notes": "b is a copy of a",
            }
        ),
        encoding="utf-8",
    )
    result = asyncio.run(app_main.run_resolve(SimpleNamespace(file=str(resolution_path)), settings))
    assert result == {"success": True, "archived_count": 1, "kept_count": 2, "error": None}

    again = asyncio.run(app_main.run_resolve(SimpleNamespace(file=str(resolution_path)), settings))
    assert not again["success"]

    dismissed = asyncio.run(
        app_main.run_dismiss(SimpleNamespace(ids="c, a", method="mixed", notes=None), settings)
    )
    assert dismissed["success"]


def test_cli_resolve_rejects_malformed_payload(tmp_path):
    settings = _settings(tmp_path)
    path = tmp_path / "bad.json"
    path.write_text('{"group_id": "group_1", "resolutions": [{"entry_id": "a", "action": "merge"}]}', encoding="utf-8")
    result = asyncio.run(app_main.run_resolve(SimpleNamespace(file=str(path)), settings))
    assert not result["success"]


def test_reviewer_prefers_environment(monkeypatch, tmp_path):
    settings = _settings(tmp_path)
    monkeypatch.setenv(app_main.REVIEWER_ENV, "env-reviewer")
    assert app_main.reviewer_from(settings) == "env-reviewer"
    monkeypatch.delenv(app_main.REVIEWER_ENV)
    assert app_main.reviewer_from(settings) == "cli-reviewer"


def test_cli_import_rejects_malformed_lines(tmp_path):
    settings = _settings(tmp_path)
    entries = tmp_path / "entries.jsonl"
    entries.write_text(
        '{"entry_id": "a", "title": "Apple Pie"}\n'
        '{"entry_id": "b", "title": \n'
        '["not", "an", "object"]\n'
        '{"lesson_id": "c", "title": "Apple Pie", "main_ingredients": ["apple"]}\n',
        encoding="utf-8",
    )
    summary = app_main.run_import(SimpleNamespace(file=str(entries)), settings)
    assert summary["imported"] == 2
    assert [item["line"] for item in summary["rejected"]] == [2, 3]
    assert summary["rejected"][0]["errors"][0].startswith("Malformed JSON")


def test_cli_auto_resolve(tmp_path, monkeypatch):
    monkeypatch.delenv(app_main.REVIEWER_ENV, raising=False)
    settings = _settings(tmp_path)
    entries = tmp_path / "entries.jsonl"
    entries.write_text(
        '{"entry_id": "a", "title": "Apple Pie"}\n'
        '{"entry_id": "b", "title": "Apple Pie", "grade_levels": ["3"], "season_timing": ["Fall"]}\n',
        encoding="utf-8",
    )
    app_main.run_import(SimpleNamespace(file=str(entries)), settings)
    (tmp_path / "pairs.jsonl").write_text(
        '{"id1": "a", "id2": "b", "detection_method": "hash_and_embedding", "similarity": 1.0}\n',
        encoding="utf-8",
    )

    preview = asyncio.run(
        app_main.run_auto_resolve(SimpleNamespace(dry_run=True, group=None, signals=None), settings)
    )
    assert preview["candidates"] == 1
    assert preview["resolved"] == 0
    assert preview["decisions"][0]["canonical_id"] == "b"

    applied = asyncio.run(
        app_main.run_auto_resolve(SimpleNamespace(dry_run=False, group="group_1", signals=None), settings)
    )
    assert (applied["resolved"], applied["failed"]) == (1, 0)
    assert applied["decisions"][0]["result"]["archived_count"] == 1
    assert (tmp_path / "data" / "metrics" / "auto_resolve_latest.json").exists()

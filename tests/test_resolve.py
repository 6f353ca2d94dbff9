import asyncio

from catalog_dedup.observability.metrics import MetricsRegistry
from catalog_dedup.review.resolve import ResolutionEngine
from catalog_dedup.storage.catalog import CatalogStore
from catalog_dedup.storage.models import CatalogEntry, GroupResolution, LessonResolution


def _engine(tmp_path, *ids):
    catalog = CatalogStore(tmp_path / "catalog.db")
    catalog.upsert_entries(CatalogEntry(entry_id=entry_id, title=entry_id) for entry_id in ids)
    metrics = MetricsRegistry()
    return catalog, metrics, ResolutionEngine(catalog=catalog, metrics=metrics)


def _resolution(*items, group_id="group_1"):
    return GroupResolution(
        group_id=group_id,
        resolutions=[
            LessonResolution(entry_id=entry_id, action=action, archive_target=target)
            for entry_id, action, target in items
        ],
    )


def test_rejects_malformed_group_id(tmp_path):
    _, _, engine = _engine(tmp_path, "a", "b")
    result = asyncio.run(engine.resolve(_resolution(("a", "keep", None), group_id="group_x; drop")))
    assert not result.success
    assert result.error == "Invalid group ID format"


def test_rejects_when_nothing_kept(tmp_path):
    catalog, _, engine = _engine(tmp_path, "a", "b")
    result = asyncio.run(engine.resolve(_resolution(("a", "archive", "b"), ("b", "archive", "a"))))
    assert not result.success
    assert result.error == "At least one entry must be kept"
    assert catalog.list_mappings() == []


def test_rejects_archive_without_target(tmp_path):
    _, _, engine = _engine(tmp_path, "a", "b")
    result = asyncio.run(engine.resolve(_resolution(("a", "keep", None), ("b", "archive", None))))
    assert not result.success
    assert result.error == "Entry b to archive must specify which entry to link to"


def test_rejects_target_outside_kept_set(tmp_path):
    catalog, _, engine = _engine(tmp_path, "a", "b", "c")
    outside = asyncio.run(engine.resolve(_resolution(("a", "keep", None), ("b", "archive", "z"))))
    assert not outside.success
    assert "target entry is not being kept" in outside.error
    chained = asyncio.run(
        engine.resolve(_resolution(("a", "keep", None), ("b", "archive", "a"), ("c", "archive", "b")))
    )
    assert not chained.success
    assert chained.error == "Cannot archive c to b - target entry is not being kept"
    assert catalog.list_mappings() == []
    assert catalog.get_entry("b") is not None


def test_rejects_repeated_entries(tmp_path):
    _, _, engine = _engine(tmp_path, "a", "b")
    result = asyncio.run(engine.resolve(_resolution(("a", "keep", None), ("a", "archive", "a"))))
    assert not result.success
    assert "more than once" in result.error


def test_all_keep_is_a_no_op_success(tmp_path):
    catalog, _, engine = _engine(tmp_path, "a", "b")
    result = asyncio.run(engine.resolve(_resolution(("a", "keep", None), ("b", "keep", None))))
    assert result.success
    assert result.archived_count == 0
    assert result.kept_count == 2
    assert catalog.list_archived() == []


def test_archives_each_duplicate(tmp_path):
    catalog, metrics, engine = _engine(tmp_path, "a", "b", "c")
    result = asyncio.run(
        engine.resolve(
            _resolution(("a", "keep", None), ("b", "archive", "a"), ("c", "archive", "a")),
            resolved_by="reviewer",
        )
    )
    assert result.success
    assert (result.archived_count, result.kept_count) == (2, 1)
    assert {item.duplicate_id for item in catalog.list_mappings()} == {"b", "c"}
    assert metrics.get("entries_archived") == 2


def test_partial_failure_keeps_committed_archives(tmp_path):
    catalog, metrics, engine = _engine(tmp_path, "a", "b")
    result = asyncio.run(
        engine.resolve(_resolution(("a", "keep", None), ("b", "archive", "a"), ("ghost", "archive", "a")))
    )
    assert not result.success
    assert "ghost" in result.error
    assert result.archived_count == 1
    mapping = catalog.get_canonical_mapping("b")
    assert mapping is not None and mapping.canonical_id == "a"
    assert catalog.get_entry("b") is None
    assert metrics.get("archive_failures") == 1


def test_resubmission_fails_on_already_archived(tmp_path):
    catalog, _, engine = _engine(tmp_path, "a", "b")
    resolution = _resolution(("a", "keep", None), ("b", "archive", "a"))
    assert asyncio.run(engine.resolve(resolution)).success
    again = asyncio.run(engine.resolve(resolution))
    assert not again.success
    assert again.archived_count == 0
    assert "already archived" in again.error
    assert len(catalog.list_archived()) == 1


def test_rejects_group_id_with_trailing_newline(tmp_path):
    catalog, _, engine = _engine(tmp_path, "a", "b")
    result = asyncio.run(
        engine.resolve(_resolution(("a", "keep", None), ("b", "archive", "a"), group_id="group_1\n"))
    )
    assert not result.success
    assert result.error == "Invalid group ID format"
    assert catalog.list_mappings() == []


def test_resubmission_completes_partially_failed_group(tmp_path):
    catalog, metrics, engine = _engine(tmp_path, "a", "b")
    resolution = _resolution(("a", "keep", None), ("b", "archive", "a"), ("c", "archive", "a"))
    first = asyncio.run(engine.resolve(resolution))
    assert not first.success
    assert first.error == "Entry not found: c"
    assert first.archived_count == 1

    catalog.upsert_entries([CatalogEntry(entry_id="c", title="c")])
    again = asyncio.run(engine.resolve(resolution))
    assert not again.success
    assert again.archived_count == 1
    assert again.error == "Entry b is already archived as a duplicate of a"
    mapping = catalog.get_canonical_mapping("c")
    assert mapping is not None and mapping.canonical_id == "a"
    assert catalog.get_entry("c") is None
    assert metrics.get("entries_archived") == 2


def test_resubmission_to_different_target_stops(tmp_path):
    catalog, metrics, engine = _engine(tmp_path, "a", "b", "c", "d")
    assert asyncio.run(engine.resolve(_resolution(("a", "keep", None), ("b", "archive", "a")))).success
    conflicting = _resolution(("d", "keep", None), ("b", "archive", "d"), ("c", "archive", "d"))
    result = asyncio.run(engine.resolve(conflicting))
    assert not result.success
    assert result.error == "Entry b is already archived as a duplicate of a"
    assert result.archived_count == 0
    assert catalog.get_canonical_mapping("c") is None
    assert metrics.get("archive_failures") == 1


def test_mappings_record_group_detection_method(tmp_path):
    catalog, _, engine = _engine(tmp_path, "a", "b", "c")
    resolution = _resolution(("a", "keep", None), ("b", "archive", "a"), ("c", "archive", "a"))
    resolution.detection_method = "hash_and_embedding"
    assert asyncio.run(engine.resolve(resolution)).success
    assert [item.detection_method for item in catalog.list_mappings()] == [
        "hash_and_embedding",
        "hash_and_embedding",
    ]

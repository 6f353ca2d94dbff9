import asyncio

import pytest

from catalog_dedup.detection.grouping import group_pairs
from catalog_dedup.observability.metrics import MetricsRegistry
from catalog_dedup.review.dismissals import DismissalStore
from catalog_dedup.review.enrich import GroupEnricher
from catalog_dedup.storage.catalog import CatalogStore
from catalog_dedup.storage.models import CatalogEntry, DuplicatePair


def _pair(a, b, method, similarity=None):
    return DuplicatePair(id1=a, id2=b, detection_method=method, similarity=similarity)


def _setup(tmp_path):
    catalog = CatalogStore(tmp_path / "catalog.db")
    catalog.upsert_entries(
        CatalogEntry(entry_id=entry_id, title=entry_id.upper())
        for entry_id in ["a", "b", "c", "d", "e", "x", "y"]
    )
    dismissals = DismissalStore(catalog)
    metrics = MetricsRegistry()
    enricher = GroupEnricher(catalog=catalog, dismissals=dismissals, metrics=metrics)
    groups = group_pairs(
        [
            _pair("x", "y", "embedding", 0.96),
            _pair("a", "b", "same_title"),
            _pair("b", "c", "same_title"),
            _pair("d", "e", "hash_and_embedding", 1.0),
        ]
    )
    return catalog, dismissals, metrics, enricher, groups


def test_enrich_sorts_by_confidence_then_size(tmp_path):
    _, _, metrics, enricher, groups = _setup(tmp_path)
    enriched = asyncio.run(enricher.enrich(groups))
    assert [sorted(group.member_ids) for group in enriched] == [["d", "e"], ["a", "b", "c"], ["x", "y"]]
    assert [group.confidence for group in enriched] == ["high", "medium", "medium"]
    assert sorted(group.group_id for group in enriched) == ["group_1", "group_2", "group_3"]
    assert enriched[1].entries[0].title in {"A", "B", "C"}
    assert enriched[1].pair_count == 2
    assert enriched[2].avg_similarity == pytest.approx(0.96)
    assert metrics.get("groups_presented") == 3


def test_enrich_hides_dismissed_unless_requested(tmp_path):
    _, dismissals, metrics, enricher, groups = _setup(tmp_path)
    dismissals.dismiss(["c", "b", "a"], "same_title")
    hidden = asyncio.run(enricher.enrich(groups))
    assert ["a", "b", "c"] not in [sorted(group.member_ids) for group in hidden]
    assert metrics.get("groups_dismissed_skipped") == 1
    shown = asyncio.run(enricher.enrich(groups, include_resolved=True))
    assert ["a", "b", "c"] in [sorted(group.member_ids) for group in shown]


def test_enrich_hides_groups_already_resolved(tmp_path):
    catalog, _, metrics, enricher, groups = _setup(tmp_path)
    catalog.archive_entry("y", "x")
    enriched = asyncio.run(enricher.enrich(groups))
    assert ["x", "y"] not in [sorted(group.member_ids) for group in enriched]
    assert metrics.get("groups_resolved_skipped") == 1


def test_enrich_degrades_when_dismissals_unavailable(tmp_path):
    _, dismissals, _, enricher, groups = _setup(tmp_path)
    dismissals.dismiss(["a", "b", "c"], "same_title")

    def _boom():
        raise RuntimeError("dismissal table offline")

    dismissals.dismissed_keys = _boom
    enriched = asyncio.run(enricher.enrich(groups))
    assert len(enriched) == 3


def test_enrich_fails_when_details_unavailable(tmp_path):
    catalog, _, _, enricher, groups = _setup(tmp_path)

    def _boom(ids):
        raise RuntimeError("catalog offline")

    catalog.fetch_entry_details = _boom
    with pytest.raises(RuntimeError, match="catalog offline"):
        asyncio.run(enricher.enrich(groups))


def test_enrich_empty_input(tmp_path):
    _, _, _, enricher, _ = _setup(tmp_path)
    assert asyncio.run(enricher.enrich([])) == []


def test_enrich_recommends_most_complete_entry(tmp_path):
    catalog, _, metrics, enricher, groups = _setup(tmp_path)
    catalog.upsert_entries(
        [CatalogEntry(entry_id="e", title="E", grade_levels=["3", "4"], metadata={"main_ingredients": ["apple"]})]
    )
    enriched = asyncio.run(enricher.enrich(groups))
    exact = next(group for group in enriched if sorted(group.member_ids) == ["d", "e"])
    assert exact.recommended_canonical == "e"
    by_id = {entry.entry_id: entry for entry in exact.entries}
    assert by_id["e"].metadata_completeness == pytest.approx(2 / 6)
    assert by_id["e"].canonical_score > by_id["d"].canonical_score
    assert metrics.labeled("groups_by_confidence") == {"high": 1, "medium": 2}

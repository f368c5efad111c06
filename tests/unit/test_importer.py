"""Unit tests for the cost structure import pipeline.

Covers the end-to-end behaviour on an in-memory store: idempotent re-import,
category inheritance, orphan rejection, duplicate suppression, partial
failure isolation and fatal store outages.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from tendercalc.pipeline import CostStructureImporter, ImportStatus, RecordingObserver
from tendercalc.pipeline.importer import import_cost_structure
from tendercalc.store import InMemoryStore


async def _counts(store: InMemoryStore) -> dict[str, int]:
    return {
        table: len(await store.select(table))
        for table in (
            "cost_categories",
            "detail_cost_categories",
            "location",
            "category_location_mapping",
        )
    }


@pytest.mark.asyncio
async def test_end_to_end_site_scenario(store, site_rows):
    result = await CostStructureImporter(store).run(site_rows)

    assert result.to_dict() == {
        "success": True,
        "categoriesCreated": 1,
        "detailCategoriesCreated": 2,
        "locationsCreated": 1,
        "mappingsCreated": 2,
        "errors": [],
    }
    assert result.status is ImportStatus.SUCCESS

    mappings = await store.select("category_location_mapping")
    assert sorted(m["unit_price"] for m in mappings) == [Decimal("5000"), Decimal("150000")]
    assert all(m["quantity"] == Decimal("1") for m in mappings)


@pytest.mark.asyncio
async def test_reimport_is_idempotent(store, site_rows):
    importer = CostStructureImporter(store)
    await importer.run(site_rows)
    before = await _counts(store)

    second = await importer.run(site_rows)

    assert await _counts(store) == before
    assert second.success
    assert (
        second.categories_created,
        second.detail_categories_created,
        second.locations_created,
        second.mappings_created,
    ) == (0, 0, 0, 0)
    assert (
        second.categories_updated,
        second.detail_categories_updated,
        second.locations_updated,
        second.mappings_updated,
    ) == (1, 2, 1, 2)


@pytest.mark.asyncio
async def test_reimport_with_recased_location_updates_it(store, make_row):
    await CostStructureImporter(store).run(
        [make_row(2, cat_code="A", cat_name="A", detail="d1", location="street")]
    )

    result = await CostStructureImporter(store).run(
        [make_row(2, cat_code="A", cat_name="A", detail="d1", location="Street")]
    )

    assert result.errors == []
    assert (result.locations_created, result.locations_updated) == (0, 1)
    assert result.mappings_updated == 1
    locations = await store.select("location")
    assert [(loc["code"], loc["name"]) for loc in locations] == [("STREET", "Street")]


@pytest.mark.asyncio
async def test_category_inheritance(store, make_row):
    rows = [
        make_row(2, cat_code="A", cat_name="A", detail="d1"),
        make_row(3, detail="d2"),
    ]

    result = await CostStructureImporter(store).run(rows)

    assert result.detail_categories_created == 2
    category = (await store.select("cost_categories"))[0]
    details = await store.select("detail_cost_categories")
    assert {d["name"] for d in details} == {"d1", "d2"}
    assert all(d["category_id"] == category["id"] for d in details)


@pytest.mark.asyncio
async def test_orphan_detail_rejected(store, make_row):
    result = await CostStructureImporter(store).run(
        [make_row(2, detail="d1", location="L1")]
    )

    assert result.success
    assert result.categories_created == 0
    assert result.detail_categories_created == 0
    assert result.mappings_created == 0
    assert len(result.warnings) == 1
    assert "d1" in result.warnings[0]
    assert await store.select("detail_cost_categories") == []


@pytest.mark.asyncio
async def test_duplicate_mapping_suppressed(store, make_row):
    rows = [
        make_row(2, cat_code="A", cat_name="A", detail="d1", location="L1"),
        make_row(3, detail="d1", location="L1"),
    ]

    result = await CostStructureImporter(store).run(rows)

    assert result.mappings_created == 1
    assert result.errors == []
    assert len(await store.select("category_location_mapping")) == 1


@pytest.mark.asyncio
async def test_partial_failure_isolation(store, make_row):
    store.reject("location", message="location rejected", name="L1")

    result = await CostStructureImporter(store).run(
        [make_row(2, cat_code="A", cat_name="A", detail="d1", location="L1")]
    )

    assert result.success
    assert result.status is ImportStatus.PARTIAL_SUCCESS
    assert result.categories_created == 1
    assert result.detail_categories_created == 1
    assert result.locations_created == 0
    assert result.mappings_created == 0
    assert result.mappings_skipped == 1
    assert any('Location "L1"' in e for e in result.errors)
    assert any("mapping skipped" in e and "L1" in e for e in result.errors)


@pytest.mark.asyncio
async def test_failed_category_skips_its_details(store, make_row):
    store.reject("cost_categories", name="B")
    rows = [
        make_row(2, cat_code="A", cat_name="A", detail="d1", location="L1"),
        make_row(3, cat_code="B", cat_name="B", detail="d2", location="L1"),
    ]

    result = await CostStructureImporter(store).run(rows)

    assert result.categories_created == 1
    assert result.detail_categories_created == 1
    assert result.mappings_created == 1
    assert result.mappings_skipped == 1
    assert any('"d2"' in e and "was not imported" in e for e in result.errors)


@pytest.mark.asyncio
async def test_failed_detail_not_linked_to_same_name_in_other_category(store, make_row):
    store.reject("detail_cost_categories", code="A.002")
    rows = [
        make_row(2, cat_code="A", cat_name="A", detail="d1", location="L1"),
        make_row(3, cat_code="B", cat_name="B", detail="d1", location="L2"),
    ]

    result = await CostStructureImporter(store).run(rows)

    assert result.detail_categories_created == 1
    assert result.mappings_created == 1
    assert result.mappings_skipped == 1
    assert any("Row 2: mapping skipped" in e for e in result.errors)

    l2 = (await store.select("location", {"name": "L2"}))[0]
    mappings = await store.select("category_location_mapping")
    assert [m["location_id"] for m in mappings] == [l2["id"]]


@pytest.mark.asyncio
async def test_store_outage_aborts_run(store, site_rows):
    store.go_offline("connection reset")
    observer = RecordingObserver()

    result = await CostStructureImporter(store, observer).run(site_rows)

    assert result.success is False
    assert result.status is ImportStatus.FAILED
    assert result.errors == ["Import failed: connection reset"]
    assert observer.of("failed")[0][2] == "StoreUnavailableError"


@pytest.mark.asyncio
async def test_progress_milestones(store, site_rows):
    progress = []

    await CostStructureImporter(store).run(
        site_rows, on_progress=lambda percent, message: progress.append((percent, message))
    )

    assert [p for p, _ in progress] == [10, 20, 40, 60, 80, 100]
    assert progress[-1][1] == "Import complete"


@pytest.mark.asyncio
async def test_progress_reaches_100_on_failure(store, site_rows):
    store.go_offline()
    progress = []

    await CostStructureImporter(store).run(
        site_rows, on_progress=lambda percent, message: progress.append(percent)
    )

    assert progress == [10, 100]


@pytest.mark.asyncio
async def test_replace_mappings_removes_previous_links(store, make_row):
    await CostStructureImporter(store).run(
        [make_row(2, cat_code="A", cat_name="A", detail="d1", location="Old site")]
    )

    result = await CostStructureImporter(store, replace_mappings=True).run(
        [make_row(2, cat_code="A", cat_name="A", detail="d1", location="New site")]
    )

    assert result.mappings_removed == 1
    assert result.mappings_created == 1
    mappings = await store.select("category_location_mapping")
    new_site = (await store.select("location", {"name": "New site"}))[0]
    assert [m["location_id"] for m in mappings] == [new_site["id"]]


@pytest.mark.asyncio
async def test_concurrent_import_matches_sequential(site_rows, make_row):
    rows = site_rows + [
        make_row(4, cat_code="002", cat_name="Earthworks", detail="Excavation", location="Pit"),
        make_row(5, detail="Backfill", location="Pit"),
        make_row(6, detail="Backfill", location="Street"),
    ]
    sequential, concurrent = InMemoryStore(), InMemoryStore()

    first = await import_cost_structure(sequential, rows)
    second = await import_cost_structure(concurrent, rows, max_concurrency=5)

    assert first.to_dict() == second.to_dict()
    assert await _counts(sequential) == await _counts(concurrent)

"""Unit tests for the lookup-or-create upsert executor."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from tendercalc.pipeline.executor import UpsertExecutor, lookup_or_create
from tendercalc.pipeline.grouping import group_rows
from tendercalc.pipeline.observer import RecordingObserver
from tendercalc.pipeline.types import IdIndex, UpsertStatus
from tendercalc.store.base import StoreUnavailableError, UniqueViolationError


class TestLookupOrCreate:
    @pytest.mark.asyncio
    async def test_creates_when_missing(self, store):
        outcome = await lookup_or_create(
            store,
            "cost_categories",
            {"name": "Alpha"},
            {"code": "A", "name": "Alpha", "sort_order": 0, "is_active": True},
            {"sort_order": 0},
            "Category",
            "Alpha",
        )

        assert outcome.status is UpsertStatus.CREATED
        assert outcome.id is not None
        assert (await store.select("cost_categories"))[0]["id"] == outcome.id

    @pytest.mark.asyncio
    async def test_updates_when_found(self, store):
        existing = await store.insert(
            "cost_categories", {"code": "A", "name": "Alpha", "sort_order": 5, "is_active": False}
        )

        outcome = await lookup_or_create(
            store,
            "cost_categories",
            {"name": "Alpha"},
            {"code": "A2", "name": "Alpha"},
            {"sort_order": 0, "is_active": True},
            "Category",
            "Alpha",
        )

        assert outcome.status is UpsertStatus.UPDATED
        assert outcome.id == existing["id"]
        row = (await store.select("cost_categories"))[0]
        assert row["is_active"] is True
        assert row["sort_order"] == 0
        assert row["code"] == "A"

    @pytest.mark.asyncio
    async def test_unique_violation_falls_back_to_lookup(self):
        found = {"id": "cat-1", "name": "Alpha"}
        store = AsyncMock()
        store.select.side_effect = [[], [found]]
        store.insert.side_effect = UniqueViolationError("duplicate key")
        store.update.return_value = {**found, "sort_order": 1}

        outcome = await lookup_or_create(
            store, "cost_categories", {"name": "Alpha"}, {}, {"sort_order": 1}, "Category", "Alpha"
        )

        assert outcome.status is UpsertStatus.UPDATED
        assert outcome.id == "cat-1"
        store.update.assert_awaited_once_with("cost_categories", "cat-1", {"sort_order": 1})

    @pytest.mark.asyncio
    async def test_code_collision_with_other_entity_fails(self, store):
        await store.insert("cost_categories", {"code": "A", "name": "Other", "sort_order": 0})

        outcome = await lookup_or_create(
            store,
            "cost_categories",
            {"name": "Alpha"},
            {"code": "A", "name": "Alpha", "sort_order": 1},
            {},
            "Category",
            "Alpha",
        )

        assert outcome.status is UpsertStatus.FAILED
        assert outcome.id is None
        assert 'Category "Alpha"' in outcome.error

    @pytest.mark.asyncio
    async def test_alternate_key_finds_renamed_entity(self, store):
        existing = await store.insert("location", {"code": "STREET", "name": "street"})

        outcome = await lookup_or_create(
            store,
            "location",
            {"name": "Street"},
            {"code": "STREET", "name": "Street"},
            {"name": "Street"},
            "Location",
            "Street",
            alternate_key={"code": "STREET"},
            same_entity=lambda found: found["name"].lower() == "street",
        )

        assert outcome.status is UpsertStatus.UPDATED
        assert outcome.id == existing["id"]
        assert outcome.record["name"] == "Street"

    @pytest.mark.asyncio
    async def test_alternate_key_match_of_other_entity_is_ignored(self, store):
        await store.insert("location", {"code": "STREET", "name": "Main street"})

        outcome = await lookup_or_create(
            store,
            "location",
            {"name": "Street"},
            {"code": "STREET", "name": "Street"},
            {},
            "Location",
            "Street",
            alternate_key={"code": "STREET"},
            same_entity=lambda found: found["name"].lower() == "street",
        )

        assert outcome.status is UpsertStatus.FAILED
        assert len(await store.select("location")) == 1

    @pytest.mark.asyncio
    async def test_rejected_insert_fails(self, store):
        store.reject("location", name="L1")

        outcome = await lookup_or_create(
            store, "location", {"name": "L1"}, {"code": "L1", "name": "L1"}, {}, "Location", "L1"
        )

        assert outcome.status is UpsertStatus.FAILED
        assert "L1" in outcome.error

    @pytest.mark.asyncio
    async def test_failed_update_keeps_existing_id(self, store):
        existing = await store.insert("location", {"code": "L1", "name": "L1", "sort_order": 0})
        store.reject("location", message="read only", name="L1")

        outcome = await lookup_or_create(
            store, "location", {"name": "L1"}, {}, {"sort_order": 10}, "Location", "L1"
        )

        assert outcome.status is UpsertStatus.UPDATED
        assert outcome.id == existing["id"]
        assert "read only" in outcome.warning

    @pytest.mark.asyncio
    async def test_store_outage_propagates(self, store):
        store.go_offline()

        with pytest.raises(StoreUnavailableError):
            await lookup_or_create(
                store, "location", {"name": "L1"}, {}, {}, "Location", "L1"
            )


class TestUpsertExecutor:
    @pytest.mark.asyncio
    async def test_upserts_all_entity_types(self, store, site_rows):
        grouped = group_rows(site_rows)
        observer = RecordingObserver()
        executor = UpsertExecutor(store, observer)

        categories = await executor.upsert_categories(grouped.categories)
        details = await executor.upsert_details(grouped.details, categories.ids)
        locations = await executor.upsert_locations(grouped.locations)

        assert (categories.created, details.created, locations.created) == (1, 2, 1)
        category_id = categories.ids.by_key["Organizational"]
        assert categories.ids.by_code["001"] == category_id
        assert details.ids.by_key[("Organizational", "Temp buildings")] is not None
        assert details.ids.by_code["001.003"] == details.ids.by_key[
            ("Organizational", "Temp buildings")
        ]
        assert locations.ids.by_name["street"] == locations.ids.by_code["STREET"]

        stored = await store.select("detail_cost_categories", order_by=["sort_order"])
        assert [d["name"] for d in stored] == ["Site office", "Temp buildings"]
        assert all(d["category_id"] == category_id for d in stored)
        assert stored[0]["base_price"] == Decimal("150000")

        assert [e[1] for e in observer.of("stage_finished")] == [
            "categories",
            "detail categories",
            "locations",
        ]
        assert len(observer.of("entity")) == 4

    @pytest.mark.asyncio
    async def test_second_run_updates(self, store, site_rows):
        grouped = group_rows(site_rows)
        executor = UpsertExecutor(store)
        first = await executor.upsert_categories(grouped.categories)

        second = await executor.upsert_categories(grouped.categories)

        assert (second.created, second.updated) == (0, 1)
        assert second.ids.by_key == first.ids.by_key

    @pytest.mark.asyncio
    async def test_details_of_missing_category_fail(self, store, site_rows):
        grouped = group_rows(site_rows)
        executor = UpsertExecutor(store)

        details = await executor.upsert_details(grouped.details, IdIndex())

        assert details.failed == 2
        assert len(details.ids) == 0
        assert all("was not imported" in e for e in details.errors)
        assert await store.select("detail_cost_categories") == []

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_other_entities(self, store, make_row):
        grouped = group_rows(
            [
                make_row(2, cat_code="A", cat_name="Alpha", detail="d1", location="L1"),
                make_row(3, detail="d1", location="L2"),
            ]
        )
        store.reject("location", name="L1")

        locations = await UpsertExecutor(store).upsert_locations(grouped.locations)

        assert (locations.created, locations.failed) == (1, 1)
        assert "l2" in locations.ids.by_key
        assert "l1" not in locations.ids.by_key
        assert len(locations.errors) == 1

    @pytest.mark.asyncio
    async def test_bounded_concurrency(self, store, make_row):
        rows = [make_row(2, cat_code="A", cat_name="Alpha", detail="d0", location="L0")]
        rows += [make_row(i + 2, detail="d0", location=f"L{i}") for i in range(1, 12)]
        grouped = group_rows(rows)

        in_flight = 0
        peak = 0
        insert = store.insert

        async def slow_insert(table, record):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            try:
                return await insert(table, record)
            finally:
                in_flight -= 1

        store.insert = slow_insert
        locations = await UpsertExecutor(store, max_concurrency=3).upsert_locations(
            grouped.locations
        )

        assert locations.created == 12
        assert 1 < peak <= 3
        # Outcomes stay in spreadsheet order
        assert [o.label for o in locations.outcomes] == [f"L{i}" for i in range(12)]


"""Unit tests for the in-memory data store and store helpers."""

from __future__ import annotations

from uuid import uuid4

import pytest

from tendercalc.store import (
    DataStore,
    InMemoryStore,
    RecordNotFoundError,
    RecordRejectedError,
    StoreUnavailableError,
    UniqueViolationError,
)
from tendercalc.store.base import matches, sort_records


def test_implements_protocol():
    assert isinstance(InMemoryStore(), DataStore)


class TestHelpers:
    def test_matches_equality_and_membership(self):
        record = {"name": "Alpha", "parent_id": None, "level": 1}

        assert matches(record, None)
        assert matches(record, {"name": "Alpha", "parent_id": None})
        assert matches(record, {"level": [0, 1]})
        assert not matches(record, {"level": (2, 3)})
        assert not matches(record, {"name": "Beta"})

    def test_sort_records(self):
        records = [
            {"name": "b", "sort_order": 1},
            {"name": "a", "sort_order": 1},
            {"name": "c", "sort_order": None},
        ]

        ordered = sort_records(records, ["sort_order", "name"])
        assert [r["name"] for r in ordered] == ["c", "a", "b"]

        ordered = sort_records(records, ["-name"])
        assert [r["name"] for r in ordered] == ["c", "b", "a"]


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_timestamps(self, store):
        row = await store.insert("cost_categories", {"code": "A", "name": "Alpha"})

        assert row["id"] is not None
        assert row["created_at"] == row["updated_at"]

    @pytest.mark.asyncio
    async def test_returned_rows_are_copies(self, store):
        row = await store.insert("cost_categories", {"code": "A", "name": "Alpha"})
        row["name"] = "changed"

        assert (await store.select("cost_categories"))[0]["name"] == "Alpha"

    @pytest.mark.asyncio
    async def test_unique_constraints(self, store):
        await store.insert("cost_categories", {"code": "A", "name": "Alpha"})

        with pytest.raises(UniqueViolationError):
            await store.insert("cost_categories", {"code": "B", "name": "Alpha"})
        with pytest.raises(UniqueViolationError):
            await store.insert("cost_categories", {"code": "A", "name": "Beta"})

    @pytest.mark.asyncio
    async def test_foreign_keys(self, store):
        with pytest.raises(RecordRejectedError):
            await store.insert(
                "detail_cost_categories", {"category_id": uuid4(), "code": "x", "name": "x"}
            )

    @pytest.mark.asyncio
    async def test_update_missing_record(self, store):
        with pytest.raises(RecordNotFoundError):
            await store.update("location", uuid4(), {"name": "x"})

    @pytest.mark.asyncio
    async def test_update_checks_constraints(self, store):
        await store.insert("location", {"code": "A", "name": "A"})
        other = await store.insert("location", {"code": "B", "name": "B"})

        with pytest.raises(UniqueViolationError):
            await store.update("location", other["id"], {"name": "A"})

    @pytest.mark.asyncio
    async def test_upsert_on_conflict_keys(self, store):
        first = await store.upsert("location", [{"code": "A", "name": "A", "level": 0}], ["code"])
        second = await store.upsert("location", [{"code": "A", "name": "A2", "level": 1}], ["code"])

        assert first[0]["id"] == second[0]["id"]
        rows = await store.select("location")
        assert len(rows) == 1
        assert rows[0]["name"] == "A2"

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.insert("location", {"code": "A", "name": "A", "level": 0})
        await store.insert("location", {"code": "B", "name": "B", "level": 1})

        assert await store.delete("location", {"level": 1}) == 1
        assert [r["code"] for r in await store.select("location")] == ["A"]

    @pytest.mark.asyncio
    async def test_unknown_table(self, store):
        with pytest.raises(ValueError):
            await store.select("nope")

    @pytest.mark.asyncio
    async def test_rejection_injection(self, store):
        store.reject("location", message="blocked", name="L1")

        with pytest.raises(RecordRejectedError, match="blocked"):
            await store.insert("location", {"code": "L1", "name": "L1"})
        assert await store.insert("location", {"code": "L2", "name": "L2"})

    @pytest.mark.asyncio
    async def test_outage(self, store):
        store.go_offline("db down")

        with pytest.raises(StoreUnavailableError, match="db down"):
            await store.select("location")

        store.go_online()
        assert await store.select("location") == []

    @pytest.mark.asyncio
    async def test_calls_are_recorded(self, store):
        await store.select("location")
        await store.insert("location", {"code": "A", "name": "A"})

        assert store.calls == [("select", "location"), ("insert", "location")]

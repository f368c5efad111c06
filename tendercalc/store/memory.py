"""Dict-backed DataStore for tests, previews and demos.

Enforces the same unique constraints as the SQL schema and lets callers
inject rejections or outages to exercise failure handling.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from tendercalc.store.base import (
    Filters,
    Record,
    RecordNotFoundError,
    RecordRejectedError,
    StoreError,
    StoreUnavailableError,
    UniqueViolationError,
    matches,
    sort_records,
)

# Mirrors the UNIQUE constraints declared on the SQLAlchemy models
UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    "cost_categories": [("code",), ("name",)],
    "detail_cost_categories": [("code",), ("category_id", "name")],
    "location": [("code",), ("name",)],
    "category_location_mapping": [("detail_category_id", "location_id")],
    "cost_import_runs": [],
}

FOREIGN_KEYS: dict[str, dict[str, str]] = {
    "detail_cost_categories": {"category_id": "cost_categories"},
    "location": {"parent_id": "location"},
    "category_location_mapping": {
        "detail_category_id": "detail_cost_categories",
        "location_id": "location",
    },
}


class InMemoryStore:
    """Demo store; use SQLAlchemyStore in production."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[UUID, Record]] = {name: {} for name in UNIQUE_KEYS}
        self._rejections: list[tuple[str, dict[str, Any], str]] = []
        self._outage: StoreError | None = None
        self.calls: list[tuple[str, str]] = []

    # ------------------------------------------------------------------
    # Failure injection
    # ------------------------------------------------------------------

    def reject(self, table: str, message: str = "rejected by store", **match: Any) -> None:
        """Reject future writes to ``table`` whose fields equal ``match``."""
        self._rejections.append((table, match, message))

    def go_offline(self, message: str = "connection refused") -> None:
        """Make every subsequent call raise StoreUnavailableError."""
        self._outage = StoreUnavailableError(message)

    def go_online(self) -> None:
        self._outage = None

    # ------------------------------------------------------------------
    # DataStore interface
    # ------------------------------------------------------------------

    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        order_by: Sequence[str] | None = None,
    ) -> list[Record]:
        rows = self._table(table, "select")
        found = [copy.deepcopy(r) for r in rows.values() if matches(r, filters)]
        return sort_records(found, order_by)

    async def insert(self, table: str, record: Mapping[str, Any]) -> Record:
        rows = self._table(table, "insert")
        now = datetime.now(timezone.utc)
        row = {"id": uuid4(), "created_at": now, "updated_at": now, **record}
        self._check(table, row, rows)
        rows[row["id"]] = row
        return copy.deepcopy(row)

    async def update(self, table: str, id: UUID, patch: Mapping[str, Any]) -> Record:
        rows = self._table(table, "update")
        if id not in rows:
            raise RecordNotFoundError(f"{table} record {id} not found", table=table)
        row = {**rows[id], **patch, "id": id, "updated_at": datetime.now(timezone.utc)}
        self._check(table, row, rows)
        rows[id] = row
        return copy.deepcopy(row)

    async def upsert(
        self,
        table: str,
        records: Iterable[Mapping[str, Any]],
        conflict_keys: Sequence[str],
    ) -> list[Record]:
        rows = self._table(table, "upsert")
        staged = copy.deepcopy(rows)
        saved = []
        now = datetime.now(timezone.utc)
        for record in records:
            key_filter = {key: record.get(key) for key in conflict_keys}
            existing = next((r for r in staged.values() if matches(r, key_filter)), None)
            if existing is None:
                row = {"id": uuid4(), "created_at": now, "updated_at": now, **record}
            else:
                row = {**existing, **record, "id": existing["id"], "updated_at": now}
            self._check(table, row, staged)
            staged[row["id"]] = row
            saved.append(row)
        # All-or-nothing, like a single transaction
        rows.clear()
        rows.update(staged)
        return copy.deepcopy(saved)

    async def delete(self, table: str, filters: Filters) -> int:
        rows = self._table(table, "delete")
        doomed = [key for key, row in rows.items() if matches(row, filters)]
        for key in doomed:
            del rows[key]
        return len(doomed)

    # ------------------------------------------------------------------

    def _table(self, table: str, operation: str) -> dict[UUID, Record]:
        self.calls.append((operation, table))
        if self._outage is not None:
            raise self._outage
        try:
            return self._tables[table]
        except KeyError:
            raise ValueError(f"Unknown table: {table}") from None

    def _check(self, table: str, row: Record, rows: dict[UUID, Record]) -> None:
        for rejected_table, match, message in self._rejections:
            if rejected_table == table and matches(row, match):
                raise RecordRejectedError(message, table=table)

        for column, target in FOREIGN_KEYS.get(table, {}).items():
            value = row.get(column)
            if value is not None and value not in self._tables[target]:
                raise RecordRejectedError(
                    f"{table}.{column} references missing {target} row {value}",
                    table=table,
                )

        for columns in UNIQUE_KEYS[table]:
            key = tuple(row.get(c) for c in columns)
            for other in rows.values():
                if other["id"] != row["id"] and tuple(other.get(c) for c in columns) == key:
                    raise UniqueViolationError(
                        f"duplicate key value violates unique constraint on {table}{columns}",
                        table=table,
                    )

"""Generic data store contract used by the import pipeline and services.

Records travel as plain dicts keyed by column name. Filters are equality
matches; a ``None`` value matches NULL and a list/tuple/set matches any of
its members. ``order_by`` takes column names, prefixed with ``-`` for
descending order.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

Record = dict[str, Any]
Filters = Mapping[str, Any]


class StoreError(Exception):
    """Base class for data store failures."""

    def __init__(self, message: str, table: str | None = None):
        super().__init__(message)
        self.table = table


class UniqueViolationError(StoreError):
    """A natural-key or other unique constraint rejected the write."""


class RecordRejectedError(StoreError):
    """The store refused a record (constraint, validation, bad value)."""


class RecordNotFoundError(StoreError):
    """An update or lookup by id found nothing."""


class StoreUnavailableError(StoreError):
    """Transport-level failure. Not recoverable within an import run."""


@runtime_checkable
class DataStore(Protocol):
    """Basic CRUD interface over the cost structure tables."""

    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        order_by: Sequence[str] | None = None,
    ) -> list[Record]: ...

    async def insert(self, table: str, record: Mapping[str, Any]) -> Record: ...

    async def update(self, table: str, id: UUID, patch: Mapping[str, Any]) -> Record: ...

    async def upsert(
        self,
        table: str,
        records: Iterable[Mapping[str, Any]],
        conflict_keys: Sequence[str],
    ) -> list[Record]: ...

    async def delete(self, table: str, filters: Filters) -> int: ...


def matches(record: Mapping[str, Any], filters: Filters | None) -> bool:
    """Return True if ``record`` satisfies the equality ``filters``."""
    if not filters:
        return True
    for key, expected in filters.items():
        actual = record.get(key)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def sort_records(records: list[Record], order_by: Sequence[str] | None) -> list[Record]:
    """Stable multi-key sort; ``None`` values sort first."""
    if not order_by:
        return records
    for column in reversed(order_by):
        descending = column.startswith("-")
        key = column.lstrip("-")
        records.sort(
            key=lambda r: (r.get(key) is not None, r.get(key)),
            reverse=descending,
        )
    return records

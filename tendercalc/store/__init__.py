"""Data store abstraction: one CRUD contract, SQL and in-memory backends."""

from tendercalc.store.base import (
    DataStore,
    RecordNotFoundError,
    RecordRejectedError,
    StoreError,
    StoreUnavailableError,
    UniqueViolationError,
)
from tendercalc.store.memory import InMemoryStore

__all__ = [
    "DataStore",
    "InMemoryStore",
    "StoreError",
    "UniqueViolationError",
    "RecordRejectedError",
    "RecordNotFoundError",
    "StoreUnavailableError",
]

"""DataStore implementation backed by async SQLAlchemy.

Every call opens its own session and commits on success, so each write is
an independent request.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Iterable, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

from sqlalchemy import delete as sa_delete
from sqlalchemy import inspect, select
from sqlalchemy.exc import DataError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from tendercalc.db.connection import get_session_factory
from tendercalc.db.models import TABLE_MODELS, Base
from tendercalc.store.base import (
    Filters,
    Record,
    RecordNotFoundError,
    RecordRejectedError,
    StoreUnavailableError,
    UniqueViolationError,
)

logger = logging.getLogger(__name__)

_UNIQUE_MARKERS = ("unique", "duplicate key")


def _model_for(table: str) -> type[Base]:
    try:
        return TABLE_MODELS[table]
    except KeyError:
        raise ValueError(f"Unknown table: {table}") from None


def _to_dict(obj: Base) -> Record:
    return {attr.key: getattr(obj, attr.key) for attr in inspect(obj).mapper.column_attrs}


def _where(model: type[Base], filters: Filters | None) -> list[Any]:
    clauses = []
    for key, value in (filters or {}).items():
        column = getattr(model, key)
        if value is None:
            clauses.append(column.is_(None))
        elif isinstance(value, (list, tuple, set, frozenset)):
            clauses.append(column.in_(list(value)))
        else:
            clauses.append(column == value)
    return clauses


class SQLAlchemyStore:
    """Generic table CRUD over the TenderCalc models."""

    def __init__(self, session_factory: sessionmaker | None = None):
        """Initialize store.

        Args:
            session_factory: Factory producing AsyncSession instances.
                Defaults to the application-wide factory.
        """
        self._session_factory = session_factory or get_session_factory()

    @asynccontextmanager
    async def _session(self, table: str) -> AsyncGenerator[AsyncSession, None]:
        session: AsyncSession = self._session_factory()
        try:
            yield session
            await session.commit()
        except IntegrityError as exc:
            await session.rollback()
            message = str(exc.orig)
            if any(marker in message.lower() for marker in _UNIQUE_MARKERS):
                raise UniqueViolationError(message, table=table) from exc
            raise RecordRejectedError(message, table=table) from exc
        except DataError as exc:
            await session.rollback()
            raise RecordRejectedError(str(exc.orig), table=table) from exc
        except (OperationalError, InterfaceError) as exc:
            logger.error(f"Store unavailable while accessing {table}: {exc}")
            raise StoreUnavailableError(str(exc), table=table) from exc
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        order_by: Sequence[str] | None = None,
    ) -> list[Record]:
        model = _model_for(table)
        stmt = select(model).where(*_where(model, filters))
        for column in order_by or ():
            attr = getattr(model, column.lstrip("-"))
            stmt = stmt.order_by(attr.desc() if column.startswith("-") else attr.asc())

        async with self._session(table) as session:
            result = await session.execute(stmt)
            return [_to_dict(obj) for obj in result.scalars().all()]

    async def insert(self, table: str, record: Mapping[str, Any]) -> Record:
        model = _model_for(table)
        async with self._session(table) as session:
            obj = model(**record)
            session.add(obj)
            await session.flush()
            await session.refresh(obj)
            return _to_dict(obj)

    async def update(self, table: str, id: UUID, patch: Mapping[str, Any]) -> Record:
        model = _model_for(table)
        async with self._session(table) as session:
            obj = await session.get(model, id)
            if obj is None:
                raise RecordNotFoundError(f"{table} record {id} not found", table=table)
            for key, value in patch.items():
                setattr(obj, key, value)
            await session.flush()
            await session.refresh(obj)
            return _to_dict(obj)

    async def upsert(
        self,
        table: str,
        records: Iterable[Mapping[str, Any]],
        conflict_keys: Sequence[str],
    ) -> list[Record]:
        """Insert or update each record matched on ``conflict_keys`` in one transaction."""
        model = _model_for(table)
        async with self._session(table) as session:
            objects = []
            for record in records:
                key_filter = {key: record.get(key) for key in conflict_keys}
                result = await session.execute(
                    select(model).where(*_where(model, key_filter))
                )
                obj = result.scalars().first()
                if obj is None:
                    obj = model(**record)
                    session.add(obj)
                else:
                    for key, value in record.items():
                        if key != "id":
                            setattr(obj, key, value)
                objects.append(obj)
                # Flush per record so later rows see earlier ones
                await session.flush()

            for obj in objects:
                await session.refresh(obj)
            return [_to_dict(obj) for obj in objects]

    async def delete(self, table: str, filters: Filters) -> int:
        model = _model_for(table)
        async with self._session(table) as session:
            result = await session.execute(sa_delete(model).where(*_where(model, filters)))
            return result.rowcount or 0

"""Upsert executor: lookup-or-create for grouped cost structure entities.

Each entity is looked up by its natural key first. Found records have
their mutable fields refreshed; missing ones are inserted. An insert that
loses a race to a concurrent writer (unique violation) falls back to the
lookup once more. Per-entity failures are returned as FAILED outcomes and
never abort the stage; only StoreUnavailableError propagates.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from tendercalc.pipeline.grouping import detail_name_key, normalize_name
from tendercalc.pipeline.observer import ImportObserver
from tendercalc.pipeline.types import (
    CategoryDraft,
    DetailDraft,
    EntityBatch,
    IdIndex,
    LocationDraft,
    UpsertOutcome,
    UpsertStatus,
)
from tendercalc.store.base import (
    DataStore,
    Record,
    StoreError,
    StoreUnavailableError,
    UniqueViolationError,
)

CATEGORIES = "cost_categories"
DETAILS = "detail_cost_categories"
LOCATIONS = "location"
MAPPINGS = "category_location_mapping"


async def lookup_or_create(
    store: DataStore,
    table: str,
    natural_key: Mapping[str, Any],
    record: Mapping[str, Any],
    patch: Mapping[str, Any],
    entity: str,
    label: str,
    alternate_key: Mapping[str, Any] | None = None,
    same_entity: Callable[[Record], bool] | None = None,
) -> UpsertOutcome:
    """Find a record by ``natural_key`` and update it, or insert ``record``.

    Args:
        store: Data store
        table: Table name
        natural_key: Equality filter identifying the business entity
        record: Full record to insert when nothing matches
        patch: Mutable fields to apply when a match exists
        entity: Entity type for messages ("Category", "Location"...)
        label: Display name for messages
        alternate_key: Second filter tried when ``natural_key`` finds nothing
        same_entity: Accepts or rejects a record found by ``alternate_key``

    Returns:
        UpsertOutcome tagged CREATED, UPDATED or FAILED

    Raises:
        StoreUnavailableError: transport failures are not recoverable here
    """
    try:
        existing = await _find_existing(store, table, natural_key, alternate_key, same_entity)
        if existing is None:
            try:
                created = await store.insert(table, record)
                return UpsertOutcome(entity, label, UpsertStatus.CREATED, created["id"], created)
            except UniqueViolationError as exc:
                existing = await _find_existing(store, table, natural_key, alternate_key, same_entity)
                if existing is None:
                    return UpsertOutcome(
                        entity,
                        label,
                        UpsertStatus.FAILED,
                        error=f'{entity} "{label}": could not create or find ({exc})',
                    )

        try:
            updated = await store.update(table, existing["id"], patch)
        except StoreUnavailableError:
            raise
        except StoreError as exc:
            # Keep the existing id so dependents still link
            return UpsertOutcome(
                entity,
                label,
                UpsertStatus.UPDATED,
                existing["id"],
                existing,
                warning=f'{entity} "{label}": found but not updated ({exc})',
            )
        return UpsertOutcome(entity, label, UpsertStatus.UPDATED, updated["id"], updated)

    except StoreUnavailableError:
        raise
    except StoreError as exc:
        return UpsertOutcome(
            entity,
            label,
            UpsertStatus.FAILED,
            error=f'{entity} "{label}": could not create or find ({exc})',
        )


async def _find_one(store: DataStore, table: str, natural_key: Mapping[str, Any]) -> Record | None:
    rows = await store.select(table, natural_key)
    return rows[0] if rows else None


async def _find_existing(
    store: DataStore,
    table: str,
    natural_key: Mapping[str, Any],
    alternate_key: Mapping[str, Any] | None,
    same_entity: Callable[[Record], bool] | None,
) -> Record | None:
    existing = await _find_one(store, table, natural_key)
    if existing is None and alternate_key:
        candidate = await _find_one(store, table, alternate_key)
        if candidate is not None and (same_entity is None or same_entity(candidate)):
            existing = candidate
    return existing


class UpsertExecutor:
    """Runs lookup-or-create for each entity type of a grouped import."""

    def __init__(
        self,
        store: DataStore,
        observer: ImportObserver | None = None,
        max_concurrency: int = 1,
    ):
        """Initialize executor.

        Args:
            store: Data store the entities are written to
            observer: Receives per-entity outcomes
            max_concurrency: Upserts of one entity type allowed in flight at
                once; 1 processes them strictly in order
        """
        self.store = store
        self.observer = observer or ImportObserver()
        self.max_concurrency = max(1, max_concurrency)

    async def run_bounded(
        self, jobs: Iterable[Callable[[], Awaitable[UpsertOutcome]]]
    ) -> list[UpsertOutcome]:
        """Run independent jobs with bounded concurrency, preserving order."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _guarded(job: Callable[[], Awaitable[UpsertOutcome]]) -> UpsertOutcome:
            async with semaphore:
                outcome = await job()
            self.observer.entity_processed(outcome)
            return outcome

        return list(await asyncio.gather(*(_guarded(job) for job in jobs)))

    async def upsert_categories(self, drafts: Mapping[str, CategoryDraft]) -> EntityBatch:
        batch = EntityBatch("categories")
        self.observer.stage_started(batch.entity, len(drafts))

        def _job(draft: CategoryDraft):
            patch = {"sort_order": draft.sort_order, "is_active": True}
            if draft.description:
                patch["description"] = draft.description
            return lambda: lookup_or_create(
                self.store,
                CATEGORIES,
                {"name": draft.name},
                draft.to_record(),
                patch,
                "Category",
                draft.name,
            )

        batch.outcomes = await self.run_bounded(_job(d) for d in drafts.values())
        for draft, outcome in zip(drafts.values(), batch.outcomes):
            if outcome.ok:
                code = outcome.record.get("code", draft.code) if outcome.record else draft.code
                batch.ids.register(draft.name, code, normalize_name(draft.name), outcome.id)
                if code != draft.code:
                    batch.ids.by_code.setdefault(draft.code, outcome.id)

        self._finish(batch)
        return batch

    async def upsert_details(
        self, drafts: Mapping[tuple[str, str], DetailDraft], categories: IdIndex
    ) -> EntityBatch:
        batch = EntityBatch("detail categories")
        self.observer.stage_started(batch.entity, len(drafts))

        linked: list[tuple[DetailDraft, Any]] = []
        orphans: list[UpsertOutcome] = []
        for draft in drafts.values():
            category_id = categories.by_key.get(draft.category_name)
            if category_id is None:
                outcome = UpsertOutcome(
                    "Detail category",
                    draft.name,
                    UpsertStatus.FAILED,
                    error=(
                        f'Detail category "{draft.name}": category '
                        f'"{draft.category_name}" was not imported - skipped'
                    ),
                )
                self.observer.entity_processed(outcome)
                orphans.append(outcome)
            else:
                linked.append((draft, category_id))

        def _job(draft: DetailDraft, category_id):
            patch = {"unit": draft.unit, "sort_order": draft.sort_order, "is_active": True}
            if draft.base_price is not None:
                patch["base_price"] = draft.base_price
            return lambda: lookup_or_create(
                self.store,
                DETAILS,
                {"category_id": category_id, "name": draft.name},
                draft.to_record(category_id),
                patch,
                "Detail category",
                draft.name,
            )

        outcomes = await self.run_bounded(_job(d, c) for d, c in linked)
        for (draft, _), outcome in zip(linked, outcomes):
            if outcome.ok:
                code = outcome.record.get("code", draft.code) if outcome.record else draft.code
                name_key = detail_name_key(draft.category_name, draft.name)
                batch.ids.register(draft.key, code, name_key, outcome.id)
                # Mapping requests carry the code generated from this file
                batch.ids.by_code.setdefault(draft.code, outcome.id)

        batch.outcomes = orphans + outcomes
        self._finish(batch)
        return batch

    async def upsert_locations(self, drafts: Mapping[str, LocationDraft]) -> EntityBatch:
        batch = EntityBatch("locations")
        self.observer.stage_started(batch.entity, len(drafts))

        def _job(draft: LocationDraft):
            wanted = normalize_name(draft.name)
            # Same name in another case: found by code, renamed to this spelling
            return lambda: lookup_or_create(
                self.store,
                LOCATIONS,
                {"name": draft.name},
                draft.to_record(),
                {"name": draft.name, "sort_order": draft.sort_order, "is_active": True},
                "Location",
                draft.name,
                alternate_key={"code": draft.code},
                same_entity=lambda found: normalize_name(found["name"]) == wanted,
            )

        batch.outcomes = await self.run_bounded(_job(d) for d in drafts.values())
        for key, draft, outcome in zip(drafts.keys(), drafts.values(), batch.outcomes):
            if outcome.ok:
                code = outcome.record.get("code", draft.code) if outcome.record else draft.code
                batch.ids.register(key, code, key, outcome.id)
                batch.ids.by_code.setdefault(draft.code, outcome.id)

        self._finish(batch)
        return batch

    def _finish(self, batch: EntityBatch) -> None:
        self.observer.stage_finished(batch.entity, batch.created, batch.updated, batch.failed)

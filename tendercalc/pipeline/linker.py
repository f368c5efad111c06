"""Mapping linker: resolve mapping requests to ids and upsert join rows."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import UUID

from tendercalc.pipeline.executor import MAPPINGS, UpsertExecutor, lookup_or_create
from tendercalc.pipeline.grouping import detail_name_key, fallback_location_code, normalize_name
from tendercalc.pipeline.observer import ImportObserver
from tendercalc.pipeline.types import IdIndex, MappingRequest, UpsertOutcome, UpsertStatus
from tendercalc.store.base import DataStore


@dataclass
class LinkReport:
    """Outcome of linking one run's mapping requests."""

    outcomes: list[UpsertOutcome] = field(default_factory=list)
    skipped: int = 0
    duplicates: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def created(self) -> int:
        return sum(1 for o in self.outcomes if o.status is UpsertStatus.CREATED)

    @property
    def updated(self) -> int:
        return sum(1 for o in self.outcomes if o.status is UpsertStatus.UPDATED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status is UpsertStatus.FAILED)


def resolve_detail(request: MappingRequest, details: IdIndex) -> tuple[Optional[UUID], list[str]]:
    """Detail id for ``request`` plus every lookup key attempted."""
    attempts = [
        ("code", request.detail_code, details.by_code),
        ("key", request.detail_key, details.by_key),
        ("name", detail_name_key(request.category_name, request.detail_name), details.by_name),
    ]
    return _resolve(attempts)


def resolve_location(request: MappingRequest, locations: IdIndex) -> tuple[Optional[UUID], list[str]]:
    """Location id for ``request`` plus every lookup key attempted."""
    attempts: list[tuple[str, Any, dict]] = [
        ("code", request.location_code, locations.by_code),
        ("name", normalize_name(request.location_name), locations.by_name),
    ]
    variants = [
        request.location_code.upper(),
        request.location_code.lower(),
        fallback_location_code(request.location_name),
    ]
    seen = {request.location_code}
    for variant in variants:
        if variant and variant not in seen:
            seen.add(variant)
            attempts.append(("code", variant, locations.by_code))
    return _resolve(attempts)


def _resolve(attempts) -> tuple[Optional[UUID], list[str]]:
    tried: list[str] = []
    for kind, value, index in attempts:
        if not value:
            continue
        label = "/".join(value) if isinstance(value, tuple) else value
        tried.append(f"{kind}={label!r}")
        found = index.get(value)
        if found is not None:
            return found, tried
    return None, tried


class MappingLinker:
    """Links detail categories to locations using ids from the upsert stage."""

    def __init__(
        self,
        store: DataStore,
        observer: ImportObserver | None = None,
        max_concurrency: int = 1,
    ):
        self.store = store
        self.observer = observer or ImportObserver()
        self.executor = UpsertExecutor(store, self.observer, max_concurrency)

    async def link(
        self,
        requests: Iterable[MappingRequest],
        details: IdIndex,
        locations: IdIndex,
    ) -> LinkReport:
        """Resolve and upsert every mapping request.

        A ``(detail_id, location_id)`` pair is submitted at most once per
        call. The pair is claimed before any store call is awaited, so the
        suppression holds with concurrent upserts.
        """
        report = LinkReport()
        claimed: set[str] = set()
        jobs = []

        for request in requests:
            detail_id, detail_tried = resolve_detail(request, details)
            location_id, location_tried = resolve_location(request, locations)

            if detail_id is None or location_id is None:
                report.skipped += 1
                message = self._unresolved_message(
                    request, detail_id, detail_tried, location_id, location_tried
                )
                report.errors.append(message)
                self.observer.mapping_skipped(request.row_number, message)
                continue

            pair = f"{detail_id}::{location_id}"
            if pair in claimed:
                report.duplicates += 1
                continue
            claimed.add(pair)
            jobs.append(self._job(request, detail_id, location_id))

        report.outcomes = await self.executor.run_bounded(jobs)
        for outcome in report.outcomes:
            if outcome.error:
                report.errors.append(outcome.error)
            if outcome.warning:
                report.warnings.append(outcome.warning)
        return report

    def _job(self, request: MappingRequest, detail_id: UUID, location_id: UUID):
        record = {
            "detail_category_id": detail_id,
            "location_id": location_id,
            "quantity": request.quantity,
            "unit_price": request.unit_price,
            "discount_percent": request.discount,
            "is_active": True,
        }
        patch = {
            "quantity": request.quantity,
            "unit_price": request.unit_price,
            "discount_percent": request.discount,
            "is_active": True,
        }
        return lambda: lookup_or_create(
            self.store,
            MAPPINGS,
            {"detail_category_id": detail_id, "location_id": location_id},
            record,
            patch,
            "Mapping",
            f"{request.detail_name} @ {request.location_name}",
        )

    @staticmethod
    def _unresolved_message(
        request: MappingRequest,
        detail_id: Optional[UUID],
        detail_tried: list[str],
        location_id: Optional[UUID],
        location_tried: list[str],
    ) -> str:
        missing = []
        if detail_id is None:
            missing.append(
                f'detail "{request.detail_name}" not found (tried {", ".join(detail_tried)})'
            )
        if location_id is None:
            missing.append(
                f'location "{request.location_name}" not found (tried {", ".join(location_tried)})'
            )
        return f"Row {request.row_number}: mapping skipped - " + "; ".join(missing)

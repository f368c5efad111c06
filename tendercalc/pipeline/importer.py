"""Cost structure import pipeline.

Runs the four stages once, in order: parse, group, upsert entities, link
mappings. Row- and entity-level problems are collected on the result; only
an unexpected exception (a store outage, a bug) aborts the run, and even
then the caller gets an ImportResult with ``success=False`` instead of the
exception.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from typing import Optional

from tendercalc.models import ImportCostRow
from tendercalc.pipeline.executor import MAPPINGS, UpsertExecutor
from tendercalc.pipeline.grouping import DEFAULT_UNIT, group_rows
from tendercalc.pipeline.linker import MappingLinker
from tendercalc.pipeline.observer import ImportObserver, LoggingObserver
from tendercalc.pipeline.parser import parse_rows
from tendercalc.pipeline.types import ImportResult
from tendercalc.store.base import DataStore

ProgressCallback = Callable[[int, str], None]


class CostStructureImporter:
    """Imports a cost structure spreadsheet into a data store."""

    def __init__(
        self,
        store: DataStore,
        observer: ImportObserver | None = None,
        max_concurrency: int = 1,
        default_unit: str = DEFAULT_UNIT,
        replace_mappings: bool = False,
    ):
        """Initialize importer.

        Args:
            store: Target data store
            observer: Pipeline event sink (defaults to logging)
            max_concurrency: Upserts of one entity type allowed in flight
            default_unit: Unit for details whose rows leave it blank
            replace_mappings: Delete all existing mappings before linking
        """
        self.store = store
        self.observer = observer or LoggingObserver()
        self.max_concurrency = max_concurrency
        self.default_unit = default_unit
        self.replace_mappings = replace_mappings

    async def run(
        self,
        rows: Iterable[ImportCostRow],
        on_progress: Optional[ProgressCallback] = None,
    ) -> ImportResult:
        """Run the full import.

        Args:
            rows: Spreadsheet rows in sheet order, header already removed
            on_progress: Called with ``(percent, message)`` at each milestone

        Returns:
            ImportResult with per-entity counts, errors and warnings
        """
        started = time.monotonic()
        result = ImportResult()
        progress = on_progress or (lambda percent, message: None)

        try:
            await self._run(rows, result, progress)
            result.success = True
            progress(100, "Import complete")
        except Exception as e:
            result.success = False
            result.errors.append(f"Import failed: {e}")
            self.observer.failed(f"Import failed: {e}", e)
            progress(100, "Import failed")
        finally:
            result.duration_seconds = time.monotonic() - started

        return result

    async def _run(
        self,
        rows: Iterable[ImportCostRow],
        result: ImportResult,
        progress: ProgressCallback,
    ) -> None:
        parsed = parse_rows(rows)
        grouped = group_rows(parsed, default_unit=self.default_unit)
        for warning in grouped.warnings:
            self.observer.warning(warning)
        result.warnings.extend(grouped.warnings)
        progress(
            10,
            f"Parsed {len(parsed.rows)} rows: {len(grouped.categories)} categories, "
            f"{len(grouped.details)} details, {len(grouped.locations)} locations",
        )

        executor = UpsertExecutor(self.store, self.observer, self.max_concurrency)

        categories = await executor.upsert_categories(grouped.categories)
        result.categories_created = categories.created
        result.categories_updated = categories.updated
        self._collect(result, categories.errors, categories.warnings)
        progress(20, f"Categories: {categories.created} created, {categories.updated} updated")

        details = await executor.upsert_details(grouped.details, categories.ids)
        result.detail_categories_created = details.created
        result.detail_categories_updated = details.updated
        self._collect(result, details.errors, details.warnings)
        progress(40, f"Detail categories: {details.created} created, {details.updated} updated")

        locations = await executor.upsert_locations(grouped.locations)
        result.locations_created = locations.created
        result.locations_updated = locations.updated
        self._collect(result, locations.errors, locations.warnings)
        progress(60, f"Locations: {locations.created} created, {locations.updated} updated")

        if self.replace_mappings:
            result.mappings_removed = await self.store.delete(MAPPINGS, {})
            self.observer.warning(f"Removed {result.mappings_removed} existing mappings")

        linker = MappingLinker(self.store, self.observer, self.max_concurrency)
        report = await linker.link(grouped.mappings, details.ids, locations.ids)
        result.mappings_created = report.created
        result.mappings_updated = report.updated
        result.mappings_skipped = report.skipped
        self._collect(result, report.errors, report.warnings)
        progress(80, f"Mappings: {report.created} created, {report.updated} updated")

    @staticmethod
    def _collect(result: ImportResult, errors: list[str], warnings: list[str]) -> None:
        result.errors.extend(errors)
        result.warnings.extend(warnings)


async def import_cost_structure(
    store: DataStore,
    rows: Iterable[ImportCostRow],
    on_progress: Optional[ProgressCallback] = None,
    **options,
) -> ImportResult:
    """Convenience wrapper: build an importer and run it once."""
    return await CostStructureImporter(store, **options).run(rows, on_progress)

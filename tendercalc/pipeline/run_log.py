"""Audit log of import runs (cost_import_runs table)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from tendercalc.pipeline.types import ImportResult
from tendercalc.store.base import DataStore, Record

logger = logging.getLogger(__name__)

IMPORT_RUNS = "cost_import_runs"


async def record_import_run(
    store: DataStore,
    result: ImportResult,
    source_file: Optional[str],
    started_at: datetime,
    completed_at: Optional[datetime] = None,
) -> Record:
    """Persist the outcome of one import run.

    Args:
        store: Data store
        result: Result returned by CostStructureImporter.run
        source_file: Path or name of the imported spreadsheet
        started_at: When the run began
        completed_at: When it ended (defaults to now)

    Returns:
        The stored run record
    """
    record = {
        "source_file": source_file,
        "started_at": started_at,
        "completed_at": completed_at or datetime.now(timezone.utc),
        "success": result.success,
        "categories_created": result.categories_created,
        "categories_updated": result.categories_updated,
        "detail_categories_created": result.detail_categories_created,
        "detail_categories_updated": result.detail_categories_updated,
        "locations_created": result.locations_created,
        "locations_updated": result.locations_updated,
        "mappings_created": result.mappings_created,
        "mappings_updated": result.mappings_updated,
        "errors": list(result.errors),
        "warnings": list(result.warnings),
    }
    saved = await store.insert(IMPORT_RUNS, record)
    logger.info(f"Recorded import run {saved['id']} ({result.status.value})")
    return saved


async def recent_import_runs(store: DataStore, limit: int = 10) -> list[Record]:
    """Most recent import runs, newest first."""
    runs = await store.select(IMPORT_RUNS, order_by=["-started_at"])
    return runs[:limit]

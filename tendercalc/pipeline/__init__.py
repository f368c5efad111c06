"""Cost structure import pipeline.

Parse -> group -> upsert entities -> link mappings. Each stage is usable on
its own; CostStructureImporter runs them in order against a DataStore.
"""

from tendercalc.pipeline.importer import CostStructureImporter, import_cost_structure
from tendercalc.pipeline.observer import ImportObserver, LoggingObserver, RecordingObserver
from tendercalc.pipeline.types import ImportResult, ImportStatus, UpsertStatus

__all__ = [
    "CostStructureImporter",
    "import_cost_structure",
    "ImportObserver",
    "LoggingObserver",
    "RecordingObserver",
    "ImportResult",
    "ImportStatus",
    "UpsertStatus",
]

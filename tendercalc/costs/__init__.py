"""Cost structure queries and admin operations."""

from tendercalc.costs.service import CostStructureService, mapping_totals

__all__ = ["CostStructureService", "mapping_totals"]

"""Database layer for TenderCalc with async SQLAlchemy."""

from tendercalc.db.connection import close_db, get_session, init_db
from tendercalc.db.models import (
    TABLE_MODELS,
    Base,
    CategoryLocationMappingModel,
    CostCategoryModel,
    CostImportRunModel,
    DetailCostCategoryModel,
    LocationModel,
)

__all__ = [
    "Base",
    "CostCategoryModel",
    "DetailCostCategoryModel",
    "LocationModel",
    "CategoryLocationMappingModel",
    "CostImportRunModel",
    "TABLE_MODELS",
    "get_session",
    "init_db",
    "close_db",
]

"""Type definitions for cost structure import operations."""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID


class ImportStatus(str, Enum):
    """Status of an import operation."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"


class UpsertStatus(str, Enum):
    """Outcome of a single lookup-or-create."""

    CREATED = "created"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass(frozen=True)
class CategoryContext:
    """Category a row belongs to, declared on it or inherited from above."""

    code: str
    name: str
    description: str = ""


@dataclass(frozen=True)
class ParsedRow:
    """Row after category inheritance has been resolved."""

    row_number: int
    category: Optional[CategoryContext]
    declares_category: bool

    detail_code: str = ""
    detail_name: str = ""
    detail_unit: Optional[str] = None
    detail_price: Optional[Decimal] = None

    location_code: str = ""
    location_name: str = ""

    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    discount: Optional[Decimal] = None

    warnings: tuple[str, ...] = ()

    @property
    def has_detail(self) -> bool:
        return bool(self.detail_code or self.detail_name)

    @property
    def has_location(self) -> bool:
        return bool(self.location_name)

    @property
    def is_orphan_detail(self) -> bool:
        return self.has_detail and self.category is None

    @property
    def is_valid(self) -> bool:
        return not self.warnings


@dataclass
class CategoryDraft:
    code: str
    name: str
    description: Optional[str]
    sort_order: int

    def to_record(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "sort_order": self.sort_order,
            "is_active": True,
        }


@dataclass
class DetailDraft:
    category_name: str
    category_code: str
    code: str
    name: str
    unit: str
    base_price: Optional[Decimal]
    sort_order: int
    row_number: int

    @property
    def key(self) -> tuple[str, str]:
        return (self.category_name, self.name)

    def to_record(self, category_id: UUID) -> dict[str, Any]:
        return {
            "category_id": category_id,
            "code": self.code,
            "name": self.name,
            "unit": self.unit,
            "base_price": self.base_price or Decimal("0"),
            "sort_order": self.sort_order,
            "is_active": True,
        }


@dataclass
class LocationDraft:
    code: str
    name: str
    sort_order: int
    level: int = 0

    def to_record(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "parent_id": None,
            "level": self.level,
            "sort_order": self.sort_order,
            "is_active": True,
        }


@dataclass
class MappingRequest:
    """A (detail, location) link requested by one spreadsheet row."""

    row_number: int
    category_name: str
    detail_code: str
    detail_name: str
    location_code: str
    location_name: str
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal

    @property
    def detail_key(self) -> tuple[str, str]:
        return (self.category_name, self.detail_name)


@dataclass
class GroupedImport:
    """Deduplicated entities and mapping requests for one import run."""

    categories: dict[str, CategoryDraft] = field(default_factory=dict)
    details: dict[tuple[str, str], DetailDraft] = field(default_factory=dict)
    locations: dict[str, LocationDraft] = field(default_factory=dict)
    mappings: list[MappingRequest] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class UpsertOutcome:
    """Tagged result of one lookup-or-create."""

    entity: str
    label: str
    status: UpsertStatus
    id: Optional[UUID] = None
    record: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    warning: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is not UpsertStatus.FAILED


@dataclass
class IdIndex:
    """Natural key, code and normalized-name lookups to store ids."""

    by_key: dict[Hashable, UUID] = field(default_factory=dict)
    by_code: dict[str, UUID] = field(default_factory=dict)
    by_name: dict[Hashable, UUID] = field(default_factory=dict)

    def register(self, key: Hashable, code: str, normalized_name: Hashable, id: UUID) -> None:
        self.by_key[key] = id
        if code:
            self.by_code[code] = id
        # First registration wins for ambiguous names
        self.by_name.setdefault(normalized_name, id)

    def __len__(self) -> int:
        return len(self.by_key)


@dataclass
class EntityBatch:
    """Outcomes of one stage plus the ids it resolved."""

    entity: str
    outcomes: list[UpsertOutcome] = field(default_factory=list)
    ids: IdIndex = field(default_factory=IdIndex)

    def count(self, status: UpsertStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def created(self) -> int:
        return self.count(UpsertStatus.CREATED)

    @property
    def updated(self) -> int:
        return self.count(UpsertStatus.UPDATED)

    @property
    def failed(self) -> int:
        return self.count(UpsertStatus.FAILED)

    @property
    def errors(self) -> list[str]:
        return [o.error for o in self.outcomes if o.error]

    @property
    def warnings(self) -> list[str]:
        return [o.warning for o in self.outcomes if o.warning]


@dataclass
class ImportResult:
    """Result of a cost structure import run."""

    success: bool = False
    categories_created: int = 0
    categories_updated: int = 0
    detail_categories_created: int = 0
    detail_categories_updated: int = 0
    locations_created: int = 0
    locations_updated: int = 0
    mappings_created: int = 0
    mappings_updated: int = 0
    mappings_skipped: int = 0
    mappings_removed: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def status(self) -> ImportStatus:
        if not self.success:
            return ImportStatus.FAILED
        if self.errors:
            return ImportStatus.PARTIAL_SUCCESS
        return ImportStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        """Summary in the shape the tendering UI consumes."""
        return {
            "success": self.success,
            "categoriesCreated": self.categories_created,
            "detailCategoriesCreated": self.detail_categories_created,
            "locationsCreated": self.locations_created,
            "mappingsCreated": self.mappings_created,
            "errors": list(self.errors),
        }

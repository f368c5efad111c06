"""Cost structure read and admin operations."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from tendercalc.store.base import DataStore, Record, RecordNotFoundError

logger = logging.getLogger(__name__)

CATEGORIES = "cost_categories"
DETAILS = "detail_cost_categories"
LOCATIONS = "location"
MAPPINGS = "category_location_mapping"

_ORDER = ["sort_order", "name"]


def mapping_totals(mapping: Mapping[str, Any]) -> dict[str, Decimal]:
    """Total and discounted price of a mapping row.

    total_price = quantity * unit_price
    final_price = total_price * (1 - discount_percent / 100)
    """
    quantity = Decimal(str(mapping.get("quantity") or 0))
    unit_price = Decimal(str(mapping.get("unit_price") or 0))
    discount = Decimal(str(mapping.get("discount_percent") or 0))

    total = quantity * unit_price
    final = total * (1 - discount / 100)
    return {"total_price": total, "final_price": final}


class CostStructureService:
    """Queries and edits over categories, details, locations and mappings."""

    def __init__(self, store: DataStore):
        self.store = store

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_cost_categories(self, include_inactive: bool = False) -> list[Record]:
        return await self.store.select(CATEGORIES, _active(include_inactive), order_by=_ORDER)

    async def get_detail_cost_categories(
        self,
        category_id: Optional[UUID] = None,
        include_inactive: bool = False,
    ) -> list[Record]:
        filters = _active(include_inactive)
        if category_id is not None:
            filters["category_id"] = category_id
        return await self.store.select(DETAILS, filters, order_by=_ORDER)

    async def get_locations(
        self,
        parent_id: Optional[UUID] = None,
        include_inactive: bool = False,
    ) -> list[Record]:
        """Children of ``parent_id``; root locations when it is None."""
        filters = _active(include_inactive)
        filters["parent_id"] = parent_id
        return await self.store.select(LOCATIONS, filters, order_by=_ORDER)

    async def get_all_locations(self, include_inactive: bool = False) -> list[Record]:
        return await self.store.select(
            LOCATIONS, _active(include_inactive), order_by=["level", "sort_order", "name"]
        )

    async def get_location_hierarchy(self, location_id: UUID) -> list[Record]:
        """Chain of locations from the root down to ``location_id``.

        Raises:
            RecordNotFoundError: If the location doesn't exist
        """
        chain: list[Record] = []
        seen: set[UUID] = set()
        current: Optional[UUID] = location_id

        while current is not None and current not in seen:
            seen.add(current)
            rows = await self.store.select(LOCATIONS, {"id": current})
            if not rows:
                if not chain:
                    raise RecordNotFoundError(f"Location {location_id} not found", table=LOCATIONS)
                logger.warning(f"Location {chain[0]['id']} has a dangling parent {current}")
                break
            chain.insert(0, rows[0])
            current = rows[0].get("parent_id")

        return chain

    async def get_category_location_mappings(
        self,
        detail_category_id: Optional[UUID] = None,
        location_id: Optional[UUID] = None,
        include_inactive: bool = False,
    ) -> list[Record]:
        filters = _active(include_inactive)
        if detail_category_id is not None:
            filters["detail_category_id"] = detail_category_id
        if location_id is not None:
            filters["location_id"] = location_id
        mappings = await self.store.select(MAPPINGS, filters, order_by=["created_at"])
        return [{**m, **mapping_totals(m)} for m in mappings]

    async def get_locations_for_detail_category(self, detail_category_id: UUID) -> list[Record]:
        """Active locations linked to a detail category, by sort order."""
        mappings = await self.store.select(
            MAPPINGS, {"detail_category_id": detail_category_id, "is_active": True}
        )
        location_ids = [m["location_id"] for m in mappings]
        if not location_ids:
            return []
        return await self.store.select(
            LOCATIONS, {"id": location_ids, "is_active": True}, order_by=["sort_order", "name"]
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_cost_category(
        self,
        code: str,
        name: str,
        description: Optional[str] = None,
        sort_order: int = 0,
    ) -> Record:
        return await self.store.insert(
            CATEGORIES,
            {
                "code": code,
                "name": name,
                "description": description,
                "sort_order": sort_order,
                "is_active": True,
            },
        )

    async def create_detail_cost_category(
        self,
        category_id: UUID,
        code: str,
        name: str,
        unit: str = "шт",
        base_price: Decimal = Decimal("0"),
        description: Optional[str] = None,
        sort_order: int = 0,
    ) -> Record:
        if base_price < 0:
            raise ValueError(f"base_price must be >= 0, got {base_price}")
        return await self.store.insert(
            DETAILS,
            {
                "category_id": category_id,
                "code": code,
                "name": name,
                "description": description,
                "unit": unit,
                "base_price": base_price,
                "sort_order": sort_order,
                "is_active": True,
            },
        )

    async def create_location(
        self,
        code: str,
        name: str,
        parent_id: Optional[UUID] = None,
        description: Optional[str] = None,
        sort_order: int = 0,
    ) -> Record:
        """Create a location; its level is one below its parent."""
        level = 0
        if parent_id is not None:
            parents = await self.store.select(LOCATIONS, {"id": parent_id})
            if not parents:
                raise RecordNotFoundError(f"Parent location {parent_id} not found", table=LOCATIONS)
            level = (parents[0].get("level") or 0) + 1

        return await self.store.insert(
            LOCATIONS,
            {
                "code": code,
                "name": name,
                "description": description,
                "parent_id": parent_id,
                "level": level,
                "sort_order": sort_order,
                "is_active": True,
            },
        )

    async def create_category_location_mapping(
        self,
        detail_category_id: UUID,
        location_id: UUID,
        quantity: Decimal = Decimal("1"),
        unit_price: Decimal = Decimal("0"),
        discount_percent: Decimal = Decimal("0"),
        notes: Optional[str] = None,
    ) -> Record:
        if not 0 <= discount_percent <= 100:
            raise ValueError(f"discount_percent must be between 0 and 100, got {discount_percent}")
        return await self.store.insert(
            MAPPINGS,
            {
                "detail_category_id": detail_category_id,
                "location_id": location_id,
                "quantity": quantity,
                "unit_price": unit_price,
                "discount_percent": discount_percent,
                "notes": notes,
                "is_active": True,
            },
        )

    async def bulk_create_cost_categories(self, records: Iterable[Mapping[str, Any]]) -> list[Record]:
        return await self._bulk(CATEGORIES, records, ["code"])

    async def bulk_create_detail_cost_categories(
        self, records: Iterable[Mapping[str, Any]]
    ) -> list[Record]:
        return await self._bulk(DETAILS, records, ["code"])

    async def bulk_create_locations(self, records: Iterable[Mapping[str, Any]]) -> list[Record]:
        return await self._bulk(LOCATIONS, records, ["code"])

    async def bulk_create_category_location_mappings(
        self, records: Iterable[Mapping[str, Any]]
    ) -> list[Record]:
        return await self._bulk(MAPPINGS, records, ["detail_category_id", "location_id"])

    async def delete_cost_category(self, category_id: UUID) -> int:
        """Delete a category with its detail categories and their mappings."""
        details = await self.store.select(DETAILS, {"category_id": category_id})
        detail_ids = [d["id"] for d in details]
        if detail_ids:
            await self.store.delete(MAPPINGS, {"detail_category_id": detail_ids})
            await self.store.delete(DETAILS, {"id": detail_ids})
        deleted = await self.store.delete(CATEGORIES, {"id": category_id})
        logger.info(f"Deleted category {category_id} with {len(detail_ids)} detail categories")
        return deleted

    async def delete_location(self, location_id: UUID) -> int:
        """Delete a location and its mappings; children become roots."""
        await self.store.delete(MAPPINGS, {"location_id": location_id})
        for child in await self.store.select(LOCATIONS, {"parent_id": location_id}):
            await self.store.update(LOCATIONS, child["id"], {"parent_id": None, "level": 0})
        return await self.store.delete(LOCATIONS, {"id": location_id})

    async def _bulk(
        self, table: str, records: Iterable[Mapping[str, Any]], conflict_keys: list[str]
    ) -> list[Record]:
        prepared = [{"is_active": True, **record} for record in records]
        if not prepared:
            return []
        saved = await self.store.upsert(table, prepared, conflict_keys)
        logger.info(f"Upserted {len(saved)} rows into {table}")
        return saved


def _active(include_inactive: bool) -> dict[str, Any]:
    return {} if include_inactive else {"is_active": True}

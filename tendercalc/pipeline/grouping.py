"""Group parsed rows into deduplicated entity drafts and mapping requests.

Conflict rule: the first row to mention an entity fixes its position
(sort order) and its generated code; later rows that restate the entity
overwrite its attribute values, matching what the upsert stage does to
records already in the store. Blank cells never overwrite.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from tendercalc.models import ImportCostRow
from tendercalc.pipeline.parser import ParseOutcome, code_from_name, parse_rows
from tendercalc.pipeline.types import (
    CategoryDraft,
    DetailDraft,
    GroupedImport,
    LocationDraft,
    MappingRequest,
    ParsedRow,
)

DEFAULT_UNIT = "шт"
LOCATION_SORT_STEP = 10


def normalize_name(name: str) -> str:
    """Case-insensitive, trimmed form used for name lookups."""
    return " ".join(name.split()).casefold()


def detail_name_key(category_name: str, name: str) -> tuple[str, str]:
    """Name lookup key for a detail, scoped to its category."""
    return (normalize_name(category_name), normalize_name(name))


def fallback_detail_code(category_code: str, row_number: int) -> str:
    return f"{category_code}.{row_number:03d}"


def fallback_location_code(name: str) -> str:
    return code_from_name(name)


def group_rows(
    rows: Iterable[ImportCostRow] | ParseOutcome,
    default_unit: str = DEFAULT_UNIT,
) -> GroupedImport:
    """Collapse rows into category/detail/location drafts plus mapping requests.

    Args:
        rows: Raw rows, or the outcome of ``parse_rows`` if already parsed
        default_unit: Unit for details whose rows leave it blank

    Returns:
        GroupedImport with parser warnings attached
    """
    outcome = rows if isinstance(rows, ParseOutcome) else parse_rows(rows)
    grouped = GroupedImport(warnings=list(outcome.warnings))

    for row in outcome.rows:
        if row.category is not None and row.declares_category:
            _merge_category(grouped, row)

        detail = None
        if row.has_detail and row.category is not None:
            detail = _merge_detail(grouped, row, default_unit)

        location = None
        if row.has_location:
            location = _merge_location(grouped, row)

        if detail is not None and location is not None:
            grouped.mappings.append(_mapping_request(row, detail, location))

    return grouped


def _merge_category(grouped: GroupedImport, row: ParsedRow) -> CategoryDraft:
    context = row.category
    draft = grouped.categories.get(context.name)
    if draft is None:
        draft = CategoryDraft(
            code=context.code,
            name=context.name,
            description=context.description or None,
            sort_order=len(grouped.categories),
        )
        grouped.categories[context.name] = draft
    elif context.description:
        draft.description = context.description
    return draft


def _merge_detail(grouped: GroupedImport, row: ParsedRow, default_unit: str) -> DetailDraft:
    context = row.category
    name = row.detail_name or row.detail_code
    key = (context.name, name)

    draft = grouped.details.get(key)
    if draft is None:
        draft = DetailDraft(
            category_name=context.name,
            category_code=context.code,
            code=row.detail_code or fallback_detail_code(context.code, row.row_number),
            name=name,
            unit=row.detail_unit or default_unit,
            base_price=row.detail_price,
            sort_order=len(grouped.details),
            row_number=row.row_number,
        )
        grouped.details[key] = draft
    else:
        if row.detail_unit:
            draft.unit = row.detail_unit
        if row.detail_price is not None:
            draft.base_price = row.detail_price
    return draft


def _merge_location(grouped: GroupedImport, row: ParsedRow) -> LocationDraft:
    key = normalize_name(row.location_name)
    draft = grouped.locations.get(key)
    if draft is None:
        draft = LocationDraft(
            code=row.location_code or fallback_location_code(row.location_name),
            name=row.location_name,
            sort_order=len(grouped.locations) * LOCATION_SORT_STEP,
        )
        grouped.locations[key] = draft
    return draft


def _mapping_request(row: ParsedRow, detail: DetailDraft, location: LocationDraft) -> MappingRequest:
    return MappingRequest(
        row_number=row.row_number,
        category_name=detail.category_name,
        detail_code=detail.code,
        detail_name=detail.name,
        location_code=location.code,
        location_name=location.name,
        quantity=row.quantity if row.quantity is not None else Decimal("1"),
        unit_price=_first_amount(row.unit_price, row.detail_price),
        discount=row.discount if row.discount is not None else Decimal("0"),
    )


def _first_amount(*amounts: Decimal | None) -> Decimal:
    for amount in amounts:
        if amount is not None:
            return amount
    return Decimal("0")

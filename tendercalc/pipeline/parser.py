"""Row parser for the cost structure spreadsheet.

The template writes a category once, on its first row; the detail rows
below it leave the category columns blank. Parsing threads that "current
category" through an explicit ParserState instead of a mutable variable,
so ``parse_step`` is a pure function and ``parse_rows`` is a fold over it.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from tendercalc.models import ImportCostRow
from tendercalc.pipeline.types import CategoryContext, ParsedRow

_WHITESPACE = re.compile(r"\s+")


def code_from_name(name: str) -> str:
    """Deterministic code for an entity that has a name but no code."""
    return _WHITESPACE.sub("_", name.strip().upper())


@dataclass(frozen=True)
class ParserState:
    """Accumulator carried from one row to the next."""

    category: CategoryContext | None = None


@dataclass
class ParseOutcome:
    rows: list[ParsedRow]
    warnings: list[str]


def _declared_category(row: ImportCostRow, current: CategoryContext | None) -> CategoryContext | None:
    """Category declared on ``row``, completing a half-filled declaration."""
    if not row.has_category:
        return None

    code, name = row.category_code, row.category_name
    if code and name:
        return CategoryContext(code=code, name=name, description=row.category_description)

    # Only one of code/name given: continue the current category if it matches
    if current is not None and (code == current.code or name == current.name):
        return current
    if code:
        return CategoryContext(code=code, name=code, description=row.category_description)
    return CategoryContext(
        code=code_from_name(name), name=name, description=row.category_description
    )


def parse_step(state: ParserState, row: ImportCostRow) -> tuple[ParserState, ParsedRow]:
    """Parse one row given the state left by the rows above it."""
    warnings: list[str] = []

    declared = _declared_category(row, state.category)
    category = declared or state.category
    detail_label = row.detail_name or row.detail_code

    if row.is_blank:
        warnings.append(f"Row {row.row_number}: empty row")
    if row.has_detail and category is None:
        warnings.append(
            f'Row {row.row_number}: detail "{detail_label}" has no category - skipped'
        )
    if row.has_location and not row.has_detail:
        warnings.append(
            f'Row {row.row_number}: location "{row.location_name}" has no detail - '
            "no mapping created"
        )

    parsed = ParsedRow(
        row_number=row.row_number,
        category=category,
        declares_category=declared is not None,
        detail_code=row.detail_code,
        detail_name=row.detail_name,
        detail_unit=row.detail_unit,
        detail_price=row.detail_price,
        location_code=row.location_code,
        location_name=row.location_name,
        quantity=row.quantity,
        unit_price=row.unit_price,
        discount=row.discount,
        warnings=tuple(warnings),
    )
    return ParserState(category=category), parsed


def parse_rows(rows: Iterable[ImportCostRow]) -> ParseOutcome:
    """Fold ``parse_step`` over the rows in spreadsheet order."""
    state = ParserState()
    parsed: list[ParsedRow] = []
    warnings: list[str] = []

    for row in rows:
        state, parsed_row = parse_step(state, row)
        parsed.append(parsed_row)
        warnings.extend(parsed_row.warnings)

    return ParseOutcome(rows=parsed, warnings=warnings)


def preview_rows(rows: Iterable[ImportCostRow]) -> list[ParsedRow]:
    """Parsed rows with per-row warnings, without touching any store."""
    return parse_rows(rows).rows

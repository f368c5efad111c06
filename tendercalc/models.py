"""TenderCalc Pydantic models for type-safe spreadsheet rows."""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_TEXT_FIELDS = (
    "category_code",
    "category_name",
    "category_description",
    "detail_code",
    "detail_name",
    "location_code",
    "location_name",
)


def coerce_text(value: Any) -> str:
    """Spreadsheet cell -> trimmed string ("" for blanks and NaN)."""
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def coerce_amount(value: Any) -> Decimal | None:
    """Spreadsheet cell -> Decimal, None for blank, zero or unparseable cells."""
    text = coerce_text(value).replace("\u00a0", "").replace(" ", "")
    if "," in text and "." in text:
        # The rightmost separator is the decimal point, the other groups thousands
        thousands = "," if text.rfind(",") < text.rfind(".") else "."
        text = text.replace(thousands, "")
    text = text.replace(",", ".")
    if not text:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount == 0:
        return None
    return amount


class ImportCostRow(BaseModel):
    """One spreadsheet row of the cost structure template.

    Column order: category code, category name, category description,
    detail code, detail name, location name, location code, quantity,
    unit price, unit.
    """

    model_config = ConfigDict(frozen=True)

    row_number: int = Field(..., ge=1)

    category_code: str = ""
    category_name: str = ""
    category_description: str = ""

    detail_code: str = ""
    detail_name: str = ""
    detail_unit: str | None = None
    detail_price: Decimal | None = None

    location_code: str = ""
    location_name: str = ""

    quantity: Decimal | None = None
    unit_price: Decimal | None = None
    discount: Decimal | None = None

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _strip_text(cls, v: Any) -> str:
        return coerce_text(v)

    @field_validator("detail_unit", mode="before")
    @classmethod
    def _strip_unit(cls, v: Any) -> str | None:
        return coerce_text(v) or None

    @field_validator("detail_price", "quantity", "unit_price", "discount", mode="before")
    @classmethod
    def _parse_amount(cls, v: Any) -> Decimal | None:
        if isinstance(v, Decimal):
            return v if v.is_finite() and v != 0 else None
        return coerce_amount(v)

    @property
    def has_category(self) -> bool:
        return bool(self.category_code or self.category_name)

    @property
    def has_detail(self) -> bool:
        return bool(self.detail_code or self.detail_name)

    @property
    def has_location(self) -> bool:
        return bool(self.location_name)

    @property
    def is_blank(self) -> bool:
        return not (self.has_category or self.has_detail or self.has_location)

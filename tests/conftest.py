"""Pytest configuration and fixtures for TenderCalc tests.

Provides common fixtures for testing.
"""

from __future__ import annotations

import pytest

from tendercalc.config import reset_config
from tendercalc.models import ImportCostRow
from tendercalc.store import InMemoryStore


def _make_row(
    row_number: int,
    cat_code: str = "",
    cat_name: str = "",
    detail: str = "",
    location: str = "",
    **fields,
) -> ImportCostRow:
    """Build a spreadsheet row with the commonly used columns by keyword."""
    return ImportCostRow(
        row_number=row_number,
        category_code=cat_code,
        category_name=cat_name,
        detail_name=detail,
        location_name=location,
        **fields,
    )


@pytest.fixture
def make_row():
    """Row factory: make_row(2, cat_code="001", cat_name="A", detail="d1", location="L1")."""
    return _make_row


@pytest.fixture
def store() -> InMemoryStore:
    """Empty in-memory data store."""
    return InMemoryStore()


@pytest.fixture
def site_rows() -> list[ImportCostRow]:
    """Two details of one category, both placed on the same location."""
    return [
        _make_row(
            2,
            cat_code="001",
            cat_name="Organizational",
            detail="Site office",
            location="Street",
            detail_unit="mo",
            detail_price="150000",
            unit_price="150000",
        ),
        _make_row(
            3,
            detail="Temp buildings",
            location="Street",
            detail_unit="m2",
            detail_price="5000",
            unit_price="5000",
        ),
    ]


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    reset_config()
    yield
    reset_config()

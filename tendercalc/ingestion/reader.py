"""Cost structure spreadsheet reader.

Reads CSV/XLSX exports of the cost structure template into ImportCostRow
models. Columns are positional; the first row is a header and is skipped.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import pandas as pd

from tendercalc.models import ImportCostRow

MAX_FILE_SIZE_MB = 50
MAX_ROWS = 50000

# Positional layout of the template. Column 8 holds the price, which is
# both the detail's base price and the mapping's unit price.
COLUMNS = (
    "category_code",
    "category_name",
    "category_description",
    "detail_code",
    "detail_name",
    "location_name",
    "location_code",
    "quantity",
    "price",
    "unit",
)


def read_cost_rows(
    file_path: Union[str, Path],
    sheet_name: Optional[Union[str, int]] = None,
    max_file_size_mb: float = MAX_FILE_SIZE_MB,
    max_rows: int = MAX_ROWS,
) -> list[ImportCostRow]:
    """Read a cost structure spreadsheet.

    Args:
        file_path: Path to CSV, XLSX or XLS file
        sheet_name: Excel sheet name or index (first sheet by default)
        max_file_size_mb: Reject larger files
        max_rows: Reject files with more data rows

    Returns:
        Non-blank rows in sheet order, numbered as in the spreadsheet

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the file is too large, too long or not a spreadsheet
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Cost structure file not found: {file_path}")

    file_size_mb = file_path.stat().st_size / (1024 * 1024)
    if file_size_mb > max_file_size_mb:
        raise ValueError(
            f"File too large ({file_size_mb:.1f}MB). Maximum allowed: {max_file_size_mb}MB"
        )

    suffix = file_path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(file_path, header=None, dtype=object, skip_blank_lines=False)
    elif suffix in (".xlsx", ".xls"):
        df = pd.read_excel(
            file_path, sheet_name=sheet_name or 0, header=None, dtype=object
        )
    else:
        raise ValueError(f"Unsupported file format: {file_path.suffix}. Use CSV or XLSX.")

    # Header row
    df = df.iloc[1:]
    if len(df) > max_rows:
        raise ValueError(f"Too many rows ({len(df):,}). Maximum allowed: {max_rows:,}")

    rows = []
    for position, values in enumerate(df.itertuples(index=False, name=None)):
        row = row_from_cells(values, row_number=position + 2)
        if not row.is_blank:
            rows.append(row)
    return rows


def row_from_cells(cells, row_number: int) -> ImportCostRow:
    """Build a row model from positional cells, padding short rows."""
    padded = list(cells)[: len(COLUMNS)]
    padded += [None] * (len(COLUMNS) - len(padded))
    values = dict(zip(COLUMNS, padded))
    price = values.pop("price")
    values = {k: (None if _is_missing(v) else v) for k, v in values.items()}

    return ImportCostRow(
        row_number=row_number,
        category_code=values["category_code"],
        category_name=values["category_name"],
        category_description=values["category_description"],
        detail_code=values["detail_code"],
        detail_name=values["detail_name"],
        detail_unit=values["unit"],
        detail_price=None if _is_missing(price) else price,
        location_code=values["location_code"],
        location_name=values["location_name"],
        quantity=values["quantity"],
        unit_price=None if _is_missing(price) else price,
    )


def _is_missing(value) -> bool:
    return value is None or (not isinstance(value, str) and pd.isna(value))

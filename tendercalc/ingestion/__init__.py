"""Spreadsheet ingestion for TenderCalc."""

from tendercalc.ingestion.reader import read_cost_rows

__all__ = ["read_cost_rows"]

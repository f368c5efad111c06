"""TenderCalc - cost structure import and BOQ reference data for tendering."""

__version__ = "0.1.0"

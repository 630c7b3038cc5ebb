"""Spreadsheet ingestion."""

from outreach.ingest.spreadsheet import SpreadsheetImport, pick_sheet, read_customers

__all__ = ["SpreadsheetImport", "pick_sheet", "read_customers"]

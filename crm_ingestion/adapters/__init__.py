"""Spreadsheet readers (parse only, no mapping)."""

from crm_ingestion.adapters.base import SheetData, SpreadsheetReader, WorkbookProbe
from crm_ingestion.adapters.workbook import WorkbookReader, detect_format, read_workbook
from crm_ingestion.adapters.xls_adapter import XlsWorkbookReader
from crm_ingestion.adapters.xlsx_adapter import XlsxWorkbookReader

__all__ = [
    "SheetData",
    "SpreadsheetReader",
    "WorkbookProbe",
    "WorkbookReader",
    "XlsWorkbookReader",
    "XlsxWorkbookReader",
    "detect_format",
    "read_workbook",
]

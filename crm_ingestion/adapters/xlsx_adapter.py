"""
XLSX reader for CRM spreadsheet exports (Office Open XML, via openpyxl).

Uses the first worksheet unless a sheet name/index is given in options.
The first row is the header; every following non-blank row is a record.
Date-formatted cells arrive as ``datetime`` (openpyxl ``data_only`` mode).
"""

from __future__ import annotations

import zlib
from io import BytesIO
from typing import Any
from xml.etree.ElementTree import ParseError as XMLParseError
from zipfile import BadZipFile

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from crm_ingestion.adapters.base import SheetData, build_headers, is_blank_row, rows_to_records
from crm_ingestion.exceptions import ParseError
from crm_ingestion.logging_config import get_logger

logger = get_logger("adapters.xlsx")

# Sheet XML is parsed lazily while rows are iterated in read-only mode.
_SHEET_READ_ERRORS = (XMLParseError, BadZipFile, zlib.error, EOFError, KeyError, ValueError)


class XlsxWorkbookReader:
    """Read .xlsx bytes as one dict per data row of the selected sheet.

    options:
      sheet: 0-based sheet index (int) or sheet name (str). Default: first sheet.
      max_rows: safety cap on rows read. Default: 1,000,000.
    """

    format = "xlsx"

    def read(self, data: bytes, options: dict[str, Any]) -> SheetData:
        try:
            wb = openpyxl.load_workbook(BytesIO(data), read_only=True, data_only=True)
        except (BadZipFile, InvalidFileException, XMLParseError, zlib.error, KeyError, ValueError, OSError) as exc:
            raise ParseError(f"not a readable xlsx workbook ({exc})") from exc

        try:
            sheet = self._get_sheet(wb, options)
            max_rows = int(options.get("max_rows", 1_000_000))
            rows = [
                list(r)
                for r in sheet.iter_rows(min_row=1, max_row=max_rows, values_only=True)
            ]
            sheet_name = sheet.title
        except _SHEET_READ_ERRORS as exc:
            raise ParseError(f"worksheet data is corrupt or truncated ({exc})") from exc
        finally:
            wb.close()

        # Drop trailing blank rows so "no rows" means no content at all
        while rows and is_blank_row(rows[-1]):
            rows.pop()
        if not rows:
            raise ParseError(f"worksheet {sheet_name!r} has no rows")

        headers = build_headers(rows[0])
        if not headers:
            raise ParseError(f"worksheet {sheet_name!r} has an empty header row")

        records = rows_to_records(headers, rows[1:])
        logger.debug(
            "xlsx_sheet_read",
            extra={"sheet_name": sheet_name, "columns": len(headers), "records": len(records)},
        )
        return SheetData(sheet_name=sheet_name, headers=tuple(headers), records=tuple(records))

    def _get_sheet(self, wb: Any, options: dict[str, Any]) -> Any:
        sheet_ref = options.get("sheet")
        if not wb.worksheets:
            raise ParseError("workbook contains no worksheets")
        if sheet_ref is None:
            return wb.worksheets[0]
        if isinstance(sheet_ref, int):
            if not 0 <= sheet_ref < len(wb.worksheets):
                raise ParseError(f"sheet index {sheet_ref} out of range")
            return wb.worksheets[sheet_ref]
        if sheet_ref not in wb.sheetnames:
            raise ParseError(f"sheet {sheet_ref!r} not found in workbook")
        return wb[sheet_ref]

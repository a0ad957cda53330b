"""
Legacy XLS reader (BIFF / OLE2 compound document, via xlrd).

Same contract as the xlsx reader. xlrd reports dates as floats tagged
XL_CELL_DATE; they are converted with the workbook's datemode so values
match what the xlsx reader yields for the same export.
"""

from __future__ import annotations

import struct
from typing import Any

import xlrd
from xlrd.compdoc import CompDocError

from crm_ingestion.adapters.base import SheetData, build_headers, is_blank_row, rows_to_records
from crm_ingestion.exceptions import ParseError
from crm_ingestion.logging_config import get_logger

logger = get_logger("adapters.xls")

# With on_demand=True sheets are parsed when first requested.
_SHEET_READ_ERRORS = (xlrd.XLRDError, CompDocError, struct.error, AssertionError, EOFError, ValueError)


def _xls_cell(book: Any, cell: Any) -> Any:
    ctype = cell.ctype
    if ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
        return None
    if ctype == xlrd.XL_CELL_DATE:
        try:
            return xlrd.xldate_as_datetime(cell.value, book.datemode)
        except (ValueError, OverflowError):
            return cell.value
    if ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    return cell.value


class XlsWorkbookReader:
    """Read .xls bytes as one dict per data row of the selected sheet."""

    format = "xls"

    def read(self, data: bytes, options: dict[str, Any]) -> SheetData:
        try:
            book = xlrd.open_workbook(file_contents=data, on_demand=True)
        except (xlrd.XLRDError, CompDocError, struct.error, AssertionError, ValueError, IndexError, EOFError) as exc:
            raise ParseError(f"not a readable xls workbook ({exc})") from exc

        try:
            sheet = self._get_sheet(book, options)
            rows = [
                [_xls_cell(book, c) for c in sheet.row(r)]
                for r in range(sheet.nrows)
            ]
            sheet_name = sheet.name
        except _SHEET_READ_ERRORS as exc:
            raise ParseError(f"worksheet data is corrupt or truncated ({exc})") from exc
        finally:
            book.release_resources()

        while rows and is_blank_row(rows[-1]):
            rows.pop()
        if not rows:
            raise ParseError(f"worksheet {sheet_name!r} has no rows")

        headers = build_headers(rows[0])
        if not headers:
            raise ParseError(f"worksheet {sheet_name!r} has an empty header row")

        records = rows_to_records(headers, rows[1:])
        logger.debug(
            "xls_sheet_read",
            extra={"sheet_name": sheet_name, "columns": len(headers), "records": len(records)},
        )
        return SheetData(sheet_name=sheet_name, headers=tuple(headers), records=tuple(records))

    def _get_sheet(self, book: Any, options: dict[str, Any]) -> Any:
        sheet_ref = options.get("sheet")
        if book.nsheets == 0:
            raise ParseError("workbook contains no worksheets")
        try:
            if sheet_ref is None:
                return book.sheet_by_index(0)
            if isinstance(sheet_ref, int):
                if not 0 <= sheet_ref < book.nsheets:
                    raise ParseError(f"sheet index {sheet_ref} out of range")
                return book.sheet_by_index(sheet_ref)
            return book.sheet_by_name(sheet_ref)
        except (xlrd.XLRDError, IndexError) as exc:
            raise ParseError(f"sheet {sheet_ref!r} not found in workbook") from exc

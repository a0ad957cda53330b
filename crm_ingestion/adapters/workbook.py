"""
Workbook container sniffing and dispatch.

The transformation core only sees ``SpreadsheetReader``; this module picks
the concrete reader from the buffer's magic bytes, so a mislabelled upload
("export.xls" that is really xlsx) still reads correctly.
"""

from __future__ import annotations

from typing import Any

from crm_ingestion.adapters.base import SheetData, SpreadsheetReader, WorkbookProbe
from crm_ingestion.adapters.xls_adapter import XlsWorkbookReader
from crm_ingestion.adapters.xlsx_adapter import XlsxWorkbookReader
from crm_ingestion.exceptions import ParseError

_ZIP_MAGIC = b"PK\x03\x04"
_OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


def detect_format(data: bytes) -> str | None:
    """Return ``"xlsx"``, ``"xls"``, or None for an unrecognized container."""
    if data.startswith(_ZIP_MAGIC):
        return "xlsx"
    if data.startswith(_OLE2_MAGIC):
        return "xls"
    return None


def _default_readers() -> dict[str, SpreadsheetReader]:
    return {
        "xlsx": XlsxWorkbookReader(),
        "xls": XlsWorkbookReader(),
    }


class WorkbookReader:
    """SpreadsheetReader that dispatches on container type."""

    def __init__(self, readers: dict[str, SpreadsheetReader] | None = None):
        self._readers = readers if readers is not None else _default_readers()

    def read(self, data: bytes, options: dict[str, Any]) -> SheetData:
        _fmt, reader, buf = self._reader_for(data)
        return reader.read(buf, options)

    def probe(self, data: bytes, options: dict[str, Any]) -> WorkbookProbe:
        fmt, reader, buf = self._reader_for(data)
        return WorkbookProbe.from_sheet(fmt, reader.read(buf, options))

    def _reader_for(self, data: bytes) -> tuple[str, SpreadsheetReader, bytes]:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise ParseError(f"expected workbook bytes, got {type(data).__name__}")
        data = bytes(data)
        if not data:
            raise ParseError("workbook buffer is empty")
        fmt = detect_format(data)
        if fmt is None or fmt not in self._readers:
            raise ParseError("not a recognized spreadsheet container (expected xlsx or xls)")
        return fmt, self._readers[fmt], data


def read_workbook(data: bytes, sheet: int | str | None = None) -> SheetData:
    """Convenience wrapper: parse ``data`` with the default readers."""
    return WorkbookReader().read(data, {"sheet": sheet} if sheet is not None else {})

"""
Spreadsheet reader protocol, sheet/probe DTOs and shared cell helpers.

Contract:
    SpreadsheetReader.read() turns workbook bytes into a ``SheetData``: the
    header labels of the selected sheet plus one dict per data row, keyed by
    those labels. Blank cells are ``""``, never None.

Architecture: crm_ingestion/adapters. Parsing only; no mapping, no I/O
beyond the in-memory buffer handed in by the caller.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, time
from typing import Any, Protocol, runtime_checkable

_PROBE_SAMPLE_SIZE = 5


@dataclass(frozen=True)
class SheetData:
    """Parsed worksheet: header labels and data rows in sheet order."""

    sheet_name: str
    headers: tuple[str, ...]
    records: tuple[dict[str, Any], ...]


@dataclass(frozen=True)
class WorkbookProbe:
    """Result of probing a workbook (row count, columns, first N rows)."""

    format: str
    sheet_name: str
    row_count: int
    columns: tuple[str, ...]
    sample_rows: tuple[dict[str, Any], ...]  # First 5 rows; do not mutate

    @classmethod
    def from_sheet(cls, fmt: str, sheet: SheetData) -> "WorkbookProbe":
        return cls(
            format=fmt,
            sheet_name=sheet.sheet_name,
            row_count=len(sheet.records),
            columns=sheet.headers,
            sample_rows=tuple(dict(r) for r in sheet.records[:_PROBE_SAMPLE_SIZE]),
        )


@runtime_checkable
class SpreadsheetReader(Protocol):
    """Protocol for reading workbook bytes into header-keyed row dicts."""

    def read(self, data: bytes, options: dict[str, Any]) -> SheetData:
        """Parse the selected sheet (default: first). Raises ParseError."""
        ...


def normalize_header_cell(value: Any) -> str:
    """Normalize a header cell: strip and collapse inner whitespace."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return re.sub(r"\s+", " ", str(value)).strip()


def cell_value(value: Any) -> Any:
    """Normalize a data cell: blank -> "", integral float -> int, time -> ISO text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        return value
    if isinstance(value, time) and not isinstance(value, datetime):
        return value.isoformat()
    return value


def build_headers(header_cells: list[Any] | tuple[Any, ...]) -> list[str]:
    """Header labels for a sheet; blank -> ``Column_N``, duplicates get ``_1``, ``_2``."""
    ncols = 0
    for i, v in enumerate(header_cells):
        if normalize_header_cell(v):
            ncols = i + 1
    headers: list[str] = []
    for c in range(ncols):
        key = normalize_header_cell(header_cells[c]) or f"Column_{c + 1}"
        base = key
        cnt = 0
        while key in headers:
            cnt += 1
            key = f"{base}_{cnt}"
        headers.append(key)
    return headers


def rows_to_records(
    headers: list[str],
    data_rows: list[list[Any]] | list[tuple[Any, ...]],
) -> list[dict[str, Any]]:
    """Zip data rows with headers. Fully blank rows are dropped."""
    ncols = len(headers)
    records: list[dict[str, Any]] = []
    for row in data_rows:
        vals = [cell_value(row[c]) if c < len(row) else "" for c in range(ncols)]
        if is_blank_row(vals):
            continue
        records.append(dict(zip(headers, vals)))
    return records


def is_blank_row(row: list[Any] | tuple[Any, ...]) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in row)

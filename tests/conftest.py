"""
Pytest fixtures for the CRM ingestion test suite.

Provides:
- In-memory xlsx workbooks built with openpyxl (no binary fixtures on disk)
- The three-row account export used across engine tests
- Logging reset between tests (the CLI configures the package logger)
"""

import zipfile
from io import BytesIO
from typing import Any

import openpyxl
import pytest

from crm_ingestion.logging_config import LogContext, reset_logging


def build_xlsx(rows: list[list[Any]], sheet_title: str = "Accounts", extra_sheets: dict[str, list[list[Any]]] | None = None) -> bytes:
    """Return xlsx bytes whose first sheet holds ``rows`` (first row = headers)."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_title
    for row in rows:
        ws.append(row)
    for title, sheet_rows in (extra_sheets or {}).items():
        extra = wb.create_sheet(title)
        for row in sheet_rows:
            extra.append(row)
    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()


ACCOUNT_ROWS = [
    ["Account Name", "HT Account Number"],
    ["Acme", "A-1"],
    [None, "A-2"],
    ["Beta", None],
]

ACCOUNT_MAPPING = [
    {"source": "Account Name", "target": "name", "required": True},
    {"source": "HT Account Number", "target": "accountNumber", "required": False},
]


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def xlsx_factory():
    return build_xlsx


@pytest.fixture
def account_workbook() -> bytes:
    return build_xlsx(ACCOUNT_ROWS)


@pytest.fixture
def account_mapping() -> list[dict[str, Any]]:
    return [dict(rule) for rule in ACCOUNT_MAPPING]


def truncate_zip_member(data: bytes, member: str) -> bytes:
    """Rebuild a zip container with ``member`` cut to half its length."""
    out = BytesIO()
    with zipfile.ZipFile(BytesIO(data)) as src, zipfile.ZipFile(out, "w", zipfile.ZIP_DEFLATED) as dst:
        for info in src.infolist():
            payload = src.read(info.filename)
            if info.filename == member:
                payload = payload[: len(payload) // 2]
            dst.writestr(info, payload)
    return out.getvalue()


@pytest.fixture
def truncated_workbook(account_workbook) -> bytes:
    """The account export with its worksheet XML cut off mid-stream (a half-uploaded file)."""
    return truncate_zip_member(account_workbook, "xl/worksheets/sheet1.xml")

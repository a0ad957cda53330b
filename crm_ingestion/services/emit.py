"""Serialization of a TransformResult: CSV for the rows, JSON for the diagnostics."""

from __future__ import annotations

import csv
import io
import json
from typing import Any, TextIO

from crm_ingestion.domain.types import TransformResult


def _columns(result: TransformResult) -> tuple[str, ...]:
    if result.columns:
        return result.columns
    if result.data:
        return tuple(result.data[0].keys())
    return ()


def write_csv(result: TransformResult, stream: TextIO) -> int:
    """
    Write the header (template columns) and every valid row to ``stream``.

    Fields are quoted only when they contain a separator, quote or line
    break. Returns the number of data rows written.
    """
    columns = _columns(result)
    if not columns:
        return 0
    writer = csv.writer(stream, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(columns)
    for row in result.data:
        writer.writerow([row.get(c, "") for c in columns])
    return len(result.data)


def to_csv_text(result: TransformResult) -> str:
    buf = io.StringIO()
    write_csv(result, buf)
    return buf.getvalue()


def errors_to_json(result: TransformResult, indent: int | None = 2) -> str:
    """Stats, invalid rows and warnings as a JSON document."""
    payload: dict[str, Any] = {
        "stats": result.stats.to_dict(),
        "errors": [e.to_dict() for e in result.errors],
        "warnings": [w.to_dict() for w in result.warnings],
    }
    return json.dumps(payload, indent=indent, default=str, ensure_ascii=False)

"""
Target template: the destination column set and order.

The template, not the mapping configuration, is authoritative for output
shape. Every conformed record has exactly the template's columns, in the
template's order; columns the template lacks are filled with ``""`` and
mapped columns the template does not list are dropped.
"""

from __future__ import annotations

import csv
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from crm_ingestion.exceptions import TemplateError

_BOM = "\ufeff"


def parse_template_header(text: str) -> tuple[str, ...]:
    """
    Parse a CSV header line into ordered column names.

    The first non-empty line is used (a full template file may follow with
    sample rows). Names are trimmed; trailing empty cells are ignored.

    Raises:
        TemplateError: no columns, an empty column name between others, or
            a duplicate column name.
    """
    if not isinstance(text, str):
        raise TemplateError(f"template header must be text, got {type(text).__name__}")

    line = ""
    for candidate in text.lstrip(_BOM).splitlines():
        if candidate.strip():
            line = candidate
            break

    cells = [c.strip() for c in next(csv.reader([line]), [])]
    while cells and not cells[-1]:
        cells.pop()

    errors: list[str] = []
    if not cells:
        errors.append("template header has no columns")
    seen: set[str] = set()
    for position, name in enumerate(cells, start=1):
        if not name:
            errors.append(f"template column {position} has an empty name")
        elif name in seen:
            errors.append(f"duplicate template column {name!r}")
        seen.add(name)

    if errors:
        raise TemplateError(errors)
    return tuple(cells)


def conform_row(target_row: Mapping[str, str], columns: Iterable[str]) -> dict[str, str]:
    """Reorder/fill ``target_row`` into exactly ``columns``."""
    return {name: target_row.get(name, "") or "" for name in columns}


@dataclass(frozen=True)
class TargetTemplate:
    """Ordered destination columns parsed from a CSV header line."""

    columns: tuple[str, ...]

    @classmethod
    def from_header(cls, header_line: str) -> TargetTemplate:
        return cls(columns=parse_template_header(header_line))

    def __contains__(self, column: object) -> bool:
        return column in self.columns

    def conform(self, target_row: Mapping[str, str]) -> dict[str, str]:
        return conform_row(target_row, self.columns)

    def dropped_columns(self, targets: Iterable[str]) -> tuple[str, ...]:
        """Mapped target columns that the template does not carry."""
        present = set(self.columns)
        return tuple(t for t in targets if t not in present)


# Name used by callers that think of this as the validation step.
TemplateValidator = TargetTemplate

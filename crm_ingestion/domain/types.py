"""
crm_ingestion.domain.types -- Pure frozen dataclasses for the transformation engine.

ZERO I/O. Nothing here knows about spreadsheets, JSON, or files.

Mapping rules are a closed set of variants, one class per rule kind
(``CopyRule``, ``RenameRule``, ``ConstantRule``, ``DefaultRule``,
``ComputedRule``). The field transformer dispatches on the class with an
exhaustive ``match``; there is no duck-typed "rule dict" at runtime.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


# =============================================================================
# Enums
# =============================================================================


class RuleKind(str, Enum):
    """Kind of a mapping rule (one variant class per kind)."""

    COPY = "copy"
    RENAME = "rename"  # Same as copy; kept distinct for auditability
    CONSTANT = "constant"
    DEFAULT = "default"
    COMPUTED = "computed"


class TypeHint(str, Enum):
    """Coercion target for a rule's value."""

    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


class ComputedOp(str, Enum):
    """Built-in operations for computed rules. Closed set; never user code."""

    CONCAT = "concat"  # >= 2 sources, joined by separator, empty parts skipped
    SUM = "sum"  # >= 2 sources, numeric sum of non-empty parts
    COALESCE = "coalesce"  # >= 1 source, first non-empty value
    CONDITIONAL = "conditional"  # cases: first (column == value) match wins


class FormatCheck(str, Enum):
    """Field format validators available to rules."""

    EMAIL = "email"
    PHONE = "phone"
    URL = "url"
    STATE = "state"
    POSTAL = "postal"


class HeaderMatch(str, Enum):
    """How rule source columns are matched to workbook header labels."""

    INSENSITIVE = "insensitive"  # Trim + case-fold
    EXACT = "exact"


class IdStrategy(str, Enum):
    """How a mapped source identifier becomes the destination identifier."""

    PRESERVE = "preserve"  # Trimmed value kept exactly
    NORMALIZE = "normalize"  # Non-word characters removed


# Minimum number of source columns per computed operation
COMPUTED_MIN_SOURCES: dict[ComputedOp, int] = {
    ComputedOp.CONCAT: 2,
    ComputedOp.SUM: 2,
    ComputedOp.COALESCE: 1,
    ComputedOp.CONDITIONAL: 0,
}


# =============================================================================
# Mapping rules (tagged variants)
# =============================================================================


@dataclass(frozen=True, kw_only=True)
class _RuleBase:
    """Fields shared by every rule variant."""

    target_column: str
    required: bool = False
    coerce: TypeHint | None = None
    default_value: Any = None  # Fallback on missing value / failed coercion
    value_map: tuple[tuple[str, Any], ...] = ()  # source value -> target value
    validate: FormatCheck | None = None


@dataclass(frozen=True, kw_only=True)
class CopyRule(_RuleBase):
    """Target value is the source cell, trimmed."""

    source_column: str

    @property
    def kind(self) -> RuleKind:
        return RuleKind.COPY

    @property
    def references(self) -> tuple[str, ...]:
        return (self.source_column,)


@dataclass(frozen=True, kw_only=True)
class RenameRule(_RuleBase):
    """Identical to CopyRule; marks an intentional key rename."""

    source_column: str

    @property
    def kind(self) -> RuleKind:
        return RuleKind.RENAME

    @property
    def references(self) -> tuple[str, ...]:
        return (self.source_column,)


@dataclass(frozen=True, kw_only=True)
class ConstantRule(_RuleBase):
    """Target value is a fixed value; the source row is ignored."""

    constant_value: Any

    @property
    def kind(self) -> RuleKind:
        return RuleKind.CONSTANT

    @property
    def references(self) -> tuple[str, ...]:
        return ()


@dataclass(frozen=True, kw_only=True)
class DefaultRule(_RuleBase):
    """Source cell when non-empty, else ``default_value``."""

    source_column: str

    @property
    def kind(self) -> RuleKind:
        return RuleKind.DEFAULT

    @property
    def references(self) -> tuple[str, ...]:
        return (self.source_column,)


@dataclass(frozen=True)
class ConditionalCase:
    """One branch of a conditional computed rule: ``column == equals -> then``."""

    column: str
    equals: str
    then: Any


@dataclass(frozen=True, kw_only=True)
class ComputedRule(_RuleBase):
    """Target value derived from several columns by a built-in operation."""

    source_columns: tuple[str, ...]
    operation: ComputedOp
    separator: str = " "
    cases: tuple[ConditionalCase, ...] = ()

    @property
    def kind(self) -> RuleKind:
        return RuleKind.COMPUTED

    @property
    def references(self) -> tuple[str, ...]:
        seen = list(self.source_columns)
        for case in self.cases:
            if case.column not in seen:
                seen.append(case.column)
        return tuple(seen)


MappingRule = CopyRule | RenameRule | ConstantRule | DefaultRule | ComputedRule


# =============================================================================
# Mapping configuration
# =============================================================================


@dataclass(frozen=True)
class MappingOptions:
    """Global options of a mapping configuration."""

    header_match: HeaderMatch = HeaderMatch.INSENSITIVE
    id_column: str = "id"
    id_strategy: IdStrategy = IdStrategy.PRESERVE
    source_columns: tuple[str, ...] = ()  # Declared workbook headers
    dedupe_keys: tuple[str, ...] = ()  # Target columns forming a duplicate key
    sheet_name: str | int | None = None  # None: first worksheet


@dataclass(frozen=True)
class MappingConfig:
    """Validated, compiled mapping configuration. Rule order is significant."""

    rules: tuple[MappingRule, ...]
    options: MappingOptions = field(default_factory=MappingOptions)
    name: str = "mapping"

    @property
    def target_columns(self) -> tuple[str, ...]:
        return tuple(r.target_column for r in self.rules)

    def rule_for(self, target_column: str) -> MappingRule | None:
        for rule in self.rules:
            if rule.target_column == target_column:
                return rule
        return None


# =============================================================================
# Source rows
# =============================================================================

_WHITESPACE_RE = re.compile(r"\s+")


def fold_label(label: str) -> str:
    """Normalize a header label for case-insensitive matching (trim, collapse whitespace, casefold)."""
    return _WHITESPACE_RE.sub(" ", str(label)).strip().casefold()


def _snapshot_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.hour == value.minute == value.second == value.microsecond == 0:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


class SourceRow(Mapping[str, Any]):
    """
    One workbook row: ordered mapping of header label -> raw cell value.

    Blank cells are stored as ``""`` so lookups are total. Read-only.
    """

    __slots__ = ("index", "_cells", "_folded")

    def __init__(self, cells: Mapping[str, Any], index: int = 0):
        self.index = index
        self._cells: dict[str, Any] = {
            str(k): ("" if v is None else v) for k, v in cells.items()
        }
        self._folded: dict[str, str] = {}
        for label in self._cells:
            self._folded.setdefault(fold_label(label), label)

    def __getitem__(self, key: str) -> Any:
        return self._cells[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    def __repr__(self) -> str:
        return f"SourceRow(index={self.index}, cells={self._cells!r})"

    def has_column(self, column: str, match: HeaderMatch = HeaderMatch.INSENSITIVE) -> bool:
        if match is HeaderMatch.EXACT:
            return column in self._cells
        return fold_label(column) in self._folded

    def lookup(self, column: str, match: HeaderMatch = HeaderMatch.INSENSITIVE) -> Any:
        """Return the cell for ``column``, or ``""`` when the column is absent."""
        if match is HeaderMatch.EXACT:
            return self._cells.get(column, "")
        label = self._folded.get(fold_label(column))
        if label is None:
            return ""
        return self._cells[label]

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready copy of the raw cells (dates as ISO strings)."""
        return {k: _snapshot_value(v) for k, v in self._cells.items()}


# =============================================================================
# Outcomes and result
# =============================================================================


@dataclass(frozen=True)
class FieldError:
    """
    Problem with one target field of one row.

    ``fatal`` errors invalidate the row; non-fatal ones are warnings and the
    row is still emitted.
    """

    target_column: str
    raw_value: Any
    message: str
    code: str = "FIELD_ERROR"
    fatal: bool = True


@dataclass(frozen=True)
class ValidRow:
    """Row outcome: transformed record (before template conformance)."""

    row_index: int
    target_row: dict[str, str]
    warnings: tuple[FieldError, ...] = ()

    @property
    def is_valid(self) -> bool:
        return True


@dataclass(frozen=True)
class InvalidRow:
    """Row outcome: at least one fatal field error."""

    row_index: int
    errors: tuple[FieldError, ...]
    warnings: tuple[FieldError, ...] = ()

    @property
    def is_valid(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return "; ".join(e.message for e in self.errors)


RowOutcome = ValidRow | InvalidRow


@dataclass(frozen=True)
class TransformStats:
    """Run counts. ``total_rows == valid_rows + invalid_rows`` always holds."""

    total_rows: int
    valid_rows: int
    invalid_rows: int
    duplicate_rows: int = 0  # Subset of invalid_rows

    def to_dict(self) -> dict[str, int]:
        return {
            "total_rows": self.total_rows,
            "valid_rows": self.valid_rows,
            "invalid_rows": self.invalid_rows,
            "duplicate_rows": self.duplicate_rows,
        }


@dataclass(frozen=True)
class RowError:
    """Invalid row diagnostic: 0-based row index, joined messages, raw row."""

    row: int
    error: str
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "error": self.error, "data": dict(self.data)}


@dataclass(frozen=True)
class RowWarning:
    """Non-fatal field problem on a row that was still emitted."""

    row: int
    field: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "field": self.field, "message": self.message}


@dataclass(frozen=True)
class TransformResult:
    """
    Sole output of a run. Built once at the end of ``transform``.

    Every element of ``data`` has exactly ``columns`` as keys, in order.
    """

    data: tuple[dict[str, str], ...]
    stats: TransformStats
    errors: tuple[RowError, ...] = ()
    warnings: tuple[RowWarning, ...] = ()
    columns: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [dict(row) for row in self.data],
            "stats": self.stats.to_dict(),
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }

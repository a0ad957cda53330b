"""
Field transformer: one rule + one source row -> one target value. Pure.

Resolution order for every rule:
    1. raw value by rule kind (copy/rename/default read the source row,
       constant ignores it, computed runs a built-in operation)
    2. trim, then ``value_map`` lookup
    3. empty -> ``default_value`` (when the rule has one)
    4. ``coerce`` (number/date/boolean/string)
    5. format check (``validate``)
    6. empty + ``required`` -> fatal MISSING_REQUIRED_FIELD

A failed step 4/5 (or a failed computation) is fatal on a required rule.
On an optional rule it falls back to ``default_value`` (or "") and records a
non-fatal warning.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from crm_ingestion.domain.types import (
    ComputedOp,
    ComputedRule,
    ConstantRule,
    CopyRule,
    DefaultRule,
    FieldError,
    HeaderMatch,
    MappingOptions,
    MappingRule,
    RenameRule,
    SourceRow,
)
from crm_ingestion.domain.validators import FORMAT_LABELS, check_format
from crm_ingestion.mapping.coercion import (
    cell_to_text,
    coerce_value,
    format_decimal,
    parse_number,
)

_NO_OPTIONS = MappingOptions()


@dataclass(frozen=True)
class FieldResult:
    """Value for one target column, plus the error/warning that produced it (if any)."""

    value: str
    error: FieldError | None = None

    @property
    def is_fatal(self) -> bool:
        return self.error is not None and self.error.fatal


@dataclass(frozen=True)
class _Failure:
    code: str
    message: str


# -----------------------------------------------------------------------------
# Computed operations
# -----------------------------------------------------------------------------


def _resolve_reference(
    column: str,
    source_row: SourceRow,
    target_row: Mapping[str, str],
    match: HeaderMatch,
) -> Any:
    """Earlier-produced target columns shadow source columns of the same name."""
    if column in target_row:
        return target_row[column]
    return source_row.lookup(column, match)


def _compute(
    rule: ComputedRule,
    source_row: SourceRow,
    target_row: Mapping[str, str],
    match: HeaderMatch,
) -> tuple[Any, _Failure | None]:
    values = [_resolve_reference(c, source_row, target_row, match) for c in rule.source_columns]

    match rule.operation:
        case ComputedOp.CONCAT:
            parts = [cell_to_text(v) for v in values]
            return rule.separator.join(p for p in parts if p), None

        case ComputedOp.SUM:
            total = Decimal(0)
            seen = False
            for column, raw in zip(rule.source_columns, values):
                if cell_to_text(raw) == "":
                    continue
                d = parse_number(raw)
                if d is None:
                    return "", _Failure(
                        "COMPUTE_FAILED",
                        f"cannot sum {rule.target_column}: {cell_to_text(raw)!r} in {column!r} is not a number",
                    )
                total += d
                seen = True
            return (format_decimal(total) if seen else ""), None

        case ComputedOp.COALESCE:
            for raw in values:
                if cell_to_text(raw) != "":
                    return raw, None
            return "", None

        case ComputedOp.CONDITIONAL:
            for case in rule.cases:
                current = cell_to_text(_resolve_reference(case.column, source_row, target_row, match))
                if current == case.equals.strip():
                    return case.then, None
            return "", None

    raise ValueError(f"Unknown computed operation: {rule.operation}")


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _map_value(text: str, value_map: tuple[tuple[str, Any], ...]) -> Any | None:
    """Exact match first, then case-insensitive. None when unmapped."""
    for src, dst in value_map:
        if src == text:
            return dst
    folded = text.casefold()
    for src, dst in value_map:
        if src.strip().casefold() == folded:
            return dst
    return None


def _fail(rule: MappingRule, raw: Any, failure: _Failure) -> FieldResult:
    if rule.required:
        return FieldResult(
            value="",
            error=FieldError(
                target_column=rule.target_column,
                raw_value=raw,
                message=f"{rule.target_column}: {failure.message}",
                code=failure.code,
                fatal=True,
            ),
        )
    fallback = cell_to_text(rule.default_value)
    if fallback and rule.coerce is not None:
        coerced_default = coerce_value(rule.default_value, rule.coerce)
        fallback = coerced_default.value if coerced_default.success else ""
    note = f"using default {fallback!r}" if fallback else "left empty"
    return FieldResult(
        value=fallback,
        error=FieldError(
            target_column=rule.target_column,
            raw_value=raw,
            message=f"{rule.target_column}: {failure.message}; {note}",
            code=failure.code,
            fatal=False,
        ),
    )


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------


def apply_rule(
    rule: MappingRule,
    source_row: SourceRow,
    target_row: Mapping[str, str] | None = None,
    options: MappingOptions | None = None,
) -> FieldResult:
    """
    Produce the target value for ``rule`` from ``source_row``. Pure function.

    ``target_row`` holds values produced by earlier rules of the same record
    (visible to computed rules only).
    """
    options = options or _NO_OPTIONS
    target_row = target_row if target_row is not None else {}
    failure: _Failure | None = None

    match rule:
        case CopyRule() | RenameRule() | DefaultRule():
            raw = source_row.lookup(rule.source_column, options.header_match)
        case ConstantRule():
            raw = rule.constant_value
        case ComputedRule():
            raw, failure = _compute(rule, source_row, target_row, options.header_match)
        case _:
            raise TypeError(f"Unsupported mapping rule: {type(rule).__name__}")

    if failure is not None:
        return _fail(rule, raw, failure)

    candidate: Any = raw
    text = cell_to_text(raw)

    if text and rule.value_map:
        mapped = _map_value(text, rule.value_map)
        if mapped is not None:
            candidate = mapped
            text = cell_to_text(mapped)

    if not text and rule.default_value is not None:
        candidate = rule.default_value
        text = cell_to_text(rule.default_value)

    if text and rule.coerce is not None:
        coerced = coerce_value(candidate, rule.coerce)
        if not coerced.success:
            return _fail(rule, raw, _Failure(coerced.code or "COERCION_FAILED", coerced.message or "coercion failed"))
        text = coerced.value

    if text and rule.validate is not None and not check_format(text, rule.validate):
        return _fail(
            rule,
            raw,
            _Failure("INVALID_FORMAT", f"invalid {FORMAT_LABELS[rule.validate]} {text!r}"),
        )

    if not text and rule.required:
        return FieldResult(
            value="",
            error=FieldError(
                target_column=rule.target_column,
                raw_value=raw,
                message=f"{rule.target_column} is required",
                code="MISSING_REQUIRED_FIELD",
                fatal=True,
            ),
        )

    return FieldResult(value=text)

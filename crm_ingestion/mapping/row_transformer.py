"""
Row transformer: every rule of a MappingConfig applied to one source row.

Rules run in declared order so computed rules can read targets produced by
earlier rules. Processing never stops at the first failure; every field
error of the row is collected in one pass.
"""

from __future__ import annotations

import re

from crm_ingestion.domain.types import (
    FieldError,
    IdStrategy,
    InvalidRow,
    MappingConfig,
    RowOutcome,
    SourceRow,
    ValidRow,
)
from crm_ingestion.mapping.field_transformer import apply_rule

_NON_WORD_RE = re.compile(r"\W+")


def normalize_identifier(value: str, strategy: IdStrategy) -> str:
    """Destination id from a mapped source id. Empty stays empty."""
    if strategy is IdStrategy.NORMALIZE:
        return _NON_WORD_RE.sub("", value)
    return value


def transform_row(config: MappingConfig, source_row: SourceRow, row_index: int) -> RowOutcome:
    """
    Apply ``config`` to ``source_row``. Pure function.

    Returns ``InvalidRow`` when at least one fatal field error occurred,
    otherwise ``ValidRow`` carrying the insertion-ordered target record.
    """
    options = config.options
    target_row: dict[str, str] = {}
    errors: list[FieldError] = []
    warnings: list[FieldError] = []

    for rule in config.rules:
        result = apply_rule(rule, source_row, target_row, options)
        value = result.value
        error = result.error
        if rule.target_column == options.id_column and value:
            value = normalize_identifier(value, options.id_strategy)
            if not value and rule.required and error is None:
                error = FieldError(
                    target_column=rule.target_column,
                    raw_value=result.value,
                    message=f"{rule.target_column} is required",
                    code="MISSING_REQUIRED_FIELD",
                    fatal=True,
                )
        target_row[rule.target_column] = value

        if error is None:
            continue
        if error.fatal:
            errors.append(error)
        else:
            warnings.append(error)

    if errors:
        return InvalidRow(row_index=row_index, errors=tuple(errors), warnings=tuple(warnings))
    return ValidRow(row_index=row_index, target_row=target_row, warnings=tuple(warnings))

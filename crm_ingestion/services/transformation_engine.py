"""
Transformation engine: workbook -> rows -> mapped rows -> template-shaped rows.

Composition root. One engine per mapping configuration; each ``transform``
call is independent, keeps no state between calls, and returns the same
``TransformResult`` for the same inputs.

Flow:
    1. parse the template header (TemplateError before any I/O)
    2. read the workbook (ParseError)
    3. per row, in sheet order: RowTransformer -> extra defaults -> dedupe
       -> TemplateValidator
    4. build the immutable TransformResult

Only structural problems raise. Row and field problems are recorded in the
result's ``errors`` / ``warnings``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any
from uuid import uuid4

from crm_ingestion.adapters.base import SheetData, SpreadsheetReader, WorkbookProbe
from crm_ingestion.adapters.workbook import WorkbookReader, detect_format
from crm_ingestion.domain.types import (
    InvalidRow,
    MappingConfig,
    RowError,
    RowWarning,
    SourceRow,
    TransformResult,
    TransformStats,
    ValidRow,
)
from crm_ingestion.exceptions import ConfigError, ParseError
from crm_ingestion.logging_config import LogContext, get_logger
from crm_ingestion.mapping.coercion import cell_to_text
from crm_ingestion.mapping.row_transformer import transform_row
from crm_ingestion.mapping.template import TargetTemplate

logger = get_logger("services.transformation_engine")


class TransformationEngine:
    """Runs one mapping configuration over workbooks or in-memory rows."""

    def __init__(self, config: MappingConfig, reader: SpreadsheetReader | None = None):
        if not isinstance(config, MappingConfig):
            raise TypeError(f"Expected MappingConfig, got {type(config).__name__}")
        self._config = config
        self._reader = reader if reader is not None else WorkbookReader()

    @property
    def config(self) -> MappingConfig:
        return self._config

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def probe(self, workbook_bytes: bytes, *, source_name: str | None = None) -> WorkbookProbe:
        """Preview the selected sheet: row count, columns, first rows. No mapping."""
        sheet = self._read(workbook_bytes, source_name)
        fmt = detect_format(bytes(workbook_bytes)) or "unknown"
        return WorkbookProbe.from_sheet(fmt, sheet)

    def transform(
        self,
        workbook_bytes: bytes,
        template_header_line: str,
        extra_defaults: Mapping[str, Any] | None = None,
        *,
        source_name: str | None = None,
    ) -> TransformResult:
        """
        Transform a workbook into template-shaped rows.

        Raises:
            TemplateError: the template header is empty or has duplicate columns.
            ConfigError: ``extra_defaults`` is not a column -> value mapping.
            ParseError: the workbook cannot be read or its sheet has no rows.
        """
        template = TargetTemplate.from_header(template_header_line)
        defaults = self._check_defaults(extra_defaults)
        sheet = self._read(workbook_bytes, source_name)
        rows = [SourceRow(record, index=i) for i, record in enumerate(sheet.records)]
        return self._run(rows, template, defaults, source_name or sheet.sheet_name)

    def transform_rows(
        self,
        rows: Iterable[Mapping[str, Any]],
        template_header_line: str,
        extra_defaults: Mapping[str, Any] | None = None,
    ) -> TransformResult:
        """Same as ``transform`` for rows already in memory (header label -> cell value)."""
        template = TargetTemplate.from_header(template_header_line)
        defaults = self._check_defaults(extra_defaults)
        source_rows = [SourceRow(row, index=i) for i, row in enumerate(rows)]
        return self._run(source_rows, template, defaults, None)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _read(self, workbook_bytes: bytes, source_name: str | None) -> SheetData:
        options: dict[str, Any] = {}
        if self._config.options.sheet_name is not None:
            options["sheet"] = self._config.options.sheet_name
        try:
            return self._reader.read(workbook_bytes, options)
        except ParseError as exc:
            if source_name is None or exc.source_name is not None:
                raise
            raise ParseError(exc.reason, source_name=source_name) from exc

    def _check_defaults(self, extra_defaults: Mapping[str, Any] | None) -> dict[str, str]:
        if extra_defaults is None:
            return {}
        if not isinstance(extra_defaults, Mapping):
            raise ConfigError(
                f"extra defaults must be a mapping of column -> value, got {type(extra_defaults).__name__}"
            )
        id_column = self._config.options.id_column
        defaults: dict[str, str] = {}
        problems: list[str] = []
        for column, value in extra_defaults.items():
            if not isinstance(column, str) or not column.strip():
                problems.append(f"extra default column {column!r} must be a non-empty name")
                continue
            if column == id_column:
                logger.warning("extra_default_ignored", extra={"column": column, "reason": "identifier column"})
                continue
            defaults[column] = cell_to_text(value)
        if problems:
            raise ConfigError(problems)
        return defaults

    def _dedupe_key(self, target_row: Mapping[str, str]) -> str | None:
        keys = self._config.options.dedupe_keys
        if not keys:
            return None
        parts = [(target_row.get(k) or "").strip().casefold() for k in keys]
        if not any(parts):
            return None
        return "|".join(parts)

    def _run(
        self,
        rows: list[SourceRow],
        template: TargetTemplate,
        defaults: dict[str, str],
        source_name: str | None,
    ) -> TransformResult:
        config = self._config
        data: list[dict[str, str]] = []
        errors: list[RowError] = []
        warnings: list[RowWarning] = []
        seen: dict[str, int] = {}
        duplicates = 0

        with LogContext.bind(
            correlation_id=str(uuid4()),
            mapping_name=config.name,
            source_name=source_name,
        ):
            logger.info(
                "transform_started",
                extra={"rows": len(rows), "rules": len(config.rules), "template_columns": len(template.columns)},
            )
            dropped = template.dropped_columns(config.target_columns)
            if dropped:
                logger.debug("template_columns_dropped", extra={"dropped_columns": list(dropped)})

            for row in rows:
                outcome = transform_row(config, row, row.index)

                for w in outcome.warnings:
                    warnings.append(RowWarning(row=row.index, field=w.target_column, message=w.message))
                    logger.debug(
                        "field_warning",
                        extra={"row": row.index, "field": w.target_column, "error_code": w.code},
                    )

                match outcome:
                    case InvalidRow():
                        errors.append(RowError(row=row.index, error=outcome.message, data=row.snapshot()))
                        logger.info(
                            "row_invalid",
                            extra={"row": row.index, "error_codes": [e.code for e in outcome.errors]},
                        )
                    case ValidRow():
                        target_row = dict(outcome.target_row)
                        for column, value in defaults.items():
                            if not target_row.get(column):
                                target_row[column] = value

                        key = self._dedupe_key(target_row)
                        if key is not None and key in seen:
                            duplicates += 1
                            errors.append(
                                RowError(
                                    row=row.index,
                                    error=f"duplicate record: same {', '.join(config.options.dedupe_keys)} as row {seen[key]}",
                                    data=row.snapshot(),
                                )
                            )
                            logger.info(
                                "row_invalid",
                                extra={"row": row.index, "error_codes": ["DUPLICATE_RECORD"], "duplicate_of": seen[key]},
                            )
                            continue
                        if key is not None:
                            seen[key] = row.index

                        data.append(template.conform(target_row))

            stats = TransformStats(
                total_rows=len(rows),
                valid_rows=len(data),
                invalid_rows=len(rows) - len(data),
                duplicate_rows=duplicates,
            )
            logger.info("transform_completed", extra=stats.to_dict())

        return TransformResult(
            data=tuple(data),
            stats=stats,
            errors=tuple(errors),
            warnings=tuple(warnings),
            columns=template.columns,
        )

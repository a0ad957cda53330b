"""
Typed exception hierarchy for the CRM ingestion engine.

Only STRUCTURAL failures are exceptions. A structural failure prevents any
row from being processed: the workbook cannot be read, or the mapping
configuration / target template is malformed or self-inconsistent.

Row-level and field-level problems are NOT exceptions. They are recorded as
``FieldError`` values on the row outcome and surface in
``TransformResult.errors`` / ``TransformResult.warnings``.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CrmIngestionError (base)
    |
    +-- ParseError              WORKBOOK_PARSE_ERROR
    |
    +-- ConfigError             MAPPING_CONFIG_ERROR
        +-- TemplateError       TEMPLATE_ERROR

===============================================================================
HANDLING PATTERN
===============================================================================

    try:
        result = engine.transform(workbook_bytes, template_line)
    except ParseError as e:
        show_error(e.code, e.reason)          # bad upload; nothing imported
    except ConfigError as e:
        for problem in e.errors:              # every problem, not just the first
            show_error(e.code, problem)

Every subclass has a ``code`` class attribute and keeps its context as
attributes, so callers never parse message strings.
"""

from __future__ import annotations


class CrmIngestionError(Exception):
    """Base exception for all ingestion engine errors."""

    code: str = "CRM_INGESTION_ERROR"


class ParseError(CrmIngestionError):
    """The workbook buffer is not a readable spreadsheet, or its first sheet is empty."""

    code: str = "WORKBOOK_PARSE_ERROR"

    def __init__(self, reason: str, source_name: str | None = None):
        self.reason = reason
        self.source_name = source_name
        where = f" ({source_name})" if source_name else ""
        super().__init__(f"Cannot read workbook{where}: {reason}")


class ConfigError(CrmIngestionError):
    """
    The mapping configuration is malformed or self-inconsistent.

    ``errors`` holds every problem found during validation.
    """

    code: str = "MAPPING_CONFIG_ERROR"

    def __init__(self, errors: list[str] | tuple[str, ...] | str, source_name: str | None = None):
        if isinstance(errors, str):
            errors = (errors,)
        self.errors = tuple(errors)
        self.source_name = source_name
        where = f" {source_name}" if source_name else ""
        summary = "; ".join(self.errors[:5])
        if len(self.errors) > 5:
            summary += f"; ... ({len(self.errors) - 5} more)"
        super().__init__(
            f"Invalid mapping configuration{where}: {len(self.errors)} error(s): {summary}"
        )


class TemplateError(ConfigError):
    """The target template header cannot be used as an output column set."""

    code: str = "TEMPLATE_ERROR"

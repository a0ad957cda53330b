"""
crm_ingestion -- Configuration-driven CRM spreadsheet transformation.

Reads a CRM workbook export, applies a declarative mapping configuration
(rename, coerce, default, compute), conforms every row to the import
template's columns, and reports per-row diagnostics.

Typical use::

    config = load_mapping_config("accounts.json")
    result = TransformationEngine(config).transform(workbook_bytes, "id,name,accountNumber")
    csv_text = to_csv_text(result)
"""

from crm_ingestion.adapters import WorkbookProbe, WorkbookReader, read_workbook
from crm_ingestion.domain import (
    MappingConfig,
    MappingOptions,
    RowError,
    RowWarning,
    TransformResult,
    TransformStats,
)
from crm_ingestion.exceptions import ConfigError, CrmIngestionError, ParseError, TemplateError
from crm_ingestion.mapping import (
    TargetTemplate,
    TemplateValidator,
    build_mapping_config,
    compile_legacy_document,
    load_mapping_config,
    parse_mapping_config,
    parse_template_header,
)
from crm_ingestion.services import TransformationEngine, errors_to_json, to_csv_text, write_csv

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "CrmIngestionError",
    "MappingConfig",
    "MappingOptions",
    "ParseError",
    "RowError",
    "RowWarning",
    "TargetTemplate",
    "TemplateError",
    "TemplateValidator",
    "TransformResult",
    "TransformStats",
    "TransformationEngine",
    "WorkbookProbe",
    "WorkbookReader",
    "build_mapping_config",
    "compile_legacy_document",
    "errors_to_json",
    "load_mapping_config",
    "parse_mapping_config",
    "parse_template_header",
    "read_workbook",
    "to_csv_text",
    "write_csv",
]

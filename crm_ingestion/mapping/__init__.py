"""Mapping: config loading/validation, coercion, field and row transformation, template conformance."""

from crm_ingestion.mapping.coercion import CoercionResult, cell_to_text, coerce_value
from crm_ingestion.mapping.field_transformer import FieldResult, apply_rule
from crm_ingestion.mapping.legacy import compile_legacy_document, is_legacy_document
from crm_ingestion.mapping.loader import (
    build_mapping_config,
    load_mapping_config,
    parse_mapping_config,
)
from crm_ingestion.mapping.row_transformer import normalize_identifier, transform_row
from crm_ingestion.mapping.template import (
    TargetTemplate,
    TemplateValidator,
    conform_row,
    parse_template_header,
)
from crm_ingestion.mapping.validator import ConfigValidationResult, validate_mapping_config

__all__ = [
    "CoercionResult",
    "ConfigValidationResult",
    "FieldResult",
    "TargetTemplate",
    "TemplateValidator",
    "apply_rule",
    "build_mapping_config",
    "cell_to_text",
    "coerce_value",
    "compile_legacy_document",
    "conform_row",
    "is_legacy_document",
    "load_mapping_config",
    "normalize_identifier",
    "parse_mapping_config",
    "parse_template_header",
    "transform_row",
    "validate_mapping_config",
]

"""
crm_ingestion.domain -- Pure types and value objects for the transformation engine.

ZERO I/O.
"""

from crm_ingestion.domain.types import (
    ComputedOp,
    ComputedRule,
    ConditionalCase,
    ConstantRule,
    CopyRule,
    DefaultRule,
    FieldError,
    FormatCheck,
    HeaderMatch,
    IdStrategy,
    InvalidRow,
    MappingConfig,
    MappingOptions,
    MappingRule,
    RenameRule,
    RowError,
    RowOutcome,
    RowWarning,
    RuleKind,
    SourceRow,
    TransformResult,
    TransformStats,
    TypeHint,
    ValidRow,
)

__all__ = [
    "ComputedOp",
    "ComputedRule",
    "ConditionalCase",
    "ConstantRule",
    "CopyRule",
    "DefaultRule",
    "FieldError",
    "FormatCheck",
    "HeaderMatch",
    "IdStrategy",
    "InvalidRow",
    "MappingConfig",
    "MappingOptions",
    "MappingRule",
    "RenameRule",
    "RowError",
    "RowOutcome",
    "RowWarning",
    "RuleKind",
    "SourceRow",
    "TransformResult",
    "TransformStats",
    "TypeHint",
    "ValidRow",
]

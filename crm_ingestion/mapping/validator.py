"""
Mapping configuration validator (``crm_ingestion.mapping.validator``).

Responsibility
--------------
Checks a compiled ``MappingConfig`` for self-consistency once, at load
time, so a bad configuration fails before any row is processed.

Invariants enforced
-------------------
* At least one rule.
* ``target_column`` is unique across rules.
* Computed rules have their operation's minimum arity, and reference only
  columns that are produced by an earlier rule, read by a non-computed rule,
  or declared in ``options.source_columns``.
* The identifier rule is never coerced, defaulted or constant (the engine
  never invents identifiers).
* ``dedupe_keys`` name produced target columns.
* A ``default_value`` on a coerced rule coerces under the same hint.

Failure modes
-------------
* ``ConfigValidationResult.errors`` -> the loader raises ``ConfigError``.
* ``ConfigValidationResult.warnings`` -> logged; the config is usable.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from crm_ingestion.domain.types import (
    COMPUTED_MIN_SOURCES,
    ComputedOp,
    ComputedRule,
    ConstantRule,
    DefaultRule,
    HeaderMatch,
    MappingConfig,
    TypeHint,
    fold_label,
)
from crm_ingestion.mapping.coercion import coerce_value


@dataclass
class ConfigValidationResult:
    """
    Result of mapping configuration validation.

    ``is_valid`` is ``True`` only when ``errors`` is empty. Warnings do not
    block loading.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def merge(self, other: ConfigValidationResult) -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)


def validate_mapping_config(config: MappingConfig) -> ConfigValidationResult:
    """Validate a compiled mapping configuration."""
    result = ConfigValidationResult()

    if not config.rules:
        result.add_error("mapping configuration has no rules")
        return result

    _validate_unique_targets(config, result)
    _validate_computed_rules(config, result)
    _validate_identifier_rule(config, result)
    _validate_dedupe_keys(config, result)
    _validate_coercible_defaults(config, result)
    _warn_required_with_default(config, result)

    return result


def _validate_unique_targets(config: MappingConfig, result: ConfigValidationResult) -> None:
    seen: set[str] = set()
    for rule in config.rules:
        if rule.target_column in seen:
            result.add_error(
                f"Duplicate targetColumn: {rule.target_column!r} appears more than once"
            )
        seen.add(rule.target_column)


def _source_key(column: str, match: HeaderMatch) -> str:
    return column if match is HeaderMatch.EXACT else fold_label(column)


def _validate_computed_rules(config: MappingConfig, result: ConfigValidationResult) -> None:
    match = config.options.header_match
    sources = {_source_key(c, match) for c in config.options.source_columns}
    for rule in config.rules:
        if not isinstance(rule, ComputedRule):
            sources.update(_source_key(c, match) for c in rule.references)

    earlier_targets: set[str] = set()
    for rule in config.rules:
        if isinstance(rule, ComputedRule):
            minimum = COMPUTED_MIN_SOURCES[rule.operation]
            if len(rule.source_columns) < minimum:
                result.add_error(
                    f"Computed rule {rule.target_column!r}: {rule.operation.value} needs at least "
                    f"{minimum} source column(s), got {len(rule.source_columns)}"
                )
            if rule.operation is ComputedOp.CONDITIONAL and not rule.cases:
                result.add_error(f"Computed rule {rule.target_column!r}: conditional needs at least one case")

            for column in rule.references:
                if column in earlier_targets or _source_key(column, match) in sources:
                    continue
                result.add_error(
                    f"Computed rule {rule.target_column!r} references {column!r}, which no "
                    f"earlier rule produces and no rule or sourceColumns declares"
                )
        earlier_targets.add(rule.target_column)


def _validate_identifier_rule(config: MappingConfig, result: ConfigValidationResult) -> None:
    id_column = config.options.id_column
    rule = config.rule_for(id_column)
    if rule is None:
        return
    if rule.coerce is not None and rule.coerce is not TypeHint.STRING:
        result.add_error(
            f"Identifier column {id_column!r} must not be coerced to {rule.coerce.value}; "
            f"source identifiers are kept as text"
        )
    if isinstance(rule, (ConstantRule, DefaultRule)) or rule.default_value is not None:
        result.add_error(
            f"Identifier column {id_column!r} must not have a constant or default value; "
            f"empty identifiers are left empty"
        )


def _validate_dedupe_keys(config: MappingConfig, result: ConfigValidationResult) -> None:
    targets = set(config.target_columns)
    for key in config.options.dedupe_keys:
        if key not in targets:
            result.add_error(f"dedupeKeys entry {key!r} is not a target column of any rule")


def _warn_required_with_default(config: MappingConfig, result: ConfigValidationResult) -> None:
    for rule in config.rules:
        if rule.required and rule.default_value is not None:
            result.add_warning(
                f"Rule {rule.target_column!r} is required but has a defaultValue; "
                f"empty source values will never fail"
            )


def _validate_coercible_defaults(config: MappingConfig, result: ConfigValidationResult) -> None:
    for rule in config.rules:
        if rule.coerce is None or rule.default_value is None:
            continue
        coerced = coerce_value(rule.default_value, rule.coerce)
        if not coerced.success:
            result.add_error(
                f"Rule {rule.target_column!r}: defaultValue {rule.default_value!r} "
                f"is not a valid {rule.coerce.value}"
            )

"""
Mapping configuration loader (``crm_ingestion.mapping.loader``).

Responsibility
--------------
Parses a mapping configuration document (JSON or YAML text, or an already
decoded object) into a validated, frozen ``MappingConfig``.

Accepted document shapes:

* a bare array of rule objects;
* ``{"name": ..., "options": {...}, "rules": [...]}``;
* the legacy Dynamics document (see ``crm_ingestion.mapping.legacy``).

Parsing is data-only. Computed rules name a built-in operation; nothing
from the document is ever evaluated.

Failure modes
-------------
* Undecodable JSON/YAML, or any structural problem -> ``ConfigError``
  listing every problem found (not only the first).
* Missing file -> ``FileNotFoundError`` propagates.
* Warnings (unknown keys, ignored legacy settings) are logged.
"""

from __future__ import annotations

import json
import re
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

import yaml

from crm_ingestion.domain.types import (
    ComputedOp,
    ComputedRule,
    ConditionalCase,
    ConstantRule,
    CopyRule,
    DefaultRule,
    FormatCheck,
    HeaderMatch,
    IdStrategy,
    MappingConfig,
    MappingOptions,
    MappingRule,
    RenameRule,
    RuleKind,
    TypeHint,
)
from crm_ingestion.exceptions import ConfigError
from crm_ingestion.logging_config import get_logger
from crm_ingestion.mapping.legacy import compile_legacy_document, is_legacy_document
from crm_ingestion.mapping.validator import ConfigValidationResult, validate_mapping_config

logger = get_logger("mapping.loader")

_E = TypeVar("_E", bound=Enum)

# canonical key -> accepted spellings
_RULE_KEYS: dict[str, tuple[str, ...]] = {
    "sourceColumn": ("sourceColumn", "source_column", "source", "sourceColumns", "source_columns", "sources"),
    "targetColumn": ("targetColumn", "target_column", "target"),
    "kind": ("kind",),
    "required": ("required",),
    "coerce": ("coerce", "type"),
    "defaultValue": ("defaultValue", "default_value", "default"),
    "constantValue": ("constantValue", "constant_value", "value"),
    "operation": ("operation", "op"),
    "separator": ("separator",),
    "cases": ("cases",),
    "valueMap": ("valueMap", "value_map"),
    "validate": ("validate",),
}
_KNOWN_RULE_KEYS = frozenset(k for aliases in _RULE_KEYS.values() for k in aliases) | {"description", "notes"}

_OPTION_KEYS: dict[str, tuple[str, ...]] = {
    "headerMatch": ("headerMatch", "header_match"),
    "idColumn": ("idColumn", "id_column"),
    "idStrategy": ("idStrategy", "id_strategy"),
    "sourceColumns": ("sourceColumns", "source_columns"),
    "dedupeKeys": ("dedupeKeys", "dedupe_keys"),
    "sheetName": ("sheetName", "sheet_name", "sheet"),
}
_KNOWN_OPTION_KEYS = frozenset(k for aliases in _OPTION_KEYS.values() for k in aliases)

_SCALAR_TYPES = (str, int, float, bool)

# "status == 'Won'" style conditions; matched, never evaluated
_CONDITION_RE = re.compile(r"^\s*([^=!<>]+?)\s*==\s*(['\"])(.*)\2\s*$")


# -----------------------------------------------------------------------------
# Small readers
# -----------------------------------------------------------------------------


def _get(raw: dict[str, Any], aliases: dict[str, tuple[str, ...]], key: str) -> tuple[bool, Any]:
    for spelling in aliases[key]:
        if spelling in raw:
            return True, raw[spelling]
    return False, None


def _enum(
    enum_cls: type[_E], value: Any, what: str, where: str, result: ConfigValidationResult
) -> _E | None:
    if value is None:
        return None
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        result.add_error(f"{where}: unknown {what} {value!r} (expected one of: {choices})")
        return None


def _scalar(value: Any, what: str, where: str, result: ConfigValidationResult) -> Any:
    if value is None or isinstance(value, _SCALAR_TYPES):
        return value
    result.add_error(f"{where}: {what} must be a scalar value, got {type(value).__name__}")
    return None


def _column_name(value: Any, what: str, where: str, result: ConfigValidationResult) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    result.add_error(f"{where}: {what} must be a non-empty column name")
    return None


def _column_list(value: Any, what: str, where: str, result: ConfigValidationResult) -> tuple[str, ...]:
    if value is None:
        return ()
    items = value if isinstance(value, (list, tuple)) else [value]
    columns: list[str] = []
    for item in items:
        name = _column_name(item, what, where, result)
        if name is not None:
            columns.append(name)
    return tuple(columns)


# -----------------------------------------------------------------------------
# Rules
# -----------------------------------------------------------------------------


def _parse_case(raw: Any, where: str, result: ConfigValidationResult) -> ConditionalCase | None:
    if not isinstance(raw, dict):
        result.add_error(f"{where}: each case must be an object")
        return None
    if "then" not in raw:
        result.add_error(f"{where}: case is missing 'then'")
        return None
    then = _scalar(raw["then"], "case 'then'", where, result)

    if "when" in raw:
        when = raw["when"]
        if not isinstance(when, dict) or "column" not in when or "equals" not in when:
            result.add_error(f"{where}: 'when' must be an object with 'column' and 'equals'")
            return None
        column = _column_name(when["column"], "case column", where, result)
        equals = _scalar(when["equals"], "case 'equals'", where, result)
        if column is None:
            return None
        return ConditionalCase(column=column, equals="" if equals is None else str(equals), then=then)

    if "if" in raw:
        m = _CONDITION_RE.match(str(raw["if"] or ""))
        if m is None:
            result.add_error(
                f"{where}: unsupported condition {raw['if']!r} (expected: column == 'value')"
            )
            return None
        return ConditionalCase(column=m.group(1).strip(), equals=m.group(3), then=then)

    result.add_error(f"{where}: case needs 'when' or 'if'")
    return None


def _parse_value_map(raw: Any, where: str, result: ConfigValidationResult) -> tuple[tuple[str, Any], ...]:
    if raw is None:
        return ()
    if not isinstance(raw, dict):
        result.add_error(f"{where}: valueMap must be an object of source value -> target value")
        return ()
    pairs: list[tuple[str, Any]] = []
    for src, dst in raw.items():
        pairs.append((str(src).strip(), _scalar(dst, f"valueMap[{src!r}]", where, result)))
    return tuple(pairs)


def parse_rule(raw: Any, position: int, result: ConfigValidationResult) -> MappingRule | None:
    """
    Parse one rule object. Problems are added to ``result``; returns None
    when the rule cannot be built.
    """
    where = f"rule {position}"
    if not isinstance(raw, dict):
        result.add_error(f"{where}: expected an object, got {type(raw).__name__}")
        return None

    has_target, target_raw = _get(raw, _RULE_KEYS, "targetColumn")
    target = _column_name(target_raw, "targetColumn", where, result) if has_target else None
    if not has_target:
        result.add_error(f"{where}: missing targetColumn")
    if target is not None:
        where = f"rule {position} ({target!r})"

    for key in raw:
        if key not in _KNOWN_RULE_KEYS:
            result.add_warning(f"{where}: unknown key {key!r} ignored")

    _, kind_raw = _get(raw, _RULE_KEYS, "kind")
    kind = _enum(RuleKind, kind_raw if kind_raw is not None else "copy", "kind", where, result)

    _, required = _get(raw, _RULE_KEYS, "required")
    if required is not None and not isinstance(required, bool):
        result.add_error(f"{where}: required must be true or false")
        required = False

    _, coerce_raw = _get(raw, _RULE_KEYS, "coerce")
    coerce = _enum(TypeHint, coerce_raw, "coerce type", where, result)
    _, validate_raw = _get(raw, _RULE_KEYS, "validate")
    validate = _enum(FormatCheck, validate_raw, "format check", where, result)
    _, default_raw = _get(raw, _RULE_KEYS, "defaultValue")
    default_value = _scalar(default_raw, "defaultValue", where, result)
    _, map_raw = _get(raw, _RULE_KEYS, "valueMap")
    value_map = _parse_value_map(map_raw, where, result)
    has_source, source_raw = _get(raw, _RULE_KEYS, "sourceColumn")

    if target is None or kind is None:
        return None

    common: dict[str, Any] = {
        "target_column": target,
        "required": bool(required),
        "coerce": coerce,
        "default_value": default_value,
        "value_map": value_map,
        "validate": validate,
    }

    if kind in (RuleKind.COPY, RuleKind.RENAME, RuleKind.DEFAULT):
        if not has_source:
            result.add_error(f"{where}: {kind.value} rule is missing sourceColumn")
            return None
        if isinstance(source_raw, (list, tuple)):
            result.add_error(f"{where}: {kind.value} rule takes a single sourceColumn")
            return None
        source = _column_name(source_raw, "sourceColumn", where, result)
        if source is None:
            return None
        if kind is RuleKind.DEFAULT:
            if default_value is None:
                result.add_error(f"{where}: default rule is missing defaultValue")
                return None
            return DefaultRule(source_column=source, **common)
        if kind is RuleKind.RENAME:
            return RenameRule(source_column=source, **common)
        return CopyRule(source_column=source, **common)

    if kind is RuleKind.CONSTANT:
        has_value, value_raw = _get(raw, _RULE_KEYS, "constantValue")
        if not has_value:
            result.add_error(f"{where}: constant rule is missing constantValue")
            return None
        if has_source:
            result.add_warning(f"{where}: constant rule ignores sourceColumn")
        return ConstantRule(constant_value=_scalar(value_raw, "constantValue", where, result), **common)

    # RuleKind.COMPUTED
    _, op_raw = _get(raw, _RULE_KEYS, "operation")
    if op_raw is None:
        result.add_error(f"{where}: computed rule is missing operation")
        return None
    operation = _enum(ComputedOp, op_raw, "operation", where, result)
    if operation is None:
        return None

    _, separator = _get(raw, _RULE_KEYS, "separator")
    if separator is not None and not isinstance(separator, str):
        result.add_error(f"{where}: separator must be a string")
        separator = None

    _, cases_raw = _get(raw, _RULE_KEYS, "cases")
    cases: list[ConditionalCase] = []
    if cases_raw is not None:
        if not isinstance(cases_raw, list):
            result.add_error(f"{where}: cases must be a list")
        else:
            for case_raw in cases_raw:
                case = _parse_case(case_raw, where, result)
                if case is not None:
                    cases.append(case)

    return ComputedRule(
        source_columns=_column_list(source_raw, "sourceColumn", where, result),
        operation=operation,
        separator=" " if separator is None else separator,
        cases=tuple(cases),
        **common,
    )


# -----------------------------------------------------------------------------
# Options
# -----------------------------------------------------------------------------


def parse_options(raw: Any, result: ConfigValidationResult) -> MappingOptions:
    if raw is None:
        return MappingOptions()
    if not isinstance(raw, dict):
        result.add_error(f"options must be an object, got {type(raw).__name__}")
        return MappingOptions()

    for key in raw:
        if key not in _KNOWN_OPTION_KEYS:
            result.add_warning(f"options: unknown key {key!r} ignored")

    where = "options"
    kwargs: dict[str, Any] = {}

    _, header_match = _get(raw, _OPTION_KEYS, "headerMatch")
    match = _enum(HeaderMatch, header_match, "headerMatch", where, result)
    if match is not None:
        kwargs["header_match"] = match

    has_id, id_column = _get(raw, _OPTION_KEYS, "idColumn")
    if has_id:
        name = _column_name(id_column, "idColumn", where, result)
        if name is not None:
            kwargs["id_column"] = name

    _, id_strategy = _get(raw, _OPTION_KEYS, "idStrategy")
    strategy = _enum(IdStrategy, id_strategy, "idStrategy", where, result)
    if strategy is not None:
        kwargs["id_strategy"] = strategy

    _, source_columns = _get(raw, _OPTION_KEYS, "sourceColumns")
    kwargs["source_columns"] = _column_list(source_columns, "sourceColumns entry", where, result)
    _, dedupe_keys = _get(raw, _OPTION_KEYS, "dedupeKeys")
    kwargs["dedupe_keys"] = _column_list(dedupe_keys, "dedupeKeys entry", where, result)

    _, sheet = _get(raw, _OPTION_KEYS, "sheetName")
    if sheet is not None:
        if isinstance(sheet, bool) or not isinstance(sheet, (str, int)):
            result.add_error(f"{where}: sheetName must be a sheet name or 0-based index")
        else:
            kwargs["sheet_name"] = sheet

    return MappingOptions(**kwargs)


# -----------------------------------------------------------------------------
# Documents
# -----------------------------------------------------------------------------


def build_mapping_config(
    doc: Any, name: str | None = None, *, source_name: str | None = None
) -> MappingConfig:
    """
    Build and validate a ``MappingConfig`` from a decoded document.

    Raises:
        ConfigError: listing every problem found.
    """
    result = ConfigValidationResult()

    if is_legacy_document(doc):
        doc = compile_legacy_document(doc, result)

    if isinstance(doc, list):
        rules_raw: Any = doc
        options_raw: Any = None
        doc_name = None
    elif isinstance(doc, dict):
        if "rules" not in doc:
            result.add_error("mapping document has no 'rules' list")
        rules_raw = doc.get("rules", [])
        options_raw = doc.get("options")
        doc_name = doc.get("name")
        for key in doc:
            if key not in ("name", "options", "rules", "description", "version"):
                result.add_warning(f"unknown top-level key {key!r} ignored")
    else:
        raise ConfigError(
            f"mapping document must be a list of rules or an object, got {type(doc).__name__}",
            source_name=source_name,
        )

    if not isinstance(rules_raw, list):
        result.add_error("'rules' must be a list")
        rules_raw = []

    options = parse_options(options_raw, result)
    rules = [parse_rule(raw, position, result) for position, raw in enumerate(rules_raw, start=1)]

    if result.is_valid:
        config = MappingConfig(
            rules=tuple(r for r in rules if r is not None),
            options=options,
            name=str(doc_name or name or "mapping"),
        )
        result.merge(validate_mapping_config(config))

    for warning in result.warnings:
        logger.warning("mapping_config_warning", extra={"detail": warning, "source_name": source_name})

    if not result.is_valid:
        raise ConfigError(result.errors, source_name=source_name)

    logger.debug(
        "mapping_config_loaded",
        extra={"mapping_name": config.name, "rules": len(config.rules), "source_name": source_name},
    )
    return config


def parse_mapping_config(
    text: str, fmt: str = "json", name: str | None = None, *, source_name: str | None = None
) -> MappingConfig:
    """Decode JSON (``fmt="json"``) or YAML (``fmt="yaml"``) text and build the config."""
    fmt = fmt.lower()
    try:
        if fmt == "json":
            doc = json.loads(text)
        elif fmt in ("yaml", "yml"):
            doc = yaml.safe_load(text)
        else:
            raise ConfigError(f"unsupported mapping format {fmt!r} (expected json or yaml)", source_name=source_name)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON: {exc}", source_name=source_name) from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML: {exc}", source_name=source_name) from exc

    if doc is None:
        raise ConfigError("mapping document is empty", source_name=source_name)
    return build_mapping_config(doc, name, source_name=source_name)


def load_mapping_config(path: str | Path) -> MappingConfig:
    """
    Load a mapping configuration file (``.json``, ``.yaml`` or ``.yml``).

    Raises:
        FileNotFoundError: if the file does not exist.
        ConfigError: if the document is malformed or inconsistent.
    """
    path = Path(path)
    fmt = "yaml" if path.suffix.lower() in (".yaml", ".yml") else "json"
    text = path.read_text(encoding="utf-8-sig")
    return parse_mapping_config(text, fmt, name=path.stem, source_name=str(path))

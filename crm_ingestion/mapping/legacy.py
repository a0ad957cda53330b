"""
Legacy Dynamics 365 mapping document -> canonical mapping document.

The legacy document is the per-export JSON used before rule lists existed::

    {
      "sheet_name": "Accounts",
      "column_mapping": {"Account Name": "name", "Account Number": "externalId"},
      "id_rules": {"internal_id_field": "id", "external_id_fields": ["externalId"],
                   "preserve_external_format": true},
      "validation_rules": {"required_fields": ["name"], "email_fields": ["email"], ...},
      "type_mapping": {"type": {"Customer": "customer"}},
      "computed_fields": {"stage": {"logic": "use_status_mapping", "default": "prospecting"}},
      "governance_fields": {"sourceSystem": "Dynamics 365 Export"},
      "dedupe_rules": {"primary_key": ["name"]}
    }

Field names inside ``validation_rules``, ``type_mapping``, ``computed_fields``,
``id_rules`` and ``dedupe_rules`` are target column names. The compiled
document is checked by the same loader/validator as a hand-written one.
"""

from __future__ import annotations

from typing import Any

from crm_ingestion.mapping.validator import ConfigValidationResult

LEGACY_MARKER_KEYS = frozenset({"column_mapping", "id_rules", "validation_rules"})

DEFAULT_SOURCE_SYSTEM = "Dynamics 365 Export"
DEFAULT_IMPORT_STATUS = "Imported"
DEFAULT_STAGE = "prospecting"

# validation_rules list -> (rule key, value)
_VALIDATION_FLAGS: dict[str, tuple[str, Any]] = {
    "required_fields": ("required", True),
    "email_fields": ("validate", "email"),
    "phone_fields": ("validate", "phone"),
    "url_fields": ("validate", "url"),
    "state_fields": ("validate", "state"),
    "postal_fields": ("validate", "postal"),
    "decimal_fields": ("coerce", "number"),
    "date_fields": ("coerce", "date"),
}


def is_legacy_document(doc: Any) -> bool:
    return isinstance(doc, dict) and "rules" not in doc and bool(LEGACY_MARKER_KEYS & doc.keys())


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _rule_sources(rule: dict[str, Any]) -> list[str]:
    return [str(s) for s in _as_list(rule.get("source"))]


def _replace_self_reference(
    sources: list[str], target: str, rules: dict[str, dict[str, Any]]
) -> list[str]:
    """A computed field may read the value its own target had before it; inline that rule's sources."""
    existing = rules.get(target)
    if existing is None or target not in sources:
        return sources
    expanded: list[str] = []
    for source in sources:
        if source == target:
            expanded.extend(s for s in _rule_sources(existing) if s not in expanded)
        elif source not in expanded:
            expanded.append(source)
    return expanded


def _compile_column_mapping(
    column_mapping: Any, rules: dict[str, dict[str, Any]], result: ConfigValidationResult
) -> list[str]:
    if not isinstance(column_mapping, dict):
        result.add_error("column_mapping must be an object of source column -> target column")
        return []

    source_columns: list[str] = []
    for source, target in column_mapping.items():
        if not isinstance(target, str) or not target.strip():
            result.add_error(f"column_mapping[{source!r}] must be a non-empty target column name")
            continue
        source_columns.append(source)
        target = target.strip()
        existing = rules.get(target)
        if existing is None:
            rules[target] = {
                "source": source,
                "target": target,
                "kind": "copy" if source.strip() == target else "rename",
            }
            continue
        # Several source columns feed one target: first non-empty wins
        rules[target] = {
            "source": _rule_sources(existing) + [source],
            "target": target,
            "kind": "computed",
            "operation": "coalesce",
        }
    return source_columns


def _compile_type_mapping(
    type_mapping: Any, rules: dict[str, dict[str, Any]], result: ConfigValidationResult
) -> None:
    if type_mapping is None:
        return
    if not isinstance(type_mapping, dict):
        result.add_error("type_mapping must be an object of target column -> value table")
        return
    for target, table in type_mapping.items():
        if not isinstance(table, dict):
            result.add_error(f"type_mapping[{target!r}] must be an object of source value -> target value")
            continue
        rule = rules.get(target)
        if rule is None:
            result.add_warning(f"type_mapping names {target!r}, which no column mapping produces; ignored")
            continue
        rule["valueMap"] = dict(table)


def _compile_computed_fields(
    computed_fields: Any, rules: dict[str, dict[str, Any]], result: ConfigValidationResult
) -> None:
    if computed_fields is None:
        return
    if not isinstance(computed_fields, dict):
        result.add_error("computed_fields must be an object of target column -> computation")
        return

    for target, computation in computed_fields.items():
        if not isinstance(computation, dict):
            result.add_error(f"computed_fields[{target!r}] must be an object")
            continue
        logic = computation.get("logic")
        default = computation.get("default")
        compiled: dict[str, Any]

        if logic == "use_status_mapping":
            compiled = {
                "target": target,
                "kind": "computed",
                "operation": "coalesce",
                "source": _replace_self_reference(["status"], target, rules),
                "default": default or DEFAULT_STAGE,
            }
        elif logic == "coalesce":
            sources = [str(s) for s in _as_list(computation.get("sources"))]
            compiled = {
                "target": target,
                "kind": "computed",
                "operation": "coalesce",
                "source": _replace_self_reference(sources, target, rules),
            }
            if computation.get("is_date"):
                compiled["coerce"] = "date"
        elif logic == "conditional":
            compiled = {
                "target": target,
                "kind": "computed",
                "operation": "conditional",
                "source": [],
                "cases": [
                    {"if": case.get("if"), "then": case.get("then")} if isinstance(case, dict) else case
                    for case in _as_list(computation.get("rules"))
                ],
            }
        else:
            result.add_error(f"computed_fields[{target!r}]: unsupported logic {logic!r}")
            continue

        if default not in (None, "") and "default" not in compiled:
            compiled["default"] = default
        previous = rules.get(target)
        if previous is not None and "valueMap" in previous and "valueMap" not in compiled:
            compiled["valueMap"] = previous["valueMap"]
        _put(rules, target, compiled)


def _put(rules: dict[str, dict[str, Any]], target: str, rule: dict[str, Any]) -> None:
    """Insert or replace a rule at the end so it runs after the targets it reads."""
    rules.pop(target, None)
    rules[target] = rule


def _compile_id_rules(
    id_rules: Any,
    rules: dict[str, dict[str, Any]],
    options: dict[str, Any],
    result: ConfigValidationResult,
) -> list[str]:
    if id_rules is None:
        return []
    if not isinstance(id_rules, dict):
        result.add_error("id_rules must be an object")
        return []

    id_column = str(id_rules.get("internal_id_field") or "id")
    options["idColumn"] = id_column
    options["idStrategy"] = "preserve" if id_rules.get("preserve_external_format") else "normalize"
    if id_rules.get("internal_id_pattern"):
        result.add_warning(
            "id_rules.internal_id_pattern is ignored; rows without an external id keep an empty id"
        )

    external = [str(f) for f in _as_list(id_rules.get("external_id_fields")) if str(f).strip()]
    if external:
        _put(rules, id_column, {
            "target": id_column,
            "kind": "computed",
            "operation": "coalesce",
            "source": _replace_self_reference(external, id_column, rules),
        })
    return external


def _compile_governance(
    governance: Any,
    external_ids: list[str],
    rules: dict[str, dict[str, Any]],
    result: ConfigValidationResult,
) -> None:
    if governance is not None:
        if not isinstance(governance, dict):
            result.add_error("governance_fields must be an object")
        else:
            _put(rules, "sourceSystem", {
                "target": "sourceSystem",
                "kind": "constant",
                "value": governance.get("sourceSystem") or DEFAULT_SOURCE_SYSTEM,
            })
            _put(rules, "importStatus", {
                "target": "importStatus",
                "kind": "constant",
                "value": governance.get("importStatus") or DEFAULT_IMPORT_STATUS,
            })

    # sourceRecordId: mapped value, else externalId, else the external id fields
    existing = rules.get("sourceRecordId")
    if existing is not None and existing.get("kind") not in ("copy", "rename", None):
        return
    sources = _rule_sources(existing) if existing is not None else []
    for name in ("externalId", *external_ids):
        if name in rules and name not in sources:
            sources.append(name)
    if not sources or (existing is not None and sources == _rule_sources(existing)):
        return
    _put(rules, "sourceRecordId", {
        "target": "sourceRecordId",
        "kind": "computed",
        "operation": "coalesce",
        "source": sources,
    })


def _apply_validation_rules(
    validation_rules: Any, rules: dict[str, dict[str, Any]], result: ConfigValidationResult
) -> None:
    if validation_rules is None:
        return
    if not isinstance(validation_rules, dict):
        result.add_error("validation_rules must be an object")
        return
    for list_name, fields in validation_rules.items():
        flag = _VALIDATION_FLAGS.get(list_name)
        if flag is None:
            result.add_warning(f"validation_rules.{list_name} is not supported; ignored")
            continue
        key, value = flag
        for target in _as_list(fields):
            rule = rules.get(target)
            if rule is None:
                result.add_warning(
                    f"validation_rules.{list_name} names {target!r}, which no rule produces; ignored"
                )
                continue
            rule[key] = value


def compile_legacy_document(
    doc: dict[str, Any], result: ConfigValidationResult | None = None
) -> dict[str, Any]:
    """
    Convert a legacy Dynamics mapping document into a canonical document
    ``{"name", "options", "rules"}``.

    Problems are added to ``result`` (a fresh one when omitted); the caller
    decides whether errors are fatal.
    """
    result = result if result is not None else ConfigValidationResult()
    rules: dict[str, dict[str, Any]] = {}
    options: dict[str, Any] = {}

    source_columns = _compile_column_mapping(doc.get("column_mapping", {}), rules, result)
    _compile_type_mapping(doc.get("type_mapping"), rules, result)
    _compile_computed_fields(doc.get("computed_fields"), rules, result)
    external_ids = _compile_id_rules(doc.get("id_rules"), rules, options, result)
    _compile_governance(doc.get("governance_fields"), external_ids, rules, result)
    _apply_validation_rules(doc.get("validation_rules"), rules, result)

    dedupe = doc.get("dedupe_rules")
    if isinstance(dedupe, dict) and dedupe.get("primary_key"):
        options["dedupeKeys"] = [str(k) for k in _as_list(dedupe["primary_key"])]

    account_lookup = doc.get("account_lookup")
    if isinstance(account_lookup, dict) and account_lookup.get("enabled"):
        result.add_warning("account_lookup needs stored accounts and is not supported; ignored")

    if doc.get("sheet_name"):
        options["sheetName"] = doc["sheet_name"]
    options["sourceColumns"] = source_columns

    return {
        "name": doc.get("name") or doc.get("source_file") or "legacy-mapping",
        "options": options,
        "rules": list(rules.values()),
    }

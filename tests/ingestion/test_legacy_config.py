"""Tests for legacy Dynamics mapping documents compiled to rule lists."""

import pytest

from crm_ingestion.domain.types import (
    ComputedOp,
    ComputedRule,
    ConstantRule,
    FormatCheck,
    IdStrategy,
    RenameRule,
)
from crm_ingestion.exceptions import ConfigError
from crm_ingestion.mapping import build_mapping_config, compile_legacy_document, is_legacy_document
from crm_ingestion.mapping.validator import ConfigValidationResult

ACCOUNTS_DOC = {
    "source_file": "accounts.xlsx",
    "sheet_name": "Accounts",
    "column_mapping": {
        "Account Name": "name",
        "Account Number": "externalId",
        "Account ID": "externalId",
        "Email": "email",
        "Relationship Type": "type",
        "Status": "status",
    },
    "type_mapping": {"type": {"Customer": "customer", "Prospect": "prospect"}},
    "computed_fields": {"stage": {"logic": "use_status_mapping"}},
    "id_rules": {
        "internal_id_field": "id",
        "external_id_fields": ["externalId"],
        "preserve_external_format": True,
    },
    "validation_rules": {"required_fields": ["name"], "email_fields": ["email"]},
    "governance_fields": {"sourceSystem": "Dynamics 365 Export"},
    "dedupe_rules": {"primary_key": ["name"]},
}


def _compile(doc):
    result = ConfigValidationResult()
    compiled = compile_legacy_document(doc, result)
    return compiled, result


def _rules_by_target(compiled):
    return {rule["target"]: rule for rule in compiled["rules"]}


class TestIsLegacyDocument:
    def test_marker_keys(self):
        assert is_legacy_document({"column_mapping": {}})
        assert is_legacy_document({"id_rules": {}})

    def test_canonical_documents_are_not_legacy(self):
        assert not is_legacy_document({"rules": [], "column_mapping": {}})
        assert not is_legacy_document([{"source": "a", "target": "b"}])
        assert not is_legacy_document({"name": "x"})


class TestCompileLegacyDocument:
    def test_column_mapping_kinds(self):
        compiled, result = _compile({"column_mapping": {"name": "name", "Account Name": "legalName"}})
        rules = _rules_by_target(compiled)
        assert rules["name"]["kind"] == "copy"
        assert rules["legalName"]["kind"] == "rename"
        assert compiled["options"]["sourceColumns"] == ["name", "Account Name"]
        assert result.is_valid

    def test_several_sources_for_one_target_coalesce(self):
        compiled, _ = _compile({"column_mapping": {"Account Number": "externalId", "Account ID": "externalId"}})
        rule = _rules_by_target(compiled)["externalId"]
        assert rule["operation"] == "coalesce"
        assert rule["source"] == ["Account Number", "Account ID"]

    def test_type_mapping_without_rule_warns(self):
        compiled, result = _compile({
            "column_mapping": {"Account Name": "name"},
            "type_mapping": {"industry": {"Tech": "technology"}},
        })
        assert result.is_valid
        assert any("industry" in w for w in result.warnings)

    def test_status_mapping_reads_prior_value_of_its_target(self):
        compiled, _ = _compile({
            "column_mapping": {"Status Reason": "status"},
            "computed_fields": {"status": {"logic": "use_status_mapping"}},
        })
        rule = _rules_by_target(compiled)["status"]
        assert rule["source"] == ["Status Reason"]
        assert rule["default"] == "prospecting"

    def test_coalesce_date(self):
        compiled, _ = _compile({
            "column_mapping": {"Est. Close Date": "estimatedClose", "Actual Close Date": "actualClose"},
            "computed_fields": {
                "closeDate": {"logic": "coalesce", "sources": ["actualClose", "estimatedClose"], "is_date": True},
            },
        })
        rule = compiled["rules"][-1]
        assert rule["target"] == "closeDate"
        assert rule["coerce"] == "date"
        assert rule["source"] == ["actualClose", "estimatedClose"]

    def test_conditional(self):
        compiled, _ = _compile({
            "column_mapping": {"Status": "status"},
            "computed_fields": {
                "probability": {
                    "logic": "conditional",
                    "rules": [{"if": "status == 'Won'", "then": 100}],
                    "default": 50,
                },
            },
        })
        rule = _rules_by_target(compiled)["probability"]
        assert rule["cases"] == [{"if": "status == 'Won'", "then": 100}]
        assert rule["default"] == 50

    def test_unknown_logic_is_an_error(self):
        _, result = _compile({
            "column_mapping": {"Account Name": "name"},
            "computed_fields": {"score": {"logic": "lookup_account"}},
        })
        assert result.errors == ["computed_fields['score']: unsupported logic 'lookup_account'"]

    def test_id_rules_default_to_normalize(self):
        compiled, result = _compile({
            "column_mapping": {"Lead ID": "leadId"},
            "id_rules": {"external_id_fields": ["leadId"], "internal_id_pattern": "lead_{uuid}"},
        })
        assert compiled["options"]["idColumn"] == "id"
        assert compiled["options"]["idStrategy"] == "normalize"
        assert _rules_by_target(compiled)["id"]["source"] == ["leadId"]
        assert any("internal_id_pattern" in w for w in result.warnings)

    def test_governance_defaults(self):
        compiled, _ = _compile({"column_mapping": {"Account Name": "name"}, "governance_fields": {}})
        rules = _rules_by_target(compiled)
        assert rules["sourceSystem"]["value"] == "Dynamics 365 Export"
        assert rules["importStatus"]["value"] == "Imported"
        assert "sourceRecordId" not in rules

    def test_validation_problems_warn(self):
        _, result = _compile({
            "column_mapping": {"Account Name": "name"},
            "validation_rules": {"required_fields": ["name", "ownerId"], "currency_fields": ["revenue"]},
        })
        assert result.is_valid
        assert len(result.warnings) == 2

    def test_account_lookup_warns(self):
        _, result = _compile({"column_mapping": {"Account": "accountName"}, "account_lookup": {"enabled": True}})
        assert any("account_lookup" in w for w in result.warnings)

    def test_name_fallbacks(self):
        assert _compile({"column_mapping": {}, "name": "contacts"})[0]["name"] == "contacts"
        assert _compile({"column_mapping": {}, "source_file": "leads.xlsx"})[0]["name"] == "leads.xlsx"
        assert _compile({"column_mapping": {}})[0]["name"] == "legacy-mapping"


class TestBuildFromLegacy:
    def test_full_document(self):
        config = build_mapping_config(ACCOUNTS_DOC)
        assert config.name == "accounts.xlsx"
        assert config.target_columns == (
            "name", "externalId", "email", "type", "status",
            "stage", "id", "sourceSystem", "importStatus", "sourceRecordId",
        )
        assert config.options.id_strategy is IdStrategy.PRESERVE
        assert config.options.dedupe_keys == ("name",)
        assert config.options.sheet_name == "Accounts"

        rules = {rule.target_column: rule for rule in config.rules}
        assert isinstance(rules["name"], RenameRule) and rules["name"].required
        assert rules["email"].validate is FormatCheck.EMAIL
        assert rules["type"].value_map == (("Customer", "customer"), ("Prospect", "prospect"))
        assert isinstance(rules["externalId"], ComputedRule)
        assert rules["stage"].operation is ComputedOp.COALESCE
        assert rules["stage"].default_value == "prospecting"
        assert rules["id"].source_columns == ("externalId",)
        assert isinstance(rules["sourceSystem"], ConstantRule)
        assert rules["sourceRecordId"].source_columns == ("externalId",)

    def test_errors_raise_config_error(self):
        with pytest.raises(ConfigError) as exc_info:
            build_mapping_config({"column_mapping": ["Account Name"]})
        assert "column_mapping must be an object" in exc_info.value.errors[0]

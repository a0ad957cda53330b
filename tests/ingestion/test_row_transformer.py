"""Tests for the row transformer: ordered rules, error collection, identifier handling."""

import pytest

from crm_ingestion.domain.types import (
    ComputedOp,
    ComputedRule,
    ConstantRule,
    CopyRule,
    IdStrategy,
    InvalidRow,
    MappingConfig,
    MappingOptions,
    SourceRow,
    TypeHint,
    ValidRow,
)
from crm_ingestion.mapping.row_transformer import normalize_identifier, transform_row


def _config(*rules, **options) -> MappingConfig:
    return MappingConfig(rules=tuple(rules), options=MappingOptions(**options))


class TestTransformRow:
    def test_valid_row_keeps_rule_order(self):
        config = _config(
            CopyRule(source_column="HT Account Number", target_column="accountNumber"),
            CopyRule(source_column="Account Name", target_column="name"),
            ConstantRule(constant_value="Imported", target_column="importStatus"),
        )
        outcome = transform_row(config, SourceRow({"Account Name": "Acme", "HT Account Number": "A-1"}), 0)
        assert isinstance(outcome, ValidRow)
        assert outcome.is_valid
        assert list(outcome.target_row) == ["accountNumber", "name", "importStatus"]
        assert outcome.target_row == {"accountNumber": "A-1", "name": "Acme", "importStatus": "Imported"}

    def test_all_fatal_errors_collected(self):
        config = _config(
            CopyRule(source_column="Account Name", target_column="name", required=True),
            CopyRule(source_column="Revenue", target_column="annualRevenue", coerce=TypeHint.NUMBER, required=True),
            CopyRule(source_column="Email", target_column="email"),
        )
        outcome = transform_row(config, SourceRow({"Account Name": "", "Revenue": "lots", "Email": "x"}), 4)
        assert isinstance(outcome, InvalidRow)
        assert outcome.row_index == 4
        assert [e.target_column for e in outcome.errors] == ["name", "annualRevenue"]
        assert outcome.message == "name is required; annualRevenue: cannot parse number from 'lots'"

    def test_warnings_do_not_invalidate(self):
        config = _config(
            CopyRule(source_column="Account Name", target_column="name", required=True),
            CopyRule(source_column="Employees", target_column="employees", coerce=TypeHint.NUMBER),
        )
        outcome = transform_row(config, SourceRow({"Account Name": "Acme", "Employees": "many"}), 0)
        assert isinstance(outcome, ValidRow)
        assert outcome.target_row["employees"] == ""
        assert len(outcome.warnings) == 1
        assert outcome.warnings[0].code == "INVALID_NUMBER"

    def test_invalid_row_keeps_warnings(self):
        config = _config(
            CopyRule(source_column="Account Name", target_column="name", required=True),
            CopyRule(source_column="Employees", target_column="employees", coerce=TypeHint.NUMBER),
        )
        outcome = transform_row(config, SourceRow({"Account Name": "", "Employees": "many"}), 0)
        assert isinstance(outcome, InvalidRow)
        assert len(outcome.errors) == 1
        assert len(outcome.warnings) == 1

    def test_computed_reads_earlier_targets(self):
        config = _config(
            CopyRule(source_column="First Name", target_column="firstName"),
            CopyRule(source_column="Last Name", target_column="lastName"),
            ComputedRule(source_columns=("firstName", "lastName"), operation=ComputedOp.CONCAT, target_column="fullName"),
        )
        outcome = transform_row(config, SourceRow({"First Name": "Jane", "Last Name": "Doe"}), 0)
        assert outcome.target_row["fullName"] == "Jane Doe"


class TestIdentifierHandling:
    def test_preserved_exactly(self):
        config = _config(CopyRule(source_column="Account ID", target_column="id"))
        outcome = transform_row(config, SourceRow({"Account ID": "  ACC-00042 "}), 0)
        assert outcome.target_row["id"] == "ACC-00042"

    def test_normalized(self):
        config = _config(
            CopyRule(source_column="Account ID", target_column="id"),
            id_strategy=IdStrategy.NORMALIZE,
        )
        outcome = transform_row(config, SourceRow({"Account ID": "ACC-000 42"}), 0)
        assert outcome.target_row["id"] == "ACC00042"

    def test_custom_id_column(self):
        config = _config(
            CopyRule(source_column="Account ID", target_column="externalKey"),
            CopyRule(source_column="Account Name", target_column="id"),
            id_column="externalKey",
            id_strategy=IdStrategy.NORMALIZE,
        )
        outcome = transform_row(config, SourceRow({"Account ID": "A-1", "Account Name": "Acme Corp"}), 0)
        assert outcome.target_row == {"externalKey": "A1", "id": "Acme Corp"}

    def test_empty_id_stays_empty(self):
        config = _config(
            CopyRule(source_column="Account ID", target_column="id"),
            id_strategy=IdStrategy.NORMALIZE,
        )
        outcome = transform_row(config, SourceRow({"Account ID": ""}), 0)
        assert outcome.target_row["id"] == ""

    @pytest.mark.parametrize("raw", ["---", "#", " / "])
    def test_required_id_with_no_word_characters_is_invalid(self, raw):
        config = _config(
            CopyRule(source_column="Account ID", target_column="id", required=True),
            CopyRule(source_column="Account Name", target_column="name"),
            id_strategy=IdStrategy.NORMALIZE,
        )
        outcome = transform_row(config, SourceRow({"Account ID": raw, "Account Name": "Acme"}), 3)
        assert isinstance(outcome, InvalidRow)
        (error,) = outcome.errors
        assert error.code == "MISSING_REQUIRED_FIELD"
        assert error.message == "id is required"
        assert error.raw_value == raw.strip()

    def test_optional_id_with_no_word_characters_left_empty(self):
        config = _config(
            CopyRule(source_column="Account ID", target_column="id"),
            id_strategy=IdStrategy.NORMALIZE,
        )
        outcome = transform_row(config, SourceRow({"Account ID": "---"}), 0)
        assert isinstance(outcome, ValidRow)
        assert outcome.target_row["id"] == ""


class TestNormalizeIdentifier:
    @pytest.mark.parametrize(
        "value,expected",
        [("ACC-001", "ACC001"), ("a b.c", "abc"), ("A_1", "A_1"), ("", "")],
    )
    def test_normalize(self, value, expected):
        assert normalize_identifier(value, IdStrategy.NORMALIZE) == expected

    def test_preserve(self):
        assert normalize_identifier("ACC-001", IdStrategy.PRESERVE) == "ACC-001"

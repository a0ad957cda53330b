"""Tests for field format validators."""

import pytest

from crm_ingestion.domain.types import FormatCheck
from crm_ingestion.domain.validators import (
    FORMAT_VALIDATORS,
    check_format,
    validate_email,
    validate_phone,
    validate_postal_code,
    validate_state,
    validate_url,
)


class TestValidateEmail:
    @pytest.mark.parametrize("value", ["jane@acme.com", " j.doe+crm@mail.acme.co.uk "])
    def test_valid(self, value):
        assert validate_email(value)

    @pytest.mark.parametrize("value", ["jane", "jane@acme", "jane doe@acme.com", "@acme.com"])
    def test_invalid(self, value):
        assert not validate_email(value)


class TestValidatePhone:
    @pytest.mark.parametrize("value", ["555-123-4567", "+1 (555) 123 4567", "5551234567"])
    def test_valid(self, value):
        assert validate_phone(value)

    @pytest.mark.parametrize("value", ["call me", "555-CALL", "555.123.4567"])
    def test_invalid(self, value):
        assert not validate_phone(value)


class TestValidateUrl:
    @pytest.mark.parametrize("value", ["https://acme.com", "http://acme.com/about?x=1", "acme.com", "acme-health.io"])
    def test_valid(self, value):
        assert validate_url(value)

    @pytest.mark.parametrize("value", ["acme", "not a url", "http//acme"])
    def test_invalid(self, value):
        assert not validate_url(value)


class TestValidateState:
    def test_two_letter_codes(self):
        assert validate_state("CA")
        assert validate_state(" ny ")

    @pytest.mark.parametrize("value", ["California", "C", "C4"])
    def test_invalid(self, value):
        assert not validate_state(value)


class TestValidatePostalCode:
    @pytest.mark.parametrize("value", ["94105", "94105-1234", "K1A 0B1", "SW1A 1AA"])
    def test_valid(self, value):
        assert validate_postal_code(value)

    @pytest.mark.parametrize("value", ["941#05", "N/A"])
    def test_invalid(self, value):
        assert not validate_postal_code(value)


class TestCheckFormat:
    def test_every_check_has_a_validator(self):
        assert set(FORMAT_VALIDATORS) == set(FormatCheck)

    @pytest.mark.parametrize("check", list(FormatCheck))
    def test_empty_always_accepted(self, check):
        assert check_format("", check)
        assert check_format("   ", check)

    def test_dispatch(self):
        assert check_format("jane@acme.com", FormatCheck.EMAIL)
        assert not check_format("jane@acme.com", FormatCheck.STATE)

"""
Tests for the comparison-key helpers.

Suppression matching depends on every code path producing byte-identical keys,
so these pin the exact normalization rules.
"""

import hashlib

import pytest

from leadverify.services.normalizer import (
    company_key,
    compute_name_company_hash,
    country_key,
    email_lower,
    is_present,
    normalized_keys,
    split_full_name,
    to_key,
)


@pytest.mark.unit
class TestKeys:
    def test_to_key_collapses_whitespace(self):
        assert to_key("  Jane \t  van   DYKE ") == "jane van dyke"

    def test_to_key_empty_inputs(self):
        assert to_key(None) == ""
        assert to_key("   ") == ""

    def test_company_key_uses_same_rule(self):
        for value in ("ACME  Corp", " acme corp ", "Acme\nCorp"):
            assert company_key(value) == to_key(value) == "acme corp"

    def test_country_key_strips_periods(self):
        assert country_key(" U.S.A. ") == "usa"
        assert country_key(None) == ""

    def test_email_lower(self):
        assert email_lower("  Jane.Doe@Acme.COM ") == "jane.doe@acme.com"

    def test_is_present(self):
        assert is_present("x")
        assert not is_present("  ")
        assert not is_present(None)
        assert is_present(0)


@pytest.mark.unit
class TestNameCompanyHash:
    """The hash is only defined when all three parts are present."""

    def test_hash_is_sha256_of_normalized_payload(self):
        expected = hashlib.sha256("john smith|acme corp".encode("utf-8")).hexdigest()

        assert compute_name_company_hash("John", "Smith", "ACME Corp") == expected

    def test_hash_stable_across_case_and_whitespace(self):
        a = compute_name_company_hash("John", "Smith", "ACME Corp")
        b = compute_name_company_hash(" john ", "  SMITH", "acme   corp ")

        assert a == b

    def test_field_boundaries_do_not_collide(self):
        a = compute_name_company_hash("John", "Smith", "Acme Corp")
        b = compute_name_company_hash("John", "Smith Acme", "Corp")

        assert a != b

    @pytest.mark.parametrize(
        "first,last,company",
        [
            ("John", None, "Acme"),
            (None, "Smith", "Acme"),
            ("John", "Smith", None),
            ("John", "Smith", "   "),
            ("", "", ""),
        ],
    )
    def test_partial_input_gives_no_hash(self, first, last, company):
        assert compute_name_company_hash(first, last, company) is None


@pytest.mark.unit
class TestSplitAndBundle:
    def test_split_full_name(self):
        assert split_full_name("Jane van Dyke") == ("Jane", "van Dyke")
        assert split_full_name("Cher") == ("Cher", None)
        assert split_full_name("  ") == (None, None)

    def test_normalized_keys_bundle(self):
        keys = normalized_keys("Jane@Acme.com", "Jane", "Doe", "Acme", "U.K.")

        assert keys.email_lower == "jane@acme.com"
        assert keys.first_name_norm == "jane"
        assert keys.last_name_norm == "doe"
        assert keys.company_key == "acme"
        assert keys.contact_country_key == "uk"
        assert keys.name_company_hash == compute_name_company_hash("Jane", "Doe", "Acme")

    def test_normalized_keys_blank_fields_are_none(self):
        keys = normalized_keys(None, "Jane", None, None, "")

        assert keys.email_lower is None
        assert keys.last_name_norm is None
        assert keys.company_key is None
        assert keys.contact_country_key is None
        assert keys.name_company_hash is None

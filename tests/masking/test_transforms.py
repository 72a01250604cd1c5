"""
Tests for field masking transforms.

Every transform is total: malformed input yields a fixed sentinel.
"""

from decimal import Decimal

import pytest

from authz.masking.transforms import (
    TRANSFORMS,
    approximate_magnitude,
    mask_bank_account,
    mask_document_id,
    mask_email,
    mask_financial,
    mask_generic,
    mask_percentage,
    mask_personal_id,
    mask_phone,
    redact,
    redact_link,
    round_down_to_step,
)


class TestMaskEmail:

    @pytest.mark.parametrize("value,expected", [
        ("john.doe@example.com", "j***@example.com"),
        ("a@b.co", "a***@b.co"),
        ("@example.com", "***@example.com"),
        ("no-at-sign", "***@***"),
        ("", "***@***"),
        (None, "***@***"),
    ])
    def test_mask_email(self, value, expected):
        assert mask_email(value) == expected

    def test_hide_domain(self):
        assert mask_email("john.doe@example.com", show_domain=False) == "j***@***"


class TestMaskPhone:

    def test_collapses_middle(self):
        assert mask_phone("+855-12-345-678") == "+85-******-678"

    @pytest.mark.parametrize("value,expected", [
        ("0123456789", "012-****-789"),
        ("1234567", "123-*-567"),
        ("+1 (555) 123-4567", "+15-******-567"),
        ("12345678901234567890", "123-******-890"),
        ("12345", "***-***-345"),
        ("1234", "***-***-234"),
        ("123", "***"),
        ("", "***-***-***"),
        (None, "***-***-***"),
    ])
    def test_mask_phone(self, value, expected):
        assert mask_phone(value) == expected

    def test_numeric_input(self):
        assert mask_phone(85512345678) == "855-*****-678"


class TestMaskFinancial:

    @pytest.mark.parametrize("value,expected", [
        (1234567, "$1,XXX,XXX"),
        (1234567.89, "$1,XXX,XXX"),
        ("1,234,567", "$1,XXX,XXX"),
        ("$50000", "$5X,XXX"),
        (Decimal("999"), "$9XX"),
        (10, "$1X"),
        (7, "$X"),
        (0, "$X"),
        (-25000, "-$2X,XXX"),
    ])
    def test_magnitude_preserved(self, value, expected):
        assert mask_financial(value) == expected

    @pytest.mark.parametrize("value", [
        "abc", "", None, True, float("nan"), float("inf"), "NaN", [1], {"amount": 1},
        "1e5000", "1e999999999", Decimal("-1E+31"),
    ])
    def test_sentinel(self, value):
        assert mask_financial(value) == "$***,***"

    def test_hide_first_digit(self):
        assert mask_financial(1234567, show_first_digit=False) == "$***,***"


class TestIdentifiers:

    @pytest.mark.parametrize("value,expected", [
        (25.5, "2XXX%"),
        ("15", "1X%"),
        (7, "7%"),
        ("", "XX%"),
        (None, "XX%"),
    ])
    def test_mask_percentage(self, value, expected):
        assert mask_percentage(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("123-456-7890", "********7890"),
        ("AB1234", "**1234"),
        ("1234", "1234"),
        ("123", "***"),
        ("", "***-***-***"),
        (None, "***-***-***"),
    ])
    def test_mask_personal_id(self, value, expected):
        assert mask_personal_id(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("1234567890", "******7890"),
        (1234567890, "******7890"),
        ("123", "***"),
        ("", "***"),
        (None, "***"),
    ])
    def test_mask_bank_account(self, value, expected):
        assert mask_bank_account(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("DOC-2024-001234", "DOC-****-**1234"),
        ("DOC-12", "DOC-12"),
        ("A-B-C-123456", "A-*-*-**3456"),
        ("ABCDEFGH", "AB****GH"),
        ("ABCD", "ABCD"),
        ("ABC", "***"),
        ("", "***-***"),
        (None, "***-***"),
    ])
    def test_mask_document_id(self, value, expected):
        assert mask_document_id(value) == expected

    @pytest.mark.parametrize("value,visible,expected", [
        ("ACC-998877", 4, "******8877"),
        ("ACC-998877", 2, "********77"),
        ("1234", 4, "****"),
        ("12", 4, "**"),
        ("secret", 0, "******"),
        ("secret", -3, "******"),
        ("", 4, "***"),
        (None, 4, "***"),
    ])
    def test_mask_generic(self, value, visible, expected):
        assert mask_generic(value, visible_chars=visible) == expected


class TestRecordKindTransforms:

    @pytest.mark.parametrize("value,expected", [
        (1234567, 1000000),
        (987654.32, 900000),
        ("45,000", 40000),
        (9, 9),
        (0, 0),
        (-2500, -2000),
        ("n/a", "***"),
        ("1e5000", "***"),
        ("1e30", 10 ** 30),
        (None, "***"),
    ])
    def test_approximate_magnitude(self, value, expected):
        assert approximate_magnitude(value) == expected

    @pytest.mark.parametrize("value,expected", [
        (23.7, 20),
        ("12.5", 10),
        (5, 5),
        (4.99, 0),
        (-3, -5),
        ("lots", "***"),
    ])
    def test_round_down_to_step(self, value, expected):
        assert round_down_to_step(value) == expected

    def test_round_down_custom_step(self):
        assert round_down_to_step(37, step=10) == 30

    def test_redactions(self):
        assert redact("anything") == "***"
        assert redact_link("https://files.example.com/a.pdf") == "[REDACTED]"


def test_registry_names():
    assert set(TRANSFORMS) == {
        "email", "phone", "financial", "percentage", "personal_id", "bank_account",
        "document_id", "generic", "approximate_magnitude", "round_down_to_step",
        "redact", "redact_link",
    }


@pytest.mark.parametrize("name", sorted(TRANSFORMS))
@pytest.mark.parametrize("value", [
    None, "", "garbage", 0, -1, 3.5, float("nan"), True, [], {}, "1e5000", "-1e999999999",
])
def test_transforms_never_raise(name, value):
    TRANSFORMS[name](value)

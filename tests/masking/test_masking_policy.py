"""
Tests for the role masking policy and the sensitive field catalog.
"""

import pytest

from authz.exceptions import PolicyConfigurationError
from authz.masking.catalog import FieldRule, SensitiveFieldCatalog
from authz.masking.policy import FieldCategory, MaskingFlags, policy_for
from authz.rbac.roles import Role

T, F = True, False


# ============================================================================
# Masking Policy
# ============================================================================

class TestPolicyFor:
    """The masking table by role and ownership."""

    @pytest.mark.parametrize("role,is_owner,expected", [
        ("SUPER_ADMIN", False, (F, F, F, F, F)),
        ("SUPER_ADMIN", True, (F, F, F, F, F)),
        ("ADMIN", False, (F, F, F, T, F)),
        ("ADVISOR", False, (F, F, F, T, F)),
        ("ADVISOR", True, (F, F, F, T, F)),
        ("SUPPORT", False, (T, T, T, T, T)),
        ("SUPPORT", True, (T, T, T, T, T)),
        ("SME", True, (F, F, F, F, F)),
        ("SME", False, (T, T, T, T, T)),
        ("INVESTOR", True, (F, F, F, F, F)),
        ("INVESTOR", False, (T, T, T, T, T)),
        ("ROOT", False, (T, T, T, T, T)),
        (None, True, (T, T, T, T, T)),
    ])
    def test_table(self, role, is_owner, expected):
        flags = policy_for(role, is_owner)
        assert (
            flags.mask_email,
            flags.mask_phone,
            flags.mask_financial,
            flags.mask_personal,
            flags.mask_documents,
        ) == expected

    def test_accepts_enum_and_lowercase(self):
        assert policy_for(Role.SUPPORT) == policy_for("support")


class TestMaskingFlags:

    def test_masks_by_category(self):
        flags = policy_for("ADMIN")
        assert flags.masks(FieldCategory.PERSONAL) is True
        assert flags.masks("email") is False

    def test_unknown_category_is_masked(self):
        assert MaskingFlags.unmasked().masks("biometrics") is True

    def test_any(self):
        assert MaskingFlags.all_masked().any() is True
        assert MaskingFlags.unmasked().any() is False

    def test_to_dict(self):
        assert MaskingFlags.unmasked().to_dict() == {
            "mask_email": False,
            "mask_phone": False,
            "mask_financial": False,
            "mask_personal": False,
            "mask_documents": False,
        }


# ============================================================================
# Sensitive Field Catalog
# ============================================================================

@pytest.fixture
def catalog():
    return SensitiveFieldCatalog(
        [
            FieldRule("email", FieldCategory.EMAIL, "email"),
            FieldRule("amount", FieldCategory.FINANCIAL, "financial"),
        ],
        {
            "deal": [
                FieldRule("amount", FieldCategory.FINANCIAL, "approximate_magnitude", "amountApproximate"),
                FieldRule("valuation", FieldCategory.FINANCIAL, "redact"),
            ],
        },
    )


class TestSensitiveFieldCatalog:

    def test_defaults(self, catalog):
        assert [r.path for r in catalog.rules_for()] == ["email", "amount"]

    def test_kind_override_replaces_default(self, catalog):
        rules = {r.path: r for r in catalog.rules_for("deal")}
        assert rules["amount"].transform == "approximate_magnitude"
        assert rules["amount"].marker == "amountApproximate"
        assert rules["valuation"].transform == "redact"
        assert rules["email"].transform == "email"

    def test_unknown_kind_uses_defaults(self, catalog):
        assert catalog.rules_for("spaceship") == catalog.rules_for()

    def test_from_config(self):
        built = SensitiveFieldCatalog.from_config({
            "defaults": {"phone": {"category": "phone", "transform": "phone"}},
            "kinds": {"investor": {"preferences.minInvestment": {"category": "financial", "transform": "redact"}}},
        })
        assert built.kinds == ["investor"]
        nested = built.rules_for("investor")[-1]
        assert nested.segments == ("preferences", "minInvestment")

    def test_to_dict(self, catalog):
        data = catalog.to_dict()
        assert data["kinds"]["deal"]["amount"] == {
            "category": "financial",
            "transform": "approximate_magnitude",
            "marker": "amountApproximate",
        }

    def test_owner_fields(self):
        built = SensitiveFieldCatalog.from_config({
            "defaults": {},
            "owner_fields": {"deal": ["createdBy", "sme.userId"]},
        })
        assert built.owner_fields_for("deal") == ("createdBy", "sme.userId")
        assert built.owner_fields_for("sme") == ("userId", "id")
        assert built.owner_fields_for() == ("userId", "id")
        assert built.to_dict()["owner_fields"] == {"deal": ["createdBy", "sme.userId"]}

    @pytest.mark.parametrize("owner_fields", [
        {"deal": "createdBy"},
        {"deal": []},
        {"deal": ["a.b.c"]},
        {"deal": [".createdBy"]},
        ["deal"],
    ])
    def test_malformed_owner_fields(self, owner_fields):
        with pytest.raises(PolicyConfigurationError):
            SensitiveFieldCatalog.from_config({"owner_fields": owner_fields})

    def test_duplicate_rule_rejected(self):
        with pytest.raises(PolicyConfigurationError, match="Duplicate field rule"):
            SensitiveFieldCatalog([
                FieldRule("email", FieldCategory.EMAIL, "email"),
                FieldRule("email", FieldCategory.EMAIL, "redact"),
            ])

    @pytest.mark.parametrize("path", ["", ".email", "email.", "a.b.c"])
    def test_invalid_paths_rejected(self, path):
        with pytest.raises(PolicyConfigurationError):
            FieldRule(path, FieldCategory.EMAIL, "email")

    def test_unknown_transform_rejected(self):
        with pytest.raises(PolicyConfigurationError, match="Unknown transform"):
            FieldRule("email", FieldCategory.EMAIL, "shred")

    @pytest.mark.parametrize("data", [
        "email",
        {"category": "secret", "transform": "email"},
        {"transform": "email"},
    ])
    def test_malformed_config_entry(self, data):
        with pytest.raises(PolicyConfigurationError):
            FieldRule.from_config("email", data)

"""
Tests for record and response masking.
"""

import copy
import json

import pytest

from authz.config_loader import reset_access_policy
from authz.masking.catalog import FieldRule, SensitiveFieldCatalog
from authz.masking.policy import FieldCategory, MaskingFlags, policy_for
from authz.masking.presenters import (
    apply_masking,
    is_record_owner,
    mask_array,
    mask_audit_log,
    mask_record,
    mask_response,
)
from authz.metrics import get_counter, reset_authz_metrics


@pytest.fixture(autouse=True)
def reset_globals():
    reset_access_policy()
    reset_authz_metrics()
    yield
    reset_access_policy()
    reset_authz_metrics()


@pytest.fixture
def sme():
    return {
        "id": "sme-1",
        "userId": "user-sme",
        "name": "Mekong Foods",
        "contactEmail": "owner@mekong.example",
        "contactNumber": "+855-12-345-678",
        "fundingRequired": 250000,
        "revenue": 1200000,
        "ownerNationalId": "NID-1234-5678",
        "taxId": "",
        "sector": "agriculture",
    }


@pytest.fixture
def deal():
    return {
        "id": "deal-1",
        "userId": "user-sme",
        "title": "Series A",
        "amount": 1234567,
        "equity": 23.7,
        "valuation": 9000000,
    }


@pytest.fixture
def investor():
    return {
        "id": "inv-1",
        "userId": "user-inv",
        "email": "jane@fund.example",
        "portfolioValue": 5000000,
        "preferences": {"minInvestment": 50000, "maxInvestment": 500000, "sectors": ["fintech"]},
    }


# ============================================================================
# apply_masking
# ============================================================================

class TestApplyMasking:

    def test_support_masks_default_fields(self, sme):
        masked = apply_masking(sme, policy_for("SUPPORT"))
        assert masked["contactEmail"] == "o***@mekong.example"
        assert masked["contactNumber"] == "+85-******-678"
        assert masked["fundingRequired"] == "$2XX,XXX"
        assert masked["ownerNationalId"] == "*********5678"
        assert masked["name"] == "Mekong Foods"
        assert masked["sector"] == "agriculture"

    def test_empty_values_skipped(self, sme):
        masked = apply_masking(sme, policy_for("SUPPORT"))
        assert masked["taxId"] == ""
        masked = apply_masking({"email": None}, policy_for("SUPPORT"))
        assert masked == {"email": None}

    def test_absent_fields_not_added(self):
        assert apply_masking({"name": "x"}, policy_for("SUPPORT")) == {"name": "x"}

    def test_admin_masks_personal_only(self, sme):
        masked = apply_masking(sme, policy_for("ADMIN"))
        assert masked["contactEmail"] == sme["contactEmail"]
        assert masked["revenue"] == sme["revenue"]
        assert masked["ownerNationalId"] == "*********5678"

    def test_does_not_mutate_input(self, investor):
        original = copy.deepcopy(investor)
        apply_masking(investor, policy_for("SUPPORT"), kind="investor")
        assert investor == original

    def test_unmasked_flags_return_copy(self, sme):
        masked = apply_masking(sme, MaskingFlags.unmasked())
        assert masked == sme
        assert masked is not sme

    def test_deterministic(self, sme, deal):
        flags = policy_for("SUPPORT")
        for record, kind in ((sme, "sme"), (deal, "deal"), (sme, None)):
            first = json.dumps(apply_masking(record, flags, kind=kind), sort_keys=True)
            second = json.dumps(apply_masking(record, flags, kind=kind), sort_keys=True)
            assert first == second

    @pytest.mark.parametrize("value", [None, "text", 42, ["a", "b"]])
    def test_non_mapping_returned_unchanged(self, value):
        assert apply_masking(value, policy_for("SUPPORT")) is value

    def test_custom_catalog(self):
        catalog = SensitiveFieldCatalog([FieldRule("secret", FieldCategory.PERSONAL, "redact")])
        masked = apply_masking({"secret": "x", "email": "a@b.c"}, policy_for("ADMIN"), catalog=catalog)
        assert masked == {"secret": "***", "email": "a@b.c"}


class TestRecordKinds:

    def test_deal(self, deal):
        masked = apply_masking(deal, policy_for("SUPPORT"), kind="deal")
        assert masked["amount"] == 1000000
        assert masked["amountApproximate"] is True
        assert masked["equity"] == 20
        assert masked["equityApproximate"] is True
        assert masked["valuation"] == "***"
        assert masked["title"] == "Series A"

    def test_deal_without_kind_uses_defaults(self, deal):
        masked = apply_masking(deal, policy_for("SUPPORT"))
        assert masked["amount"] == "$1,XXX,XXX"
        assert masked["equity"] == "2XXX%"
        assert "amountApproximate" not in masked

    def test_sme(self, sme):
        masked = apply_masking(sme, policy_for("SUPPORT"), kind="sme")
        assert masked["fundingRequired"] == 200000
        assert masked["revenue"] == "***"

    def test_investor_nested_preferences(self, investor):
        masked = apply_masking(investor, policy_for("SUPPORT"), kind="investor")
        assert masked["portfolioValue"] == "***"
        assert masked["preferences"] == {
            "minInvestment": "***",
            "maxInvestment": "***",
            "sectors": ["fintech"],
        }
        assert investor["preferences"]["minInvestment"] == 50000

    def test_nested_path_ignores_non_mapping_parent(self):
        masked = apply_masking({"preferences": "none"}, policy_for("SUPPORT"), kind="investor")
        assert masked == {"preferences": "none"}

    def test_document_links(self):
        document = {"id": "doc-1", "documentId": "DOC-2024-001234", "url": "https://x/y", "downloadUrl": "https://x/z"}
        masked = apply_masking(document, policy_for("SUPPORT"), kind="document")
        assert masked["url"] == "[REDACTED]"
        assert masked["downloadUrl"] == "[REDACTED]"
        assert masked["documentId"] == "DOC-****-**1234"

    def test_document_links_visible_to_advisor(self):
        document = {"url": "https://x/y"}
        assert apply_masking(document, policy_for("ADVISOR"), kind="document") == document


# ============================================================================
# Ownership and Collections
# ============================================================================

class TestOwnership:

    @pytest.mark.parametrize("record,actor_id,expected", [
        ({"userId": "u1"}, "u1", True),
        ({"id": "u1"}, "u1", True),
        ({"userId": "u2", "id": "r1"}, "u1", False),
        ({"userId": None}, None, False),
        ({}, "u1", False),
        ("u1", "u1", False),
    ])
    def test_is_record_owner(self, record, actor_id, expected):
        assert is_record_owner(record, actor_id) is expected

    def test_custom_owner_field(self):
        assert is_record_owner({"investorId": "u1"}, "u1", owner_id_field="investorId") is True

    def test_mask_record_owner_sees_own_data(self, sme):
        assert mask_record(sme, "SME", is_owner=True) == sme

    def test_mask_array_per_record_ownership(self, sme):
        other = dict(sme, id="sme-2", userId="someone-else")
        masked = mask_array([sme, other], "SME", actor_id="user-sme")
        assert masked[0] == sme
        assert masked[1]["contactEmail"] == "o***@mekong.example"

    def test_owner_field_paths(self):
        record = {"id": "d1", "createdBy": "u2", "sme": {"userId": "u1"}}
        assert is_record_owner(record, "u1", owner_fields=("createdBy", "sme.userId")) is True
        assert is_record_owner(record, "d1", owner_fields=("createdBy", "sme.userId")) is False
        assert is_record_owner({"sme": "u1"}, "u1", owner_fields=("sme.userId",)) is False


class TestOwnershipByKind:

    @pytest.fixture
    def created_deal(self):
        return {"id": "d1", "createdBy": "u1", "amount": 1234567, "valuation": 5000000}

    def test_deal_creator_sees_own_deal(self, created_deal):
        assert mask_response(created_deal, "SME", "u1", kind="deal") == created_deal

    def test_deal_owned_through_sme(self, deal):
        listed = dict(deal, userId="someone", sme={"userId": "u1"})
        masked = mask_response({"data": [listed]}, "SME", "u1", kind="deal")
        assert masked["data"][0]["amount"] == 1234567

    def test_deal_other_viewer_masked(self, created_deal):
        masked = mask_response(created_deal, "INVESTOR", "u9", kind="deal")
        assert masked["amount"] == 1000000
        assert masked["valuation"] == "***"

    def test_deal_id_does_not_grant_ownership(self, created_deal):
        masked = mask_response(created_deal, "SME", "d1", kind="deal")
        assert masked["valuation"] == "***"

    def test_document_uploader(self):
        document = {"id": "doc-1", "uploadedBy": "u1", "url": "https://x/y"}
        assert mask_response([document], "INVESTOR", "u1", kind="document") == [document]
        masked = mask_response([document], "INVESTOR", "u2", kind="document")
        assert masked[0]["url"] == "[REDACTED]"

    def test_kind_without_owner_fields_uses_defaults(self, sme):
        assert mask_response(sme, "SME", "sme-1", kind="unlisted") == sme


# ============================================================================
# mask_response
# ============================================================================

class TestMaskResponse:

    def test_super_admin_gets_same_object(self, sme, deal):
        for payload in (sme, [sme, deal], {"data": [deal], "total": 1}, "text", None):
            assert mask_response(payload, "SUPER_ADMIN", "admin-1") is payload

    @pytest.mark.parametrize("role,actor_id", [(None, "u1"), ("SUPPORT", None), ("", "")])
    def test_anonymous_gets_same_object(self, sme, role, actor_id):
        assert mask_response(sme, role, actor_id) is sme

    @pytest.mark.parametrize("payload", [42, "text", True, None])
    def test_primitives_unchanged(self, payload):
        assert mask_response(payload, "SUPPORT", "u1") is payload

    def test_single_record(self, sme):
        masked = mask_response(sme, "SUPPORT", "support-1")
        assert masked["contactEmail"] == "o***@mekong.example"

    def test_single_record_owned(self, sme):
        assert mask_response(sme, "SME", "user-sme") == sme

    def test_list(self, sme):
        other = dict(sme, id="sme-2", userId="someone-else")
        masked = mask_response([sme, other, "loose"], "SME", "user-sme")
        assert masked[0] == sme
        assert masked[1]["contactNumber"] == "+85-******-678"
        assert masked[2] == "loose"

    def test_paginated(self, deal):
        payload = {"data": [deal], "total": 1, "page": 1}
        masked = mask_response(payload, "SUPPORT", "support-1", kind="deal")
        assert masked["total"] == 1
        assert masked["page"] == 1
        assert masked["data"][0]["amount"] == 1000000
        assert payload["data"][0]["amount"] == 1234567

    def test_counts_masked_records(self, sme, deal):
        mask_response([sme, deal], "SUPPORT", "support-1")
        mask_response({"data": [deal]}, "ADVISOR", "adv-1", kind="deal")
        assert get_counter("authz.masking.records") == 3
        assert get_counter(
            "authz.masking.records.by_role", labels={"role": "ADVISOR", "kind": "deal"}
        ) == 1


class TestMaskAuditLog:

    @pytest.fixture
    def entry(self):
        return {
            "action": "sme.read",
            "ipAddress": "10.20.30.4",
            "userAgent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)",
        }

    @pytest.mark.parametrize("role", ["SUPER_ADMIN", "ADMIN"])
    def test_admins_see_everything(self, entry, role):
        assert mask_audit_log(entry, role) == entry

    def test_other_roles_masked(self, entry):
        masked = mask_audit_log(entry, "ADVISOR")
        assert masked["ipAddress"] == "10.***.***.4"
        assert masked["userAgent"] == "Mozilla/5.0 (Macinto..."
        assert masked["action"] == "sme.read"
        assert entry["ipAddress"] == "10.20.30.4"

    @pytest.mark.parametrize("address,expected", [
        ("2001:db8:85a3::8a2e:370:7334", "2001:***"),
        ("::1", "0:***"),
        ("fe80::1", "fe80:***"),
        ("192.168.1.25", "192.***.***.25"),
        ("10.20", "***"),
        ("not-an-address", "***"),
    ])
    def test_address_forms(self, address, expected):
        masked = mask_audit_log({"ipAddress": address}, "SUPPORT")["ipAddress"]
        assert masked == expected
        if address.count(":") > 2:
            assert address not in masked

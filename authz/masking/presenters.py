"""
Role-aware presentation of records.

Masks sensitive fields in API payloads based on the viewer's role and
whether they own the record. Masking is shallow: only catalog fields are
touched, plus the explicit ``parent.child`` paths a record kind declares.
The caller's objects are never mutated.
"""

import ipaddress
import logging
from typing import Any, Dict, List, Optional, Sequence

from authz.rbac.roles import Role, parse_role
from .catalog import SensitiveFieldCatalog
from .policy import MaskingFlags, policy_for

logger = logging.getLogger(__name__)

AUDIT_UNMASKED_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN})
USER_AGENT_VISIBLE_CHARS = 20


def _default_catalog() -> SensitiveFieldCatalog:
    from authz.config_loader import get_access_policy

    return get_access_policy().field_catalog


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


# ============================================================================
# Single Record Masking
# ============================================================================

def apply_masking(
    record: Any,
    flags: MaskingFlags,
    kind: Optional[str] = None,
    catalog: Optional[SensitiveFieldCatalog] = None,
) -> Any:
    """
    Mask a record's sensitive fields.

    Args:
        record: Mapping to mask; anything else is returned unchanged
        flags: Which categories to mask
        kind: Record kind selecting per-kind rules (deal, sme, investor, document)
        catalog: Field catalog; defaults to the one in the access policy

    Returns:
        New dict with masked values, and marker fields set to True where a
        rule declares one. Fields outside the catalog pass through.
    """
    if not isinstance(record, dict):
        return record
    if not flags.any():
        return dict(record)

    catalog = catalog or _default_catalog()
    masked = dict(record)

    for rule in catalog.rules_for(kind):
        if not flags.masks(rule.category):
            continue

        segments = rule.segments
        if len(segments) == 1:
            value = masked.get(rule.path)
            if rule.path not in masked or _is_empty(value):
                continue
            masked[rule.path] = rule.apply(value)
        else:
            parent_name, child_name = segments
            parent = masked.get(parent_name)
            if not isinstance(parent, dict) or _is_empty(parent.get(child_name)):
                continue
            # Copy the nested object so the caller's record is untouched
            parent = dict(parent)
            parent[child_name] = rule.apply(parent[child_name])
            masked[parent_name] = parent

        if rule.marker:
            masked[rule.marker] = True

    return masked


def mask_record(
    record: Any,
    role: Any,
    is_owner: bool = False,
    kind: Optional[str] = None,
    catalog: Optional[SensitiveFieldCatalog] = None,
) -> Any:
    """Mask a record for a viewer of ``role``."""
    return apply_masking(record, policy_for(role, is_owner), kind=kind, catalog=catalog)


def _field_value(record: Dict[str, Any], path: str) -> Any:
    parent_name, _, child_name = path.partition(".")
    value = record.get(parent_name)
    if not child_name:
        return value
    return value.get(child_name) if isinstance(value, dict) else None


def is_record_owner(
    record: Any,
    actor_id: Optional[str],
    owner_id_field: str = "userId",
    owner_fields: Optional[Sequence[str]] = None,
) -> bool:
    """
    Whether the actor owns a record.

    Args:
        record: Record to check
        actor_id: Viewer id
        owner_id_field: Owner field checked alongside ``id``
        owner_fields: Field paths identifying the owner (``createdBy``,
            ``sme.userId``); replaces the ``owner_id_field``/``id`` check

    Returns:
        True if any owner field equals the actor id
    """
    if not actor_id or not isinstance(record, dict):
        return False
    if owner_fields is None:
        owner_fields = (owner_id_field, "id")
    return any(_field_value(record, path) == actor_id for path in owner_fields)


# ============================================================================
# Collections and Response Payloads
# ============================================================================

def mask_array(
    records: List[Any],
    role: Any,
    owner_id_field: Optional[str] = None,
    actor_id: Optional[str] = None,
    kind: Optional[str] = None,
    catalog: Optional[SensitiveFieldCatalog] = None,
) -> List[Any]:
    """
    Mask every record in a list, deciding ownership per record.

    Args:
        records: Records to mask; non-mapping items pass through
        role: Viewer role
        owner_id_field: Field holding the owner's id, checked with ``id``;
            defaults to the kind's owner fields
        actor_id: Viewer id
        kind: Record kind
        catalog: Field catalog override

    Returns:
        New list of masked records
    """
    catalog = catalog or _default_catalog()
    owner_fields = None if owner_id_field else catalog.owner_fields_for(kind)
    return [
        mask_record(
            item,
            role,
            is_owner=is_record_owner(
                item, actor_id, owner_id_field or "userId", owner_fields=owner_fields
            ),
            kind=kind,
            catalog=catalog,
        )
        for item in records
    ]


def mask_response(
    payload: Any,
    actor_role: Any,
    actor_id: Optional[str],
    kind: Optional[str] = None,
    catalog: Optional[SensitiveFieldCatalog] = None,
) -> Any:
    """
    Mask an API response payload.

    Handles a single record, a list of records, and paginated payloads of
    the form ``{"data": [...], ...}``. Ownership is decided per record.

    Args:
        payload: Response payload
        actor_role: Viewer role; no role means an anonymous request
        actor_id: Viewer id; no id means an anonymous request
        kind: Record kind
        catalog: Field catalog override

    Returns:
        Masked payload. Anonymous and SUPER_ADMIN requests, and primitive
        payloads, get the payload object itself back.
    """
    if not actor_role or not actor_id:
        return payload
    role = parse_role(actor_role)
    if role == Role.SUPER_ADMIN:
        return payload
    if not isinstance(payload, (dict, list)):
        return payload

    from authz.metrics import record_masking_applied

    role_name = role.value if role else str(actor_role)
    catalog = catalog or _default_catalog()

    if isinstance(payload, list):
        record_masking_applied(len(payload), role_name, kind)
        return mask_array(payload, actor_role, actor_id=actor_id, kind=kind, catalog=catalog)

    if isinstance(payload.get("data"), list):
        records = payload["data"]
        record_masking_applied(len(records), role_name, kind)
        masked = dict(payload)
        masked["data"] = mask_array(records, actor_role, actor_id=actor_id, kind=kind, catalog=catalog)
        return masked

    record_masking_applied(1, role_name, kind)
    return mask_record(
        payload,
        actor_role,
        is_owner=is_record_owner(
            payload, actor_id, owner_fields=catalog.owner_fields_for(kind)
        ),
        kind=kind,
        catalog=catalog,
    )


# ============================================================================
# Audit Log Entries
# ============================================================================

def mask_ip_address(address: Any) -> str:
    """
    Mask a client address.

    IPv4 keeps the first and last octet (``10.***.***.4``), IPv6 keeps only
    the first hextet (``2001:***``). Anything unparseable becomes ``***``.
    """
    try:
        ip = ipaddress.ip_address(str(address).strip())
    except ValueError:
        return "***"

    if ip.version == 4:
        octets = str(ip).split(".")
        return f"{octets[0]}.***.***.{octets[3]}"
    return f"{ip.exploded.split(':')[0].lstrip('0') or '0'}:***"


def mask_audit_log(entry: Any, role: Any) -> Any:
    """
    Mask client details in an audit log entry.

    SUPER_ADMIN and ADMIN see entries unmasked; other roles get the IP
    address masked and the user agent truncated.
    """
    if not isinstance(entry, dict):
        return entry

    masked = dict(entry)
    if parse_role(role) in AUDIT_UNMASKED_ROLES:
        return masked

    if masked.get("ipAddress"):
        masked["ipAddress"] = mask_ip_address(masked["ipAddress"])
    if masked.get("userAgent"):
        masked["userAgent"] = str(masked["userAgent"])[:USER_AGENT_VISIBLE_CHARS] + "..."

    return masked

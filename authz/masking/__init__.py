"""
Role-aware field masking.

Masking policy per role, field transforms, the sensitive field catalog and
record/response masking.
"""

from .policy import (
    FieldCategory,
    MaskingFlags,
    policy_for,
)

from .catalog import (
    FieldRule,
    SensitiveFieldCatalog,
)

from .presenters import (
    apply_masking,
    mask_record,
    is_record_owner,
    mask_array,
    mask_response,
    mask_audit_log,
)

__all__ = [
    "FieldCategory",
    "MaskingFlags",
    "policy_for",
    "FieldRule",
    "SensitiveFieldCatalog",
    "apply_masking",
    "mask_record",
    "is_record_owner",
    "mask_array",
    "mask_response",
    "mask_audit_log",
]

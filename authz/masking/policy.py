"""
Masking policy: which field categories a role sees masked.

The decision is a direct table keyed by role and record ownership. Any role
the table does not know is masked across every category.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict

from authz.rbac.roles import RESOURCE_OWNER_ROLES, Role, parse_role


class FieldCategory(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    FINANCIAL = "financial"
    PERSONAL = "personal"
    DOCUMENTS = "documents"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class MaskingFlags:
    """Per-category masking switches for one actor/record pair."""
    mask_email: bool = True
    mask_phone: bool = True
    mask_financial: bool = True
    mask_personal: bool = True
    mask_documents: bool = True

    @classmethod
    def all_masked(cls) -> "MaskingFlags":
        return cls()

    @classmethod
    def unmasked(cls) -> "MaskingFlags":
        return cls(False, False, False, False, False)

    def masks(self, category: Any) -> bool:
        """Whether values of ``category`` are masked; unknown categories are."""
        try:
            category = FieldCategory(category)
        except ValueError:
            return True
        return getattr(self, f"mask_{category.value}")

    def any(self) -> bool:
        return any(asdict(self).values())

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)


_FULL = MaskingFlags.all_masked()
_NONE = MaskingFlags.unmasked()
_PERSONAL_ONLY = MaskingFlags(
    mask_email=False,
    mask_phone=False,
    mask_financial=False,
    mask_personal=True,
    mask_documents=False,
)

ROLE_MASKING: Dict[Role, MaskingFlags] = {
    Role.SUPER_ADMIN: _NONE,
    Role.ADMIN: _PERSONAL_ONLY,
    Role.ADVISOR: _PERSONAL_ONLY,
    Role.SUPPORT: _FULL,
}


def policy_for(role: Any, is_owner: bool = False) -> MaskingFlags:
    """
    Masking flags for an actor viewing a record.

    Args:
        role: Actor role (Role or name)
        is_owner: Whether the actor owns the record being rendered

    Returns:
        MaskingFlags; fully masked for unknown roles

    Examples:
        >>> policy_for("ADMIN").mask_personal
        True
        >>> policy_for("SME", is_owner=True).any()
        False
    """
    parsed = parse_role(role)
    if parsed is None:
        return _FULL
    if parsed in RESOURCE_OWNER_ROLES:
        return _NONE if is_owner else _FULL
    return ROLE_MASKING.get(parsed, _FULL)

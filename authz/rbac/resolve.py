"""
Permission resolution.

Decides whether an actor may perform an operation and why:
- direct: the actor's role is granted
- inherited: a role the actor's role inherits is granted
- owner: the actor owns the resource and ``ROLE:owner`` is granted
- denied: none of the above, or the permission key is unknown
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from .permissions import GrantToken, PermissionKey, PermissionTable, name_of
from .roles import ROLE_DESCRIPTIONS, RoleHierarchy, parse_role

if TYPE_CHECKING:
    from authz.config_loader import AccessPolicy

logger = logging.getLogger(__name__)


# ============================================================================
# Data Classes
# ============================================================================

class DecisionReason(str, Enum):
    DIRECT = "direct"
    INHERITED = "inherited"
    OWNER = "owner"
    DENIED = "denied"

    def __str__(self) -> str:
        return self.value


@dataclass
class PermissionContext:
    """Per-request input to a resolution call."""
    actor_id: Optional[str]
    actor_role: Any
    tenant_id: Optional[str] = None
    resource_owner_id: Optional[str] = None
    resource_id: Optional[str] = None

    @property
    def is_owner(self) -> bool:
        return bool(self.resource_owner_id) and self.resource_owner_id == self.actor_id


@dataclass(frozen=True)
class Decision:
    """Outcome of a single authorization check."""
    allowed: bool
    permission: str
    reason: DecisionReason
    evaluated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def deny(cls, permission: str) -> "Decision":
        return cls(allowed=False, permission=permission, reason=DecisionReason.DENIED)

    @classmethod
    def allow(cls, permission: str, reason: DecisionReason) -> "Decision":
        return cls(allowed=True, permission=permission, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "permission": self.permission,
            "reason": self.reason.value,
            "evaluated_at": self.evaluated_at.isoformat(),
        }


# ============================================================================
# Permission Resolver
# ============================================================================

class PermissionResolver:
    """
    Resolves permission checks against a permission table and role hierarchy.

    Holds no mutable state; one instance can serve any number of concurrent
    requests.
    """

    def __init__(
        self,
        permissions: PermissionTable,
        hierarchy: RoleHierarchy,
        warn_unknown: bool = True,
    ):
        """
        Initialize the resolver.

        Args:
            permissions: Permission table to check grants against
            hierarchy: Role inheritance graph
            warn_unknown: Log a warning when an undeclared key is checked
        """
        self.permissions = permissions
        self.hierarchy = hierarchy
        self.warn_unknown = warn_unknown

    @classmethod
    def from_policy(cls, policy: "AccessPolicy", warn_unknown: bool = True) -> "PermissionResolver":
        return cls(policy.permissions, policy.hierarchy, warn_unknown=warn_unknown)

    def resolve(self, ctx: PermissionContext, permission: Any) -> Decision:
        """
        Decide a permission check. First match wins.

        Args:
            ctx: Actor and resource facts for this request
            permission: PermissionKey or ``"resource.action"`` string

        Returns:
            Decision; never raises
        """
        permission_name = str(permission)
        grants = self.permissions.grants_for(permission)

        if grants is None:
            self._report_unknown(permission_name)
            return Decision.deny(permission_name)

        role = parse_role(ctx.actor_role)
        if role is None:
            logger.debug(f"Permission {permission_name} denied: unrecognised role {ctx.actor_role!r}")
            return Decision.deny(permission_name)

        if GrantToken(role) in grants:
            return Decision.allow(permission_name, DecisionReason.DIRECT)

        for inherited in self.hierarchy.inherited_roles(role):
            if GrantToken(inherited) in grants:
                return Decision.allow(permission_name, DecisionReason.INHERITED)

        # Owner grants apply to the actor's own role only, never inherited ones
        if ctx.is_owner and GrantToken(role, owner_only=True) in grants:
            return Decision.allow(permission_name, DecisionReason.OWNER)

        return Decision.deny(permission_name)

    def has_permission(self, ctx: PermissionContext, permission: Any) -> bool:
        return self.resolve(ctx, permission).allowed

    def can_perform(
        self,
        role: Any,
        resource: Any,
        action: Any,
        is_owner: bool = False,
        actor_id: Optional[str] = None,
    ) -> bool:
        """
        Check whether a role can perform an action on a resource.

        Args:
            role: Actor role
            resource: Resource (enum or name)
            action: Action (enum or name)
            is_owner: Whether the actor owns the resource
            actor_id: Actor identifier; ownership needs one

        Returns:
            True if allowed

        Examples:
            >>> resolver = get_resolver()
            >>> resolver.can_perform("SME", "sme", "read", True, "sme-1")
            True
            >>> resolver.can_perform("SME", "sme", "read", False, "sme-1")
            False
        """
        permission = f"{name_of(resource)}.{name_of(action)}"
        ctx = PermissionContext(
            actor_id=actor_id or "",
            actor_role=role,
            resource_owner_id=actor_id if is_owner else None,
        )
        return self.resolve(ctx, permission).allowed

    def permissions_for_role(self, role: Any) -> List[str]:
        """
        List every permission a role holds, for UI rendering only.

        Owner-only grants are suffixed with `` (owner only)``. Enforcement
        must always go through resolve().

        Args:
            role: Role or role name

        Returns:
            Permission names in table order
        """
        parsed = parse_role(role)
        if parsed is None:
            return []

        inherited = self.hierarchy.inherited_roles(parsed)
        result = []
        for key, grants in self.permissions.items():
            if GrantToken(parsed) in grants:
                result.append(str(key))
            elif any(GrantToken(r) in grants for r in inherited):
                result.append(str(key))
            elif GrantToken(parsed, owner_only=True) in grants:
                result.append(f"{key} (owner only)")
        return result

    def describe_role(self, role: Any) -> Dict[str, Any]:
        """Role metadata for admin screens."""
        parsed = parse_role(role)
        if parsed is None:
            return {}
        return {
            "role": parsed.value,
            "description": ROLE_DESCRIPTIONS.get(parsed, ""),
            "inherits": sorted(r.value for r in self.hierarchy.inherited_roles(parsed)),
            "permissions": self.permissions_for_role(parsed),
        }

    def _report_unknown(self, permission: str) -> None:
        from authz.metrics import record_unknown_permission

        record_unknown_permission(permission)
        if self.warn_unknown:
            logger.warning(f"Unknown permission: {permission}")


# ============================================================================
# Global Resolver Instance
# ============================================================================

_global_resolver: Optional[PermissionResolver] = None


def get_resolver() -> PermissionResolver:
    """
    Get the global permission resolver.

    Built from the packaged access policy on first use.
    """
    global _global_resolver

    if _global_resolver is None:
        _global_resolver = configure_resolver()

    return _global_resolver


def configure_resolver(policy: Optional["AccessPolicy"] = None) -> PermissionResolver:
    """
    Configure the global permission resolver.

    Args:
        policy: Access policy to use; defaults to the configured policy file

    Returns:
        Configured PermissionResolver instance
    """
    global _global_resolver
    from authz.config_loader import get_access_policy
    from authz.settings import get_settings

    policy = policy or get_access_policy()
    _global_resolver = PermissionResolver.from_policy(
        policy,
        warn_unknown=get_settings().AUTHZ_WARN_UNKNOWN_PERMISSIONS,
    )
    logger.info(f"Configured permission resolver (policy version {policy.version})")
    return _global_resolver


def reset_resolver():
    """Reset the global resolver (useful for testing)."""
    global _global_resolver
    _global_resolver = None


# ============================================================================
# Convenience Functions
# ============================================================================

def resolve(ctx: PermissionContext, permission: Any) -> Decision:
    """Resolve a permission check with the global resolver."""
    return get_resolver().resolve(ctx, permission)


def has_permission(ctx: PermissionContext, permission: Any) -> bool:
    return get_resolver().has_permission(ctx, permission)


def can_perform(
    role: Any,
    resource: Any,
    action: Any,
    is_owner: bool = False,
    actor_id: Optional[str] = None,
) -> bool:
    return get_resolver().can_perform(role, resource, action, is_owner, actor_id)


def permissions_for_role(role: Any) -> List[str]:
    return get_resolver().permissions_for_role(role)

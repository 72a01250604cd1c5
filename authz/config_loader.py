"""
Access policy loader.

Loads and validates the access policy file: role hierarchy, permission
table, permission groups and the sensitive field catalog. Every entry is
checked against the Role / Resource / Action / FieldCategory enumerations
when the file is loaded. A broken policy raises PolicyConfigurationError;
there is no permissive fallback.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from authz.exceptions import PolicyConfigurationError
from authz.masking.catalog import SensitiveFieldCatalog
from authz.rbac.permissions import PermissionKey, PermissionTable, build_permission_groups
from authz.rbac.roles import RoleHierarchy

logger = logging.getLogger(__name__)

DEFAULT_POLICY_PATH = Path(__file__).resolve().parent / "data" / "access_policy.yaml"

REQUIRED_SECTIONS = ("hierarchy", "permissions")


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class AccessPolicy:
    """Validated contents of an access policy file."""
    version: int
    hierarchy: RoleHierarchy
    permissions: PermissionTable
    groups: Dict[str, Tuple[PermissionKey, ...]] = field(default_factory=dict)
    field_catalog: SensitiveFieldCatalog = field(
        default_factory=lambda: SensitiveFieldCatalog([])
    )
    source: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any, source: Optional[str] = None) -> "AccessPolicy":
        """
        Build a policy from parsed file contents.

        Args:
            data: Mapping parsed from the policy file
            source: Where the data came from, for error messages

        Returns:
            Validated AccessPolicy

        Raises:
            PolicyConfigurationError: On any structural or semantic error
        """
        if not isinstance(data, dict):
            raise PolicyConfigurationError(
                f"Access policy must be a mapping, got {type(data).__name__}"
            )

        missing = [s for s in REQUIRED_SECTIONS if s not in data]
        if missing:
            raise PolicyConfigurationError(f"Access policy missing sections {missing}")

        version = data.get("version", 1)
        if not isinstance(version, int) or isinstance(version, bool) or version < 1:
            raise PolicyConfigurationError(f"version must be a positive integer, got {version!r}")

        hierarchy_data = data["hierarchy"] or {}
        permissions_data = data["permissions"] or {}
        groups_data = data.get("groups") or {}
        if not isinstance(hierarchy_data, dict):
            raise PolicyConfigurationError("hierarchy must be a mapping of role to inherited roles")
        if not isinstance(permissions_data, dict):
            raise PolicyConfigurationError("permissions must be a mapping of key to grant tokens")
        if not isinstance(groups_data, dict):
            raise PolicyConfigurationError("groups must be a mapping of name to permission keys")

        for key, tokens in permissions_data.items():
            if tokens is not None and not isinstance(tokens, list):
                raise PolicyConfigurationError(f"Grants for {key} must be a list")

        hierarchy = RoleHierarchy(hierarchy_data)
        permissions = PermissionTable(permissions_data)
        groups = build_permission_groups(groups_data, permissions)

        if data.get("sensitive_fields") is not None:
            catalog = SensitiveFieldCatalog.from_config(data["sensitive_fields"])
        else:
            catalog = SensitiveFieldCatalog([])

        return cls(
            version=version,
            hierarchy=hierarchy,
            permissions=permissions,
            groups=groups,
            field_catalog=catalog,
            source=source,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "hierarchy": self.hierarchy.to_dict(),
            "permissions": self.permissions.to_dict(),
            "groups": {name: [str(k) for k in keys] for name, keys in self.groups.items()},
            "sensitive_fields": self.field_catalog.to_dict(),
        }


# ============================================================================
# Loader
# ============================================================================

def resolve_policy_path(path: Optional[Union[str, Path]] = None) -> Path:
    """Explicit path, then AUTHZ_POLICY_PATH, then the packaged policy."""
    if path:
        return Path(path)

    from authz.settings import get_settings

    configured = get_settings().AUTHZ_POLICY_PATH
    return Path(configured) if configured else DEFAULT_POLICY_PATH


def load_access_policy(path: Optional[Union[str, Path]] = None) -> AccessPolicy:
    """
    Load and validate an access policy file.

    Args:
        path: Policy YAML file; see resolve_policy_path for the default

    Returns:
        AccessPolicy

    Raises:
        PolicyConfigurationError: If the file is missing, unparseable or invalid
    """
    policy_path = resolve_policy_path(path)

    if not policy_path.exists():
        raise PolicyConfigurationError(f"Access policy not found at {policy_path}")

    try:
        with open(policy_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise PolicyConfigurationError(f"Failed to parse access policy YAML at {policy_path}: {e}")

    try:
        policy = AccessPolicy.from_dict(data, source=str(policy_path))
    except PolicyConfigurationError as e:
        logger.error(f"Invalid access policy at {policy_path}: {e}")
        raise

    logger.info(
        f"Loaded access policy v{policy.version} from {policy_path}: "
        f"{len(policy.permissions)} permissions, {len(policy.groups)} groups"
    )
    return policy


# ============================================================================
# Global Policy Instance
# ============================================================================

_policy: Optional[AccessPolicy] = None


def get_access_policy(
    path: Optional[Union[str, Path]] = None,
    force_reload: bool = False,
) -> AccessPolicy:
    """
    Get the global access policy, loading it on first use.

    Args:
        path: Policy file (only used when loading)
        force_reload: Reload from disk even if already loaded

    Returns:
        AccessPolicy instance
    """
    global _policy

    if _policy is None or force_reload:
        _policy = load_access_policy(path)

    return _policy


def reset_access_policy() -> None:
    """Reset the global policy instance (useful for testing)."""
    global _policy
    _policy = None


def get_permission_groups() -> Dict[str, Tuple[PermissionKey, ...]]:
    """Named permission groups from the global policy, for UI rendering."""
    return dict(get_access_policy().groups)

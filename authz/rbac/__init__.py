"""
Role-Based Access Control (RBAC) module.

Provides role definitions, the role hierarchy, the permission table,
permission resolution and actor resolution from JWT/API keys.
"""

from .roles import (
    Role,
    ALL_ROLES,
    RESOURCE_OWNER_ROLES,
    ROLE_DESCRIPTIONS,
    DEFAULT_ROLE_HIERARCHY,
    RoleHierarchy,
    parse_role,
    validate_role,
    get_role_description,
    list_all_roles,
)

from .permissions import (
    OWNER_SUFFIX,
    Resource,
    Action,
    PermissionKey,
    GrantToken,
    PermissionTable,
    build_permission_groups,
)

from .resolve import (
    # Data classes
    DecisionReason,
    PermissionContext,
    Decision,
    PermissionResolver,
    # Functions
    configure_resolver,
    get_resolver,
    reset_resolver,
    resolve,
    has_permission,
    can_perform,
    permissions_for_role,
)

from .actors import (
    AuthenticatedActor,
    ActorResolver,
    configure_actor_resolver,
    get_actor_resolver,
    reset_actor_resolver,
)

__all__ = [
    # Roles
    "Role",
    "ALL_ROLES",
    "RESOURCE_OWNER_ROLES",
    "ROLE_DESCRIPTIONS",
    "DEFAULT_ROLE_HIERARCHY",
    "RoleHierarchy",
    "parse_role",
    "validate_role",
    "get_role_description",
    "list_all_roles",
    # Permissions
    "OWNER_SUFFIX",
    "Resource",
    "Action",
    "PermissionKey",
    "GrantToken",
    "PermissionTable",
    "build_permission_groups",
    # Resolution
    "DecisionReason",
    "PermissionContext",
    "Decision",
    "PermissionResolver",
    "configure_resolver",
    "get_resolver",
    "reset_resolver",
    "resolve",
    "has_permission",
    "can_perform",
    "permissions_for_role",
    # Actors
    "AuthenticatedActor",
    "ActorResolver",
    "configure_actor_resolver",
    "get_actor_resolver",
    "reset_actor_resolver",
]

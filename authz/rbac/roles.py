"""
Role definitions and the role inheritance hierarchy.

Defines the closed set of platform roles and computes which roles each
role inherits from, transitively.
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from authz.exceptions import PolicyConfigurationError


# ============================================================================
# Role Constants
# ============================================================================

class Role(str, Enum):
    """Platform roles, assigned to an actor by the identity system."""

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    ADVISOR = "ADVISOR"
    SUPPORT = "SUPPORT"
    INVESTOR = "INVESTOR"
    SME = "SME"

    def __str__(self) -> str:
        return self.value


ALL_ROLES = frozenset(Role)

# Roles that own records of their own (their own profile, deals, documents)
RESOURCE_OWNER_ROLES = frozenset({Role.INVESTOR, Role.SME})

ROLE_DESCRIPTIONS: Dict[Role, str] = {
    Role.SUPER_ADMIN: "Platform operator with unrestricted access",
    Role.ADMIN: "Tenant administrator; inherits advisor permissions",
    Role.ADVISOR: "Advisory staff working deals, SMEs and investors",
    Role.SUPPORT: "Read-only operational support",
    Role.INVESTOR: "Investor; full access to own records only",
    Role.SME: "Small/medium enterprise; full access to own records only",
}


def parse_role(value: Any) -> Optional[Role]:
    """
    Convert a role token to a Role.

    Args:
        value: Role instance or role name (case-insensitive)

    Returns:
        The Role, or None if the value is not a known role

    Examples:
        >>> parse_role("admin")
        <Role.ADMIN: 'ADMIN'>
        >>> parse_role("root") is None
        True
    """
    if isinstance(value, Role):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return Role(value.strip().upper())
    except ValueError:
        return None


def validate_role(value: Any) -> bool:
    """Check whether a value names a known role."""
    return parse_role(value) is not None


def get_role_description(role: Any) -> str:
    """Human-readable description of a role, or empty string if unknown."""
    parsed = parse_role(role)
    return ROLE_DESCRIPTIONS.get(parsed, "") if parsed else ""


# ============================================================================
# Role Hierarchy
# ============================================================================

class RoleHierarchy:
    """
    Static role inheritance graph.

    An edge ``A -> [B, C]`` means A inherits every bare grant of B and C.
    The graph must be acyclic; cycles are rejected when the hierarchy is
    built. Closures are computed once since the edges never change.
    """

    def __init__(self, edges: Mapping[Any, Iterable[Any]]):
        self._edges: Dict[Role, Tuple[Role, ...]] = {role: () for role in Role}

        for raw_role, raw_parents in edges.items():
            role = parse_role(raw_role)
            if role is None:
                raise PolicyConfigurationError(f"Unknown role in hierarchy: {raw_role!r}")

            parents: List[Role] = []
            for raw_parent in raw_parents or ():
                parent = parse_role(raw_parent)
                if parent is None:
                    raise PolicyConfigurationError(
                        f"Unknown role {raw_parent!r} inherited by {role.value}"
                    )
                if parent not in parents:
                    parents.append(parent)
            self._edges[role] = tuple(parents)

        self._check_acyclic()
        self._closures: Dict[Role, FrozenSet[Role]] = {
            role: self._walk(role) for role in Role
        }

    def _check_acyclic(self) -> None:
        # Three-colour DFS; a grey node seen again is a back edge
        WHITE, GREY, BLACK = 0, 1, 2
        colour = {role: WHITE for role in Role}

        def visit(role: Role, path: List[Role]) -> None:
            colour[role] = GREY
            path.append(role)
            for parent in self._edges[role]:
                if colour[parent] == GREY:
                    cycle = path[path.index(parent):] + [parent]
                    raise PolicyConfigurationError(
                        "Cyclic role hierarchy: " + " -> ".join(r.value for r in cycle)
                    )
                if colour[parent] == WHITE:
                    visit(parent, path)
            path.pop()
            colour[role] = BLACK

        for role in Role:
            if colour[role] == WHITE:
                visit(role, [])

    def _walk(self, role: Role) -> FrozenSet[Role]:
        seen = set()
        stack = list(self._edges[role])
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._edges[current])
        return frozenset(seen)

    def direct_parents(self, role: Any) -> Tuple[Role, ...]:
        """Roles that ``role`` directly inherits from."""
        parsed = parse_role(role)
        return self._edges[parsed] if parsed else ()

    def inherited_roles(self, role: Any) -> FrozenSet[Role]:
        """
        Transitive closure of inherited roles.

        Args:
            role: Role or role name

        Returns:
            Every role reachable by following inheritance edges (empty for
            unknown roles)
        """
        parsed = parse_role(role)
        if parsed is None:
            return frozenset()
        return self._closures[parsed]

    def inherits(self, role: Any, other: Any) -> bool:
        """True if ``role`` inherits ``other`` directly or transitively."""
        parsed_other = parse_role(other)
        return parsed_other is not None and parsed_other in self.inherited_roles(role)

    def to_dict(self) -> Dict[str, List[str]]:
        return {role.value: [p.value for p in parents] for role, parents in self._edges.items()}


DEFAULT_ROLE_HIERARCHY: Dict[Role, List[Role]] = {
    Role.SUPER_ADMIN: [Role.ADMIN, Role.ADVISOR, Role.SUPPORT],
    Role.ADMIN: [Role.ADVISOR],
    Role.ADVISOR: [],
    Role.SUPPORT: [],
    Role.INVESTOR: [],
    Role.SME: [],
}


def list_all_roles(hierarchy: Optional[RoleHierarchy] = None) -> Dict[str, Dict[str, Any]]:
    """
    List all roles with their descriptions and inherited roles.

    Returns:
        Dictionary mapping role names to their metadata
    """
    hierarchy = hierarchy or RoleHierarchy(DEFAULT_ROLE_HIERARCHY)
    return {
        role.value: {
            "description": ROLE_DESCRIPTIONS.get(role, ""),
            "inherits": sorted(r.value for r in hierarchy.inherited_roles(role)),
        }
        for role in Role
    }

"""
Permission keys, grant tokens and the permission table.

A permission key names one controllable operation as ``<resource>.<action>``.
The permission table maps each key to the grant tokens allowed to perform it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from authz.exceptions import PolicyConfigurationError
from .roles import Role, parse_role

OWNER_SUFFIX = ":owner"


# ============================================================================
# Resource and Action Enumerations
# ============================================================================

class Resource(str, Enum):
    SME = "sme"
    INVESTOR = "investor"
    ADVISOR = "advisor"
    DEAL = "deal"
    DOCUMENT = "document"
    USER = "user"
    TENANT = "tenant"
    WORKFLOW = "workflow"
    CERTIFICATION = "certification"
    REPORT = "report"
    SETTINGS = "settings"
    AUDIT_LOG = "audit_log"
    MATCHMAKING = "matchmaking"
    ADVISORY_SERVICE = "advisory_service"
    SYNDICATE = "syndicate"
    SECONDARY_TRADING = "secondary_trading"
    NOTIFICATION = "notification"
    ANALYTICS = "analytics"
    PAYMENT = "payment"
    DATAROOM = "dataroom"
    DUE_DILIGENCE = "due_diligence"
    COMMUNITY = "community"
    AI = "ai"
    DISPUTE = "dispute"
    ADMIN = "admin"
    BILLING = "billing"
    INVOICE = "invoice"
    SUBSCRIPTION = "subscription"
    SUPPORT_TICKET = "support_ticket"
    CASE = "case"
    ESCALATION = "escalation"
    ROLE_REQUEST = "role_request"
    ROLE_GRANT = "role_grant"
    RECONCILIATION = "reconciliation"
    DATA_GOVERNANCE = "data_governance"
    LEGAL_HOLD = "legal_hold"
    RETENTION_RULE = "retention_rule"
    ONBOARDING_TEMPLATE = "onboarding_template"
    ONBOARDING_TASK = "onboarding_task"
    INVESTOR_OPS = "investor_ops"
    ADVISOR_OPS = "advisor_ops"
    ADVISOR_CONFLICT = "advisor_conflict"
    ADVISOR_CAPACITY = "advisor_capacity"
    ADVISOR_ASSIGNMENT = "advisor_assignment"

    def __str__(self) -> str:
        return self.value


class Action(str, Enum):
    # CRUD
    LIST = "list"
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    EXPORT = "export"
    # Workflow
    CERTIFY = "certify"
    APPROVE = "approve"
    VERIFY = "verify"
    SUSPEND = "suspend"
    REVIEW = "review"
    ASSIGN = "assign"
    ESCALATE = "escalate"
    PUBLISH = "publish"
    REMIND = "remind"
    RUN = "run"
    RELEASE = "release"
    REVOKE = "revoke"
    MANAGE = "manage"
    # Resource specific
    DOWNLOAD = "download"
    UPLOAD = "upload"
    SYSTEM = "system"
    FINANCIAL = "financial"
    ANALYTICS = "analytics"
    EXPRESS_INTEREST = "express_interest"
    CREATE_MATCH = "create_match"
    JOIN = "join"
    CREATE_LISTING = "create_listing"
    UPDATE_LISTING = "update_listing"
    BUY = "buy"
    EXECUTE = "execute"
    BROADCAST = "broadcast"
    REFUND = "refund"
    CHAT = "chat"
    POST_LIST = "post_list"
    POST_READ = "post_read"
    POST_CREATE = "post_create"
    POST_UPDATE = "post_update"
    POST_DELETE = "post_delete"
    COMMENT_CREATE = "comment_create"
    COMMENT_UPDATE = "comment_update"
    COMMENT_DELETE = "comment_delete"
    DASHBOARD_VIEW = "dashboard_view"
    USER_MANAGE = "user_manage"
    TENANT_MANAGE = "tenant_manage"
    SYSTEM_CONFIG = "system_config"

    def __str__(self) -> str:
        return self.value


# ============================================================================
# Permission Key and Grant Token
# ============================================================================

@dataclass(frozen=True)
class PermissionKey:
    """Structured ``<resource>.<action>`` pair."""
    resource: Resource
    action: Action

    def __str__(self) -> str:
        return f"{self.resource.value}.{self.action.value}"

    @classmethod
    def parse(cls, value: Any) -> Optional["PermissionKey"]:
        """
        Parse a permission key.

        Args:
            value: PermissionKey or ``"resource.action"`` string

        Returns:
            PermissionKey, or None when the text is malformed or names a
            resource/action outside the enumerations

        Examples:
            >>> str(PermissionKey.parse("deal.approve"))
            'deal.approve'
            >>> PermissionKey.parse("deal") is None
            True
        """
        if isinstance(value, PermissionKey):
            return value
        if not isinstance(value, str):
            return None
        resource_name, sep, action_name = value.strip().partition(".")
        if not sep:
            return None
        try:
            return cls(Resource(resource_name), Action(action_name))
        except ValueError:
            return None

    @classmethod
    def of(cls, resource: Union[Resource, str], action: Union[Action, str]) -> Optional["PermissionKey"]:
        """Build a key from separate resource and action names."""
        return cls.parse(f"{name_of(resource)}.{name_of(action)}")


@dataclass(frozen=True)
class GrantToken:
    """Entry in a permission's grant list: a bare role or ``ROLE:owner``."""
    role: Role
    owner_only: bool = False

    def __str__(self) -> str:
        return f"{self.role.value}{OWNER_SUFFIX}" if self.owner_only else self.role.value

    @classmethod
    def parse(cls, value: Any) -> Optional["GrantToken"]:
        """
        Parse a grant token.

        Examples:
            >>> GrantToken.parse("SME:owner")
            GrantToken(role=<Role.SME: 'SME'>, owner_only=True)
            >>> GrantToken.parse("SME:admin") is None
            True
        """
        if isinstance(value, GrantToken):
            return value
        if not isinstance(value, str):
            return None
        owner_only = value.endswith(OWNER_SUFFIX)
        role_name = value[: -len(OWNER_SUFFIX)] if owner_only else value
        if ":" in role_name:
            return None
        role = parse_role(role_name)
        if role is None:
            return None
        return cls(role=role, owner_only=owner_only)


def name_of(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


# ============================================================================
# Permission Table
# ============================================================================

class PermissionTable:
    """
    Immutable mapping from PermissionKey to its grant tokens.

    Iteration follows declaration order so listings read like the source
    policy file.
    """

    def __init__(self, entries: Mapping[Any, Iterable[Any]]):
        table: Dict[PermissionKey, Tuple[GrantToken, ...]] = {}

        for raw_key, raw_tokens in entries.items():
            key = PermissionKey.parse(raw_key)
            if key is None:
                raise PolicyConfigurationError(f"Invalid permission key: {raw_key!r}")
            if key in table:
                raise PolicyConfigurationError(f"Duplicate permission key: {key}")

            tokens: List[GrantToken] = []
            for raw_token in raw_tokens or ():
                token = GrantToken.parse(raw_token)
                if token is None:
                    raise PolicyConfigurationError(
                        f"Invalid grant token {raw_token!r} for permission {key}"
                    )
                if token not in tokens:
                    tokens.append(token)
            table[key] = tuple(tokens)

        self._table = table

    def __contains__(self, key: Any) -> bool:
        parsed = PermissionKey.parse(key)
        return parsed is not None and parsed in self._table

    def __len__(self) -> int:
        return len(self._table)

    def __iter__(self) -> Iterator[PermissionKey]:
        return iter(self._table)

    def keys(self) -> List[PermissionKey]:
        return list(self._table)

    def items(self) -> List[Tuple[PermissionKey, Tuple[GrantToken, ...]]]:
        return list(self._table.items())

    def grants_for(self, key: Any) -> Optional[Tuple[GrantToken, ...]]:
        """Grant tokens for a key, or None when the key is not declared."""
        parsed = PermissionKey.parse(key)
        if parsed is None:
            return None
        return self._table.get(parsed)

    def to_dict(self) -> Dict[str, List[str]]:
        return {str(key): [str(t) for t in tokens] for key, tokens in self._table.items()}


def build_permission_groups(
    groups: Mapping[str, Iterable[Any]],
    table: PermissionTable,
) -> Dict[str, Tuple[PermissionKey, ...]]:
    """
    Validate named permission groups against the table.

    Raises:
        PolicyConfigurationError: If a group lists an undeclared key
    """
    result: Dict[str, Tuple[PermissionKey, ...]] = {}
    for name, raw_keys in groups.items():
        keys: List[PermissionKey] = []
        for raw_key in raw_keys or ():
            key = PermissionKey.parse(raw_key)
            if key is None or key not in table:
                raise PolicyConfigurationError(
                    f"Permission group {name} references undeclared permission {raw_key!r}"
                )
            keys.append(key)
        result[str(name)] = tuple(keys)
    return result

"""API middleware modules."""

from .roles import (
    RoleResolutionMiddleware,
    RequestContext,
    get_current_user,
    require_authenticated,
    get_actor_id,
    get_actor_role,
)

from .masking import (
    ResponseMaskingMiddleware,
    masking_kind,
)

__all__ = [
    "RoleResolutionMiddleware",
    "RequestContext",
    "get_current_user",
    "require_authenticated",
    "get_actor_id",
    "get_actor_role",
    "ResponseMaskingMiddleware",
    "masking_kind",
]

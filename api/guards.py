"""
API endpoint guards for permission-based authorization.

Provides decorators to protect FastAPI routes with the permission resolver.
Every guarded route needs a ``request: Request`` parameter and the
RoleResolutionMiddleware installed on the app.
"""

import inspect
import logging
from functools import wraps
from typing import Any, Callable, Dict, Iterable, List, Optional

from fastapi import HTTPException, Request, status

from api.middleware.roles import RequestContext, get_current_user
from authz.metrics import audit_permission_check, audit_permission_denial, record_permission_check
from authz.rbac.resolve import Decision, PermissionContext, get_resolver
from authz.rbac.roles import Role, parse_role

logger = logging.getLogger(__name__)

OWNERSHIP_BYPASS_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN})


# ============================================================================
# Guard Decorators
# ============================================================================

def require(
    permission: str,
    owner_id_param: Optional[str] = None,
    owner_id_body: Optional[str] = None,
    get_owner_id: Optional[Callable[[Request], Any]] = None,
    log_all_checks: Optional[bool] = None,
) -> Callable:
    """
    Decorator to require a permission for a FastAPI route.

    Builds a PermissionContext from the request, resolves it and stores
    both on ``request.state.permission_context`` and
    ``request.state.authz_decision`` for the handler.

    Args:
        permission: Permission key (e.g., "sme.update")
        owner_id_param: Path parameter holding the resource owner id
        owner_id_body: JSON body field holding the resource owner id
        get_owner_id: Callable (sync or async) returning the owner id;
            takes precedence over the param/body options
        log_all_checks: Audit allowed checks too; defaults to
            AUTHZ_LOG_ALL_CHECKS

    Returns:
        Decorator function

    Raises:
        HTTPException: 401 if the caller is anonymous, 403 if denied

    Examples:
        >>> @app.put("/smes/{sme_id}")
        >>> @require("sme.update", owner_id_param="sme_id")
        >>> async def update_sme(request: Request, sme_id: str):
        >>>     return {"status": "updated"}
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            request = _extract_request_from_args(args, kwargs)
            ctx = _authenticated_context(request, permission)

            owner_id = await _resolve_owner_id(request, owner_id_param, owner_id_body, get_owner_id)
            resource_id = request.path_params.get("id")
            if resource_id is None and owner_id_body is not None:
                resource_id = (await _read_json_body(request)).get("id")

            perm_ctx = PermissionContext(
                actor_id=ctx.actor_id,
                actor_role=ctx.role,
                tenant_id=ctx.tenant_id,
                resource_owner_id=owner_id,
                resource_id=resource_id,
            )
            decision = get_resolver().resolve(perm_ctx, permission)

            request.state.permission_context = perm_ctx
            request.state.authz_decision = decision

            _record_decision(request, ctx, decision, perm_ctx, log_all_checks)

            if not decision.allowed:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail={
                        "error": "Insufficient permissions",
                        "code": "PERMISSION_DENIED",
                        "required": permission,
                    },
                )

            return await _call(func, args, kwargs)

        return wrapper

    return decorator


def require_any(*permissions: str) -> Callable:
    """
    Decorator to require ANY of the specified permissions.

    Ownership is not considered; use require() for owner-scoped grants.

    Raises:
        HTTPException: 401 if anonymous, 403 if none is granted
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            request = _extract_request_from_args(args, kwargs)
            ctx = _authenticated_context(request, ",".join(permissions))
            perm_ctx = _actor_only_context(ctx)
            resolver = get_resolver()

            for permission in permissions:
                decision = resolver.resolve(perm_ctx, permission)
                if decision.allowed:
                    request.state.permission_context = perm_ctx
                    request.state.authz_decision = decision
                    record_permission_check(
                        True, permission, _role_name(ctx), decision.reason.value, request.url.path
                    )
                    return await _call(func, args, kwargs)

            for permission in permissions:
                record_permission_check(False, permission, _role_name(ctx), "denied", request.url.path)
            audit_permission_denial(
                permission="|".join(permissions),
                actor_id=ctx.actor_id,
                role=_role_name(ctx),
                route=request.url.path,
                method=request.method,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "Insufficient permissions",
                    "code": "PERMISSION_DENIED",
                    "required": list(permissions),
                },
            )

        return wrapper

    return decorator


def require_all(*permissions: str) -> Callable:
    """
    Decorator to require ALL of the specified permissions.

    Raises:
        HTTPException: 401 if anonymous, 403 listing every missing permission
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            request = _extract_request_from_args(args, kwargs)
            ctx = _authenticated_context(request, ",".join(permissions))
            perm_ctx = _actor_only_context(ctx)
            resolver = get_resolver()

            missing: List[str] = []
            for permission in permissions:
                decision = resolver.resolve(perm_ctx, permission)
                record_permission_check(
                    decision.allowed, permission, _role_name(ctx), decision.reason.value, request.url.path
                )
                if not decision.allowed:
                    missing.append(permission)

            if missing:
                audit_permission_denial(
                    permission=",".join(missing),
                    actor_id=ctx.actor_id,
                    role=_role_name(ctx),
                    route=request.url.path,
                    method=request.method,
                )
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail={
                        "error": "Insufficient permissions",
                        "code": "PERMISSION_DENIED",
                        "missing": missing,
                    },
                )

            request.state.permission_context = perm_ctx
            return await _call(func, args, kwargs)

        return wrapper

    return decorator


def require_ownership(owner_id_field: str = "userId") -> Callable:
    """
    Decorator to restrict writes to the caller's own resources.

    Reads the owner id from the JSON body. SUPER_ADMIN and ADMIN bypass
    the check; a body without the field is allowed through.

    Raises:
        HTTPException: 401 if anonymous, 403 if the body names another owner
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            request = _extract_request_from_args(args, kwargs)
            ctx = _authenticated_context(request, "ownership")

            if ctx.role not in OWNERSHIP_BYPASS_ROLES:
                owner_id = (await _read_json_body(request)).get(owner_id_field)
                if owner_id and owner_id != ctx.actor_id:
                    audit_permission_denial(
                        permission="ownership",
                        actor_id=ctx.actor_id,
                        role=_role_name(ctx),
                        route=request.url.path,
                        method=request.method,
                        reason="not_owner",
                        metadata={"owner_id_field": owner_id_field},
                    )
                    raise HTTPException(
                        status_code=status.HTTP_403_FORBIDDEN,
                        detail={
                            "error": "You can only modify your own resources",
                            "code": "OWNERSHIP_REQUIRED",
                        },
                    )

            return await _call(func, args, kwargs)

        return wrapper

    return decorator


def require_role(*roles: Any) -> Callable:
    """
    Decorator to require one of the listed roles.

    Prefer require() with a permission key; role checks do not follow
    the hierarchy.

    Raises:
        HTTPException: 401 if anonymous, 403 if the role is not listed
    """
    allowed = [r for r in (parse_role(role) for role in roles) if r is not None]

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            request = _extract_request_from_args(args, kwargs)
            ctx = _authenticated_context(request, "role")

            if ctx.role not in allowed:
                audit_permission_denial(
                    permission="role",
                    actor_id=ctx.actor_id,
                    role=_role_name(ctx),
                    route=request.url.path,
                    method=request.method,
                    reason="role_denied",
                )
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail={
                        "error": "Insufficient role",
                        "code": "ROLE_DENIED",
                        "required": [r.value for r in allowed],
                        "current": _role_name(ctx),
                    },
                )

            return await _call(func, args, kwargs)

        return wrapper

    return decorator


# ============================================================================
# Helper Functions
# ============================================================================

def _extract_request_from_args(args: tuple, kwargs: dict) -> Request:
    """
    Extract Request object from function arguments.

    Raises:
        HTTPException: 500 if the route does not take a Request
    """
    request = kwargs.get("request")
    if request is None:
        for arg in args:
            if isinstance(arg, Request):
                request = arg
                break

    if request is None:
        logger.error("Guarded route requires a Request parameter")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error: Request not found",
        )
    return request


def _authenticated_context(request: Request, permission: str) -> RequestContext:
    try:
        ctx = get_current_user(request)
    except AttributeError:
        logger.error("Request context not available. Is RoleResolutionMiddleware configured?")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error: User context not available",
        )

    if not ctx.is_authenticated:
        record_permission_check(False, permission, None, "denied", request.url.path)
        logger.info(f"Unauthenticated request to {request.method} {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Authentication required", "code": "AUTH_REQUIRED"},
        )
    return ctx


def _actor_only_context(ctx: RequestContext) -> PermissionContext:
    return PermissionContext(
        actor_id=ctx.actor_id,
        actor_role=ctx.role,
        tenant_id=ctx.tenant_id,
    )


def _role_name(ctx: RequestContext) -> Optional[str]:
    return ctx.role.value if ctx.role else None


async def _read_json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def _resolve_owner_id(
    request: Request,
    owner_id_param: Optional[str],
    owner_id_body: Optional[str],
    get_owner_id: Optional[Callable[[Request], Any]],
) -> Optional[str]:
    if get_owner_id is not None:
        owner_id = get_owner_id(request)
        if inspect.isawaitable(owner_id):
            owner_id = await owner_id
        return str(owner_id) if owner_id else None

    if owner_id_param and request.path_params.get(owner_id_param):
        return str(request.path_params[owner_id_param])

    if owner_id_body:
        owner_id = (await _read_json_body(request)).get(owner_id_body)
        return str(owner_id) if owner_id else None

    return None


def _record_decision(
    request: Request,
    ctx: RequestContext,
    decision: Decision,
    perm_ctx: PermissionContext,
    log_all_checks: Optional[bool],
) -> None:
    route = request.url.path
    role = _role_name(ctx)
    record_permission_check(decision.allowed, decision.permission, role, decision.reason.value, route)

    metadata = {
        "resource_id": perm_ctx.resource_id,
        "resource_owner_id": perm_ctx.resource_owner_id,
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("User-Agent"),
    }

    if not decision.allowed:
        audit_permission_denial(
            permission=decision.permission,
            actor_id=ctx.actor_id,
            role=role,
            route=route,
            method=request.method,
            reason=decision.reason.value,
            metadata=metadata,
        )
        logger.warning(
            f"Access denied: actor_id={ctx.actor_id}, role={role}, "
            f"permission={decision.permission}"
        )
        return

    if log_all_checks is None:
        from authz.settings import get_settings

        log_all_checks = get_settings().AUTHZ_LOG_ALL_CHECKS
    if log_all_checks:
        audit_permission_check(
            permission=decision.permission,
            actor_id=ctx.actor_id,
            role=role,
            route=route,
            method=request.method,
            reason=decision.reason.value,
            metadata=metadata,
        )

    logger.debug(
        f"Access granted: actor_id={ctx.actor_id}, role={role}, "
        f"permission={decision.permission}, reason={decision.reason.value}"
    )


async def _call(func: Callable, args: Iterable[Any], kwargs: Dict[str, Any]) -> Any:
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result

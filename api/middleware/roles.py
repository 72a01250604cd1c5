"""
FastAPI middleware for actor resolution and request context population.

Extracts the caller's identity and role from JWT tokens or API keys,
and attaches them to the request state for use in guards and handlers.
"""

import logging
from typing import Any, Callable, Dict, Optional

from fastapi import HTTPException, Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from authz.rbac.actors import ActorResolver, AuthenticatedActor, get_actor_resolver
from authz.rbac.roles import Role

logger = logging.getLogger(__name__)


# ============================================================================
# Request State Extensions
# ============================================================================

class RequestContext:
    """
    Request context for the calling actor.

    Attached to request.state by the RoleResolutionMiddleware.
    """

    def __init__(self, actor: AuthenticatedActor):
        self.actor_id: Optional[str] = actor.actor_id
        self.email: Optional[str] = actor.email
        self.role: Optional[Role] = actor.role
        self.tenant_id: Optional[str] = actor.tenant_id
        self.auth_method: str = actor.auth_method
        self.is_authenticated: bool = actor.is_authenticated
        self.metadata: Dict[str, Any] = actor.metadata

    def __repr__(self) -> str:
        return (
            f"RequestContext(actor_id={self.actor_id}, "
            f"role={self.role}, auth_method={self.auth_method})"
        )


# ============================================================================
# Middleware
# ============================================================================

class RoleResolutionMiddleware(BaseHTTPMiddleware):
    """
    Middleware to resolve the calling actor from request headers.

    Extracts authentication from:
    1. Authorization header (JWT token)
    2. X-API-KEY header (API key)
    3. Falls back to an anonymous actor with no role

    Attaches a RequestContext to request.state.ctx.
    """

    def __init__(self, app: ASGIApp, resolver: Optional[ActorResolver] = None):
        super().__init__(app)
        self.resolver = resolver

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        try:
            authorization = request.headers.get("Authorization")
            api_key = request.headers.get("X-API-KEY")

            resolver = self.resolver or get_actor_resolver()
            actor = resolver.resolve_from_request(
                authorization_header=authorization,
                api_key_header=api_key,
            )

            request.state.ctx = RequestContext(actor)

            logger.debug(
                f"Resolved actor for {request.method} {request.url.path}: "
                f"actor_id={actor.actor_id}, role={actor.role}, method={actor.auth_method}"
            )

        except Exception as e:
            # Resolution failures degrade to anonymous; guards then refuse the request
            logger.error(f"Error resolving actor: {e}", exc_info=True)

            anonymous = AuthenticatedActor.anonymous()
            anonymous.metadata["error"] = str(e)
            request.state.ctx = RequestContext(anonymous)

        # Exceptions from downstream handlers propagate
        response = await call_next(request)
        return response


# ============================================================================
# Helper Functions
# ============================================================================

def get_current_user(request: Request) -> RequestContext:
    """
    Get the current actor context from the request.

    Args:
        request: FastAPI request object

    Returns:
        RequestContext with actor_id, role, etc.

    Raises:
        AttributeError: If middleware has not been applied
    """
    if not hasattr(request.state, "ctx"):
        raise AttributeError(
            "Request state does not have 'ctx' attribute. "
            "Ensure RoleResolutionMiddleware is configured."
        )

    return request.state.ctx


def require_authenticated(request: Request) -> RequestContext:
    """
    Require that the request comes from an authenticated actor.

    Usable directly as a FastAPI dependency.

    Raises:
        HTTPException: 401 if the actor is anonymous
    """
    ctx = get_current_user(request)

    if not ctx.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Authentication required", "code": "AUTH_REQUIRED"},
        )

    return ctx


def get_actor_id(request: Request) -> Optional[str]:
    """Actor id from the request context, or None if anonymous."""
    return get_current_user(request).actor_id


def get_actor_role(request: Request) -> Optional[Role]:
    """Actor role from the request context, or None if anonymous."""
    return get_current_user(request).role

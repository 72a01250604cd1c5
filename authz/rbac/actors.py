"""
Actor resolution for incoming requests.

Resolves who is calling and with which role from:
- JWT bearer tokens
- API key headers
- Anonymous fallback (no role)

A credential whose role is not a known platform role is treated as
unusable, so an unrecognised role can never reach the permission resolver.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import jwt

from .roles import Role, parse_role

logger = logging.getLogger(__name__)

AUTH_JWT = "jwt"
AUTH_API_KEY = "api_key"
AUTH_ANONYMOUS = "anonymous"


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class AuthenticatedActor:
    """Resolved caller identity."""
    actor_id: Optional[str]
    email: Optional[str]
    role: Optional[Role]
    tenant_id: Optional[str]
    auth_method: str  # 'jwt', 'api_key', 'anonymous'
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_anonymous(self) -> bool:
        return self.auth_method == AUTH_ANONYMOUS

    @property
    def is_authenticated(self) -> bool:
        return not self.is_anonymous and self.actor_id is not None and self.role is not None

    @classmethod
    def anonymous(cls) -> "AuthenticatedActor":
        return cls(
            actor_id=None,
            email=None,
            role=None,
            tenant_id=None,
            auth_method=AUTH_ANONYMOUS,
        )


# ============================================================================
# Actor Resolver
# ============================================================================

class ActorResolver:
    """
    Resolves the calling actor from request credentials.

    Supports:
    - JWT tokens (Authorization: Bearer <token>) with ``sub``/``userId``,
      ``role``, ``email`` and ``tenantId`` claims
    - API keys (X-API-KEY header) looked up in a static map
    - Anonymous fallback
    """

    def __init__(
        self,
        jwt_secret: Optional[str] = None,
        jwt_algorithm: str = "HS256",
        api_key_to_actor_map: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        """
        Initialize actor resolver.

        Args:
            jwt_secret: Secret for verifying JWT signatures
            jwt_algorithm: Accepted JWT signing algorithm
            api_key_to_actor_map: Mapping of API keys to actor info
                (``actor_id``, ``role``, ``email``, ``tenant_id``)
        """
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm
        self.api_key_to_actor_map = api_key_to_actor_map or {}

    def resolve_from_request(
        self,
        authorization_header: Optional[str] = None,
        api_key_header: Optional[str] = None,
    ) -> AuthenticatedActor:
        """
        Resolve the actor from request headers.

        Priority order:
        1. JWT token (Authorization header)
        2. API key (X-API-KEY header)
        3. Anonymous fallback

        Args:
            authorization_header: Authorization header value (e.g., "Bearer <token>")
            api_key_header: API key header value

        Returns:
            AuthenticatedActor; anonymous when no credential is usable
        """
        if authorization_header:
            actor = self._resolve_from_jwt(authorization_header)
            if actor:
                return actor

        if api_key_header:
            actor = self._resolve_from_api_key(api_key_header)
            if actor:
                return actor

        logger.debug("Falling back to anonymous actor")
        return AuthenticatedActor.anonymous()

    def _resolve_from_jwt(self, authorization_header: str) -> Optional[AuthenticatedActor]:
        if not authorization_header.startswith("Bearer "):
            logger.warning("Invalid Authorization header format (missing 'Bearer')")
            return None

        token = authorization_header[7:].strip()
        if not token:
            logger.warning("Empty JWT token")
            return None

        if not self.jwt_secret:
            logger.warning("No JWT secret configured, skipping JWT verification")
            return None

        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=[self.jwt_algorithm],
                options={"verify_exp": True},
            )
        except jwt.ExpiredSignatureError:
            logger.warning("JWT token has expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid JWT token: {e}")
            return None

        if payload.get("isPreAuth"):
            logger.warning("Pre-authentication token presented as access token")
            return None

        actor_id = payload.get("sub") or payload.get("userId")
        if not actor_id:
            logger.warning("JWT token missing 'sub' claim")
            return None

        role = parse_role(payload.get("role"))
        if role is None:
            logger.warning(f"JWT token for {actor_id} carries unknown role {payload.get('role')!r}")
            return None

        logger.debug(f"Resolved actor from JWT: actor_id={actor_id}, role={role}")

        return AuthenticatedActor(
            actor_id=str(actor_id),
            email=payload.get("email"),
            role=role,
            tenant_id=payload.get("tenantId"),
            auth_method=AUTH_JWT,
            metadata={
                "token_issued_at": payload.get("iat"),
                "token_expires_at": payload.get("exp"),
            },
        )

    def _resolve_from_api_key(self, api_key: str) -> Optional[AuthenticatedActor]:
        actor_info = self.api_key_to_actor_map.get(api_key)

        if not actor_info:
            logger.warning(f"Unknown API key: {api_key[:8]}...")
            return None

        actor_id = actor_info.get("actor_id")
        role = parse_role(actor_info.get("role"))
        if not actor_id or role is None:
            logger.warning(f"API key {api_key[:8]}... is missing an actor id or a known role")
            return None

        logger.debug(f"Resolved actor from API key: actor_id={actor_id}, role={role}")

        return AuthenticatedActor(
            actor_id=str(actor_id),
            email=actor_info.get("email"),
            role=role,
            tenant_id=actor_info.get("tenant_id"),
            auth_method=AUTH_API_KEY,
            metadata={"api_key_prefix": api_key[:8]},
        )


# ============================================================================
# Global Resolver Instance
# ============================================================================

_actor_resolver: Optional[ActorResolver] = None


def get_actor_resolver() -> ActorResolver:
    """
    Get the global actor resolver.

    Built from settings (JWT_SECRET, JWT_ALGO) when not configured.
    """
    global _actor_resolver

    if _actor_resolver is None:
        from authz.settings import get_settings

        settings = get_settings()
        _actor_resolver = ActorResolver(
            jwt_secret=settings.JWT_SECRET,
            jwt_algorithm=settings.JWT_ALGO,
        )

    return _actor_resolver


def configure_actor_resolver(
    jwt_secret: Optional[str] = None,
    jwt_algorithm: str = "HS256",
    api_key_to_actor_map: Optional[Dict[str, Dict[str, Any]]] = None,
) -> ActorResolver:
    """
    Configure the global actor resolver.

    Args:
        jwt_secret: Secret for verifying JWT signatures
        jwt_algorithm: Accepted JWT signing algorithm
        api_key_to_actor_map: Mapping of API keys to actor info

    Returns:
        Configured ActorResolver instance
    """
    global _actor_resolver

    _actor_resolver = ActorResolver(
        jwt_secret=jwt_secret,
        jwt_algorithm=jwt_algorithm,
        api_key_to_actor_map=api_key_to_actor_map,
    )

    logger.info("Configured global actor resolver")
    return _actor_resolver


def reset_actor_resolver():
    """Reset the global actor resolver (useful for testing)."""
    global _actor_resolver
    _actor_resolver = None

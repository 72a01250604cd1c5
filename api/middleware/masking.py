"""
FastAPI middleware for role-aware response masking.

Rewrites JSON response bodies through mask_response using the actor that
RoleResolutionMiddleware attached to the request. Add this middleware
before RoleResolutionMiddleware so role resolution runs first:

    app.add_middleware(ResponseMaskingMiddleware)
    app.add_middleware(RoleResolutionMiddleware)
"""

import json
import logging
from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from authz.masking.presenters import mask_response
from authz.rbac.roles import Role

logger = logging.getLogger(__name__)

MASKING_KIND_STATE = "masking_kind"


def masking_kind(kind: str) -> Callable[[Request], None]:
    """
    Route dependency selecting the record kind used to mask the response.

    Examples:
        >>> @app.get("/deals/{deal_id}", dependencies=[Depends(masking_kind("deal"))])
        >>> async def get_deal(deal_id: str):
        >>>     ...
    """
    def dependency(request: Request) -> None:
        setattr(request.state, MASKING_KIND_STATE, kind)

    return dependency


class ResponseMaskingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to mask sensitive fields in JSON responses.

    Passes through without reading the body when the request is anonymous,
    the actor is SUPER_ADMIN, or the response is not JSON.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        response = await call_next(request)

        ctx = getattr(request.state, "ctx", None)
        if ctx is None or not ctx.is_authenticated:
            return response
        if ctx.role == Role.SUPER_ADMIN:
            return response
        if not response.headers.get("content-type", "").startswith("application/json"):
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        if not body:
            return _rebuild(response, body)

        kind: Optional[str] = getattr(request.state, MASKING_KIND_STATE, None)

        try:
            payload = json.loads(body)
        except ValueError:
            logger.warning(f"Unparseable JSON body from {request.method} {request.url.path}")
            return _rebuild(response, body)

        masked = mask_response(payload, ctx.role, ctx.actor_id, kind=kind)

        headers = {
            k: v for k, v in response.headers.items() if k.lower() != "content-length"
        }
        return JSONResponse(
            content=masked,
            status_code=response.status_code,
            headers=headers,
        )


def _rebuild(response: Response, body: bytes) -> Response:
    headers = {k: v for k, v in response.headers.items() if k.lower() != "content-length"}
    return Response(
        content=body,
        status_code=response.status_code,
        headers=headers,
        media_type=response.media_type,
    )

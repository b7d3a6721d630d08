"""
OAuth2 endpoints served next to the SDK's authorization server routes.

The SDK already answers registration, authorization, token exchange and
authenticated revocation. These handlers add:
- Token introspection (RFC 7662), which the SDK does not provide
- Unauthenticated revocation (RFC 7009), which always answers 200
- A health check
"""

import logging
from typing import TYPE_CHECKING, Any

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..core.constants import SERVER_NAME

if TYPE_CHECKING:
    from .provider import TokenLifecycleManager

logger = logging.getLogger(__name__)

INACTIVE = {"active": False}


async def _read_params(request: Request) -> dict[str, Any]:
    """Read a form-encoded or JSON request body into a dict."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        body = await request.json()
        return body if isinstance(body, dict) else {}
    form = await request.form()
    return dict(form)


async def health_check(request: Request):
    """Liveness check."""
    return JSONResponse({"status": "ok", "server": SERVER_NAME})


async def introspect_token(request: Request, provider: "TokenLifecycleManager"):
    """Token introspection (RFC 7662). Unreadable requests and bad tokens are inactive."""
    try:
        params = await _read_params(request)
    except Exception as e:
        logger.debug("Unreadable introspection request: %s", e)
        return JSONResponse(INACTIVE)

    token = params.get("token")
    if not token or not isinstance(token, str):
        return JSONResponse(INACTIVE)
    return JSONResponse(await provider.introspect(token))


async def revoke_token(request: Request, provider: "TokenLifecycleManager"):
    """Token revocation (RFC 7009). Always answers 200."""
    try:
        params = await _read_params(request)
        token = params.get("token")
        if token and isinstance(token, str):
            await provider.revoke(token)
    except Exception:
        logger.exception("Token revocation failed")
    return Response(status_code=200)

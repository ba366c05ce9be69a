"""
JWT auth gate.

Every request must carry `Authorization: Bearer <token>` (HS256, signed with
JWT_SECRET) unless the path is on the public allow-list or DISABLE_JWT is set.
Decoded claims land on `request.state.user`; the user id is `d.uid` and the
role is `d.role`.
"""
import logging
from typing import Any, Callable, Dict, Optional

import jwt
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from billing_api.core.config import settings
from billing_api.core.errors import PermissionError, UnauthorizedError, app_error_handler
from billing_api.core.logging import get_request_id

logger = logging.getLogger("billing_api.auth")

JWT_ALGORITHMS = ["HS256"]
ADMIN_ROLE = "admin"

# (method or None for any, path, whether sub-paths match too)
PUBLIC_PATHS = [
    ("GET", "/api/plans", True),
    ("POST", "/api/users", False),
    (None, "/api/subscriptions/renew", False),
    (None, "/healthz", False),
    (None, "/readyz", False),
    (None, "/docs", True),
    (None, "/redoc", False),
    (None, "/openapi.json", False),
]


def is_public_path(method: str, path: str) -> bool:
    path = path.rstrip("/") or "/"
    for allowed_method, prefix, nested in PUBLIC_PATHS:
        if allowed_method and allowed_method != method.upper():
            continue
        if path == prefix or (nested and path.startswith(prefix + "/")):
            return True
    return False


def decode_token(token: str, secret: Optional[str]) -> Dict[str, Any]:
    """Verify an HS256 token and return its claims."""
    if not secret:
        raise UnauthorizedError("Token validation is not configured")
    try:
        return jwt.decode(token, secret, algorithms=JWT_ALGORITHMS)
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise UnauthorizedError("Invalid token")


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


class JWTAuthMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, settings_provider: Optional[Callable[[], Any]] = None):
        super().__init__(app)
        self.settings_provider = settings_provider or (lambda: settings)

    async def dispatch(self, request: Request, call_next):
        cfg = self.settings_provider()
        request.state.user = None
        if getattr(cfg, "DISABLE_JWT", False) or is_public_path(request.method, request.url.path):
            return await call_next(request)

        rid = getattr(request.state, "request_id", None) or get_request_id()
        token = _bearer_token(request)
        if token is None:
            return await app_error_handler(
                request,
                UnauthorizedError("Missing Authorization (Bearer JWT) header", request_id=rid),
            )
        try:
            request.state.user = decode_token(token, getattr(cfg, "JWT_SECRET", None))
        except UnauthorizedError as e:
            e.request_id = rid
            return await app_error_handler(request, e)
        return await call_next(request)


def token_user(claims: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not claims:
        return {}
    data = claims.get("d")
    return data if isinstance(data, dict) else {}


def require_authorized_user(request: Request, userReference: str) -> Optional[Dict[str, Any]]:
    """
    Guard for /api/users/{userReference}/... routes.

    The caller must be that user or an admin. When JWT is disabled no claims
    exist and the check passes.
    """
    if getattr(settings, "DISABLE_JWT", False):
        return None
    claims = getattr(request.state, "user", None)
    user = token_user(claims)
    if user.get("role") == ADMIN_ROLE:
        return claims
    if user.get("uid") != userReference:
        raise PermissionError(f"Not allowed to act for user {userReference}")
    return claims

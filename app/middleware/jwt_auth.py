"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.jwt_*.

Only identifies the caller; enforcement lives in the ``require_auth`` /
``require_role`` decorators in ``app.auth`` so that public endpoints
(login, register, health) need no special casing here beyond the skip list.
"""

import logging

import jwt as pyjwt
from flask import g, request

from app.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_role = None
        g.jwt_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]

        try:
            payload = decode_access_token(token)
            g.jwt_user_id = int(payload["sub"])
            g.jwt_role = payload.get("role")
        except pyjwt.ExpiredSignatureError:
            g.jwt_error = "Token expired"
        except (pyjwt.InvalidTokenError, KeyError, ValueError):
            logger.debug("Rejected malformed bearer token on %s", path)
            g.jwt_error = "Invalid token"

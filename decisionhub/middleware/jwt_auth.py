"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.jwt_profile_id.

The middleware never rejects a request on its own: a missing, expired or
invalid token leaves ``g.jwt_profile_id`` as None, and views that need a
caller identity call ``decisionhub.auth.resolve_current_profile_id()``.
"""

import logging

import jwt as pyjwt
from flask import g, request

from decisionhub.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_profile_id = None
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

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
            g.jwt_profile_id = payload.get("sub")
        except pyjwt.ExpiredSignatureError:
            g.jwt_error = "Token expired"
        except pyjwt.InvalidTokenError as exc:
            g.jwt_error = "Invalid token"
            logger.debug("Rejected bearer token: %s", exc, extra={"path": path})

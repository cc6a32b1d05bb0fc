"""
JWT Auth Middleware — parses the bearer token, sets g.jwt_*.

    Authorization: Bearer <token>  →  g.jwt_user_id, g.jwt_tenant_id, g.jwt_role

A missing or invalid token leaves the ``g`` values at None; routes that
need a caller are protected by ``access_guards.require_auth``.
"""

import logging

import jwt as pyjwt
from flask import g, request

from carbonaccess.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_tenant_id = None
        g.jwt_role = None
        g.pop("current_user", None)
        g.pop("audit_predicate", None)

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
        except pyjwt.ExpiredSignatureError:
            logger.info("jwt_expired path=%s", path)
            return
        except pyjwt.InvalidTokenError as exc:
            logger.info("jwt_invalid path=%s error=%s", path, exc)
            return

        g.jwt_user_id = payload["sub"]
        g.jwt_tenant_id = payload.get("tenant_id")
        g.jwt_role = payload.get("role")

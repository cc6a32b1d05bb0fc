"""Standardised API error responses.

Usage
-----
    from carbonaccess.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Summary not found")
    return api_error(E.FORBIDDEN, "Audit logs are not available", details={"reason": "employee_no_access"})

Service exceptions (``carbonaccess.core.exceptions``) do not need a
try/except in views: ``register_error_handlers`` maps them once.

Body shape::

    {"error": "<message>", "code": "ERR_...", "details": {...}}
"""

from __future__ import annotations

import logging

from flask import jsonify

from carbonaccess.core.exceptions import AccessDeniedError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # HTTP 401: no valid token, or the token's user is gone / inactive
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"

    # HTTP 403: structural deny; ``details.reason`` says which rule
    FORBIDDEN = "ERR_FORBIDDEN"

    # HTTP 404: also used for rows outside the caller's scope
    NOT_FOUND = "ERR_NOT_FOUND"

    # HTTP 409: e.g. restore outside the window
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    # HTTP 405 / 500
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    INTERNAL = "ERR_INTERNAL"


_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.CONFLICT_STATE: 409,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return ``(jsonify(body), http_status)`` for a view.

    ``status`` overrides the code's default (400 for unknown codes).
    ``details`` is omitted from the body when empty.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _DEFAULT_STATUS.get(code, 400)


def register_error_handlers(app):
    """Map service exceptions and stock HTTP errors to ``api_error`` bodies."""

    @app.errorhandler(ValidationError)
    def _validation_error(exc):
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details)

    @app.errorhandler(AccessDeniedError)
    def _access_denied(exc):
        logger.info("access_denied reason=%s message=%s", exc.reason, exc)
        return api_error(E.FORBIDDEN, str(exc), details={"reason": exc.reason})

    @app.errorhandler(NotFoundError)
    def _not_found(exc):
        return api_error(E.NOT_FOUND, str(exc))

    @app.errorhandler(404)
    def _http_404(exc):
        return api_error(E.NOT_FOUND, "Not found")

    @app.errorhandler(405)
    def _http_405(exc):
        return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed")

    @app.errorhandler(500)
    def _http_500(exc):
        logger.error("internal_error error=%s", exc, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

"""
Access Guards — route decorators over the access engine.

Usage:
    @bp.route("/api/v1/clients/<int:tenant_id>/summary", methods=["GET"])
    @require_auth
    @require_module_access("emission_summary")
    def get_summary(tenant_id):
        ...

    @bp.route("/api/v1/audit-logs", methods=["GET"])
    @require_audit_log_access
    def list_audit_logs():
        predicate = g.audit_predicate
        ...

The user row is reloaded on every request; the role in the token is only a
hint and never trusted for authorization.
"""

import functools
import logging

from flask import g

from carbonaccess.models import db
from carbonaccess.models.auth import User
from carbonaccess.services.audit_access_policy import AuditAccessDenied, build_audit_predicate
from carbonaccess.services.checklist_service import has_module_access
from carbonaccess.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_user() -> User | None:
    """Active User for the JWT subject, cached on ``g`` for the request."""
    if "current_user" in g:
        return g.current_user
    user = None
    user_id = getattr(g, "jwt_user_id", None)
    if user_id is not None:
        user = db.session.get(User, user_id)
        if user is not None and not user.is_active:
            logger.info("inactive_user_rejected user_id=%s", user_id)
            user = None
    g.current_user = user
    return user


def require_auth(f):
    """Decorator: reject the request with 401 unless a valid user is present."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_user() is None:
            return api_error(E.UNAUTHENTICATED, "Authentication required")
        return f(*args, **kwargs)
    return decorated


def require_module_access(module: str):
    """
    Decorator: viewer / auditor need the checklist module enabled.
    Other roles pass through; their access is decided downstream.
    """
    def decorator(f):
        @functools.wraps(f)
        @require_auth
        def decorated(*args, **kwargs):
            user = current_user()
            if not has_module_access(user, module):
                logger.warning(
                    "module_access_denied user_id=%s role=%s module=%s endpoint=%s",
                    user.id, user.role, module, f.__name__,
                )
                return api_error(
                    E.FORBIDDEN,
                    "You do not have access to this module",
                    details={"module": module},
                )
            return f(*args, **kwargs)
        return decorated
    return decorator


def require_audit_log_access(f):
    """
    Decorator: compute the audit-log predicate before the view runs and
    expose it as ``g.audit_predicate``. Deny → 403, no query is issued.
    """
    @functools.wraps(f)
    @require_auth
    def decorated(*args, **kwargs):
        try:
            g.audit_predicate = build_audit_predicate(current_user())
        except AuditAccessDenied as exc:
            return api_error(E.FORBIDDEN, str(exc), details={"reason": exc.reason})
        return f(*args, **kwargs)
    return decorated

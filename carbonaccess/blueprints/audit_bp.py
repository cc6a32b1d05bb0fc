"""
Carbon Access Engine
Audit log blueprint.

Endpoints:
    GET    /api/v1/audit-logs                    — role-scoped list
    GET    /api/v1/audit-logs/search?q=          — list + free-text match
    GET    /api/v1/audit-logs/module/<module>    — list pinned to one module
    GET    /api/v1/audit-logs/stats              — counts by module / action / status / severity
    GET    /api/v1/audit-logs/<int:log_id>       — single entry (same scope)
    DELETE /api/v1/audit-logs/<int:log_id>       — super_admin soft delete
    DELETE /api/v1/audit-logs                    — super_admin bulk soft delete
    DELETE /api/v1/audit-logs/purge-expired      — super_admin, hard delete past the window
    GET    /api/v1/audit-logs/deleted            — super_admin, restorable rows
    PATCH  /api/v1/audit-logs/<int:log_id>/restore — super_admin, within window
    PATCH  /api/v1/audit-logs/restore            — super_admin bulk restore, within window

Every read is filtered by the predicate built in ``require_audit_log_access``
before the query runs; a row outside the caller's scope is a 404, not a 403.
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import func, or_

from carbonaccess.core.roles import Role, role_of
from carbonaccess.middleware.access_guards import current_user, require_audit_log_access, require_auth
from carbonaccess.models import db
from carbonaccess.models.audit import AuditLog, AuditModule
from carbonaccess.services.audit_access_policy import can_delete_audit_logs
from carbonaccess.services.audit_service import log_event
from carbonaccess.services.checklist_service import ChecklistModule, has_section_access
from carbonaccess.utils.errors import E, api_error

logger = logging.getLogger(__name__)

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")

RESTORE_SCOPES = ("by_client", "by_actor")
SEARCH_COLUMNS = ("actor_name", "change_summary", "sub_action", "entity_type", "entity_id")


def _restore_window() -> int:
    return current_app.config.get("AUDIT_RESTORE_WINDOW_DAYS", 30)


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _apply_filters(q, module=None):
    """Narrow an already-scoped query by the shared query params.

    ``module`` (route param) wins over ``?module=``. Raises ValueError on a
    malformed from/to.
    """
    module = module or request.args.get("module")
    if module:
        q = q.filter(AuditLog.module == module)

    action = request.args.get("action")
    if action:
        q = q.filter(AuditLog.action == action)

    status = request.args.get("status")
    if status:
        q = q.filter(AuditLog.status == status)

    tenant_id = request.args.get("tenant_id", type=int)
    if tenant_id is not None:
        q = q.filter(AuditLog.tenant_id == tenant_id)

    start = _parse_ts(request.args.get("from"))
    end = _parse_ts(request.args.get("to"))
    if start is not None:
        q = q.filter(AuditLog.created_at >= start)
    if end is not None:
        q = q.filter(AuditLog.created_at <= end)
    return q


def _paginated_response(q, **extra):
    q = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())

    page = max(1, request.args.get("page", 1, type=int))
    per_page = min(200, max(1, request.args.get("per_page", 50, type=int)))

    paginated = q.paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        "audit_logs": [log.to_dict() for log in paginated.items],
        "total": paginated.total,
        "page": paginated.page,
        "per_page": paginated.per_page,
        "pages": paginated.pages,
        "scope": g.audit_predicate.describe(),
        **extra,
    })


def _record(actor, action: str, sub_action: str, summary: str, metadata: dict, tenant_id=None):
    log_event(
        actor=actor,
        module=AuditModule.SYSTEM,
        action=action,
        sub_action=sub_action,
        severity="critical",
        tenant_id=tenant_id,
        change_summary=summary,
        metadata=metadata,
        cache=current_app.extensions.get("consultant_scope_cache"),
    )


# ── List / filter ────────────────────────────────────────────────────────────

@audit_bp.route("/audit-logs", methods=["GET"])
@require_audit_log_access
def list_audit_logs():
    """
    Return paginated audit logs visible to the caller.

    Query params:
        module     — exact module tag
        action     — exact action tag
        status     — success | failure
        tenant_id  — narrow to one client (still bounded by scope)
        from, to   — ISO-8601 bounds on created_at
        page       — page number (default 1)
        per_page   — items per page (default 50, max 200)
    """
    try:
        q = _apply_filters(g.audit_predicate.apply(AuditLog.query))
    except ValueError:
        return api_error(E.VALIDATION_INVALID, "from/to must be ISO-8601 timestamps")
    return _paginated_response(q)


@audit_bp.route("/audit-logs/search", methods=["GET"])
@require_audit_log_access
def search_audit_logs():
    """Same as the list, plus ``q``: case-insensitive substring match on
    actor name, change summary, sub action and entity reference."""
    term = (request.args.get("q") or "").strip()
    if not term:
        return api_error(E.VALIDATION_REQUIRED, "q is required")
    try:
        q = _apply_filters(g.audit_predicate.apply(AuditLog.query))
    except ValueError:
        return api_error(E.VALIDATION_INVALID, "from/to must be ISO-8601 timestamps")
    pattern = f"%{term}%"
    q = q.filter(or_(*(getattr(AuditLog, col).ilike(pattern) for col in SEARCH_COLUMNS)))
    return _paginated_response(q, query=term)


@audit_bp.route("/audit-logs/module/<module>", methods=["GET"])
@require_audit_log_access
def list_audit_logs_by_module(module):
    valid = [m.value for m in AuditModule]
    if module not in valid:
        return api_error(
            E.VALIDATION_INVALID, f"Unknown module '{module}'",
            details={"valid_modules": valid},
        )
    try:
        q = _apply_filters(g.audit_predicate.apply(AuditLog.query), module=module)
    except ValueError:
        return api_error(E.VALIDATION_INVALID, "from/to must be ISO-8601 timestamps")
    return _paginated_response(q, module=module)


@audit_bp.route("/audit-logs/stats", methods=["GET"])
@require_audit_log_access
def audit_log_stats():
    """
    Dashboard counts over the caller's visible rows.

    Accepts the same filters as the list. Rows outside the predicate never
    reach the GROUP BY.
    """
    def count_by(column):
        q = g.audit_predicate.apply(db.session.query(column, func.count(AuditLog.id)))
        q = _apply_filters(q).group_by(column)
        return {key: count for key, count in q.all()}

    try:
        by_module = count_by(AuditLog.module)
        by_action = count_by(AuditLog.action)
        by_status = count_by(AuditLog.status)
        by_severity = count_by(AuditLog.severity)
    except ValueError:
        return api_error(E.VALIDATION_INVALID, "from/to must be ISO-8601 timestamps")

    return jsonify({
        "total": sum(by_module.values()),
        "by_module": by_module,
        "by_action": by_action,
        "by_status": by_status,
        "by_severity": by_severity,
        "scope": g.audit_predicate.describe(),
    })


# ── Single entry ─────────────────────────────────────────────────────────────

@audit_bp.route("/audit-logs/<int:log_id>", methods=["GET"])
@require_audit_log_access
def get_audit_log(log_id):
    user = current_user()
    if not has_section_access(user, ChecklistModule.AUDIT_LOGS, "detail"):
        return api_error(E.FORBIDDEN, "You do not have access to audit log details")

    log = g.audit_predicate.apply(AuditLog.query).filter(AuditLog.id == log_id).first()
    if not log:
        return api_error(E.NOT_FOUND, "Audit log not found")
    return jsonify(log.to_dict())


# ── Super admin: delete / restore ────────────────────────────────────────────

@audit_bp.route("/audit-logs/<int:log_id>", methods=["DELETE"])
@require_auth
def delete_audit_log(log_id):
    user = current_user()
    if role_of(user) is not Role.SUPER_ADMIN:
        return api_error(E.FORBIDDEN, "Only super_admin can delete audit logs.")

    log = db.session.get(AuditLog, log_id)
    if not log or log.is_deleted:
        return api_error(E.NOT_FOUND, "Audit log not found")

    log.soft_delete(deleted_by_id=user.id)
    _record(
        user, "delete", "audit_log_soft_delete",
        f"Super admin soft-deleted audit log {log_id}", {"log_id": log_id},
        tenant_id=log.tenant_id,
    )
    db.session.commit()
    logger.info("audit_log_deleted log_id=%s by=%s", log_id, user.id)
    return jsonify({"id": log_id, "is_deleted": True, "restore_window_days": _restore_window()})


@audit_bp.route("/audit-logs", methods=["DELETE"])
@require_auth
def bulk_delete_audit_logs():
    """
    Body:
        {"scope": "all" | "by_client" | "by_employee_head" | "by_employee" | "by_actor",
         "tenant_id": <int>,     # by_client
         "user_id": <int>,       # actor scopes
         "confirm": true}
    """
    user = current_user()
    data = request.get_json(silent=True) or {}
    scope = data.get("scope")

    allowed, reason = can_delete_audit_logs(user, scope)
    if not allowed:
        return api_error(E.FORBIDDEN, reason)
    if data.get("confirm") is not True:
        return api_error(E.VALIDATION_REQUIRED, "confirm: true is required for bulk deletion")

    q = AuditLog.query_active()
    if scope == "by_client":
        if not isinstance(data.get("tenant_id"), int):
            return api_error(E.VALIDATION_REQUIRED, "tenant_id is required for by_client scope")
        q = q.filter(AuditLog.tenant_id == data["tenant_id"])
    elif scope != "all":
        if not isinstance(data.get("user_id"), int):
            return api_error(E.VALIDATION_REQUIRED, "user_id is required for this delete scope")
        q = q.filter(AuditLog.actor_user_id == data["user_id"])

    rows = q.all()
    for row in rows:
        row.soft_delete(deleted_by_id=user.id)
    _record(
        user, "delete", "audit_log_soft_delete_bulk",
        f"Super admin soft-deleted {len(rows)} audit log(s). Scope: {scope}",
        {"scope": scope, "tenant_id": data.get("tenant_id"), "user_id": data.get("user_id"), "deleted": len(rows)},
    )
    db.session.commit()
    logger.info("audit_logs_bulk_deleted scope=%s count=%d by=%s", scope, len(rows), user.id)
    return jsonify({"scope": scope, "deleted": len(rows)})


@audit_bp.route("/audit-logs/deleted", methods=["GET"])
@require_auth
def list_deleted_audit_logs():
    user = current_user()
    if role_of(user) is not Role.SUPER_ADMIN:
        return api_error(E.FORBIDDEN, "Only super_admin can view deleted audit logs.")
    rows = (
        AuditLog.query_restorable(window_days=_restore_window())
        .order_by(AuditLog.deleted_at.desc())
        .limit(200)
        .all()
    )
    return jsonify({"audit_logs": [r.to_dict() for r in rows], "restore_window_days": _restore_window()})


@audit_bp.route("/audit-logs/<int:log_id>/restore", methods=["PATCH"])
@require_auth
def restore_audit_log(log_id):
    user = current_user()
    if role_of(user) is not Role.SUPER_ADMIN:
        return api_error(E.FORBIDDEN, "Only super_admin can restore audit logs.")

    log = db.session.get(AuditLog, log_id)
    if not log or not log.is_deleted:
        return api_error(E.NOT_FOUND, "Deleted audit log not found")
    if not log.restore(window_days=_restore_window()):
        return api_error(
            E.CONFLICT_STATE,
            f"Audit log is outside the {_restore_window()}-day restore window",
        )

    _record(
        user, "update", "audit_log_restore",
        f"Super admin restored audit log {log_id}", {"log_id": log_id},
        tenant_id=log.tenant_id,
    )
    db.session.commit()
    logger.info("audit_log_restored log_id=%s by=%s", log_id, user.id)
    return jsonify(log.to_dict())


@audit_bp.route("/audit-logs/restore", methods=["PATCH"])
@require_auth
def bulk_restore_audit_logs():
    """
    Body (either ``ids`` or ``scope`` + identifier):
        {"ids": [<int>, ...],
         "scope": "by_client" | "by_actor",
         "tenant_id": <int>,     # by_client
         "user_id": <int>,       # by_actor
         "confirm": true}

    Only rows still inside the restore window come back.
    """
    user = current_user()
    if role_of(user) is not Role.SUPER_ADMIN:
        return api_error(E.FORBIDDEN, "Only super_admin can bulk restore audit logs.")

    data = request.get_json(silent=True) or {}
    if data.get("confirm") is not True:
        return api_error(E.VALIDATION_REQUIRED, "confirm: true is required for bulk restore")

    q = AuditLog.query_restorable(window_days=_restore_window())
    ids = data.get("ids")
    scope = data.get("scope")
    if isinstance(ids, list) and ids:
        valid_ids = [i for i in ids if isinstance(i, int) and not isinstance(i, bool)]
        if not valid_ids:
            return api_error(E.VALIDATION_INVALID, "ids must contain integer audit log ids")
        q = q.filter(AuditLog.id.in_(valid_ids))
        scope = "by_ids"
    elif scope == "by_client":
        if not isinstance(data.get("tenant_id"), int):
            return api_error(E.VALIDATION_REQUIRED, "tenant_id is required for by_client scope")
        q = q.filter(AuditLog.tenant_id == data["tenant_id"])
    elif scope == "by_actor":
        if not isinstance(data.get("user_id"), int):
            return api_error(E.VALIDATION_REQUIRED, "user_id is required for by_actor scope")
        q = q.filter(AuditLog.actor_user_id == data["user_id"])
    else:
        return api_error(
            E.VALIDATION_INVALID,
            "Provide ids[] or a restore scope with its identifier",
            details={"scopes": list(RESTORE_SCOPES)},
        )

    restored = [row for row in q.all() if row.restore(window_days=_restore_window())]
    _record(
        user, "update", "audit_log_restore_bulk",
        f"Super admin restored {len(restored)} audit log(s). Scope: {scope}",
        {"scope": scope, "tenant_id": data.get("tenant_id"), "user_id": data.get("user_id"),
         "restored": len(restored)},
    )
    db.session.commit()
    logger.info("audit_logs_bulk_restored scope=%s count=%d by=%s", scope, len(restored), user.id)
    return jsonify({"scope": scope, "restored": len(restored)})


@audit_bp.route("/audit-logs/purge-expired", methods=["DELETE"])
@require_auth
def purge_expired_audit_logs():
    """Hard-delete soft-deleted rows older than the restore window.

    Body: ``{"confirm": true}``.
    """
    user = current_user()
    if role_of(user) is not Role.SUPER_ADMIN:
        return api_error(E.FORBIDDEN, "Only super_admin can purge audit logs.")
    data = request.get_json(silent=True) or {}
    if data.get("confirm") is not True:
        return api_error(E.VALIDATION_REQUIRED, "confirm: true is required for purge")

    window = _restore_window()
    rows = AuditLog.query_expired(window_days=window).all()
    for row in rows:
        db.session.delete(row)
    _record(
        user, "delete", "audit_log_purge_expired",
        f"Super admin purged {len(rows)} audit log(s) deleted more than {window} days ago",
        {"purged": len(rows), "restore_window_days": window},
    )
    db.session.commit()
    logger.warning("audit_logs_purged count=%d window_days=%d by=%s", len(rows), window, user.id)
    return jsonify({"purged": len(rows), "restore_window_days": window})

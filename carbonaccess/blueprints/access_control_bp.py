"""
Carbon Access Engine
Viewer / auditor access-control checklist blueprint.

Endpoints:
    GET /api/v1/access-controls/presets          — preset catalogue
    GET /api/v1/users/<int:user_id>/access-controls — current checklist
    PUT /api/v1/users/<int:user_id>/access-controls — replace checklist

PUT body is either ``{"access_controls": {...}}`` or ``{"preset": "<name>"}``.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from carbonaccess.core.exceptions import NotFoundError
from carbonaccess.core.roles import Role, role_of
from carbonaccess.middleware.access_guards import current_user, require_auth
from carbonaccess.models import db
from carbonaccess.models.audit import AuditModule
from carbonaccess.models.auth import User
from carbonaccess.services.audit_service import log_event
from carbonaccess.services.checklist_service import (
    PRESET_TEMPLATES,
    get_preset,
    is_checklist_role,
    sanitize_checklist,
    update_user_checklist,
)
from carbonaccess.utils.errors import E, api_error

logger = logging.getLogger(__name__)

access_control_bp = Blueprint("access_control", __name__, url_prefix="/api/v1")


def _get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


@access_control_bp.route("/access-controls/presets", methods=["GET"])
@require_auth
def list_presets():
    return jsonify({
        "presets": [
            {"name": name, **preset}
            for name, preset in PRESET_TEMPLATES.items()
        ],
    })


@access_control_bp.route("/users/<int:user_id>/access-controls", methods=["GET"])
@require_auth
def get_access_controls(user_id):
    actor = current_user()
    target = _get_user_or_404(user_id)
    same_tenant_admin = role_of(actor) is Role.CLIENT_ADMIN and actor.tenant_id == target.tenant_id
    if actor.id != target.id and role_of(actor) is not Role.SUPER_ADMIN and not same_tenant_admin:
        raise NotFoundError("User", user_id)
    if not is_checklist_role(target.role):
        return api_error(E.VALIDATION_INVALID, "Access controls apply to viewer and auditor accounts only")
    return jsonify({
        "user_id": target.id,
        "role": target.role,
        "access_controls": sanitize_checklist(target.access_controls),
    })


@access_control_bp.route("/users/<int:user_id>/access-controls", methods=["PUT"])
@require_auth
def put_access_controls(user_id):
    actor = current_user()
    target = _get_user_or_404(user_id)
    data = request.get_json(silent=True) or {}

    preset_name = data.get("preset")
    if preset_name is not None:
        raw = get_preset(preset_name) if isinstance(preset_name, str) else None
        if raw is None:
            return api_error(
                E.VALIDATION_INVALID,
                "Unknown preset",
                details={"preset": f"must be one of: {', '.join(PRESET_TEMPLATES)}"},
            )
    elif "access_controls" in data:
        raw = data["access_controls"]
    else:
        return api_error(E.VALIDATION_REQUIRED, "access_controls or preset is required")

    # ValidationError / AccessDeniedError are mapped by the app error handlers.
    checklist = update_user_checklist(actor, target, raw)
    log_event(
        actor=actor,
        module=AuditModule.USER_MANAGEMENT,
        action="update",
        sub_action="access_controls_updated",
        tenant_id=target.tenant_id,
        entity_type="User",
        entity_id=target.id,
        change_summary=f"Access controls updated for {target.role} {target.id}",
        metadata={"preset": preset_name} if preset_name else None,
        cache=current_app.extensions.get("consultant_scope_cache"),
    )
    db.session.commit()
    return jsonify({"user_id": target.id, "access_controls": checklist})

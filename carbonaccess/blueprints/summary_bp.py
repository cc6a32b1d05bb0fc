"""
Carbon Access Engine
Emission summary read blueprint.

Endpoints:
    GET /api/v1/clients/<int:tenant_id>/summary  — role-scoped summary

Query params:
    period — summary period (default: latest calculated row of any period)

Pipeline: tenant gate → access context → summary filter → checklist
section stripping (viewer / auditor only).
"""

import copy
import logging

from flask import Blueprint, current_app, jsonify, request

from carbonaccess.middleware.access_guards import current_user, require_module_access
from carbonaccess.models.summary import EmissionSummary
from carbonaccess.services.access_context import can_view_tenant_summary, resolve_access_context
from carbonaccess.services.checklist_service import (
    ChecklistModule,
    is_checklist_role,
    strip_restricted_sections,
)
from carbonaccess.services.summary_filter import filter_summary
from carbonaccess.utils.errors import E, api_error

logger = logging.getLogger(__name__)

summary_bp = Blueprint("summary", __name__, url_prefix="/api/v1")

# Checklist section -> keys of the response document it controls
SUMMARY_SECTION_KEYS = {
    "processEmission": ["process_emission_summary"],
    "reductionSummary": ["reduction_summary"],
}
EMISSION_SECTION_KEYS = {
    "byScope": ["byScope"],
    "byNode": ["byNode"],
    "byDepartment": ["byDepartment"],
    "byLocation": ["byLocation"],
    "metadata": ["metadata"],
}


def _latest_summary(tenant_id: int, period: str | None) -> EmissionSummary | None:
    q = EmissionSummary.query.filter(EmissionSummary.tenant_id == tenant_id)
    if period:
        q = q.filter(EmissionSummary.period == period)
    return q.order_by(EmissionSummary.calculated_at.desc(), EmissionSummary.id.desc()).first()


@summary_bp.route("/clients/<int:tenant_id>/summary", methods=["GET"])
@require_module_access(ChecklistModule.EMISSION_SUMMARY.value)
def get_client_summary(tenant_id):
    user = current_user()
    if not can_view_tenant_summary(user, tenant_id):
        logger.info("summary_access_denied user_id=%s role=%s tenant_id=%s", user.id, user.role, tenant_id)
        return api_error(E.FORBIDDEN, "You do not have access to this client's summary")

    row = _latest_summary(tenant_id, request.args.get("period"))
    if row is None:
        return api_error(E.NOT_FOUND, "Summary not found")

    context = resolve_access_context(
        user, tenant_id, max_workers=current_app.config.get("ACCESS_LOOKUP_MAX_WORKERS"),
    )
    payload = filter_summary(row.to_dict(), context)

    if is_checklist_role(user.role):
        payload = copy.deepcopy(payload)
        strip_restricted_sections(user, ChecklistModule.EMISSION_SUMMARY, payload, SUMMARY_SECTION_KEYS)
        strip_restricted_sections(
            user, ChecklistModule.EMISSION_SUMMARY, payload.get("emission_summary"), EMISSION_SECTION_KEYS,
        )

    payload["access"] = {"full_access": context.full_access, "role": user.role}
    return jsonify(payload)

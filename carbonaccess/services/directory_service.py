"""
Read-only lookups against the identity, chart, reduction and ownership
stores.

Every function returns detached plain values (dicts / lists of ids) so
callers never hold ORM instances across threads or after the session
closes. None of these functions catch errors: the caller decides what a
failed lookup means (for the access engine it always means "no access").
"""

from __future__ import annotations

import logging

from sqlalchemy import or_

from carbonaccess.core.roles import Role
from carbonaccess.models import db
from carbonaccess.models.auth import Tenant, User
from carbonaccess.models.flowchart import Flowchart
from carbonaccess.models.reduction import ReductionProject

logger = logging.getLogger(__name__)


# ── Charts & projects ────────────────────────────────────────────────────────

def _load_chart(tenant_id: int, chart_type: str) -> dict | None:
    chart = (
        Flowchart.query
        .filter(
            Flowchart.tenant_id == tenant_id,
            Flowchart.chart_type == chart_type,
            Flowchart.is_active.is_(True),
            Flowchart.is_deleted.is_(False),
        )
        .order_by(Flowchart.updated_at.desc(), Flowchart.id.desc())
        .first()
    )
    return chart.to_dict() if chart else None


def load_org_chart(tenant_id: int) -> dict | None:
    """Active organisation chart for a tenant, or None."""
    return _load_chart(tenant_id, "organization")


def load_process_chart(tenant_id: int) -> dict | None:
    """Process chart for a tenant, or None."""
    return _load_chart(tenant_id, "process")


def load_reduction_projects(tenant_id: int) -> list[dict]:
    """Non-deleted reduction projects with their assigned team."""
    rows = (
        ReductionProject.query
        .filter(
            ReductionProject.tenant_id == tenant_id,
            ReductionProject.is_deleted.is_(False),
        )
        .order_by(ReductionProject.id)
        .all()
    )
    return [r.to_dict() for r in rows]


# ── People ───────────────────────────────────────────────────────────────────

def find_managed_consultant_ids(consultant_admin_id: int) -> list[int]:
    """Consultants whose consultant_admin_id points at the given admin."""
    rows = (
        db.session.query(User.id)
        .filter(
            User.consultant_admin_id == consultant_admin_id,
            User.role == Role.CONSULTANT.value,
        )
        .all()
    )
    return sorted(r[0] for r in rows)


def find_employee_ids_under_head(head_id: int, tenant_id: int) -> list[int]:
    """Active employees reporting to a node head inside one tenant."""
    rows = (
        db.session.query(User.id)
        .filter(
            User.employee_head_id == head_id,
            User.tenant_id == tenant_id,
            User.role == Role.EMPLOYEE.value,
            User.is_active.is_(True),
        )
        .all()
    )
    return sorted(r[0] for r in rows)


# ── Tenant ownership ─────────────────────────────────────────────────────────

def find_tenant_ids_for_consultant_admin(admin_id: int, consultant_ids: list[int]) -> list[int]:
    """
    Tenants a consultant_admin reaches: owned, lead created by them, or
    assigned (lead or workflow) to them or one of their consultants.
    """
    staff = [admin_id, *consultant_ids]
    rows = (
        db.session.query(Tenant.id)
        .filter(or_(
            Tenant.consultant_admin_id == admin_id,
            Tenant.created_by_id == admin_id,
            Tenant.assigned_consultant_id.in_(staff),
            Tenant.workflow_consultant_id.in_(staff),
        ))
        .all()
    )
    return sorted({r[0] for r in rows})


def find_tenant_ids_for_consultant(consultant_id: int) -> list[int]:
    """Tenants the consultant is currently assigned to (lead or workflow)."""
    rows = (
        db.session.query(Tenant.id)
        .filter(or_(
            Tenant.assigned_consultant_id == consultant_id,
            Tenant.workflow_consultant_id == consultant_id,
        ))
        .all()
    )
    return sorted({r[0] for r in rows})


def get_consultant_admin_id(tenant_id: int) -> int | None:
    """Owning consultant_admin of a tenant (feeds ConsultantScopeCache)."""
    row = db.session.query(Tenant.consultant_admin_id).filter(Tenant.id == tenant_id).first()
    return row[0] if row else None

"""
Auth Models — tenants (client organisations) and users.

Tenant rows double as the ownership store: which consulting admin owns the
client, who created the lead, and which consultant is currently assigned.
User rows carry the role, hierarchy pointers and the viewer/auditor
access-control checklist.
"""

from datetime import datetime, timezone

from carbonaccess.models import db
from carbonaccess.services.checklist_service import default_checklist_for


# ═══════════════════════════════════════════════════════════════
# 1. TENANTS
# ═══════════════════════════════════════════════════════════════
class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True)

    # Ownership chain (lead + workflow assignment). Plain user ids: users
    # already reference tenants, so no FK back.
    consultant_admin_id = db.Column(db.Integer, nullable=True, index=True)
    created_by_id = db.Column(db.Integer, nullable=True)
    assigned_consultant_id = db.Column(db.Integer, nullable=True, index=True)
    workflow_consultant_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "consultant_admin_id": self.consultant_admin_id,
            "created_by_id": self.created_by_id,
            "assigned_consultant_id": self.assigned_consultant_id,
            "workflow_consultant_id": self.workflow_consultant_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def _default_access_controls(context):
    return default_checklist_for(context.get_current_parameters().get("role"))


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    # NULL for platform / consulting staff
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    email = db.Column(db.String(200), nullable=False, unique=True)
    full_name = db.Column(db.String(200))
    role = db.Column(db.String(40), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True)

    # Hierarchy pointers
    consultant_admin_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    employee_head_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )

    # Viewer / auditor checklist, see services.checklist_service. New
    # viewer / auditor rows start fully closed.
    access_controls = db.Column(db.JSON, nullable=True, default=_default_access_controls)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self, include_access_controls=False):
        d = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "is_active": self.is_active,
            "consultant_admin_id": self.consultant_admin_id,
            "employee_head_id": self.employee_head_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_access_controls:
            d["access_controls"] = self.access_controls
        return d

    def __repr__(self):
        return f"<User {self.id}: {self.role}>"

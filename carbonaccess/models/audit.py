"""
Carbon Access Engine
Audit domain model.

Models:
    - AuditLog: append-only activity trail (who did what, on which client
      and module). Role-scoped reads are enforced by
      ``carbonaccess.services.audit_access_policy``, not here.
"""

from datetime import UTC, datetime
from enum import Enum

from carbonaccess.models import db
from carbonaccess.models.soft_delete import SoftDeleteMixin


# ── Constants ────────────────────────────────────────────────────────────────

class AuditModule(str, Enum):
    AUTH = "auth"
    USER_MANAGEMENT = "user_management"
    ORGANIZATION_FLOWCHART = "organization_flowchart"
    PROCESS_FLOWCHART = "process_flowchart"
    TRANSPORT_FLOWCHART = "transport_flowchart"
    DATA_ENTRY = "data_entry"
    NET_REDUCTION = "net_reduction"
    REDUCTION = "reduction"
    FORMULA = "formula"
    SBTI = "sbti"
    EMISSION_SUMMARY = "emission_summary"
    API_INTEGRATION = "api_integration"
    IOT_INTEGRATION = "iot_integration"
    REPORTS = "reports"
    TICKETS = "tickets"
    SYSTEM = "system"
    OTHER = "other"


AUDIT_ACTIONS = {
    "login", "logout", "login_failed", "otp_sent", "otp_verified", "password_changed",
    "create", "update", "delete", "import", "export",
    "connect", "disconnect", "assign", "unassign",
    "approve", "reject", "calculate", "recalculate",
    "view", "other",
}

AUDIT_SOURCES = {"manual", "api", "iot", "system", "cron", "socket"}
AUDIT_STATUSES = {"success", "failure"}
AUDIT_SEVERITIES = {"info", "warning", "critical"}


class AuditLog(SoftDeleteMixin, db.Model):
    """
    One row per recorded event.

    ``actor_role`` and ``actor_name`` are snapshots taken when the event is
    written so the trail stays readable after the actor changes role or is
    removed.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_tenant_ts", "tenant_id", "created_at"),
        db.Index("idx_audit_tenant_module", "tenant_id", "module"),
        db.Index("idx_audit_actor", "actor_user_id"),
        db.Index("idx_audit_consultant_admin", "consultant_admin_id"),
        db.Index("idx_audit_module_action", "module", "action"),
    )

    id = db.Column(db.Integer, primary_key=True)
    # NULL for platform-level events not tied to a client
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Actor
    actor_user_id = db.Column(db.Integer, nullable=False)
    actor_role = db.Column(db.String(40), nullable=False)
    actor_name = db.Column(db.String(200), nullable=False, default="system")

    # Ownership chain, stamped at write time
    consultant_admin_id = db.Column(db.Integer, nullable=True)

    # What happened
    module = db.Column(db.String(40), nullable=False, index=True)
    action = db.Column(db.String(40), nullable=False, index=True)
    sub_action = db.Column(db.String(80), nullable=True)
    entity_type = db.Column(db.String(60), nullable=True)
    entity_id = db.Column(db.String(64), nullable=True)
    change_summary = db.Column(db.String(500), nullable=True)
    details = db.Column(db.JSON, nullable=True, comment="small, sanitised metadata")

    source = db.Column(db.String(20), nullable=False, default="manual")
    status = db.Column(db.String(20), nullable=False, default="success")
    severity = db.Column(db.String(20), nullable=False, default="info")

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "actor_user_id": self.actor_user_id,
            "actor_role": self.actor_role,
            "actor_name": self.actor_name,
            "consultant_admin_id": self.consultant_admin_id,
            "module": self.module,
            "action": self.action,
            "sub_action": self.sub_action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "change_summary": self.change_summary,
            "details": self.details,
            "source": self.source,
            "status": self.status,
            "severity": self.severity,
            "is_deleted": self.is_deleted,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.module}.{self.action} tenant={self.tenant_id}>"

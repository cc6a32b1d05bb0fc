"""Reduction projects and their assigned team."""

from datetime import datetime, timezone

from carbonaccess.models import db


class ReductionProject(db.Model):
    __tablename__ = "reduction_projects"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "project_id", name="uq_reduction_tenant_project"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    project_id = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(200))
    # {"employeeHeadId": <id|ref>, "employeeIds": [<id|ref>, ...]}
    assigned_team = db.Column(db.JSON, default=dict)
    is_deleted = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "project_id": self.project_id,
            "name": self.name,
            "assigned_team": dict(self.assigned_team or {}),
        }

"""
Organisation and process charts.

A tenant owns one active organisation chart and one process chart. Both are
stored document-style: ``nodes`` is a JSON list of
``{"id", "label", "details": {"employeeHeadId", "department", "location",
"scopeDetails": [...]}}`` entries, and each scope detail carries
``scopeIdentifier``, ``scopeType``, ``categoryName``, ``activity``,
``assignedEmployees`` and an optional ``isDeleted`` flag.

Identity fields inside ``nodes`` may be raw ids, ``{"id": ..}`` or
``{"_id": ..}`` references; compare them through
``carbonaccess.services.identity.normalize_id`` only.
"""

from datetime import datetime, timezone

from carbonaccess.models import db

CHART_TYPES = ("organization", "process")


class Flowchart(db.Model):
    __tablename__ = "flowcharts"
    __table_args__ = (
        db.Index("ix_flowcharts_tenant_type", "tenant_id", "chart_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    chart_type = db.Column(
        db.String(20), nullable=False, default="organization",
        comment="organization | process",
    )
    is_active = db.Column(db.Boolean, default=True)
    is_deleted = db.Column(db.Boolean, default=False)
    nodes = db.Column(db.JSON, default=list)
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "chart_type": self.chart_type,
            "is_active": self.is_active,
            "nodes": list(self.nodes or []),
        }

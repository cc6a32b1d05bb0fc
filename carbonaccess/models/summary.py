"""
Pre-computed per-tenant emission summary.

The three JSON sub-trees are produced by the calculation pipeline and are
read-only here; role-scoped responses are derived from them by
``carbonaccess.services.summary_filter``.
"""

from datetime import datetime, timezone

from carbonaccess.models import db


class EmissionSummary(db.Model):
    __tablename__ = "emission_summaries"
    __table_args__ = (
        db.Index("ix_emission_summaries_tenant_period", "tenant_id", "period"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    period = db.Column(db.String(20), nullable=False, default="all-time",
                       comment="all-time | 2024 | 2024-03 | …")
    emission_summary = db.Column(db.JSON, default=dict)
    process_emission_summary = db.Column(db.JSON, default=dict)
    reduction_summary = db.Column(db.JSON, default=dict)
    calculated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "period": self.period,
            "emission_summary": self.emission_summary or {},
            "process_emission_summary": self.process_emission_summary or {},
            "reduction_summary": self.reduction_summary or {},
            "calculated_at": self.calculated_at.isoformat() if self.calculated_at else None,
        }

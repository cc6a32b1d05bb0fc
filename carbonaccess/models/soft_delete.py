"""
Soft Delete Mixin — audit rows are marked deleted, never removed in place.

Adds ``is_deleted`` / ``deleted_at`` / ``deleted_by_id`` columns and query
helpers. A soft-deleted row can be restored while it is inside the restore
window (``AUDIT_RESTORE_WINDOW_DAYS``, 30 days by default).

Usage:
    log.soft_delete(deleted_by_id=admin.id)
    db.session.commit()

    AuditLog.query_active().all()
    AuditLog.query_restorable(window_days=30).all()
    AuditLog.query_expired(window_days=30).all()

    log.restore(window_days=30)
"""

from datetime import datetime, timedelta, timezone

from carbonaccess.models import db

DEFAULT_RESTORE_WINDOW_DAYS = 30


def _aware(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class SoftDeleteMixin:
    """Mixin that adds soft delete + restore-window support to a model."""

    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime, nullable=True, default=None)
    deleted_by_id = db.Column(db.Integer, nullable=True, default=None)

    def soft_delete(self, deleted_by_id: int | None = None):
        """Mark this record as deleted."""
        self.is_deleted = True
        self.deleted_at = datetime.now(timezone.utc)
        self.deleted_by_id = deleted_by_id

    def is_restorable(self, window_days: int = DEFAULT_RESTORE_WINDOW_DAYS, now=None) -> bool:
        if not self.is_deleted or self.deleted_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return _aware(self.deleted_at) >= now - timedelta(days=window_days)

    def restore(self, window_days: int = DEFAULT_RESTORE_WINDOW_DAYS, now=None) -> bool:
        """Restore a soft-deleted record. Returns False outside the window."""
        if not self.is_restorable(window_days, now=now):
            return False
        self.is_deleted = False
        self.deleted_at = None
        self.deleted_by_id = None
        return True

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted records."""
        return cls.query.filter(cls.is_deleted.is_(False))

    @classmethod
    def query_restorable(cls, window_days: int = DEFAULT_RESTORE_WINDOW_DAYS, now=None):
        """Soft-deleted records still inside the restore window."""
        now = now or datetime.now(timezone.utc)
        cutoff = (now - timedelta(days=window_days)).replace(tzinfo=None)
        return cls.query.filter(cls.is_deleted.is_(True), cls.deleted_at >= cutoff)

    @classmethod
    def query_expired(cls, window_days: int = DEFAULT_RESTORE_WINDOW_DAYS, now=None):
        """Soft-deleted records past the restore window, ready for purge."""
        now = now or datetime.now(timezone.utc)
        cutoff = (now - timedelta(days=window_days)).replace(tzinfo=None)
        return cls.query.filter(cls.is_deleted.is_(True), cls.deleted_at < cutoff)

"""
Audit writer — the single entry point for appending AuditLog rows.

    from carbonaccess.services.audit_service import log_event

    log_event(
        actor=user,
        module="data_entry",
        action="create",
        tenant_id=entry.tenant_id,
        entity_type="DataEntry",
        entity_id=entry.id,
        change_summary="Added manual entry",
        metadata={"node_id": node_id},
        cache=current_app.extensions["consultant_scope_cache"],
    )

``consultant_admin_id`` is stamped on every row from the owning tenant so
audit reads can be scoped by consulting team without a join. Writing an
audit row must never break the caller: every failure is logged and the
function returns None.
"""

from __future__ import annotations

import json
import logging

from flask import current_app, has_app_context

from carbonaccess.models import db
from carbonaccess.models.audit import (
    AUDIT_ACTIONS,
    AUDIT_SEVERITIES,
    AUDIT_SOURCES,
    AUDIT_STATUSES,
    AuditLog,
    AuditModule,
)

logger = logging.getLogger(__name__)

BLOCKED_METADATA_KEYS = frozenset({
    "password", "token", "secret", "apikey", "api_key", "key", "hash", "salt",
})
DEFAULT_METADATA_MAX_BYTES = 2048
SUMMARY_MAX_LENGTH = 500


def _max_metadata_bytes() -> int:
    if has_app_context():
        return current_app.config.get("AUDIT_METADATA_MAX_BYTES", DEFAULT_METADATA_MAX_BYTES)
    return DEFAULT_METADATA_MAX_BYTES


def sanitize_metadata(raw, max_bytes: int | None = None) -> dict | None:
    """Drop credential-like keys and cap the serialised size."""
    if not raw or not isinstance(raw, dict):
        return None
    limit = max_bytes if max_bytes is not None else _max_metadata_bytes()
    cleaned = {
        k: v for k, v in raw.items()
        if str(k).lower() not in BLOCKED_METADATA_KEYS
    }
    try:
        encoded = json.dumps(cleaned, default=str)
    except (TypeError, ValueError):
        return {"_truncated": True, "note": "Metadata serialization failed."}
    if len(encoded.encode("utf-8")) > limit:
        return {"_truncated": True, "note": f"Metadata exceeded {limit} bytes and was stripped."}
    # Round-trip so the JSON column never holds non-serialisable values.
    return json.loads(encoded)


def _pick(value: str, allowed, fallback: str) -> str:
    return value if value in allowed else fallback


def log_event(
    *,
    actor,
    module: str,
    action: str,
    tenant_id: int | None = None,
    sub_action: str | None = None,
    entity_type: str | None = None,
    entity_id=None,
    change_summary: str | None = None,
    metadata: dict | None = None,
    source: str = "manual",
    status: str = "success",
    severity: str = "info",
    cache=None,
) -> AuditLog | None:
    """
    Append one audit row and flush it. Returns the row, or None when the
    event could not be recorded. Callers keep transaction control.
    """
    if actor is None or getattr(actor, "id", None) is None:
        logger.warning("audit_event_skipped reason=no_actor module=%s action=%s", module, action)
        return None

    module_value = module.value if isinstance(module, AuditModule) else str(module)
    if module_value not in {m.value for m in AuditModule}:
        module_value = AuditModule.OTHER.value

    if tenant_id is None:
        tenant_id = getattr(actor, "tenant_id", None)

    try:
        consultant_admin_id = cache.get(tenant_id) if (cache is not None and tenant_id is not None) else None
        log = AuditLog(
            tenant_id=tenant_id,
            actor_user_id=actor.id,
            actor_role=getattr(actor, "role", None) or "unknown",
            actor_name=getattr(actor, "full_name", None) or getattr(actor, "email", None) or "unknown",
            consultant_admin_id=consultant_admin_id,
            module=module_value,
            action=_pick(action, AUDIT_ACTIONS, "other"),
            sub_action=sub_action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            change_summary=str(change_summary)[:SUMMARY_MAX_LENGTH] if change_summary else None,
            details=sanitize_metadata(metadata),
            source=_pick(source, AUDIT_SOURCES, "manual"),
            status=_pick(status, AUDIT_STATUSES, "success"),
            severity=_pick(severity, AUDIT_SEVERITIES, "info"),
        )
        with db.session.begin_nested():
            db.session.add(log)
            db.session.flush()
    except Exception:
        logger.exception(
            "audit_event_failed module=%s action=%s tenant_id=%s", module_value, action, tenant_id,
        )
        return None
    return log

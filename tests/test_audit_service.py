"""
Audit writer tests.

Test blocks:
  1. Metadata sanitising
  2. log_event row construction
  3. Failure isolation
"""

from types import SimpleNamespace

import pytest

from carbonaccess.models import db
from carbonaccess.models.audit import AuditLog
from carbonaccess.services import audit_service
from carbonaccess.services.audit_service import log_event, sanitize_metadata
from carbonaccess.services.consultant_cache import ConsultantScopeCache


# ── 1. Metadata ──────────────────────────────────────────────────────────────

class TestSanitizeMetadata:

    def test_blocked_keys_dropped_case_insensitive(self):
        out = sanitize_metadata({"Password": "x", "apiKey": "y", "TOKEN": "z", "node_id": "n-1"})
        assert out == {"node_id": "n-1"}

    @pytest.mark.parametrize("raw", [None, {}, "text", ["a"]])
    def test_empty_or_non_dict_is_none(self, raw):
        assert sanitize_metadata(raw) is None

    def test_oversized_metadata_replaced(self):
        out = sanitize_metadata({"blob": "x" * 500}, max_bytes=100)
        assert out["_truncated"] is True
        assert "100" in out["note"]

    def test_non_json_values_stringified(self):
        out = sanitize_metadata({"when": object})
        assert isinstance(out["when"], str)

    def test_app_config_limit_used(self, app):
        app.config["AUDIT_METADATA_MAX_BYTES"] = 20
        try:
            assert sanitize_metadata({"blob": "x" * 50})["_truncated"] is True
        finally:
            app.config["AUDIT_METADATA_MAX_BYTES"] = 2048


# ── 2. log_event ─────────────────────────────────────────────────────────────

class TestLogEvent:

    def test_row_written_with_actor_snapshot(self, tenant, make_user):
        user = make_user("client_admin", tenant, full_name="Dana Admin")
        log = log_event(
            actor=user, module="data_entry", action="create",
            entity_type="DataEntry", entity_id=17, metadata={"secret": "s", "rows": 3},
        )
        assert log is not None
        stored = db.session.get(AuditLog, log.id)
        assert stored.tenant_id == tenant.id
        assert stored.actor_role == "client_admin"
        assert stored.actor_name == "Dana Admin"
        assert stored.entity_id == "17"
        assert stored.details == {"rows": 3}
        assert stored.is_deleted is False

    def test_consultant_admin_stamped_from_cache(self, make_tenant, make_user):
        owned = make_tenant(consultant_admin_id=42)
        cache = ConsultantScopeCache(lambda tid: 42 if tid == owned.id else None)
        try:
            log = log_event(actor=make_user("employee", owned), module="reduction", action="update", cache=cache)
            assert log.consultant_admin_id == 42
            assert owned.id in cache
        finally:
            cache.clear()

    def test_no_cache_means_no_stamp(self, tenant, make_user):
        log = log_event(actor=make_user("employee", tenant), module="reduction", action="update")
        assert log.consultant_admin_id is None

    def test_unknown_values_fall_back(self, tenant, make_user):
        log = log_event(
            actor=make_user("employee", tenant), module="bogus", action="explode",
            source="carrier-pigeon", status="meh", severity="apocalyptic",
        )
        assert (log.module, log.action, log.source, log.status, log.severity) == (
            "other", "other", "manual", "success", "info",
        )

    def test_explicit_tenant_overrides_actor(self, tenant, make_tenant, make_user):
        other = make_tenant()
        log = log_event(actor=make_user("consultant"), module="system", action="update", tenant_id=other.id)
        assert log.tenant_id == other.id

    def test_change_summary_capped(self, tenant, make_user):
        log = log_event(
            actor=make_user("employee", tenant), module="data_entry", action="update",
            change_summary="y" * 900,
        )
        assert len(log.change_summary) == audit_service.SUMMARY_MAX_LENGTH

    @pytest.mark.parametrize("actor", [None, SimpleNamespace(id=None, role="employee")])
    def test_missing_actor_skipped(self, actor):
        assert log_event(actor=actor, module="auth", action="login") is None
        assert AuditLog.query.count() == 0


# ── 3. Failure isolation ─────────────────────────────────────────────────────

class TestFailureIsolation:

    def test_cache_failure_returns_none(self, tenant, make_user):
        class _BrokenCache:
            def get(self, tenant_id):
                raise RuntimeError("cache down")

        user = make_user("employee", tenant)
        assert log_event(actor=user, module="data_entry", action="create", cache=_BrokenCache()) is None


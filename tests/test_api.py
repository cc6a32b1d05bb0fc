"""
HTTP API tests.

Test blocks:
  1. Authentication (JWT middleware + require_auth)
  2. GET  /clients/<id>/summary
  3. GET  /audit-logs, /audit-logs/<id>, /stats, /search, /module/<module>
  4. Super admin delete / bulk delete / deleted / restore / bulk restore / purge
  5. Access-control checklist endpoints
"""

import logging
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from carbonaccess.models import db
from carbonaccess.models.audit import AuditLog
from carbonaccess.models.flowchart import Flowchart
from carbonaccess.models.summary import EmissionSummary
from carbonaccess.services.checklist_service import (
    PRESET_TEMPLATES,
    build_closed_checklist,
    build_open_checklist,
    get_preset,
)


def _gases(co2e):
    return {"CO2e": co2e, "CO2": co2e, "CH4": 0, "N2O": 0}


EMISSION = {
    "totalEmissions": {**_gases(150), "uncertainty": 0},
    "byScope": {
        "Scope 1": {**_gases(50), "dataPointCount": 4},
        "Scope 2": {**_gases(100), "dataPointCount": 6},
        "Scope 3": {**_gases(0), "dataPointCount": 0},
    },
    "byCategory": {
        "Electricity": {"scopeType": "Scope 2", **_gases(100), "dataPointCount": 6,
                        "activities": {"Grid": {**_gases(100), "dataPointCount": 6}}},
        "Fuel": {"scopeType": "Scope 1", **_gases(50), "dataPointCount": 4,
                 "activities": {"Diesel": {**_gases(50), "dataPointCount": 4}}},
    },
    "byNode": {
        "n-1": {**_gases(100), "department": "Ops", "location": "Plant A",
                "byScope": {"Scope 2": {**_gases(100), "dataPointCount": 6}}},
        "n-2": {**_gases(50), "department": "Fleet", "location": "Depot",
                "byScope": {"Scope 1": {**_gases(50), "dataPointCount": 4}}},
    },
    "byDepartment": {"Ops": _gases(100), "Fleet": _gases(50)},
    "byLocation": {"Plant A": _gases(100), "Depot": _gases(50)},
    "metadata": {"version": "3"},
}


def _audit_checklist(*sections):
    ac = build_closed_checklist()
    ac["modules"]["audit_logs"]["enabled"] = True
    for s in sections:
        ac["modules"]["audit_logs"]["sections"][s] = True
    return ac


def _log(tenant_id, actor, module="data_entry", action="create"):
    row = AuditLog(
        tenant_id=tenant_id, actor_user_id=actor.id, actor_role=actor.role,
        actor_name=actor.full_name, module=module, action=action,
    )
    db.session.add(row)
    db.session.flush()
    return row


# ═════════════════════════════════════════════════════════════════════════════
# 1. Authentication
# ═════════════════════════════════════════════════════════════════════════════

class TestAuthentication:

    def test_health_needs_no_token(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_missing_token(self, client):
        res = client.get("/api/v1/audit-logs")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_garbage_token(self, client):
        res = client.get("/api/v1/audit-logs", headers={"Authorization": "Bearer not.a.jwt"})
        assert res.status_code == 401

    def test_expired_token(self, app, client, make_user):
        user = make_user("super_admin")
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = jwt.encode(
            {"sub": str(user.id), "type": "access", "iat": past, "exp": past + timedelta(minutes=1)},
            app.config["SECRET_KEY"], algorithm="HS256",
        )
        res = client.get("/api/v1/audit-logs", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_non_access_token_type(self, app, client, make_user):
        user = make_user("super_admin")
        token = jwt.encode(
            {"sub": str(user.id), "type": "refresh", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            app.config["SECRET_KEY"], algorithm="HS256",
        )
        res = client.get("/api/v1/audit-logs", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_inactive_user(self, client, make_user, auth_headers):
        user = make_user("super_admin", is_active=False)
        assert client.get("/api/v1/audit-logs", headers=auth_headers(user)).status_code == 401

    def test_token_role_claim_is_not_trusted(self, app, client, tenant, make_user):
        employee = make_user("employee", tenant)
        token = jwt.encode(
            {"sub": str(employee.id), "role": "super_admin", "type": "access",
             "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            app.config["SECRET_KEY"], algorithm="HS256",
        )
        res = client.get("/api/v1/audit-logs", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 403


# ═════════════════════════════════════════════════════════════════════════════
# 2. Summary endpoint
# ═════════════════════════════════════════════════════════════════════════════

class TestSummaryEndpoint:

    @pytest.fixture()
    def seeded(self, tenant, make_user):
        head = make_user("client_employee_head", tenant)
        employee = make_user("employee", tenant, employee_head_id=head.id)
        db.session.add_all([
            Flowchart(tenant_id=tenant.id, chart_type="organization", nodes=[
                {"id": "n-1", "details": {"employeeHeadId": head.id, "scopeDetails": [
                    {"scopeIdentifier": "S-ELEC", "scopeType": "Scope 2", "categoryName": "Electricity",
                     "activity": "Grid", "assignedEmployees": [employee.id]},
                ]}},
                {"id": "n-2", "details": {"employeeHeadId": None, "scopeDetails": [
                    {"scopeIdentifier": "S-FUEL", "scopeType": "Scope 1", "categoryName": "Fuel",
                     "activity": "Diesel", "assignedEmployees": []},
                ]}},
            ]),
            EmissionSummary(
                tenant_id=tenant.id, period="2023",
                calculated_at=datetime(2024, 1, 1), emission_summary={"totalEmissions": _gases(1)},
            ),
            EmissionSummary(
                tenant_id=tenant.id, period="2024",
                calculated_at=datetime(2025, 1, 1), emission_summary=EMISSION,
                process_emission_summary={"totalEmissions": _gases(10)},
                reduction_summary={"totalNetReduction": 5, "entriesCount": 1, "byProject": []},
            ),
        ])
        db.session.flush()
        return {"head": head, "employee": employee}

    def _url(self, tenant):
        return f"/api/v1/clients/{tenant.id}/summary"

    def test_client_admin_gets_everything(self, client, tenant, seeded, make_user, auth_headers):
        res = client.get(self._url(tenant), headers=auth_headers(make_user("client_admin", tenant)))
        assert res.status_code == 200
        body = res.get_json()
        assert body["period"] == "2024"
        assert body["emission_summary"] == EMISSION
        assert body["access"] == {"full_access": True, "role": "client_admin"}

    def test_period_selects_row(self, client, tenant, seeded, make_user, auth_headers):
        res = client.get(
            self._url(tenant) + "?period=2023", headers=auth_headers(make_user("client_admin", tenant)),
        )
        assert res.get_json()["emission_summary"]["totalEmissions"]["CO2e"] == 1

    def test_employee_sees_own_activity_only(self, client, tenant, seeded, auth_headers):
        res = client.get(self._url(tenant), headers=auth_headers(seeded["employee"]))
        assert res.status_code == 200
        es = res.get_json()["emission_summary"]
        assert es["totalEmissions"]["CO2e"] == 100
        assert set(es["byCategory"]) == {"Electricity"}
        assert es["byNode"] == {}
        assert es["metadata"]["filterMethod"] == "byCategory"
        assert res.get_json()["access"]["full_access"] is False

    def test_head_sees_own_nodes(self, client, tenant, seeded, auth_headers):
        res = client.get(self._url(tenant), headers=auth_headers(seeded["head"]))
        es = res.get_json()["emission_summary"]
        assert set(es["byNode"]) == {"n-1"}
        assert es["totalEmissions"]["CO2e"] == 100
        assert set(es["byDepartment"]) == {"Ops"}

    def test_head_without_nodes_forbidden(self, client, tenant, seeded, make_user, auth_headers):
        res = client.get(self._url(tenant), headers=auth_headers(make_user("client_employee_head", tenant)))
        assert res.status_code == 403

    def test_other_tenant_forbidden(self, client, tenant, seeded, make_tenant, make_user, auth_headers):
        outsider = make_user("client_admin", make_tenant())
        assert client.get(self._url(tenant), headers=auth_headers(outsider)).status_code == 403

    def test_owning_consultant_admin(self, client, tenant, seeded, make_user, auth_headers):
        admin = make_user("consultant_admin")
        tenant.consultant_admin_id = admin.id
        db.session.flush()
        assert client.get(self._url(tenant), headers=auth_headers(admin)).status_code == 200

    def test_missing_summary(self, client, tenant, make_user, auth_headers):
        res = client.get(self._url(tenant), headers=auth_headers(make_user("client_admin", tenant)))
        assert res.status_code == 404

    def test_viewer_module_disabled(self, client, tenant, seeded, make_user, auth_headers):
        viewer = make_user("viewer", tenant, access_controls=build_closed_checklist())
        res = client.get(self._url(tenant), headers=auth_headers(viewer))
        assert res.status_code == 403
        assert res.get_json()["details"]["module"] == "emission_summary"

    def test_viewer_sections_stripped(self, client, tenant, seeded, make_user, auth_headers):
        ac = build_closed_checklist()
        ac["modules"]["emission_summary"]["enabled"] = True
        ac["modules"]["emission_summary"]["sections"]["overview"] = True
        ac["modules"]["emission_summary"]["sections"]["byScope"] = True
        viewer = make_user("viewer", tenant, access_controls=ac)
        res = client.get(self._url(tenant), headers=auth_headers(viewer))
        assert res.status_code == 200
        body = res.get_json()
        assert "process_emission_summary" not in body
        assert "reduction_summary" not in body
        es = body["emission_summary"]
        assert "byScope" in es and "byCategory" in es
        for key in ("byNode", "byDepartment", "byLocation", "metadata"):
            assert key not in es

    def test_open_checklist_viewer_gets_full_document(self, client, tenant, seeded, make_user, auth_headers):
        viewer = make_user("viewer", tenant, access_controls=build_open_checklist())
        body = client.get(self._url(tenant), headers=auth_headers(viewer)).get_json()
        assert body["emission_summary"] == EMISSION
        assert body["reduction_summary"]["totalNetReduction"] == 5


# ═════════════════════════════════════════════════════════════════════════════
# 3. Audit log reads
# ═════════════════════════════════════════════════════════════════════════════

class TestAuditReads:

    @pytest.fixture()
    def logs(self, tenant, make_tenant, make_user):
        head = make_user("client_employee_head", tenant)
        other = make_tenant()
        return {
            "head_entry": _log(tenant.id, head),
            "head_reduction": _log(tenant.id, head, module="reduction", action="update"),
            "auth": _log(tenant.id, head, module="auth", action="login"),
            "consultant": _log(tenant.id, make_user("consultant")),
            "elsewhere": _log(other.id, make_user("employee", other)),
        }

    def _ids(self, res):
        return {row["id"] for row in res.get_json()["audit_logs"]}

    def test_employee_denied_before_query(self, client, tenant, make_user, auth_headers):
        res = client.get("/api/v1/audit-logs", headers=auth_headers(make_user("employee", tenant)))
        assert res.status_code == 403
        assert res.get_json()["details"]["reason"] == "employee_no_access"

    def test_denied_request_logged_with_reason(self, client, tenant, make_user, auth_headers, caplog):
        caplog.set_level(logging.INFO, logger="carbonaccess.access")
        employee = make_user("employee", tenant)
        client.get("/api/v1/audit-logs", headers=auth_headers(employee))
        records = [r for r in caplog.records if r.name == "carbonaccess.access"]
        assert records[-1].status == 403
        assert records[-1].reason == "employee_no_access"
        assert records[-1].user_id == employee.id

    def test_client_admin_scope(self, client, tenant, logs, make_user, auth_headers):
        res = client.get("/api/v1/audit-logs", headers=auth_headers(make_user("client_admin", tenant)))
        assert res.status_code == 200
        assert self._ids(res) == {logs["head_entry"].id, logs["head_reduction"].id}
        assert res.get_json()["scope"]["excluded_modules"] == ["auth"]

    def test_super_admin_sees_all(self, client, logs, make_user, auth_headers):
        res = client.get("/api/v1/audit-logs", headers=auth_headers(make_user("super_admin")))
        assert self._ids(res) == {row.id for row in logs.values()}
        assert res.get_json()["total"] == len(logs)

    def test_filters(self, client, tenant, logs, make_user, auth_headers):
        headers = auth_headers(make_user("super_admin"))
        res = client.get("/api/v1/audit-logs?module=reduction", headers=headers)
        assert self._ids(res) == {logs["head_reduction"].id}
        res = client.get(f"/api/v1/audit-logs?tenant_id={tenant.id}&action=login", headers=headers)
        assert self._ids(res) == {logs["auth"].id}

    def test_bad_timestamp(self, client, logs, make_user, auth_headers):
        res = client.get("/api/v1/audit-logs?from=yesterday", headers=auth_headers(make_user("super_admin")))
        assert res.status_code == 400

    def test_pagination(self, client, logs, make_user, auth_headers):
        res = client.get("/api/v1/audit-logs?per_page=2&page=2", headers=auth_headers(make_user("super_admin")))
        body = res.get_json()
        assert len(body["audit_logs"]) == 2
        assert body["pages"] == 3

    def test_auditor_module_subset(self, client, tenant, logs, make_user, auth_headers):
        auditor = make_user("auditor", tenant, access_controls=_audit_checklist("list", "reduction_logs"))
        res = client.get("/api/v1/audit-logs", headers=auth_headers(auditor))
        assert self._ids(res) == {logs["head_reduction"].id}

    def test_auditor_without_list_section(self, client, tenant, make_user, auth_headers):
        auditor = make_user("auditor", tenant, access_controls=_audit_checklist("reduction_logs"))
        res = client.get("/api/v1/audit-logs", headers=auth_headers(auditor))
        assert res.status_code == 403
        assert res.get_json()["details"]["reason"] == "audit_list_section_disabled"

    def test_detail_requires_section(self, client, tenant, logs, make_user, auth_headers):
        auditor = make_user("auditor", tenant, access_controls=_audit_checklist("list", "reduction_logs"))
        res = client.get(f"/api/v1/audit-logs/{logs['head_reduction'].id}", headers=auth_headers(auditor))
        assert res.status_code == 403

    def test_detail_in_and_out_of_scope(self, client, tenant, logs, make_user, auth_headers):
        auditor = make_user(
            "auditor", tenant, access_controls=_audit_checklist("list", "detail", "reduction_logs"),
        )
        headers = auth_headers(auditor)
        ok = client.get(f"/api/v1/audit-logs/{logs['head_reduction'].id}", headers=headers)
        assert ok.status_code == 200
        assert ok.get_json()["module"] == "reduction"
        for key in ("head_entry", "auth", "elsewhere"):
            res = client.get(f"/api/v1/audit-logs/{logs[key].id}", headers=headers)
            assert res.status_code == 404

    def test_client_admin_stats_follow_scope(self, client, tenant, logs, make_user, auth_headers):
        res = client.get("/api/v1/audit-logs/stats", headers=auth_headers(make_user("client_admin", tenant)))
        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 2
        assert body["by_module"] == {"data_entry": 1, "reduction": 1}
        assert body["by_action"] == {"create": 1, "update": 1}
        assert "auth" not in body["by_module"]

    def test_super_admin_stats_count_everything(self, client, logs, make_user, auth_headers):
        headers = auth_headers(make_user("super_admin"))
        body = client.get("/api/v1/audit-logs/stats", headers=headers).get_json()
        assert body["total"] == len(logs)
        assert body["by_module"] == {"data_entry": 3, "reduction": 1, "auth": 1}
        assert body["by_status"] == {"success": len(logs)}
        filtered = client.get("/api/v1/audit-logs/stats?module=auth", headers=headers).get_json()
        assert filtered["total"] == 1

    def test_stats_denied_for_employee(self, client, tenant, make_user, auth_headers):
        res = client.get("/api/v1/audit-logs/stats", headers=auth_headers(make_user("employee", tenant)))
        assert res.status_code == 403

    def test_stats_exclude_soft_deleted(self, client, logs, make_user, auth_headers):
        logs["elsewhere"].soft_delete()
        db.session.flush()
        body = client.get("/api/v1/audit-logs/stats", headers=auth_headers(make_user("super_admin"))).get_json()
        assert body["total"] == len(logs) - 1

    def test_search_is_scoped(self, client, tenant, logs, make_user, auth_headers):
        res = client.get(
            "/api/v1/audit-logs/search?q=employee%20head", headers=auth_headers(make_user("super_admin")),
        )
        assert self._ids(res) == {logs["head_entry"].id, logs["head_reduction"].id, logs["auth"].id}

        headers = auth_headers(make_user("client_admin", tenant))
        res = client.get("/api/v1/audit-logs/search?q=EMPLOYEE%20HEAD", headers=headers)
        assert self._ids(res) == {logs["head_entry"].id, logs["head_reduction"].id}
        res = client.get("/api/v1/audit-logs/search?q=consultant", headers=headers)
        assert self._ids(res) == set()

    def test_search_requires_term(self, client, logs, make_user, auth_headers):
        res = client.get("/api/v1/audit-logs/search?q=%20", headers=auth_headers(make_user("super_admin")))
        assert res.status_code == 400

    def test_by_module(self, client, tenant, logs, make_user, auth_headers):
        headers = auth_headers(make_user("client_admin", tenant))
        res = client.get("/api/v1/audit-logs/module/reduction?module=data_entry", headers=headers)
        assert res.get_json()["module"] == "reduction"
        assert self._ids(res) == {logs["head_reduction"].id}
        res = client.get("/api/v1/audit-logs/module/auth", headers=headers)
        assert self._ids(res) == set()
        res = client.get("/api/v1/audit-logs/module/billing", headers=headers)
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# 4. Delete / restore
# ═════════════════════════════════════════════════════════════════════════════

class TestAuditDeletion:

    @pytest.fixture()
    def admin(self, make_user):
        return make_user("super_admin")

    def test_only_super_admin_deletes(self, client, tenant, make_user, auth_headers):
        row = _log(tenant.id, make_user("employee", tenant))
        res = client.delete(f"/api/v1/audit-logs/{row.id}", headers=auth_headers(make_user("client_admin", tenant)))
        assert res.status_code == 403
        assert row.is_deleted is False

    def test_soft_delete_and_restore(self, client, tenant, admin, make_user, auth_headers):
        row = _log(tenant.id, make_user("employee", tenant))
        headers = auth_headers(admin)

        res = client.delete(f"/api/v1/audit-logs/{row.id}", headers=headers)
        assert res.status_code == 200
        assert db.session.get(AuditLog, row.id).is_deleted is True
        trail = AuditLog.query.filter_by(sub_action="audit_log_soft_delete").one()
        assert trail.actor_user_id == admin.id and trail.severity == "critical"

        listed = client.get("/api/v1/audit-logs", headers=headers).get_json()["audit_logs"]
        assert row.id not in {r["id"] for r in listed}
        deleted = client.get("/api/v1/audit-logs/deleted", headers=headers).get_json()["audit_logs"]
        assert [r["id"] for r in deleted] == [row.id]

        res = client.patch(f"/api/v1/audit-logs/{row.id}/restore", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["is_deleted"] is False
        assert client.patch(f"/api/v1/audit-logs/{row.id}/restore", headers=headers).status_code == 404

    def test_restore_outside_window(self, client, tenant, admin, make_user, auth_headers):
        row = _log(tenant.id, make_user("employee", tenant))
        row.soft_delete(deleted_by_id=admin.id)
        row.deleted_at = datetime.now(timezone.utc) - timedelta(days=45)
        db.session.flush()
        res = client.patch(f"/api/v1/audit-logs/{row.id}/restore", headers=auth_headers(admin))
        assert res.status_code == 409

    def test_deleted_listing_forbidden_for_others(self, client, tenant, make_user, auth_headers):
        res = client.get("/api/v1/audit-logs/deleted", headers=auth_headers(make_user("client_admin", tenant)))
        assert res.status_code == 403

    def test_bulk_delete_by_client(self, client, tenant, make_tenant, admin, make_user, auth_headers):
        other = make_tenant()
        mine = [_log(tenant.id, make_user("employee", tenant)) for _ in range(3)]
        keep = _log(other.id, make_user("employee", other))
        res = client.delete(
            "/api/v1/audit-logs", headers=auth_headers(admin),
            json={"scope": "by_client", "tenant_id": tenant.id, "confirm": True},
        )
        assert res.status_code == 200
        assert res.get_json()["deleted"] == 3
        assert all(db.session.get(AuditLog, r.id).is_deleted for r in mine)
        assert db.session.get(AuditLog, keep.id).is_deleted is False

    def test_bulk_delete_by_actor(self, client, tenant, admin, make_user, auth_headers):
        actor = make_user("employee", tenant)
        _log(tenant.id, actor)
        _log(tenant.id, make_user("employee", tenant))
        res = client.delete(
            "/api/v1/audit-logs", headers=auth_headers(admin),
            json={"scope": "by_actor", "user_id": actor.id, "confirm": True},
        )
        assert res.get_json()["deleted"] == 1

    @pytest.mark.parametrize("body, status", [
        ({"scope": "everything", "confirm": True}, 403),
        ({"scope": "all"}, 400),
        ({"scope": "by_client", "confirm": True}, 400),
        ({"scope": "by_employee", "confirm": True}, 400),
    ])
    def test_bulk_delete_rejections(self, body, status, client, admin, auth_headers):
        res = client.delete("/api/v1/audit-logs", headers=auth_headers(admin), json=body)
        assert res.status_code == status

    def test_bulk_delete_non_admin(self, client, tenant, make_user, auth_headers):
        res = client.delete(
            "/api/v1/audit-logs", headers=auth_headers(make_user("consultant_admin")),
            json={"scope": "all", "confirm": True},
        )
        assert res.status_code == 403

    def test_bulk_delete_skips_already_deleted(self, client, tenant, admin, make_user, auth_headers):
        actor = make_user("employee", tenant)
        gone = _log(tenant.id, actor)
        gone.soft_delete(deleted_by_id=admin.id)
        _log(tenant.id, actor)
        db.session.flush()
        res = client.delete(
            "/api/v1/audit-logs", headers=auth_headers(admin),
            json={"scope": "by_actor", "user_id": actor.id, "confirm": True},
        )
        assert res.get_json()["deleted"] == 1

    def _deleted(self, row, admin, days_ago=1):
        row.soft_delete(deleted_by_id=admin.id)
        row.deleted_at = datetime.now(timezone.utc) - timedelta(days=days_ago)
        db.session.flush()
        return row

    def test_bulk_restore_by_client(self, client, tenant, make_tenant, admin, make_user, auth_headers):
        other = make_tenant()
        actor = make_user("employee", tenant)
        recent = [self._deleted(_log(tenant.id, actor), admin) for _ in range(2)]
        stale = self._deleted(_log(tenant.id, actor), admin, days_ago=45)
        foreign = self._deleted(_log(other.id, make_user("employee", other)), admin)
        res = client.patch(
            "/api/v1/audit-logs/restore", headers=auth_headers(admin),
            json={"scope": "by_client", "tenant_id": tenant.id, "confirm": True},
        )
        assert res.status_code == 200
        assert res.get_json()["restored"] == 2
        assert all(db.session.get(AuditLog, r.id).is_deleted is False for r in recent)
        assert db.session.get(AuditLog, stale.id).is_deleted is True
        assert db.session.get(AuditLog, foreign.id).is_deleted is True
        trail = AuditLog.query.filter_by(sub_action="audit_log_restore_bulk").one()
        assert trail.details["restored"] == 2

    def test_bulk_restore_by_actor_and_ids(self, client, tenant, admin, make_user, auth_headers):
        actor = make_user("employee", tenant)
        mine = self._deleted(_log(tenant.id, actor), admin)
        theirs = self._deleted(_log(tenant.id, make_user("employee", tenant)), admin)
        headers = auth_headers(admin)
        res = client.patch(
            "/api/v1/audit-logs/restore", headers=headers,
            json={"scope": "by_actor", "user_id": actor.id, "confirm": True},
        )
        assert res.get_json()["restored"] == 1
        assert db.session.get(AuditLog, mine.id).is_deleted is False
        res = client.patch("/api/v1/audit-logs/restore", headers=headers, json={"ids": [theirs.id], "confirm": True})
        assert res.get_json() == {"scope": "by_ids", "restored": 1}

    @pytest.mark.parametrize("body, status", [
        ({"scope": "by_client", "tenant_id": 1}, 400),
        ({"scope": "by_client", "confirm": True}, 400),
        ({"scope": "by_actor", "confirm": True}, 400),
        ({"scope": "all", "confirm": True}, 400),
        ({"ids": ["x"], "confirm": True}, 400),
    ])
    def test_bulk_restore_rejections(self, body, status, client, admin, auth_headers):
        res = client.patch("/api/v1/audit-logs/restore", headers=auth_headers(admin), json=body)
        assert res.status_code == status

    def test_bulk_restore_non_admin(self, client, tenant, make_user, auth_headers):
        res = client.patch(
            "/api/v1/audit-logs/restore", headers=auth_headers(make_user("client_admin", tenant)),
            json={"scope": "by_client", "tenant_id": tenant.id, "confirm": True},
        )
        assert res.status_code == 403

    def test_purge_expired(self, client, tenant, admin, make_user, auth_headers):
        actor = make_user("employee", tenant)
        expired = self._deleted(_log(tenant.id, actor), admin, days_ago=45)
        expired_id = expired.id
        recent = self._deleted(_log(tenant.id, actor), admin, days_ago=3)
        active = _log(tenant.id, actor)
        res = client.delete("/api/v1/audit-logs/purge-expired", headers=auth_headers(admin), json={"confirm": True})
        assert res.status_code == 200
        assert res.get_json() == {"purged": 1, "restore_window_days": 30}
        assert db.session.get(AuditLog, expired_id) is None
        assert db.session.get(AuditLog, recent.id).is_deleted is True
        assert db.session.get(AuditLog, active.id).is_deleted is False
        assert AuditLog.query.filter_by(sub_action="audit_log_purge_expired").count() == 1

    def test_purge_requires_super_admin_and_confirm(self, client, tenant, admin, make_user, auth_headers):
        res = client.delete(
            "/api/v1/audit-logs/purge-expired", headers=auth_headers(make_user("client_admin", tenant)),
            json={"confirm": True},
        )
        assert res.status_code == 403
        res = client.delete("/api/v1/audit-logs/purge-expired", headers=auth_headers(admin), json={})
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# 5. Access-control checklist endpoints
# ═════════════════════════════════════════════════════════════════════════════

class TestAccessControlEndpoints:

    def _url(self, user):
        return f"/api/v1/users/{user.id}/access-controls"

    def test_presets(self, client, tenant, make_user, auth_headers):
        res = client.get("/api/v1/access-controls/presets", headers=auth_headers(make_user("client_admin", tenant)))
        assert res.status_code == 200
        names = [p["name"] for p in res.get_json()["presets"]]
        assert names == list(PRESET_TEMPLATES)

    def test_apply_preset(self, client, tenant, make_user, auth_headers):
        admin = make_user("client_admin", tenant)
        auditor = make_user("auditor", tenant, access_controls=build_closed_checklist())
        res = client.put(self._url(auditor), headers=auth_headers(admin), json={"preset": "auditor_standard"})
        assert res.status_code == 200
        assert db.session.get(type(auditor), auditor.id).access_controls == get_preset("auditor_standard")
        trail = AuditLog.query.filter_by(sub_action="access_controls_updated").one()
        assert trail.module == "user_management"
        assert trail.tenant_id == tenant.id
        assert trail.entity_id == str(auditor.id)

    def test_unknown_preset(self, client, tenant, make_user, auth_headers):
        admin = make_user("client_admin", tenant)
        viewer = make_user("viewer", tenant)
        res = client.put(self._url(viewer), headers=auth_headers(admin), json={"preset": "god_mode"})
        assert res.status_code == 400
        assert "preset" in res.get_json()["details"]

    def test_missing_body(self, client, tenant, make_user, auth_headers):
        admin = make_user("client_admin", tenant)
        res = client.put(self._url(make_user("viewer", tenant)), headers=auth_headers(admin), json={})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_malformed_payload_reports_paths(self, client, tenant, make_user, auth_headers):
        admin = make_user("client_admin", tenant)
        viewer = make_user("viewer", tenant, access_controls=build_closed_checklist())
        res = client.put(
            self._url(viewer), headers=auth_headers(admin),
            json={"access_controls": {"modules": {"audit_logs": {"enabled": "yes"}}}},
        )
        assert res.status_code == 400
        assert "modules.audit_logs.enabled" in res.get_json()["details"]
        assert db.session.get(type(viewer), viewer.id).access_controls == build_closed_checklist()

    def test_unknown_keys_dropped(self, client, tenant, make_user, auth_headers):
        admin = make_user("client_admin", tenant)
        viewer = make_user("viewer", tenant)
        res = client.put(
            self._url(viewer), headers=auth_headers(admin),
            json={"access_controls": {"modules": {
                "bogus": {"enabled": True},
                "reports": {"enabled": True, "sections": {"basic": True, "nope": True}},
            }}},
        )
        assert res.status_code == 200
        stored = res.get_json()["access_controls"]["modules"]
        assert "bogus" not in stored
        assert stored["reports"] == {"enabled": True, "sections": {"basic": True, "detailed": False, "export": False}}

    def test_owner_cannot_edit_own_checklist(self, client, tenant, make_user, auth_headers):
        viewer = make_user("viewer", tenant)
        res = client.put(self._url(viewer), headers=auth_headers(viewer), json={"preset": "viewer_full"})
        assert res.status_code == 403
        assert res.get_json()["details"]["reason"] == "not_tenant_admin"

    def test_other_tenant_admin_forbidden(self, client, tenant, make_tenant, make_user, auth_headers):
        outsider = make_user("client_admin", make_tenant())
        res = client.put(
            self._url(make_user("viewer", tenant)), headers=auth_headers(outsider), json={"preset": "viewer_full"},
        )
        assert res.status_code == 403

    def test_non_checklist_target(self, client, tenant, make_user, auth_headers):
        admin = make_user("client_admin", tenant)
        res = client.put(
            self._url(make_user("employee", tenant)), headers=auth_headers(admin), json={"preset": "viewer_full"},
        )
        assert res.status_code == 403
        assert res.get_json()["details"]["reason"] == "target_not_checklist_role"

    def test_get_own_checklist(self, client, tenant, make_user, auth_headers):
        viewer = make_user("viewer", tenant, access_controls={"modules": {"reports": {"enabled": True}}})
        res = client.get(self._url(viewer), headers=auth_headers(viewer))
        assert res.status_code == 200
        modules = res.get_json()["access_controls"]["modules"]
        assert modules["reports"]["enabled"] is True
        assert modules["audit_logs"]["enabled"] is False

    def test_get_hidden_from_other_tenant(self, client, tenant, make_tenant, make_user, auth_headers):
        outsider = make_user("client_admin", make_tenant())
        res = client.get(self._url(make_user("viewer", tenant)), headers=auth_headers(outsider))
        assert res.status_code == 404

    def test_get_non_checklist_user(self, client, tenant, make_user, auth_headers):
        admin = make_user("client_admin", tenant)
        res = client.get(self._url(make_user("employee", tenant)), headers=auth_headers(admin))
        assert res.status_code == 400

    def test_unknown_user(self, client, tenant, make_user, auth_headers):
        res = client.get("/api/v1/users/99999/access-controls", headers=auth_headers(make_user("super_admin")))
        assert res.status_code == 404

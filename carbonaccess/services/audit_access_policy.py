"""
Audit access policy: which audit-log rows may a user read?

Role decision table:

  super_admin           every non-deleted row
  consultant_admin      own + managed consultants' activity, OR any row of a
                        reachable tenant (owned, lead created, or assigned to
                        them / a managed consultant); auth visible
  consultant            rows of tenants they are assigned to; auth visible
  client_admin          own tenant, actors limited to head / employee /
                        viewer / auditor (never consulting staff); no auth
  client_employee_head  own tenant, actor is self or a subordinate
                        employee; no auth
  employee              denied
  auditor / viewer      checklist: audit_logs module + "list" section, then
                        only the modules whose *_logs section is enabled.
                        auth has no section and is unreachable.
  anything else         denied

``build_audit_predicate`` raises ``AuditAccessDenied`` for every deny so the
caller rejects the request before any query runs. An allowed predicate
that happens to match nothing is a normal, empty result.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from sqlalchemy import and_, or_, true

from carbonaccess.core.exceptions import AccessDeniedError
from carbonaccess.core.roles import CHECKLIST_ROLES, Role, role_of
from carbonaccess.models.audit import AuditLog, AuditModule
from carbonaccess.services import directory_service
from carbonaccess.services.checklist_service import (
    ChecklistModule,
    has_module_access,
    has_section_access,
)
from carbonaccess.services.identity import normalize_id

logger = logging.getLogger(__name__)

# Hidden from every role outside platform / consulting staff.
AUTH_RESTRICTED_MODULES = frozenset({AuditModule.AUTH.value})

# Consulting staff actions on a tenant are not shown to its client_admin.
CLIENT_ADMIN_VISIBLE_ACTOR_ROLES = frozenset({
    Role.CLIENT_EMPLOYEE_HEAD.value,
    Role.EMPLOYEE.value,
    Role.VIEWER.value,
    Role.AUDITOR.value,
})

# audit_logs checklist section -> AuditLog.module. No entry maps to auth.
SECTION_TO_AUDIT_MODULE: dict[str, AuditModule] = {
    "data_entry_logs": AuditModule.DATA_ENTRY,
    "flowchart_logs": AuditModule.ORGANIZATION_FLOWCHART,
    "process_flowchart_logs": AuditModule.PROCESS_FLOWCHART,
    "transport_flowchart_logs": AuditModule.TRANSPORT_FLOWCHART,
    "reduction_logs": AuditModule.REDUCTION,
    "net_reduction_logs": AuditModule.NET_REDUCTION,
    "sbti_logs": AuditModule.SBTI,
    "emission_summary_logs": AuditModule.EMISSION_SUMMARY,
    "user_management_logs": AuditModule.USER_MANAGEMENT,
    "system_logs": AuditModule.SYSTEM,
}

LOG_DELETE_SCOPES = ("all", "by_client", "by_employee_head", "by_employee", "by_actor")


class AuditAccessDenied(AccessDeniedError):
    """The caller may not read audit logs at all."""


# ── Declarative predicate ────────────────────────────────────────────────────

@dataclass(frozen=True)
class AuditScope:
    """One conjunctive branch. ``None`` means "no constraint on this field"."""

    tenant_ids: frozenset[int] | None = None
    actor_user_ids: frozenset[int] | None = None
    actor_roles: frozenset[str] | None = None
    modules: frozenset[str] | None = None

    def matches(self, row: Mapping) -> bool:
        checks = (
            (self.tenant_ids, row.get("tenant_id")),
            (self.actor_user_ids, row.get("actor_user_id")),
            (self.actor_roles, row.get("actor_role")),
            (self.modules, row.get("module")),
        )
        return all(allowed is None or value in allowed for allowed, value in checks)

    def to_clause(self, model=AuditLog):
        parts = []
        if self.tenant_ids is not None:
            parts.append(model.tenant_id.in_(sorted(self.tenant_ids)))
        if self.actor_user_ids is not None:
            parts.append(model.actor_user_id.in_(sorted(self.actor_user_ids)))
        if self.actor_roles is not None:
            parts.append(model.actor_role.in_(sorted(self.actor_roles)))
        if self.modules is not None:
            parts.append(model.module.in_(sorted(self.modules)))
        return and_(*parts) if parts else true()


@dataclass(frozen=True)
class AuditLogPredicate:
    """
    Row filter for the audit-log store: non-deleted AND module not excluded
    AND (any branch matches). No branches means unrestricted.
    """

    branches: tuple[AuditScope, ...] = ()
    excluded_modules: frozenset[str] = field(default_factory=frozenset)
    role: str | None = None

    @property
    def unrestricted(self) -> bool:
        return not self.branches and not self.excluded_modules

    @property
    def auth_visible(self) -> bool:
        if AuditModule.AUTH.value in self.excluded_modules:
            return False
        return not self.branches or any(
            b.modules is None or AuditModule.AUTH.value in b.modules for b in self.branches
        )

    def matches(self, row: Mapping) -> bool:
        """In-memory evaluation against an ``AuditLog.to_dict()`` shaped row."""
        if row.get("is_deleted"):
            return False
        if row.get("module") in self.excluded_modules:
            return False
        return not self.branches or any(b.matches(row) for b in self.branches)

    def to_clause(self, model=AuditLog):
        """SQLAlchemy boolean clause for ``query.filter(...)``."""
        parts = [model.is_deleted.is_(False)]
        if self.excluded_modules:
            parts.append(model.module.notin_(sorted(self.excluded_modules)))
        if self.branches:
            parts.append(or_(*(b.to_clause(model) for b in self.branches)))
        return and_(*parts)

    def apply(self, query, model=AuditLog):
        return query.filter(self.to_clause(model))

    def describe(self) -> dict:
        def _sorted(values):
            return None if values is None else sorted(values)

        return {
            "role": self.role,
            "excluded_modules": sorted(self.excluded_modules),
            "branches": [
                {
                    "tenant_ids": _sorted(b.tenant_ids),
                    "actor_user_ids": _sorted(b.actor_user_ids),
                    "actor_roles": _sorted(b.actor_roles),
                    "modules": _sorted(b.modules),
                }
                for b in self.branches
            ],
        }


# ── Helpers ──────────────────────────────────────────────────────────────────

def _deny(user, reason: str, message: str = "You do not have permission to view audit logs"):
    logger.info(
        "audit_access_denied user_id=%s role=%s reason=%s",
        normalize_id(user) or None, getattr(user, "role", None), reason,
    )
    return AuditAccessDenied(message, reason=reason)


def _int_id(value) -> int | None:
    key = normalize_id(value)
    try:
        return int(key) if key else None
    except ValueError:
        return None


def _lookup(fn, *args) -> list[int]:
    """Collaborator lookup; a failure reads as "nothing reachable"."""
    try:
        return list(fn(*args))
    except Exception:
        logger.exception("audit_scope_lookup_failed lookup=%s args=%s", fn.__name__, args)
        return []


def enabled_audit_modules(user) -> frozenset[str]:
    """Audit modules a checklist user has switched on, via their *_logs sections."""
    return frozenset(
        module.value
        for section, module in SECTION_TO_AUDIT_MODULE.items()
        if has_section_access(user, ChecklistModule.AUDIT_LOGS, section)
    )


# ── Public API ───────────────────────────────────────────────────────────────

def build_audit_predicate(user) -> AuditLogPredicate:
    """Return the row predicate for *user* or raise ``AuditAccessDenied``."""
    if user is None:
        raise _deny(user, "unauthenticated", "Authentication required")

    role = role_of(user)
    user_id = _int_id(user)
    if role is None or user_id is None:
        raise _deny(user, "unknown_role")

    if role is Role.SUPER_ADMIN:
        return AuditLogPredicate(role=role.value)

    if role is Role.CONSULTANT_ADMIN:
        consultants = _lookup(directory_service.find_managed_consultant_ids, user_id)
        tenants = _lookup(directory_service.find_tenant_ids_for_consultant_admin, user_id, consultants)
        branches = [AuditScope(actor_user_ids=frozenset({user_id, *consultants}))]
        if tenants:
            branches.append(AuditScope(tenant_ids=frozenset(tenants)))
        return AuditLogPredicate(branches=tuple(branches), role=role.value)

    if role is Role.CONSULTANT:
        tenants = _lookup(directory_service.find_tenant_ids_for_consultant, user_id)
        if not tenants:
            raise _deny(user, "no_assigned_clients")
        return AuditLogPredicate(branches=(AuditScope(tenant_ids=frozenset(tenants)),), role=role.value)

    if role is Role.EMPLOYEE:
        raise _deny(user, "employee_no_access")

    tenant_id = _int_id(getattr(user, "tenant_id", None))
    if tenant_id is None:
        raise _deny(user, "no_tenant")

    if role is Role.CLIENT_ADMIN:
        return AuditLogPredicate(
            branches=(AuditScope(
                tenant_ids=frozenset({tenant_id}),
                actor_roles=CLIENT_ADMIN_VISIBLE_ACTOR_ROLES,
            ),),
            excluded_modules=AUTH_RESTRICTED_MODULES,
            role=role.value,
        )

    if role is Role.CLIENT_EMPLOYEE_HEAD:
        employees = _lookup(directory_service.find_employee_ids_under_head, user_id, tenant_id)
        return AuditLogPredicate(
            branches=(AuditScope(
                tenant_ids=frozenset({tenant_id}),
                actor_user_ids=frozenset({user_id, *employees}),
            ),),
            excluded_modules=AUTH_RESTRICTED_MODULES,
            role=role.value,
        )

    if role in CHECKLIST_ROLES:
        if not has_module_access(user, ChecklistModule.AUDIT_LOGS):
            raise _deny(user, "audit_module_disabled")
        if not has_section_access(user, ChecklistModule.AUDIT_LOGS, "list"):
            raise _deny(user, "audit_list_section_disabled")
        modules = enabled_audit_modules(user) - AUTH_RESTRICTED_MODULES
        if not modules:
            raise _deny(user, "no_audit_modules_enabled")
        return AuditLogPredicate(
            branches=(AuditScope(tenant_ids=frozenset({tenant_id}), modules=modules),),
            excluded_modules=AUTH_RESTRICTED_MODULES,
            role=role.value,
        )

    raise _deny(user, "unknown_role")


def has_audit_module_access(user) -> bool:
    """Coarse gate: may this user open the audit log area at all?"""
    role = role_of(user)
    if role is None or role is Role.EMPLOYEE:
        return False
    if role in CHECKLIST_ROLES:
        return has_module_access(user, ChecklistModule.AUDIT_LOGS)
    return True


def can_delete_audit_logs(user, delete_scope: str | None) -> tuple[bool, str]:
    """Only super_admin deletes, and always with an explicit scope."""
    if role_of(user) is not Role.SUPER_ADMIN:
        return False, "Only super_admin can delete audit logs."
    if delete_scope not in LOG_DELETE_SCOPES:
        return False, f"Invalid delete scope. Must be one of: {', '.join(LOG_DELETE_SCOPES)}."
    return True, f"Super admin, scope: {delete_scope}"

"""
Access Context Resolver — what summary data may this user see for a tenant?

Returns one of two shapes:

  Full access (super_admin, consultant_admin, consultant, client_admin,
  auditor, viewer):
      AccessContext(full_access=True)

  Restricted (client_employee_head, employee):
      allowed_node_ids                org-chart nodes they head (head only)
      allowed_process_node_ids        process-chart nodes they head (head only)
      allowed_scope_ids               scope identifiers (both roles)
      allowed_category_activity_keys  "category::activity" keys (employee only)
      allowed_reduction_project_ids   reduction projects (both roles)

Auditor and viewer are full access here only; their narrower visibility is
enforced by the checklist at the module gate.

Fail-closed: an unknown user, missing tenant or any lookup failure yields
an empty restricted context (see nothing), never full access and never an
exception.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from flask import current_app, has_app_context

from carbonaccess.core.roles import FULL_ACCESS_ROLES, Role, role_of
from carbonaccess.services import directory_service
from carbonaccess.services.identity import EMPTY_ID, contains_id, ids_match, normalize_id

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_WORKERS = 3


@dataclass(frozen=True)
class AccessContext:
    """Per-request, never persisted."""

    full_access: bool
    role: str | None = None
    user_id: str = EMPTY_ID
    allowed_node_ids: frozenset[str] = frozenset()
    allowed_process_node_ids: frozenset[str] = frozenset()
    allowed_scope_ids: frozenset[str] = frozenset()
    allowed_category_activity_keys: frozenset[str] = frozenset()
    allowed_reduction_project_ids: frozenset[str] = frozenset()

    @classmethod
    def full(cls) -> AccessContext:
        return cls(full_access=True)

    @classmethod
    def empty(cls, role=None, user_id: str = EMPTY_ID) -> AccessContext:
        role = Role.parse(role)
        return cls(full_access=False, role=role.value if role else None, user_id=user_id)

    @property
    def is_empty(self) -> bool:
        return not self.full_access and not any((
            self.allowed_node_ids,
            self.allowed_process_node_ids,
            self.allowed_scope_ids,
            self.allowed_category_activity_keys,
            self.allowed_reduction_project_ids,
        ))

    def to_dict(self) -> dict:
        if self.full_access:
            return {"full_access": True}
        return {
            "full_access": False,
            "role": self.role,
            "user_id": self.user_id,
            "allowed_node_ids": sorted(self.allowed_node_ids),
            "allowed_process_node_ids": sorted(self.allowed_process_node_ids),
            "allowed_scope_ids": sorted(self.allowed_scope_ids),
            "allowed_category_activity_keys": sorted(self.allowed_category_activity_keys),
            "allowed_reduction_project_ids": sorted(self.allowed_reduction_project_ids),
        }


@dataclass(frozen=True)
class SummaryLookups:
    """Collaborator lookups the resolver fans out to, keyed by tenant id."""

    org_chart: Callable[[int], dict | None] = directory_service.load_org_chart
    process_chart: Callable[[int], dict | None] = directory_service.load_process_chart
    reduction_projects: Callable[[int], list[dict]] = directory_service.load_reduction_projects


def category_activity_key(category, activity) -> str | None:
    """``category::activity``, ``category::*`` without activity, None without category."""
    if not category:
        return None
    return f"{category}::{activity}" if activity else f"{category}::*"


# ── Lookup fan-out ───────────────────────────────────────────────────────────

def _lookup_workers(max_workers: int | None) -> int:
    if max_workers is not None:
        return max_workers
    if has_app_context():
        return current_app.config.get("ACCESS_LOOKUP_MAX_WORKERS", DEFAULT_LOOKUP_WORKERS)
    return DEFAULT_LOOKUP_WORKERS


def _fetch_all(lookups: SummaryLookups, tenant_id, max_workers: int) -> tuple:
    """Run the three lookups concurrently and join them as one unit."""
    calls = (lookups.org_chart, lookups.process_chart, lookups.reduction_projects)
    if max_workers <= 1:
        return tuple(fn(tenant_id) for fn in calls)

    app = current_app._get_current_object() if has_app_context() else None

    def _call(fn):
        if app is None:
            return fn(tenant_id)
        with app.app_context():
            return fn(tenant_id)

    with ThreadPoolExecutor(max_workers=min(max_workers, len(calls))) as pool:
        futures = [pool.submit(_call, fn) for fn in calls]
        # result() re-raises the first failure; the pool still joins the rest
        return tuple(f.result() for f in futures)


# ── Chart walking ────────────────────────────────────────────────────────────

def _nodes(chart) -> list[Mapping]:
    if not isinstance(chart, Mapping):
        return []
    nodes = chart.get("nodes")
    if not isinstance(nodes, list):
        return []
    return [n for n in nodes if isinstance(n, Mapping)]


def _details(node: Mapping) -> Mapping:
    details = node.get("details")
    return details if isinstance(details, Mapping) else {}


def _live_scopes(node: Mapping) -> list[Mapping]:
    scopes = _details(node).get("scopeDetails")
    if not isinstance(scopes, list):
        return []
    return [
        sd for sd in scopes
        if isinstance(sd, Mapping) and sd.get("scopeIdentifier") and not sd.get("isDeleted")
    ]


def _walk_chart(chart, role: Role, user_id: str, node_ids: set, scope_ids: set, category_keys: set) -> None:
    for node in _nodes(chart):
        if role is Role.CLIENT_EMPLOYEE_HEAD:
            if not ids_match(_details(node).get("employeeHeadId"), user_id):
                continue
            node_id = normalize_id(node.get("id"))
            if node_id:
                node_ids.add(node_id)
            scope_ids.update(str(sd["scopeIdentifier"]) for sd in _live_scopes(node))
        elif role is Role.EMPLOYEE:
            # Node ids are never granted here: a node rollup mixes scopes
            # the employee does not own.
            for sd in _live_scopes(node):
                if not contains_id(sd.get("assignedEmployees"), user_id):
                    continue
                scope_ids.add(str(sd["scopeIdentifier"]))
                key = category_activity_key(sd.get("categoryName"), sd.get("activity"))
                if key:
                    category_keys.add(key)


def _walk_reductions(projects, role: Role, user_id: str) -> set[str]:
    allowed = set()
    for project in projects or []:
        if not isinstance(project, Mapping):
            continue
        project_id = normalize_id(project.get("project_id"))
        if not project_id:
            continue
        team = project.get("assigned_team")
        if not isinstance(team, Mapping):
            continue
        if role is Role.CLIENT_EMPLOYEE_HEAD:
            granted = ids_match(team.get("employeeHeadId"), user_id)
        else:
            granted = contains_id(team.get("employeeIds"), user_id)
        if granted:
            allowed.add(project_id)
    return allowed


# ── Public API ───────────────────────────────────────────────────────────────

def resolve_access_context(
    user,
    tenant_id,
    *,
    lookups: SummaryLookups | None = None,
    max_workers: int | None = None,
) -> AccessContext:
    """Build the summary access context for *user* on *tenant_id*."""
    role = role_of(user)
    if role in FULL_ACCESS_ROLES:
        return AccessContext.full()

    user_id = normalize_id(user)
    if role is None or not user_id or tenant_id is None:
        logger.warning(
            "access_context_unresolvable user_id=%s role=%s tenant_id=%s",
            user_id or None, getattr(user, "role", None), tenant_id,
        )
        return AccessContext.empty(role, user_id)

    lookups = lookups or SummaryLookups()
    try:
        org_chart, process_chart, projects = _fetch_all(lookups, tenant_id, _lookup_workers(max_workers))
    except Exception:
        logger.exception(
            "access_context_lookup_failed user_id=%s role=%s tenant_id=%s",
            user_id, role.value, tenant_id,
        )
        return AccessContext.empty(role, user_id)

    node_ids: set[str] = set()
    process_node_ids: set[str] = set()
    scope_ids: set[str] = set()
    category_keys: set[str] = set()
    _walk_chart(org_chart, role, user_id, node_ids, scope_ids, category_keys)
    _walk_chart(process_chart, role, user_id, process_node_ids, scope_ids, category_keys)
    project_ids = _walk_reductions(projects, role, user_id)

    context = AccessContext(
        full_access=False,
        role=role.value,
        user_id=user_id,
        allowed_node_ids=frozenset(node_ids),
        allowed_process_node_ids=frozenset(process_node_ids),
        allowed_scope_ids=frozenset(scope_ids),
        allowed_category_activity_keys=frozenset(category_keys),
        allowed_reduction_project_ids=frozenset(project_ids),
    )
    logger.debug(
        "access_context_resolved user_id=%s role=%s tenant_id=%s nodes=%d process_nodes=%d "
        "scopes=%d categories=%d reductions=%d",
        user_id, role.value, tenant_id, len(node_ids), len(process_node_ids),
        len(scope_ids), len(category_keys), len(project_ids),
    )
    return context


def can_view_tenant_summary(user, tenant_id) -> bool:
    """
    Tenant-level gate in front of the summary read path.

    Decides whether the caller may read this tenant's summary at all; the
    access context then decides how much of it.
    """
    role = role_of(user)
    user_id = normalize_id(user)
    if role is None or not user_id or tenant_id is None:
        return False
    if role is Role.SUPER_ADMIN:
        return True

    try:
        if role is Role.CONSULTANT_ADMIN:
            staff = directory_service.find_managed_consultant_ids(int(user_id))
            reachable = directory_service.find_tenant_ids_for_consultant_admin(int(user_id), staff)
            return int(tenant_id) in reachable
        if role is Role.CONSULTANT:
            return int(tenant_id) in directory_service.find_tenant_ids_for_consultant(int(user_id))
        if not ids_match(getattr(user, "tenant_id", None), tenant_id):
            return False
        if role is Role.CLIENT_EMPLOYEE_HEAD:
            chart = directory_service.load_org_chart(tenant_id)
            return any(ids_match(_details(n).get("employeeHeadId"), user_id) for n in _nodes(chart))
        return role in (Role.CLIENT_ADMIN, Role.AUDITOR, Role.VIEWER, Role.EMPLOYEE)
    except Exception:
        logger.exception("summary_gate_lookup_failed user_id=%s tenant_id=%s", user_id, tenant_id)
        return False

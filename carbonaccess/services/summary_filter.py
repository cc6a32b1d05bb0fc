"""
Summary Filter — reshape a pre-aggregated summary to an access context.

A summary document has three sub-trees:

    emission_summary          byNode / byCategory→activities / byScope / …
    process_emission_summary  byNode / byScopeIdentifier / byScope / …
    reduction_summary         byProject list + rollups

For restricted roles every rollup in the response is rebuilt from the
retained leaves only. A rollup that cannot be rebuilt from the retained
grain is emptied, never copied from the original:

    employee_head  keeps byNode entries for nodes they head; byScope,
                   byDepartment, byLocation are rebuilt from those nodes;
                   byCategory / byActivity (cross-node) are emptied.
    employee       keeps byCategory activities matching their
                   "category::activity" keys; byScope is rebuilt from each
                   category's scopeType; byNode / byDepartment / byLocation
                   (coarser than a scope) are emptied.

The input document is never mutated. Full access returns it unchanged.
"""

from __future__ import annotations

import math
from collections.abc import Mapping

from carbonaccess.core.roles import Role
from carbonaccess.services.access_context import AccessContext
from carbonaccess.services.identity import normalize_id

SCOPE_TYPES = ("Scope 1", "Scope 2", "Scope 3")
GASES = ("CO2e", "CO2", "CH4", "N2O")
INPUT_TYPES = ("manual", "API", "IOT")
REDUCTION_DIMENSIONS = {
    "byScope": "scope",
    "byCategory": "category",
    "byLocation": "location",
    "byProjectActivity": "projectActivity",
    "byMethodology": "methodology",
}
UNKNOWN = "Unknown"


# ── Numeric helpers ──────────────────────────────────────────────────────────

def safe_number(value) -> float:
    """Finite numeric value or 0. Booleans and strings count as 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value if math.isfinite(value) else 0


def _as_mapping(value) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _gas_totals() -> dict:
    totals = {gas: 0 for gas in GASES}
    totals["uncertainty"] = 0
    return totals


def _scope_rollup() -> dict:
    return {scope: {**_gas_totals(), "dataPointCount": 0} for scope in SCOPE_TYPES}


def _input_type_rollup() -> dict:
    return {kind: {"CO2e": 0, "dataPointCount": 0} for kind in INPUT_TYPES}


def _add_gases(target: dict, leaf: Mapping) -> None:
    for gas in GASES:
        target[gas] = target.get(gas, 0) + safe_number(leaf.get(gas))


def _bump_group(groups: dict, key, leaf: Mapping) -> None:
    group = groups.setdefault(key or UNKNOWN, {**{gas: 0 for gas in GASES}, "nodeCount": 0})
    _add_gases(group, leaf)
    group["nodeCount"] += 1


def _passthrough(original: Mapping) -> dict:
    """Descriptive scalars only (period, client id, flags). Unknown numeric
    fields and nested structures are dropped rather than leaked unfiltered."""
    return {
        key: value for key, value in original.items()
        if value is None or isinstance(value, (str, bool))
    }


def _filter_metadata(original: Mapping, context: AccessContext, method: str | None = None) -> dict:
    metadata = _passthrough(_as_mapping(original.get("metadata")))
    metadata.update({
        "filteredByRole": context.role,
        "filteredForUserId": context.user_id,
        "isFiltered": True,
    })
    if method:
        metadata["filterMethod"] = method
    return metadata


# ── Empty shells ─────────────────────────────────────────────────────────────

def build_empty_emission_summary(original: Mapping | None = None, context: AccessContext | None = None) -> dict:
    shell = _passthrough(_as_mapping(original))
    shell.update({
        "totalEmissions": _gas_totals(),
        "byScope": _scope_rollup(),
        "byNode": {},
        "byDepartment": {},
        "byLocation": {},
        "byCategory": {},
        "byActivity": {},
        "byEmissionFactor": {},
        "byInputType": _input_type_rollup(),
    })
    if context is not None:
        shell["metadata"] = _filter_metadata(shell, context, "empty")
    return shell


def build_empty_process_summary(original: Mapping | None = None, context: AccessContext | None = None) -> dict:
    shell = _passthrough(_as_mapping(original))
    shell.update({
        "totalEmissions": _gas_totals(),
        "byScope": _scope_rollup(),
        "byNode": {},
        "byScopeIdentifier": {},
        "byDepartment": {},
        "byLocation": {},
        "byCategory": {},
        "byActivity": {},
        "byEmissionFactor": {},
    })
    if context is not None:
        shell["metadata"] = _filter_metadata(shell, context, "empty")
    return shell


def build_empty_reduction_summary(original: Mapping | None = None, context: AccessContext | None = None) -> dict:
    shell = _passthrough(_as_mapping(original))
    shell.update({"totalNetReduction": 0, "entriesCount": 0, "byProject": []})
    for dimension in REDUCTION_DIMENSIONS:
        shell[dimension] = {}
    if context is not None:
        shell["metadata"] = _filter_metadata(shell, context, "empty")
    return shell


# ── Emission summary ─────────────────────────────────────────────────────────

def _emission_for_employee(summary: Mapping, context: AccessContext) -> dict:
    allowed = context.allowed_category_activity_keys
    if not allowed:
        return build_empty_emission_summary(summary, context)

    total = _gas_totals()
    by_scope = _scope_rollup()
    by_category = {}
    by_activity = {}

    for category, category_data in _as_mapping(summary.get("byCategory")).items():
        category_data = _as_mapping(category_data)
        wildcard = f"{category}::*"
        kept = {
            activity: activity_data
            for activity, activity_data in _as_mapping(category_data.get("activities")).items()
            if f"{category}::{activity}" in allowed or wildcard in allowed
        }
        if not kept:
            continue

        scope_bucket = by_scope.get(category_data.get("scopeType"))
        category_totals = {gas: 0 for gas in GASES}
        data_points = 0
        for activity, activity_data in kept.items():
            activity_data = _as_mapping(activity_data)
            # One activity name can sit under several categories; sum them.
            activity_bucket = by_activity.setdefault(activity, {**{gas: 0 for gas in GASES}, "dataPointCount": 0})
            _add_gases(activity_bucket, activity_data)
            activity_bucket["dataPointCount"] += safe_number(activity_data.get("dataPointCount"))
            _add_gases(category_totals, activity_data)
            data_points += safe_number(activity_data.get("dataPointCount"))
            if scope_bucket is not None:
                _add_gases(scope_bucket, activity_data)
                scope_bucket["dataPointCount"] += safe_number(activity_data.get("dataPointCount"))

        _add_gases(total, category_totals)
        by_category[category] = {
            **_passthrough(category_data),
            **category_totals,
            "dataPointCount": data_points,
            "activities": kept,
        }

    result = _passthrough(summary)
    result.update({
        "totalEmissions": total,
        "byScope": by_scope,
        "byCategory": by_category,
        "byActivity": by_activity,
        "byNode": {},
        "byDepartment": {},
        "byLocation": {},
        "byEmissionFactor": {},
        "byInputType": _input_type_rollup(),
        "metadata": _filter_metadata(summary, context, "byCategory"),
    })
    return result


def _emission_for_head(summary: Mapping, context: AccessContext) -> dict:
    allowed = context.allowed_node_ids
    if not allowed:
        return build_empty_emission_summary(summary, context)

    total = _gas_totals()
    by_scope = _scope_rollup()
    by_node = {}
    by_department = {}
    by_location = {}

    for node_id, node_data in _as_mapping(summary.get("byNode")).items():
        if normalize_id(node_id) not in allowed:
            continue
        node_data = _as_mapping(node_data)
        by_node[node_id] = node_data
        _add_gases(total, node_data)

        node_scopes = _as_mapping(node_data.get("byScope"))
        for scope in SCOPE_TYPES:
            scope_data = node_scopes.get(scope)
            if not isinstance(scope_data, Mapping):
                continue
            _add_gases(by_scope[scope], scope_data)
            by_scope[scope]["dataPointCount"] += safe_number(scope_data.get("dataPointCount"))

        _bump_group(by_department, node_data.get("department"), node_data)
        _bump_group(by_location, node_data.get("location"), node_data)

    result = _passthrough(summary)
    result.update({
        "totalEmissions": total,
        "byScope": by_scope,
        "byNode": by_node,
        "byDepartment": by_department,
        "byLocation": by_location,
        # cross-node aggregates: not decomposable per node
        "byCategory": {},
        "byActivity": {},
        "byEmissionFactor": {},
        "byInputType": _input_type_rollup(),
        "metadata": _filter_metadata(summary, context, "byNode"),
    })
    return result


def filter_emission_summary(summary: Mapping | None, context: AccessContext):
    if context.full_access:
        return summary
    summary = _as_mapping(summary)
    role = Role.parse(context.role)
    if role is Role.EMPLOYEE:
        return _emission_for_employee(summary, context)
    if role is Role.CLIENT_EMPLOYEE_HEAD:
        return _emission_for_head(summary, context)
    return build_empty_emission_summary(summary, context)


# ── Process emission summary ─────────────────────────────────────────────────

def filter_process_emission_summary(summary: Mapping | None, context: AccessContext):
    """
    Heads keep their process nodes (totals, department, location rebuilt
    from them) plus the matching scope-identifier leaves. Employees keep
    scope-identifier leaves only; totals and byScope come from those.

    Process node leaves carry no per-scope breakdown, so byScope stays
    zeroed on the head path.
    """
    if context.full_access:
        return summary
    summary = _as_mapping(summary)
    role = Role.parse(context.role)
    node_ids = context.allowed_process_node_ids if role is Role.CLIENT_EMPLOYEE_HEAD else frozenset()
    scope_ids = context.allowed_scope_ids if role in (Role.CLIENT_EMPLOYEE_HEAD, Role.EMPLOYEE) else frozenset()
    if not node_ids and not scope_ids:
        return build_empty_process_summary(summary, context)

    total = _gas_totals()
    by_scope = _scope_rollup()
    by_node = {}
    by_department = {}
    by_location = {}
    by_scope_identifier = {}

    for node_id, node_data in _as_mapping(summary.get("byNode")).items():
        if normalize_id(node_id) not in node_ids:
            continue
        node_data = _as_mapping(node_data)
        by_node[node_id] = node_data
        _add_gases(total, node_data)
        _bump_group(by_department, node_data.get("department"), node_data)
        _bump_group(by_location, node_data.get("location"), node_data)

    for scope_id, scope_data in _as_mapping(summary.get("byScopeIdentifier")).items():
        if normalize_id(scope_id) not in scope_ids:
            continue
        scope_data = _as_mapping(scope_data)
        by_scope_identifier[scope_id] = scope_data
        if role is Role.EMPLOYEE:
            _add_gases(total, scope_data)
            bucket = by_scope.get(scope_data.get("scopeType"))
            if bucket is not None:
                _add_gases(bucket, scope_data)
                bucket["dataPointCount"] += safe_number(scope_data.get("dataPointCount"))

    result = _passthrough(summary)
    result.update({
        "totalEmissions": total,
        "byScope": by_scope,
        "byNode": by_node,
        "byScopeIdentifier": by_scope_identifier,
        "byDepartment": by_department,
        "byLocation": by_location,
        "byCategory": {},
        "byActivity": {},
        "byEmissionFactor": {},
        "metadata": _filter_metadata(
            summary, context, "byNode" if role is Role.CLIENT_EMPLOYEE_HEAD else "byScopeIdentifier",
        ),
    })
    return result


# ── Reduction summary ────────────────────────────────────────────────────────

def filter_reduction_summary(summary: Mapping | None, context: AccessContext):
    if context.full_access:
        return summary
    summary = _as_mapping(summary)
    allowed = context.allowed_reduction_project_ids
    if not allowed:
        return build_empty_reduction_summary(summary, context)

    projects = summary.get("byProject")
    kept = [
        p for p in (projects if isinstance(projects, list) else [])
        if isinstance(p, Mapping) and normalize_id(p.get("projectId")) in allowed
    ]

    rollups = {dimension: {} for dimension in REDUCTION_DIMENSIONS}
    total_net = 0
    entries = 0
    for project in kept:
        net = safe_number(project.get("totalNetReduction"))
        count = safe_number(project.get("entriesCount"))
        total_net += net
        entries += count
        for dimension, field in REDUCTION_DIMENSIONS.items():
            bucket = rollups[dimension].setdefault(
                project.get(field) or UNKNOWN, {"totalNetReduction": 0, "entriesCount": 0},
            )
            bucket["totalNetReduction"] += net
            bucket["entriesCount"] += count

    result = _passthrough(summary)
    result.update({
        "totalNetReduction": total_net,
        "entriesCount": entries,
        "byProject": kept,
        **rollups,
        "metadata": _filter_metadata(summary, context, "byProject"),
    })
    return result


# ── Entry point ──────────────────────────────────────────────────────────────

def filter_summary(summary: Mapping | None, context: AccessContext):
    """
    Apply *context* to a summary document (``EmissionSummary.to_dict()``
    shape). Full access returns the same object.
    """
    if summary is None or context.full_access:
        return summary
    result = dict(summary)
    result["emission_summary"] = filter_emission_summary(summary.get("emission_summary"), context)
    result["process_emission_summary"] = filter_process_emission_summary(
        summary.get("process_emission_summary"), context,
    )
    result["reduction_summary"] = filter_reduction_summary(summary.get("reduction_summary"), context)
    return result

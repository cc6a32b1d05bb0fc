"""
Checklist Service — module/section access checklist for viewer and auditor.

A client_admin assigns a checklist when creating or editing a viewer or
auditor account. Every read path those roles can reach consults it.

Rules:
  - fail-closed: a missing checklist, module or section means DENY
  - only auditor / viewer are governed; every other role passes through
  - the stored shape is always complete (every module, every section)

Stored shape (``User.access_controls``):
    {"modules": {"<module>": {"enabled": bool, "sections": {"<section>": bool}}}}
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from enum import Enum

from carbonaccess.core.exceptions import AccessDeniedError, ValidationError
from carbonaccess.core.roles import CHECKLIST_ROLES, Role, role_of

logger = logging.getLogger(__name__)


class ChecklistModule(str, Enum):
    EMISSION_SUMMARY = "emission_summary"
    DATA_ENTRY = "data_entry"
    PROCESS_FLOWCHART = "process_flowchart"
    ORGANIZATION_FLOWCHART = "organization_flowchart"
    REDUCTION = "reduction"
    DECARBONIZATION = "decarbonization"
    REPORTS = "reports"
    TICKETS = "tickets"
    AUDIT_LOGS = "audit_logs"


CHECKLIST_SECTIONS: dict[ChecklistModule, tuple[str, ...]] = {
    ChecklistModule.EMISSION_SUMMARY: (
        "overview", "byScope", "byNode", "byDepartment", "byLocation",
        "processEmission", "reductionSummary", "trends", "metadata",
    ),
    ChecklistModule.DATA_ENTRY: (
        "list", "detail", "editHistory", "logs", "cumulativeValues", "stats",
    ),
    ChecklistModule.PROCESS_FLOWCHART: ("view", "entries", "processEmissionEntries"),
    ChecklistModule.ORGANIZATION_FLOWCHART: ("view", "nodes", "assignments"),
    ChecklistModule.REDUCTION: ("list", "detail", "netReduction", "summary"),
    ChecklistModule.DECARBONIZATION: ("sbti", "targets"),
    ChecklistModule.REPORTS: ("basic", "detailed", "export"),
    ChecklistModule.TICKETS: ("view", "create"),
    # Page sections (list/detail/export) gate the UI; the *_logs sections
    # gate audit rows by module. There is no auth_logs section.
    ChecklistModule.AUDIT_LOGS: (
        "list", "detail", "export",
        "data_entry_logs",
        "flowchart_logs",
        "process_flowchart_logs",
        "transport_flowchart_logs",
        "reduction_logs",
        "net_reduction_logs",
        "sbti_logs",
        "emission_summary_logs",
        "user_management_logs",
        "system_logs",
    ),
}


def _module_key(module) -> str | None:
    try:
        return ChecklistModule(module).value
    except ValueError:
        return None


# ── Builders ─────────────────────────────────────────────────────────────────

def _build_checklist(value: bool) -> dict:
    return {
        "modules": {
            module.value: {
                "enabled": value,
                "sections": {section: value for section in sections},
            }
            for module, sections in CHECKLIST_SECTIONS.items()
        }
    }


def build_closed_checklist() -> dict:
    """All modules and sections off. Default for new viewer/auditor accounts."""
    return _build_checklist(False)


def build_open_checklist() -> dict:
    """All modules and sections on. Starting point for presets."""
    return _build_checklist(True)


def default_checklist_for(role) -> dict | None:
    if Role.parse(role) in CHECKLIST_ROLES:
        return build_closed_checklist()
    return None


# ── Sanitising / validation ──────────────────────────────────────────────────

def sanitize_checklist(raw) -> dict:
    """
    Coerce any input into a complete checklist.

    Unknown module/section keys are dropped, anything other than ``True``
    becomes ``False`` and absent modules are closed. Total and idempotent.
    """
    modules_raw = raw.get("modules") if isinstance(raw, Mapping) else None
    if not isinstance(modules_raw, Mapping):
        modules_raw = {}

    modules = {}
    for module, sections in CHECKLIST_SECTIONS.items():
        entry = modules_raw.get(module.value)
        if not isinstance(entry, Mapping):
            entry = {}
        sections_raw = entry.get("sections")
        if not isinstance(sections_raw, Mapping):
            sections_raw = {}
        modules[module.value] = {
            "enabled": entry.get("enabled") is True,
            "sections": {section: sections_raw.get(section) is True for section in sections},
        }
    return {"modules": modules}


def validate_checklist(raw) -> list[str]:
    """
    Reject structurally malformed payloads.

    Raises ValidationError with one entry per offending path. Unknown keys
    are not errors; they are returned so the caller can report them.
    """
    if not isinstance(raw, Mapping):
        raise ValidationError(
            "access_controls must be an object",
            details={"access_controls": "must be an object"},
        )
    modules_raw = raw.get("modules")
    if not isinstance(modules_raw, Mapping):
        raise ValidationError(
            "access_controls.modules must be an object",
            details={"modules": "must be an object"},
        )

    errors: dict[str, str] = {}
    ignored: list[str] = []
    for key, value in modules_raw.items():
        module = _module_key(key)
        if module is None:
            ignored.append(f"modules.{key}")
            continue
        if not isinstance(value, Mapping):
            errors[f"modules.{key}"] = "must be an object"
            continue
        if "enabled" in value and not isinstance(value["enabled"], bool):
            errors[f"modules.{key}.enabled"] = "must be a boolean"
        sections = value.get("sections")
        if sections is None:
            continue
        if not isinstance(sections, Mapping):
            errors[f"modules.{key}.sections"] = "must be an object"
            continue
        known = CHECKLIST_SECTIONS[ChecklistModule(module)]
        for section, flag in sections.items():
            if section not in known:
                ignored.append(f"modules.{key}.sections.{section}")
            elif not isinstance(flag, bool):
                errors[f"modules.{key}.sections.{section}"] = "must be a boolean"

    if errors:
        raise ValidationError("Invalid access_controls payload", details=errors)
    return ignored


def validate_and_sanitize_checklist(raw) -> dict:
    """Write-path entry point: validate first, nothing is applied on failure."""
    ignored = validate_checklist(raw)
    if ignored:
        logger.info("checklist_unknown_keys_dropped keys=%s", ",".join(sorted(ignored)))
    return sanitize_checklist(raw)


# ── Access checks ────────────────────────────────────────────────────────────

def is_checklist_role(role) -> bool:
    return Role.parse(role) in CHECKLIST_ROLES


def _module_entry(user, module) -> Mapping | None:
    checklist = getattr(user, "access_controls", None)
    if not isinstance(checklist, Mapping):
        return None
    modules = checklist.get("modules")
    if not isinstance(modules, Mapping):
        return None
    key = _module_key(module)
    if key is None:
        return None
    entry = modules.get(key)
    return entry if isinstance(entry, Mapping) else None


def has_module_access(user, module) -> bool:
    """Non-checklist roles pass through; viewer/auditor need ``enabled``."""
    if user is None:
        return False
    if not is_checklist_role(getattr(user, "role", None)):
        return True
    entry = _module_entry(user, module)
    return entry is not None and entry.get("enabled") is True


def has_section_access(user, module, section: str) -> bool:
    """Module must be enabled and the section flag must be ``True``."""
    if user is None:
        return False
    if not is_checklist_role(getattr(user, "role", None)):
        return True
    if not has_module_access(user, module):
        return False
    sections = _module_entry(user, module).get("sections")
    if not isinstance(sections, Mapping):
        return False
    return sections.get(section) is True


def strip_restricted_sections(user, module, payload: dict | None, section_map: dict) -> dict | None:
    """
    Remove payload keys belonging to sections the user may not see.

    ``section_map`` maps a section key to the payload keys it controls, e.g.
    ``{"editHistory": ["editHistory"], "cumulativeValues": ["cumulative"]}``.
    Mutates and returns *payload*.
    """
    if not payload or not is_checklist_role(getattr(user, "role", None)):
        return payload
    for section, keys in section_map.items():
        if not has_section_access(user, module, section):
            for key in keys:
                payload.pop(key, None)
    return payload


# ── Write path ───────────────────────────────────────────────────────────────

def update_user_checklist(actor, target, raw) -> dict:
    """
    Replace *target*'s checklist. Caller commits.

    Only a client_admin of the target's tenant (or a super_admin) may do
    this, and only for viewer/auditor accounts. The owner of the checklist
    can never edit it.
    """
    actor_role = role_of(actor)
    if not is_checklist_role(getattr(target, "role", None)):
        raise AccessDeniedError(
            "Access controls apply to viewer and auditor accounts only",
            reason="target_not_checklist_role",
        )
    if actor_role is Role.SUPER_ADMIN:
        pass
    elif actor_role is Role.CLIENT_ADMIN and actor.tenant_id is not None and actor.tenant_id == target.tenant_id:
        pass
    else:
        raise AccessDeniedError(
            "Only the client administrator can change access controls",
            reason="not_tenant_admin",
        )

    checklist = validate_and_sanitize_checklist(raw)
    target.access_controls = checklist
    logger.info(
        "checklist_updated actor_id=%s target_id=%s tenant_id=%s",
        actor.id, target.id, target.tenant_id,
    )
    return checklist


# ── Presets ──────────────────────────────────────────────────────────────────

def _set_all(checklist: dict, module: ChecklistModule, value: bool, enabled: bool | None = None) -> None:
    entry = checklist["modules"][module.value]
    entry["enabled"] = value if enabled is None else enabled
    for section in entry["sections"]:
        entry["sections"][section] = value


def _grant(checklist: dict, module: ChecklistModule, *sections: str) -> None:
    entry = checklist["modules"][module.value]
    entry["enabled"] = True
    for section in sections:
        entry["sections"][section] = True


def _viewer_read_only() -> dict:
    ac = build_closed_checklist()
    _grant(ac, ChecklistModule.EMISSION_SUMMARY, "overview", "byScope", "byDepartment", "byLocation", "trends")
    _grant(ac, ChecklistModule.REPORTS, "basic")
    return ac


def _viewer_full() -> dict:
    ac = build_open_checklist()
    sections = ac["modules"][ChecklistModule.DATA_ENTRY.value]["sections"]
    sections["editHistory"] = False
    sections["logs"] = False
    _set_all(ac, ChecklistModule.AUDIT_LOGS, False)
    return ac


def _auditor_standard() -> dict:
    ac = build_open_checklist()
    ac["modules"][ChecklistModule.TICKETS.value]["sections"]["create"] = False
    audit = ac["modules"][ChecklistModule.AUDIT_LOGS.value]["sections"]
    audit["export"] = False
    audit["user_management_logs"] = False
    audit["system_logs"] = False
    return ac


def _auditor_restricted() -> dict:
    ac = build_closed_checklist()
    _set_all(ac, ChecklistModule.EMISSION_SUMMARY, True)
    _grant(ac, ChecklistModule.DATA_ENTRY, "list", "detail", "editHistory", "logs")
    _grant(ac, ChecklistModule.AUDIT_LOGS, "list", "detail", "data_entry_logs")
    return ac


def _auditor_full_audit() -> dict:
    ac = build_open_checklist()
    ac["modules"][ChecklistModule.TICKETS.value]["sections"]["create"] = False
    return ac


def _auditor_compliance() -> dict:
    ac = build_closed_checklist()
    _grant(ac, ChecklistModule.EMISSION_SUMMARY, "overview", "byScope", "reductionSummary")
    _set_all(ac, ChecklistModule.REDUCTION, True)
    _grant(ac, ChecklistModule.DECARBONIZATION, "sbti", "targets")
    _grant(
        ac, ChecklistModule.AUDIT_LOGS,
        "list", "detail", "export",
        "reduction_logs", "net_reduction_logs", "sbti_logs", "system_logs",
    )
    return ac


_PRESET_BUILDERS = {
    "viewer_read_only": (
        "Viewer: Read Only (Summary + Reports)",
        "Emission summaries and basic reports only. No audit logs.",
        _viewer_read_only,
    ),
    "viewer_full": (
        "Viewer: Full Read (all data modules, no audit logs)",
        "All summary and data modules open. Edit history and audit logs are hidden.",
        _viewer_full,
    ),
    "auditor_standard": (
        "Auditor: Standard (core emission logs)",
        "Full data access plus audit logs for the core emission modules.",
        _auditor_standard,
    ),
    "auditor_restricted": (
        "Auditor: Restricted (summary + history + data entry logs)",
        "Emission summary and edit history. Audit logs limited to data entry.",
        _auditor_restricted,
    ),
    "auditor_full_audit": (
        "Auditor: Full Audit Trail (all log types + export)",
        "Every audit log module visible plus export. Auth logs stay hidden.",
        _auditor_full_audit,
    ),
    "auditor_compliance": (
        "Auditor: Compliance (reduction + SBTi + system logs)",
        "Reduction, net reduction and SBTi data with their audit logs, system logs and export.",
        _auditor_compliance,
    ),
}

PRESET_TEMPLATES: dict[str, dict] = {
    key: {
        "label": label,
        "description": description,
        "access_controls": sanitize_checklist(builder()),
    }
    for key, (label, description, builder) in _PRESET_BUILDERS.items()
}


def get_preset(name: str) -> dict | None:
    """Return a deep copy of a preset's checklist, or None."""
    preset = PRESET_TEMPLATES.get(name)
    if preset is None:
        return None
    return copy.deepcopy(preset["access_controls"])

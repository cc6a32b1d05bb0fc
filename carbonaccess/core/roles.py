"""
User roles and the role sets each access path is keyed on.

Hierarchy:
    super_admin
      └─ consultant_admin ─ consultant
            └─ client_admin (tenant)
                  └─ client_employee_head ─ employee
                  └─ auditor / viewer (checklist-governed)
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    CONSULTANT_ADMIN = "consultant_admin"
    CONSULTANT = "consultant"
    CLIENT_ADMIN = "client_admin"
    CLIENT_EMPLOYEE_HEAD = "client_employee_head"
    EMPLOYEE = "employee"
    AUDITOR = "auditor"
    VIEWER = "viewer"

    @classmethod
    def parse(cls, value) -> Role | None:
        """Return the matching Role, or None for anything unrecognised."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


# Summary engine: no filtering at all.
FULL_ACCESS_ROLES = frozenset({
    Role.SUPER_ADMIN,
    Role.CONSULTANT_ADMIN,
    Role.CONSULTANT,
    Role.CLIENT_ADMIN,
    Role.AUDITOR,
    Role.VIEWER,
})

# Summary engine: sub-aggregate only.
RESTRICTED_SUMMARY_ROLES = frozenset({Role.CLIENT_EMPLOYEE_HEAD, Role.EMPLOYEE})

# Module/section checklist applies.
CHECKLIST_ROLES = frozenset({Role.AUDITOR, Role.VIEWER})

# Roles that belong to exactly one tenant.
TENANT_ROLES = frozenset({
    Role.CLIENT_ADMIN,
    Role.CLIENT_EMPLOYEE_HEAD,
    Role.EMPLOYEE,
    Role.AUDITOR,
    Role.VIEWER,
})


def role_of(user) -> Role | None:
    """Role of a user object (or None when absent / unknown)."""
    if user is None:
        return None
    return Role.parse(getattr(user, "role", None))

"""
Engine-wide exception hierarchy.

Services raise these; the HTTP boundary maps them to status codes once
(see ``carbonaccess.create_app``):

    ValidationError   -> 400
    AccessDeniedError -> 403
    NotFoundError     -> 404

Lookup failures against collaborator stores are NOT represented here: they
are caught where they happen and turned into an empty (fail-closed) result.

Usage:
    from carbonaccess.core.exceptions import AccessDeniedError, ValidationError

    raise ValidationError("Invalid checklist", details={"modules": "must be an object"})
    raise AccessDeniedError("Audit logs are not available", reason="employee_no_access")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for both genuinely missing records and cross-tenant lookups, so a
    caller cannot discover the existence of another tenant's data.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when an input payload is malformed.

    Args:
        message: Human-readable explanation of what failed.
        details: Field-level breakdown keyed by the offending path
                 (e.g. ``"modules.audit_logs.sections"``).
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AccessDeniedError(Exception):
    """Raised for a structural authorization decision.

    Distinct from an empty-but-authorized result: a denied caller gets a
    403, an authorized caller with nothing to see gets a 200 with no rows.

    Args:
        message: Human-readable explanation.
        reason: Machine-readable reason, logged and returned to the client.
    """

    def __init__(self, message: str, reason: str = "forbidden") -> None:
        self.reason = reason
        super().__init__(message)

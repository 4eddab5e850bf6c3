from __future__ import annotations

from typing import Any


class AuthorizationError(Exception):
    """Base authorization error for policy enforcement failures."""


class PrincipalNotFound(AuthorizationError):
    def __init__(self, principal_id: Any) -> None:
        self.principal_id = str(principal_id)
        super().__init__(f"No profile exists for principal '{self.principal_id}'")


class UnknownRole(AuthorizationError):
    def __init__(self, principal_id: Any, raw_role: Any) -> None:
        self.principal_id = str(principal_id)
        self.raw_role = raw_role
        super().__init__(f"Principal '{self.principal_id}' carries unrecognised role {raw_role!r}")


class UnconfiguredPolicy(AuthorizationError):
    """No registry entry exists for an (entity, operation) pair. Always fatal."""

    def __init__(self, entity_type: str, operation: str) -> None:
        self.entity_type = entity_type
        self.operation = operation
        super().__init__(f"No policy configured for {operation} on '{entity_type}'")


class AuthorizationDenied(AuthorizationError):
    def __init__(
        self,
        entity_type: str,
        operation: str,
        *,
        phase: str | None = None,
        reason: str = "policy",
        entity_id: Any = None,
    ) -> None:
        self.entity_type = entity_type
        self.operation = operation
        self.phase = phase
        self.reason = reason
        self.entity_id = str(entity_id) if entity_id is not None else None
        detail = f"{operation} on '{entity_type}' denied"
        if phase is not None:
            detail = f"{detail} at {phase} gate"
        super().__init__(f"{detail} ({reason})")


class ForbiddenFieldError(AuthorizationError):
    """Raised when a payload contains fields that are not writable."""

    def __init__(self, resource: str, fields: list[str]) -> None:
        self.resource = resource
        self.fields = sorted(set(fields))
        super().__init__(f"Forbidden fields for resource '{resource}': {', '.join(self.fields)}")


class NotFound(Exception):
    def __init__(self, entity_type: str, entity_id: Any) -> None:
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} '{self.entity_id}' not found")

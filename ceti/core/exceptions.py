"""
Application-wide exception hierarchy.

Services raise these; the application factory registers one handler per
type so every blueprint gets the same status code and JSON body.

Usage:
    from ceti.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Program", resource_id=42)
    raise ValidationError("Faltan datos requeridos", details={"name": "required"})
"""


class CetiError(Exception):
    """Base class. ``message`` is the user-facing (Spanish) text."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(CetiError):
    """No valid session or token. Maps to HTTP 401."""

    def __init__(self, message: str = "No autorizado") -> None:
        super().__init__(message)


class PermissionDeniedError(CetiError):
    """Authenticated but not allowed (wrong role or not an assignee). Maps to HTTP 403.

    Args:
        reason: Machine-readable deny reason from the access policy
                (``forbidden-role`` | ``not-assignee``).
    """

    def __init__(self, message: str = "Acceso denegado", reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(message, details={"reason": reason} if reason else None)


class NotFoundError(CetiError):
    """Requested resource does not exist. Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "Programa", "Tarea").
        resource_id: The PK that was looked up. Logged, not returned.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None,
                 message: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(message or f"{resource} no encontrado")

    def __str__(self) -> str:
        suffix = f" id={self.resource_id}" if self.resource_id is not None else ""
        return f"{self.resource}{suffix} not found"


class ValidationError(CetiError):
    """Input violates a business rule (missing fields, bad dates, file size/type).

    Maps to HTTP 400.
    """


class ConflictError(CetiError):
    """Operation would duplicate a unique value. Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value (kept for logs only).
    """

    def __init__(self, message: str, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message, details={"field": field})


class BlockedByInvariantError(CetiError):
    """A lifecycle invariant refuses the operation (active tasks, last admin).

    Maps to HTTP 400. ``blocking_count`` carries the number of blocking
    records when the invariant is count-based.
    """

    def __init__(self, message: str, reason: str, blocking_count: int | None = None) -> None:
        self.reason = reason
        self.blocking_count = blocking_count
        details = {"reason": reason}
        if blocking_count is not None:
            details["blocking_count"] = blocking_count
        super().__init__(message, details=details)


class ExternalServiceError(CetiError):
    """The transcription / summary provider failed. Maps to HTTP 500."""

"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from app.core.exceptions import NotFoundError, InvalidTransitionError

    raise NotFoundError(resource="Project", resource_id=42)
    raise InvalidTransitionError("Project", "completed", "active")

HTTP mapping:
    NotFoundError            → 404
    ValidationError          → 422
    PermissionDeniedError    → 403
    InvalidTransitionError   → 409
    ConcurrentConflictError  → 409
    ConflictError            → 409
    ExternalServiceError     → 502
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Project", "Phase").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint) — this
    exception signals that the data was well-formed but violated a business
    rule (duplicate phase order, unknown template, ...).

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PermissionDeniedError(Exception):
    """Raised when the acting user may not operate on the resource."""

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class InvalidTransitionError(Exception):
    """Raised when a status change is not an edge of the status registry.

    Args:
        resource: "Project" or "Phase".
        current_status: Status the entity is in.
        target_status: Status that was requested.
    """

    def __init__(self, resource: str, current_status: str, target_status: str) -> None:
        self.resource = resource
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Invalid {resource.lower()} transition from {current_status} to {target_status}"
        )


class ConcurrentConflictError(Exception):
    """Raised when a conditional status write matched zero rows.

    Another writer moved the entity away from ``expected_status`` between
    the read and the write. Callers may retry from a fresh read.
    """

    def __init__(self, resource: str, resource_id: int, expected_status: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.expected_status = expected_status
        super().__init__(
            f"{resource} id={resource_id} is no longer '{expected_status}'; "
            "it was changed concurrently"
        )


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique constraint violation.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class ExternalServiceError(Exception):
    """Raised when an upstream dependency (LLM provider, SMTP) fails for good.

    Args:
        service: Name of the upstream ("llm", "smtp").
        message: What went wrong, safe to show to API clients.
    """

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        super().__init__(message)

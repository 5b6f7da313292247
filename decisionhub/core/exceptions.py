"""
Platform-wide exception hierarchy for the decision engine.

Services raise only these types; blueprints register one handler per type
and get consistent HTTP status codes everywhere. Storage-layer exceptions
(SQLAlchemy IntegrityError etc.) are translated in the service layer and
never reach a blueprint.

Usage:
    from decisionhub.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ProcessInstance", resource_id=instance_id)
    raise ValidationError("Invalid vote selection",
                          details={"selectedProposalIds": ["Cannot select more than 3 proposals"]})
"""


class CommonError(Exception):
    """Unclassified failure. Maps to HTTP 500.

    Base class for the whole taxonomy so callers can catch every domain
    error with a single ``except CommonError``.
    """

    status_code = 500

    def __init__(self, message: str = "Internal error") -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(CommonError):
    """Raised when a process, instance, proposal or role does not exist.

    Args:
        resource: Human-readable entity name (e.g. "ProcessInstance").
        resource_id: The id that was looked up. Included in logs.
    """

    status_code = 404

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(CommonError):
    """Raised when input violates a business rule.

    Malformed schema, closed voting phase, bad ballot selection.

    Args:
        message: Human-readable explanation of what failed.
        details: Field-level errors, ``{field_name: [error, ...]}``, so a UI
                 can attach messages to the right input.
    """

    status_code = 400

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(CommonError):
    """Raised when the caller lacks a required capability. Maps to HTTP 403."""

    status_code = 403

    def __init__(self, message: str = "Not authorized") -> None:
        super().__init__(message)


class ConflictError(CommonError):
    """Raised when a write would violate a uniqueness rule. Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field (or field tuple) that would be duplicated.
        value: The conflicting value.
        message: Optional override for the user-facing message.
    """

    status_code = 409

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)

"""Error taxonomy for Nimmit.

Every error carries a machine-readable ``code``, a human message, optional
``details`` and the HTTP status the API layer should answer with. Validation
and business-rule errors are always raised before any mutation.
"""

from typing import Any, Dict, Optional


class NimmitError(Exception):
    """Base class for all Nimmit errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the ``error`` member of a failure envelope."""
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return error


class ValidationError(NimmitError):
    """Malformed or missing input field."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(message, details={"field": field})
        self.field = field


class InsufficientCreditsError(NimmitError):
    """Client balance does not cover the job cost."""

    code = "INSUFFICIENT_CREDITS"
    status_code = 402

    def __init__(self, required: int, available: int, breakdown: Optional[str] = None):
        self.required = required
        self.available = available
        self.shortfall = max(0, required - available)
        details: Dict[str, Any] = {
            "required": required,
            "available": available,
            "shortfall": self.shortfall,
        }
        if breakdown:
            details["breakdown"] = breakdown
        super().__init__(
            f"Not enough credits. Required: {required}, Available: {available}",
            details=details,
        )


class InvalidTransitionError(NimmitError):
    """Requested status change is not in the transition table."""

    code = "INVALID_TRANSITION"
    status_code = 400

    def __init__(self, current: str, requested: str, message: Optional[str] = None):
        self.current = current
        self.requested = requested
        super().__init__(
            message or f"Cannot transition from {current} to {requested}",
            details={"current": current, "requested": requested},
        )


class MessagingClosedError(InvalidTransitionError):
    """Messages are not accepted in the job's current status."""

    code = "MESSAGING_CLOSED"

    def __init__(self, current: str):
        super().__init__(
            current,
            "message",
            message=f"Cannot send messages on a job in status: {current}",
        )


class NotFoundError(NimmitError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} not found", details={"id": resource_id})
        self.resource = resource
        self.resource_id = resource_id


class ForbiddenError(NimmitError):
    code = "FORBIDDEN"
    status_code = 403


class ConflictError(NimmitError):
    """A concurrent write changed the record first."""

    code = "CONFLICT"
    status_code = 409


class ExternalServiceError(NimmitError):
    """Payment processor or other third-party call failed.

    ``outcome_unknown`` is set when the request may have been carried out
    even though no answer came back (timeouts, 5xx). Such a call is only
    safe to repeat with the same idempotency key.
    """

    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502

    def __init__(self, service: str, message: str, outcome_unknown: bool = False):
        super().__init__(message, details={"service": service})
        self.service = service
        self.outcome_unknown = outcome_unknown


class PersistenceError(NimmitError):
    """Document store failure."""

    code = "PERSISTENCE_ERROR"
    status_code = 500

"""
Karaoke Queue Service - Error Taxonomy

Every failure surfaced to a caller carries a stable machine-readable
``code``, a human-readable ``message`` and an HTTP status.  The FastAPI
exception handlers in ``karaoke.main`` render them as::

    {"error": "<message>", "code": "<CODE>", "details": {...}}
"""

from typing import Any, Dict, Optional


class KaraokeError(Exception):
    """Base class for all domain and infrastructure errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(KaraokeError):
    """Malformed input.  Never retried automatically."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, **details: Any):
        if field is not None:
            details["field"] = field
        super().__init__(message, details)
        self.field = field


class UnauthorizedError(KaraokeError):
    code = "UNAUTHORIZED"
    status_code = 401


class ForbiddenError(KaraokeError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(KaraokeError):
    """A referenced event/request/song/crate does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: Any = None):
        details: Dict[str, Any] = {"resource": resource}
        if resource_id is not None:
            details["id"] = resource_id
        super().__init__(f"{resource.capitalize()} not found", details)
        self.resource = resource


class ConflictError(KaraokeError):
    code = "CONFLICT"
    status_code = 409


class InvalidStateTransitionError(KaraokeError):
    """A mutation was attempted on a request in a terminal or incompatible state."""

    code = "INVALID_STATE_TRANSITION"
    status_code = 409

    def __init__(self, current: str, attempted: str):
        super().__init__(
            f"Cannot move request from '{current}' to '{attempted}'",
            {"current_status": current, "attempted_status": attempted},
        )
        self.current = current
        self.attempted = attempted


class InfrastructureError(KaraokeError):
    """The store or a downstream service is unavailable.  Retryable by the caller."""

    code = "INFRASTRUCTURE_ERROR"
    status_code = 503

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details.setdefault("retryable", True)
        super().__init__(message, details)

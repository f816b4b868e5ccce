"""
Error taxonomy for the matching engine.

Every failure a caller can observe is one of these classes. The HTTP layer
maps them to status codes through ``status_code`` and ``code``.
"""
from typing import Any, Optional


class MatchingError(Exception):
    """Base class for all classified matching-engine errors."""

    status_code: int = 500
    code: str = "INTERNAL_SERVER_ERROR"
    retryable: bool = False

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(MatchingError):
    """Referenced Posting, Professional, Organization or Response is absent."""

    status_code = 404
    code = "RESOURCE_NOT_FOUND"

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            f"{resource} {resource_id} not found",
            {"resource": resource, "id": str(resource_id)},
        )


class InvalidTransitionError(MatchingError):
    """A lifecycle rule was violated (wrong current status, posting not POSTED, ...)."""

    status_code = 409
    code = "INVALID_OPERATION"


class DuplicateResponseError(MatchingError):
    """An active Response already exists for the (Professional, Posting) pair."""

    status_code = 409
    code = "ALREADY_APPLIED"

    def __init__(self, professional_id: Any, posting_id: Any):
        super().__init__(
            f"Professional {professional_id} already has an active response to posting {posting_id}",
            {"professional_id": str(professional_id), "posting_id": str(posting_id)},
        )


class ValidationError(MatchingError):
    """Malformed filter or sort parameters that cannot degrade gracefully."""

    status_code = 422
    code = "VALIDATION_ERROR"


class UnauthorizedError(MatchingError):
    """Acting party does not own the resource it is mutating."""

    status_code = 403
    code = "FORBIDDEN"


class TransientError(MatchingError):
    """Storage timeout or conflict. Nothing was applied; safe to retry."""

    status_code = 503
    code = "DATABASE_ERROR"
    retryable = True

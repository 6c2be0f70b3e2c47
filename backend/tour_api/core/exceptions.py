"""
Domain error hierarchy.

Services raise these and never build HTTP responses; the API layer maps each
class to a status code and a localized message (see tour_api.api.errors).
"""

from typing import Any, Optional


class DomainError(Exception):
    """Base for every error the service layer raises on purpose."""

    status_code = 500
    default_key = "internal_error"

    def __init__(
        self,
        message_key: Optional[str] = None,
        detail: Optional[str] = None,
        **params: Any,
    ):
        self.message_key = message_key or self.default_key
        self.detail = detail
        self.params = params
        super().__init__(detail or self.message_key)


class ValidationError(DomainError):
    status_code = 400
    default_key = "validation_failed"


class AuthenticationError(DomainError):
    status_code = 401
    default_key = "not_authenticated"


class ForbiddenError(DomainError):
    status_code = 403
    default_key = "forbidden"


class NotFoundError(DomainError):
    status_code = 404
    default_key = "not_found"


class InvalidStateError(DomainError):
    """A lifecycle guard failed: wrong status or outside a time window."""

    status_code = 400
    default_key = "invalid_state"


class ConflictError(DomainError):
    """The row changed under us (version mismatch) or a unique value clashed."""

    status_code = 409
    default_key = "conflict"


class DuplicateBookingNumberError(ConflictError):
    """Booking number collided with an existing row. Regenerate and retry."""

    default_key = "booking_number_collision"


class ExternalServiceError(DomainError):
    status_code = 500
    default_key = "external_service_error"

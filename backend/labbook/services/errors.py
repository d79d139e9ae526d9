"""Domain errors raised by the booking engine."""

from __future__ import annotations

from typing import Any, Iterable
from uuid import UUID

# purpose: shared error taxonomy for pricing, lifecycle, sample and document flows
# status: active
# related_docs: DESIGN.md


class BookingError(RuntimeError):
    """Base error for booking engine flows."""


class BookingValidationError(BookingError):
    """Raised when input fails validation; carries field-level issues."""

    def __init__(self, issues: Iterable[dict[str, Any]] | str):
        if isinstance(issues, str):
            issues = [{"path": [], "message": issues}]
        self.issues = list(issues)
        super().__init__("Booking validation failed")

    @classmethod
    def single(cls, path: str, message: str) -> "BookingValidationError":
        return cls([{"path": [path], "message": message}])


class BookingGuardError(BookingError):
    """Raised when the booking status does not permit the requested transition."""


class BookingForbidden(BookingError):
    """Raised when the caller does not own the booking."""


class BookingNotFound(BookingError):
    """Raised when a booking cannot be located."""

    def __init__(self, booking_id: UUID | str):
        self.booking_id = booking_id
        super().__init__(f"booking {booking_id} not found")


class SampleNotFound(BookingError):
    """Raised when a sample tracking record cannot be located."""


class DocumentNotFound(BookingError):
    """Raised when a booking document cannot be located."""


class ModificationNotFound(BookingError):
    """Raised when a sample modification request cannot be located."""


class PricingNotFound(BookingError):
    """Raised when no effective price exists for a service and user type.

    This is a catalog configuration defect, not a caller mistake.
    """

    def __init__(self, service_id: UUID | str, user_type: str):
        self.service_id = service_id
        self.user_type = user_type
        super().__init__(
            f"pricing not found for service {service_id} and user type {user_type}"
        )

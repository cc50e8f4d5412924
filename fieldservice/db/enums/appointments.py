"""Appointment and cancellation enums."""

from enum import Enum


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle status.

    Flow: scheduled → confirmed → in_progress → completed
              ↘           ↘            ↘
                          cancelled
    """

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AppointmentKind(str, Enum):
    """How the appointment came to exist."""

    ONE_TIME = "one_time"
    RECURRING = "recurring"  # Materialized from a recurrence


class RefundStatus(str, Enum):
    """Refund state of a cancellation, driven by the payment collaborator."""

    NONE = "none"
    PENDING = "pending"
    PROCESSED = "processed"
    DENIED = "denied"


class CancelledByRole(str, Enum):
    """Who requested the cancellation."""

    CUSTOMER = "customer"
    COMPANY = "company"
    PROFESSIONAL = "professional"
    ADMIN = "admin"
    SYSTEM = "system"


# Allowed forward transitions (cancellation is handled by the coordinator)
APPOINTMENT_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({AppointmentStatus.CONFIRMED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.IN_PROGRESS}),
    AppointmentStatus.IN_PROGRESS: frozenset({AppointmentStatus.COMPLETED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}

CANCELLABLE_APPOINTMENT_STATUSES = frozenset(
    {
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.IN_PROGRESS,
    }
)

REFUND_TRANSITIONS: dict[RefundStatus, frozenset[RefundStatus]] = {
    RefundStatus.NONE: frozenset({RefundStatus.PENDING}),
    RefundStatus.PENDING: frozenset({RefundStatus.PROCESSED, RefundStatus.DENIED}),
    RefundStatus.PROCESSED: frozenset(),
    RefundStatus.DENIED: frozenset(),
}

DEFAULT_APPOINTMENT_STATUS = AppointmentStatus.SCHEDULED
DEFAULT_REFUND_STATUS = RefundStatus.PENDING

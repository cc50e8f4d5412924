"""Enum definitions for application constants."""

from fieldservice.db.enums.appointments import (
    APPOINTMENT_TRANSITIONS,
    CANCELLABLE_APPOINTMENT_STATUSES,
    DEFAULT_APPOINTMENT_STATUS,
    DEFAULT_REFUND_STATUS,
    REFUND_TRANSITIONS,
    AppointmentKind,
    AppointmentStatus,
    CancelledByRole,
    RefundStatus,
)
from fieldservice.db.enums.entities import DEFAULT_ENTITY_STATUS, EntityStatus
from fieldservice.db.enums.jobs import DEFAULT_JOB_STATUS, JobStatus, JobType
from fieldservice.db.enums.legacy import coerce_enum
from fieldservice.db.enums.plans import PlanStatus, ResourceKind, SubscriptionStatus
from fieldservice.db.enums.recurrences import (
    DEFAULT_RECURRENCE_STATUS,
    TERMINAL_RECURRENCE_STATUSES,
    RecurrenceFrequency,
    RecurrenceStatus,
)

__all__ = [
    "APPOINTMENT_TRANSITIONS",
    "CANCELLABLE_APPOINTMENT_STATUSES",
    "DEFAULT_APPOINTMENT_STATUS",
    "DEFAULT_ENTITY_STATUS",
    "DEFAULT_JOB_STATUS",
    "DEFAULT_RECURRENCE_STATUS",
    "DEFAULT_REFUND_STATUS",
    "REFUND_TRANSITIONS",
    "TERMINAL_RECURRENCE_STATUSES",
    "AppointmentKind",
    "AppointmentStatus",
    "CancelledByRole",
    "EntityStatus",
    "JobStatus",
    "JobType",
    "PlanStatus",
    "RecurrenceFrequency",
    "RecurrenceStatus",
    "RefundStatus",
    "ResourceKind",
    "SubscriptionStatus",
    "coerce_enum",
]

"""Pydantic schemas for API request/response models."""

from fieldservice.schemas.appointment import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentRead,
    AppointmentStatusUpdate,
)
from fieldservice.schemas.cancellation import (
    CancellationListResponse,
    CancellationRead,
    RefundStatusUpdate,
)
from fieldservice.schemas.plan import PlanUsageResponse, ResourceUsage
from fieldservice.schemas.recurrence import (
    RecurrenceCreate,
    RecurrenceListResponse,
    RecurrencePreview,
    RecurrenceRead,
)

__all__ = [
    "AppointmentCancel",
    "AppointmentCreate",
    "AppointmentListResponse",
    "AppointmentRead",
    "AppointmentStatusUpdate",
    "CancellationListResponse",
    "CancellationRead",
    "PlanUsageResponse",
    "RecurrenceCreate",
    "RecurrenceListResponse",
    "RecurrencePreview",
    "RecurrenceRead",
    "RefundStatusUpdate",
    "ResourceUsage",
]

"""Appointments router - one-off appointments, listing, transitions and cancellation."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fieldservice.core.deps import get_company_id, get_db
from fieldservice.core.errors import ValidationError
from fieldservice.db.enums import AppointmentStatus, coerce_enum
from fieldservice.schemas.appointment import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentRead,
    AppointmentStatusUpdate,
)
from fieldservice.schemas.cancellation import CancellationRead
from fieldservice.services import appointment_service, cancellation_service
from fieldservice.services.collaborators import JobQueueNotifier, JobQueuePaymentGateway
from fieldservice.utils.pagination import PaginationParams, get_pagination

router = APIRouter()


def _as_utc(value: datetime | None) -> datetime | None:
    """Naive query datetimes are taken as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@router.post("", response_model=AppointmentRead, status_code=201)
def create_appointment(
    data: AppointmentCreate,
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """
    Create a one-time appointment.

    409 when the team or professional is already booked in the window,
    402 when the plan's appointment limit is reached.
    """
    payload = data.model_dump()
    payload["start_at"] = _as_utc(payload["start_at"])
    payload["end_at"] = _as_utc(payload["end_at"])
    return appointment_service.create_appointment(db, company_id, **payload)


@router.get("", response_model=AppointmentListResponse)
def list_appointments(
    date_start: datetime | None = Query(None, description="Keep appointments ending after this"),
    date_end: datetime | None = Query(None, description="Keep appointments starting before this"),
    status: str | None = None,
    team_id: int | None = None,
    professional_id: int | None = None,
    customer_id: int | None = None,
    recurrence_id: int | None = Query(None, description="Only occurrences of this recurrence"),
    pagination: PaginationParams = Depends(get_pagination),
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    status_filter = None
    if status:
        try:
            status_filter = coerce_enum(AppointmentStatus, status)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

    items, total = appointment_service.list_appointments(
        db,
        company_id,
        date_start=_as_utc(date_start),
        date_end=_as_utc(date_end),
        status=status_filter,
        team_id=team_id,
        professional_id=professional_id,
        customer_id=customer_id,
        source_recurrence_id=recurrence_id,
        limit=pagination.per_page,
        offset=pagination.offset,
    )
    return AppointmentListResponse(
        items=[AppointmentRead.model_validate(a) for a in items],
        **pagination.meta(total),
    )


@router.get("/{appointment_id}", response_model=AppointmentRead)
def get_appointment(
    appointment_id: int,
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    return appointment_service.get_appointment(db, company_id, appointment_id)


@router.post("/{appointment_id}/status", response_model=AppointmentRead)
def update_appointment_status(
    appointment_id: int,
    data: AppointmentStatusUpdate,
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    return appointment_service.transition_status(db, company_id, appointment_id, data.status)


@router.post("/{appointment_id}/cancel", response_model=CancellationRead, status_code=201)
def cancel_appointment(
    appointment_id: int,
    data: AppointmentCancel,
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """Cancel and start the refund; notification and refund run in the background."""
    return cancellation_service.cancel_appointment(
        db,
        company_id,
        appointment_id,
        reason=data.reason,
        cancelled_by_id=data.cancelled_by_id,
        cancelled_by_role=data.cancelled_by_role,
        notes=data.notes,
        notifier=JobQueueNotifier(db),
        payments=JobQueuePaymentGateway(db, company_id),
    )

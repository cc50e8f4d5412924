"""Appointment service - one-off appointments, listing and status transitions.

Cancellation is not a status transition here; it goes through
cancellation_service so that a Cancellation record is always written.
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from fieldservice.core.errors import InvalidStateTransition, NotFoundError, ValidationError
from fieldservice.core.structured_logging import build_log_context
from fieldservice.db.conditional import conditional_update
from fieldservice.db.enums import (
    APPOINTMENT_TRANSITIONS,
    AppointmentKind,
    AppointmentStatus,
    ResourceKind,
    coerce_enum,
)
from fieldservice.db.models import Appointment
from fieldservice.services import conflict_service, quota_service, resource_service

logger = logging.getLogger(__name__)

MAX_APPOINTMENT_DURATION = timedelta(hours=24)


def create_appointment(
    db: Session,
    company_id: int,
    *,
    title: str,
    start_at: datetime,
    end_at: datetime,
    customer_id: int | None = None,
    team_id: int | None = None,
    professional_id: int | None = None,
    address: str | None = None,
    notes: str | None = None,
) -> Appointment:
    """
    Create a one-time appointment.

    Raises:
        ValidationError: bad window or title, inactive/foreign references.
        SchedulingConflictError: team or professional already booked.
        QuotaExceededError: appointment limit of the active plan reached.
    """
    if not title or not title.strip():
        raise ValidationError("title is required")
    if start_at.tzinfo is None or end_at.tzinfo is None:
        raise ValidationError("start_at and end_at must include a timezone offset")
    start_at = start_at.astimezone(timezone.utc)
    end_at = end_at.astimezone(timezone.utc)
    if start_at >= end_at:
        raise ValidationError("start_at must be before end_at")
    if end_at - start_at > MAX_APPOINTMENT_DURATION:
        raise ValidationError("appointment cannot be longer than 24 hours")

    resource_service.ensure_active_resource(db, company_id, ResourceKind.CUSTOMER, customer_id)
    resource_service.ensure_active_resource(db, company_id, ResourceKind.TEAM, team_id)
    resource_service.ensure_active_resource(
        db, company_id, ResourceKind.PROFESSIONAL, professional_id
    )

    quota_service.lock_company(db, company_id)
    try:
        conflict_service.ensure_no_conflict(
            db,
            company_id,
            start_at,
            end_at,
            team_id=team_id,
            professional_id=professional_id,
        )
        quota_service.ensure_quota(db, company_id, ResourceKind.APPOINTMENT)
    except Exception:
        db.rollback()
        raise

    appointment = Appointment(
        company_id=company_id,
        customer_id=customer_id,
        team_id=team_id,
        professional_id=professional_id,
        title=title.strip(),
        address=address or "",
        start_at=start_at,
        end_at=end_at,
        status=AppointmentStatus.SCHEDULED.value,
        kind=AppointmentKind.ONE_TIME.value,
        notes=notes,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)

    logger.info(
        "Created appointment %s",
        appointment.id,
        extra=build_log_context(company_id=company_id, appointment_id=appointment.id),
    )
    return appointment


def get_appointment(db: Session, company_id: int, appointment_id: int) -> Appointment:
    appointment = (
        db.query(Appointment)
        .filter(Appointment.id == appointment_id, Appointment.company_id == company_id)
        .first()
    )
    if not appointment:
        raise NotFoundError("Appointment", appointment_id)
    return appointment


def list_appointments(
    db: Session,
    company_id: int,
    *,
    date_start: datetime | None = None,
    date_end: datetime | None = None,
    status: AppointmentStatus | None = None,
    team_id: int | None = None,
    professional_id: int | None = None,
    customer_id: int | None = None,
    source_recurrence_id: int | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Appointment], int]:
    """
    List a company's appointments ordered by start time.

    The date range keeps appointments overlapping [date_start, date_end).
    Returns (items, total).
    """
    query = db.query(Appointment).filter(Appointment.company_id == company_id)
    if date_start is not None:
        query = query.filter(Appointment.end_at > date_start)
    if date_end is not None:
        query = query.filter(Appointment.start_at < date_end)
    if status:
        query = query.filter(Appointment.status == status.value)
    if team_id is not None:
        query = query.filter(Appointment.team_id == team_id)
    if professional_id is not None:
        query = query.filter(Appointment.professional_id == professional_id)
    if customer_id is not None:
        query = query.filter(Appointment.customer_id == customer_id)
    if source_recurrence_id is not None:
        query = query.filter(Appointment.source_recurrence_id == source_recurrence_id)

    total = query.count()
    items = query.order_by(Appointment.start_at, Appointment.id).offset(offset).limit(limit).all()
    return items, total


def transition_status(
    db: Session,
    company_id: int,
    appointment_id: int,
    target: AppointmentStatus | str,
) -> Appointment:
    """
    Move an appointment forward: scheduled → confirmed → in_progress → completed.

    Raises:
        InvalidStateTransition: target not reachable from the current status,
            or the status changed underneath us.
    """
    try:
        target = coerce_enum(AppointmentStatus, target)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if target == AppointmentStatus.CANCELLED:
        raise ValidationError("Use the cancel operation to cancel an appointment")

    appointment = get_appointment(db, company_id, appointment_id)
    current = coerce_enum(AppointmentStatus, appointment.status)
    if target not in APPOINTMENT_TRANSITIONS[current]:
        raise InvalidStateTransition("appointment", current.value, target.value)

    swapped = conditional_update(
        db,
        Appointment,
        appointment_id,
        expected={"status": appointment.status},
        values={"status": target.value},
    )
    if not swapped:
        db.rollback()
        db.refresh(appointment)
        raise InvalidStateTransition("appointment", appointment.status, target.value)
    db.commit()
    db.refresh(appointment)

    logger.info(
        "Appointment %s %s -> %s",
        appointment_id,
        current.value,
        target.value,
        extra=build_log_context(
            company_id=company_id, appointment_id=appointment_id, outcome=target.value
        ),
    )
    return appointment

"""Conflict service - double-booking detection for teams and professionals."""

from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session

from fieldservice.core.errors import SchedulingConflictError, ValidationError
from fieldservice.db.enums import AppointmentStatus
from fieldservice.db.models import Appointment


def find_conflicts(
    db: Session,
    company_id: int,
    start: datetime,
    end: datetime,
    team_id: int | None = None,
    professional_id: int | None = None,
    exclude_appointment_id: int | None = None,
) -> list[int]:
    """
    Return ids of non-cancelled appointments overlapping [start, end).

    Two windows [s1, e1) and [s2, e2) overlap iff s1 < e2 and s2 < e1, so
    back-to-back appointments do not conflict. An appointment matches when it
    shares the team OR the professional. With neither target there is
    nothing to double-book.
    """
    if start >= end:
        raise ValidationError("start must be before end")

    targets = []
    if team_id is not None:
        targets.append(Appointment.team_id == team_id)
    if professional_id is not None:
        targets.append(Appointment.professional_id == professional_id)
    if not targets:
        return []

    query = db.query(Appointment.id).filter(
        Appointment.company_id == company_id,
        Appointment.status != AppointmentStatus.CANCELLED.value,
        Appointment.start_at < end,
        Appointment.end_at > start,
        or_(*targets),
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)

    return [row.id for row in query.order_by(Appointment.start_at, Appointment.id).all()]


def ensure_no_conflict(
    db: Session,
    company_id: int,
    start: datetime,
    end: datetime,
    team_id: int | None = None,
    professional_id: int | None = None,
    exclude_appointment_id: int | None = None,
) -> None:
    """Raise SchedulingConflictError when the window is already taken."""
    conflicting_ids = find_conflicts(
        db,
        company_id,
        start,
        end,
        team_id=team_id,
        professional_id=professional_id,
        exclude_appointment_id=exclude_appointment_id,
    )
    if conflicting_ids:
        raise SchedulingConflictError(conflicting_ids)

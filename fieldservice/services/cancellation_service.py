"""Cancellation service - cancel appointments and track refunds.

The appointment status change is an expected-status compare-and-swap, so a
cancellation racing a status transition (or another cancellation) either
wins cleanly or fails with InvalidStateTransition. Exactly one Cancellation
row exists per cancelled appointment.

Notification and refund initiation happen after commit and are fire-and-
forget: a failing collaborator is logged and never undoes the cancellation.
Cancelling one occurrence of a recurrence leaves the recurrence untouched.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from fieldservice.core.config import settings
from fieldservice.core.errors import (
    InvalidStateTransition,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from fieldservice.core.structured_logging import build_log_context
from fieldservice.db.conditional import conditional_update
from fieldservice.db.enums import (
    CANCELLABLE_APPOINTMENT_STATUSES,
    REFUND_TRANSITIONS,
    AppointmentStatus,
    CancelledByRole,
    RefundStatus,
    coerce_enum,
)
from fieldservice.db.models import Appointment, Cancellation
from fieldservice.services.collaborators import Notifier, PaymentGateway

logger = logging.getLogger(__name__)

CANCELLATION_EVENT = "appointment_cancelled"


def cancel_appointment(
    db: Session,
    company_id: int,
    appointment_id: int,
    reason: str,
    cancelled_by_id: int,
    cancelled_by_role: CancelledByRole | str,
    notes: str | None = None,
    notifier: Notifier | None = None,
    payments: PaymentGateway | None = None,
    now: datetime | None = None,
) -> Cancellation:
    """
    Cancel an appointment and record the cancellation.

    Transient storage errors are retried up to CANCEL_RETRY_ATTEMPTS times
    before surfacing as PersistenceError.

    Raises:
        ValidationError: empty reason or unknown role.
        NotFoundError: appointment not in this company.
        InvalidStateTransition: appointment already cancelled or completed.
        PersistenceError: storage kept failing.
    """
    if not reason or not reason.strip():
        raise ValidationError("Cancellation reason is required")
    try:
        role = coerce_enum(CancelledByRole, cancelled_by_role)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    now = now or datetime.now(timezone.utc)

    attempts = max(settings.CANCEL_RETRY_ATTEMPTS, 1)
    for attempt in range(1, attempts + 1):
        try:
            cancellation, source_recurrence_id = _cancel_once(
                db, company_id, appointment_id, reason.strip(), cancelled_by_id, role, notes, now
            )
            break
        except OperationalError as exc:
            db.rollback()
            if attempt == attempts:
                raise PersistenceError(
                    f"Cancelling appointment {appointment_id} failed after {attempts} attempts"
                ) from exc
            logger.warning(
                "Transient error cancelling appointment %s (attempt %s/%s)",
                appointment_id,
                attempt,
                attempts,
                extra=build_log_context(company_id=company_id, appointment_id=appointment_id),
            )
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(
                f"Cancelling appointment {appointment_id} failed: {type(exc).__name__}"
            ) from exc

    logger.info(
        "Appointment %s cancelled by %s",
        appointment_id,
        role.value,
        extra=build_log_context(
            company_id=company_id,
            appointment_id=appointment_id,
            cancellation_id=cancellation.id,
            outcome="cancelled",
        ),
    )
    _emit_side_effects(cancellation, source_recurrence_id, notifier, payments)
    return cancellation


def _cancel_once(
    db: Session,
    company_id: int,
    appointment_id: int,
    reason: str,
    cancelled_by_id: int,
    role: CancelledByRole,
    notes: str | None,
    now: datetime,
) -> tuple[Cancellation, int | None]:
    appointment = (
        db.query(Appointment)
        .filter(Appointment.id == appointment_id, Appointment.company_id == company_id)
        .first()
    )
    if not appointment:
        raise NotFoundError("Appointment", appointment_id)

    observed = appointment.status
    source_recurrence_id = appointment.source_recurrence_id
    if coerce_enum(AppointmentStatus, observed) not in CANCELLABLE_APPOINTMENT_STATUSES:
        raise InvalidStateTransition("appointment", observed, AppointmentStatus.CANCELLED.value)

    swapped = conditional_update(
        db,
        Appointment,
        appointment_id,
        expected={"status": observed},
        values={"status": AppointmentStatus.CANCELLED.value, "updated_at": now},
    )
    if not swapped:
        db.rollback()
        current = db.query(Appointment.status).filter(Appointment.id == appointment_id).scalar()
        raise InvalidStateTransition(
            "appointment", current or observed, AppointmentStatus.CANCELLED.value
        )

    cancellation = Cancellation(
        appointment_id=appointment_id,
        company_id=company_id,
        customer_id=appointment.customer_id,
        reason=reason,
        cancelled_by_id=cancelled_by_id,
        cancelled_by_role=role.value,
        cancelled_at=now,
        refund_status=RefundStatus.PENDING.value,
        notes=notes,
    )
    db.add(cancellation)
    db.commit()
    db.refresh(cancellation)
    return cancellation, source_recurrence_id


def _cancellation_event(cancellation: Cancellation, source_recurrence_id: int | None) -> dict:
    return {
        "type": CANCELLATION_EVENT,
        "company_id": cancellation.company_id,
        "appointment_id": cancellation.appointment_id,
        "cancellation_id": cancellation.id,
        "source_recurrence_id": source_recurrence_id,
        "cancelled_by_role": cancellation.cancelled_by_role,
        "cancelled_at": cancellation.cancelled_at.isoformat(),
        "refund_status": cancellation.refund_status,
    }


def _emit_side_effects(
    cancellation: Cancellation,
    source_recurrence_id: int | None,
    notifier: Notifier | None,
    payments: PaymentGateway | None,
) -> None:
    log_context = build_log_context(
        company_id=cancellation.company_id,
        appointment_id=cancellation.appointment_id,
        cancellation_id=cancellation.id,
    )
    if notifier is not None:
        event = _cancellation_event(cancellation, source_recurrence_id)
        try:
            notifier.notify(event)
        except Exception:
            logger.exception("Cancellation notification failed", extra=log_context)

    if payments is not None:
        try:
            payments.initiate_refund(cancellation.id)
        except Exception:
            logger.exception("Refund initiation failed", extra=log_context)


# =============================================================================
# Refunds
# =============================================================================

def update_refund_status(
    db: Session,
    company_id: int,
    cancellation_id: int,
    new_status: RefundStatus | str,
    notes: str | None = None,
) -> Cancellation:
    """
    Move a cancellation's refund forward (none → pending → processed | denied).

    Called on behalf of the payment collaborator. Uses the same
    expected-status swap as cancellation so concurrent callbacks apply once.
    """
    try:
        target = coerce_enum(RefundStatus, new_status)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    cancellation = get_cancellation(db, company_id, cancellation_id)
    current = coerce_enum(RefundStatus, cancellation.refund_status)
    if target not in REFUND_TRANSITIONS[current]:
        raise InvalidStateTransition("refund", current.value, target.value)

    values = {"refund_status": target.value}
    if notes:
        values["notes"] = f"{cancellation.notes}\n{notes}" if cancellation.notes else notes
    try:
        swapped = conditional_update(
            db,
            Cancellation,
            cancellation_id,
            expected={"refund_status": cancellation.refund_status},
            values=values,
        )
        if not swapped:
            db.rollback()
            db.refresh(cancellation)
            raise InvalidStateTransition("refund", cancellation.refund_status, target.value)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(
            f"Updating refund for cancellation {cancellation_id} failed"
        ) from exc

    db.refresh(cancellation)
    logger.info(
        "Refund for cancellation %s moved %s -> %s",
        cancellation_id,
        current.value,
        target.value,
        extra=build_log_context(
            company_id=company_id, cancellation_id=cancellation_id, outcome=target.value
        ),
    )
    return cancellation


def get_cancellation(db: Session, company_id: int, cancellation_id: int) -> Cancellation:
    cancellation = (
        db.query(Cancellation)
        .filter(Cancellation.id == cancellation_id, Cancellation.company_id == company_id)
        .first()
    )
    if not cancellation:
        raise NotFoundError("Cancellation", cancellation_id)
    return cancellation


def list_cancellations(
    db: Session,
    company_id: int,
    refund_status: RefundStatus | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Cancellation], int]:
    """List cancellations for a company, newest first. Returns (items, total)."""
    query = db.query(Cancellation).filter(Cancellation.company_id == company_id)
    if refund_status:
        query = query.filter(Cancellation.refund_status == refund_status.value)
    total = query.count()
    items = (
        query.order_by(Cancellation.cancelled_at.desc(), Cancellation.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total

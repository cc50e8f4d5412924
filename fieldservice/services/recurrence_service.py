"""Recurrence service - create recurring-service rules and manage their lifecycle.

Lifecycle: active ⇄ paused, active|paused → cancelled. Exhaustion is set
only by the engine/materializer. Nothing leaves cancelled or exhausted.
"""

import logging
from datetime import date, datetime, time, timezone

from sqlalchemy.orm import Session

from fieldservice.core.errors import InvalidStateTransition, NotFoundError, ValidationError
from fieldservice.core.structured_logging import build_log_context
from fieldservice.db.conditional import conditional_update
from fieldservice.db.enums import (
    TERMINAL_RECURRENCE_STATUSES,
    RecurrenceFrequency,
    RecurrenceStatus,
    ResourceKind,
    coerce_enum,
)
from fieldservice.db.models import Company, Recurrence
from fieldservice.services import resource_service
from fieldservice.services.recurrence_engine import (
    EXHAUSTED,
    RecurrenceRule,
    compute_next_execution,
    preview_occurrences,
    rule_from_recurrence,
    validate_rule,
)

logger = logging.getLogger(__name__)

MAX_PREVIEW = 52


def _get_company(db: Session, company_id: int) -> Company:
    company = db.query(Company).filter(Company.id == company_id).first()
    if not company:
        raise NotFoundError("Company", company_id)
    return company


def create_recurrence(
    db: Session,
    company_id: int,
    *,
    title: str,
    frequency: RecurrenceFrequency | str | int,
    time_of_day: time,
    duration_minutes: int,
    start_date: date,
    day_of_week: int | None = None,
    day_of_month: int | None = None,
    end_date: date | None = None,
    customer_id: int | None = None,
    team_id: int | None = None,
    professional_id: int | None = None,
    description: str | None = None,
    address: str | None = None,
    now: datetime | None = None,
) -> Recurrence:
    """
    Validate the rule and persist it with its first next_execution.

    A rule whose end_date leaves no occurrence after ``now`` is stored as
    exhausted right away.
    """
    now = now or datetime.now(timezone.utc)
    company = _get_company(db, company_id)

    if not title or not title.strip():
        raise ValidationError("title is required")
    if team_id is None and professional_id is None:
        raise ValidationError("A recurrence must target a team or a professional")
    try:
        frequency = coerce_enum(RecurrenceFrequency, frequency)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    rule = RecurrenceRule(
        frequency=frequency,
        time_of_day=time_of_day,
        duration_minutes=duration_minutes,
        start_date=start_date,
        day_of_week=day_of_week,
        day_of_month=day_of_month,
        end_date=end_date,
        timezone=company.timezone,
    )
    validate_rule(rule)

    resource_service.ensure_active_resource(db, company_id, ResourceKind.CUSTOMER, customer_id)
    resource_service.ensure_active_resource(db, company_id, ResourceKind.TEAM, team_id)
    resource_service.ensure_active_resource(
        db, company_id, ResourceKind.PROFESSIONAL, professional_id
    )

    next_execution = compute_next_execution(rule, now)
    status = RecurrenceStatus.ACTIVE
    if next_execution is EXHAUSTED:
        next_execution = None
        status = RecurrenceStatus.EXHAUSTED

    recurrence = Recurrence(
        company_id=company_id,
        customer_id=customer_id,
        team_id=team_id,
        professional_id=professional_id,
        title=title.strip(),
        description=description,
        address=address,
        frequency=frequency.value,
        day_of_week=day_of_week,
        day_of_month=day_of_month,
        time_of_day=time_of_day,
        duration_minutes=duration_minutes,
        start_date=start_date,
        end_date=end_date,
        status=status.value,
        next_execution=next_execution,
    )
    db.add(recurrence)
    db.commit()
    db.refresh(recurrence)

    logger.info(
        "Created recurrence %s (%s), next execution %s",
        recurrence.id,
        frequency.value,
        next_execution,
        extra=build_log_context(
            company_id=company_id, recurrence_id=recurrence.id, outcome=status.value
        ),
    )
    return recurrence


def get_recurrence(db: Session, company_id: int, recurrence_id: int) -> Recurrence:
    recurrence = (
        db.query(Recurrence)
        .filter(Recurrence.id == recurrence_id, Recurrence.company_id == company_id)
        .first()
    )
    if not recurrence:
        raise NotFoundError("Recurrence", recurrence_id)
    return recurrence


def list_recurrences(
    db: Session,
    company_id: int,
    status: RecurrenceStatus | None = None,
    team_id: int | None = None,
    customer_id: int | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Recurrence], int]:
    """List a company's recurrences with optional filters. Returns (items, total)."""
    query = db.query(Recurrence).filter(Recurrence.company_id == company_id)
    if status:
        query = query.filter(Recurrence.status == status.value)
    if team_id is not None:
        query = query.filter(Recurrence.team_id == team_id)
    if customer_id is not None:
        query = query.filter(Recurrence.customer_id == customer_id)
    total = query.count()
    items = query.order_by(Recurrence.id).offset(offset).limit(limit).all()
    return items, total


def _transition(
    db: Session,
    recurrence: Recurrence,
    allowed_from: set[RecurrenceStatus],
    target: RecurrenceStatus,
    values: dict,
) -> Recurrence:
    """Expected-status swap so a concurrent claim or transition is not overwritten."""
    current = coerce_enum(RecurrenceStatus, recurrence.status)
    if current not in allowed_from:
        raise InvalidStateTransition("recurrence", current.value, target.value)

    swapped = conditional_update(
        db,
        Recurrence,
        recurrence.id,
        expected={"status": recurrence.status},
        values={"status": target.value, **values},
    )
    if not swapped:
        db.rollback()
        db.refresh(recurrence)
        raise InvalidStateTransition("recurrence", recurrence.status, target.value)
    db.commit()
    db.refresh(recurrence)

    logger.info(
        "Recurrence %s %s -> %s",
        recurrence.id,
        current.value,
        target.value,
        extra=build_log_context(
            company_id=recurrence.company_id, recurrence_id=recurrence.id, outcome=target.value
        ),
    )
    return recurrence


def pause_recurrence(db: Session, company_id: int, recurrence_id: int) -> Recurrence:
    recurrence = get_recurrence(db, company_id, recurrence_id)
    return _transition(
        db, recurrence, {RecurrenceStatus.ACTIVE}, RecurrenceStatus.PAUSED, {}
    )


def resume_recurrence(
    db: Session,
    company_id: int,
    recurrence_id: int,
    now: datetime | None = None,
) -> Recurrence:
    """
    Paused → active, recomputing next_execution from ``now``.

    Occurrences that fell inside the pause are skipped, not back-filled. If
    the end date passed while paused the recurrence becomes exhausted.
    """
    now = now or datetime.now(timezone.utc)
    recurrence = get_recurrence(db, company_id, recurrence_id)
    company = _get_company(db, company_id)

    if recurrence.status != RecurrenceStatus.PAUSED.value:
        raise InvalidStateTransition(
            "recurrence", recurrence.status, RecurrenceStatus.ACTIVE.value
        )

    next_execution = compute_next_execution(
        rule_from_recurrence(recurrence, company.timezone), now
    )
    if next_execution is EXHAUSTED:
        return _transition(
            db,
            recurrence,
            {RecurrenceStatus.PAUSED},
            RecurrenceStatus.EXHAUSTED,
            {"next_execution": None},
        )
    return _transition(
        db,
        recurrence,
        {RecurrenceStatus.PAUSED},
        RecurrenceStatus.ACTIVE,
        {"next_execution": next_execution},
    )


def cancel_recurrence(db: Session, company_id: int, recurrence_id: int) -> Recurrence:
    """Stop future occurrences. Appointments already materialized are kept."""
    recurrence = get_recurrence(db, company_id, recurrence_id)
    return _transition(
        db,
        recurrence,
        {RecurrenceStatus.ACTIVE, RecurrenceStatus.PAUSED},
        RecurrenceStatus.CANCELLED,
        {"next_execution": None},
    )


def preview_recurrence(
    db: Session,
    company_id: int,
    recurrence_id: int,
    count: int = 5,
    now: datetime | None = None,
) -> list[datetime]:
    """Upcoming occurrence instants, starting with the pending next_execution."""
    now = now or datetime.now(timezone.utc)
    count = max(1, min(count, MAX_PREVIEW))
    recurrence = get_recurrence(db, company_id, recurrence_id)
    if coerce_enum(RecurrenceStatus, recurrence.status) in TERMINAL_RECURRENCE_STATUSES:
        return []

    company = _get_company(db, company_id)
    rule = rule_from_recurrence(recurrence, company.timezone)
    pending = recurrence.next_execution
    if recurrence.status == RecurrenceStatus.ACTIVE.value and pending is not None:
        return [pending] + preview_occurrences(rule, pending, count - 1)
    return preview_occurrences(rule, now, count)

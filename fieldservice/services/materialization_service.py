"""Materialization service - turn a due recurrence occurrence into an appointment.

One call handles one occurrence of one recurrence in a single transaction:

1. Claim: advance next_execution with a compare-and-swap on the value read.
   A worker whose swap matches no row lost the race and does nothing.
2. Lock the company row. Conflict, quota and insert all run under it.
3. Conflict: an overlapping team/professional booking skips the occurrence.
   The claim is committed so the cycle is consumed.
4. Quota: exceeding the plan rolls the whole transaction back, claim
   included, so the same occurrence is retried on the next tick.
5. Create the appointment and record last_execution.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fieldservice.core.errors import (
    MaterializationTimeout,
    NotFoundError,
    PersistenceError,
)
from fieldservice.core.structured_logging import build_log_context
from fieldservice.db.conditional import conditional_update
from fieldservice.db.enums import (
    AppointmentKind,
    AppointmentStatus,
    RecurrenceStatus,
    ResourceKind,
)
from fieldservice.db.models import Appointment, Company, Recurrence
from fieldservice.services import conflict_service, quota_service
from fieldservice.services.recurrence_engine import (
    EXHAUSTED,
    compute_next_execution,
    occurrence_window,
    rule_from_recurrence,
)

logger = logging.getLogger(__name__)


class MaterializationOutcome(str, Enum):
    CREATED = "created"
    SKIPPED_CONFLICT = "skipped_conflict"
    SKIPPED_QUOTA = "skipped_quota"
    EXHAUSTED = "exhausted"
    NOT_DUE = "not_due"  # Paused/cancelled, or next_execution still in the future
    LOST_CLAIM = "lost_claim"  # Another worker advanced next_execution first


@dataclass(frozen=True)
class MaterializationResult:
    outcome: MaterializationOutcome
    recurrence_id: int
    occurrence: datetime | None = None
    appointment_id: int | None = None
    conflicting_ids: list[int] = field(default_factory=list)
    limit: int | None = None
    current: int | None = None


def _check_deadline(deadline: float | None) -> None:
    if deadline is not None and time.monotonic() > deadline:
        raise MaterializationTimeout("Materialization exceeded its time budget")


def _conflict_note(occurrence: datetime, conflicting_ids: list[int]) -> str:
    ids = ", ".join(str(i) for i in conflicting_ids)
    return f"[{occurrence:%Y-%m-%d %H:%M} UTC] Occurrence skipped: conflicts with appointment(s) {ids}"


def materialize(
    db: Session,
    recurrence_id: int,
    now: datetime | None = None,
    deadline: float | None = None,
) -> MaterializationResult:
    """
    Materialize the recurrence's current occurrence if it is due.

    Args:
        deadline: time.monotonic() value after which the attempt is rolled
            back and MaterializationTimeout raised.

    Raises:
        NotFoundError: recurrence does not exist.
        PersistenceError: storage failure or timeout; nothing was committed.
    """
    now = now or datetime.now(timezone.utc)
    try:
        return _materialize(db, recurrence_id, now, deadline)
    except MaterializationTimeout:
        db.rollback()
        logger.warning(
            "Materialization timed out for recurrence %s",
            recurrence_id,
            extra=build_log_context(recurrence_id=recurrence_id, outcome="timeout"),
        )
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(
            f"Materialization of recurrence {recurrence_id} failed: {type(exc).__name__}"
        ) from exc


def _materialize(
    db: Session,
    recurrence_id: int,
    now: datetime,
    deadline: float | None,
) -> MaterializationResult:
    recurrence = db.query(Recurrence).filter(Recurrence.id == recurrence_id).first()
    if not recurrence:
        raise NotFoundError("Recurrence", recurrence_id)

    if recurrence.status != RecurrenceStatus.ACTIVE.value:
        return MaterializationResult(MaterializationOutcome.NOT_DUE, recurrence_id)

    company = db.query(Company).filter(Company.id == recurrence.company_id).first()
    if not company:
        raise NotFoundError("Company", recurrence.company_id)
    rule = rule_from_recurrence(recurrence, company.timezone)
    occurrence = recurrence.next_execution
    log_context = build_log_context(
        company_id=recurrence.company_id, recurrence_id=recurrence_id
    )

    # Rule edited after next_execution was computed, or never had one
    if occurrence is None or (
        rule.end_date is not None
        and occurrence.astimezone(ZoneInfo(rule.timezone)).date() > rule.end_date
    ):
        conditional_update(
            db,
            Recurrence,
            recurrence_id,
            expected={"status": RecurrenceStatus.ACTIVE.value, "next_execution": occurrence},
            values={"status": RecurrenceStatus.EXHAUSTED.value, "next_execution": None},
        )
        db.commit()
        logger.info("Recurrence %s exhausted", recurrence_id, extra=log_context)
        return MaterializationResult(MaterializationOutcome.EXHAUSTED, recurrence_id)

    if occurrence > now:
        return MaterializationResult(MaterializationOutcome.NOT_DUE, recurrence_id)

    # 1. Claim
    following = compute_next_execution(rule, occurrence)
    if following is EXHAUSTED:
        values = {"next_execution": None, "status": RecurrenceStatus.EXHAUSTED.value}
    else:
        values = {"next_execution": following}
    claimed = conditional_update(
        db,
        Recurrence,
        recurrence_id,
        expected={"status": RecurrenceStatus.ACTIVE.value, "next_execution": occurrence},
        values=values,
    )
    if not claimed:
        db.rollback()
        logger.info(
            "Recurrence %s already claimed for %s", recurrence_id, occurrence, extra=log_context
        )
        return MaterializationResult(
            MaterializationOutcome.LOST_CLAIM, recurrence_id, occurrence=occurrence
        )

    # 2. Conflict and quota, serialized per company
    company_id = recurrence.company_id
    quota_service.lock_company(db, company_id)
    start_at, end_at = occurrence_window(occurrence, rule.duration_minutes)
    conflicting_ids = conflict_service.find_conflicts(
        db,
        company_id,
        start_at,
        end_at,
        team_id=recurrence.team_id,
        professional_id=recurrence.professional_id,
    )
    if conflicting_ids:
        note = _conflict_note(occurrence, conflicting_ids)
        recurrence.notes = f"{recurrence.notes}\n{note}" if recurrence.notes else note
        _check_deadline(deadline)
        db.commit()
        logger.info(
            "Skipped occurrence %s of recurrence %s: %d conflict(s)",
            occurrence,
            recurrence_id,
            len(conflicting_ids),
            extra=build_log_context(
                company_id=recurrence.company_id,
                recurrence_id=recurrence_id,
                outcome=MaterializationOutcome.SKIPPED_CONFLICT.value,
            ),
        )
        return MaterializationResult(
            MaterializationOutcome.SKIPPED_CONFLICT,
            recurrence_id,
            occurrence=occurrence,
            conflicting_ids=conflicting_ids,
        )

    quota = quota_service.check_quota(db, company_id, ResourceKind.APPOINTMENT, now)
    if not quota.allowed:
        db.rollback()
        logger.warning(
            "Appointment quota reached for company %s (%s/%s); recurrence %s will retry",
            company_id,
            quota.current,
            quota.limit,
            recurrence_id,
            extra=build_log_context(
                company_id=company_id,
                recurrence_id=recurrence_id,
                outcome=MaterializationOutcome.SKIPPED_QUOTA.value,
            ),
        )
        return MaterializationResult(
            MaterializationOutcome.SKIPPED_QUOTA,
            recurrence_id,
            occurrence=occurrence,
            limit=quota.limit,
            current=quota.current,
        )

    # 3. Create
    appointment = Appointment(
        company_id=company_id,
        customer_id=recurrence.customer_id,
        team_id=recurrence.team_id,
        professional_id=recurrence.professional_id,
        source_recurrence_id=recurrence_id,
        title=recurrence.title,
        address=recurrence.address or "",
        start_at=start_at,
        end_at=end_at,
        status=AppointmentStatus.SCHEDULED.value,
        kind=AppointmentKind.RECURRING.value,
        notes=recurrence.description,
    )
    db.add(appointment)
    recurrence.last_execution = occurrence
    db.flush()
    appointment_id = appointment.id
    _check_deadline(deadline)
    db.commit()

    logger.info(
        "Materialized recurrence %s occurrence %s as appointment %s",
        recurrence_id,
        occurrence,
        appointment_id,
        extra=build_log_context(
            company_id=company_id,
            recurrence_id=recurrence_id,
            appointment_id=appointment_id,
            outcome=MaterializationOutcome.CREATED.value,
        ),
    )
    return MaterializationResult(
        MaterializationOutcome.CREATED,
        recurrence_id,
        occurrence=occurrence,
        appointment_id=appointment_id,
    )

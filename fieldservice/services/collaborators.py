"""Outbound collaborators for cancellation side effects.

The cancellation coordinator only knows these two protocols. The default
implementations enqueue background jobs in the caller's database, and the
worker delivers them (see ``fieldservice.jobs.handlers``), so a slow or
unavailable collaborator never blocks or rolls back a cancellation.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fieldservice.db.enums import JobType
from fieldservice.db.models import Job
from fieldservice.services import job_service

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, event: dict[str, Any]) -> None: ...


class PaymentGateway(Protocol):
    def initiate_refund(self, cancellation_id: int) -> None: ...


def _enqueue(
    db: Session,
    company_id: int,
    job_type: JobType,
    payload: dict,
    idempotency_key: str | None,
) -> Job | None:
    try:
        return job_service.schedule_job(
            db,
            company_id=company_id,
            job_type=job_type,
            payload=payload,
            idempotency_key=idempotency_key,
        )
    except IntegrityError:
        db.rollback()
        logger.info("Job %s already queued", idempotency_key)
        return None


class JobQueueNotifier:
    """Queue an APPOINTMENT_NOTIFICATION job per event."""

    def __init__(self, db: Session):
        self.db = db

    def notify(self, event: dict[str, Any]) -> None:
        key = None
        if event.get("type") and event.get("cancellation_id"):
            key = f"notify:{event['type']}:{event['cancellation_id']}"
        job = _enqueue(
            self.db, event["company_id"], JobType.APPOINTMENT_NOTIFICATION, event, key
        )
        if job:
            logger.info("Queued notification job %s (%s)", job.id, event.get("type"))


class JobQueuePaymentGateway:
    """Queue a REFUND_REQUEST job; the payment provider answers via refund-status."""

    def __init__(self, db: Session, company_id: int):
        self.db = db
        self.company_id = company_id

    def initiate_refund(self, cancellation_id: int) -> None:
        job = _enqueue(
            self.db,
            self.company_id,
            JobType.REFUND_REQUEST,
            {"cancellation_id": cancellation_id, "company_id": self.company_id},
            f"refund:{cancellation_id}",
        )
        if job:
            logger.info(
                "Queued refund request job %s for cancellation %s", job.id, cancellation_id
            )

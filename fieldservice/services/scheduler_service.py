"""Scheduler service - the periodic pass that materializes due recurrences.

``run_due_recurrences`` is what the worker loop and the internal trigger
endpoint call. Each recurrence is materialized in its own session, so one
failing recurrence never blocks the rest and several worker processes can run
the pass at the same time (the claim decides who wins each occurrence).
"""

import logging
import time
from collections import Counter
from contextlib import AbstractContextManager
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.orm import Session

from fieldservice.core.config import settings
from fieldservice.core.errors import PersistenceError, SchedulingError
from fieldservice.core.structured_logging import build_log_context
from fieldservice.db.enums import RecurrenceStatus
from fieldservice.db.models import Recurrence
from fieldservice.services import materialization_service
from fieldservice.services.materialization_service import MaterializationOutcome

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


def select_due_recurrences(db: Session, now: datetime, limit: int = 100) -> list[int]:
    """Ids of active recurrences whose next_execution is at or before ``now``."""
    rows = (
        db.query(Recurrence.id)
        .filter(
            Recurrence.status == RecurrenceStatus.ACTIVE.value,
            Recurrence.next_execution.is_not(None),
            Recurrence.next_execution <= now,
        )
        .order_by(Recurrence.next_execution, Recurrence.id)
        .limit(limit)
        .all()
    )
    return [row.id for row in rows]


def _materialize_with_retry(
    session_factory: SessionFactory,
    recurrence_id: int,
    now: datetime,
    max_retries: int,
    backoff_seconds: float,
    timeout_seconds: float | None,
    sleep: Callable[[float], None],
) -> MaterializationOutcome | None:
    """Returns the outcome, or None when the retry budget ran out."""
    attempt = 0
    while True:
        attempt += 1
        deadline = time.monotonic() + timeout_seconds if timeout_seconds else None
        try:
            with session_factory() as db:
                result = materialization_service.materialize(
                    db, recurrence_id, now=now, deadline=deadline
                )
            return result.outcome
        except PersistenceError as exc:
            if attempt > max_retries:
                logger.error(
                    "Giving up on recurrence %s after %s attempts: %s",
                    recurrence_id,
                    attempt,
                    exc,
                    extra=build_log_context(recurrence_id=recurrence_id, outcome="failed"),
                )
                return None
            delay = backoff_seconds * (2 ** (attempt - 1))
            logger.warning(
                "Materialization of recurrence %s failed (attempt %s), retrying in %.2fs",
                recurrence_id,
                attempt,
                delay,
                extra=build_log_context(recurrence_id=recurrence_id),
            )
            sleep(delay)


def run_due_recurrences(
    session_factory: SessionFactory,
    now: datetime | None = None,
    *,
    batch_size: int | None = None,
    max_retries: int | None = None,
    backoff_seconds: float | None = None,
    timeout_seconds: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, int]:
    """
    Materialize every due recurrence once.

    PersistenceError is retried with exponential backoff; other scheduling
    errors (bad timezone, deleted company) are logged and the recurrence is
    skipped. Returns a count per outcome plus ``due`` and ``failed``.
    """
    now = now or datetime.now(timezone.utc)
    batch_size = batch_size or settings.SCHEDULER_BATCH_SIZE
    max_retries = settings.SCHEDULER_MAX_RETRIES if max_retries is None else max_retries
    backoff_seconds = (
        settings.SCHEDULER_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
    )
    if timeout_seconds is None:
        timeout_seconds = settings.MATERIALIZATION_TIMEOUT_SECONDS

    with session_factory() as db:
        due_ids = select_due_recurrences(db, now, limit=batch_size)

    counts: Counter[str] = Counter()
    for recurrence_id in due_ids:
        try:
            outcome = _materialize_with_retry(
                session_factory,
                recurrence_id,
                now,
                max_retries,
                backoff_seconds,
                timeout_seconds,
                sleep,
            )
        except SchedulingError as exc:
            logger.error(
                "Skipping recurrence %s: %s",
                recurrence_id,
                exc,
                extra=build_log_context(recurrence_id=recurrence_id, outcome="error"),
            )
            outcome = None
        counts[outcome.value if outcome else "failed"] += 1

    summary = {"due": len(due_ids), "failed": 0}
    summary.update({outcome.value: 0 for outcome in MaterializationOutcome})
    summary.update(counts)
    if due_ids:
        logger.info("Scheduler pass complete: %s", summary)
    return summary

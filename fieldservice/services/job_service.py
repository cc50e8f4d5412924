"""Job service - outbound collaborator jobs (notifications, refund requests).

Jobs are claimed with SELECT ... FOR UPDATE SKIP LOCKED and flipped to
running in the same transaction, so concurrent workers take disjoint
batches. Failed jobs go back to pending with an exponential delay until
max_attempts is reached.
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from fieldservice.db.enums import JobStatus, JobType
from fieldservice.db.models import Job

RETRY_BASE_DELAY = timedelta(seconds=30)


def schedule_job(
    db: Session,
    company_id: int,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
    idempotency_key: str | None = None,
    max_attempts: int = 3,
) -> Job:
    """
    Queue a job for the worker.

    A duplicate idempotency_key raises IntegrityError; callers that enqueue
    from retried code paths catch it and treat the job as already queued.
    """
    job = Job(
        company_id=company_id,
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or datetime.now(timezone.utc),
        status=JobStatus.PENDING.value,
        max_attempts=max_attempts,
        idempotency_key=idempotency_key,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def get_pending_jobs(db: Session, limit: int = 10, now: datetime | None = None) -> list[Job]:
    """Pending jobs whose run_at has passed, oldest first. Read-only."""
    now = now or datetime.now(timezone.utc)
    return (
        db.query(Job)
        .filter(Job.status == JobStatus.PENDING.value, Job.run_at <= now)
        .order_by(Job.run_at, Job.id)
        .limit(limit)
        .all()
    )


def claim_pending_jobs(db: Session, limit: int = 10, now: datetime | None = None) -> list[Job]:
    """
    Lock a batch of due jobs and mark them running (attempts + 1).

    SKIP LOCKED is a no-op on SQLite, where writers are serialized anyway.
    """
    now = now or datetime.now(timezone.utc)
    jobs = (
        db.query(Job)
        .filter(Job.status == JobStatus.PENDING.value, Job.run_at <= now)
        .order_by(Job.run_at, Job.id)
        .limit(limit)
        .with_for_update(skip_locked=True)
        .all()
    )
    for job in jobs:
        job.status = JobStatus.RUNNING.value
        job.attempts += 1
    db.commit()
    return jobs


def mark_job_completed(db: Session, job: Job) -> Job:
    job.status = JobStatus.COMPLETED.value
    job.completed_at = datetime.now(timezone.utc)
    job.last_error = None
    db.commit()
    db.refresh(job)
    return job


def mark_job_failed(db: Session, job: Job, error: str, now: datetime | None = None) -> Job:
    """
    Record a failure.

    Back to pending with run_at pushed out (30s, 60s, 120s, ...) while
    attempts remain; failed for good after max_attempts.
    """
    now = now or datetime.now(timezone.utc)
    job.last_error = error[:2000]
    if job.attempts < job.max_attempts:
        job.status = JobStatus.PENDING.value
        job.run_at = now + RETRY_BASE_DELAY * (2 ** max(job.attempts - 1, 0))
    else:
        job.status = JobStatus.FAILED.value
    db.commit()
    db.refresh(job)
    return job

"""
Background worker: scheduler trigger, subscription sweep and job delivery.

Usage:
    python -m fieldservice.worker

Each tick the worker:
1. expires/renews subscriptions whose period ended,
2. materializes due recurrences (bounded by a pass timeout),
3. delivers pending notification/refund jobs.

Several workers may run at once: recurrence claims and SKIP LOCKED job
selection keep them from doing the same work twice.
"""

import asyncio
import logging
from datetime import datetime, timezone

from fieldservice.core.config import settings
from fieldservice.core.structured_logging import build_log_context
from fieldservice.db.session import SessionLocal
from fieldservice.jobs.registry import resolve_job_handler
from fieldservice.services import job_service, scheduler_service, subscription_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# Upper bound for one scheduler pass; each materialization has its own deadline
PASS_TIMEOUT_SECONDS = settings.MATERIALIZATION_TIMEOUT_SECONDS * max(
    settings.SCHEDULER_BATCH_SIZE, 1
)

# Outcome counts of the most recent scheduler pass (reported by worker_service)
last_pass: dict = {}

# Thread-backed task of the pass in flight, if any
_running_pass: asyncio.Future | None = None


async def process_job(db, job) -> None:
    """Process a single job based on its type."""
    logger.info(
        "Processing job %s (type=%s, attempt=%s)", job.id, job.job_type, job.attempts
    )
    handler = resolve_job_handler(job.job_type)
    await handler(db, job)


async def process_pending_jobs(db) -> int:
    """Run one batch of due jobs. Returns how many were picked up."""
    jobs = job_service.claim_pending_jobs(db, limit=settings.JOB_BATCH_SIZE)
    if jobs:
        logger.info("Claimed %s pending jobs", len(jobs))

    for job in jobs:
        try:
            await process_job(db, job)
            job_service.mark_job_completed(db, job)
            logger.info(
                "Job %s completed successfully",
                job.id,
                extra=build_log_context(company_id=job.company_id, job_id=job.id),
            )
        except Exception as e:
            db.rollback()
            job_service.mark_job_failed(db, job, str(e))
            logger.error(
                "Job %s failed: %s",
                job.id,
                type(e).__name__,
                extra=build_log_context(company_id=job.company_id, job_id=job.id),
            )
    return len(jobs)


def _record_pass(task: asyncio.Future) -> None:
    if task.cancelled() or task.exception() is not None:
        return
    last_pass.clear()
    last_pass.update(task.result())
    last_pass["finished_at"] = datetime.now(timezone.utc).isoformat()


def _log_late_failure(task: asyncio.Future) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error(
            "Scheduler pass failed after its timeout: %s", type(task.exception()).__name__
        )


async def run_scheduler_pass() -> dict[str, int] | None:
    """
    Materialize due recurrences off the event loop.

    A pass that outlives PASS_TIMEOUT_SECONDS keeps running in its thread;
    later ticks skip the scheduler until it finishes. Returns None for a
    skipped tick.
    """
    global _running_pass
    if _running_pass is not None and not _running_pass.done():
        logger.warning("Previous scheduler pass still running; skipping this tick")
        return None

    task = asyncio.ensure_future(
        asyncio.to_thread(scheduler_service.run_due_recurrences, SessionLocal)
    )
    task.add_done_callback(_record_pass)
    _running_pass = task
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout=PASS_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        task.add_done_callback(_log_late_failure)
        raise


async def worker_loop() -> None:
    """Main worker loop - polls on a fixed interval until cancelled."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)",
        settings.SCHEDULER_POLL_INTERVAL_SECONDS,
        settings.SCHEDULER_BATCH_SIZE,
    )
    if not settings.NOTIFICATION_WEBHOOK_URL:
        logger.warning("NOTIFICATION_WEBHOOK_URL not set - notifications will be logged only")
    if not settings.PAYMENTS_WEBHOOK_URL:
        logger.warning("PAYMENTS_WEBHOOK_URL not set - refund requests will be logged only")

    while True:
        with SessionLocal() as db:
            try:
                swept = subscription_service.expire_subscriptions(db)
                if swept["expired"] or swept["renewed"]:
                    logger.info("Subscription sweep: %s", swept)
            except Exception as e:
                db.rollback()
                logger.error("Subscription sweep failed: %s", type(e).__name__)

        try:
            await run_scheduler_pass()
        except asyncio.TimeoutError:
            logger.warning(
                "Scheduler pass still running after %ss; next ticks wait for it",
                PASS_TIMEOUT_SECONDS,
            )
        except Exception:
            logger.exception("Error in scheduler pass")

        with SessionLocal() as db:
            try:
                await process_pending_jobs(db)
            except Exception as e:
                logger.error("Error in job processing: %s", e)

        await asyncio.sleep(settings.SCHEDULER_POLL_INTERVAL_SECONDS)


def main() -> None:
    asyncio.run(worker_loop())


if __name__ == "__main__":
    main()

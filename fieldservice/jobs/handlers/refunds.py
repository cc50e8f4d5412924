"""Refund request job handlers."""

from __future__ import annotations

import logging

from fieldservice.core.config import settings
from fieldservice.db.enums import RefundStatus
from fieldservice.db.models import Cancellation
from fieldservice.jobs.utils import post_json, safe_url

logger = logging.getLogger(__name__)


async def process_refund_request(db, job) -> None:
    """
    Ask the payment provider to refund a cancelled appointment.

    The provider reports the result through the refund-status endpoint; this
    handler only initiates. Cancellations no longer pending are skipped.
    """
    logger.info("Processing refund request job %s", job.id)
    cancellation_id = (job.payload or {}).get("cancellation_id")
    if not cancellation_id:
        raise ValueError("Missing cancellation_id in refund payload")

    cancellation = (
        db.query(Cancellation)
        .filter(
            Cancellation.id == int(cancellation_id),
            Cancellation.company_id == job.company_id,
        )
        .first()
    )
    if not cancellation:
        raise ValueError(f"Cancellation {cancellation_id} not found")
    if cancellation.refund_status != RefundStatus.PENDING.value:
        logger.info(
            "Refund for cancellation %s already %s; skipping",
            cancellation.id,
            cancellation.refund_status,
        )
        return

    url = settings.PAYMENTS_WEBHOOK_URL
    if not url:
        logger.info("[DRY RUN] Refund request skipped for cancellation %s", cancellation.id)
        return

    body = {
        "cancellation_id": cancellation.id,
        "appointment_id": cancellation.appointment_id,
        "company_id": cancellation.company_id,
        "customer_id": cancellation.customer_id,
        "cancelled_at": cancellation.cancelled_at.isoformat(),
    }
    try:
        await post_json(url, body, headers={"Idempotency-Key": f"refund:{cancellation.id}"})
    except Exception as e:
        logger.error("Refund request failed: %s (%s)", safe_url(url), type(e).__name__)
        raise
    logger.info("Refund requested for cancellation %s", cancellation.id)

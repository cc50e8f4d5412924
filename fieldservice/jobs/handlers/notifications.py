"""Appointment notification job handlers."""

from __future__ import annotations

import logging

from fieldservice.core.config import settings
from fieldservice.jobs.utils import post_json, safe_url

logger = logging.getLogger(__name__)


async def process_appointment_notification(db, job) -> None:
    """Deliver an appointment event to the notification webhook."""
    logger.info("Processing appointment notification job %s", job.id)
    payload = job.payload or {}
    event_type = payload.get("type")
    if not event_type:
        raise ValueError("Missing event type in notification payload")

    url = settings.NOTIFICATION_WEBHOOK_URL
    if not url:
        logger.info("[DRY RUN] Notification %s skipped for job %s", event_type, job.id)
        return

    try:
        await post_json(url, payload, headers={"X-Event-Type": event_type})
    except Exception as e:
        logger.error(
            "Notification delivery failed: %s (%s)",
            safe_url(url),
            type(e).__name__,
        )
        raise
    logger.info("Notification %s delivered to %s", event_type, safe_url(url))

"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from fieldservice.db.enums import JobType
from fieldservice.jobs.handlers import notifications, refunds

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.APPOINTMENT_NOTIFICATION.value: notifications.process_appointment_notification,
    JobType.REFUND_REQUEST.value: refunds.process_refund_request,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler

"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    company_id: int | None = None,
    recurrence_id: int | None = None,
    appointment_id: int | None = None,
    cancellation_id: int | None = None,
    job_id: int | None = None,
    outcome: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict.

    Only ids and outcome labels are included; customer names, addresses and
    free-text reasons never reach the logs.
    """
    context: dict[str, Any] = {}
    if company_id is not None:
        context["company_id"] = company_id
    if recurrence_id is not None:
        context["recurrence_id"] = recurrence_id
    if appointment_id is not None:
        context["appointment_id"] = appointment_id
    if cancellation_id is not None:
        context["cancellation_id"] = cancellation_id
    if job_id is not None:
        context["job_id"] = job_id
    if outcome:
        context["outcome"] = outcome
    return context


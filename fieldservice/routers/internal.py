"""
Internal trigger for the recurrence scheduler.

Requests must carry the shared X-Internal-Secret.
Call from an external cron when the worker process is not running.
"""

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from fieldservice.core.config import settings
from fieldservice.core.deps import get_session_factory
from fieldservice.services import scheduler_service
from fieldservice.services.scheduler_service import SessionFactory

router = APIRouter(prefix="/internal/scheduled", tags=["internal"])


def verify_internal_secret(x_internal_secret: str = Header(...)):
    """403 unless the header matches INTERNAL_SECRET; 501 when none is configured."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if x_internal_secret != expected:
        raise HTTPException(status_code=403, detail="Invalid internal secret")


class RunDueRecurrencesResponse(BaseModel):
    due: int
    created: int
    skipped_conflict: int
    skipped_quota: int
    exhausted: int
    not_due: int
    lost_claim: int
    failed: int


@router.post("/run-due-recurrences", response_model=RunDueRecurrencesResponse)
def run_due_recurrences(
    x_internal_secret: str = Header(...),
    session_factory: SessionFactory = Depends(get_session_factory),
):
    """Run one scheduler pass synchronously and report the outcome counts."""
    verify_internal_secret(x_internal_secret)
    summary = scheduler_service.run_due_recurrences(session_factory)
    return RunDueRecurrencesResponse(**summary)

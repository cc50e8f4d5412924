"""Plans router - quota usage for the current company."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fieldservice.core.deps import get_company_id, get_db
from fieldservice.schemas.plan import PlanUsageResponse
from fieldservice.services import quota_service

router = APIRouter()


@router.get("/usage", response_model=PlanUsageResponse)
def get_plan_usage(
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """Limit, current count and remaining slots per resource kind."""
    return quota_service.get_usage(db, company_id)

"""Cancellations router - cancellation history and refund status callbacks."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fieldservice.core.deps import get_company_id, get_db
from fieldservice.core.errors import ValidationError
from fieldservice.db.enums import RefundStatus, coerce_enum
from fieldservice.schemas.cancellation import (
    CancellationListResponse,
    CancellationRead,
    RefundStatusUpdate,
)
from fieldservice.services import cancellation_service
from fieldservice.utils.pagination import PaginationParams, get_pagination

router = APIRouter()


@router.get("", response_model=CancellationListResponse)
def list_cancellations(
    refund_status: str | None = None,
    pagination: PaginationParams = Depends(get_pagination),
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    status_filter = None
    if refund_status:
        try:
            status_filter = coerce_enum(RefundStatus, refund_status)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

    items, total = cancellation_service.list_cancellations(
        db,
        company_id,
        refund_status=status_filter,
        limit=pagination.per_page,
        offset=pagination.offset,
    )
    return CancellationListResponse(
        items=[CancellationRead.model_validate(c) for c in items],
        **pagination.meta(total),
    )


@router.get("/{cancellation_id}", response_model=CancellationRead)
def get_cancellation(
    cancellation_id: int,
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    return cancellation_service.get_cancellation(db, company_id, cancellation_id)


@router.post("/{cancellation_id}/refund-status", response_model=CancellationRead)
def update_refund_status(
    cancellation_id: int,
    data: RefundStatusUpdate,
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """Payment provider result: pending → processed | denied."""
    return cancellation_service.update_refund_status(
        db, company_id, cancellation_id, data.status, notes=data.notes
    )

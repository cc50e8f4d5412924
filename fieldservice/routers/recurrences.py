"""Recurrences router - recurring-service rules and their lifecycle."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fieldservice.core.deps import get_company_id, get_db
from fieldservice.core.errors import ValidationError
from fieldservice.db.enums import RecurrenceStatus, coerce_enum
from fieldservice.schemas.recurrence import (
    RecurrenceCreate,
    RecurrenceListResponse,
    RecurrencePreview,
    RecurrenceRead,
)
from fieldservice.services import recurrence_service
from fieldservice.utils.pagination import PaginationParams, get_pagination

router = APIRouter()


@router.post("", response_model=RecurrenceRead, status_code=201)
def create_recurrence(
    data: RecurrenceCreate,
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """Create a recurrence; its first next_execution is computed immediately."""
    return recurrence_service.create_recurrence(db, company_id, **data.model_dump())


@router.get("", response_model=RecurrenceListResponse)
def list_recurrences(
    status: str | None = Query(None, description="active, paused, cancelled, exhausted"),
    team_id: int | None = None,
    customer_id: int | None = None,
    pagination: PaginationParams = Depends(get_pagination),
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    status_filter = None
    if status:
        try:
            status_filter = coerce_enum(RecurrenceStatus, status)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

    items, total = recurrence_service.list_recurrences(
        db,
        company_id,
        status=status_filter,
        team_id=team_id,
        customer_id=customer_id,
        limit=pagination.per_page,
        offset=pagination.offset,
    )
    return RecurrenceListResponse(
        items=[RecurrenceRead.model_validate(r) for r in items],
        **pagination.meta(total),
    )


@router.get("/{recurrence_id}", response_model=RecurrenceRead)
def get_recurrence(
    recurrence_id: int,
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    return recurrence_service.get_recurrence(db, company_id, recurrence_id)


@router.post("/{recurrence_id}/pause", response_model=RecurrenceRead)
def pause_recurrence(
    recurrence_id: int,
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    return recurrence_service.pause_recurrence(db, company_id, recurrence_id)


@router.post("/{recurrence_id}/resume", response_model=RecurrenceRead)
def resume_recurrence(
    recurrence_id: int,
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """Resume from now; occurrences missed while paused are not back-filled."""
    return recurrence_service.resume_recurrence(db, company_id, recurrence_id)


@router.post("/{recurrence_id}/cancel", response_model=RecurrenceRead)
def cancel_recurrence(
    recurrence_id: int,
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """Stop future occurrences. Existing appointments are untouched."""
    return recurrence_service.cancel_recurrence(db, company_id, recurrence_id)


@router.get("/{recurrence_id}/preview", response_model=RecurrencePreview)
def preview_recurrence(
    recurrence_id: int,
    count: int = Query(5, ge=1, le=recurrence_service.MAX_PREVIEW),
    company_id: int = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    occurrences = recurrence_service.preview_recurrence(db, company_id, recurrence_id, count)
    recurrence = recurrence_service.get_recurrence(db, company_id, recurrence_id)
    return RecurrencePreview(
        recurrence_id=recurrence_id,
        status=coerce_enum(RecurrenceStatus, recurrence.status),
        occurrences=occurrences,
    )

"""Cancellation schemas - Pydantic models for cancellations and refunds."""

from datetime import datetime

from pydantic import BaseModel, field_validator

from fieldservice.db.enums import RefundStatus, coerce_enum


class CancellationRead(BaseModel):
    id: int
    appointment_id: int
    company_id: int
    customer_id: int | None
    reason: str
    cancelled_by_id: int
    cancelled_by_role: str
    cancelled_at: datetime
    refund_status: str
    notes: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class CancellationListResponse(BaseModel):
    items: list[CancellationRead]
    total: int
    page: int
    per_page: int
    pages: int


class RefundStatusUpdate(BaseModel):
    """Payment collaborator callback."""
    status: RefundStatus
    notes: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value):
        return coerce_enum(RefundStatus, value)

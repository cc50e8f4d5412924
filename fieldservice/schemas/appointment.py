"""Appointment schemas - Pydantic models for the appointments API."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from fieldservice.db.enums import AppointmentStatus, CancelledByRole, coerce_enum


class AppointmentCreate(BaseModel):
    """Schema for creating a one-time appointment."""
    title: str = Field(..., min_length=1, max_length=200)
    start_at: datetime = Field(..., description="ISO 8601 with offset")
    end_at: datetime = Field(..., description="ISO 8601 with offset")
    customer_id: int | None = None
    team_id: int | None = None
    professional_id: int | None = None
    address: str | None = None
    notes: str | None = None


class AppointmentRead(BaseModel):
    id: int
    company_id: int
    customer_id: int | None
    team_id: int | None
    professional_id: int | None
    source_recurrence_id: int | None
    title: str
    address: str
    start_at: datetime
    end_at: datetime
    status: str
    kind: str
    notes: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    items: list[AppointmentRead]
    total: int
    page: int
    per_page: int
    pages: int


class AppointmentStatusUpdate(BaseModel):
    """Forward status transition (confirmed, in_progress, completed)."""
    status: AppointmentStatus

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value):
        return coerce_enum(AppointmentStatus, value)


class AppointmentCancel(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)
    cancelled_by_id: int
    cancelled_by_role: CancelledByRole
    notes: str | None = None

    @field_validator("cancelled_by_role", mode="before")
    @classmethod
    def _parse_role(cls, value):
        return coerce_enum(CancelledByRole, value)

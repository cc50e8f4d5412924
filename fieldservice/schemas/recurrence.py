"""Recurrence schemas - Pydantic models for the recurrences API."""

from datetime import date, datetime, time

from pydantic import BaseModel, Field, field_validator

from fieldservice.db.enums import RecurrenceFrequency, RecurrenceStatus, coerce_enum


class RecurrenceCreate(BaseModel):
    """Schema for creating a recurrence. Frequency accepts legacy codes too."""
    title: str = Field(..., min_length=1, max_length=200)
    frequency: RecurrenceFrequency
    day_of_week: int | None = Field(None, ge=0, le=6, description="Monday=0, Sunday=6")
    day_of_month: int | None = Field(None, ge=1, le=31)
    time_of_day: time = Field(..., description="Wall-clock time in the company timezone")
    duration_minutes: int = Field(..., gt=0, le=1440)
    start_date: date
    end_date: date | None = Field(None, description="Inclusive")
    customer_id: int | None = None
    team_id: int | None = None
    professional_id: int | None = None
    description: str | None = None
    address: str | None = None

    @field_validator("frequency", mode="before")
    @classmethod
    def _parse_frequency(cls, value):
        return coerce_enum(RecurrenceFrequency, value)


class RecurrenceRead(BaseModel):
    id: int
    company_id: int
    customer_id: int | None
    team_id: int | None
    professional_id: int | None
    title: str
    description: str | None
    address: str | None
    frequency: str
    day_of_week: int | None
    day_of_month: int | None
    time_of_day: time
    duration_minutes: int
    start_date: date
    end_date: date | None
    status: str
    last_execution: datetime | None
    next_execution: datetime | None
    notes: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RecurrenceListResponse(BaseModel):
    items: list[RecurrenceRead]
    total: int
    page: int
    per_page: int
    pages: int


class RecurrencePreview(BaseModel):
    recurrence_id: int
    status: RecurrenceStatus
    occurrences: list[datetime]

"""SQLAlchemy ORM model for recurring-service rules."""

from __future__ import annotations

from datetime import date, datetime, time

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from fieldservice.db.base import Base
from fieldservice.db.enums import DEFAULT_RECURRENCE_STATUS


class Recurrence(Base):
    """
    Recurring-service rule (e.g., "every other Tuesday at 09:00 for 2h").

    Uses Python weekday numbering for day_of_week: Monday=0, Sunday=6.
    next_execution is the claim token for the scheduler: workers advance it
    with a conditional update, so only one of them materializes a given
    occurrence.
    """

    __tablename__ = "recurrences"
    __table_args__ = (
        Index("idx_recurrences_due", "status", "next_execution"),
        Index("idx_recurrences_company", "company_id", "status"),
        CheckConstraint(
            "day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)",
            name="ck_recurrence_day_of_week",
        ),
        CheckConstraint(
            "day_of_month IS NULL OR (day_of_month >= 1 AND day_of_month <= 31)",
            name="ck_recurrence_day_of_month",
        ),
        CheckConstraint("duration_minutes > 0", name="ck_recurrence_duration"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False
    )
    customer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=True
    )
    team_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True
    )
    professional_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("professionals.id", ondelete="SET NULL"), nullable=True
    )

    # Copied onto every materialized appointment
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Rule
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    day_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_of_day: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)  # Inclusive

    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_RECURRENCE_STATUS.value, nullable=False
    )
    last_execution: Mapped[datetime | None] = mapped_column(nullable=True)
    next_execution: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

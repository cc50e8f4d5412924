"""SQLAlchemy ORM models for appointments and cancellations."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from fieldservice.db.base import Base
from fieldservice.db.enums import (
    DEFAULT_APPOINTMENT_STATUS,
    DEFAULT_REFUND_STATUS,
    AppointmentKind,
)


class Appointment(Base):
    """
    A concrete service visit.

    Created directly (one_time) or materialized from a recurrence
    (recurring, with source_recurrence_id set). Occupies the half-open
    window [start_at, end_at).
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_company_start", "company_id", "start_at"),
        Index("idx_appointments_team_window", "company_id", "team_id", "start_at", "end_at"),
        Index(
            "idx_appointments_professional_window",
            "company_id",
            "professional_id",
            "start_at",
            "end_at",
        ),
        Index("idx_appointments_recurrence", "source_recurrence_id"),
        CheckConstraint("start_at < end_at", name="ck_appointment_window"),
        CheckConstraint(
            f"(kind = '{AppointmentKind.RECURRING.value}') = (source_recurrence_id IS NOT NULL)",
            name="ck_appointment_recurrence_source",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False
    )
    customer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=True
    )
    team_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("teams.id", ondelete="RESTRICT"), nullable=True
    )
    professional_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("professionals.id", ondelete="RESTRICT"), nullable=True
    )
    source_recurrence_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("recurrences.id", ondelete="RESTRICT"), nullable=True
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str] = mapped_column(Text, default="", nullable=False)
    start_at: Mapped[datetime] = mapped_column(nullable=False)
    end_at: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_APPOINTMENT_STATUS.value, nullable=False
    )
    kind: Mapped[str] = mapped_column(
        String(20), default=AppointmentKind.ONE_TIME.value, nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )


class Cancellation(Base):
    """
    Cancellation record, created exactly once per cancelled appointment.

    Immutable after creation except for refund_status, which the payment
    collaborator moves forward.
    """

    __tablename__ = "cancellations"
    __table_args__ = (
        UniqueConstraint("appointment_id", name="uq_cancellation_appointment"),
        Index("idx_cancellations_company", "company_id", "cancelled_at"),
        Index("idx_cancellations_refund", "company_id", "refund_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    appointment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("appointments.id", ondelete="RESTRICT"), nullable=False
    )
    company_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False
    )
    customer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=True
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    cancelled_by_id: Mapped[int] = mapped_column(Integer, nullable=False)
    cancelled_by_role: Mapped[str] = mapped_column(String(20), nullable=False)
    cancelled_at: Mapped[datetime] = mapped_column(nullable=False)
    refund_status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_REFUND_STATUS.value, nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

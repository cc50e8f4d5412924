"""SQLAlchemy ORM models for plans and company subscriptions."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from fieldservice.db.base import Base
from fieldservice.db.enums import PlanStatus, SubscriptionStatus


class Plan(Base):
    """
    Subscription plan with per-resource limits.

    A NULL limit means unlimited for that resource kind.
    """

    __tablename__ = "plans"
    __table_args__ = (
        CheckConstraint("duration_days > 0", name="ck_plan_duration_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"), nullable=False)
    features: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), default=list, nullable=False
    )

    professionals_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    teams_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    customers_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    appointments_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)

    duration_days: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=PlanStatus.ACTIVE.value, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )


class PlanSubscription(Base):
    """A company's subscription period on a plan."""

    __tablename__ = "plan_subscriptions"
    __table_args__ = (
        Index("idx_plan_subscriptions_company_status", "company_id", "status"),
        Index("idx_plan_subscriptions_expiry", "status", "end_date"),
        CheckConstraint("start_date < end_date", name="ck_subscription_period"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    plan_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("plans.id", ondelete="RESTRICT"), nullable=False
    )
    start_date: Mapped[datetime] = mapped_column(nullable=False)
    end_date: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=SubscriptionStatus.ACTIVE.value, nullable=False
    )
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

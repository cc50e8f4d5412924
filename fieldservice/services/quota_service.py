"""Quota service - plan limit enforcement per company.

Every quota-guarded creation follows the same shape inside one transaction:

    lock_company(db, company_id)
    ensure_quota(db, company_id, kind)
    db.add(...)
    db.commit()

The company row lock serializes concurrent creations for the tenant so two
writers can never both read the same count and both pass the limit.
"""

from datetime import datetime, timezone
from typing import NamedTuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fieldservice.core.errors import NotFoundError, QuotaExceededError
from fieldservice.db.enums import (
    AppointmentStatus,
    EntityStatus,
    ResourceKind,
    SubscriptionStatus,
)
from fieldservice.db.models import (
    Appointment,
    Company,
    Customer,
    Plan,
    PlanSubscription,
    Professional,
    Team,
)


class QuotaCheck(NamedTuple):
    """Outcome of a quota check. ``limit`` None means unlimited."""

    allowed: bool
    limit: int | None
    current: int

    @property
    def remaining(self) -> int | None:
        if self.limit is None:
            return None
        return max(self.limit - self.current, 0)


_LIMIT_COLUMNS = {
    ResourceKind.CUSTOMER: "customers_limit",
    ResourceKind.PROFESSIONAL: "professionals_limit",
    ResourceKind.TEAM: "teams_limit",
    ResourceKind.APPOINTMENT: "appointments_limit",
}


def lock_company(db: Session, company_id: int) -> Company:
    """
    Take the per-company row lock for the rest of the transaction.

    SELECT ... FOR UPDATE on PostgreSQL; SQLite serializes writers at the
    database level and ignores the clause.
    """
    company = db.execute(
        select(Company).where(Company.id == company_id).with_for_update()
    ).scalar_one_or_none()
    if not company:
        raise NotFoundError("Company", company_id)
    return company


def get_active_subscription(
    db: Session,
    company_id: int,
    now: datetime | None = None,
) -> PlanSubscription | None:
    """The subscription that is active and whose period contains ``now``."""
    now = now or datetime.now(timezone.utc)
    return (
        db.query(PlanSubscription)
        .filter(
            PlanSubscription.company_id == company_id,
            PlanSubscription.status == SubscriptionStatus.ACTIVE.value,
            PlanSubscription.start_date <= now,
            PlanSubscription.end_date > now,
        )
        .order_by(PlanSubscription.start_date.desc())
        .first()
    )


def get_active_plan(
    db: Session,
    company_id: int,
    now: datetime | None = None,
) -> Plan | None:
    subscription = get_active_subscription(db, company_id, now)
    if not subscription:
        return None
    return db.query(Plan).filter(Plan.id == subscription.plan_id).first()


def count_active(db: Session, company_id: int, kind: ResourceKind) -> int:
    """Count resources of ``kind`` that occupy quota for the company."""
    if kind == ResourceKind.APPOINTMENT:
        return db.query(func.count(Appointment.id)).filter(
            Appointment.company_id == company_id,
            Appointment.status != AppointmentStatus.CANCELLED.value,
        ).scalar() or 0

    model = {
        ResourceKind.CUSTOMER: Customer,
        ResourceKind.PROFESSIONAL: Professional,
        ResourceKind.TEAM: Team,
    }[kind]
    return db.query(func.count(model.id)).filter(
        model.company_id == company_id,
        model.status == EntityStatus.ACTIVE.value,
    ).scalar() or 0


def check_quota(
    db: Session,
    company_id: int,
    kind: ResourceKind,
    now: datetime | None = None,
) -> QuotaCheck:
    """
    Would creating one more ``kind`` stay within the active plan?

    A company without an active subscription has a limit of 0. A NULL plan
    limit is unlimited and skips counting.
    """
    plan = get_active_plan(db, company_id, now)
    if plan is None:
        limit = 0
    else:
        limit = getattr(plan, _LIMIT_COLUMNS[kind])
        if limit is None:
            return QuotaCheck(allowed=True, limit=None, current=0)

    current = count_active(db, company_id, kind)
    return QuotaCheck(allowed=current + 1 <= limit, limit=limit, current=current)


def ensure_quota(
    db: Session,
    company_id: int,
    kind: ResourceKind,
    now: datetime | None = None,
) -> QuotaCheck:
    """check_quota that raises QuotaExceededError on failure."""
    result = check_quota(db, company_id, kind, now)
    if not result.allowed:
        raise QuotaExceededError(kind.value, result.limit, result.current)
    return result


def get_usage(db: Session, company_id: int, now: datetime | None = None) -> dict:
    """Per-kind limit/current/remaining for the company's active plan."""
    plan = get_active_plan(db, company_id, now)
    usage = {}
    for kind, column in _LIMIT_COLUMNS.items():
        limit = 0 if plan is None else getattr(plan, column)
        current = count_active(db, company_id, kind)
        usage[kind.value] = {
            "limit": limit,
            "current": current,
            "remaining": None if limit is None else max(limit - current, 0),
        }
    return {
        "plan_id": plan.id if plan else None,
        "plan_name": plan.name if plan else None,
        "usage": usage,
    }

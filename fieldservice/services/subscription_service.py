"""Subscription service - plans and company subscription periods.

At most one subscription per company is active at any instant: subscribing
cancels the current one first, under the company lock. The worker runs
``expire_subscriptions`` to close or renew periods that have ended.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from fieldservice.core.errors import InvalidStateTransition, NotFoundError, ValidationError
from fieldservice.core.structured_logging import build_log_context
from fieldservice.db.enums import PlanStatus, SubscriptionStatus
from fieldservice.db.models import Company, Plan, PlanSubscription
from fieldservice.services import quota_service

logger = logging.getLogger(__name__)


def create_plan(
    db: Session,
    name: str,
    *,
    price: Decimal | int | str = 0,
    features: list[str] | None = None,
    customers_limit: int | None = None,
    professionals_limit: int | None = None,
    teams_limit: int | None = None,
    appointments_limit: int | None = None,
    duration_days: int = 30,
) -> Plan:
    """Create a plan. Limits left as None are unlimited."""
    if not name or not name.strip():
        raise ValidationError("Plan name is required")
    if duration_days <= 0:
        raise ValidationError("duration_days must be positive")
    for label, limit in (
        ("customers_limit", customers_limit),
        ("professionals_limit", professionals_limit),
        ("teams_limit", teams_limit),
        ("appointments_limit", appointments_limit),
    ):
        if limit is not None and limit < 0:
            raise ValidationError(f"{label} cannot be negative")

    plan = Plan(
        name=name.strip(),
        price=Decimal(str(price)),
        features=list(features or []),
        customers_limit=customers_limit,
        professionals_limit=professionals_limit,
        teams_limit=teams_limit,
        appointments_limit=appointments_limit,
        duration_days=duration_days,
        status=PlanStatus.ACTIVE.value,
    )
    db.add(plan)
    db.commit()
    db.refresh(plan)
    return plan


def get_plan(db: Session, plan_id: int) -> Plan:
    plan = db.query(Plan).filter(Plan.id == plan_id).first()
    if not plan:
        raise NotFoundError("Plan", plan_id)
    return plan


def subscribe(
    db: Session,
    company_id: int,
    plan_id: int,
    start: datetime | None = None,
    auto_renew: bool = False,
) -> PlanSubscription:
    """Start a subscription period, replacing any active one."""
    start = start or datetime.now(timezone.utc)
    plan = get_plan(db, plan_id)
    if plan.status != PlanStatus.ACTIVE.value:
        raise ValidationError(f"Plan {plan_id} is not active")

    company = quota_service.lock_company(db, company_id)
    current = (
        db.query(PlanSubscription)
        .filter(
            PlanSubscription.company_id == company_id,
            PlanSubscription.status == SubscriptionStatus.ACTIVE.value,
        )
        .all()
    )
    for subscription in current:
        subscription.status = SubscriptionStatus.CANCELLED.value

    subscription = PlanSubscription(
        company_id=company_id,
        plan_id=plan.id,
        start_date=start,
        end_date=start + timedelta(days=plan.duration_days),
        status=SubscriptionStatus.ACTIVE.value,
        auto_renew=auto_renew,
    )
    db.add(subscription)
    company.plan_id = plan.id
    db.commit()
    db.refresh(subscription)

    logger.info(
        "Company %s subscribed to plan %s until %s",
        company_id,
        plan.id,
        subscription.end_date,
        extra=build_log_context(company_id=company_id),
    )
    return subscription


def cancel_subscription(db: Session, company_id: int, subscription_id: int) -> PlanSubscription:
    subscription = (
        db.query(PlanSubscription)
        .filter(
            PlanSubscription.id == subscription_id,
            PlanSubscription.company_id == company_id,
        )
        .first()
    )
    if not subscription:
        raise NotFoundError("Subscription", subscription_id)
    if subscription.status != SubscriptionStatus.ACTIVE.value:
        raise InvalidStateTransition(
            "subscription", subscription.status, SubscriptionStatus.CANCELLED.value
        )

    company = quota_service.lock_company(db, company_id)
    subscription.status = SubscriptionStatus.CANCELLED.value
    if company.plan_id == subscription.plan_id:
        company.plan_id = None
    db.commit()
    db.refresh(subscription)
    return subscription


def expire_subscriptions(db: Session, now: datetime | None = None) -> dict[str, int]:
    """
    Close active subscriptions whose period has ended.

    Auto-renewing subscriptions on a still-active plan roll into a new period
    starting where the old one ended (repeated until it covers ``now``);
    everything else becomes expired and the company loses its plan.
    """
    now = now or datetime.now(timezone.utc)
    ended = (
        db.query(PlanSubscription)
        .filter(
            PlanSubscription.status == SubscriptionStatus.ACTIVE.value,
            PlanSubscription.end_date <= now,
        )
        .order_by(PlanSubscription.end_date, PlanSubscription.id)
        .all()
    )

    expired = 0
    renewed = 0
    for subscription in ended:
        company = db.query(Company).filter(Company.id == subscription.company_id).first()
        plan = db.query(Plan).filter(Plan.id == subscription.plan_id).first()
        subscription.status = SubscriptionStatus.EXPIRED.value
        renew = bool(
            subscription.auto_renew and plan and plan.status == PlanStatus.ACTIVE.value
        )

        if renew:
            period = timedelta(days=plan.duration_days)
            start = subscription.end_date
            while start + period <= now:
                start += period
            db.add(
                PlanSubscription(
                    company_id=subscription.company_id,
                    plan_id=plan.id,
                    start_date=start,
                    end_date=start + period,
                    status=SubscriptionStatus.ACTIVE.value,
                    auto_renew=True,
                )
            )
            renewed += 1
        else:
            if company and company.plan_id == subscription.plan_id:
                company.plan_id = None
            expired += 1

        logger.info(
            "Subscription %s ended (%s)",
            subscription.id,
            "renewed" if renew else "expired",
            extra=build_log_context(
                company_id=subscription.company_id, outcome="renewed" if renew else "expired"
            ),
        )

    if ended:
        db.commit()
    return {"expired": expired, "renewed": renewed}

"""Tests for plans, subscriptions and the expiry sweep."""

from datetime import datetime, timedelta, timezone

import pytest

from fieldservice.core.errors import InvalidStateTransition, ValidationError
from fieldservice.db.enums import PlanStatus, ResourceKind, SubscriptionStatus
from fieldservice.db.models import PlanSubscription
from fieldservice.services import quota_service, subscription_service

JAN_1 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def active_subscriptions(db, company_id):
    return (
        db.query(PlanSubscription)
        .filter(
            PlanSubscription.company_id == company_id,
            PlanSubscription.status == SubscriptionStatus.ACTIVE.value,
        )
        .all()
    )


def test_create_plan_with_limits(db):
    plan = subscription_service.create_plan(
        db, "Pro", price="49.90", features=["recurrences"], customers_limit=100
    )

    assert str(plan.price) == "49.90"
    assert plan.customers_limit == 100
    assert plan.teams_limit is None
    assert plan.features == ["recurrences"]


@pytest.mark.parametrize(
    "kwargs", [{"duration_days": 0}, {"customers_limit": -1}, {"name": " "}]
)
def test_create_plan_validation(db, kwargs):
    params = {"name": "Broken", **kwargs}
    with pytest.raises(ValidationError):
        subscription_service.create_plan(db, params.pop("name"), **params)


def test_subscribe_sets_period_from_plan_duration(db, company_factory):
    company = company_factory(name="Fresh")
    plan = subscription_service.create_plan(db, "Monthly", duration_days=30)

    subscription = subscription_service.subscribe(db, company.id, plan.id, start=JAN_1)

    assert subscription.end_date == JAN_1 + timedelta(days=30)
    db.refresh(company)
    assert company.plan_id == plan.id


def test_subscribing_again_replaces_active_subscription(db, company_factory):
    company = company_factory(name="Upgrader")
    basic = subscription_service.create_plan(db, "Basic", customers_limit=1)
    pro = subscription_service.create_plan(db, "Pro", customers_limit=10)
    now = datetime.now(timezone.utc)

    first = subscription_service.subscribe(db, company.id, basic.id, start=now)
    subscription_service.subscribe(db, company.id, pro.id, start=now)

    active = active_subscriptions(db, company.id)
    assert len(active) == 1
    assert active[0].plan_id == pro.id
    db.refresh(first)
    assert first.status == SubscriptionStatus.CANCELLED.value
    assert quota_service.check_quota(db, company.id, ResourceKind.CUSTOMER).limit == 10


def test_cannot_subscribe_to_inactive_plan(db, company_factory):
    company = company_factory(name="Late")
    plan = subscription_service.create_plan(db, "Legacy")
    plan.status = PlanStatus.INACTIVE.value
    db.commit()

    with pytest.raises(ValidationError):
        subscription_service.subscribe(db, company.id, plan.id)


def test_cancel_subscription_removes_quota(db, company_factory):
    company = company_factory(name="Leaving")
    plan = subscription_service.create_plan(db, "Basic")
    subscription = subscription_service.subscribe(db, company.id, plan.id)

    subscription_service.cancel_subscription(db, company.id, subscription.id)

    assert not quota_service.check_quota(db, company.id, ResourceKind.TEAM).allowed
    with pytest.raises(InvalidStateTransition):
        subscription_service.cancel_subscription(db, company.id, subscription.id)


def test_expire_sweep_expires_ended_periods(db, company_factory):
    company = company_factory(name="Lapsed")
    plan = subscription_service.create_plan(db, "Basic", duration_days=30)
    subscription = subscription_service.subscribe(db, company.id, plan.id, start=JAN_1)

    swept = subscription_service.expire_subscriptions(db, now=JAN_1 + timedelta(days=45))

    assert swept == {"expired": 1, "renewed": 0}
    db.refresh(subscription)
    assert subscription.status == SubscriptionStatus.EXPIRED.value
    db.refresh(company)
    assert company.plan_id is None


def test_expire_sweep_renews_auto_renew_subscriptions(db, company_factory):
    company = company_factory(name="Loyal")
    plan = subscription_service.create_plan(db, "Basic", duration_days=30)
    subscription_service.subscribe(db, company.id, plan.id, start=JAN_1, auto_renew=True)
    now = JAN_1 + timedelta(days=75)

    swept = subscription_service.expire_subscriptions(db, now=now)

    assert swept == {"expired": 0, "renewed": 1}
    active = active_subscriptions(db, company.id)
    assert len(active) == 1
    # Renewed period is the one that contains "now"
    assert active[0].start_date == JAN_1 + timedelta(days=60)
    assert active[0].end_date == JAN_1 + timedelta(days=90)
    assert active[0].auto_renew


def test_expire_sweep_leaves_current_periods_alone(db, company_factory):
    company = company_factory(name="Current")
    plan = subscription_service.create_plan(db, "Basic", duration_days=30)
    subscription_service.subscribe(db, company.id, plan.id, start=JAN_1)

    assert subscription_service.expire_subscriptions(db, now=JAN_1 + timedelta(days=10)) == {
        "expired": 0,
        "renewed": 0,
    }

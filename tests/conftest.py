"""
Test configuration and fixtures.

Provides:
- In-memory SQLite engine shared by every test
- Database session with savepoint (rollback after each test)
- Company / plan / subscription / team factories
- HTTPX AsyncClient with the X-Company-ID tenant header
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ENV", "test")

from contextlib import nullcontext
from datetime import date, datetime, time, timezone
from typing import AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from fieldservice.core.deps import get_db, get_session_factory
from fieldservice.db.base import Base
from fieldservice.db.enums import RecurrenceFrequency, RecurrenceStatus
from fieldservice.db.models import (
    Company,
    Customer,
    Plan,
    PlanSubscription,
    Professional,
    Recurrence,
    Team,
)
from fieldservice.main import app


# =============================================================================
# Database Fixtures (Savepoint pattern)
# =============================================================================

@pytest.fixture(scope="session")
def engine():
    """Single in-memory database for the whole run."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT to behave
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    """
    Creates a database session with savepoint for test isolation.

    App code can call commit() and rollback() freely: each only ends a
    savepoint inside the outer transaction, which is rolled back at the end.
    Fixtures commit too, so a rollback under test never undoes them.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        autoflush=False,
        join_transaction_mode="create_savepoint",
    )

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def session_factory(db):
    """Scheduler-style session factory that hands out the test session."""
    return lambda: nullcontext(db)


# =============================================================================
# Tenant Fixtures
# =============================================================================

def make_plan(db: Session, **limits) -> Plan:
    plan = Plan(name=limits.pop("name", "Test Plan"), duration_days=30, **limits)
    db.add(plan)
    db.commit()
    return plan


def subscribe_company(db: Session, company: Company, plan: Plan) -> PlanSubscription:
    """Active subscription wide enough to cover fixed test dates and the wall clock."""
    subscription = PlanSubscription(
        company_id=company.id,
        plan_id=plan.id,
        start_date=datetime(2020, 1, 1, tzinfo=timezone.utc),
        end_date=datetime(2100, 1, 1, tzinfo=timezone.utc),
    )
    db.add(subscription)
    company.plan_id = plan.id
    db.commit()
    return subscription


def make_company(db: Session, name: str = "Test Company", tz: str = "UTC", plan: Plan | None = None) -> Company:
    company = Company(name=name, timezone=tz)
    db.add(company)
    db.commit()
    if plan is not None:
        subscribe_company(db, company, plan)
    return company


def make_recurrence(db: Session, company: Company, **overrides) -> Recurrence:
    """Weekly Monday 09:00 for 60 minutes, due at 2026-03-02 09:00 UTC."""
    fields = dict(
        company_id=company.id,
        title="Weekly cleaning",
        frequency=RecurrenceFrequency.WEEKLY.value,
        day_of_week=0,
        time_of_day=time(9, 0),
        duration_minutes=60,
        start_date=date(2026, 1, 1),
        status=RecurrenceStatus.ACTIVE.value,
        next_execution=datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    recurrence = Recurrence(**fields)
    db.add(recurrence)
    db.commit()
    return recurrence


@pytest.fixture
def plan(db) -> Plan:
    """Unlimited plan."""
    return make_plan(db)


@pytest.fixture
def company(db, plan) -> Company:
    return make_company(db, plan=plan)


@pytest.fixture
def team(db, company) -> Team:
    team = Team(company_id=company.id, name="Team A")
    db.add(team)
    db.commit()
    return team


@pytest.fixture
def professional(db, company, team) -> Professional:
    professional = Professional(company_id=company.id, team_id=team.id, name="Pat")
    db.add(professional)
    db.commit()
    return professional


@pytest.fixture
def customer(db, company) -> Customer:
    customer = Customer(company_id=company.id, name="Acme Offices")
    db.add(customer)
    db.commit()
    return customer


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture
async def client(db: Session, company: Company, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient scoped to the test company through the tenant header."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Company-ID": str(company.id)},
    ) as c:
        yield c

    app.dependency_overrides.clear()


# =============================================================================
# Factory Fixtures
# =============================================================================

@pytest.fixture
def plan_factory(db):
    """plan_factory(customers_limit=5, ...) -> Plan"""
    return lambda **limits: make_plan(db, **limits)


@pytest.fixture
def company_factory(db):
    """company_factory(name=..., tz=..., plan=...) -> Company"""
    return lambda **kwargs: make_company(db, **kwargs)


@pytest.fixture
def recurrence_factory(db, company, team):
    """Weekly Monday 09:00 recurrence for the test team; keyword overrides apply."""
    def factory(**overrides) -> Recurrence:
        target = overrides.pop("company", company)
        overrides.setdefault("team_id", team.id if target is company else None)
        return make_recurrence(db, target, **overrides)

    return factory

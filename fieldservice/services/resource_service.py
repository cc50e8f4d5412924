"""Resource service - quota-guarded customers, professionals and teams.

Only what the scheduling core needs: create under the plan limit, toggle
active/inactive (inactive resources free their quota slot), and look up a
resource inside the company scope.
"""

import logging

from sqlalchemy.orm import Session

from fieldservice.core.errors import NotFoundError, ValidationError
from fieldservice.core.structured_logging import build_log_context
from fieldservice.db.enums import EntityStatus, ResourceKind
from fieldservice.db.models import Customer, Professional, Team
from fieldservice.services import quota_service

logger = logging.getLogger(__name__)

_MODELS = {
    ResourceKind.CUSTOMER: Customer,
    ResourceKind.PROFESSIONAL: Professional,
    ResourceKind.TEAM: Team,
}


def get_resource(db: Session, company_id: int, kind: ResourceKind, resource_id: int):
    model = _MODELS[kind]
    row = db.query(model).filter(model.id == resource_id, model.company_id == company_id).first()
    if not row:
        raise NotFoundError(kind.value.capitalize(), resource_id)
    return row


def ensure_active_resource(
    db: Session,
    company_id: int,
    kind: ResourceKind,
    resource_id: int | None,
) -> None:
    """A referenced resource must belong to the company and be active. None is allowed."""
    if resource_id is None:
        return
    row = get_resource(db, company_id, kind, resource_id)
    if row.status != EntityStatus.ACTIVE.value:
        raise ValidationError(f"{kind.value.capitalize()} {resource_id} is inactive")


def _create(db: Session, company_id: int, kind: ResourceKind, name: str, **fields):
    if not name or not name.strip():
        raise ValidationError("name is required")
    quota_service.lock_company(db, company_id)
    try:
        quota_service.ensure_quota(db, company_id, kind)
    except Exception:
        db.rollback()
        raise

    row = _MODELS[kind](
        company_id=company_id, name=name.strip(), status=EntityStatus.ACTIVE.value, **fields
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info(
        "Created %s %s",
        kind.value,
        row.id,
        extra=build_log_context(company_id=company_id),
    )
    return row


def create_customer(
    db: Session,
    company_id: int,
    name: str,
    email: str | None = None,
    phone: str | None = None,
    address: str | None = None,
) -> Customer:
    return _create(
        db, company_id, ResourceKind.CUSTOMER,
        name=name, email=email, phone=phone, address=address,
    )


def create_professional(
    db: Session,
    company_id: int,
    name: str,
    team_id: int | None = None,
    email: str | None = None,
    phone: str | None = None,
) -> Professional:
    ensure_active_resource(db, company_id, ResourceKind.TEAM, team_id)
    return _create(
        db, company_id, ResourceKind.PROFESSIONAL,
        name=name, team_id=team_id, email=email, phone=phone,
    )


def create_team(db: Session, company_id: int, name: str, region: str | None = None) -> Team:
    return _create(db, company_id, ResourceKind.TEAM, name=name, region=region)


def deactivate_resource(db: Session, company_id: int, kind: ResourceKind, resource_id: int):
    """Mark inactive. Idempotent; frees one quota slot."""
    row = get_resource(db, company_id, kind, resource_id)
    if row.status != EntityStatus.INACTIVE.value:
        row.status = EntityStatus.INACTIVE.value
        db.commit()
        db.refresh(row)
    return row


def activate_resource(db: Session, company_id: int, kind: ResourceKind, resource_id: int):
    """Mark active again; takes a quota slot, so it is checked like a creation."""
    row = get_resource(db, company_id, kind, resource_id)
    if row.status == EntityStatus.ACTIVE.value:
        return row
    quota_service.lock_company(db, company_id)
    try:
        quota_service.ensure_quota(db, company_id, kind)
    except Exception:
        db.rollback()
        raise
    row.status = EntityStatus.ACTIVE.value
    db.commit()
    db.refresh(row)
    return row

"""FastAPI dependencies for tenant scoping and database access."""

from typing import Generator

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from fieldservice.db.models import Company
from fieldservice.db.session import SessionLocal
from fieldservice.services.scheduler_service import SessionFactory

COMPANY_HEADER = "X-Company-ID"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> SessionFactory:
    """Session factory for work that opens its own sessions (scheduler pass)."""
    return SessionLocal


def get_company_id(
    x_company_id: int = Header(..., alias=COMPANY_HEADER),
    db: Session = Depends(get_db),
) -> int:
    """
    Resolve the tenant from the X-Company-ID header.

    Authentication is handled upstream; this only checks the company exists.

    Raises:
        HTTPException 404: unknown company
    """
    exists = db.query(Company.id).filter(Company.id == x_company_id).first()
    if not exists:
        raise HTTPException(status_code=404, detail=f"Company {x_company_id} not found")
    return x_company_id

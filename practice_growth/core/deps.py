"""FastAPI dependencies for database access and tenant context."""

from dataclasses import dataclass
from typing import Generator
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from practice_growth.db.session import SessionLocal
from practice_growth.repositories import OrganizationRepository

# Set by the upstream auth gateway after it authenticates the caller.
ORG_HEADER = "X-Organization-ID"
USER_HEADER = "X-User-ID"


@dataclass(frozen=True)
class OrgContext:
    """Tenant and actor for one request."""

    org_id: UUID
    user_id: UUID | None = None


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


def _parse_uuid(value: str, header: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Invalid {header} header")


def get_org_context(
    x_organization_id: str | None = Header(None, alias=ORG_HEADER),
    x_user_id: str | None = Header(None, alias=USER_HEADER),
    db: Session = Depends(get_db),
) -> OrgContext:
    """
    Resolve the request's organization.

    Raises:
        HTTPException 401: Organization header missing or malformed
        HTTPException 404: Organization does not exist
    """
    if not x_organization_id:
        raise HTTPException(status_code=401, detail="Organization context required")
    org_id = _parse_uuid(x_organization_id, ORG_HEADER)
    user_id = _parse_uuid(x_user_id, USER_HEADER) if x_user_id else None

    if OrganizationRepository(db).get(org_id) is None:
        raise HTTPException(status_code=404, detail="Organization not found")
    return OrgContext(org_id=org_id, user_id=user_id)

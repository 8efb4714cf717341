"""Public organization endpoints: directory, self-registration and members."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from campus.api.deps import RequirePermission, get_db
from campus.api.schemas.auth import AccountResponse, OrganizationCreate, OrganizationResponse
from campus.core.rbac.checker import CallerContext
from campus.services.organizations import OrganizationService

router = APIRouter(prefix="/organizations", tags=["organizations"])


@router.get("", response_model=List[OrganizationResponse])
def list_organizations(
    kind: Optional[str] = Query(None, description="university or company"),
    db: Session = Depends(get_db),
):
    """Approved, active organizations, for registration forms."""
    return OrganizationService(db).list_public(kind)


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
def register_organization(payload: OrganizationCreate, db: Session = Depends(get_db)):
    """Register an organization; it stays pending until reviewed."""
    return OrganizationService(db).register(**payload.model_dump())


@router.get("/{organization_id}/members", response_model=List[AccountResponse])
def list_members(
    organization_id: UUID,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("organizations:members")),
):
    """Members of the caller's own organization (any organization for admins)."""
    return OrganizationService(db).members(organization_id, caller)

"""Administrator endpoints for accounts and organizations.

Admin-created records bypass review: they are created approved and
verified, with the creating admin recorded as the approver.
"""

from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from campus.api.deps import RequirePermission, get_db
from campus.api.schemas.auth import AccountResponse, OrganizationCreate, OrganizationResponse
from campus.api.schemas.common import PaginatedResponse
from campus.core.rbac.checker import CallerContext
from campus.services.accounts import AccountService
from campus.services.organizations import OrganizationService

router = APIRouter(prefix="/admin", tags=["admin"])


# Schemas
class AccountCreate(BaseModel):
    email: EmailStr
    password: str
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: str
    phone: Optional[str] = None
    organization_id: Optional[UUID] = None


class AccountUpdate(BaseModel):
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = None
    organization_id: Optional[UUID] = None
    password: Optional[str] = None


class OrganizationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    domain: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    website: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    logo_url: Optional[str] = None


class VerifyRequest(BaseModel):
    is_verified: bool


class OrganizationDetail(OrganizationResponse):
    member_counts: Dict[str, int] = {}


class DeleteResponse(BaseModel):
    id: UUID
    hard_deleted: bool
    migrated_accounts: int = 0


# Accounts
@router.get("/users", response_model=PaginatedResponse[AccountResponse])
def list_users(
    role: Optional[str] = None,
    approval_status: Optional[str] = None,
    organization_id: Optional[UUID] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("accounts:list")),
):
    items, total = AccountService(db).list(
        role=role,
        approval_status=approval_status,
        organization_id=organization_id,
        is_active=is_active,
        search=search,
        page=page,
        per_page=per_page,
    )
    return PaginatedResponse[AccountResponse].create(
        items=[AccountResponse.model_validate(a) for a in items],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("/users", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: AccountCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("accounts:create")),
):
    """Create an account of any role, approved and verified."""
    return AccountService(db).create_by_admin(caller, **payload.model_dump())


@router.get("/users/{account_id}", response_model=AccountResponse)
def get_user(
    account_id: UUID,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("accounts:read")),
):
    return AccountService(db).get(account_id)


@router.patch("/users/{account_id}", response_model=AccountResponse)
def update_user(
    account_id: UUID,
    payload: AccountUpdate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("accounts:update")),
):
    """Update profile fields. Role and approval status cannot be changed here."""
    return AccountService(db).update(account_id, **payload.model_dump(exclude_unset=True))


@router.post("/users/{account_id}/activate", response_model=AccountResponse)
def activate_user(
    account_id: UUID,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("accounts:manage")),
):
    return AccountService(db).set_active(account_id, True, caller)


@router.post("/users/{account_id}/deactivate", response_model=AccountResponse)
def deactivate_user(
    account_id: UUID,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("accounts:manage")),
):
    """Deactivate an account and revoke its sessions."""
    return AccountService(db).set_active(account_id, False, caller)


@router.delete("/users/{account_id}", response_model=DeleteResponse)
def delete_user(
    account_id: UUID,
    hard: bool = Query(False, description="Remove the row instead of deactivating"),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("accounts:delete")),
):
    return AccountService(db).delete(account_id, caller, hard=hard)


# Organizations
@router.get("/organizations", response_model=PaginatedResponse[OrganizationResponse])
def list_organizations(
    kind: Optional[str] = None,
    approval_status: Optional[str] = None,
    is_verified: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("organizations:read")),
):
    items, total = OrganizationService(db).list(
        kind=kind,
        approval_status=approval_status,
        is_verified=is_verified,
        search=search,
        page=page,
        per_page=per_page,
    )
    return PaginatedResponse[OrganizationResponse].create(
        items=[OrganizationResponse.model_validate(o) for o in items],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("/organizations", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
def create_organization(
    payload: OrganizationCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("organizations:create")),
):
    """Create an organization, approved and verified."""
    return OrganizationService(db).create_by_admin(caller, **payload.model_dump())


@router.get("/organizations/{organization_id}", response_model=OrganizationDetail)
def get_organization(
    organization_id: UUID,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("organizations:read")),
):
    service = OrganizationService(db)
    detail = OrganizationDetail.model_validate(service.get(organization_id))
    detail.member_counts = service.member_counts(organization_id)
    return detail


@router.patch("/organizations/{organization_id}", response_model=OrganizationResponse)
def update_organization(
    organization_id: UUID,
    payload: OrganizationUpdate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("organizations:update")),
):
    return OrganizationService(db).update(organization_id, **payload.model_dump(exclude_unset=True))


@router.patch("/organizations/{organization_id}/verify", response_model=OrganizationResponse)
def verify_organization(
    organization_id: UUID,
    payload: VerifyRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("organizations:verify")),
):
    """Toggle the verified flag. Approval status is not affected."""
    return OrganizationService(db).set_verified(organization_id, payload.is_verified)


@router.delete("/organizations/{organization_id}", response_model=DeleteResponse)
def delete_organization(
    organization_id: UUID,
    migrate_to: Optional[UUID] = Query(None, description="Move member accounts to this organization first"),
    hard: bool = Query(False, description="Remove the row instead of deactivating"),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("organizations:delete")),
):
    return OrganizationService(db).delete(organization_id, migrate_to=migrate_to, hard=hard)

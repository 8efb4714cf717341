"""Approval workflow API endpoints."""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from campus.api.deps import RequirePermission, get_approval_service
from campus.api.schemas.auth import AccountResponse, OrganizationResponse
from campus.core.approval.service import ApprovalService, DecisionResult
from campus.core.rbac.checker import CallerContext

router = APIRouter(prefix="/approvals", tags=["approvals"])


# Schemas
class DecisionRequest(BaseModel):
    action: str = Field(..., description="approve or reject")
    notes: Optional[str] = None


class BulkDecisionRequest(BaseModel):
    organization_ids: List[UUID]
    action: str = Field(..., description="approve or reject")
    notes: Optional[str] = None


class DecisionResponse(BaseModel):
    entity_type: str
    entity_id: UUID
    approval_status: str
    approved_by: UUID
    approved_at: datetime
    approval_notes: Optional[str] = None
    cascaded_accounts: List[UUID] = []


class BulkDecisionResponse(BaseModel):
    affected: int
    decisions: List[DecisionResponse]
    skipped: List[UUID]


class PendingOrganization(OrganizationResponse):
    pending_recruiters: List[AccountResponse] = []


class PendingResponse(BaseModel):
    organizations: List[PendingOrganization]
    accounts: List[AccountResponse]


class RecentDecision(BaseModel):
    id: UUID
    name: str
    kind: str
    approval_status: str
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StatsResponse(BaseModel):
    organizations: Dict[str, int]
    recruiters: Dict[str, int]
    recent_decisions: List[RecentDecision]


def _decision_response(result: DecisionResult) -> DecisionResponse:
    return DecisionResponse(
        entity_type=result.entity_type,
        entity_id=result.entity_id,
        approval_status=result.status.value,
        approved_by=result.decided_by,
        approved_at=result.decided_at,
        approval_notes=result.notes,
        cascaded_accounts=[account.id for account in result.cascaded],
    )


# Endpoints
@router.get("/pending", response_model=PendingResponse)
def list_pending(
    service: ApprovalService = Depends(get_approval_service),
    caller: CallerContext = Depends(RequirePermission("approvals:list")),
):
    """Pending organizations (with their pending recruiters) and accounts the caller may decide."""
    pending = service.list_pending(caller)
    organizations = []
    for organization in pending.organizations:
        item = PendingOrganization.model_validate(organization)
        item.pending_recruiters = [
            AccountResponse.model_validate(a)
            for a in pending.recruiters_by_organization.get(organization.id, [])
        ]
        organizations.append(item)
    return PendingResponse(
        organizations=organizations,
        accounts=[AccountResponse.model_validate(a) for a in pending.accounts],
    )


@router.get("/stats", response_model=StatsResponse)
def approval_stats(
    recent: int = Query(10, ge=1, le=100),
    service: ApprovalService = Depends(get_approval_service),
    caller: CallerContext = Depends(RequirePermission("approvals:stats")),
):
    """Counts by status plus the most recent organization decisions."""
    stats = service.stats(caller, recent_limit=recent)
    return StatsResponse(
        organizations=stats["organizations"],
        recruiters=stats["recruiters"],
        recent_decisions=[RecentDecision.model_validate(o) for o in stats["recent_decisions"]],
    )


# Registered before /organizations/{organization_id} so "bulk" is not parsed as an id
@router.patch("/organizations/bulk", response_model=BulkDecisionResponse)
def bulk_decide_organizations(
    payload: BulkDecisionRequest,
    service: ApprovalService = Depends(get_approval_service),
    caller: CallerContext = Depends(RequirePermission("approvals:decide")),
):
    """Decide many pending organizations in one transaction."""
    result = service.bulk_decide_organizations(
        payload.organization_ids,
        payload.action,
        caller.account_id,
        payload.notes,
        caller=caller,
    )
    return BulkDecisionResponse(
        affected=result.affected,
        decisions=[_decision_response(d) for d in result.decisions],
        skipped=result.skipped,
    )


@router.patch("/organizations/{organization_id}", response_model=DecisionResponse)
def decide_organization(
    organization_id: UUID,
    payload: DecisionRequest,
    service: ApprovalService = Depends(get_approval_service),
    caller: CallerContext = Depends(RequirePermission("approvals:decide")),
):
    """Approve or reject an organization; its pending recruiters follow."""
    result = service.decide_organization(
        organization_id,
        payload.action,
        caller.account_id,
        payload.notes,
        caller=caller,
    )
    return _decision_response(result)


@router.patch("/accounts/{account_id}", response_model=DecisionResponse)
@router.patch("/recruiters/{account_id}", response_model=DecisionResponse)
def decide_account(
    account_id: UUID,
    payload: DecisionRequest,
    service: ApprovalService = Depends(get_approval_service),
    caller: CallerContext = Depends(RequirePermission("approvals:decide")),
):
    """Approve or reject a single pending account."""
    result = service.decide_account(
        account_id,
        payload.action,
        caller.account_id,
        payload.notes,
        caller=caller,
    )
    return _decision_response(result)

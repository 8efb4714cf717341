"""In-app notification endpoints, scoped to the caller's own notifications."""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.orm import Session

from campus.api.deps import RequirePermission, get_db
from campus.api.schemas.common import PaginatedResponse, SuccessResponse
from campus.core.rbac.checker import CallerContext
from campus.services.notifications import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


# Schemas
class NotificationResponse(BaseModel):
    id: UUID
    title: str
    message: str
    kind: str
    priority: str
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias=AliasChoices("extra_data", "metadata"))
    is_read: bool
    read_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UnreadCountResponse(BaseModel):
    unread: int


# Endpoints
@router.get("", response_model=PaginatedResponse[NotificationResponse])
def list_notifications(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    is_read: Optional[bool] = None,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("notifications:list")),
):
    """List the caller's unexpired notifications, newest first."""
    items, total = NotificationService(db).list_for_account(
        caller.account_id, page=page, per_page=per_page, is_read=is_read
    )
    return PaginatedResponse[NotificationResponse].create(
        items=[NotificationResponse.model_validate(n) for n in items],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
def unread_count(
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("notifications:list")),
):
    return UnreadCountResponse(unread=NotificationService(db).unread_count(caller.account_id))


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("notifications:update")),
):
    notification = NotificationService(db).mark_read(notification_id, caller)
    return NotificationResponse.model_validate(notification)


@router.patch("/read-all", response_model=SuccessResponse)
def mark_all_read(
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(RequirePermission("notifications:update")),
):
    count = NotificationService(db).mark_all_read(caller.account_id)
    return SuccessResponse(message=f"Marked {count} notification(s) as read", data={"updated": count})

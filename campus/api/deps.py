from typing import Generator, Optional, Union

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from campus.core.approval.service import ApprovalService
from campus.core.errors import InvalidCredential
from campus.core.rbac.checker import CallerContext, require_permission, resolve_caller
from campus.core.rbac.permissions import Permission
from campus.db.session import SessionLocal
from campus.services.notifier import Notifier, get_notifier as _default_notifier

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_notifier() -> Notifier:
    """Notifier dependency."""
    return _default_notifier()


def get_current_caller(
    db: Session = Depends(get_db),
    token: Optional[str] = Depends(oauth2_scheme),
) -> CallerContext:
    """Resolve the caller from the bearer token, fresh on every request."""
    if not token:
        raise InvalidCredential("Not authenticated")
    return resolve_caller(token, db)


class RequirePermission:
    """
    FastAPI dependency for role checks against the permission matrix.

    Usage:
        @router.get("/pending")
        def list_pending(caller: CallerContext = Depends(RequirePermission("approvals:list"))):
            ...
    """

    def __init__(self, permission: Union[Permission, str]):
        self.permission = permission

    def __call__(self, caller: CallerContext = Depends(get_current_caller)) -> CallerContext:
        require_permission(caller, self.permission)
        return caller


def get_approval_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> ApprovalService:
    return ApprovalService(db, notifier)

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from campus.api.deps import get_current_caller, get_db, get_notifier
from campus.api.schemas.auth import (
    AccountResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    MeResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
)
from campus.api.schemas.common import SuccessResponse
from campus.core.errors import UnknownAccount, ValidationError
from campus.core.password_reset import create_reset_token, use_reset_token
from campus.core.rbac.checker import CallerContext, check_account_usable
from campus.core.rbac.permissions import get_role_permissions
from campus.core.security import (
    REFRESH,
    get_password_hash,
    issue_tokens,
    revoke_account_sessions,
    revoke_session,
    rotate_tokens,
    verify_token,
)
from campus.db.models import Account
from campus.services.accounts import AccountService, check_password_strength
from campus.services.notifier import Notifier

router = APIRouter(prefix="/auth", tags=["auth"])

FORGOT_PASSWORD_MESSAGE = "If the email is registered, a reset link has been sent"


def _client(request: Request):
    ip_address = request.client.host if request.client else None
    return ip_address, request.headers.get("user-agent")


@router.post("/register", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    """Register an account, optionally registering its organization in the same call."""
    account = AccountService(db).register(
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        role=payload.role,
        phone=payload.phone,
        organization_id=payload.organization_id,
        organization=payload.organization.model_dump() if payload.organization else None,
    )
    return account


@router.post("/login", response_model=TokenResponse)
def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    """Login and get an access/refresh token pair with session tracking."""
    account = AccountService(db).authenticate(form_data.username, form_data.password)

    ip_address, user_agent = _client(request)
    pair = issue_tokens(account.id, db, ip_address=ip_address, user_agent=user_agent)
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
    )


@router.post("/refresh", response_model=TokenResponse)
def refresh(payload: RefreshRequest, request: Request, db: Session = Depends(get_db)):
    """Rotate a refresh token. The account must still be allowed to sign in."""
    account_id = verify_token(payload.refresh_token, db, token_type=REFRESH)
    account = db.query(Account).filter(Account.id == account_id).first()
    if account is None:
        raise UnknownAccount("Account not found")
    check_account_usable(account)

    ip_address, user_agent = _client(request)
    pair = rotate_tokens(payload.refresh_token, db, ip_address=ip_address, user_agent=user_agent)
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """Revoke the current session."""
    revoke_session(caller.session_jti, db)
    return None


@router.get("/me", response_model=MeResponse)
def get_me(
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """Get current account info with its organization and permissions."""
    account = AccountService(db).get(caller.account_id)
    response = MeResponse.model_validate(account)
    response.permissions = get_role_permissions(caller.role)
    return response


@router.post("/change-password", response_model=SuccessResponse)
def change_password(
    payload: ChangePasswordRequest,
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """Change password; every other session is revoked."""
    revoked = AccountService(db).change_password(
        caller.account_id,
        payload.current_password,
        payload.new_password,
        keep_session=caller.session_jti,
    )
    return SuccessResponse(message="Password changed", data={"revoked_sessions": revoked})


@router.post("/forgot-password", response_model=SuccessResponse)
def forgot_password(
    payload: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Send a reset link. The response does not reveal whether the email exists."""
    account = AccountService(db).get_by_email(payload.email)
    if account is not None and account.is_active:
        _, plain_token = create_reset_token(account.id, db)
        notifier.send_password_reset(account.id, plain_token)
    return SuccessResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=SuccessResponse)
def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    """Set a new password with a reset token and sign out every session."""
    check_password_strength(payload.new_password)
    account_id = use_reset_token(payload.token, get_password_hash(payload.new_password), db)
    if account_id is None:
        raise ValidationError("Invalid or expired reset token")
    revoke_account_sessions(account_id, db)
    return SuccessResponse(message="Password has been reset")

"""Password reset functionality."""

import secrets
import hashlib
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from campus.core.config import get_settings
from campus.db.models import Account, PasswordResetToken


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def generate_reset_token() -> tuple[str, str]:
    """Generate a password reset token.

    Returns:
        (token, token_hash) tuple
        - token: The actual token to send to the account holder
        - token_hash: Hash to store in database
    """
    token = secrets.token_urlsafe(32)
    return token, _hash_token(token)


def create_reset_token(
    account_id: UUID,
    db: Session,
    expires_in_hours: Optional[int] = None
) -> tuple[PasswordResetToken, str]:
    """Create a password reset token, invalidating older unused ones.

    Returns:
        (token_model, plain_token) tuple
    """
    if expires_in_hours is None:
        expires_in_hours = get_settings().password_reset_expire_hours

    existing_tokens = db.query(PasswordResetToken).filter(
        PasswordResetToken.account_id == account_id,
        PasswordResetToken.is_used.is_(False),
        PasswordResetToken.expires_at > datetime.utcnow()
    ).all()

    for token in existing_tokens:
        token.is_used = True

    plain_token, token_hash = generate_reset_token()

    reset_token = PasswordResetToken(
        account_id=account_id,
        token_hash=token_hash,
        expires_at=datetime.utcnow() + timedelta(hours=expires_in_hours),
    )

    db.add(reset_token)
    db.commit()
    db.refresh(reset_token)

    return reset_token, plain_token


def _active_token(token: str, db: Session) -> Optional[PasswordResetToken]:
    return db.query(PasswordResetToken).filter(
        PasswordResetToken.token_hash == _hash_token(token),
        PasswordResetToken.is_used.is_(False),
        PasswordResetToken.expires_at > datetime.utcnow()
    ).first()


def verify_reset_token(token: str, db: Session) -> Optional[UUID]:
    """Return the account id for a valid, unused, unexpired token."""
    reset_token = _active_token(token, db)
    return reset_token.account_id if reset_token else None


def use_reset_token(token: str, new_password_hash: str, db: Session) -> Optional[UUID]:
    """Consume a reset token and set the new password hash.

    Returns:
        The account id on success, None otherwise
    """
    reset_token = _active_token(token, db)
    if not reset_token:
        return None

    account = db.query(Account).filter(Account.id == reset_token.account_id).first()
    if not account:
        return None

    account.password_hash = new_password_hash

    reset_token.is_used = True
    reset_token.used_at = datetime.utcnow()

    db.commit()
    return account.id


def cleanup_expired_tokens(db: Session) -> int:
    """Delete expired password reset tokens.

    Returns:
        Number of tokens deleted
    """
    count = db.query(PasswordResetToken).filter(
        PasswordResetToken.expires_at < datetime.utcnow()
    ).delete()

    db.commit()
    return count

"""Credential service: password hashing and session-tracked JWT pairs.

Access and refresh tokens of one login share a ``jti`` that is recorded in
the ``sessions`` table, so logging out or refreshing revokes both.
"""

from datetime import datetime, timedelta
from typing import NamedTuple, Optional
from uuid import UUID
import uuid

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from campus.core.config import get_settings
from campus.core.errors import InvalidCredential, TokenExpired
from campus.db.models import Session as SessionModel

settings = get_settings()

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)

ACCESS = "access"
REFRESH = "refresh"


class TokenPair(NamedTuple):
    access_token: str
    refresh_token: str
    jti: str
    expires_in: int  # seconds until the access token expires


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate password hash."""
    return pwd_context.hash(password)


def _signing_key(token_type: str) -> str:
    return settings.refresh_key if token_type == REFRESH else settings.secret_key


def _encode(account_id: UUID, jti: str, token_type: str, expire: datetime) -> str:
    to_encode = {
        "sub": str(account_id),
        "exp": expire,
        "jti": jti,
        "type": token_type,
    }
    return jwt.encode(to_encode, _signing_key(token_type), algorithm=settings.algorithm)


def issue_tokens(
    account_id: UUID,
    db: Session,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> TokenPair:
    """Create an access/refresh pair and track it as a session."""
    now = datetime.utcnow()
    access_expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    refresh_expire = now + timedelta(days=settings.refresh_token_expire_days)

    jti = str(uuid.uuid4())

    session = SessionModel(
        account_id=account_id,
        token_jti=jti,
        ip_address=ip_address,
        user_agent=user_agent,
        expires_at=refresh_expire,
    )
    db.add(session)
    db.commit()

    return TokenPair(
        access_token=_encode(account_id, jti, ACCESS, access_expire),
        refresh_token=_encode(account_id, jti, REFRESH, refresh_expire),
        jti=jti,
        expires_in=int((access_expire - now).total_seconds()),
    )


def decode_token(token: str, token_type: str = ACCESS) -> dict:
    """Check signature, expiry and type, without touching the session table.

    Raises:
        TokenExpired: If the token is past its expiry
        InvalidCredential: For any other verification failure
    """
    try:
        payload = jwt.decode(token, _signing_key(token_type), algorithms=[settings.algorithm])
    except ExpiredSignatureError:
        raise TokenExpired("Token has expired")
    except JWTError:
        raise InvalidCredential("Could not validate credentials")

    if payload.get("type") != token_type:
        raise InvalidCredential(f"Expected a {token_type} token")
    if payload.get("sub") is None or payload.get("jti") is None:
        raise InvalidCredential("Malformed token")
    return payload


def verify_token(token: str, db: Session, token_type: str = ACCESS) -> UUID:
    """Verify a token and return the account id it was issued to.

    Raises:
        TokenExpired, InvalidCredential
    """
    payload = decode_token(token, token_type)

    session = db.query(SessionModel).filter(
        SessionModel.token_jti == payload["jti"],
        SessionModel.revoked_at.is_(None)
    ).first()
    if session is None:
        raise InvalidCredential("Session has been revoked")

    try:
        return UUID(payload["sub"])
    except ValueError:
        raise InvalidCredential("Malformed token subject")


def rotate_tokens(
    refresh_token: str,
    db: Session,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> TokenPair:
    """Exchange a refresh token for a new pair, revoking the old session."""
    account_id = verify_token(refresh_token, db, token_type=REFRESH)
    jti = decode_token(refresh_token, REFRESH)["jti"]
    revoke_session(jti, db)
    return issue_tokens(account_id, db, ip_address=ip_address, user_agent=user_agent)


def revoke_session(jti: str, db: Session) -> bool:
    """Revoke a session by JWT ID."""
    session = db.query(SessionModel).filter(SessionModel.token_jti == jti).first()
    if session and session.revoked_at is None:
        session.revoked_at = datetime.utcnow()
        db.commit()
        return True
    return False


def revoke_account_sessions(account_id: UUID, db: Session, except_jti: Optional[str] = None) -> int:
    """Revoke all sessions for an account (except optionally one session)."""
    query = db.query(SessionModel).filter(
        SessionModel.account_id == account_id,
        SessionModel.revoked_at.is_(None)
    )

    if except_jti:
        query = query.filter(SessionModel.token_jti != except_jti)

    count = 0
    for session in query.all():
        session.revoked_at = datetime.utcnow()
        count += 1

    if count > 0:
        db.commit()

    return count

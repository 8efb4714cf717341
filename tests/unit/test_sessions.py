"""Tests for password hashing and session-tracked tokens."""

from datetime import datetime, timedelta

import pytest
from jose import jwt

from campus.core.config import get_settings
from campus.core.errors import InvalidCredential, TokenExpired
from campus.core.security import (
    ACCESS,
    REFRESH,
    decode_token,
    get_password_hash,
    issue_tokens,
    revoke_account_sessions,
    revoke_session,
    rotate_tokens,
    verify_password,
    verify_token,
)
from campus.db.models import Session as SessionModel


class TestPasswordHashing:

    def test_hash_and_verify(self):
        hashed = get_password_hash("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_hashes_are_salted(self):
        assert get_password_hash("same-password") != get_password_hash("same-password")


class TestDecodeToken:

    def test_expired_token(self):
        settings = get_settings()
        token = jwt.encode(
            {
                "sub": "00000000-0000-0000-0000-000000000001",
                "jti": "abc",
                "type": ACCESS,
                "exp": datetime.utcnow() - timedelta(minutes=1),
            },
            settings.secret_key,
            algorithm=settings.algorithm,
        )
        with pytest.raises(TokenExpired):
            decode_token(token)

    def test_expired_is_an_invalid_credential(self):
        assert issubclass(TokenExpired, InvalidCredential)

    def test_tampered_token(self):
        with pytest.raises(InvalidCredential):
            decode_token("header.payload.signature")


@pytest.mark.db
class TestSessions:

    def test_issue_records_session(self, db_session, admin):
        pair = issue_tokens(admin.id, db_session, ip_address="10.0.0.1")

        session = db_session.query(SessionModel).filter_by(token_jti=pair.jti).one()
        assert session.account_id == admin.id
        assert session.ip_address == "10.0.0.1"
        assert session.revoked_at is None
        assert pair.expires_in > 0

    def test_verify_access_token(self, db_session, admin):
        pair = issue_tokens(admin.id, db_session)
        assert verify_token(pair.access_token, db_session) == admin.id

    def test_token_type_is_checked(self, db_session, admin):
        pair = issue_tokens(admin.id, db_session)
        with pytest.raises(InvalidCredential):
            verify_token(pair.refresh_token, db_session, token_type=ACCESS)
        with pytest.raises(InvalidCredential):
            verify_token(pair.access_token, db_session, token_type=REFRESH)

    def test_revoked_session_rejects_both_tokens(self, db_session, admin):
        pair = issue_tokens(admin.id, db_session)
        assert revoke_session(pair.jti, db_session)
        assert not revoke_session(pair.jti, db_session)

        with pytest.raises(InvalidCredential):
            verify_token(pair.access_token, db_session)
        with pytest.raises(InvalidCredential):
            verify_token(pair.refresh_token, db_session, token_type=REFRESH)

    def test_rotate_revokes_old_pair(self, db_session, admin):
        old = issue_tokens(admin.id, db_session)
        new = rotate_tokens(old.refresh_token, db_session)

        assert new.jti != old.jti
        assert verify_token(new.access_token, db_session) == admin.id
        with pytest.raises(InvalidCredential):
            rotate_tokens(old.refresh_token, db_session)

    def test_revoke_account_sessions_keeps_current(self, db_session, admin):
        keep = issue_tokens(admin.id, db_session)
        issue_tokens(admin.id, db_session)
        issue_tokens(admin.id, db_session)

        assert revoke_account_sessions(admin.id, db_session, except_jti=keep.jti) == 2
        assert verify_token(keep.access_token, db_session) == admin.id
        assert revoke_account_sessions(admin.id, db_session) == 1
